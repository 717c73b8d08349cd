# cli.py
from __future__ import annotations

import signal
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import click

from taskline.errors import LaunchError, TargetFileError, UnknownTargetError
from taskline.executor import StepExecutor
from taskline.model import Target
from taskline.registry import TargetRegistry, default_registry, load_targets
from taskline.runner import TargetRunner, exit_code_for
from taskline.settings import WATCH_POLICIES, Settings
from taskline.ui.console import Console, get_console, set_console
from taskline.watch import FileWatcher, PathFilter, WatchController

EXIT_UNKNOWN_TARGET = 2
EXIT_LAUNCH_ERROR = 127
EXIT_INTERRUPTED = 130


@dataclass
class AppState:
    settings: Settings
    registry: TargetRegistry
    # explicit command line values win over a watch target's own knobs
    policy: str | None = None
    debounce: float | None = None


def _settings_from(ctx: click.Context) -> Settings:
    p = ctx.params
    settings = Settings.from_env().with_overrides(
        targets_file=Path(p["targets_file"]) if p.get("targets_file") else None,
        root=Path(p["root"]) if p.get("root") else None,
        debounce=p.get("debounce"),
        kill_timeout=p.get("kill_timeout"),
        policy=p.get("policy"),
        initial_run=p.get("initial_run"),
    )
    settings.validate()
    return settings


def discover_registry(settings: Settings, explicit: bool) -> TargetRegistry:
    """
    Load the targets file. Falls back to the built-in targets when the
    default file is absent and no file was requested explicitly.
    """
    path = settings.targets_file
    if not path.is_absolute():
        path = settings.root / path
    if not path.exists() and not explicit:
        get_console().print_debug(f"{path} not found, using built-in targets")
        return default_registry()
    return load_targets(path)


class TargetGroup(click.Group):
    """Click group whose subcommands are the registered targets."""

    def registry(self, ctx: click.Context) -> TargetRegistry:
        if "registry" not in ctx.meta:
            console = Console(debug=bool(ctx.params.get("debug")))
            set_console(console)
            try:
                settings = _settings_from(ctx)
            except ValueError as e:
                console.print_error("Invalid settings", str(e))
                ctx.exit(1)
            ctx.meta["settings"] = settings
            try:
                explicit = bool(ctx.params.get("targets_file"))
                ctx.meta["registry"] = discover_registry(settings, explicit)
            except (TargetFileError, ValueError) as e:
                console.print_error("Failed to load targets", str(e))
                ctx.exit(1)
            except UnknownTargetError as e:
                console.print_error("Invalid watch target", str(e))
                ctx.exit(1)
        return ctx.meta["registry"]

    def list_commands(self, ctx: click.Context) -> list[str]:
        return self.registry(ctx).names()

    def get_command(self, ctx: click.Context, cmd_name: str):
        registry = self.registry(ctx)
        if cmd_name not in registry:
            return None
        return _target_command(registry.get(cmd_name))

    def resolve_command(self, ctx: click.Context, args):
        cmd_name = args[0]
        registry = self.registry(ctx)
        try:
            t = registry.get(cmd_name)
        except UnknownTargetError as e:
            get_console().print_error(
                "Unknown target",
                f"No target named {cmd_name!r}.",
                details=[f"Available: {', '.join(e.known) or '(none)'}"],
                suggestion="List targets with:\n  taskline --list",
            )
            ctx.exit(EXIT_UNKNOWN_TARGET)
        return t.name, _target_command(t), args[1:]


def _target_command(t: Target) -> click.Command:
    @click.pass_context
    def _invoke(ctx):
        app: AppState = ctx.find_object(AppState)
        with interrupt_on_termination():
            if t.is_watch:
                code = watch_target(app, t)
            else:
                code = run_target(app, t)
        ctx.exit(code)

    return click.Command(t.name, callback=_invoke, help=t.description)


@click.group(cls=TargetGroup, invoke_without_command=True)
@click.option("--file", "targets_file", default=None,
              help="Targets file path (defaults to taskline_targets.py if present)")
@click.option("--root", default=None, type=click.Path(exists=True, file_okay=False), help="Project root (step cwd base)")
@click.option("--debug", is_flag=True, default=False,
              help="Enable debug mode (show stack traces and detailed output)")
@click.option("--list", "list_targets", is_flag=True, default=False, help="List targets and exit")
@click.option("--debounce", default=None, type=float, help="Watch: quiet period in seconds before a rerun")
@click.option("--kill-timeout", default=None, type=float,
              help="Seconds to wait after SIGTERM before killing a cancelled step")
@click.option("--policy", default=None, type=click.Choice(WATCH_POLICIES),
              help="Watch: restart cancels the in-flight run, queue lets it finish")
@click.option("--initial-run/--no-initial-run", default=None, help="Watch: run once before the first change")
@click.pass_context
def cli(ctx, targets_file, root, debug, list_targets, debounce, kill_timeout, policy, initial_run):
    """taskline - named shell targets with fail-fast steps and watch mode."""
    registry = ctx.command.registry(ctx)
    ctx.obj = AppState(settings=ctx.meta["settings"], registry=registry, policy=policy, debounce=debounce)

    if list_targets or ctx.invoked_subcommand is None:
        get_console().print_targets(registry)
        ctx.exit(0)


# ----------------------------------------------------------------------
# Dispatch
# ----------------------------------------------------------------------

@contextmanager
def interrupt_on_termination():
    """
    Deliver SIGTERM and SIGHUP as KeyboardInterrupt while a target runs, so
    the Ctrl-C paths reap the step process group before taskline exits.
    """
    def _handler(signum, frame):
        raise KeyboardInterrupt(signal.Signals(signum).name)

    originals = {}
    try:
        for name in ("SIGTERM", "SIGHUP"):
            sig = getattr(signal, name, None)
            if sig is not None:
                originals[sig] = signal.signal(sig, _handler)
    except ValueError:
        # handlers can only be installed from the main thread
        pass
    try:
        yield
    finally:
        for sig, original in originals.items():
            signal.signal(sig, original)


def _runner(app: AppState, t: Target, *, on_step=None) -> TargetRunner:
    executor = StepExecutor(
        shell=app.settings.shell,
        kill_timeout=app.settings.kill_timeout,
        target=t.name,
    )
    return TargetRunner(executor, root=app.settings.root, on_step=on_step)


def _report_launch_error(e: LaunchError) -> None:
    get_console().print_error(
        "Could not launch step",
        str(e),
        suggestion=f"Hint: {e.hint}" if e.hint else None,
    )


def run_target(app: AppState, t: Target) -> int:
    console = get_console()
    runner = _runner(app, t, on_step=console.print_step)

    console.print_run_started(t)
    try:
        run = runner.run(t)
    except LaunchError as e:
        _report_launch_error(e)
        return EXIT_LAUNCH_ERROR
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        return EXIT_INTERRUPTED

    console.print_run_result(run)
    return exit_code_for(run)


def watch_target(app: AppState, t: Target) -> int:
    console = get_console()
    settings = app.settings
    _, inner = app.registry.resolve_watch(t.name)
    policy = app.policy or t.watch.policy or settings.policy
    debounce = next(d for d in (app.debounce, t.watch.debounce, settings.debounce) if d is not None)

    runner = _runner(app, inner, on_step=console.print_step)
    controller = WatchController(
        runner,
        inner,
        debounce=debounce,
        policy=policy,
        history=settings.history,
        initial_run=settings.initial_run,
        on_run_start=console.print_watch_trigger,
        on_run_finish=console.print_run_result,
        on_error=_report_launch_error,
        on_transition=lambda s: console.print_debug(f"watch state -> {s.value}"),
    )

    path_filter = PathFilter(settings.root, paths=t.watch.paths, ignore=t.watch.ignore)

    def _changed(rel: str) -> None:
        console.print_debug(f"change: {rel}")
        controller.notify(rel)

    watcher = FileWatcher(path_filter, _changed)

    console.print_watch_started(t, inner, str(path_filter.root), policy, debounce)
    watcher.start()
    controller.start()
    try:
        while controller.alive:
            time.sleep(0.2)
    except KeyboardInterrupt:
        console.print_info("\nWatch stopped by user")
    finally:
        watcher.stop()
        controller.stop()

    if controller.error is not None:
        console.print_exception(controller.error)
        return 1
    return 0


if __name__ == "__main__":
    cli()

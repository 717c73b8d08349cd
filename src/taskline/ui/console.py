"""Console output formatting utilities for taskline."""

from __future__ import annotations

import sys
from typing import Iterable, List, Optional

from taskline.model import Run, RunStatus, Step, Target


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_run_started(self, target: Target) -> None:
        """Print run start information."""
        print(f"\nTARGET: {target.name}")
        print(f"Steps: {len(target.steps)}")

    def print_step(self, target: Target, index: int, step: Step) -> None:
        """Print step start message."""
        cwd = step.cwd or target.cwd
        suffix = f" (in {cwd})" if cwd not in (None, ".") else ""
        print(f"STEP {index}/{len(target.steps)}: {step.name}{suffix}", flush=True)

    def print_run_result(self, run: Run) -> None:
        """Print the outcome of a run."""
        duration = f" ({run.duration:.1f}s)" if run.duration is not None else ""
        if run.status is RunStatus.SUCCESS:
            print(f"STATUS: success{duration}", flush=True)
        elif run.status is RunStatus.CANCELLED:
            print(f"STATUS: cancelled{duration}", flush=True)
        else:
            step = run.records[-1].step if run.records else None
            self.print_failure(
                step.name if step else run.target,
                index=run.failed_step,
                exit_code=run.exit_code,
                cmd=step.run if step else None,
            )

    def print_failure(
        self,
        name: str,
        index: Optional[int] = None,
        exit_code: Optional[int] = None,
        cmd: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Step name
            index: 1-based step index in its target
            exit_code: Optional exit code
            cmd: Command text, shown in debug mode
        """
        print(f"STEP FAILED: {name}", file=sys.stderr)
        if index is not None:
            print(f"Step: {index}", file=sys.stderr)
        if exit_code is not None:
            print(f"Exit code: {exit_code}", file=sys.stderr)
        if cmd and self.debug:
            print(f"Command: {cmd}", file=sys.stderr)

    def print_targets(self, targets: Iterable[Target]) -> None:
        """Print the registered targets."""
        print("Available targets:")
        for t in targets:
            if t.is_watch:
                summary = f"watches -> {t.watch.of}"
            else:
                summary = f"{len(t.steps)} step(s)"
            desc = f"  # {t.description}" if t.description else ""
            print(f"  {t.name:<12} {summary}{desc}")

    def print_watch_started(
        self,
        target: Target,
        runs: Target,
        root: str,
        policy: str,
        debounce: float,
    ) -> None:
        """Print watch session start information."""
        print("\nWATCH STARTED")
        print(f"Target: {target.name} -> {runs.name}")
        print(f"Root: {root}")
        print(f"Policy: {policy}")
        print(f"Debounce: {debounce:.2f}s")
        print("Press Ctrl-C to stop.", flush=True)

    def print_watch_trigger(self, target: Target, paths: List[str]) -> None:
        """Print the changes that triggered a run."""
        if not paths:
            print(f"\n[watch] running {target.name}", flush=True)
            return
        shown = ", ".join(paths[:5])
        more = f" (+{len(paths) - 5} more)" if len(paths) > 5 else ""
        print(f"\n[watch] change: {shown}{more}", flush=True)
        print(f"[watch] running {target.name}", flush=True)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message, flush=True)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console

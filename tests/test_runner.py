from __future__ import annotations

import os
import signal

import pytest

from taskline.dsl import sh, target, watch
from taskline.errors import LaunchError, StepFailure
from taskline.model import Run, RunStatus
from taskline.runner import TargetRunner, check_requirements, exit_code_for

from .fakes import FakeExecutor


def _deploy():
    return target(
        "deploy",
        sh("build", "cargo web deploy", cwd="."),
        sh("package", "zip -r game.zip *", cwd="target/deploy"),
        sh("copy-artifact", "cp game.zip ../..", cwd="target/deploy"),
    )


def test_all_steps_succeed_in_order(tmp_path) -> None:
    executor = FakeExecutor()
    runner = TargetRunner(executor, root=tmp_path)

    run = runner.run(_deploy())

    assert run.status is RunStatus.SUCCESS
    assert run.ok
    assert [name for name, _ in executor.calls] == ["build", "package", "copy-artifact"]
    assert [r.index for r in run.records] == [1, 2, 3]
    assert run.finished_at is not None and run.duration >= 0


def test_failing_step_stops_the_run(tmp_path) -> None:
    executor = FakeExecutor({"package": 12})
    runner = TargetRunner(executor, root=tmp_path)

    run = runner.run(_deploy())

    assert run.status is RunStatus.FAILED
    assert run.failed_step == 2
    assert run.exit_code == 12
    assert [name for name, _ in executor.calls] == ["build", "package"]


def test_failing_build_never_invokes_package_or_copy(tmp_path) -> None:
    executor = FakeExecutor({"build": 101})
    runner = TargetRunner(executor, root=tmp_path)

    run = runner.run(_deploy())

    assert run.failed_step == 1
    assert [name for name, _ in executor.calls] == ["build"]


def test_step_cwd_is_resolved_against_root(tmp_path) -> None:
    executor = FakeExecutor()
    runner = TargetRunner(executor, root=tmp_path)

    runner.run(_deploy())

    cwds = [cwd for _, cwd in executor.calls]
    assert cwds == [tmp_path.resolve(), (tmp_path / "target/deploy").resolve(), (tmp_path / "target/deploy").resolve()]


def test_target_cwd_is_default_for_steps(tmp_path) -> None:
    executor = FakeExecutor()
    runner = TargetRunner(executor, root=tmp_path)
    t = target("serve", sh("serve", "cargo web start"), sh("other", "ls", cwd="static"), cwd="web")

    runner.run(t)

    assert [cwd for _, cwd in executor.calls] == [(tmp_path / "web").resolve(), (tmp_path / "static").resolve()]


def test_target_env_is_merged_over_ambient(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TASKLINE_TEST_AMBIENT", "1")
    executor = FakeExecutor()
    runner = TargetRunner(executor, root=tmp_path)

    runner.run(target("run", sh("run", "cargo run"), env={"RUST_LOG": "debug"}))

    env = executor.envs[0]
    assert env["RUST_LOG"] == "debug"
    assert env["TASKLINE_TEST_AMBIENT"] == "1"


def test_on_step_callback_sees_each_step(tmp_path) -> None:
    seen = []
    runner = TargetRunner(FakeExecutor(), root=tmp_path, on_step=lambda t, i, s: seen.append((t.name, i, s.name)))

    runner.run(_deploy())

    assert seen == [("deploy", 1, "build"), ("deploy", 2, "package"), ("deploy", 3, "copy-artifact")]


def test_cancel_before_step_yields_cancelled(tmp_path) -> None:
    executor = FakeExecutor()
    executor.cancel()
    runner = TargetRunner(executor, root=tmp_path)

    run = runner.run(_deploy())

    assert run.status is RunStatus.CANCELLED
    assert executor.calls == []


def test_missing_required_tool_is_launch_error(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("PATH", str(tmp_path))
    t = target("check", sh("check", "cargo check"), requires=["cargo"])
    executor = FakeExecutor()

    with pytest.raises(LaunchError) as exc_info:
        TargetRunner(executor, root=tmp_path).run(t)

    assert "cargo is not available" in str(exc_info.value)
    assert "rustup" in exc_info.value.hint
    assert executor.calls == []


def test_check_requirements_passes_for_present_tool(tmp_path, monkeypatch) -> None:
    tool = tmp_path / "mytool"
    tool.write_text("#!/bin/sh\n")
    tool.chmod(0o755)
    monkeypatch.setenv("PATH", str(tmp_path) + os.pathsep + os.environ.get("PATH", ""))

    check_requirements(target("x", sh("x", "mytool"), requires=["mytool"]))


def test_watch_target_cannot_be_run_directly(tmp_path) -> None:
    with pytest.raises(ValueError, match="watch target"):
        TargetRunner(FakeExecutor(), root=tmp_path).run(watch("recheck", of="check"))


def test_raise_for_status_reports_failing_step(tmp_path) -> None:
    run = TargetRunner(FakeExecutor({"package": 2}), root=tmp_path).run(_deploy())

    with pytest.raises(StepFailure) as exc_info:
        run.raise_for_status()

    failure = exc_info.value
    assert (failure.index, failure.step, failure.exit_code) == (2, "package", 2)
    assert "step 2 'package' failed (exit=2)" in str(failure)


def test_raise_for_status_is_noop_on_success(tmp_path) -> None:
    TargetRunner(FakeExecutor(), root=tmp_path).run(_deploy()).raise_for_status()


@pytest.mark.parametrize(
    ("status", "code", "expected"),
    [
        (RunStatus.SUCCESS, 0, 0),
        (RunStatus.FAILED, 1, 1),
        (RunStatus.FAILED, 101, 101),
        (RunStatus.FAILED, -int(signal.SIGTERM), 128 + int(signal.SIGTERM)),
        (RunStatus.FAILED, 4096, 1),
        (RunStatus.CANCELLED, None, 130),
    ],
)
def test_exit_code_for(status, code, expected) -> None:
    run = Run(target="t").finish(status, failed_step=1 if status is RunStatus.FAILED else None, exit_code=code)

    assert exit_code_for(run) == expected

# runner.py
from __future__ import annotations

import os
import shutil
import time
from pathlib import Path
from typing import Callable, Dict, Optional

from .errors import LaunchError
from .executor import StepExecutor
from .model import Run, RunStatus, Step, StepRecord, Target


TOOL_HINTS = {
    "cargo": "Install Rust via rustup (https://rustup.rs) or fix PATH.",
    "zip": "Install zip with your system package manager.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "docker": "Install Docker and ensure the daemon is running.",
    "python3": "Install Python 3 or fix PATH (python3).",
}

StepCallback = Callable[[Target, int, Step], None]


def check_requirements(t: Target) -> None:
    """Raise LaunchError for the first required tool missing from PATH."""
    for tool in t.requires:
        if shutil.which(tool) is None:
            raise LaunchError(
                target=t.name,
                step=None,
                message=f"{tool} is not available",
                hint=TOOL_HINTS.get(tool, f"Install {tool} or fix PATH."),
                details={"tool": tool},
            )


class TargetRunner:
    """
    Runs a target's steps in order through a StepExecutor.
    Stops at the first non-zero exit code.
    """

    def __init__(
        self,
        executor: Optional[StepExecutor] = None,
        *,
        root: str | Path = ".",
        on_step: Optional[StepCallback] = None,
        check_tools: bool = True,
    ):
        self.executor = executor or StepExecutor()
        self.root = Path(root).resolve()
        self.on_step = on_step
        self.check_tools = check_tools

    def workdir(self, t: Target, step: Step) -> Path:
        return (self.root / (step.cwd or t.cwd or ".")).resolve()

    def run(self, t: Target) -> Run:
        if t.is_watch:
            raise ValueError(f"Target '{t.name}' is a watch target; run it through a WatchController")

        run = Run(target=t.name)
        if self.check_tools:
            check_requirements(t)

        env: Dict[str, str] = os.environ.copy()
        env.update(t.env)

        for index, step in enumerate(t.steps, start=1):
            if self.executor.cancel_requested:
                return run.finish(RunStatus.CANCELLED)

            if self.on_step is not None:
                self.on_step(t, index, step)

            started = time.time()
            code = self.executor.execute(step, cwd=self.workdir(t, step), env=env)
            run.records.append(
                StepRecord(index=index, step=step, exit_code=code, started_at=started, finished_at=time.time())
            )

            if self.executor.cancel_requested:
                return run.finish(RunStatus.CANCELLED, exit_code=code)
            if code != 0:
                return run.finish(RunStatus.FAILED, failed_step=index, exit_code=code)

        return run.finish(RunStatus.SUCCESS, exit_code=0)


def exit_code_for(run: Run) -> int:
    """Map a finished Run to a process exit code."""
    if run.status is RunStatus.SUCCESS:
        return 0
    if run.status is RunStatus.CANCELLED:
        return 130
    code = run.exit_code
    if code is None or code == 0:
        return 1
    if code < 0:
        # killed by signal -N, shell convention
        return min(128 + -code, 255)
    return code if code <= 255 else 1

# model.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import StepFailure


DEFAULT_IGNORES: Tuple[str, ...] = (
    ".git/**",
    "target/**",
    "**/__pycache__/**",
    ".taskline/**",
    "**/*.swp",
    "**/*~",
)


@dataclass(frozen=True)
class Step:
    """A single shell command inside a target."""
    name: str
    run: str
    cwd: str | None = None


@dataclass(frozen=True)
class WatchSpec:
    """
    Marks a target as a watch variant of another target.

    `of` is the name of the target re-run on change. `policy` and `debounce`
    override the session settings when set.
    """
    of: str
    paths: Tuple[str, ...] = ()
    ignore: Tuple[str, ...] = DEFAULT_IGNORES
    policy: str | None = None
    debounce: float | None = None


@dataclass(frozen=True)
class Target:
    """
    A named, ordered sequence of shell steps.

    `cwd` is the root-relative working directory for steps that don't
    declare their own.
    """
    name: str
    steps: Tuple[Step, ...] = ()
    cwd: str = "."
    env: Dict[str, str] = field(default_factory=dict, hash=False)
    requires: Tuple[str, ...] = ()
    watch: Optional[WatchSpec] = None
    description: str | None = None

    @property
    def is_watch(self) -> bool:
        return self.watch is not None


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StepRecord:
    index: int  # 1-based position in the target
    step: Step
    exit_code: int
    started_at: float
    finished_at: float

    @property
    def duration(self) -> float:
        return self.finished_at - self.started_at


@dataclass
class Run:
    """One execution of a target."""
    target: str
    records: List[StepRecord] = field(default_factory=list)
    status: RunStatus | None = None
    failed_step: int | None = None
    exit_code: int | None = None
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.SUCCESS

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def finish(
        self,
        status: RunStatus,
        *,
        failed_step: int | None = None,
        exit_code: int | None = None,
    ) -> "Run":
        self.status = status
        self.failed_step = failed_step
        self.exit_code = exit_code
        self.finished_at = time.time()
        return self

    def raise_for_status(self) -> None:
        """Raise StepFailure if the run failed at a step."""
        if self.status is RunStatus.FAILED and self.failed_step is not None:
            step = self.records[-1].step
            raise StepFailure(
                target=self.target,
                step=step.name,
                index=self.failed_step,
                cmd=step.run,
                exit_code=self.exit_code if self.exit_code is not None else 1,
            )

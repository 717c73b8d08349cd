# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class TasklineError(Exception):
    """Base class for errors raised by taskline."""


class UnknownTargetError(TasklineError, KeyError):
    def __init__(self, name: str, known: Optional[List[str]] = None):
        super().__init__(name)
        self.name = name
        self.known = sorted(known or [])

    def __str__(self) -> str:
        msg = f"unknown target: {self.name!r}"
        if self.known:
            msg += f" (known targets: {', '.join(self.known)})"
        return msg


class DuplicateTargetError(TasklineError, ValueError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"duplicate target name: {self.name!r}"


class TargetFileError(TasklineError):
    """The targets file is missing or does not define any targets."""


@dataclass
class LaunchError(TasklineError):
    """
    A step could not be started at all: missing shell, missing tool,
    missing working directory, permission denied.
    """
    target: str
    step: str | None
    message: str
    hint: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        where = f"[{self.target}]"
        if self.step:
            where += f" step '{self.step}'"
        lines = [f"{where}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(TasklineError):
    """A step ran and exited non-zero. `index` is 1-based."""
    target: str
    step: str
    index: int
    cmd: str
    exit_code: int

    def __str__(self) -> str:
        return (
            f"[{self.target}] step {self.index} '{self.step}' failed "
            f"(exit={self.exit_code}): {self.cmd}"
        )

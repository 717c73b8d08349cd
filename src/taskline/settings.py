"""Runtime configuration, read from TASKLINE_* environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

WATCH_POLICIES = ("restart", "queue")


@dataclass(frozen=True)
class Settings:
    """Settings for loading targets, running steps and watch sessions."""

    targets_file: Path = Path("taskline_targets.py")
    root: Path = Path(".")
    shell: str | None = None
    debounce: float = 0.5
    kill_timeout: float = 5.0
    policy: str = "restart"
    history: int = 20
    initial_run: bool = True

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for local development."""
        return cls(
            targets_file=Path(os.getenv("TASKLINE_FILE", "taskline_targets.py")),
            root=Path(os.getenv("TASKLINE_ROOT", ".")),
            shell=os.getenv("TASKLINE_SHELL") or None,
            debounce=float(os.getenv("TASKLINE_DEBOUNCE", "0.5")),
            kill_timeout=float(os.getenv("TASKLINE_KILL_TIMEOUT", "5")),
            policy=os.getenv("TASKLINE_WATCH_POLICY", "restart"),
            history=int(os.getenv("TASKLINE_WATCH_HISTORY", "20")),
        )

    def with_overrides(self, **overrides) -> Settings:
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> None:
        if self.debounce < 0:
            raise ValueError(f"debounce must be >= 0, got {self.debounce}")
        if self.kill_timeout <= 0:
            raise ValueError(f"kill_timeout must be > 0, got {self.kill_timeout}")
        if self.policy not in WATCH_POLICIES:
            raise ValueError(f"Unknown watch policy {self.policy!r}, expected one of {WATCH_POLICIES}")
        if self.history < 1:
            raise ValueError(f"history must be >= 1, got {self.history}")

# executor.py
from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, Optional

from .errors import LaunchError
from .model import Step

_POSIX = os.name == "posix"

# Exit code reported for a step cancelled before its process could start.
CANCELLED_EXIT = -int(signal.SIGTERM)


class StepExecutor:
    """
    Runs one shell step at a time and owns its subprocess.

    stdout/stderr are inherited, so output reaches the terminal unchanged
    and unbuffered by us. `cancel()` may be called from any thread: the
    process group gets SIGTERM, then SIGKILL once `kill_timeout` elapses.
    The process is always reaped before `execute()` returns or raises.
    """

    def __init__(
        self,
        *,
        shell: str | None = None,
        kill_timeout: float = 5.0,
        poll_interval: float = 0.1,
        target: str = "",
    ):
        self.shell = shell
        self.kill_timeout = kill_timeout
        self.poll_interval = poll_interval
        self.target = target

        self._lock = threading.Lock()
        self._proc: Optional[subprocess.Popen] = None
        self._cancel_requested_at: float | None = None

    # ---- cancellation ----

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._cancel_requested_at is not None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._proc is not None

    def reset(self) -> None:
        """Clear a previous cancel request before starting a fresh run."""
        with self._lock:
            self._cancel_requested_at = None

    def cancel(self) -> None:
        with self._lock:
            if self._cancel_requested_at is None:
                self._cancel_requested_at = time.monotonic()
            proc = self._proc
        if proc is not None and proc.poll() is None:
            _send_signal(proc, signal.SIGTERM)

    # ---- execution ----

    def execute(
        self,
        step: Step,
        cwd: str | Path | None = None,
        env: Optional[Dict[str, str]] = None,
    ) -> int:
        """Run `step` to completion and return its exit code."""
        workdir = Path(cwd) if cwd is not None else None
        if workdir is not None and not workdir.is_dir():
            raise LaunchError(
                target=self.target,
                step=step.name,
                message=f"working directory not found: {workdir}",
            )

        with self._lock:
            if self._cancel_requested_at is not None:
                return CANCELLED_EXIT
            try:
                proc = subprocess.Popen(
                    step.run,
                    shell=True,
                    executable=self.shell,
                    cwd=str(workdir) if workdir is not None else None,
                    env=env,
                    start_new_session=_POSIX,
                )
            except OSError as e:
                raise LaunchError(
                    target=self.target,
                    step=step.name,
                    message=f"could not start process: {e.strerror or e}",
                    hint="Check that the shell exists and is executable." if self.shell else None,
                    details={"cmd": step.run},
                ) from e
            self._proc = proc

        try:
            return self._wait(proc)
        except BaseException:
            # KeyboardInterrupt or similar while waiting: don't leave the child behind
            self._terminate(proc)
            raise
        finally:
            with self._lock:
                self._proc = None

    def _wait(self, proc: subprocess.Popen) -> int:
        while True:
            try:
                return proc.wait(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                with self._lock:
                    requested = self._cancel_requested_at
                if requested is not None and time.monotonic() - requested >= self.kill_timeout:
                    _send_signal(proc, signal.SIGKILL if _POSIX else signal.SIGTERM)
                    return proc.wait()

    def _terminate(self, proc: subprocess.Popen) -> None:
        if proc.poll() is not None:
            return
        _send_signal(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=self.kill_timeout)
        except subprocess.TimeoutExpired:
            _send_signal(proc, signal.SIGKILL if _POSIX else signal.SIGTERM)
            proc.wait()


def _send_signal(proc: subprocess.Popen, sig: int) -> None:
    try:
        if _POSIX:
            # the step runs in its own session, pgid == pid
            os.killpg(proc.pid, sig)
        elif sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError):
        pass

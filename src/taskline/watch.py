# watch.py
from __future__ import annotations

import os
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Deque, Iterable, List, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import LaunchError
from .model import DEFAULT_IGNORES, Run, Target
from .runner import TargetRunner

# ---------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------
# Idle --change--> (debounce) --> Running
# Running --change--> Cancelling     (policy "restart": in-flight run is cancelled)
# Running --change--> PendingRerun   (policy "queue": in-flight run finishes)
# Running --done--> Idle
# Cancelling/PendingRerun --done--> PendingRerun --(debounce)--> Running
# any --stop--> Stopped
#
# The transition functions below mutate only the session they're given.
# WatchController serializes calls to them under one lock.
# ---------------------------------------------------------------------


class WatchState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PENDING_RERUN = "pending_rerun"
    CANCELLING = "cancelling"
    STOPPED = "stopped"


RESTART = "restart"
QUEUE = "queue"


@dataclass
class WatchSession:
    state: WatchState = WatchState.IDLE
    dirty: bool = False  # a change arrived that no run has picked up yet
    in_flight: bool = False  # set from run start until run finish, whatever the state
    last_event_at: float | None = None  # time.monotonic()
    changed: Set[str] = field(default_factory=set)
    runs: Deque[Run] = field(default_factory=lambda: deque(maxlen=20))


def on_change(session: WatchSession, path: str, now: float, policy: str = RESTART) -> bool:
    """Record a qualifying change. Returns True if the in-flight run must be cancelled."""
    if session.state is WatchState.STOPPED:
        return False
    session.dirty = True
    session.last_event_at = now
    session.changed.add(path)
    if session.state is WatchState.RUNNING:
        if policy == RESTART:
            session.state = WatchState.CANCELLING
            return True
        session.state = WatchState.PENDING_RERUN
    return False


def seconds_until_due(session: WatchSession, now: float, debounce: float) -> float | None:
    """
    None: nothing to start (no pending change, or a run is in flight).
    0: start a run now. >0: still inside the debounce window.
    """
    if not session.dirty or session.in_flight:
        return None
    if session.state not in (WatchState.IDLE, WatchState.PENDING_RERUN):
        return None
    if session.last_event_at is None:
        return 0.0
    return max(0.0, session.last_event_at + debounce - now)


def on_run_started(session: WatchSession) -> List[str]:
    """Move to Running, consume pending changes and return the changed paths."""
    session.state = WatchState.RUNNING
    session.dirty = False
    session.in_flight = True
    paths = sorted(session.changed)
    session.changed.clear()
    return paths


def on_run_finished(session: WatchSession, run: Optional[Run]) -> None:
    session.in_flight = False
    if run is not None:
        session.runs.append(run)
    if session.state is WatchState.STOPPED:
        return
    session.state = WatchState.PENDING_RERUN if session.dirty else WatchState.IDLE


def on_stop(session: WatchSession) -> bool:
    """Move to Stopped. Returns True if an in-flight run must be cancelled."""
    session.state = WatchState.STOPPED
    return session.in_flight


# ---------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------

class WatchController:
    """
    Re-runs `target` through `runner` whenever notify() reports a change.

    File events may arrive on any thread. Runs happen on one worker thread,
    so at most one invocation of the target is alive at a time.
    """

    def __init__(
        self,
        runner: TargetRunner,
        target: Target,
        *,
        debounce: float = 0.5,
        policy: str = RESTART,
        history: int = 20,
        initial_run: bool = True,
        on_run_start: Optional[Callable[[Target, List[str]], None]] = None,
        on_run_finish: Optional[Callable[[Run], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_transition: Optional[Callable[[WatchState], None]] = None,
    ):
        if policy not in (RESTART, QUEUE):
            raise ValueError(f"Unknown watch policy: {policy!r}")
        self.runner = runner
        self.target = target
        self.debounce = debounce
        self.policy = policy
        self.on_run_start = on_run_start
        self.on_run_finish = on_run_finish
        self.on_error = on_error
        self.on_transition = on_transition

        self.session = WatchSession(runs=deque(maxlen=history))
        if initial_run:
            self.session.dirty = True
        self.error: BaseException | None = None

        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None

    # ---- lifecycle ----

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("watch controller already started")
        self._thread = threading.Thread(
            target=self._loop, name=f"taskline-watch-{self.target.name}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        with self._cond:
            if on_stop(self.session):
                self.runner.executor.cancel()
            self._cond.notify_all()
        self._transitioned(WatchState.STOPPED)
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def state(self) -> WatchState:
        with self._cond:
            return self.session.state

    @property
    def runs(self) -> List[Run]:
        with self._cond:
            return list(self.session.runs)

    # ---- events ----

    def notify(self, path: str) -> None:
        """Report a qualifying change (path relative to the watched root)."""
        with self._cond:
            before = self.session.state
            if on_change(self.session, path, time.monotonic(), self.policy):
                # under the lock, so the cancel can only hit the run that saw this change
                self.runner.executor.cancel()
            after = self.session.state
            self._cond.notify_all()
        if after is not before:
            self._transitioned(after)

    # ---- waiting (CLI and tests) ----

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no run is in flight or pending. False on timeout."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self.session.state is WatchState.STOPPED
                or (self.session.state is WatchState.IDLE and not self.session.dirty),
                timeout,
            )

    def wait_for_runs(self, count: int, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.session.runs) >= count, timeout)

    # ---- worker ----

    def _next_run(self) -> Optional[List[str]]:
        with self._cond:
            while True:
                if self.session.state is WatchState.STOPPED:
                    return None
                wait = seconds_until_due(self.session, time.monotonic(), self.debounce)
                if wait is None:
                    self._cond.wait()
                elif wait > 0:
                    self._cond.wait(wait)
                else:
                    break
            paths = on_run_started(self.session)
            # cleared under the lock so a cancel can't land between reset and run
            self.runner.executor.reset()
            return paths

    def _loop(self) -> None:
        while True:
            paths = self._next_run()
            if paths is None:
                return
            self._transitioned(WatchState.RUNNING)
            if self.on_run_start is not None:
                self.on_run_start(self.target, paths)

            run: Optional[Run] = None
            try:
                run = self.runner.run(self.target)
            except LaunchError as e:
                # reported, the session keeps watching
                if self.on_error is not None:
                    self.on_error(e)
            except BaseException as e:
                self.error = e
                with self._cond:
                    on_stop(self.session)
                    self._cond.notify_all()
                return

            with self._cond:
                on_run_finished(self.session, run)
                after = self.session.state
                self._cond.notify_all()
            if run is not None and self.on_run_finish is not None:
                self.on_run_finish(run)
            self._transitioned(after)

    def _transitioned(self, state: WatchState) -> None:
        if self.on_transition is not None:
            self.on_transition(state)


# ---------------------------------------------------------------------
# File system side (watchdog)
# ---------------------------------------------------------------------

def _matches_any(path: str, patterns: Iterable[str]) -> bool:
    for p in patterns:
        if fnmatch(path, p):
            return True
        # "**/x" should also match "x" at the top level
        if p.startswith("**/") and fnmatch(path, p[3:]):
            return True
    return False


class PathFilter:
    """Decides which paths under `root` count as changes."""

    def __init__(
        self,
        root: str | Path,
        paths: Iterable[str] = (),
        ignore: Iterable[str] = DEFAULT_IGNORES,
    ):
        self.root = Path(root).resolve()
        self.paths = list(paths)
        self.ignore = list(ignore)

    def relative(self, path: str | Path) -> str | None:
        """Root-relative path with "/" separators, None if outside root."""
        abs_path = Path(os.path.realpath(path))
        try:
            rel = abs_path.relative_to(self.root)
        except ValueError:
            return None
        return rel.as_posix()

    def match(self, path: str | Path) -> str | None:
        """Return the relative path if it qualifies, else None."""
        rel = self.relative(path)
        if rel is None or rel == ".":
            return None
        if _matches_any(rel, self.ignore) or _matches_any(rel + "/", self.ignore):
            return None
        if self.paths and not _matches_any(rel, self.paths):
            return None
        return rel


_IGNORED_EVENT_TYPES = {"opened", "closed_no_write"}


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, path_filter: PathFilter, callback: Callable[[str], None]):
        super().__init__()
        self.path_filter = path_filter
        self.callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _IGNORED_EVENT_TYPES:
            return
        if event.is_directory and event.event_type == "modified":
            return
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if not raw:
                continue
            rel = self.path_filter.match(os.fsdecode(raw))
            if rel is not None:
                self.callback(rel)


class FileWatcher:
    """Recursive watchdog observer on `path_filter.root` feeding `callback`."""

    def __init__(self, path_filter: PathFilter, callback: Callable[[str], None], observer=None):
        self.path_filter = path_filter
        self.handler = _ChangeHandler(path_filter, callback)
        self._observer = observer if observer is not None else Observer()

    def start(self) -> None:
        self._observer.schedule(self.handler, str(self.path_filter.root), recursive=True)
        self._observer.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._observer.stop()
        self._observer.join(timeout)

from __future__ import annotations

import pytest

from taskline.model import Run, RunStatus
from taskline.watch import (
    QUEUE,
    RESTART,
    WatchSession,
    WatchState,
    on_change,
    on_run_finished,
    on_run_started,
    on_stop,
    seconds_until_due,
)


def test_idle_change_waits_for_debounce_window() -> None:
    session = WatchSession()

    assert on_change(session, "src/main.rs", now=10.0) is False
    assert session.state is WatchState.IDLE
    assert seconds_until_due(session, now=10.1, debounce=0.5) == pytest.approx(0.4)
    assert seconds_until_due(session, now=10.5, debounce=0.5) == 0.0


def test_burst_extends_debounce_window() -> None:
    session = WatchSession()
    for i in range(5):
        on_change(session, f"src/{i}.rs", now=10.0 + i * 0.1)

    assert seconds_until_due(session, now=10.5, debounce=0.5) > 0
    assert seconds_until_due(session, now=11.0, debounce=0.5) == 0.0


def test_nothing_due_without_changes() -> None:
    assert seconds_until_due(WatchSession(), now=0.0, debounce=0.5) is None


def test_run_started_consumes_changes() -> None:
    session = WatchSession()
    on_change(session, "b.rs", now=1.0)
    on_change(session, "a.rs", now=1.0)

    paths = on_run_started(session)

    assert paths == ["a.rs", "b.rs"]
    assert session.state is WatchState.RUNNING
    assert not session.dirty
    assert seconds_until_due(session, now=5.0, debounce=0.5) is None


def test_restart_policy_cancels_in_flight_run_once() -> None:
    session = WatchSession()
    on_change(session, "a.rs", now=1.0)
    on_run_started(session)

    assert on_change(session, "a.rs", now=2.0, policy=RESTART) is True
    assert session.state is WatchState.CANCELLING
    assert on_change(session, "b.rs", now=2.1, policy=RESTART) is False
    # no rerun while the cancelled run is still winding down
    assert seconds_until_due(session, now=9.0, debounce=0.5) is None


def test_queue_policy_marks_pending_rerun() -> None:
    session = WatchSession()
    on_change(session, "a.rs", now=1.0)
    on_run_started(session)

    assert on_change(session, "b.rs", now=2.0, policy=QUEUE) is False
    assert session.state is WatchState.PENDING_RERUN
    assert seconds_until_due(session, now=9.0, debounce=0.5) is None


def test_finished_run_with_pending_change_reruns() -> None:
    session = WatchSession()
    on_change(session, "a.rs", now=1.0)
    on_run_started(session)
    on_change(session, "b.rs", now=2.0, policy=QUEUE)

    on_run_finished(session, Run(target="check").finish(RunStatus.SUCCESS))

    assert session.state is WatchState.PENDING_RERUN
    assert seconds_until_due(session, now=3.0, debounce=0.5) == 0.0
    assert on_run_started(session) == ["b.rs"]


def test_finished_run_without_changes_goes_idle() -> None:
    session = WatchSession()
    on_change(session, "a.rs", now=1.0)
    on_run_started(session)

    on_run_finished(session, Run(target="check").finish(RunStatus.FAILED, failed_step=1, exit_code=1))

    assert session.state is WatchState.IDLE
    assert len(session.runs) == 1


def test_stop_is_terminal() -> None:
    session = WatchSession()
    on_change(session, "a.rs", now=1.0)
    on_run_started(session)

    assert on_stop(session) is True
    assert session.state is WatchState.STOPPED
    assert on_change(session, "b.rs", now=2.0) is False

    on_run_finished(session, Run(target="check").finish(RunStatus.CANCELLED))
    assert session.state is WatchState.STOPPED


def test_stop_while_idle_needs_no_cancel() -> None:
    session = WatchSession()

    assert on_stop(session) is False
    assert session.state is WatchState.STOPPED


def test_queued_change_waits_for_in_flight_run_to_finish() -> None:
    session = WatchSession()
    on_change(session, "a.rs", now=1.0)
    on_run_started(session)
    on_change(session, "b.rs", now=2.0, policy=QUEUE)

    assert session.in_flight
    for now in (2.0, 2.5, 60.0):
        assert seconds_until_due(session, now=now, debounce=0.0) is None

    on_run_finished(session, Run(target="check").finish(RunStatus.SUCCESS))

    assert not session.in_flight
    assert seconds_until_due(session, now=60.0, debounce=0.0) == 0.0


def test_stop_after_finished_run_needs_no_cancel() -> None:
    session = WatchSession()
    on_change(session, "a.rs", now=1.0)
    on_run_started(session)
    on_run_finished(session, Run(target="check").finish(RunStatus.SUCCESS))

    assert on_stop(session) is False

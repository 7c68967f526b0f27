import threading
from datetime import timedelta

import pytest

from gateway_waiter.scheduler import ActionScheduler, RetryPlan

from conftest import RecordingLog


@pytest.fixture
def log():
    return RecordingLog()


def test_drain_runs_work_in_fifo_order(log):
    scheduler = ActionScheduler(log)
    ran = []
    for i in range(5):
        scheduler.run_on_ui_context(lambda i=i: ran.append(i))

    assert scheduler.pending == 5
    assert scheduler.drain() == 5
    assert ran == [0, 1, 2, 3, 4]
    assert scheduler.pending == 0


def test_failing_work_is_logged_and_does_not_stop_the_queue(log):
    scheduler = ActionScheduler(log)
    ran = []

    def boom():
        raise LookupError("window is gone")

    scheduler.run_on_ui_context(boom)
    scheduler.run_on_ui_context(lambda: ran.append("after"))
    scheduler.drain()

    assert ran == ["after"]
    assert len(log.errors) == 1
    assert isinstance(log.errors[0], LookupError)


def test_drain_respects_batch_limit(log):
    scheduler = ActionScheduler(log)
    for _ in range(3):
        scheduler.run_on_ui_context(lambda: None)
    assert scheduler.drain(max_items=2) == 2
    assert scheduler.pending == 1


def test_run_after_sleeps_off_the_calling_thread(log):
    slept = []
    scheduler = ActionScheduler(log, sleep=slept.append)
    done = threading.Event()
    worker_threads = []

    def work():
        worker_threads.append(threading.current_thread())
        done.set()

    t = scheduler.run_after(timedelta(seconds=42), work)
    t.join(timeout=5)

    assert done.is_set()
    assert slept == [42.0]
    assert worker_threads[0] is not threading.current_thread()


def test_run_after_with_zero_delay_does_not_sleep(log):
    slept = []
    scheduler = ActionScheduler(log, sleep=slept.append)
    scheduler.run_after(timedelta(0), lambda: None).join(timeout=5)
    assert slept == []


def test_background_failure_is_logged(log):
    scheduler = ActionScheduler(log)

    def boom():
        raise RuntimeError("background")

    scheduler.run_in_background(boom).join(timeout=5)
    assert [str(e) for e in log.errors] == ["background"]


def test_schedule_queues_resume_action_for_the_ui_thread(log):
    scheduler = ActionScheduler(log, sleep=lambda _s: None)
    ran = []
    plan = RetryPlan(timedelta(seconds=10), lambda: ran.append("resumed"), reason="2FA timeout")

    scheduler.schedule(plan).join(timeout=5)

    # nothing runs until the UI thread drains
    assert ran == []
    assert scheduler.pending == 1
    scheduler.drain()
    assert ran == ["resumed"]
    assert log.contains("Retry scheduled in 10s (2FA timeout)")


def test_retry_never_jumps_ahead_of_earlier_events(log):
    scheduler = ActionScheduler(log, sleep=lambda _s: None)
    ran = []
    scheduler.run_on_ui_context(lambda: ran.append("event"))
    scheduler.schedule(RetryPlan(timedelta(0), lambda: ran.append("retry"))).join(timeout=5)
    scheduler.run_on_ui_context(lambda: ran.append("later event"))

    scheduler.drain()
    assert ran == ["event", "retry", "later event"]


def test_call_on_ui_context_resolves_future(log):
    scheduler = ActionScheduler(log)
    future = scheduler.call_on_ui_context(lambda: "main window")
    assert not future.done()
    scheduler.drain()
    assert future.result(timeout=1) == "main window"


def test_call_on_ui_context_carries_exceptions(log):
    scheduler = ActionScheduler(log)

    def boom():
        raise KeyError("stale")

    future = scheduler.call_on_ui_context(boom)
    scheduler.drain()
    with pytest.raises(KeyError):
        future.result(timeout=1)
    assert log.errors == []

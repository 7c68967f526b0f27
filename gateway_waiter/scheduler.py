"""
ActionScheduler: delayed work on background threads, window work on the UI
thread.

The UI thread owns every widget query and click. Background threads only
sleep or wait, then hand their follow-up back through `run_on_ui_context`.
Window events go through the same FIFO queue, so a retry that wakes up can
never jump ahead of an event that was delivered before it.

Nothing here is cancellable. A retry that fires after its window closed has
to cope with the stale reference; its failure is logged like any other.
"""

import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable

Work = Callable[[], Any]


@dataclass(frozen=True)
class RetryPlan:
    delay: timedelta
    resume_action: Work
    reason: str = ""


class ActionScheduler:
    def __init__(self, log, sleep: Callable[[float], None] = time.sleep) -> None:
        self._log = log
        self._sleep = sleep
        self._ui_queue: "queue.Queue[Work]" = queue.Queue()

    # ─── UI context ──────────────────────────────────────────

    def run_on_ui_context(self, work: Work) -> None:
        self._ui_queue.put(work)

    def call_on_ui_context(self, fn: Callable[[], Any]) -> Future:
        """Run `fn` on the UI thread; the future carries its result."""
        future: Future = Future()

        def call():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn())
            except Exception as e:
                future.set_exception(e)

        self.run_on_ui_context(call)
        return future

    @property
    def pending(self) -> int:
        return self._ui_queue.qsize()

    def drain(self, max_items: int = 200) -> int:
        """
        Run queued UI work in FIFO order. Called from the UI thread only.
        Returns how many items ran.
        """
        ran = 0
        while ran < max_items:
            try:
                work = self._ui_queue.get_nowait()
            except queue.Empty:
                break
            ran += 1
            try:
                work()
            except Exception as e:
                self._log.log_error(e)
        return ran

    # ─── Background ──────────────────────────────────────────

    def run_in_background(self, work: Work, name: str = "gateway-waiter-bg") -> threading.Thread:
        def body():
            try:
                work()
            except Exception as e:
                self._log.log_error(e)

        t = threading.Thread(target=body, name=name, daemon=True)
        t.start()
        return t

    def run_after(self, delay: timedelta, work: Work) -> threading.Thread:
        seconds = max(delay.total_seconds(), 0.0)

        def delayed():
            if seconds > 0:
                self._sleep(seconds)
            work()

        return self.run_in_background(delayed, name="gateway-waiter-delay")

    def schedule(self, plan: RetryPlan) -> threading.Thread:
        """Wait `plan.delay` off the UI thread, then queue the resume action."""
        self._log.log_message(
            f"Retry scheduled in {plan.delay.total_seconds():.0f}s"
            + (f" ({plan.reason})" if plan.reason else "")
        )
        return self.run_after(plan.delay, lambda: self.run_on_ui_context(plan.resume_action))

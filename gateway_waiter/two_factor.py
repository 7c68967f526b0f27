"""
Second Factor Authentication dialog.

The dialog opens when IB pushes a 2FA request to the user's phone and closes
either because the user approved it or because IB gave up (about 3 minutes).
Closing after 150s or more counts as a timeout.
"""

from datetime import timedelta
from typing import Callable

from .events import WindowEvent, WindowEventKind
from .policy import ReconnectionPolicy, RetryStrategy
from .state import MAX_TWO_FACTOR_ATTEMPTS, SessionState
from .widgets import WindowSnapshot

TWO_FACTOR_TITLE = "Second Factor Authentication"
TWO_FACTOR_TIMEOUT = timedelta(seconds=150)


class TwoFactorHandler:
    kinds = frozenset({WindowEventKind.OPENED, WindowEventKind.CLOSED})

    def __init__(
        self,
        state: SessionState,
        policy: ReconnectionPolicy,
        scheduler,
        log,
        relogin: Callable[[], None],
    ) -> None:
        self.state = state
        self.policy = policy
        self.scheduler = scheduler
        self.log = log
        self.relogin = relogin

    def matches(self, snapshot: WindowSnapshot, kind: WindowEventKind) -> bool:
        return snapshot.title_equals(TWO_FACTOR_TITLE)

    def handle(self, event: WindowEvent) -> None:
        if event.kind is WindowEventKind.OPENED:
            self.on_opened(event)
        else:
            self.on_closed(event)

    def on_opened(self, event: WindowEvent) -> None:
        tfa = self.state.two_factor
        tfa.challenge(event.timestamp)
        self.log.log_message(
            f"2FA confirmation attempts: {tfa.attempts}/{MAX_TWO_FACTOR_ATTEMPTS}"
        )

    def on_closed(self, event: WindowEvent) -> None:
        tfa = self.state.two_factor
        elapsed = tfa.elapsed(event.timestamp)
        if elapsed is None:
            self.log.log_message("2FA window closed without a recorded request, ignoring")
            return

        if elapsed < TWO_FACTOR_TIMEOUT:
            self.log.log_message("2FA confirmation success")
            tfa.confirm()
            return

        self.log.log_message("2FA confirmation timeout")
        tfa.time_out()
        if not self.policy.can_retry(tfa.attempts):
            self.log.log_message("2FA maximum attempts reached")
            return

        self.log.log_message("New login attempt with 2FA")
        plan = self.policy.plan(
            RetryStrategy.ESCALATING,
            self.relogin,
            attempts=tfa.attempts,
            reason=f"2FA timeout, attempt {tfa.attempts}",
        )
        self.scheduler.schedule(plan)

"""
When to try logging in again.

Three strategies, plus the weekend override that trumps all of them:
  IMMEDIATE   - right after the error dialog is dismissed
  FIXED       - one minute, after "Too many failed login attempts"
  ESCALATING  - 10s per attempt, after a 2FA timeout
During the weekend server reset nothing can connect, so any retry waits until
Sunday 16:00 New York time.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from .clock import Clock, delay_until, is_within_blackout, next_blackout_end_utc
from .scheduler import RetryPlan, Work
from .state import MAX_TWO_FACTOR_ATTEMPTS

FIXED_RETRY_DELAY = timedelta(seconds=60)
ESCALATING_RETRY_STEP = timedelta(seconds=10)


class RetryStrategy(Enum):
    IMMEDIATE = "immediate"
    FIXED = "fixed"
    ESCALATING = "escalating"


class ReconnectionPolicy:
    def __init__(self, clock: Clock, max_attempts: int = MAX_TWO_FACTOR_ATTEMPTS) -> None:
        self.clock = clock
        self.max_attempts = max_attempts

    def in_blackout(self) -> bool:
        return is_within_blackout(self.clock.now())

    def blackout_end(self) -> datetime:
        return next_blackout_end_utc(self.clock.now())

    def can_retry(self, attempts: int) -> bool:
        return attempts < self.max_attempts

    def delay_for(self, strategy: RetryStrategy, attempts: int = 0) -> timedelta:
        if strategy is RetryStrategy.IMMEDIATE:
            return timedelta(0)
        if strategy is RetryStrategy.FIXED:
            return FIXED_RETRY_DELAY
        return ESCALATING_RETRY_STEP * max(attempts, 1)

    def plan(
        self,
        strategy: RetryStrategy,
        resume: Work,
        attempts: int = 0,
        honor_blackout: bool = False,
        reason: str = "",
    ) -> RetryPlan:
        now = self.clock.now()
        if honor_blackout and is_within_blackout(now):
            delay = delay_until(now, next_blackout_end_utc(now))
            reason = f"{reason}, weekend server reset" if reason else "weekend server reset"
        else:
            delay = self.delay_for(strategy, attempts)
        return RetryPlan(delay=delay, resume_action=resume, reason=reason)

    def plan_blackout_deferral(self, resume: Work, reason: str = "") -> Optional[RetryPlan]:
        """Retry at the end of the blackout, or None when not in one."""
        if not self.in_blackout():
            return None
        return self.plan(RetryStrategy.IMMEDIATE, resume, honor_blackout=True, reason=reason)

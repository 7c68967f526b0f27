"""
SessionState: everything the handlers remember between window events.

All mutations happen on the UI thread, so no locks.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

MAX_TWO_FACTOR_ATTEMPTS = 3


class TwoFactorStatus(Enum):
    IDLE = "idle"
    CHALLENGED = "challenged"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


@dataclass
class TwoFactorState:
    attempts: int = 0
    requested_at: Optional[datetime] = None
    status: TwoFactorStatus = TwoFactorStatus.IDLE

    @property
    def exhausted(self) -> bool:
        return self.attempts >= MAX_TWO_FACTOR_ATTEMPTS

    def challenge(self, when: datetime) -> None:
        self.attempts += 1
        self.requested_at = when
        self.status = TwoFactorStatus.CHALLENGED

    def elapsed(self, when: datetime) -> Optional[timedelta]:
        if self.requested_at is None:
            return None
        return when - self.requested_at

    def confirm(self) -> None:
        self.attempts = 0
        self.status = TwoFactorStatus.CONFIRMED

    def time_out(self) -> None:
        self.status = TwoFactorStatus.TIMED_OUT


@dataclass
class SessionState:
    # ── Forced close after an expired auto-restart token (once per run) ──
    auto_restart_closed_once: bool = False

    # ── 2FA challenge for the current login ──────────────────────────────
    two_factor: TwoFactorState = field(default_factory=TwoFactorState)

    # ── Windows the handlers need to find again later ────────────────────
    main_window: Any = None
    pending_log_export_window: Any = None

    def claim_auto_restart_close(self) -> bool:
        """True the first time only."""
        if self.auto_restart_closed_once:
            return False
        self.auto_restart_closed_once = True
        return True

    def take_pending_log_export_window(self) -> Any:
        window = self.pending_log_export_window
        self.pending_log_export_window = None
        return window

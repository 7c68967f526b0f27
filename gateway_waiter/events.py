from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class WindowEventKind(Enum):
    OPENED = "WINDOW_OPENED"
    ACTIVATED = "WINDOW_ACTIVATED"
    DEACTIVATED = "WINDOW_DEACTIVATED"
    CLOSING = "WINDOW_CLOSING"
    CLOSED = "WINDOW_CLOSED"
    ICONIFIED = "WINDOW_ICONIFIED"
    DEICONIFIED = "WINDOW_DEICONIFIED"
    GAINED_FOCUS = "WINDOW_GAINED_FOCUS"
    LOST_FOCUS = "WINDOW_LOST_FOCUS"
    STATE_CHANGED = "WINDOW_STATE_CHANGED"


HANDLED_KINDS = frozenset({
    WindowEventKind.OPENED,
    WindowEventKind.ACTIVATED,
    WindowEventKind.DEACTIVATED,
    WindowEventKind.CLOSING,
    WindowEventKind.CLOSED,
})


@dataclass(frozen=True)
class WindowEvent:
    kind: WindowEventKind
    window: Any
    timestamp: datetime

    @property
    def is_handled_kind(self) -> bool:
        return self.kind in HANDLED_KINDS

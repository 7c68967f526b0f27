"""
Turns periodic window listings into window lifecycle events, and runs the
UI loop that classifies them.
"""

import threading
import time
from typing import Any, Dict, List, Optional

from .clock import Clock
from .events import WindowEvent, WindowEventKind
from .widgets import WidgetQueryService


class WindowWatcher:
    """
    Diffs the set of top-level windows between polls:
      new window         -> OPENED
      focus moved        -> DEACTIVATED (old window, if still open), ACTIVATED (new)
      window gone        -> CLOSED
    Runs on the UI thread; it queries the widget service directly.
    """

    def __init__(self, widgets: WidgetQueryService, clock: Clock) -> None:
        self.widgets = widgets
        self.clock = clock
        self._known: Dict[Any, Any] = {}
        self._active: Any = None

    @property
    def known_windows(self) -> List[Any]:
        return list(self._known.values())

    def poll(self) -> List[WindowEvent]:
        now = self.clock.now()
        current = self.widgets.top_windows()
        active = self.widgets.active_window()
        events: List[WindowEvent] = []

        seen: Dict[Any, Any] = {}
        for window in current:
            seen[window] = window
            if window not in self._known:
                events.append(WindowEvent(WindowEventKind.OPENED, window, now))

        if active != self._active:
            if self._active is not None and self._active in seen:
                events.append(WindowEvent(WindowEventKind.DEACTIVATED, seen[self._active], now))
            if active is not None and active in seen:
                events.append(WindowEvent(WindowEventKind.ACTIVATED, seen[active], now))
            self._active = active if active in seen else None

        for window, last_seen in self._known.items():
            if window not in seen:
                events.append(WindowEvent(WindowEventKind.CLOSED, last_seen, now))

        # keep the freshest reference so a closed window reports its last title
        self._known = seen
        return events


def run_loop(
    watcher: WindowWatcher,
    chain,
    scheduler,
    log,
    interval_s: float = 0.5,
    continue_on_error: bool = True,
    stop_event: Optional[threading.Event] = None,
    max_iterations: Optional[int] = None,
) -> None:
    """
    The UI thread. Each pass: poll windows, queue one classification per
    event, then run everything queued (events and retries) in FIFO order.
    """
    iterations = 0
    while stop_event is None or not stop_event.is_set():
        try:
            for event in watcher.poll():
                scheduler.run_on_ui_context(lambda e=event: chain.classify(e))
            scheduler.drain()
        except KeyboardInterrupt:
            log.log_message("[EXIT] KeyboardInterrupt received; stopping.")
            break
        except Exception as e:
            log.log_error(e)
            if not continue_on_error:
                raise

        iterations += 1
        if max_iterations is not None and iterations >= max_iterations:
            break
        if stop_event is not None:
            if stop_event.wait(interval_s):
                break
        else:
            time.sleep(interval_s)

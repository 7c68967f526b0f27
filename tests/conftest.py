# tests/conftest.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from gateway_waiter.clock import FixedClock, REFERENCE_TZ
from gateway_waiter.events import WindowEvent, WindowEventKind
from gateway_waiter.handlers import GatewayHandlers, HandlerChain
from gateway_waiter.policy import ReconnectionPolicy
from gateway_waiter.scheduler import ActionScheduler
from gateway_waiter.settings import Settings
from gateway_waiter.state import SessionState
from gateway_waiter.widgets import WidgetQueryService, is_exact_label_match


# -------------------------
# Fake widget tree
# -------------------------

class FakeControl:
    def __init__(self, text: str = "", selected: bool = False, enabled: bool = True, journal=None):
        self.text = text
        self.selected = selected
        self.enabled = enabled
        self.value = ""
        self.clicks = 0
        self.selected_paths: List[Tuple[str, ...]] = []
        self._journal = journal if journal is not None else []

    def click(self):
        self.clicks += 1
        self._journal.append(("click", self.text))

    def is_enabled(self):
        return self.enabled

    def is_selected(self):
        return self.selected

    def set_selected(self, value):
        self.selected = value
        self._journal.append(("select", self.text, value))

    def set_text(self, text):
        self.value = text
        self._journal.append(("set_text", self.text, text))

    def select_path(self, path):
        self.selected_paths.append(tuple(path))
        self._journal.append(("tree", tuple(path)))


class FakeWindow:
    """Hashable by identity, like a real window handle."""

    def __init__(
        self,
        title: Optional[str] = None,
        name: str = "dialog0",
        frame: bool = False,
        text_pane: Optional[str] = None,
        labels: Sequence[str] = (),
        option_pane: Optional[str] = None,
        journal=None,
    ):
        self.title = title
        self.name = name
        self.frame = frame
        self.text_pane = text_pane
        self.labels = list(labels)
        self.option_pane = option_pane
        self.journal = journal if journal is not None else []
        self.buttons: Dict[str, FakeControl] = {}
        self.toggles: Dict[str, FakeControl] = {}
        self.checkboxes: Dict[str, FakeControl] = {}
        self.radios: Dict[str, FakeControl] = {}
        self.text_fields: List[FakeControl] = []
        self.tree: Optional[FakeControl] = None
        self.menu_items: Dict[Tuple[str, ...], FakeControl] = {}

    def _control(self, text, **kwargs):
        return FakeControl(text, journal=self.journal, **kwargs)

    def add_button(self, label, enabled=True):
        self.buttons[label] = self._control(label, enabled=enabled)
        return self.buttons[label]

    def add_toggle(self, label, selected=False):
        self.toggles[label] = self._control(label, selected=selected)
        return self.toggles[label]

    def add_checkbox(self, label, selected=False):
        self.checkboxes[label] = self._control(label, selected=selected)
        return self.checkboxes[label]

    def add_radio(self, label, selected=False):
        self.radios[label] = self._control(label, selected=selected)
        return self.radios[label]

    def add_text_field(self, label=""):
        field = self._control(label or f"field{len(self.text_fields)}")
        self.text_fields.append(field)
        return field

    def add_tree(self):
        self.tree = self._control("tree")
        return self.tree

    def add_menu_item(self, *path):
        self.menu_items[tuple(path)] = self._control(" > ".join(path))
        return self.menu_items[tuple(path)]

    @property
    def clicks(self) -> List[str]:
        return [entry[1] for entry in self.journal if entry[0] == "click"]


class FakeWidgets(WidgetQueryService):
    def __init__(self):
        self.windows: List[FakeWindow] = []
        self.active: Optional[FakeWindow] = None
        self.closed: List[FakeWindow] = []
        self.queries = 0

    def _q(self):
        self.queries += 1

    def top_windows(self):
        self._q()
        return list(self.windows)

    def active_window(self):
        self._q()
        return self.active

    def title(self, window):
        self._q()
        return window.title

    def name(self, window):
        self._q()
        return window.name

    def is_frame(self, window):
        self._q()
        return window.frame

    def close_window(self, window):
        self.closed.append(window)

    def text_pane_text(self, window):
        self._q()
        return window.text_pane

    def label_texts(self, window):
        self._q()
        return list(window.labels)

    def find_label(self, window, text):
        self._q()
        for label in window.labels:
            if text in label:
                return FakeControl(label)
        return None

    def find_option_pane(self, window, text):
        self._q()
        if window.option_pane and text in window.option_pane:
            return window.option_pane
        return None

    def _by_label(self, controls, label):
        for name, control in controls.items():
            if is_exact_label_match(name, label):
                return control
        return None

    def find_button(self, window, label):
        self._q()
        return self._by_label(window.buttons, label)

    def find_toggle_button(self, window, label):
        self._q()
        return self._by_label(window.toggles, label)

    def find_checkbox(self, window, label):
        self._q()
        return self._by_label(window.checkboxes, label)

    def find_radio(self, window, label):
        self._q()
        return self._by_label(window.radios, label)

    def find_text_field(self, window, index):
        self._q()
        if index < len(window.text_fields):
            return window.text_fields[index]
        return None

    def find_tree(self, window):
        self._q()
        return window.tree

    def find_menu_item(self, window, path):
        self._q()
        return window.menu_items.get(tuple(path))

    def list_components(self, window):
        self._q()
        components = [(f"Label {text!r}", text) for text in window.labels]
        components += [(f"Button {name!r}", name) for name in window.buttons]
        return components


# -------------------------
# Log / scheduler fakes
# -------------------------

class RecordingLog:
    def __init__(self):
        self.messages: List[str] = []
        self.errors: List[BaseException] = []
        self.debug_messages: List[str] = []

    def log_message(self, text):
        self.messages.append(text)

    def log_error(self, exc):
        self.errors.append(exc)

    def debug(self, text):
        self.debug_messages.append(text)

    def contains(self, fragment) -> bool:
        return any(fragment in m for m in self.messages)


class RecordingScheduler(ActionScheduler):
    """
    Keeps retry plans instead of sleeping on them, and runs background work
    inline so tests stay single threaded.
    """

    def __init__(self, log):
        super().__init__(log, sleep=lambda _s: None)
        self.plans = []
        self.background = []

    def schedule(self, plan):
        self.plans.append(plan)

    def run_in_background(self, work, name="gateway-waiter-bg"):
        self.background.append(name)
        try:
            work()
        except Exception as e:
            self._log.log_error(e)


# -------------------------
# Builders
# -------------------------

def ny(year, month, day, hour=0, minute=0, second=0) -> datetime:
    """New York wall-clock time as an aware datetime."""
    return datetime(year, month, day, hour, minute, second, tzinfo=REFERENCE_TZ)


# Tuesday, outside any blackout
WEEKDAY_NOON = ny(2024, 5, 7, 12, 0)
# Saturday, inside the blackout
SATURDAY_NOON = ny(2024, 5, 4, 12, 0)


def make_event(kind: WindowEventKind, window: Any, at: Optional[datetime] = None) -> WindowEvent:
    return WindowEvent(kind, window, at or WEEKDAY_NOON.astimezone(timezone.utc))


def make_main_window(journal=None, api_selected=True, with_ssl=True, title="IB Gateway") -> FakeWindow:
    window = FakeWindow(title=title, name="frame0", frame=True, journal=journal)
    window.add_toggle("IB API", selected=api_selected)
    window.add_toggle("Live Trading")
    window.add_toggle("Paper Trading")
    window.add_text_field("username")
    window.add_text_field("password")
    if with_ssl:
        window.add_checkbox("Use SSL")
    window.add_button("Log In")
    window.add_button("Paper Log In")
    return window


@pytest.fixture
def settings():
    return Settings(
        trading_mode="paper",
        username="trader",
        password="s3cret",
        port_number=4002,
    )


@pytest.fixture
def harness(settings):
    clock = FixedClock(WEEKDAY_NOON)
    widgets = FakeWidgets()
    log = RecordingLog()
    scheduler = RecordingScheduler(log)
    state = SessionState()
    policy = ReconnectionPolicy(clock)
    handlers = GatewayHandlers(widgets, settings, state, scheduler, policy, log)
    chain = HandlerChain(widgets, handlers.entries(), log)
    return SimpleNamespace(
        clock=clock,
        widgets=widgets,
        log=log,
        scheduler=scheduler,
        state=state,
        policy=policy,
        handlers=handlers,
        chain=chain,
        settings=settings,
    )


def later(at: datetime, seconds: float) -> datetime:
    return at + timedelta(seconds=seconds)

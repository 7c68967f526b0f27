"""
Widget query contract and the per-event window snapshot.

Handlers never talk to the UI toolkit directly. They go through a
WidgetQueryService, which finds controls inside a window by role and label.
Controls returned by the service expose:

    text           -> str
    click()
    is_enabled()   -> bool
    is_selected()  -> bool        (toggles, checkboxes, radio buttons)
    set_selected(value: bool)     (checkboxes, radio buttons)
    set_text(text: str)           (text fields)
    select_path(path)             (trees)

Every `find_*` method returns None when the control is absent. Absence is a
normal outcome; only some handlers treat it as fatal.
"""

import re
from functools import cached_property
from typing import Any, List, Optional, Sequence, Tuple


class MissingControlError(RuntimeError):
    """A control the handler cannot work without is not in the window."""


def require(control: Any, description: str) -> Any:
    if control is None:
        raise MissingControlError(f"{description} not found")
    return control


def normalize_text(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "").strip().lower())


def normalize_control_label(s: str) -> str:
    """
    Normalize UI labels and strip mnemonic and shortcut decorations.
    Examples:
      "&OK" -> "ok"
      "Log In (Alt+L)" -> "log in"
      "Export Today Logs..." -> "export today logs..."
    """
    name = normalize_text((s or "").replace("&", ""))
    name = re.sub(
        r"\s*\((?:alt|ctrl|shift)\+[^)]*\)\s*$", "", name, flags=re.IGNORECASE
    )
    name = re.sub(r"\s+(?:alt|ctrl|shift)\+.*$", "", name, flags=re.IGNORECASE)
    return name.strip()


def is_exact_label_match(control_name: str, label: str) -> bool:
    """
    Strict match so "OK" never hits "Bypass OK warnings".
    """
    return normalize_control_label(control_name) == normalize_text(label)


def strip_markup(text: Optional[str], replacement: str = " ") -> str:
    """Drop HTML tags the gateway wraps its message text in."""
    return re.sub(r"<.*?>", replacement, text or "").strip()


class WidgetQueryService:
    """
    Base class for widget backends. `window` arguments are whatever the
    backend hands out from `top_windows()`; they must be hashable.
    """

    # ── Windows ──────────────────────────────────────────────────

    def top_windows(self) -> List[Any]:
        raise NotImplementedError

    def active_window(self) -> Any:
        raise NotImplementedError

    def title(self, window: Any) -> Optional[str]:
        raise NotImplementedError

    def name(self, window: Any) -> str:
        raise NotImplementedError

    def is_frame(self, window: Any) -> bool:
        raise NotImplementedError

    def close_window(self, window: Any) -> None:
        raise NotImplementedError

    # ── Text ─────────────────────────────────────────────────────

    def text_pane_text(self, window: Any) -> Optional[str]:
        """Raw text of the first text pane, None if the window has none."""
        raise NotImplementedError

    def label_texts(self, window: Any) -> List[str]:
        raise NotImplementedError

    def find_label(self, window: Any, text: str) -> Any:
        """First label whose text contains `text`."""
        raise NotImplementedError

    def find_option_pane(self, window: Any, text: str) -> Optional[str]:
        """Message of a message-dialog pane containing `text`."""
        raise NotImplementedError

    # ── Controls ─────────────────────────────────────────────────

    def find_button(self, window: Any, label: str) -> Any:
        raise NotImplementedError

    def find_toggle_button(self, window: Any, label: str) -> Any:
        raise NotImplementedError

    def find_checkbox(self, window: Any, label: str) -> Any:
        raise NotImplementedError

    def find_radio(self, window: Any, label: str) -> Any:
        raise NotImplementedError

    def find_text_field(self, window: Any, index: int) -> Any:
        raise NotImplementedError

    def find_tree(self, window: Any) -> Any:
        raise NotImplementedError

    def find_menu_item(self, window: Any, path: Sequence[str]) -> Any:
        raise NotImplementedError

    def list_components(self, window: Any) -> List[Tuple[str, str]]:
        """(component description, text) for every control in the window."""
        raise NotImplementedError


class WindowSnapshot:
    """
    Read-only view of one window for the duration of one event.

    Properties are fetched lazily and kept for the life of the snapshot only;
    a fresh snapshot is built for every event so stale text never leaks into
    the next classification.
    """

    def __init__(self, widgets: WidgetQueryService, window: Any) -> None:
        self.widgets = widgets
        self.window = window

    @cached_property
    def title(self) -> Optional[str]:
        return self.widgets.title(self.window) or None

    @cached_property
    def name(self) -> str:
        return self.widgets.name(self.window) or ""

    @cached_property
    def is_frame(self) -> bool:
        return bool(self.widgets.is_frame(self.window))

    @cached_property
    def text_pane_text(self) -> str:
        """Text-pane content with markup removed, empty if there is no pane."""
        return strip_markup(self.widgets.text_pane_text(self.window))

    @cached_property
    def label_text(self) -> str:
        return " ".join(self.widgets.label_texts(self.window))

    @cached_property
    def free_text(self) -> str:
        """Text pane if the window has one, otherwise all labels."""
        raw = self.widgets.text_pane_text(self.window)
        if raw is not None:
            return strip_markup(raw)
        return self.label_text

    def title_equals(self, *titles: str) -> bool:
        return self.title is not None and self.title in titles

    def title_contains(self, fragment: str) -> bool:
        return self.title is not None and fragment in self.title

    # ── Control accessors ────────────────────────────────────────

    def label(self, text: str) -> Any:
        return self.widgets.find_label(self.window, text)

    def option_pane(self, text: str) -> Optional[str]:
        return self.widgets.find_option_pane(self.window, text)

    def button(self, label: str) -> Any:
        return self.widgets.find_button(self.window, label)

    def toggle_button(self, label: str) -> Any:
        return self.widgets.find_toggle_button(self.window, label)

    def checkbox(self, label: str) -> Any:
        return self.widgets.find_checkbox(self.window, label)

    def radio(self, label: str) -> Any:
        return self.widgets.find_radio(self.window, label)

    def text_field(self, index: int) -> Any:
        return self.widgets.find_text_field(self.window, index)

    def tree(self) -> Any:
        return self.widgets.find_tree(self.window)

    def menu_item(self, *path: str) -> Any:
        return self.widgets.find_menu_item(self.window, path)

    def components(self) -> List[Tuple[str, str]]:
        return self.widgets.list_components(self.window)

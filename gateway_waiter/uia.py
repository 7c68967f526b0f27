"""
pywinauto (UIA backend) implementation of the widget query service.

IB Gateway is a Swing application; with the Java Access Bridge enabled its
controls show up in the UIA tree with the usual control types (Button,
CheckBox, RadioButton, Edit, Tree, Text, Document).
"""

import ctypes
import re
from typing import Any, List, Optional, Sequence, Tuple

import pyautogui
from pywinauto import Desktop, handleprops

from .widgets import WidgetQueryService, is_exact_label_match


def set_dpi_awareness():
    """
    Avoid wrong coordinates on Windows with scaling (125%/150%).
    """
    try:
        ctypes.windll.shcore.SetProcessDpiAwareness(2)  # PROCESS_PER_MONITOR_DPI_AWARE
    except Exception:
        try:
            ctypes.windll.user32.SetProcessDPIAware()
        except Exception:
            pass


def _safe_text(wrapper: Any) -> str:
    try:
        text = wrapper.window_text()
    except Exception:
        return ""
    if text:
        return text
    try:
        return str(wrapper.legacy_properties().get("Value") or "")
    except Exception:
        return ""


class UiaWindow:
    """Top-level window handle plus the last title we saw on it."""

    def __init__(self, wrapper: Any) -> None:
        self.wrapper = wrapper
        self.handle = wrapper.handle
        self.last_title = _safe_text(wrapper)
        try:
            self.class_name = wrapper.class_name() or ""
        except Exception:
            self.class_name = ""

    def is_alive(self) -> bool:
        try:
            return bool(handleprops.iswindow(self.handle))
        except Exception:
            return False

    def __eq__(self, other: object) -> bool:
        return isinstance(other, UiaWindow) and other.handle == self.handle

    def __hash__(self) -> int:
        return hash(self.handle)

    def __repr__(self) -> str:
        return f"UiaWindow(handle={self.handle}, title={self.last_title!r})"


class UiaControl:
    def __init__(self, wrapper: Any, debug_mode: bool = False) -> None:
        self.wrapper = wrapper
        self.debug_mode = debug_mode

    @property
    def text(self) -> str:
        return _safe_text(self.wrapper)

    def click(self) -> None:
        try:
            self.wrapper.invoke()
            return
        except Exception as exc_invoke:
            if self.debug_mode:
                print(f"[DEBUG][UIA] invoke() failed: {exc_invoke}")
        try:
            self.wrapper.click_input()
            return
        except Exception as exc_click:
            if self.debug_mode:
                print(f"[DEBUG][UIA] click_input() failed: {exc_click}")
        r = self.wrapper.rectangle()
        pyautogui.click((r.left + r.right) // 2, (r.top + r.bottom) // 2)

    def is_enabled(self) -> bool:
        try:
            return bool(self.wrapper.is_enabled())
        except Exception:
            return False

    def is_selected(self) -> bool:
        try:
            return self.wrapper.get_toggle_state() == 1
        except Exception:
            pass
        try:
            return bool(self.wrapper.is_selected())
        except Exception:
            return False

    def set_selected(self, value: bool) -> None:
        if self.is_selected() == value:
            return
        try:
            self.wrapper.toggle()
        except Exception:
            # radio buttons only know how to be selected
            self.wrapper.select()

    def set_text(self, text: str) -> None:
        self.wrapper.set_edit_text(text)


class UiaTree(UiaControl):
    def select_path(self, path: Sequence[str]) -> None:
        item = self.wrapper.get_item(list(path))
        item.select()


class UiaMenuItem:
    """Menu path on a window; clicking walks the whole path."""

    def __init__(self, window_wrapper: Any, path: Sequence[str]) -> None:
        self.window_wrapper = window_wrapper
        self.path = tuple(path)

    @property
    def text(self) -> str:
        return self.path[-1]

    def click(self) -> None:
        self.window_wrapper.menu_select("->".join(self.path))


class UiaWidgets(WidgetQueryService):
    def __init__(self, window_class_regex: str = "^SunAwt", debug_mode: bool = False) -> None:
        self.window_class_regex = window_class_regex
        self.debug_mode = debug_mode
        self._class_re = re.compile(window_class_regex)

    # ─── Windows ─────────────────────────────────────────────

    def top_windows(self) -> List[UiaWindow]:
        try:
            wrappers = Desktop(backend="uia").windows(
                class_name_re=self.window_class_regex, visible_only=True
            )
        except Exception as e:
            if self.debug_mode:
                print(f"[DEBUG][UIA] Desktop windows() failed: {e}")
            return []
        return [UiaWindow(w) for w in wrappers]

    def active_window(self) -> Optional[UiaWindow]:
        try:
            wrappers = Desktop(backend="uia").windows(active_only=True)
        except Exception:
            return None
        for w in wrappers:
            window = UiaWindow(w)
            if self._class_re.search(window.class_name):
                return window
        return None

    def title(self, window: UiaWindow) -> Optional[str]:
        # closed windows keep answering with the title they had
        if not window.is_alive():
            return window.last_title or None
        text = _safe_text(window.wrapper)
        window.last_title = text
        return text or None

    def name(self, window: UiaWindow) -> str:
        return window.class_name

    def is_frame(self, window: UiaWindow) -> bool:
        return "frame" in window.class_name.lower()

    def close_window(self, window: UiaWindow) -> None:
        window.wrapper.close()

    # ─── Text ────────────────────────────────────────────────

    def _descendants(self, window: UiaWindow, control_type: Optional[str] = None) -> List[Any]:
        try:
            if control_type is None:
                return window.wrapper.descendants()
            return window.wrapper.descendants(control_type=control_type)
        except Exception as exc:
            if self.debug_mode:
                print(f"[DEBUG][UIA] descendants({control_type}) failed: {exc}")
            return []

    def text_pane_text(self, window: UiaWindow) -> Optional[str]:
        panes = self._descendants(window, "Document")
        if not panes:
            return None
        return _safe_text(panes[0])

    def label_texts(self, window: UiaWindow) -> List[str]:
        texts = (_safe_text(c) for c in self._descendants(window, "Text"))
        return [t for t in texts if t]

    def find_label(self, window: UiaWindow, text: str) -> Optional[UiaControl]:
        for control in self._descendants(window, "Text"):
            if text in _safe_text(control):
                return UiaControl(control, self.debug_mode)
        return None

    def find_option_pane(self, window: UiaWindow, text: str) -> Optional[str]:
        message = "\n".join(self.label_texts(window))
        if text in message:
            return message
        return None

    # ─── Controls ────────────────────────────────────────────

    def _find_by_label(self, window: UiaWindow, control_type: str, label: str) -> Optional[Any]:
        for control in self._descendants(window, control_type):
            name_raw = _safe_text(control)
            if not name_raw:
                continue
            if self.debug_mode:
                print(f"[DEBUG][UIA] type={control_type} text='{name_raw}' looking_for='{label}'")
            if is_exact_label_match(name_raw, label):
                return control
        return None

    def find_button(self, window: UiaWindow, label: str) -> Optional[UiaControl]:
        control = self._find_by_label(window, "Button", label)
        return UiaControl(control, self.debug_mode) if control is not None else None

    def find_toggle_button(self, window: UiaWindow, label: str) -> Optional[UiaControl]:
        # Swing toggle buttons surface as plain UIA buttons with a toggle pattern
        return self.find_button(window, label)

    def find_checkbox(self, window: UiaWindow, label: str) -> Optional[UiaControl]:
        control = self._find_by_label(window, "CheckBox", label)
        return UiaControl(control, self.debug_mode) if control is not None else None

    def find_radio(self, window: UiaWindow, label: str) -> Optional[UiaControl]:
        control = self._find_by_label(window, "RadioButton", label)
        return UiaControl(control, self.debug_mode) if control is not None else None

    def find_text_field(self, window: UiaWindow, index: int) -> Optional[UiaControl]:
        fields = self._descendants(window, "Edit")
        if index >= len(fields):
            return None
        return UiaControl(fields[index], self.debug_mode)

    def find_tree(self, window: UiaWindow) -> Optional[UiaTree]:
        trees = self._descendants(window, "Tree")
        return UiaTree(trees[0], self.debug_mode) if trees else None

    def find_menu_item(self, window: UiaWindow, path: Sequence[str]) -> Optional[UiaMenuItem]:
        if not path:
            return None
        if self._find_by_label(window, "MenuItem", path[0]) is None:
            return None
        return UiaMenuItem(window.wrapper, path)

    def list_components(self, window: UiaWindow) -> List[Tuple[str, str]]:
        components = []
        for control in self._descendants(window):
            try:
                description = f"{control.friendly_class_name()} {control.element_info.name!r}"
            except Exception:
                description = repr(control)
            components.append((description, _safe_text(control)))
        return components

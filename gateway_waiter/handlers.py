"""
Window classifier: an ordered chain of (predicate, action) handlers.

Every handled window event is offered to the handlers in list order. The
first handler whose predicate matches runs its action and, unless the action
says otherwise, owns the event. Order matters: specific dialogs come first,
the catch-all "unknown dialog" handler comes last.
"""

import time
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, FrozenSet, List, Optional

from .events import WindowEvent, WindowEventKind
from .policy import ReconnectionPolicy, RetryStrategy
from .state import SessionState
from .two_factor import TwoFactorHandler
from .widgets import (
    MissingControlError,
    WidgetQueryService,
    WindowSnapshot,
    require,
    strip_markup,
)

MAIN_WINDOW_TITLES = ("IB Gateway", "Interactive Brokers Gateway")

# Dialogs the unknown-dialog fallback must leave alone.
KNOWN_UNHANDLED_TITLES = frozenset({
    "Second Factor Authentication",
    "Security Code Card Authentication",
    "Enter security code",
})

SERVER_DISCONNECTED_TEXT = "Connection to server failed: Server disconnected, please try again"
TOO_MANY_FAILED_LOGINS_TEXT = "Too many failed login attempts"
STARTING_APPLICATION_TITLE = "Starting application..."
PAPER_ACCOUNT_LABEL = "This is not a brokerage account"
UNSUPPORTED_VERSION_TEXT = "is no longer supported"
API_NOT_AVAILABLE_TEXT = "API support is not available for accounts that support free trading."
AUTO_RESTART_ENABLED_TEXT = "You have elected to have your trading platform restart automatically"
AUTO_RESTART_TOKEN_EXPIRED_LABEL = "Soft token=0 received instead of expected permanent"
EXPORT_FINISHED_TEXT = "Finished exporting logs"
AUTO_RESTART_NOW_TEXT = "Would you like to restart now?"
DISPLAY_MARKET_DATA_TEXT = "Bid, Ask and Last Size Display Update"

API_SETTINGS_PATH = ("Configuration", "API", "Settings")
API_PRECAUTIONS_PATH = ("Configuration", "API", "Precautions")
LOCK_AND_EXIT_PATH = ("Configuration", "Lock and Exit")
GATEWAY_LOGS_MENU = ("File", "Gateway Logs")

MAIN_WINDOW_TIMEOUT_SEC = 30.0
MAIN_WINDOW_POLL_SEC = 1.0

OPENED = frozenset({WindowEventKind.OPENED})
CLOSED = frozenset({WindowEventKind.CLOSED})
ACTIVATED = frozenset({WindowEventKind.ACTIVATED})


class Dispatch(Enum):
    HANDLED = "handled"
    UNHANDLED = "unhandled"


Predicate = Callable[[WindowSnapshot, WindowEventKind], bool]
Action = Callable[[WindowSnapshot, WindowEvent], Dispatch]


@dataclass(frozen=True)
class HandlerEntry:
    name: str
    kinds: FrozenSet[WindowEventKind]
    predicate: Predicate
    action: Action

    def matches(self, snapshot: WindowSnapshot, kind: WindowEventKind) -> bool:
        return kind in self.kinds and self.predicate(snapshot, kind)


class HandlerChain:
    def __init__(self, widgets: WidgetQueryService, entries: List[HandlerEntry], log) -> None:
        self.widgets = widgets
        self.entries = list(entries)
        self.log = log

    @property
    def names(self) -> List[str]:
        return [entry.name for entry in self.entries]

    def classify(self, event: WindowEvent) -> Dispatch:
        if not event.is_handled_kind:
            return Dispatch.UNHANDLED

        snapshot = WindowSnapshot(self.widgets, event.window)
        try:
            self.log.log_message(
                f"Window event: [{event.kind.value}] - Window title: [{snapshot.title}]"
                f" - Window name: [{snapshot.name}]"
            )
            for entry in self.entries:
                if not entry.matches(snapshot, event.kind):
                    continue
                self.log.debug(f"Handler matched: {entry.name}")
                if entry.action(snapshot, event) is Dispatch.HANDLED:
                    return Dispatch.HANDLED
        except Exception as e:
            # The throwing handler claimed the event; nothing below it runs.
            self.log.log_error(e)
            return Dispatch.HANDLED
        return Dispatch.UNHANDLED


class GatewayHandlers:
    """
    Actions for every IB Gateway window we know about.

    Runs on the UI thread. Anything that has to wait (retries, searching for
    the main window, closing it) goes through the scheduler.
    """

    def __init__(
        self,
        widgets: WidgetQueryService,
        settings,
        state: SessionState,
        scheduler,
        policy: ReconnectionPolicy,
        log,
        main_window_timeout: float = MAIN_WINDOW_TIMEOUT_SEC,
        main_window_poll: float = MAIN_WINDOW_POLL_SEC,
    ) -> None:
        self.widgets = widgets
        self.settings = settings
        self.state = state
        self.scheduler = scheduler
        self.policy = policy
        self.log = log
        self.main_window_timeout = main_window_timeout
        self.main_window_poll = main_window_poll
        self.two_factor = TwoFactorHandler(state, policy, scheduler, log, self.relogin)

    def entries(self) -> List[HandlerEntry]:
        """Handlers in priority order. The unknown-dialog fallback must stay last."""
        return [
            HandlerEntry("login", OPENED, self.is_login_window, self.handle_login),
            HandlerEntry(
                "login_failed", OPENED,
                lambda s, k: s.title_equals("Login failed"),
                self.handle_login_failed,
            ),
            HandlerEntry(
                "server_disconnected", OPENED,
                lambda s, k: SERVER_DISCONNECTED_TEXT in s.free_text,
                self.handle_server_disconnected,
            ),
            HandlerEntry(
                "too_many_failed_logins", OPENED,
                lambda s, k: TOO_MANY_FAILED_LOGINS_TEXT in s.free_text,
                self.handle_too_many_failed_logins,
            ),
            HandlerEntry(
                "password_notice", OPENED,
                lambda s, k: s.title_contains("Password Notice"),
                self.handle_password_notice,
            ),
            HandlerEntry(
                "initialization", CLOSED,
                lambda s, k: s.title_contains(STARTING_APPLICATION_TITLE),
                self.handle_initialization,
            ),
            HandlerEntry(
                "paper_trading_warning", OPENED,
                lambda s, k: s.label(PAPER_ACCOUNT_LABEL) is not None,
                self.handle_paper_trading_warning,
            ),
            HandlerEntry(
                "unsupported_version", OPENED,
                lambda s, k: s.title is None and s.option_pane(UNSUPPORTED_VERSION_TEXT) is not None,
                self.handle_unsupported_version,
            ),
            HandlerEntry(
                "configuration", OPENED,
                lambda s, k: s.title_contains("Configuration"),
                self.handle_configuration,
            ),
            HandlerEntry(
                "existing_session", OPENED,
                lambda s, k: s.title_equals("Existing session detected"),
                self.press("Exit Application"),
            ),
            HandlerEntry(
                "relogin_required", OPENED,
                lambda s, k: s.title_equals("Re-login is required"),
                self.press("Re-login"),
            ),
            HandlerEntry(
                "financial_advisor_warning", OPENED,
                lambda s, k: s.title_contains("Financial Advisor Warning"),
                self.press("Yes"),
            ),
            HandlerEntry(
                "exit_session_setting", ACTIVATED,
                lambda s, k: s.title_contains("Exit Session Setting"),
                self.handle_exit_session_setting,
            ),
            HandlerEntry(
                "api_not_available", OPENED,
                lambda s, k: s.title is None and API_NOT_AVAILABLE_TEXT in s.text_pane_text,
                self.log_and_press("OK"),
            ),
            HandlerEntry(
                "auto_restart_enabled", OPENED,
                lambda s, k: AUTO_RESTART_ENABLED_TEXT in s.text_pane_text,
                self.log_and_press("OK"),
            ),
            HandlerEntry(
                "auto_restart_token_expired", OPENED,
                lambda s, k: s.label(AUTO_RESTART_TOKEN_EXPIRED_LABEL) is not None,
                self.handle_auto_restart_token_expired,
            ),
            HandlerEntry(
                "view_logs", OPENED,
                lambda s, k: s.title_contains("View Logs"),
                self.handle_view_logs,
            ),
            HandlerEntry(
                "export_filename", OPENED,
                lambda s, k: s.title_contains("Enter export filename"),
                self.press("Open", required=False),
            ),
            HandlerEntry(
                "export_finished", OPENED,
                lambda s, k: s.option_pane(EXPORT_FINISHED_TEXT) is not None,
                self.handle_export_finished,
            ),
            HandlerEntry(
                "auto_restart_now", OPENED,
                lambda s, k: AUTO_RESTART_NOW_TEXT in s.free_text,
                self.log_and_press("No"),
            ),
            HandlerEntry(
                "two_factor", self.two_factor.kinds,
                self.two_factor.matches,
                self.handle_two_factor,
            ),
            HandlerEntry(
                "display_market_data", OPENED,
                lambda s, k: DISPLAY_MARKET_DATA_TEXT in s.free_text,
                self.log_and_press("I understand - display market data"),
            ),
            HandlerEntry(
                "use_ssl_encryption", OPENED,
                lambda s, k: s.title_contains("Use SSL encryption"),
                self.press("Reconnect using SSL", required=False),
            ),
            HandlerEntry("unknown_dialog", OPENED, self.is_unknown_dialog, self.handle_unknown_dialog),
        ]

    # ─── Shared helpers ──────────────────────────────────────

    def click(self, control: Any, label: str) -> None:
        self.log.log_message(f"Click button: [{label}]")
        control.click()

    def click_if_present(self, snapshot: WindowSnapshot, label: str) -> bool:
        button = snapshot.button(label)
        if button is None:
            return False
        self.click(button, label)
        return True

    def click_required(self, snapshot: WindowSnapshot, label: str) -> None:
        button = snapshot.button(label)
        if button is None:
            raise MissingControlError(f"Button not found: [{label}]")
        self.click(button, label)

    def press(self, label: str, required: bool = True) -> Action:
        def action(snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
            if required:
                self.click_required(snapshot, label)
            else:
                self.click_if_present(snapshot, label)
            return Dispatch.HANDLED
        return action

    def log_and_press(self, label: str) -> Action:
        def action(snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
            self.log.log_message(snapshot.free_text)
            self.click_if_present(snapshot, label)
            return Dispatch.HANDLED
        return action

    def set_checkbox(self, control: Any, label: str, selected: bool) -> None:
        if control.is_selected() == selected:
            return
        verb = "Select" if selected else "Unselect"
        self.log.log_message(f"{verb} checkbox: [{label}]")
        control.set_selected(selected)

    def dump_window(self, snapshot: WindowSnapshot) -> None:
        self.log.log_message(
            f"DEBUG: Window title: [{snapshot.title}] - Window name: [{snapshot.name}]"
        )
        for description, text in snapshot.components():
            suffix = f" - Text: [{text}]" if text else ""
            self.log.log_message(f"DEBUG: - Component: [{description}]{suffix}")

    def export_gateway_logs(self) -> None:
        main = self.state.main_window
        if main is None:
            self.log.log_message("Main window not recorded, skipping log export.")
            return
        item = self.widgets.find_menu_item(main, GATEWAY_LOGS_MENU)
        if item is None:
            self.log.log_message("Gateway Logs menu not found.")
            return
        self.log.log_message(f"Click menu item: [{' > '.join(GATEWAY_LOGS_MENU)}]")
        item.click()

    # ─── Login ───────────────────────────────────────────────

    def is_login_window(self, snapshot: WindowSnapshot, kind: Optional[WindowEventKind] = None) -> bool:
        return snapshot.title_equals(*MAIN_WINDOW_TITLES) and snapshot.is_frame

    def handle_login(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.state.main_window = snapshot.window
        self.login(snapshot)
        return Dispatch.HANDLED

    def login(self, snapshot: WindowSnapshot) -> None:
        """
        Fill in and submit the main login window.

        Every required control is looked up before anything is touched, so a
        changed layout fails without leaving the form half filled.
        """
        self.log.log_message(
            f"Main window - Window title: [{snapshot.title}] - Window name: [{snapshot.name}]"
        )
        live = self.settings.is_live

        api_toggle = snapshot.toggle_button("IB API")
        if api_toggle is None:
            self.log.log_message("Unexpected window found")
            self.dump_window(snapshot)
            raise MissingControlError("IB API toggle button not found")

        mode_label = "Live Trading" if live else "Paper Trading"
        mode_toggle = require(snapshot.toggle_button(mode_label), "Trading Mode toggle button")
        user_field = require(snapshot.text_field(0), "IB API user name text field")
        password_field = require(snapshot.text_field(1), "IB API password text field")
        login_label = "Log In" if live else "Paper Log In"
        login_button = require(snapshot.button(login_label), "Login button")
        ssl_checkbox = snapshot.checkbox("Use SSL")

        if not api_toggle.is_selected():
            self.click(api_toggle, "IB API")
        if not mode_toggle.is_selected():
            self.click(mode_toggle, mode_label)
        self.log.log_message(f"Trading mode: {self.settings.trading_mode}")

        user_field.set_text(self.settings.username)
        password_field.set_text(self.settings.password)

        if ssl_checkbox is None:
            self.log.log_message("Use SSL checkbox not found")
        else:
            self.set_checkbox(ssl_checkbox, "Use SSL", True)

        self.click(login_button, login_label)

    def relogin(self) -> None:
        """Run the login handler again against the recorded main window."""
        main = self.state.main_window
        if main is None:
            self.log.log_message("Main window not recorded, cannot log in again")
            return
        self.login(WindowSnapshot(self.widgets, main))

    def dismiss_and_relogin(self, window: Any) -> None:
        button = self.widgets.find_button(window, "OK")
        if button is not None:
            self.click(button, "OK")
        self.relogin()

    def handle_login_failed(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.log.log_message(f"Login failed: {snapshot.text_pane_text}")
        self.click_if_present(snapshot, "OK")
        return Dispatch.HANDLED

    def handle_password_notice(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.log.log_message(f"Password notice: {snapshot.text_pane_text}")
        self.click_if_present(snapshot, "OK")
        return Dispatch.HANDLED

    # ─── Reconnection ────────────────────────────────────────

    def handle_server_disconnected(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.log.log_message(snapshot.free_text)
        window = snapshot.window
        plan = self.policy.plan_blackout_deferral(
            lambda: self.dismiss_and_relogin(window), reason="server disconnected"
        )
        if plan is not None:
            self.log.log_message(
                "Server disconnection detected during weekend server reset times, "
                "delaying the reconnection attempt."
            )
            self.scheduler.schedule(plan)
        return Dispatch.HANDLED

    def handle_too_many_failed_logins(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.log.log_message(snapshot.free_text)
        window = snapshot.window
        self.log.log_message("Too many failed login attempts, delaying the reconnection attempt.")
        plan = self.policy.plan(
            RetryStrategy.FIXED,
            lambda: self.dismiss_and_relogin(window),
            honor_blackout=True,
            reason="too many failed logins",
        )
        self.scheduler.schedule(plan)
        return Dispatch.HANDLED

    # ─── Main window search ──────────────────────────────────

    def handle_initialization(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.log.log_message("Initialization finished, waiting for the main window")
        self.scheduler.run_in_background(self.wait_for_main_window, name="gateway-waiter-main-window")
        # The main window's own OPENED event does the login.
        return Dispatch.UNHANDLED

    def find_main_window(self) -> Any:
        """UI thread: record and return the first visible login frame."""
        for window in self.widgets.top_windows():
            if self.is_login_window(WindowSnapshot(self.widgets, window)):
                self.state.main_window = window
                return window
        return None

    def wait_for_main_window(self) -> Any:
        """Background thread: poll the UI thread for the main window, bounded."""
        deadline = time.monotonic() + self.main_window_timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            future = self.scheduler.call_on_ui_context(self.find_main_window)
            try:
                window = future.result(timeout=remaining)
            except FutureTimeout:
                break
            if window is not None:
                self.log.log_message("Main window found")
                return window
            time.sleep(min(self.main_window_poll, max(deadline - time.monotonic(), 0)))
        self.log.log_message(
            f"Timed out waiting for the main window ({self.main_window_timeout:.0f}s)"
        )
        return None

    # ─── Dialogs with a required button ──────────────────────

    def handle_paper_trading_warning(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.click_required(snapshot, "I understand and accept")
        return Dispatch.HANDLED

    def handle_unsupported_version(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        message = snapshot.option_pane(UNSUPPORTED_VERSION_TEXT) or ""
        message = strip_markup(message, replacement="").replace("\n", " ")
        self.log.log_message(f"IB Gateway message: [{message}]")
        self.click_required(snapshot, "OK")
        return Dispatch.HANDLED

    def handle_exit_session_setting(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.log.log_message(f"Content: {snapshot.label_text}")
        self.click_required(snapshot, "OK")
        return Dispatch.HANDLED

    # ─── Configuration ───────────────────────────────────────

    def handle_configuration(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        tree = require(snapshot.tree(), "Configuration tree")

        if self.settings.export_logs:
            self.export_gateway_logs()

        tree.select_path(API_SETTINGS_PATH)

        read_only = require(snapshot.checkbox("Read-Only API"), "Read-Only API check box")
        self.set_checkbox(read_only, "Read-Only API", False)

        port_field = require(snapshot.text_field(0), "API Port Number text field")
        port_text = str(self.settings.port_number)
        self.log.log_message(f"Set API port textbox value: [{port_text}]")
        port_field.set_text(port_text)

        api_log_label = "Create API message log file"
        api_log = require(snapshot.checkbox(api_log_label), f"'{api_log_label}' check box")
        self.set_checkbox(api_log, api_log_label, True)

        # only on builds with financial advisor support
        groups_label = "Use Account Groups with Allocation Methods"
        groups = snapshot.checkbox(groups_label)
        if groups is None:
            self.log.debug(f"Checkbox not present: [{groups_label}]")
        else:
            self.set_checkbox(groups, groups_label, False)

        tree.select_path(API_PRECAUTIONS_PATH)

        bypass_label = "Bypass Order Precautions for API Orders"
        bypass = require(snapshot.checkbox(bypass_label), "Bypass Order Precautions check box")
        self.set_checkbox(bypass, bypass_label, True)

        tree.select_path(LOCK_AND_EXIT_PATH)

        auto_restart = require(snapshot.radio("Auto restart"), "Auto restart radio button")
        if not auto_restart.is_selected():
            self.log.log_message("Select radio button: [Auto restart]")
            auto_restart.set_selected(True)

        self.click_required(snapshot, "OK")
        self.log.log_message("Configuration settings updated.")
        return Dispatch.HANDLED

    # ─── Auto restart ────────────────────────────────────────

    def handle_auto_restart_token_expired(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.click_required(snapshot, "OK")
        # once per run
        if self.state.claim_auto_restart_close():
            self.log.log_message("Auto-restart token expired, closing IB Gateway")
            self.close_main_window()
        else:
            self.log.log_message("Auto-restart token expired again, main window already closed once")
        return Dispatch.HANDLED

    def close_main_window(self) -> None:
        def request_close():
            self.log.log_message("Close main window thread started")
            self.scheduler.run_on_ui_context(self._close_main_window_now)
            self.log.log_message("Close main window request queued")

        self.scheduler.run_in_background(request_close, name="gateway-waiter-close")

    def _close_main_window_now(self) -> None:
        main = self.state.main_window
        if main is None:
            self.log.log_message("Main window not recorded, nothing to close")
            return
        snapshot = WindowSnapshot(self.widgets, main)
        self.log.log_message(
            f"Closing main window - Window title: [{snapshot.title}] - Window name: [{snapshot.name}]"
        )
        self.widgets.close_window(main)

    # ─── Log export dialogs ──────────────────────────────────

    def handle_view_logs(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        export_label = "Export Today Logs..."
        export = snapshot.button(export_label)
        if export is not None and export.is_enabled():
            self.state.pending_log_export_window = snapshot.window
            self.click(export, export_label)
        else:
            self.click_if_present(snapshot, "Cancel")
        return Dispatch.HANDLED

    def handle_export_finished(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.click_if_present(snapshot, "OK")
        parent = self.state.take_pending_log_export_window()
        if parent is not None:
            cancel = self.widgets.find_button(parent, "Cancel")
            if cancel is not None:
                self.click(cancel, "Cancel")
        return Dispatch.HANDLED

    def handle_two_factor(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        self.two_factor.handle(event)
        return Dispatch.HANDLED

    # ─── Fallback ────────────────────────────────────────────

    def is_unknown_dialog(self, snapshot: WindowSnapshot, kind: WindowEventKind) -> bool:
        if "dialog" not in snapshot.name.lower():
            return False
        if snapshot.title in KNOWN_UNHANDLED_TITLES:
            return False
        return bool(snapshot.free_text)

    def handle_unknown_dialog(self, snapshot: WindowSnapshot, event: WindowEvent) -> Dispatch:
        if self.settings.export_logs:
            self.export_gateway_logs()
        self.dump_window(snapshot)
        self.log.log_message(f"Unknown message window detected: {snapshot.free_text}")
        self.click_if_present(snapshot, "OK")
        return Dispatch.HANDLED


def build_chain(
    widgets: WidgetQueryService,
    settings,
    state: SessionState,
    scheduler,
    policy: ReconnectionPolicy,
    log,
    **kwargs,
) -> HandlerChain:
    handlers = GatewayHandlers(widgets, settings, state, scheduler, policy, log, **kwargs)
    return HandlerChain(widgets, handlers.entries(), log)

import argparse
from pathlib import Path

from . import __version__
from .clock import SystemClock
from .handlers import build_chain
from .log import GatewayLog
from .policy import ReconnectionPolicy
from .scheduler import ActionScheduler
from .settings import load_settings
from .state import SessionState
from .uia import UiaWidgets, set_dpi_awareness
from .watcher import WindowWatcher, run_loop


def main() -> None:
    set_dpi_awareness()

    default_cfg = Path.cwd() / "config.yaml"
    ap = argparse.ArgumentParser(
        description="Gateway Waiter: log in to IB Gateway and click through its dialogs."
    )
    ap.add_argument(
        "--config",
        default=str(default_cfg),
        help=f"Path to config.yaml (default: {default_cfg})",
    )
    args = ap.parse_args()

    settings = load_settings(Path(args.config))
    log = GatewayLog(log_path=settings.log_file, verbose=settings.verbose)

    log.log_message(
        f"[START] Gateway Waiter v{__version__} — trading mode {settings.trading_mode}, "
        f"API port {settings.port_number}, watching windows of class "
        f"'{settings.window_class_regex}'; polling every {settings.interval_seconds}s."
    )
    if settings.verbose:
        log.log_message(f"  config = {Path(args.config).resolve()}")
        log.log_message(f"  export_logs = {settings.export_logs}")
        log.log_message(f"  debug_mode = {settings.debug_mode}")
        log.log_message(f"  continue_on_error = {settings.continue_on_error}")
        log.log_message(f"  log_file = {settings.log_file}")

    clock = SystemClock()
    widgets = UiaWidgets(settings.window_class_regex, debug_mode=settings.debug_mode)
    scheduler = ActionScheduler(log)
    state = SessionState()
    policy = ReconnectionPolicy(clock)
    chain = build_chain(widgets, settings, state, scheduler, policy, log)
    watcher = WindowWatcher(widgets, clock)

    run_loop(
        watcher,
        chain,
        scheduler,
        log,
        interval_s=settings.interval_seconds,
        continue_on_error=settings.continue_on_error,
    )


if __name__ == "__main__":
    main()

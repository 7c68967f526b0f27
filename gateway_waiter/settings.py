import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Set

import yaml

TRADING_MODES = ("live", "paper")
DEFAULT_WINDOW_CLASS_REGEX = "^SunAwt"

ENV_PREFIX = "GATEWAY_WAITER_"


@dataclass
class Settings:
    trading_mode: str = "paper"
    username: str = ""
    password: str = ""
    port_number: int = 4002
    export_logs: bool = False
    interval_seconds: float = 0.5
    verbose: bool = False
    debug_mode: bool = False
    continue_on_error: bool = True
    log_file: Optional[Path] = None
    window_class_regex: str = DEFAULT_WINDOW_CLASS_REGEX

    @property
    def is_live(self) -> bool:
        return self.trading_mode == "live"


def load_yaml(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_bool_env(var_name: str) -> Optional[bool]:
    raw = os.environ.get(var_name)
    if raw is None:
        return None
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "on"}:
        return True
    if val in {"0", "false", "no", "off"}:
        return False
    return None


_KNOWN_TOP_KEYS: Set[str] = {
    "trading_mode",
    "username",
    "password",
    "port_number",
    "export_logs",
    "interval_seconds",
    "verbose",
    "debug_mode",
    "continue_on_error",
    "log_file",
    "uia",
}
_KNOWN_UIA_KEYS: Set[str] = {"window_class_regex"}


def _warn_unknown_config_keys(cfg: dict) -> None:
    """Warn about unrecognized config keys (catches typos like 'port_numbr')."""
    for key in cfg:
        if key not in _KNOWN_TOP_KEYS:
            print(f"[WARN] Unknown config key '{key}' — will be ignored.")
    for key in cfg.get("uia") or {}:
        if key not in _KNOWN_UIA_KEYS:
            print(f"[WARN] Unknown config key 'uia.{key}' — will be ignored.")


def _parse_port(raw: Any) -> int:
    try:
        port = int(str(raw).strip())
    except (TypeError, ValueError):
        raise SystemExit(f"Config 'port_number' must be an integer, got '{raw}'.")
    if not 0 < port < 65536:
        raise SystemExit(f"Config 'port_number' out of range: {port}")
    return port


def settings_from_dict(cfg: Dict[str, Any], base_dir: Optional[Path] = None) -> Settings:
    """Build Settings from a parsed config dict, then apply env overrides."""
    _warn_unknown_config_keys(cfg)

    trading_mode = str(cfg.get("trading_mode", "paper")).strip().lower()
    username = str(cfg.get("username") or "")
    password = str(cfg.get("password") or "")
    port_raw: Any = cfg.get("port_number", 4002)
    verbose = bool(cfg.get("verbose", False))
    debug_mode = bool(cfg.get("debug_mode", False))

    env_mode = os.environ.get(ENV_PREFIX + "TRADING_MODE")
    if env_mode:
        trading_mode = env_mode.strip().lower()
    username = os.environ.get(ENV_PREFIX + "USERNAME", username)
    password = os.environ.get(ENV_PREFIX + "PASSWORD", password)
    port_raw = os.environ.get(ENV_PREFIX + "PORT", port_raw)
    env_verbose = get_bool_env(ENV_PREFIX + "VERBOSE")
    env_debug_mode = get_bool_env(ENV_PREFIX + "DEBUG_MODE")
    if env_verbose is not None:
        verbose = env_verbose
    if env_debug_mode is not None:
        debug_mode = env_debug_mode

    if trading_mode not in TRADING_MODES:
        raise SystemExit(
            f"Invalid trading_mode '{trading_mode}'. Valid options: {list(TRADING_MODES)}"
        )

    log_file = None
    raw_log_file = str(cfg.get("log_file") or "").strip()
    if raw_log_file:
        log_file = Path(raw_log_file)
        if not log_file.is_absolute() and base_dir is not None:
            log_file = base_dir / log_file

    window_class_regex = (
        (cfg.get("uia") or {}).get("window_class_regex", DEFAULT_WINDOW_CLASS_REGEX) or ""
    ).strip()
    if not window_class_regex:
        raise SystemExit("Config 'uia.window_class_regex' must be non-empty when provided.")

    return Settings(
        trading_mode=trading_mode,
        username=username,
        password=password,
        port_number=_parse_port(port_raw),
        export_logs=bool(cfg.get("export_logs", False)),
        interval_seconds=float(cfg.get("interval_seconds", 0.5)),
        verbose=verbose,
        debug_mode=debug_mode,
        continue_on_error=bool(cfg.get("continue_on_error", True)),
        log_file=log_file,
        window_class_regex=window_class_regex,
    )


def load_settings(path: Path) -> Settings:
    cfg_path = path.resolve()
    if not cfg_path.exists():
        raise SystemExit(f"Config file not found: {cfg_path}")
    cfg = load_yaml(cfg_path)
    if not isinstance(cfg, dict):
        raise SystemExit(f"Config file must hold a mapping: {cfg_path}")
    return settings_from_dict(cfg, base_dir=cfg_path.parent)

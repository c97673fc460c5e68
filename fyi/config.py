"""Configuration loading for fyi.

Loads settings from TOML config files with sensible defaults.
Search order: explicit --config path → ~/.config/fyi/config.toml → defaults only.

The weather API key is not part of the TOML config; it comes from the
WEATHER_API_KEY environment variable, optionally populated from a .env file.
"""

from __future__ import annotations

import logging
import os
import sys
import tomllib
from pathlib import Path
from typing import Any, NoReturn

from dotenv import find_dotenv, load_dotenv

from fyi.model import Capabilities, KeyBinding, KeyMap

logger = logging.getLogger(__name__)

API_KEY_VAR = "WEATHER_API_KEY"

DEFAULT_CONFIG: dict[str, Any] = {
    "fast_interval": 1.0,
    "slow_interval": 60.0,
    "cpu_sample_window": 0.25,
    "header": "FYI",
    "features": {"metrics": True, "weather": True},
    "weather": {
        "base_url": "http://api.weatherapi.com/v1/",
        "location": "auto:ip",
        "timeout": 10.0,
    },
    "keys": {
        "quit": {"keys": ["q", "ctrl+c"], "help": "q", "label": "quit"},
    },
}

_DEFAULT_PATH = Path.home() / ".config" / "fyi" / "config.toml"

# key path -> smallest accepted value; "strict" means the bound is exclusive
_NUMERIC_KEYS: dict[tuple[str, ...], tuple[float, bool]] = {
    ("fast_interval",): (0.0, True),
    ("slow_interval",): (0.0, True),
    ("cpu_sample_window",): (0.0, False),
    ("weather", "timeout"): (0.0, True),
}


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Overlay user values on defaults. Tables merge one level deep."""
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = current | value
        merged[key] = value
    return merged


def _fail(message: str) -> NoReturn:
    print(f"fyi: {message}", file=sys.stderr)
    raise SystemExit(1)


def _read_toml(path: Path) -> dict[str, Any]:
    """Parse one TOML file. Raises tomllib.TOMLDecodeError on bad syntax."""
    with path.open("rb") as fh:
        return tomllib.load(fh)


def _check_numbers(config: dict[str, Any], source: Path | None) -> dict[str, Any]:
    """Coerce the numeric settings to float, exiting on a bad value."""
    where = f" in {source}" if source is not None else ""
    checked = dict(config)
    for keys, (lower, strict) in _NUMERIC_KEYS.items():
        table = checked
        for key in keys[:-1]:
            if not isinstance(table.get(key), dict):
                _fail(f"[{key}] must be a table{where}")
            table[key] = dict(table[key])
            table = table[key]
        name = ".".join(keys)
        value = table[keys[-1]]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            _fail(f"{name} must be a number{where}, got {value!r}")
        if value < lower or (strict and value == lower):
            op = ">" if strict else ">="
            _fail(f"{name} must be {op} {lower:g}{where}, got {value!r}")
        table[keys[-1]] = float(value)
    return checked


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration, merging user TOML over defaults.

    An explicit ``path`` (from --config) must exist and parse; otherwise the
    default location is tried and silently skipped when absent.

    Raises:
        SystemExit: On a missing or unparsable explicit file, or on a
            numeric setting that is not a positive number.
    """
    source = path
    if path is not None:
        if not path.is_file():
            _fail(f"config file not found: {path}")
        try:
            overlay = _read_toml(path)
        except tomllib.TOMLDecodeError as e:
            print(f"fyi: invalid TOML in {path}: {e}", file=sys.stderr)
            raise SystemExit(1) from e
    elif _DEFAULT_PATH.is_file():
        source = _DEFAULT_PATH
        try:
            overlay = _read_toml(_DEFAULT_PATH)
        except tomllib.TOMLDecodeError:
            print(
                f"fyi: warning: ignoring invalid TOML in {_DEFAULT_PATH}",
                file=sys.stderr,
            )
            overlay = {}
    else:
        overlay = {}

    return _check_numbers(_deep_merge(DEFAULT_CONFIG, overlay), source)


def load_api_key(env_file: Path | None = None) -> str | None:
    """Return the weather API key, or None when it isn't configured.

    Without ``env_file`` the nearest .env at or above the working directory
    is used. Variables already set in the process environment win.
    """
    load_dotenv(env_file if env_file is not None else find_dotenv(usecwd=True))
    key = os.environ.get(API_KEY_VAR, "").strip()
    if not key:
        logger.warning("%s is not set; weather is unavailable", API_KEY_VAR)
        return None
    return key


def build_keymap(config: dict[str, Any]) -> KeyMap:
    """Build the immutable key-binding set from the ``[keys]`` table."""
    bindings: list[KeyBinding] = []
    for action, cfg in config.get("keys", DEFAULT_CONFIG["keys"]).items():
        keys = tuple(str(k) for k in cfg.get("keys", []))
        if not keys:
            continue
        bindings.append(
            KeyBinding(
                keys=keys,
                action=action,
                help_key=str(cfg.get("help", keys[0])),
                help_label=str(cfg.get("label", action)),
            )
        )
    return KeyMap(tuple(bindings))


def build_capabilities(config: dict[str, Any]) -> Capabilities:
    features = config.get("features", DEFAULT_CONFIG["features"])
    return Capabilities(
        metrics=bool(features.get("metrics", True)),
        weather=bool(features.get("weather", True)),
    )


def dump_default_config() -> str:
    """Return the default configuration as a TOML string."""
    lines = [
        "# fyi configuration",
        "# Place this file at ~/.config/fyi/config.toml",
        f"# The weather API key is read from ${API_KEY_VAR} (or a .env file)",
        "",
        f"fast_interval = {DEFAULT_CONFIG['fast_interval']}",
        f"slow_interval = {DEFAULT_CONFIG['slow_interval']}",
        f"cpu_sample_window = {DEFAULT_CONFIG['cpu_sample_window']}",
        f'header = "{DEFAULT_CONFIG["header"]}"',
        "",
        "[features]",
    ]
    for name, enabled in DEFAULT_CONFIG["features"].items():
        lines.append(f"{name} = {'true' if enabled else 'false'}")
    lines.append("")

    weather = DEFAULT_CONFIG["weather"]
    lines.append("[weather]")
    lines.append(f'base_url = "{weather["base_url"]}"')
    lines.append(f'location = "{weather["location"]}"')
    lines.append(f"timeout = {weather['timeout']}")
    lines.append("")

    for action, cfg in DEFAULT_CONFIG["keys"].items():
        keys = ", ".join(f'"{k}"' for k in cfg["keys"])
        lines.append(f"[keys.{action}]")
        lines.append(f"keys = [{keys}]")
        lines.append(f'help = "{cfg["help"]}"')
        lines.append(f'label = "{cfg["label"]}"')
        lines.append("")

    return "\n".join(lines) + "\n"

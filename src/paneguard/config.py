"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import string
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

import tomli_w

from paneguard.errors import ConfigError

CONFIG_DIR = Path.home() / ".config" / "paneguard"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOCAL_CONFIG_FILE = Path("paneguard.toml")
ENV_PREFIX = "PANEGUARD_"


@dataclass
class ExecConfig:
    max_capture_lines: int = 200
    poll_interval: float = 0.5
    send_delay: float = 0.5
    timeout: float = 300.0
    exec_confirm: bool = True
    send_keys_confirm: bool = True
    paste_multiline_confirm: bool = True


@dataclass
class PolicyConfig:
    whitelist_patterns: list[str] = field(default_factory=list)
    blacklist_patterns: list[str] = field(default_factory=list)


@dataclass
class StorageConfig:
    enabled: bool = True
    db_path: str = "~/.config/paneguard/history.db"


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = "~/.config/paneguard/paneguard.log"


@dataclass
class AppConfig:
    exec: ExecConfig = field(default_factory=ExecConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _to_int(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValueError(f"not an integer: {raw!r}")
    return int(raw)


def _to_float(raw: Any) -> float:
    if isinstance(raw, bool):
        raise ValueError(f"not a number: {raw!r}")
    return float(raw)


def _to_list(raw: Any) -> list[str]:
    if isinstance(raw, list):
        return [str(v) for v in raw]
    return [v.strip() for v in str(raw).split(",") if v.strip()]


def _to_str(raw: Any) -> str:
    if isinstance(raw, (list, dict)):
        raise ValueError(f"not a string: {raw!r}")
    return str(raw)


@dataclass(frozen=True)
class ConfigKey:
    """One settable configuration key with explicit accessors."""

    name: str
    kind: str
    coerce: Callable[[Any], Any]
    get: Callable[[AppConfig], Any]
    set: Callable[[AppConfig, Any], None]

    @property
    def env_var(self) -> str:
        return ENV_PREFIX + self.name.replace(".", "_").upper()

    def convert(self, raw: Any) -> Any:
        try:
            return self.coerce(raw)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid {self.kind} value for {self.name}: {raw!r}") from e


def _key(name: str, kind: str, coerce: Callable[[Any], Any], get: Callable[[AppConfig], Any], setter: Callable[[AppConfig, Any], None]) -> tuple[str, ConfigKey]:
    return name, ConfigKey(name, kind, coerce, get, setter)


def _set_max_capture_lines(c: AppConfig, v: int) -> None:
    c.exec.max_capture_lines = v


def _set_poll_interval(c: AppConfig, v: float) -> None:
    c.exec.poll_interval = v


def _set_send_delay(c: AppConfig, v: float) -> None:
    c.exec.send_delay = v


def _set_timeout(c: AppConfig, v: float) -> None:
    c.exec.timeout = v


def _set_exec_confirm(c: AppConfig, v: bool) -> None:
    c.exec.exec_confirm = v


def _set_send_keys_confirm(c: AppConfig, v: bool) -> None:
    c.exec.send_keys_confirm = v


def _set_paste_multiline_confirm(c: AppConfig, v: bool) -> None:
    c.exec.paste_multiline_confirm = v


def _set_whitelist(c: AppConfig, v: list[str]) -> None:
    c.policy.whitelist_patterns = v


def _set_blacklist(c: AppConfig, v: list[str]) -> None:
    c.policy.blacklist_patterns = v


def _set_storage_enabled(c: AppConfig, v: bool) -> None:
    c.storage.enabled = v


def _set_db_path(c: AppConfig, v: str) -> None:
    c.storage.db_path = v


def _set_log_level(c: AppConfig, v: str) -> None:
    c.logging.level = v


def _set_log_file(c: AppConfig, v: str) -> None:
    c.logging.file = v


CONFIG_KEYS: dict[str, ConfigKey] = dict(
    [
        _key("exec.max_capture_lines", "int", _to_int, lambda c: c.exec.max_capture_lines, _set_max_capture_lines),
        _key("exec.poll_interval", "float", _to_float, lambda c: c.exec.poll_interval, _set_poll_interval),
        _key("exec.send_delay", "float", _to_float, lambda c: c.exec.send_delay, _set_send_delay),
        _key("exec.timeout", "float", _to_float, lambda c: c.exec.timeout, _set_timeout),
        _key("exec.exec_confirm", "bool", _to_bool, lambda c: c.exec.exec_confirm, _set_exec_confirm),
        _key("exec.send_keys_confirm", "bool", _to_bool, lambda c: c.exec.send_keys_confirm, _set_send_keys_confirm),
        _key(
            "exec.paste_multiline_confirm",
            "bool",
            _to_bool,
            lambda c: c.exec.paste_multiline_confirm,
            _set_paste_multiline_confirm,
        ),
        _key("policy.whitelist_patterns", "list", _to_list, lambda c: c.policy.whitelist_patterns, _set_whitelist),
        _key("policy.blacklist_patterns", "list", _to_list, lambda c: c.policy.blacklist_patterns, _set_blacklist),
        _key("storage.enabled", "bool", _to_bool, lambda c: c.storage.enabled, _set_storage_enabled),
        _key("storage.db_path", "str", _to_str, lambda c: c.storage.db_path, _set_db_path),
        _key("logging.level", "str", _to_str, lambda c: c.logging.level, _set_log_level),
        _key("logging.file", "str", _to_str, lambda c: c.logging.file, _set_log_file),
    ]
)


def get_key(name: str) -> ConfigKey:
    """Look up a dotted configuration key."""
    try:
        return CONFIG_KEYS[name]
    except KeyError:
        raise ConfigError(f"Unknown config key: {name}") from None


def set_value(config: AppConfig, name: str, raw: Any) -> Any:
    """Coerce *raw* for key *name* and store it. Returns the typed value."""
    key = get_key(name)
    value = key.convert(raw)
    key.set(config, value)
    return value


def ensure_config_dir(config_dir: Path = CONFIG_DIR) -> None:
    """Create config directory with secure permissions."""
    config_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(config_dir, 0o700)


def _expand(value: str, environ: Mapping[str, str]) -> str:
    return string.Template(value).safe_substitute(environ)


def load_config(
    search_paths: Sequence[Path] = (),
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Build configuration from the first existing file in *search_paths*,
    overlaid with ``PANEGUARD_*`` variables from *environ*.

    String values have ``$VAR`` references expanded against *environ*.
    """
    environ = environ if environ is not None else {}
    config = AppConfig()

    for path in search_paths:
        path = Path(path).expanduser()
        if not path.is_file():
            continue
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to read config file {path}: {e}") from e
        _apply_file(config, data, path)
        break

    # Environment variable overrides
    for key in CONFIG_KEYS.values():
        if (raw := environ.get(key.env_var)) is not None and raw != "":
            key.set(config, key.convert(raw))

    # Regex lists are left alone: "$" is meaningful there.
    for key in CONFIG_KEYS.values():
        value = key.get(config)
        if isinstance(value, str):
            key.set(config, _expand(value, environ))

    return config


def _apply_file(config: AppConfig, data: dict[str, Any], path: Path) -> None:
    for section, values in data.items():
        if not isinstance(values, dict):
            raise ConfigError(f"{path}: top-level key '{section}' must be a table")
        for attr, raw in values.items():
            name = f"{section}.{attr}"
            if name not in CONFIG_KEYS:
                raise ConfigError(f"{path}: unknown config key '{name}'")
            set_value(config, name, raw)


def config_to_dict(config: AppConfig) -> dict[str, dict[str, Any]]:
    """Nested mapping of every key, suitable for TOML output."""
    data: dict[str, dict[str, Any]] = {}
    for name, key in CONFIG_KEYS.items():
        section, attr = name.split(".", 1)
        data.setdefault(section, {})[attr] = key.get(config)
    return data


def save_config(config: AppConfig, path: Path = CONFIG_FILE) -> None:
    """Save configuration to TOML file."""
    if path.parent == CONFIG_DIR:
        ensure_config_dir()
    else:
        path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "wb") as f:
        tomli_w.dump(config_to_dict(config), f)

    os.chmod(path, 0o600)

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigError
from .logging_utils import LogConfig

CONFIG_FILENAME = "telehole.yml"
DEFAULT_BOT_TOKEN_ENV = "TELEHOLE_BOT_TOKEN"
DEFAULT_CHANNEL_ENV = "TELEHOLE_CHANNEL"
DEFAULT_AUTH_SECRET_ENV = "TELEHOLE_AUTH_SECRET"
DEFAULT_STATE_FILE = ".telehole/state.sqlite3"
DEFAULT_POLL_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class HoleBotConfig:
    root: Path
    bot_token_env: str
    channel_env: str
    auth_secret_env: str
    bot_token: str
    channel: str
    auth_secret: Optional[str]
    state_file: Path
    poll_timeout_seconds: int
    log: LogConfig = field(default_factory=LogConfig)

    @classmethod
    def from_raw(cls, *, root: Path, raw: dict[str, Any]) -> "HoleBotConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        bot_token_env = _parse_env_name(cfg, "bot_token_env", DEFAULT_BOT_TOKEN_ENV)
        channel_env = _parse_env_name(cfg, "channel_env", DEFAULT_CHANNEL_ENV)
        auth_secret_env = _parse_env_name(
            cfg, "auth_secret_env", DEFAULT_AUTH_SECRET_ENV
        )

        bot_token = (os.environ.get(bot_token_env) or "").strip()
        if not bot_token:
            raise ConfigError(f"{bot_token_env} is not set")
        channel = (os.environ.get(channel_env) or "").strip().lstrip("@")
        if not channel:
            raise ConfigError(f"{channel_env} is not set")
        auth_secret = (os.environ.get(auth_secret_env) or "").strip() or None

        state_file_value = cfg.get("state_file", DEFAULT_STATE_FILE)
        if not isinstance(state_file_value, str) or not state_file_value.strip():
            raise ConfigError("state_file must be a string path")

        poll_timeout = _parse_positive_int_or_default(
            cfg.get("poll_timeout_seconds"),
            default=DEFAULT_POLL_TIMEOUT_SECONDS,
            key="poll_timeout_seconds",
        )

        return cls(
            root=root,
            bot_token_env=bot_token_env,
            channel_env=channel_env,
            auth_secret_env=auth_secret_env,
            bot_token=bot_token,
            channel=channel,
            auth_secret=auth_secret,
            state_file=(root / state_file_value).resolve(),
            poll_timeout_seconds=poll_timeout,
            log=_parse_log_config(cfg.get("log"), root=root),
        )


@dataclass(frozen=True)
class HoleSurfaces:
    """Platform identities the bot operates on, resolved once at startup."""

    channel_id: int
    channel_username: str
    discussion_id: int

    def hole_link(self, public_id: int) -> str:
        return f"https://t.me/{self.channel_username}/{public_id}"


def load_config(root: Path, config_path: Optional[Path] = None) -> HoleBotConfig:
    load_dotenv(root / ".env", override=False)
    path = config_path if config_path is not None else root / CONFIG_FILENAME
    if config_path is not None and not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    return HoleBotConfig.from_raw(root=root, raw=_load_yaml_dict(path))


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _parse_env_name(cfg: dict[str, Any], key: str, default: str) -> str:
    value = str(cfg.get(key, default)).strip()
    if not value:
        raise ConfigError(f"{key} must be non-empty")
    return value


def _parse_log_config(value: Any, *, root: Path) -> LogConfig:
    if value is None:
        return LogConfig()
    if not isinstance(value, dict):
        raise ConfigError("log must be a mapping")
    path_value = value.get("path")
    if path_value is not None and (
        not isinstance(path_value, str) or not path_value.strip()
    ):
        raise ConfigError("log.path must be a string path")
    level = str(value.get("level", "INFO")).strip().upper() or "INFO"
    defaults = LogConfig()
    return LogConfig(
        path=(root / path_value).resolve() if path_value else None,
        level=level,
        max_bytes=_parse_positive_int_or_default(
            value.get("max_bytes"), default=defaults.max_bytes, key="log.max_bytes"
        ),
        backup_count=_parse_positive_int_or_default(
            value.get("backup_count"),
            default=defaults.backup_count,
            key="log.backup_count",
        ),
    )


def _parse_positive_int_or_default(value: Any, *, default: int, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        return default
    return parsed

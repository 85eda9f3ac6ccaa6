import json
import os
from dataclasses import dataclass, field
from pathlib import Path

import structlog

logger = structlog.get_logger()


def _xdg_dir(env_var: "str", fallback: "str") -> "Path":
    value = os.environ.get(env_var)
    return Path(value) if value else Path.home() / fallback


def default_data_dir() -> "Path":
    return _xdg_dir("XDG_DATA_HOME", ".local/share") / "opencode"


def default_cache_dir() -> "Path":
    return _xdg_dir("XDG_CACHE_HOME", ".cache") / "opencode-usage"


def config_file_path() -> "Path":
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / "opencode-usage" / "config.json"


def codex_auth_path() -> "Path":
    return Path.home() / ".codex" / "auth.json"


def load_codex_auth_token(path: "Path | None" = None) -> "str":
    """
    returns tokens.access_token from the codex CLI login file,
    or an empty string when there is none.
    """
    path = path or codex_auth_path()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return ""
    except (OSError, ValueError) as e:
        logger.warning("codex_auth_unreadable", path=str(path), error=str(e))
        return ""

    tokens = data.get("tokens") if isinstance(data, dict) else None
    token = tokens.get("access_token") if isinstance(tokens, dict) else None
    return token if isinstance(token, str) else ""


def load_config_file(path: "Path | None" = None) -> "dict":
    """
    reads the JSON config file. A missing or invalid file
    yields an empty dict.
    """
    path = path or config_file_path()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.warning("config_file_unreadable", path=str(path), error=str(e))
        return {}
    return data if isinstance(data, dict) else {}


@dataclass
class Config:
    # directory holding opencode.db or storage/message/
    data_dir: "Path" = field(default_factory=default_data_dir)
    provider_filter: "str" = ""
    # provider id assumed for records that carry none
    default_provider: "str" = "unknown"
    # number of past days shown besides today
    days: "int" = 7

    codex_token: "str" = ""
    anthropic_cache: "Path" = field(
        default_factory=lambda: default_cache_dir() / "anthropic-usage.json"
    )
    antigravity_cache: "Path" = field(
        default_factory=lambda: default_cache_dir() / "antigravity-quota.json"
    )

    # refresh intervals in seconds
    log_interval: "float" = 10
    anthropic_interval: "float" = 60
    antigravity_interval: "float" = 60
    codex_interval: "float" = 300
    codex_timeout: "float" = 10.0
    tick_seconds: "float" = 1.0

    wide_cols: "int" = 140
    # used when the output reports no size
    fallback_cols: "int" = 120

    # listen_address: format ":9186" or "0.0.0.0:9186",
    # empty disables the metrics endpoint
    listen_address: "str" = ""
    log_level: "str" = "warning"
    log_file: "str" = ""

    @classmethod
    def from_env(cls, config_path: "Path | None" = None) -> "Config":
        file_config = load_config_file(config_path)
        codex_token = os.environ.get("USAGEWATCH_CODEX_TOKEN") or str(
            file_config.get("codexToken") or ""
        )
        if not codex_token:
            codex_token = load_codex_auth_token()
        config = cls(
            codex_token=codex_token,
            provider_filter=os.environ.get("USAGEWATCH_PROVIDER", ""),
        )
        if os.environ.get("USAGEWATCH_DATA_DIR"):
            config.data_dir = Path(os.environ["USAGEWATCH_DATA_DIR"])
        return config

    @property
    def codex_enabled(self) -> "bool":
        return bool(self.codex_token)

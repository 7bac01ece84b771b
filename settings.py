"""
Startup configuration for the auto-reply agent.

Values resolve from an optional project-local ``config.py`` module first, then
environment variables, then the defaults below.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

try:
    import config  # type: ignore
except ImportError:  # pragma: no cover - optional configuration module
    config = None  # type: ignore


DEFAULT_LABEL_NAME = "AUTOREPLIED"
DEFAULT_EXCLUDED_CATEGORIES: Tuple[str, ...] = ("CATEGORY_PROMOTIONS", "CATEGORY_SOCIAL")
DEFAULT_REPLY_BODY = "Thank you for your email. I am excited to look forward to it!"
DEFAULT_MIN_SLEEP_SECONDS = 45
DEFAULT_MAX_SLEEP_SECONDS = 120
DEFAULT_MAX_RESULTS = 100
DEFAULT_HTTP_TIMEOUT = 60


class SettingsError(ValueError):
    """Raised when startup configuration is missing or inconsistent."""


def _config_value(attr: str, env_name: str, default=None):
    if config and hasattr(config, attr):
        value = getattr(config, attr)
        if value not in (None, "", []):
            return value
    env_value = os.getenv(env_name)
    if env_value not in (None, ""):
        return env_value
    return default


def _true(value: Any) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _int_value(attr: str, env_name: str, default: int) -> int:
    raw = _config_value(attr, env_name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"{env_name} must be an integer, got {raw!r}.") from exc


def _list_value(attr: str, env_name: str, default: Sequence[str]) -> Tuple[str, ...]:
    raw = _config_value(attr, env_name, default)
    if isinstance(raw, str):
        items = raw.split(",")
    else:
        items = list(raw)
    return tuple(item.strip() for item in items if item and item.strip())


@dataclass(frozen=True)
class AgentSettings:
    user_id: str = "me"
    label_name: str = DEFAULT_LABEL_NAME
    excluded_categories: Tuple[str, ...] = DEFAULT_EXCLUDED_CATEGORIES
    reply_body: str = DEFAULT_REPLY_BODY
    min_sleep_seconds: int = DEFAULT_MIN_SLEEP_SECONDS
    max_sleep_seconds: int = DEFAULT_MAX_SLEEP_SECONDS
    max_results: int = DEFAULT_MAX_RESULTS
    # Credentials
    oauth_client_secret: str = "credentials.json"
    oauth_token_file: str = "token.json"
    service_account_file: Optional[str] = None
    delegated_user: Optional[str] = None
    allow_oauth_flow: bool = False
    http_timeout: int = DEFAULT_HTTP_TIMEOUT
    # Operator alerts
    telegram_token: Optional[str] = field(default=None, repr=False)
    telegram_chat_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.label_name.strip():
            raise SettingsError("Label name must be a non-empty string.")
        if self.min_sleep_seconds < 0 or self.max_sleep_seconds < 0:
            raise SettingsError("Sleep bounds must be non-negative.")
        if self.min_sleep_seconds > self.max_sleep_seconds:
            raise SettingsError(
                f"Minimum sleep ({self.min_sleep_seconds}s) exceeds maximum sleep ({self.max_sleep_seconds}s)."
            )
        if self.max_results <= 0:
            raise SettingsError("max_results must be a positive integer.")
        if not self.reply_body.strip():
            raise SettingsError("Reply body must be a non-empty string.")

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_token and self.telegram_chat_id)


def load_settings() -> AgentSettings:
    telegram_token = _config_value("TELEGRAM_BOT_TOKEN", "TELEGRAM_BOT_TOKEN")
    telegram_chat_id = _config_value("TELEGRAM_CHAT_ID", "TELEGRAM_CHAT_ID")
    # Global kill-switch for alerts
    if _true(os.getenv("DISABLE_TELEGRAM", "")):
        telegram_token = None
        telegram_chat_id = None

    return AgentSettings(
        user_id=str(_config_value("AUTOREPLY_USER_ID", "AUTOREPLY_USER_ID", "me")).strip(),
        label_name=str(_config_value("AUTOREPLY_LABEL", "AUTOREPLY_LABEL", DEFAULT_LABEL_NAME)).strip(),
        excluded_categories=_list_value(
            "AUTOREPLY_EXCLUDED_CATEGORIES",
            "AUTOREPLY_EXCLUDED_CATEGORIES",
            DEFAULT_EXCLUDED_CATEGORIES,
        ),
        reply_body=str(_config_value("AUTOREPLY_BODY", "AUTOREPLY_BODY", DEFAULT_REPLY_BODY)),
        min_sleep_seconds=_int_value("AUTOREPLY_MIN_SLEEP", "AUTOREPLY_MIN_SLEEP", DEFAULT_MIN_SLEEP_SECONDS),
        max_sleep_seconds=_int_value("AUTOREPLY_MAX_SLEEP", "AUTOREPLY_MAX_SLEEP", DEFAULT_MAX_SLEEP_SECONDS),
        max_results=_int_value("AUTOREPLY_MAX_RESULTS", "AUTOREPLY_MAX_RESULTS", DEFAULT_MAX_RESULTS),
        oauth_client_secret=str(_config_value("GMAIL_CLIENT_SECRET_PATH", "GMAIL_OAUTH_CLIENT_SECRET", "credentials.json")),
        oauth_token_file=str(_config_value("GMAIL_OAUTH_TOKEN_FILE", "GMAIL_OAUTH_TOKEN_FILE", "token.json")),
        service_account_file=_config_value("GMAIL_SERVICE_ACCOUNT_FILE", "GMAIL_SERVICE_ACCOUNT_FILE"),
        delegated_user=_config_value("GMAIL_DELEGATED_USER", "GMAIL_DELEGATED_USER"),
        allow_oauth_flow=_true(_config_value("GMAIL_ALLOW_OAUTH_FLOW", "GMAIL_ALLOW_OAUTH_FLOW", "")),
        http_timeout=_int_value("GMAIL_HTTP_TIMEOUT", "GMAIL_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        telegram_token=telegram_token,
        telegram_chat_id=telegram_chat_id,
    )

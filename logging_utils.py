from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional


LOG_ENV_VAR = "AUTOREPLY_ACTIVE_LOG"
LOG_DIR_ENV_VAR = "AUTOREPLY_LOG_DIR"
LOG_LEVEL_ENV_VAR = "AUTOREPLY_LOG_LEVEL"
LOG_TO_FILE_ENV_VAR = "AUTOREPLY_LOG_TO_FILE"

# Chatty on INFO; every API request gets logged otherwise.
_NOISY_LOGGERS = ("googleapiclient.discovery_cache", "googleapiclient.discovery", "urllib3")


def _running_in_container() -> bool:
    markers = (
        "K_SERVICE",
        "CLOUD_RUN_JOB",
        "KUBERNETES_SERVICE_HOST",
    )
    return any(os.getenv(marker) for marker in markers)


def _file_logging_enabled() -> bool:
    value = os.getenv(LOG_TO_FILE_ENV_VAR)
    if value is None:
        return not _running_in_container()
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> Optional[Path]:
    """
    Ensure logging is configured for the current process.

    Console output is always enabled. A timestamped log file is written under
    AUTOREPLY_LOG_DIR (default: logs/) unless running in a container or
    AUTOREPLY_LOG_TO_FILE is falsy. Returns the active log file path, if any.
    """
    if getattr(configure_logging, "_configured", False):
        return getattr(configure_logging, "_log_path", None)

    log_path: Optional[Path] = None
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if _file_logging_enabled():
        log_dir = Path(os.getenv(LOG_DIR_ENV_VAR, "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = log_dir / f"autoreply_{timestamp}.log"
        handlers.append(logging.FileHandler(log_path, mode="w", encoding="utf-8"))

    logging.basicConfig(
        level=_resolve_level(os.getenv(LOG_LEVEL_ENV_VAR, "INFO")),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=handlers,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_path:
        os.environ[LOG_ENV_VAR] = str(log_path)

    configure_logging._configured = True  # type: ignore[attr-defined]
    configure_logging._log_path = log_path  # type: ignore[attr-defined]
    return log_path

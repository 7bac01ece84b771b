"""
Run the Gmail auto-reply agent until the process is stopped.

Usage:
    python3 autoreply.py
"""
from __future__ import annotations

import logging

from gmail_service import CredentialsUnavailableError, build_gmail_service_from_settings
from logging_utils import configure_logging
from mailbox_client import MailboxClient, TransientFetchError
from poll_scheduler import PollScheduler
from reply_engine import ReplyDecisionEngine
from responder import Responder
from settings import AgentSettings, SettingsError, load_settings
from state_marker import StateMarker
from telegram_notify import TelegramNotifier

logger = logging.getLogger("autoreply")


def build_scheduler(settings: AgentSettings, service) -> PollScheduler:
    client = MailboxClient(service, settings.user_id, max_results=settings.max_results)
    state_marker = StateMarker(client)

    try:
        from_address = client.profile_address() or None
    except TransientFetchError as exc:
        # Gmail fills in From for the authenticated user when the header is absent.
        logger.warning("Could not resolve mailbox address, sending without a From header: %s", exc)
        from_address = None

    on_mark_failure = None
    if settings.telegram_enabled:
        on_mark_failure = TelegramNotifier(
            settings.telegram_token,  # type: ignore[arg-type]
            settings.telegram_chat_id,  # type: ignore[arg-type]
            label_name=settings.label_name,
        )

    engine = ReplyDecisionEngine(client, state_marker, excluded_categories=settings.excluded_categories)
    responder = Responder(
        client,
        state_marker,
        reply_body=settings.reply_body,
        from_address=from_address,
        on_mark_failure=on_mark_failure,
    )
    return PollScheduler(
        client,
        state_marker,
        engine,
        responder,
        label_name=settings.label_name,
        min_sleep_seconds=settings.min_sleep_seconds,
        max_sleep_seconds=settings.max_sleep_seconds,
    )


def main() -> int:
    log_path = configure_logging()
    if log_path:
        print(f"Logging to {log_path}")

    try:
        settings = load_settings()
    except SettingsError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    try:
        service = build_gmail_service_from_settings(settings)
    except CredentialsUnavailableError as exc:
        logger.error("%s", exc)
        return 1

    scheduler = build_scheduler(settings, service)
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("Stopped by user.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""
Operator alerts over the Telegram Bot API.

Only one event is worth waking someone for: a reply went out but the handled
label could not be written, so the thread may be answered again.
"""
import logging
from typing import TYPE_CHECKING, Optional

import requests

if TYPE_CHECKING:
    from responder import ReplyResult  # pragma: no cover

TELEGRAM_SEND_URL = "https://api.telegram.org/bot{token}/sendMessage"
DEFAULT_TIMEOUT = 10

logger = logging.getLogger(__name__)


class TelegramNotifier:
    def __init__(
        self,
        token: str,
        chat_id: str,
        *,
        label_name: str,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token or not chat_id:
            raise ValueError("Telegram token and chat id are both required.")
        self.token = token
        self.chat_id = chat_id
        self.label_name = label_name
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, text: str) -> dict:
        if not text.strip():
            raise ValueError("Message text must be a non-empty string.")
        try:
            response = self.session.post(
                TELEGRAM_SEND_URL.format(token=self.token),
                json={"chat_id": self.chat_id, "text": text},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise RuntimeError(f"Failed to send Telegram message: {exc}") from exc
        except ValueError as exc:
            raise RuntimeError(f"Telegram returned a non-JSON response: {exc}") from exc
        if not data.get("ok"):
            raise RuntimeError(f"Telegram API returned an error: {data.get('description', 'Unknown error')}")
        return data

    def describe_mark_failure(self, result: "ReplyResult") -> str:
        return (
            f"Auto-reply sent to {result.recipient or 'unknown sender'} but the '{self.label_name}' label "
            f"could not be applied to thread {result.thread_id}. The next cycle may reply a second time.\n"
            f"Error: {result.error or 'unknown'}"
        )

    def __call__(self, result: "ReplyResult") -> None:
        """Used as the responder's on_mark_failure hook."""
        self.send(self.describe_mark_failure(result))
        logger.info("Sent mark-failure alert for thread %s.", result.thread_id)

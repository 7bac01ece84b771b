from __future__ import annotations

import email.utils as email_utils
import logging
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from mailbox_client import MailboxClient, MailboxError, Message
from reply_engine import WorkItem
from state_marker import MarkWriteFailure, StateMarker

logger = logging.getLogger(__name__)


ReplyState = Literal[
    "pending",
    "reply_sent",
    "marked",
    "skipped",
    "mark_failed",
    "malformed",
    "send_failed",
    "failed",
]


class MalformedMessage(ValueError):
    """The message has no usable From header to reply to."""


@dataclass
class ReplyResult:
    message_id: str
    thread_id: str
    state: ReplyState = "pending"
    recipient: Optional[str] = None
    error: Optional[str] = None


def extract_recipient(message: Message) -> str:
    if not message.sender:
        raise MalformedMessage(f"Message {message.id} has no From header.")
    _, address = email_utils.parseaddr(message.sender)
    if not address or "@" not in address:
        raise MalformedMessage(f"Message {message.id} has an unusable From header: {message.sender!r}")
    return address


class Responder:
    """
    Sends the auto-reply for one work item and records it with the marker.

    Send always completes before the mark is attempted, and the mark is
    attempted exactly once per successful send.
    """

    def __init__(
        self,
        client: MailboxClient,
        state_marker: StateMarker,
        *,
        reply_body: str,
        from_address: Optional[str] = None,
        on_mark_failure: Optional[Callable[[ReplyResult], None]] = None,
    ) -> None:
        self.client = client
        self.state_marker = state_marker
        self.reply_body = reply_body
        self.from_address = from_address
        self.on_mark_failure = on_mark_failure

    def respond(self, item: WorkItem, label_id: str) -> ReplyResult:
        message = item.message
        result = ReplyResult(message_id=message.id, thread_id=message.thread_id)

        if item.already_handled:
            logger.info(
                "Already replied to the email from %s (thread %s). Skipping.",
                message.sender or "unknown sender",
                message.thread_id,
            )
            result.state = "skipped"
            return result

        try:
            recipient = extract_recipient(message)
        except MalformedMessage as exc:
            logger.warning("Skipping message %s: %s", message.id, exc)
            result.state = "malformed"
            result.error = str(exc)
            return result
        result.recipient = recipient

        try:
            self.client.send_reply(
                message.thread_id,
                recipient,
                self.from_address,
                self.reply_body,
                subject=message.subject,
                in_reply_to=message.message_id_header,
                references=message.references,
            )
        except MailboxError as exc:
            logger.error("Error sending auto-reply to %s (thread %s): %s", recipient, message.thread_id, exc)
            result.state = "send_failed"
            result.error = str(exc)
            return result
        result.state = "reply_sent"
        logger.info("Auto-reply sent to %s (thread %s).", recipient, message.thread_id)

        try:
            self.state_marker.mark_handled(message.thread_id, label_id)
        except MarkWriteFailure as exc:
            logger.error(
                "Reply sent to %s but marking thread %s failed; the next cycle may reply again: %s",
                recipient,
                message.thread_id,
                exc.cause,
            )
            result.state = "mark_failed"
            result.error = str(exc)
            self._notify_mark_failure(result)
            return result

        result.state = "marked"
        return result

    def _notify_mark_failure(self, result: ReplyResult) -> None:
        if self.on_mark_failure is None:
            return
        try:
            self.on_mark_failure(result)
        except Exception as exc:  # alerts are best-effort
            logger.warning("Mark-failure alert for thread %s could not be delivered: %s", result.thread_id, exc)

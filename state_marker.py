"""
Label-backed "already replied" state.

The Gmail label is the only durable record of which threads were answered;
nothing is cached between calls.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from mailbox_client import LabelAlreadyExists, MailboxClient, MailboxError

logger = logging.getLogger(__name__)


class MarkWriteFailure(RuntimeError):
    """The reply went out but the handled marker could not be applied."""

    def __init__(self, thread_id: str, cause: Exception) -> None:
        super().__init__(f"Failed to mark thread {thread_id} as handled: {cause}")
        self.thread_id = thread_id
        self.cause = cause


def _find_label_id(labels: List[Dict[str, Any]], name: str) -> Optional[str]:
    wanted = name.lower()
    for item in labels:
        label_name = item.get("name")
        if label_name and label_name.lower() == wanted and item.get("id"):
            return item["id"]
    return None


class StateMarker:
    def __init__(self, client: MailboxClient) -> None:
        self.client = client

    def ensure_label(self, name: str) -> str:
        """
        Return the id of label `name`, creating it if needed.

        Safe to call concurrently from several processes: losing the creation
        race is treated as success and resolves to the winner's label id.
        """
        normalized = name.strip()
        if not normalized:
            raise ValueError("Label name must be a non-empty string.")
        existing = _find_label_id(self.client.list_labels(), normalized)
        if existing:
            return existing
        try:
            label_id = self.client.create_label(normalized)
        except LabelAlreadyExists:
            logger.info("Label '%s' was created concurrently; reusing it.", normalized)
            existing = _find_label_id(self.client.list_labels(), normalized)
            if existing:
                return existing
            raise
        logger.info("Created label '%s' (%s).", normalized, label_id)
        return label_id

    def is_handled(self, thread_id: str, label_id: str) -> bool:
        # Any failed check answers False
        try:
            return label_id in self.client.get_thread_label_ids(thread_id)
        except Exception as exc:
            logger.warning("Could not check handled state for thread %s, assuming unhandled: %s", thread_id, exc)
            return False

    def mark_handled(self, thread_id: str, label_id: str) -> None:
        try:
            self.client.apply_label(thread_id, label_id, add=True, remove_inbox=True)
        except MailboxError as exc:
            raise MarkWriteFailure(thread_id, exc) from exc

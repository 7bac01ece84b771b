from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AbstractSet, Iterable, Iterator, Optional

from mailbox_client import MailboxClient, Message, MessageNotFound, MessageRef, TransientFetchError
from state_marker import StateMarker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkItem:
    message: Message
    already_handled: bool


def is_excluded(message: Message, excluded_categories: AbstractSet[str]) -> bool:
    return not message.label_ids.isdisjoint(excluded_categories)


class ReplyDecisionEngine:
    """
    Turns the unread listing into work items for the responder.

    Items are produced lazily and in listing order. The handled check for an
    item runs only when the item is requested, so the previous item's
    send-then-mark has already finished and a second unread message in the
    same thread sees the fresh marker.
    """

    def __init__(
        self,
        client: MailboxClient,
        state_marker: StateMarker,
        *,
        excluded_categories: Iterable[str],
    ) -> None:
        self.client = client
        self.state_marker = state_marker
        self.excluded_categories = frozenset(excluded_categories)

    def work_items(self, refs: Iterable[MessageRef], label_id: str) -> Iterator[WorkItem]:
        for ref in refs:
            try:
                item = self._prepare(ref, label_id)
            except Exception:
                logger.exception("Unexpected error preparing message %s; skipping it this cycle.", ref.id)
                continue
            if item is not None:
                yield item

    def _prepare(self, ref: MessageRef, label_id: str) -> Optional[WorkItem]:
        try:
            message = self.client.get_message(ref.id)
        except MessageNotFound:
            logger.debug("Message %s disappeared before it could be fetched; skipping.", ref.id)
            return None
        except TransientFetchError as exc:
            logger.warning("Could not fetch message %s this cycle: %s", ref.id, exc)
            return None
        if not message.unread:
            logger.debug("Message %s was read after listing; skipping.", message.id)
            return None
        if is_excluded(message, self.excluded_categories):
            logger.debug("Message %s is in an excluded category; skipping.", message.id)
            return None
        handled = self.state_marker.is_handled(message.thread_id, label_id)
        return WorkItem(message=message, already_handled=handled)

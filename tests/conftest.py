"""Shared fixtures: an in-memory mailbox that behaves like MailboxClient."""

import threading
from collections import defaultdict
from typing import Dict, List, Optional, Set

import pytest

from mailbox_client import (
    INBOX_LABEL,
    UNREAD_LABEL,
    LabelAlreadyExists,
    MailboxWriteError,
    Message,
    MessageNotFound,
    MessageRef,
    TransientFetchError,
)
from poll_scheduler import PollScheduler
from reply_engine import ReplyDecisionEngine
from responder import Responder
from state_marker import StateMarker

REPLY_BODY = "Thank you for your email. I am excited to look forward to it!"
EXCLUDED = ("CATEGORY_PROMOTIONS", "CATEGORY_SOCIAL")


class FakeMailbox:
    """Keeps labels per thread, the way Gmail answers threads.get / threads.modify."""

    def __init__(self) -> None:
        self.messages: Dict[str, Message] = {}
        self.order: List[str] = []
        self.labels: List[dict] = []
        self.thread_labels: Dict[str, Set[str]] = defaultdict(set)
        self.sent: List[dict] = []
        self.calls: List[tuple] = []
        self.missing: Set[str] = set()
        self.fail_list = False
        self.fail_fetch_for: Set[str] = set()
        self.fail_send_for: Set[str] = set()
        self.fail_mark_for: Set[str] = set()
        self.fail_lookup_for: Set[str] = set()
        self._lock = threading.Lock()

    def add_unread(
        self,
        message_id: str,
        thread_id: str,
        sender: Optional[str] = "alice@example.com",
        categories=(),
        subject: str = "Hello",
    ) -> Message:
        label_ids = frozenset({INBOX_LABEL, UNREAD_LABEL, *categories})
        message = Message(
            id=message_id,
            thread_id=thread_id,
            sender=sender,
            label_ids=label_ids,
            subject=subject,
            message_id_header=f"<{message_id}@mail.example.com>",
        )
        self.messages[message_id] = message
        self.order.append(message_id)
        self.thread_labels[thread_id].update(label_ids)
        return message

    # MailboxClient interface

    def list_unread(self) -> List[MessageRef]:
        self.calls.append(("list_unread",))
        if self.fail_list:
            raise TransientFetchError("network down")
        refs = []
        for message_id in self.order:
            message = self.messages[message_id]
            if INBOX_LABEL in self.thread_labels[message.thread_id]:
                refs.append(MessageRef(id=message.id, thread_id=message.thread_id))
        return refs

    def get_message(self, message_id: str) -> Message:
        self.calls.append(("get_message", message_id))
        if message_id in self.missing:
            raise MessageNotFound(f"{message_id} gone", status=404)
        if message_id in self.fail_fetch_for:
            raise TransientFetchError("timeout")
        return self.messages[message_id]

    def send_reply(self, thread_id, to, sender, body, **kwargs) -> dict:
        self.calls.append(("send", thread_id))
        if thread_id in self.fail_send_for:
            raise MailboxWriteError("send refused", status=500)
        record = {"thread_id": thread_id, "to": to, "sender": sender, "body": body, **kwargs}
        self.sent.append(record)
        return {"id": f"sent-{len(self.sent)}", "threadId": thread_id}

    def list_labels(self) -> List[dict]:
        self.calls.append(("list_labels",))
        with self._lock:
            return [dict(item) for item in self.labels]

    def create_label(self, name: str) -> str:
        self.calls.append(("create_label", name))
        with self._lock:
            if any(item["name"].lower() == name.lower() for item in self.labels):
                raise LabelAlreadyExists(f"Label '{name}' already exists.", status=409)
            label_id = f"Label_{len(self.labels) + 1}"
            self.labels.append({"id": label_id, "name": name, "type": "user"})
            return label_id

    def get_thread_label_ids(self, thread_id: str) -> Set[str]:
        self.calls.append(("thread_labels", thread_id))
        if thread_id in self.fail_lookup_for:
            raise TransientFetchError("lookup failed")
        return set(self.thread_labels[thread_id])

    def apply_label(self, thread_id: str, label_id: str, *, add: bool = True, remove_inbox: bool = True) -> None:
        self.calls.append(("mark", thread_id))
        if thread_id in self.fail_mark_for:
            raise MailboxWriteError("modify refused", status=503)
        if add:
            self.thread_labels[thread_id].add(label_id)
        else:
            self.thread_labels[thread_id].discard(label_id)
        if remove_inbox:
            self.thread_labels[thread_id].discard(INBOX_LABEL)

    # Helpers for assertions

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


class StopLoop(Exception):
    """Raised by RecordingSleep to break out of run_forever in tests."""


class RecordingSleep:
    Stop = StopLoop

    def __init__(self, stop_after: Optional[int] = None) -> None:
        self.durations: List[float] = []
        self.stop_after = stop_after

    def __call__(self, seconds: float) -> None:
        self.durations.append(seconds)
        if self.stop_after is not None and len(self.durations) >= self.stop_after:
            raise StopLoop()


@pytest.fixture
def mailbox():
    return FakeMailbox()


@pytest.fixture
def marker(mailbox):
    return StateMarker(mailbox)


@pytest.fixture
def engine(mailbox, marker):
    return ReplyDecisionEngine(mailbox, marker, excluded_categories=EXCLUDED)


@pytest.fixture
def mark_failures():
    return []


@pytest.fixture
def responder(mailbox, marker, mark_failures):
    return Responder(
        mailbox,
        marker,
        reply_body=REPLY_BODY,
        from_address="me@example.com",
        on_mark_failure=mark_failures.append,
    )


@pytest.fixture
def recording_sleep():
    return RecordingSleep(stop_after=3)


@pytest.fixture
def scheduler(mailbox, marker, engine, responder, recording_sleep):
    return PollScheduler(
        mailbox,
        marker,
        engine,
        responder,
        label_name="AUTOREPLIED",
        sleep=recording_sleep,
    )

"""
Thin wrapper over the Gmail API resource used by the auto-reply loop.

Every public method is a single remote call; nothing is retried or batched
here. API, transport and auth failures are translated into MailboxError
subclasses so callers never need to know about googleapiclient.
"""
from __future__ import annotations

import base64
import http.client
import email.utils as email_utils
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Sequence, Set

import httplib2
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

if TYPE_CHECKING:
    from googleapiclient.discovery import Resource  # pragma: no cover

logger = logging.getLogger(__name__)

INBOX_LABEL = "INBOX"
UNREAD_LABEL = "UNREAD"
_METADATA_HEADERS = ["From", "Subject", "Message-ID", "References"]

# Failures of the underlying transport rather than of the API itself
_TRANSPORT_ERRORS = (GoogleAuthError, httplib2.HttpLib2Error, http.client.HTTPException, OSError)


class MailboxError(RuntimeError):
    """Base class for failures talking to the mailbox."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class TransientFetchError(MailboxError):
    """Network/auth hiccup while reading; the next cycle retries."""


class MessageNotFound(MailboxError):
    """The message or thread vanished between listing and fetching."""


class LabelAlreadyExists(MailboxError):
    """Label creation lost a race with another creator."""


class MailboxWriteError(MailboxError):
    """A send or relabel request failed."""


@dataclass(frozen=True)
class MessageRef:
    id: str
    thread_id: str


@dataclass(frozen=True)
class Message:
    """Snapshot of a message as fetched in the current cycle."""

    id: str
    thread_id: str
    sender: Optional[str]
    label_ids: FrozenSet[str] = field(default_factory=frozenset)
    subject: str = ""
    message_id_header: Optional[str] = None
    references: Optional[str] = None

    @property
    def unread(self) -> bool:
        return UNREAD_LABEL in self.label_ids


def _http_status(exc: HttpError) -> Optional[int]:
    status = getattr(getattr(exc, "resp", None), "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _http_error_detail(exc: HttpError) -> str:
    raw = getattr(exc, "content", b"")
    try:
        detail = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else str(raw)
    except UnicodeDecodeError:
        detail = ""
    return detail or str(exc)


def _extract_headers(metadata: Dict[str, Any]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for header in metadata.get("payload", {}).get("headers", []) or []:
        name = header.get("name")
        value = header.get("value")
        if name and value:
            headers[name.lower()] = value
    return headers


def message_from_metadata(metadata: Dict[str, Any]) -> Message:
    headers = _extract_headers(metadata)
    return Message(
        id=metadata["id"],
        thread_id=metadata.get("threadId") or metadata["id"],
        sender=headers.get("from"),
        label_ids=frozenset(metadata.get("labelIds") or []),
        subject=headers.get("subject", ""),
        message_id_header=headers.get("message-id"),
        references=headers.get("references"),
    )


def build_raw_reply(
    *,
    to: str,
    sender: Optional[str],
    body: str,
    subject: str = "",
    in_reply_to: Optional[str] = None,
    references: Optional[str] = None,
) -> str:
    """Render a plain-text RFC 822 reply and return it base64url-encoded."""
    reply_subject = subject.strip()
    if not reply_subject.lower().startswith("re:"):
        reply_subject = f"Re: {reply_subject}".strip()
    lines: List[str] = []
    if sender:
        lines.append(f"From: {sender}")
    lines += [
        f"To: {to}",
        f"Subject: {reply_subject}",
        f"Date: {email_utils.formatdate(localtime=True)}",
    ]
    if in_reply_to:
        lines.append(f"In-Reply-To: {in_reply_to}")
        ref_value = f"{references} {in_reply_to}".strip() if references else in_reply_to
        lines.append(f"References: {ref_value}")
    lines += [
        "MIME-Version: 1.0",
        'Content-Type: text/plain; charset="UTF-8"',
        "Content-Transfer-Encoding: 8bit",
        "",
        body,
    ]
    raw_bytes = "\r\n".join(lines).encode("utf-8")
    return base64.urlsafe_b64encode(raw_bytes).decode("ascii").rstrip("=")


class MailboxClient:
    """
    Gmail operations needed by the agent, scoped to a single mailbox (user_id).
    """

    def __init__(self, service: "Resource", user_id: str = "me", *, max_results: int = 100) -> None:
        self.service = service
        self.user_id = user_id
        self.max_results = max_results

    def list_unread(self) -> List[MessageRef]:
        try:
            response = (
                self.service.users()
                .messages()
                .list(userId=self.user_id, labelIds=[INBOX_LABEL, UNREAD_LABEL], maxResults=self.max_results)
                .execute()
            )
        except HttpError as he:
            raise TransientFetchError(
                f"Failed to list unread messages: {_http_error_detail(he)}", status=_http_status(he)
            ) from he
        except _TRANSPORT_ERRORS as exc:
            raise TransientFetchError(f"Failed to list unread messages: {exc}") from exc

        messages = response.get("messages") or []
        if not messages:
            logger.info("No unread emails found.")
            return []
        return [MessageRef(id=item["id"], thread_id=item.get("threadId") or item["id"]) for item in messages]

    def get_message(self, message_id: str) -> Message:
        try:
            metadata = (
                self.service.users()
                .messages()
                .get(
                    userId=self.user_id,
                    id=message_id,
                    format="metadata",
                    metadataHeaders=_METADATA_HEADERS,
                )
                .execute()
            )
        except HttpError as he:
            status = _http_status(he)
            if status == 404:
                raise MessageNotFound(f"Message {message_id} no longer exists.", status=status) from he
            raise TransientFetchError(
                f"Failed to fetch message {message_id}: {_http_error_detail(he)}", status=status
            ) from he
        except _TRANSPORT_ERRORS as exc:
            raise TransientFetchError(f"Failed to fetch message {message_id}: {exc}") from exc
        return message_from_metadata(metadata)

    def send_reply(
        self,
        thread_id: str,
        to: str,
        sender: Optional[str],
        body: str,
        *,
        subject: str = "",
        in_reply_to: Optional[str] = None,
        references: Optional[str] = None,
    ) -> Dict[str, Any]:
        raw = build_raw_reply(
            to=to,
            sender=sender,
            body=body,
            subject=subject,
            in_reply_to=in_reply_to,
            references=references,
        )
        request_body: Dict[str, Any] = {"raw": raw, "threadId": thread_id}
        try:
            return self.service.users().messages().send(userId=self.user_id, body=request_body).execute()
        except HttpError as he:
            raise MailboxWriteError(
                f"Failed to send reply in thread {thread_id}: {_http_error_detail(he)}", status=_http_status(he)
            ) from he
        except _TRANSPORT_ERRORS as exc:
            raise MailboxWriteError(f"Failed to send reply in thread {thread_id}: {exc}") from exc

    def list_labels(self) -> List[Dict[str, Any]]:
        try:
            response = self.service.users().labels().list(userId=self.user_id).execute()
        except HttpError as he:
            raise TransientFetchError(
                f"Failed to list labels: {_http_error_detail(he)}", status=_http_status(he)
            ) from he
        except _TRANSPORT_ERRORS as exc:
            raise TransientFetchError(f"Failed to list labels: {exc}") from exc
        return response.get("labels", []) or []

    def create_label(self, name: str) -> str:
        body = {
            "name": name,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
        }
        try:
            created = self.service.users().labels().create(userId=self.user_id, body=body).execute()
        except HttpError as he:
            status = _http_status(he)
            if status == 409:
                raise LabelAlreadyExists(f"Label '{name}' already exists.", status=status) from he
            raise MailboxWriteError(
                f"Failed to create label '{name}': {_http_error_detail(he)}", status=status
            ) from he
        except _TRANSPORT_ERRORS as exc:
            raise MailboxWriteError(f"Failed to create label '{name}': {exc}") from exc
        return created["id"]

    def get_thread_label_ids(self, thread_id: str) -> Set[str]:
        try:
            thread = (
                self.service.users()
                .threads()
                .get(userId=self.user_id, id=thread_id, format="minimal")
                .execute()
            )
        except HttpError as he:
            status = _http_status(he)
            if status == 404:
                raise MessageNotFound(f"Thread {thread_id} no longer exists.", status=status) from he
            raise TransientFetchError(
                f"Failed to fetch thread {thread_id}: {_http_error_detail(he)}", status=status
            ) from he
        except _TRANSPORT_ERRORS as exc:
            raise TransientFetchError(f"Failed to fetch thread {thread_id}: {exc}") from exc

        label_ids: Set[str] = set()
        for message in thread.get("messages", []) or []:
            label_ids.update(message.get("labelIds") or [])
        return label_ids

    def apply_label(
        self,
        thread_id: str,
        label_id: str,
        *,
        add: bool = True,
        remove_inbox: bool = True,
    ) -> None:
        add_ids: Sequence[str] = [label_id] if add else []
        remove_ids: List[str] = [] if add else [label_id]
        if remove_inbox:
            remove_ids.append(INBOX_LABEL)
        try:
            self.service.users().threads().modify(
                userId=self.user_id,
                id=thread_id,
                body={
                    "addLabelIds": list(add_ids),
                    "removeLabelIds": remove_ids,
                },
            ).execute()
        except HttpError as he:
            raise MailboxWriteError(
                f"Failed to relabel thread {thread_id}: {_http_error_detail(he)}", status=_http_status(he)
            ) from he
        except _TRANSPORT_ERRORS as exc:
            raise MailboxWriteError(f"Failed to relabel thread {thread_id}: {exc}") from exc

    def profile_address(self) -> str:
        try:
            profile = self.service.users().getProfile(userId=self.user_id).execute()
        except HttpError as he:
            raise TransientFetchError(
                f"Failed to fetch mailbox profile: {_http_error_detail(he)}", status=_http_status(he)
            ) from he
        except _TRANSPORT_ERRORS as exc:
            raise TransientFetchError(f"Failed to fetch mailbox profile: {exc}") from exc
        return profile.get("emailAddress", "")

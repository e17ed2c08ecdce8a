"""Payloads carried by the session feeds.

Each feed collection has a payload dataclass and a decoder taking a store
document; ``FeedSource`` wraps the payload in a ``FeedRecord`` ordered by
the collection's timestamp field. Decoders raise ``ValueError`` or
``TypeError`` on malformed documents, which the source skips.

    messages         ChatMessage       ordered by created_at
    polls            Poll              ordered by created_at
    viewer_sessions  ViewerPresence    ordered by joined_at
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic

from simulive._constants import (
    DEFAULT_ORDER_FIELD,
    MESSAGES_COLLECTION,
    POLLS_COLLECTION,
    VIEWER_ORDER_FIELD,
    VIEWERS_COLLECTION,
)
from simulive._types import P, to_utc

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from simulive._types import FeedRecord
    from simulive.store.interface import Document


class MessageType(Enum):
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"
    PRIVATE = "private"


@dataclass(frozen=True, slots=True)
class ChatMessage:
    session_id: str
    user_id: str
    user_name: str
    content: str
    message_type: MessageType = MessageType.USER
    user_avatar: str | None = None
    target_user_id: str | None = None
    is_pinned: bool = False
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class PollOption:
    id: str
    label: str
    votes: int = 0


@dataclass(frozen=True, slots=True)
class Poll:
    """A poll pushed to the session's viewers."""

    session_id: str
    question: str
    options: tuple[PollOption, ...] = ()
    is_active: bool = False

    @property
    def total_votes(self) -> int:
        return sum(option.votes for option in self.options)


@dataclass(frozen=True, slots=True)
class ViewerPresence:
    """One viewer's participation in a session; ``left_at`` None while watching."""

    session_id: str
    user_id: str
    joined_at: datetime | None = None
    left_at: datetime | None = None
    email: str = ""

    @property
    def watching(self) -> bool:
        return self.left_at is None


def decode_chat_message(doc: Document) -> ChatMessage:
    """Build a ChatMessage from a ``messages`` document.

    Raises:
        ValueError: On an unknown message type.
    """
    data = doc.data
    return ChatMessage(
        session_id=str(data.get("session_id", "")),
        user_id=str(data.get("user_id", "")),
        user_name=str(data.get("user_name") or "Anonymous"),
        content=str(data.get("content", "")),
        message_type=MessageType(data.get("message_type", MessageType.USER.value)),
        user_avatar=data.get("user_avatar"),
        target_user_id=data.get("target_user_id"),
        is_pinned=bool(data.get("is_pinned", False)),
        is_deleted=bool(data.get("is_deleted", False)),
    )


def _decode_option(raw: Any) -> PollOption:
    if not isinstance(raw, dict) or "id" not in raw:
        msg = f"Poll option must be a mapping with an id, got {raw!r}"
        raise ValueError(msg)
    votes = int(raw.get("votes", 0))
    if votes < 0:
        msg = f"Poll option '{raw['id']}' has negative votes"
        raise ValueError(msg)
    return PollOption(id=str(raw["id"]), label=str(raw.get("label", "")), votes=votes)


def decode_poll(doc: Document) -> Poll:
    """Build a Poll from a ``polls`` document.

    Raises:
        ValueError: If the question is missing or an option is malformed.
    """
    data = doc.data
    question = data.get("question")
    if not question:
        msg = f"Poll '{doc.id}' has no question"
        raise ValueError(msg)
    options = data.get("options") or ()
    if not isinstance(options, Sequence) or isinstance(options, str):
        msg = f"Poll '{doc.id}' options must be a list"
        raise ValueError(msg)
    return Poll(
        session_id=str(data.get("session_id", "")),
        question=str(question),
        options=tuple(_decode_option(option) for option in options),
        is_active=bool(data.get("is_active", False)),
    )


def decode_viewer_presence(doc: Document) -> ViewerPresence:
    """Build a ViewerPresence from a ``viewer_sessions`` document.

    Raises:
        ValueError: If the user id is missing or a timestamp is unparseable.
        TypeError: If a timestamp has an unsupported type.
    """
    data = doc.data
    user_id = data.get("user_id")
    if not user_id:
        msg = f"Viewer record '{doc.id}' has no user_id"
        raise ValueError(msg)
    joined_at = data.get("joined_at")
    left_at = data.get("left_at")
    return ViewerPresence(
        session_id=str(data.get("session_id", "")),
        user_id=str(user_id),
        joined_at=to_utc(joined_at) if joined_at is not None else None,
        left_at=to_utc(left_at) if left_at is not None else None,
        email=str(data.get("email") or ""),
    )


def active_poll(records: Iterable[FeedRecord[Poll]]) -> FeedRecord[Poll] | None:
    """Newest active poll of a newest-first view."""
    return next((record for record in records if record.payload.is_active), None)


def viewer_count(records: Iterable[FeedRecord[ViewerPresence]]) -> int:
    """Viewers currently watching (no ``left_at``)."""
    return sum(1 for record in records if record.payload.watching)


@dataclass(frozen=True)
class FeedLayout(Generic[P]):
    """Where a feed lives in the store and how its documents decode."""

    collection: str
    decode: Callable[[Document], P]
    order_field: str = DEFAULT_ORDER_FIELD
    session_field: str = "session_id"


CHAT_FEED: FeedLayout[ChatMessage] = FeedLayout(MESSAGES_COLLECTION, decode_chat_message)
POLL_FEED: FeedLayout[Poll] = FeedLayout(POLLS_COLLECTION, decode_poll)
VIEWER_FEED: FeedLayout[ViewerPresence] = FeedLayout(
    VIEWERS_COLLECTION, decode_viewer_presence, order_field=VIEWER_ORDER_FIELD
)

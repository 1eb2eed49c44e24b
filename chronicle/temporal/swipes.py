"""
Swipe Resolution

A swipe is an alternate generation of one message. Only one swipe per
message is canonical for any later replay point. Events attached to the
other swipes stay in the log (they are abandoned, not deleted) but are
excluded from the fold.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from ..contracts.events import StateEvent


DEFAULT_SWIPE = 0


@dataclass(frozen=True)
class ChatMessage:
    """The only part of a host chat message the store reads."""
    swipe_id: Optional[int] = None

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ChatMessage:
        value = data.get("swipe_id", data.get("swipeId"))
        return ChatMessage(swipe_id=value if isinstance(value, int) else None)


Chat = Sequence[ChatMessage]


def chat_from_swipes(swipes: Iterable[Optional[int]]) -> List[ChatMessage]:
    """Build a chat from a plain list of swipe indices (None = unrecorded)."""
    return [ChatMessage(swipe_id=s) for s in swipes]


def coerce_chat(chat: Optional[Sequence[Union[ChatMessage, Mapping[str, Any], int, None]]]) -> List[ChatMessage]:
    """Accept ChatMessage objects, host dicts or bare swipe ints."""
    if not chat:
        return []
    messages = []
    for entry in chat:
        if isinstance(entry, ChatMessage):
            messages.append(entry)
        elif isinstance(entry, Mapping):
            messages.append(ChatMessage.from_dict(entry))
        else:
            messages.append(ChatMessage(swipe_id=entry))
    return messages


def canonical_swipe(message_id: int, chat: Optional[Chat]) -> int:
    """
    Canonical swipe of a message under the given chat.

    Defaults to 0 when the chat is empty, the message is outside the
    chat, or its entry has no recorded swipe.
    """
    if not chat or message_id < 0 or message_id >= len(chat):
        return DEFAULT_SWIPE
    swipe_id = chat[message_id].swipe_id
    return DEFAULT_SWIPE if swipe_id is None else swipe_id


def is_on_timeline(
    event: StateEvent,
    target_message_id: int,
    target_swipe_id: int,
    chat: Optional[Chat],
    from_message_id: int = 0,
) -> bool:
    """
    True if a live event belongs in the fold for the target point.

    Earlier messages must match their canonical swipe; the target
    message must match the requested swipe. Events before
    from_message_id are excluded (already folded into a snapshot).
    """
    if event.deleted:
        return False
    if event.message_id < from_message_id or event.message_id > target_message_id:
        return False
    if event.message_id == target_message_id:
        return event.swipe_id == target_swipe_id
    return event.swipe_id == canonical_swipe(event.message_id, chat)


def select_timeline(
    events: Iterable[StateEvent],
    target_message_id: int,
    target_swipe_id: int,
    chat: Optional[Chat],
    from_message_id: int = 0,
) -> List[StateEvent]:
    """Events on the canonical timeline up to the target point, unsorted."""
    return [
        e for e in events
        if is_on_timeline(e, target_message_id, target_swipe_id, chat, from_message_id)
    ]


def parse_chat(raw: Optional[str]) -> List[ChatMessage]:
    """
    Parse "0,1,,2" into chat messages; an empty entry is an unrecorded swipe.
    Raises ValueError on non-integer entries.
    """
    if not raw:
        return []
    return chat_from_swipes(int(part) if part.strip() else None for part in raw.split(","))

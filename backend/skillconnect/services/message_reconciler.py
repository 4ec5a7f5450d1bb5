import os
from typing import List, Optional, Tuple

from skillconnect.models import ChatMessage
from skillconnect.services.chat_list import message_epoch_ms

DEFAULT_DUPLICATE_WINDOW_MS = 5000


def duplicate_window_ms() -> int:
    raw = os.getenv("CHAT_DUPLICATE_WINDOW_MS", "")
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_DUPLICATE_WINDOW_MS
    return value if value > 0 else DEFAULT_DUPLICATE_WINDOW_MS


def _sender_id(message: ChatMessage) -> Optional[str]:
    return message.sender.id if message.sender else None


def _is_same_message(existing: ChatMessage, incoming: ChatMessage, window_ms: int) -> bool:
    if existing.id and existing.id == incoming.id:
        return True
    if existing.local_id and existing.local_id == incoming.local_id:
        return True
    if existing.sent_at is None or incoming.sent_at is None:
        return False
    # Same sender and text inside the window is one message, ids or not.
    # Two genuine identical messages sent that close together collapse too.
    return (
        _sender_id(existing) is not None
        and _sender_id(existing) == _sender_id(incoming)
        and existing.message == incoming.message
        and abs(message_epoch_ms(existing) - message_epoch_ms(incoming)) < window_ms
    )


def find_duplicate(
    messages: List[ChatMessage],
    incoming: ChatMessage,
    window_ms: int = DEFAULT_DUPLICATE_WINDOW_MS,
) -> Optional[int]:
    for idx, existing in enumerate(messages):
        if _is_same_message(existing, incoming, window_ms):
            return idx
    return None


def reconcile(
    messages: List[ChatMessage],
    incoming: ChatMessage,
    window_ms: int = DEFAULT_DUPLICATE_WINDOW_MS,
) -> Tuple[List[ChatMessage], bool]:
    """Merge ``incoming`` into a copy of ``messages``.

    Returns the new list and whether the message was appended. A server copy
    of a pending optimistic echo takes the echo's slot instead of appending.
    """
    rows = list(messages)
    idx = find_duplicate(rows, incoming, window_ms)
    if idx is None:
        rows.append(incoming)
        return rows, True
    existing = rows[idx]
    if incoming.id and not existing.id:
        rows[idx] = incoming.model_copy(update={"local_id": existing.local_id, "pending": False})
    return rows, False


def remove_local(messages: List[ChatMessage], local_id: str) -> List[ChatMessage]:
    return [row for row in messages if row.local_id != local_id]

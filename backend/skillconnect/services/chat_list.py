from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from skillconnect.models import ChatMessage, ChatSummary, ChatThread


def _epoch_ms(value: Optional[datetime]) -> int:
    if value is None:
        return 0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def message_epoch_ms(message: Optional[ChatMessage]) -> int:
    if message is None:
        return 0
    return _epoch_ms(message.sent_at)


def aggregate_chat_list(summaries: Iterable[ChatSummary]) -> List[ChatThread]:
    """Collapse per-appointment summaries into one thread per counterpart.

    Output order is first-seen order; callers sort with ``sort_threads``.
    """
    grouped: Dict[str, ChatThread] = {}
    for summary in summaries:
        if summary.other_user is None or not summary.other_user.id:
            continue
        key = summary.other_user.id
        existing = grouped.get(key)
        if existing is None:
            grouped[key] = ChatThread(
                other_user=summary.other_user,
                appointment_id=summary.appointment_id,
                appointments=[summary.appointment_id],
                last_message=summary.last_message,
                total_unread_count=summary.unread_count,
                can_complete=summary.can_complete,
                service_request=summary.service_request,
                status=summary.status,
            )
            continue

        if summary.appointment_id not in existing.appointments:
            existing.appointments.append(summary.appointment_id)
        existing.total_unread_count += summary.unread_count
        existing.can_complete = existing.can_complete or summary.can_complete
        if message_epoch_ms(summary.last_message) > message_epoch_ms(existing.last_message):
            existing.last_message = summary.last_message
            existing.service_request = summary.service_request
            existing.status = summary.status
    return list(grouped.values())


def sort_threads(threads: List[ChatThread]) -> List[ChatThread]:
    # sorted() is stable, so equal timestamps keep first-seen order.
    return sorted(threads, key=lambda thread: message_epoch_ms(thread.last_message), reverse=True)


def find_thread(threads: Iterable[ChatThread], appointment_id: Optional[str]) -> Optional[ChatThread]:
    if not appointment_id:
        return None
    for thread in threads:
        if appointment_id == thread.appointment_id or appointment_id in thread.appointments:
            return thread
    return None


def promote_message(threads: List[ChatThread], message: ChatMessage) -> bool:
    """Apply a message for a room that is not open. Re-sorts ``threads`` in place."""
    thread = find_thread(threads, message.appointment)
    if thread is None:
        return False
    thread.last_message = message
    thread.total_unread_count += 1
    threads[:] = sort_threads(threads)
    return True


def unread_counts(threads: Iterable[ChatThread]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for thread in threads:
        if thread.appointments:
            counts[thread.appointments[0]] = thread.total_unread_count
    return counts

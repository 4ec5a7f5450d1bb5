from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from skillconnect.models import Notification

INBOX_LIMIT = 100


class NotificationStore:
    """Per-user notification inbox, newest first."""

    def __init__(self):
        self._lock = Lock()
        self._inbox: Dict[str, List[Notification]] = {}

    def _insert(self, user_id: str, record: Notification) -> Notification:
        rows = self._inbox.setdefault(user_id, [])
        for idx, row in enumerate(rows):
            if row.id == record.id:
                rows[idx] = record
                return record
        rows.insert(0, record)
        del rows[INBOX_LIMIT:]
        return record

    def create(
        self,
        user_id: str,
        title: str,
        message: str,
        category: str = "system",
        notification_id: Optional[str] = None,
    ) -> Notification:
        record = Notification(
            id=notification_id or f"ntf_{uuid4().hex[:10]}",
            title=title,
            message=message,
            category=category,
            read=False,
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            return self._insert(user_id, record)

    def record_payload(self, user_id: str, payload: Any) -> Optional[Notification]:
        if not isinstance(payload, dict):
            return None
        data = dict(payload)
        data.setdefault("_id", f"ntf_{uuid4().hex[:10]}")
        data.setdefault("createdAt", datetime.now(timezone.utc).isoformat())
        try:
            record = Notification.model_validate(data)
        except ValueError:
            return None
        with self._lock:
            return self._insert(user_id, record)

    def sync(self, user_id: str, notifications: Iterable[Notification]) -> List[Notification]:
        rows = sorted(
            notifications,
            key=lambda row: row.created_at.timestamp() if row.created_at else 0,
            reverse=True,
        )
        with self._lock:
            self._inbox[user_id] = rows[:INBOX_LIMIT]
            return list(self._inbox[user_id])

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        with self._lock:
            rows = list(self._inbox.get(user_id, []))
        if unread_only:
            rows = [n for n in rows if not n.read]
        return rows

    def unread_count(self, user_id: str) -> int:
        return len(self.list_for_user(user_id, unread_only=True))

    def mark_read(self, user_id: str, notification_id: str) -> Optional[Notification]:
        with self._lock:
            rows = self._inbox.get(user_id, [])
            for idx, row in enumerate(rows):
                if row.id == notification_id:
                    updated = row.model_copy(update={"read": True})
                    rows[idx] = updated
                    return updated
        return None

    def mark_all_read(self, user_id: str) -> int:
        with self._lock:
            rows = self._inbox.get(user_id, [])
            changed = sum(1 for row in rows if not row.read)
            self._inbox[user_id] = [row.model_copy(update={"read": True}) for row in rows]
        return changed

    def clear(self) -> None:
        with self._lock:
            self._inbox.clear()


notification_store = NotificationStore()

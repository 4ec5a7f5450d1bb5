import logging
import time
from datetime import datetime, timezone
from threading import Lock, RLock
from typing import Any, Callable, Dict, List, Optional, Protocol
from uuid import uuid4

from skillconnect.models import (
    Booking,
    ChatMessage,
    ChatParticipant,
    ChatState,
    ChatThread,
    Emission,
    Provider,
    User,
)
from skillconnect.services.chat_list import (
    aggregate_chat_list,
    find_thread,
    promote_message,
    sort_threads,
    unread_counts,
)
from skillconnect.services.inquiry import INQUIRY_PENDING_STATUS, send_inquiry
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError
from skillconnect.services.message_reconciler import duplicate_window_ms, reconcile, remove_local
from skillconnect.services.notification_store import NotificationStore, notification_store
from skillconnect.services.typing_tracker import TypingTracker, read_float_env
from skillconnect.services.validation import FormValidationError, validate_review

logger = logging.getLogger(__name__)

SEND_FAILED_MESSAGE = "Failed to send message"
DEFAULT_SESSION_IDLE_SECONDS = 1800.0


class ChatTransport(Protocol):
    def emit(self, event: str, room: str) -> None:
        ...


class OutboxTransport:
    """Queues socket emissions until the next response hands them to the client."""

    def __init__(self):
        self._lock = Lock()
        self._queue: List[Emission] = []

    def emit(self, event: str, room: str) -> None:
        with self._lock:
            self._queue.append(Emission(event=event, room=room))

    def drain(self) -> List[Emission]:
        with self._lock:
            rows, self._queue = self._queue, []
        return rows


def _reference_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, dict):
        ref = value.get("_id") or value.get("id")
        return str(ref) if ref is not None else None
    return str(value)


def _participant(value: Any) -> Optional[ChatParticipant]:
    if isinstance(value, dict):
        try:
            return ChatParticipant.model_validate(value)
        except ValueError:
            return None
    ref = _reference_id(value)
    return ChatParticipant(id=ref) if ref else None


class ChatSession:
    def __init__(
        self,
        user: User,
        transport: Optional[ChatTransport] = None,
        inbox: Optional[NotificationStore] = None,
        typing: Optional[TypingTracker] = None,
    ) -> None:
        self.user = user
        self.transport = transport or OutboxTransport()
        self.inbox = inbox or notification_store
        self.typing = typing or TypingTracker(self.transport.emit, user_id=user.id)
        self.view = "list"
        self.threads: List[ChatThread] = []
        self.unread: Dict[str, int] = {}
        self.selected: Optional[ChatThread] = None
        self.messages: List[ChatMessage] = []
        self.error: Optional[str] = None
        self.closed = False
        self._lock = RLock()

    @property
    def room(self) -> Optional[str]:
        return self.selected.appointment_id if self.selected else None

    @property
    def can_send(self) -> bool:
        if self.selected is None:
            return False
        if self.selected.appointment_id:
            return True
        return self.selected.status != INQUIRY_PENDING_STATUS

    def snapshot(self) -> ChatState:
        with self._lock:
            emissions = self.transport.drain() if isinstance(self.transport, OutboxTransport) else []
            return ChatState(
                view=self.view,
                threads=list(self.threads),
                total_unread=sum(self.unread.values()),
                selected=self.selected,
                messages=list(self.messages),
                typing_users=self.typing.typing_users(),
                can_send=self.can_send,
                error=self.error,
                emissions=emissions,
            )

    def refresh_chat_list(self, api: MarketplaceApi) -> None:
        with self._lock:
            self.error = None
            try:
                summaries = api.get_chat_list()
            except MarketplaceApiError as exc:
                logger.warning("Chat list refresh failed for %s: %s", self.user.id, exc.message)
                self.error = "Failed to load chats"
                return
            self.threads = sort_threads(aggregate_chat_list(summaries))
            self.unread = unread_counts(self.threads)

    def _thread_from_booking(self, booking: Booking, appointment_id: str) -> Optional[ChatThread]:
        counterpart = booking.requester if self.user.role == "Service Provider" else booking.provider
        other_user = _participant(counterpart)
        if other_user is None:
            return None
        return ChatThread(
            other_user=other_user,
            appointment_id=appointment_id,
            appointments=[appointment_id],
            service_request=booking.service_request,
            status=booking.status,
            can_complete=self._can_complete(booking),
        )

    def _can_complete(self, booking: Booking) -> bool:
        return _reference_id(booking.provider) == self.user.id and booking.status == "Working"

    def _mark_seen(self, api: MarketplaceApi, appointment_id: str) -> None:
        try:
            api.mark_seen(appointment_id)
        except MarketplaceApiError as exc:
            logger.warning("Mark seen failed for %s: %s", appointment_id, exc.message)
            return
        self.unread[appointment_id] = 0

    def open_chat(
        self,
        api: MarketplaceApi,
        thread: Optional[ChatThread] = None,
        appointment_id: Optional[str] = None,
    ) -> None:
        """Select a conversation and load its history.

        Either ``thread`` or ``appointment_id`` is required. An appointment
        missing from the chat list is resolved through its booking.
        """
        with self._lock:
            appointment_id = appointment_id or (thread.appointment_id if thread else None)
            if not appointment_id:
                raise FormValidationError("Select a chat to open")

            booking: Optional[Booking] = None
            try:
                booking = api.get_booking(appointment_id)
            except MarketplaceApiError as exc:
                logger.warning("Booking lookup failed for %s: %s", appointment_id, exc.message)

            if thread is None:
                thread = find_thread(self.threads, appointment_id)
            if thread is None:
                thread = self._thread_from_booking(booking, appointment_id) if booking else None
            if thread is None:
                raise MarketplaceApiError("Chat not found", status_code=404)

            selected = thread.model_copy(update={"appointment_id": appointment_id})
            if booking is not None:
                selected.status = booking.status
                selected.service_request = booking.service_request
                selected.can_complete = self._can_complete(booking)

            self.typing.clear()
            self.selected = selected
            self.view = "chat"
            self.error = None
            self.messages = []
            self._load_history(api, appointment_id)

    def _load_history(self, api: MarketplaceApi, appointment_id: str) -> None:
        try:
            history = api.get_chat_history()
        except MarketplaceApiError as exc:
            logger.warning("Chat history failed for %s: %s", appointment_id, exc.message)
            self.error = "Failed to load chat history"
            return

        entry = next((row for row in history if str(row.get("appointmentId")) == appointment_id), None)
        messages: List[ChatMessage] = []
        for raw in (entry or {}).get("messages") or []:
            try:
                messages.append(ChatMessage.model_validate(raw))
            except ValueError:
                logger.warning("Skipping malformed chat message in %s", appointment_id)
        self.messages = messages
        if messages:
            self._mark_seen(api, appointment_id)
        self.transport.emit("join-chat", appointment_id)

    def open_provider_chat(self, provider: Provider) -> None:
        with self._lock:
            self.typing.clear()
            self.selected = ChatThread(
                other_user=ChatParticipant(
                    id=provider.id,
                    first_name=provider.first_name,
                    last_name=provider.last_name,
                    profile_pic=provider.profile_pic,
                ),
            )
            self.view = "chat"
            self.messages = []
            self.error = None

    def send_message(self, api: MarketplaceApi, text: str) -> None:
        text = text.strip()
        with self._lock:
            if not text or self.selected is None:
                return
            if not self.can_send:
                self.error = "You'll be able to chat once the provider accepts your request."
                return

            room = self.selected.appointment_id
            if not room:
                outcome = send_inquiry(api, self.user, self.selected.other_user.id, text)
                if outcome.ok:
                    self.selected.status = outcome.status
                    self.selected.service_request = outcome.service_request
                    self.messages = list(outcome.messages)
                    self.error = None
                else:
                    self.error = outcome.error
                return

            echo = ChatMessage(
                local_id=f"local_{uuid4().hex[:10]}",
                appointment=room,
                sender=ChatParticipant(
                    id=self.user.id,
                    first_name=self.user.first_name,
                    last_name=self.user.last_name,
                    profile_pic=self.user.profile_pic,
                ),
                message=text,
                timestamp=datetime.now(timezone.utc),
                status="sent",
                pending=True,
            )
            self.messages = self.messages + [echo]

            try:
                payload = api.send_message(room, text)
            except MarketplaceApiError as exc:
                logger.warning("Send failed in %s: %s", room, exc.message)
                self.messages = remove_local(self.messages, echo.local_id)
                self.error = SEND_FAILED_MESSAGE
                return

            server_copy = payload.get("message") if isinstance(payload.get("message"), dict) else None
            if server_copy:
                try:
                    incoming = ChatMessage.model_validate(server_copy)
                except ValueError:
                    incoming = None
                if incoming is not None:
                    # Same sender and text, so the echo slot is reused.
                    self.messages, _ = reconcile(self.messages, incoming, duplicate_window_ms())
            self.transport.emit("stop-typing", room)
            self.typing.cancel()

    def keystroke(self) -> None:
        with self._lock:
            room = self.room
        if room:
            self.typing.keystroke(room)

    def handle_event(self, api: MarketplaceApi, event: str, data: Any) -> None:
        with self._lock:
            if self.closed:
                logger.debug("Dropping %s event for closed chat session %s", event, self.user.id)
                return
            handler = {
                "new-message": self._on_new_message,
                "chat-history": self._on_chat_history,
                "user-typing": self._on_user_typing,
                "user-stopped-typing": self._on_user_stopped_typing,
                "message-notification": self._on_message_notification,
                "new-notification": self._on_new_notification,
                "error": self._on_error,
            }.get(event)
            if handler is None:
                logger.info("Ignoring unknown chat event %s", event)
                return
            handler(api, data)

    def _on_new_message(self, api: MarketplaceApi, data: Any) -> None:
        try:
            message = ChatMessage.model_validate(data)
        except ValueError:
            logger.warning("Ignoring malformed new-message payload")
            return
        if not message.appointment:
            return
        room = self.room
        if room and message.appointment == room:
            self.messages, _ = reconcile(self.messages, message, duplicate_window_ms())
            self._mark_seen(api, room)
            return
        self.unread[message.appointment] = self.unread.get(message.appointment, 0) + 1
        promote_message(self.threads, message)

    def _on_chat_history(self, api: MarketplaceApi, data: Any) -> None:
        messages: List[ChatMessage] = []
        for raw in data or []:
            try:
                messages.append(ChatMessage.model_validate(raw))
            except ValueError:
                logger.warning("Skipping malformed chat-history message")
        self.messages = messages
        if self.room:
            self._mark_seen(api, self.room)

    def _on_user_typing(self, api: MarketplaceApi, data: Any) -> None:
        if self.selected is not None and isinstance(data, dict):
            self.typing.user_typing(data.get("userId"))

    def _on_user_stopped_typing(self, api: MarketplaceApi, data: Any) -> None:
        if isinstance(data, dict):
            self.typing.user_stopped_typing(data.get("userId"))

    def _on_message_notification(self, api: MarketplaceApi, data: Any) -> None:
        if not isinstance(data, dict):
            return
        if self.view == "chat" and self.room and self.room == str(data.get("appointmentId")):
            return
        body = data.get("message")
        text = body.get("message", "") if isinstance(body, dict) else str(body or "")
        self.inbox.create(
            user_id=self.user.id,
            title=f"New message from {data.get('from') or 'someone'}",
            message=text,
            category="message",
        )

    def _on_new_notification(self, api: MarketplaceApi, data: Any) -> None:
        self.inbox.record_payload(self.user.id, data)

    def _on_error(self, api: MarketplaceApi, data: Any) -> None:
        if isinstance(data, dict):
            self.error = str(data.get("message") or "Chat error")
        else:
            self.error = str(data or "Chat error")
        logger.warning("Socket error for %s: %s", self.user.id, self.error)

    def back_to_list(self) -> None:
        with self._lock:
            self.typing.clear()
            self.view = "list"
            self.selected = None
            self.messages = []

    def close(self) -> None:
        with self._lock:
            self.closed = True
            self.typing.clear()

    def _require_selected(self) -> ChatThread:
        if self.selected is None:
            raise FormValidationError("Select a chat first")
        return self.selected

    def report_user(self, api: MarketplaceApi, reason: str) -> str:
        with self._lock:
            selected = self._require_selected()
            reason = (reason or "").strip()
            if not reason:
                raise FormValidationError("Please provide a reason for reporting this user.")
            api.report_user(selected.other_user.id, reason, selected.appointment_id)
            return "User reported successfully. Our team will review your report."

    def block_user(self, api: MarketplaceApi) -> str:
        with self._lock:
            selected = self._require_selected()
            api.block_user(selected.other_user.id)
            name = f"{selected.other_user.first_name} {selected.other_user.last_name}"
            self.threads = [row for row in self.threads if row.other_user.id != selected.other_user.id]
            self.unread = {room: count for room, count in self.unread.items() if room not in selected.appointments}
            self.back_to_list()
            return f"User {name} has been blocked."

    def rate_user(self, api: MarketplaceApi, rating: Any, comments: str = "") -> str:
        with self._lock:
            selected = self._require_selected()
            stars = validate_review(rating)
            if not selected.appointment_id:
                raise FormValidationError("You can rate a user once a booking exists.")
            api.submit_review(selected.appointment_id, stars, comments or "")
            name = f"{selected.other_user.first_name} {selected.other_user.last_name}"
            return f"Thank you for rating {name} with {stars} stars!"


class ChatSessionStore:
    """One chat session per user; sessions idle past ``idle_seconds`` are closed and dropped."""

    def __init__(self, idle_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._lock = Lock()
        self._sessions: Dict[str, ChatSession] = {}
        self._last_used: Dict[str, float] = {}
        self._idle_seconds = (
            idle_seconds
            if idle_seconds is not None
            else read_float_env("CHAT_SESSION_IDLE_SECONDS", DEFAULT_SESSION_IDLE_SECONDS, allow_zero=True)
        )
        self._clock = clock

    def _evict_idle(self, now: float) -> List[ChatSession]:
        if self._idle_seconds <= 0:
            return []
        cutoff = now - self._idle_seconds
        stale = [user_id for user_id, used in self._last_used.items() if used <= cutoff]
        evicted = []
        for user_id in stale:
            self._last_used.pop(user_id, None)
            session = self._sessions.pop(user_id, None)
            if session is not None:
                evicted.append(session)
        return evicted

    def get_or_create(self, user: User) -> ChatSession:
        now = self._clock()
        with self._lock:
            evicted = self._evict_idle(now)
            session = self._sessions.get(user.id)
            if session is None or session.closed:
                session = ChatSession(user)
                self._sessions[user.id] = session
            else:
                session.user = user
            self._last_used[user.id] = now
        for stale in evicted:
            logger.info("Closing idle chat session for %s", stale.user.id)
            stale.close()
        return session

    def get(self, user_id: str) -> Optional[ChatSession]:
        with self._lock:
            return self._sessions.get(user_id)

    def close(self, user_id: str) -> bool:
        with self._lock:
            self._last_used.pop(user_id, None)
            session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        session.close()
        return True

    def clear(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._last_used.clear()
        for session in sessions:
            session.close()


chat_sessions = ChatSessionStore()

import os
import time
from threading import Lock, Timer
from typing import Callable, Dict, List, Optional

DEFAULT_IDLE_SECONDS = 1.0
DEFAULT_STALE_SECONDS = 10.0

Emit = Callable[[str, str], None]


def read_float_env(name: str, default: float, allow_zero: bool = False) -> float:
    raw = os.getenv(name, "")
    try:
        value = float(raw)
    except ValueError:
        return default
    if value < 0 or (value == 0 and not allow_zero):
        return default
    return value


def _daemon_timer(interval: float, callback: Callable[[], None]) -> Timer:
    timer = Timer(interval, callback)
    timer.daemon = True
    return timer


class TypingTracker:
    """Outgoing typing signals for one room plus the set of counterparts shown as typing."""

    def __init__(
        self,
        emit: Emit,
        user_id: str,
        idle_seconds: Optional[float] = None,
        stale_seconds: Optional[float] = None,
        timer_factory: Callable[[float, Callable[[], None]], object] = _daemon_timer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._emit = emit
        self._user_id = user_id
        self._idle_seconds = (
            idle_seconds
            if idle_seconds is not None
            else read_float_env("CHAT_TYPING_IDLE_SECONDS", DEFAULT_IDLE_SECONDS)
        )
        self._stale_seconds = (
            stale_seconds
            if stale_seconds is not None
            else read_float_env("CHAT_TYPING_STALE_SECONDS", DEFAULT_STALE_SECONDS, allow_zero=True)
        )
        self._timer_factory = timer_factory
        self._clock = clock
        self._lock = Lock()
        self._timer = None
        self._typing: Dict[str, float] = {}

    @property
    def idle_seconds(self) -> float:
        return self._idle_seconds

    def keystroke(self, room: str) -> None:
        self._emit("typing", room)
        timer = self._timer_factory(self._idle_seconds, lambda: self._emit("stop-typing", room))
        with self._lock:
            previous, self._timer = self._timer, timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def cancel(self) -> None:
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def user_typing(self, user_id: Optional[str]) -> None:
        if not user_id or user_id == self._user_id:
            return
        with self._lock:
            self._typing[user_id] = self._clock()

    def user_stopped_typing(self, user_id: Optional[str]) -> None:
        if not user_id or user_id == self._user_id:
            return
        with self._lock:
            self._typing.pop(user_id, None)

    def typing_users(self) -> List[str]:
        with self._lock:
            if self._stale_seconds > 0:
                cutoff = self._clock() - self._stale_seconds
                self._typing = {uid: seen for uid, seen in self._typing.items() if seen > cutoff}
            return list(self._typing)

    def clear(self) -> None:
        self.cancel()
        with self._lock:
            self._typing.clear()

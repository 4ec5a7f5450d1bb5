import os
import time
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from skillconnect.models import HelpTopic, SupportTurn
from skillconnect.services.typing_tracker import read_float_env

DEFAULT_SUPPORT_EMAIL = "skillconnect4b410@gmail.com"
DEFAULT_CONVERSATION_IDLE_SECONDS = 1800.0

SUPPORT_OPTIONS: Dict[str, str] = {
    "password": "I need help with password reset",
    "booking": "I need help with booking a service",
    "account": "I have account issues",
    "technical": "I have a technical issue or found a bug",
    "other": "I have another support request",
}


def support_email() -> str:
    return os.getenv("SUPPORT_CONTACT_EMAIL", "").strip() or DEFAULT_SUPPORT_EMAIL


def _mentions(*words: str) -> Callable[[str], bool]:
    return lambda text: any(word in text for word in words)


def _rules(email: str) -> List[Tuple[Callable[[str], bool], str]]:
    return [
        (
            _mentions("password"),
            f"For password issues, please visit the Account Settings page or contact us at {email}.",
        ),
        (
            _mentions("booking"),
            "To book a service, navigate to the skilled users list and select a service. "
            "If you need help, check our help center.",
        ),
        (
            _mentions("account"),
            f"For account-related issues, please check your profile settings or contact us at {email}.",
        ),
        (
            _mentions("technical", "bug", "report"),
            "For technical issues or bugs, please provide details about what happened and your "
            "device/browser info. We'll investigate and get back to you.",
        ),
        (
            _mentions("help", "support", "other", "contact"),
            "I'm here to help! Please describe your issue in detail.",
        ),
    ]


def support_reply(message: str) -> str:
    email = support_email()
    text = message.lower()
    for matches, reply in _rules(email):
        if matches(text):
            return reply
    return f"Thank you for contacting support. Our team will respond shortly. For urgent issues, email {email}."


def help_topics() -> List[HelpTopic]:
    email = support_email()
    return [
        HelpTopic(
            id=1,
            category="Account",
            title="Password Reset",
            description="Forgot your password or need to change it",
            content="Go to Settings > Account > Change Password. If you forgot your password, "
            "use 'Forgot Password' on the login screen.",
        ),
        HelpTopic(
            id=2,
            category="Account",
            title="Profile Updates",
            description="Update your personal information and profile",
            content="Navigate to Profile section to edit your name, email, phone, and profile picture.",
        ),
        HelpTopic(
            id=3,
            category="Booking",
            title="How to Book Services",
            description="Learn how to find and book skilled workers",
            content="Browse skilled users by service type, check their ratings and reviews, "
            "then send a service request with your requirements.",
        ),
        HelpTopic(
            id=4,
            category="Booking",
            title="Track Service Requests",
            description="Monitor the status of your service requests",
            content="Check your dashboard for active requests. You'll receive notifications when "
            "workers respond or accept your requests.",
        ),
        HelpTopic(
            id=5,
            category="Payments",
            title="Payment Methods",
            description="Information about payments and billing",
            content="Payments are processed securely through our platform. Contact support for billing questions.",
        ),
        HelpTopic(
            id=6,
            category="Technical",
            title="App Issues",
            description="Report bugs or technical problems",
            content="Please describe the issue you're experiencing. Include your device type and "
            "app version for faster resolution.",
        ),
        HelpTopic(
            id=7,
            category="Technical",
            title="Connection Problems",
            description="Issues with internet connectivity",
            content="Ensure you have a stable internet connection. Try restarting the app or "
            "checking your network settings.",
        ),
        HelpTopic(
            id=8,
            category="General",
            title="Contact Support",
            description="Get in touch with our support team",
            content=f"Email: {email}\nPhone: Available during business hours\nWe'll respond within 24 hours.",
        ),
    ]


def help_categories(topics: Optional[List[HelpTopic]] = None) -> List[Tuple[str, List[HelpTopic]]]:
    grouped: Dict[str, List[HelpTopic]] = {}
    for topic in topics if topics is not None else help_topics():
        grouped.setdefault(topic.category or "General", []).append(topic)
    return list(grouped.items())


class SupportConversation:
    """Transcript of one user's exchange with the support bot."""

    def __init__(self):
        self._lock = Lock()
        self._turns: List[SupportTurn] = []

    def _turn(self, sender: str, message: str) -> SupportTurn:
        return SupportTurn(sender=sender, message=message, timestamp=datetime.now(timezone.utc))

    def send(self, message: str) -> List[SupportTurn]:
        text = message.strip()
        if not text:
            return self.transcript()
        with self._lock:
            self._turns.append(self._turn("user", text))
            self._turns.append(self._turn("support", support_reply(text)))
            return list(self._turns)

    def choose_option(self, option: str) -> List[SupportTurn]:
        """Start over with the canned message for ``option``."""
        if option not in SUPPORT_OPTIONS:
            raise KeyError(option)
        text = SUPPORT_OPTIONS[option]
        with self._lock:
            self._turns = [self._turn("user", text), self._turn("support", support_reply(text))]
            return list(self._turns)

    def transcript(self) -> List[SupportTurn]:
        with self._lock:
            return list(self._turns)

    def reset(self) -> None:
        with self._lock:
            self._turns = []


class SupportConversationStore:
    def __init__(self, idle_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._lock = Lock()
        self._conversations: Dict[str, SupportConversation] = {}
        self._last_used: Dict[str, float] = {}
        self._idle_seconds = (
            idle_seconds
            if idle_seconds is not None
            else read_float_env("CHAT_SESSION_IDLE_SECONDS", DEFAULT_CONVERSATION_IDLE_SECONDS, allow_zero=True)
        )
        self._clock = clock

    def for_user(self, user_id: str) -> SupportConversation:
        now = self._clock()
        with self._lock:
            if self._idle_seconds > 0:
                cutoff = now - self._idle_seconds
                for stale in [uid for uid, used in self._last_used.items() if used <= cutoff]:
                    self._last_used.pop(stale, None)
                    self._conversations.pop(stale, None)
            self._last_used[user_id] = now
            return self._conversations.setdefault(user_id, SupportConversation())

    def __len__(self) -> int:
        with self._lock:
            return len(self._conversations)

    def clear(self) -> None:
        with self._lock:
            self._conversations.clear()
            self._last_used.clear()


support_conversations = SupportConversationStore()

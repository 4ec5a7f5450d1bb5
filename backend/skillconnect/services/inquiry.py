import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from skillconnect.models import ChatMessage, ChatParticipant, User
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError

logger = logging.getLogger(__name__)

INQUIRY_TITLE_LIMIT = 50
INQUIRY_PENDING_STATUS = "Waiting for provider response"
INQUIRY_SENT_MESSAGE = "Inquiry sent! You'll be able to chat once the provider accepts your request."
INQUIRY_FAILED_MESSAGE = "Failed to send inquiry. Please try again."

_UNSAFE_TITLE_CHARS = re.compile(r"[^a-zA-Z0-9\s\-_.]")


@dataclass
class InquiryOutcome:
    ok: bool
    status: Optional[str] = None
    service_request: Optional[Dict[str, Any]] = None
    messages: List[ChatMessage] = field(default_factory=list)
    error: Optional[str] = None


def inquiry_title(text: str) -> str:
    trimmed = text.strip()
    sanitized = _UNSAFE_TITLE_CHARS.sub("", trimmed)[:INQUIRY_TITLE_LIMIT]
    suffix = "..." if len(trimmed) > INQUIRY_TITLE_LIMIT else ""
    return f"Inquiry - {sanitized}{suffix}"


def build_inquiry_request(user: User, provider_id: str, text: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "targetProvider": provider_id,
        "name": inquiry_title(text),
        "address": user.address or "Not specified",
        "typeOfWork": "Consultation",
        "time": "09:00",
        "budget": 0,
        "notes": f"Inquiry from {user.first_name} {user.last_name}: {text.strip()}",
    }
    if user.phone and user.phone != "Not provided":
        payload["phone"] = user.phone
    return payload


def inquiry_system_message() -> ChatMessage:
    return ChatMessage(
        local_id=f"sys_{uuid4().hex[:10]}",
        sender=ChatParticipant(id="system", first_name="System"),
        message=INQUIRY_SENT_MESSAGE,
        timestamp=datetime.now(timezone.utc),
        status="delivered",
        is_system=True,
    )


def send_inquiry(api: MarketplaceApi, user: User, provider_id: str, text: str) -> InquiryOutcome:
    """Open a conversation with a provider by posting a zero-budget service request.

    The provider has to accept before a chat room exists, so the caller keeps
    sending disabled after a successful inquiry.
    """
    payload = build_inquiry_request(user, provider_id, text)
    try:
        api.post_service_request(payload)
    except MarketplaceApiError as exc:
        logger.warning("Inquiry to provider %s failed: %s", provider_id, exc.message)
        return InquiryOutcome(ok=False, error=exc.message or INQUIRY_FAILED_MESSAGE)

    return InquiryOutcome(
        ok=True,
        status=INQUIRY_PENDING_STATUS,
        service_request={"name": payload["name"], "provider": {"_id": provider_id}},
        messages=[inquiry_system_message()],
    )

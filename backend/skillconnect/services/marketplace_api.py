import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from skillconnect.models import (
    Application,
    Booking,
    ChatSummary,
    Notification,
    Offer,
    Provider,
    ServiceRequest,
    User,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:4000/api/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0
PROVIDER_FETCH_LIMIT = 10000


def _read_timeout_env() -> float:
    raw = os.getenv("MARKETPLACE_API_TIMEOUT_SECONDS", "")
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS
    return value if value > 0 else DEFAULT_TIMEOUT_SECONDS


class MarketplaceApiError(Exception):
    """Upstream call failed; ``message`` is safe to show to the user."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class MarketplaceApi:
    """Thin client for the SkillConnect marketplace REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url or os.getenv("MARKETPLACE_API_URL", DEFAULT_API_URL),
            headers=headers,
            timeout=timeout if timeout is not None else _read_timeout_env(),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "MarketplaceApi":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        fallback: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.warning("Marketplace %s %s failed: %s", method, path, exc)
            raise MarketplaceApiError(fallback) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.is_error or payload.get("success") is False:
            message = payload.get("message") if isinstance(payload.get("message"), str) else None
            logger.warning(
                "Marketplace %s %s returned %s: %s",
                method,
                path,
                response.status_code,
                message or "no message",
            )
            raise MarketplaceApiError(
                message or fallback,
                status_code=response.status_code if response.is_error else 400,
                code=payload.get("code"),
            )
        return payload

    def get_me(self) -> User:
        payload = self._request("GET", "/user/me", "Failed to load your profile")
        return User.model_validate(payload.get("user") or payload.get("profile") or {})

    def list_service_providers(self) -> List[Provider]:
        payload = self._request(
            "GET",
            "/user/service-providers",
            "Failed to load providers",
            params={"page": 1, "limit": PROVIDER_FETCH_LIMIT},
        )
        rows = payload.get("workers") or payload.get("providers") or []
        return [Provider.model_validate(row) for row in rows]

    def list_recommended_providers(self, service_request_id: Optional[str] = None) -> List[Provider]:
        params = {"serviceRequestId": service_request_id} if service_request_id else None
        payload = self._request(
            "GET",
            "/user/recommended-providers",
            "Failed to load recommendations",
            params=params,
        )
        return [Provider.model_validate(row) for row in payload.get("providers") or []]

    def get_provider_profile(self, provider_id: str) -> Provider:
        payload = self._request("GET", f"/user/provider-profile/{provider_id}", "Failed to load provider details")
        if not payload.get("provider"):
            raise MarketplaceApiError("Provider not found", status_code=404)
        return Provider.model_validate(payload["provider"])

    def create_service_request(self, data: Dict[str, Any]) -> ServiceRequest:
        payload = self._request("POST", "/user/create-service-request", "Failed to create service request", json=data)
        return ServiceRequest.model_validate(payload.get("serviceRequest") or payload.get("request") or {})

    def post_service_request(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/user/post-service-request",
            "Failed to send inquiry. Please try again.",
            json=data,
        )

    def send_direct_service_offer(self, provider_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/user/send-direct-service-offer",
            "Failed to send offer. Please try again.",
            json={"providerId": provider_id, **data},
        )

    def offer_to_provider(self, request_id: str, provider_id: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/user/offer-to-provider",
            "Failed to send offer. Please try again.",
            json={"requestId": request_id, "providerId": provider_id},
        )

    def get_service_request(self, request_id: str) -> ServiceRequest:
        payload = self._request("GET", f"/user/service-request/{request_id}", "Failed to load service request details")
        return ServiceRequest.model_validate(payload.get("request") or payload.get("serviceRequest") or {})

    def cancel_service_request(self, request_id: str) -> Dict[str, Any]:
        return self._request(
            "DELETE",
            f"/user/service-request/{request_id}/cancel",
            "Failed to cancel request. Please try again.",
        )

    def list_all_user_requests(self) -> List[ServiceRequest]:
        payload = self._request("GET", "/user/all-user-requests", "Failed to load your requests")
        return [ServiceRequest.model_validate(row) for row in payload.get("requests") or []]

    def list_user_service_requests(self) -> List[ServiceRequest]:
        payload = self._request("GET", "/user/user-service-requests", "Failed to load your requests")
        return [ServiceRequest.model_validate(row) for row in payload.get("requests") or []]

    def list_available_service_requests(self) -> List[ServiceRequest]:
        payload = self._request("GET", "/user/available-service-requests", "Failed to load service requests")
        return [ServiceRequest.model_validate(row) for row in payload.get("requests") or []]

    def list_client_applications(self) -> List[Application]:
        payload = self._request("GET", "/user/client-applications", "Failed to load applications")
        return [Application.model_validate(row) for row in payload.get("applications") or []]

    def list_provider_applications(self) -> List[Application]:
        payload = self._request("GET", "/user/provider-applications", "Failed to load applications")
        return [Application.model_validate(row) for row in payload.get("applications") or []]

    def apply_to_request(self, request_id: str, commission_fee: float) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/user/apply-to-request/{request_id}",
            "Failed to apply to request",
            json={"commissionFee": commission_fee},
        )

    def respond_to_application(self, application_id: str, action: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/user/respond-to-application/{application_id}",
            f"Failed to {action} application",
            json={"action": action},
        )

    def list_provider_offers(self) -> List[Offer]:
        payload = self._request(
            "GET",
            "/user/provider-offers",
            "Failed to load offers",
            params={"page": 1, "limit": PROVIDER_FETCH_LIMIT},
        )
        return [Offer.model_validate(row) for row in payload.get("offers") or []]

    def respond_to_offer(self, offer_id: str, action: str, offer_type: str = "direct") -> Dict[str, Any]:
        fallback = f"Failed to {action} offer"
        if offer_type == "request":
            verb = "accept" if action == "accept" else "reject"
            return self._request("POST", f"/user/offer/{offer_id}/{verb}", fallback)
        return self._request("POST", f"/user/respond-to-offer/{offer_id}", fallback, json={"action": action})

    def get_chat_list(self) -> List[ChatSummary]:
        payload = self._request("GET", "/user/chat-list", "Failed to load chats")
        summaries: List[ChatSummary] = []
        for row in payload.get("chatList") or []:
            try:
                summaries.append(ChatSummary.model_validate(row))
            except ValueError:
                logger.warning("Skipping malformed chat summary: %r", row)
        return summaries

    def get_chat_history(self) -> List[Dict[str, Any]]:
        payload = self._request("GET", "/user/chat-history", "Failed to load chat history")
        return list(payload.get("chatHistory") or [])

    def send_message(self, appointment_id: str, message: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/user/send-message",
            "Failed to send message",
            json={"appointmentId": appointment_id, "message": message},
        )

    def mark_seen(self, appointment_id: str) -> None:
        self._request("PUT", f"/user/chat/{appointment_id}/mark-seen", "Failed to mark messages as seen")

    def get_booking(self, appointment_id: str) -> Optional[Booking]:
        payload = self._request("GET", f"/user/booking/{appointment_id}", "Failed to load booking")
        booking = payload.get("booking")
        return Booking.model_validate(booking) if booking else None

    def list_bookings(self, status: Optional[str] = None) -> List[Booking]:
        params = {"status": status} if status else None
        payload = self._request("GET", "/user/bookings", "Failed to load bookings", params=params)
        return [Booking.model_validate(row) for row in payload.get("bookings") or []]

    def list_work_proof(self) -> List[Dict[str, Any]]:
        payload = self._request("GET", "/user/my-work-proof", "Failed to load work proof")
        return list(payload.get("workProof") or [])

    def report_user(self, reported_user_id: str, reason: str, appointment_id: Optional[str]) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/user/report-user",
            "Failed to report user. Please try again.",
            json={"reportedUserId": reported_user_id, "reason": reason, "appointmentId": appointment_id},
        )

    def block_user(self, target_user_id: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/user/block-user",
            "Failed to block user. Please try again.",
            json={"targetUserId": target_user_id},
        )

    def submit_review(self, booking_id: str, rating: int, comments: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/review",
            "Failed to submit rating. Please try again.",
            json={"bookingId": booking_id, "rating": rating, "comments": comments},
        )

    def list_my_reviews(self) -> List[Dict[str, Any]]:
        payload = self._request("GET", "/review/my-reviews", "Failed to load reviews")
        return list(payload.get("reviews") or [])

    def list_notifications(self) -> List[Notification]:
        payload = self._request("GET", "/user/notifications", "Failed to load notifications")
        return [Notification.model_validate(row) for row in payload.get("notifications") or []]

    def mark_notification_read(self, notification_id: str) -> None:
        self._request("PUT", f"/user/notifications/{notification_id}/read", "Failed to mark notification as read")

    def mark_all_notifications_read(self) -> None:
        self._request("PUT", "/user/notifications/mark-all-read", "Failed to mark notifications as read")

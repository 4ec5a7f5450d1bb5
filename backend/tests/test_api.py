import json
import os
import sys

import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from skillconnect.auth import get_api
from skillconnect.main import app
from skillconnect.services.chat_session import chat_sessions
from skillconnect.services.marketplace_api import MarketplaceApi
from skillconnect.services.notification_store import notification_store
from skillconnect.services.preference_store import PreferenceStore, get_preference_store
from skillconnect.services.support_bot import support_conversations

client = TestClient(app)


class FakeMarketplace:
    def __init__(self):
        self.calls = []
        self.me = {"success": True, "user": {"_id": "me", "firstName": "Ana", "lastName": "Cruz", "skills": ["plumbing"], "verified": True}}
        self.routes = {
            ("GET", "/user/service-providers"): {
                "success": True,
                "workers": [
                    {"_id": "p1", "firstName": "Ana", "averageRating": 4.9, "serviceRate": 400},
                    {"_id": "p2", "firstName": "Bo", "averageRating": 3.2, "serviceRate": 200},
                ],
            },
            ("GET", "/user/provider-profile/p1"): {"success": True, "provider": {"_id": "p1", "firstName": "Ana"}},
            ("GET", "/user/all-user-requests"): {
                "success": True,
                "requests": [
                    {"_id": "r1", "title": "Fix sink", "status": "Open"},
                    {"_id": "r1", "title": "Fix sink", "status": "Open"},
                    {"_id": "r2", "title": "Paint", "status": "Completed"},
                ],
            },
            ("GET", "/user/available-service-requests"): {
                "success": True,
                "requests": [
                    {"_id": "j1", "typeOfWork": "Plumbing", "budget": 2000},
                    {"_id": "j2", "typeOfWork": "Painting", "budget": 100},
                ],
            },
            ("GET", "/user/service-request/r9"): {
                "success": True,
                "request": {"_id": "r9", "name": "Roof repair", "minBudget": 500, "maxBudget": 3000},
            },
            ("GET", "/user/provider-applications"): {
                "success": True,
                "applications": [{"_id": "x1", "serviceRequest": {"_id": "r1"}}],
            },
            ("GET", "/user/chat-list"): {
                "success": True,
                "chatList": [
                    {
                        "otherUser": {"_id": "u2", "firstName": "Bo", "lastName": "Reyes"},
                        "appointmentId": "a1",
                        "unreadCount": 2,
                        "lastMessage": {"_id": "m1", "message": "hey", "timestamp": "2024-05-01T10:00:00Z"},
                    }
                ],
            },
            ("GET", "/user/chat-history"): {
                "success": True,
                "chatHistory": [{"appointmentId": "a1", "messages": [{"_id": "m1", "message": "hey"}]}],
            },
            ("GET", "/user/booking/a1"): {
                "success": True,
                "booking": {"_id": "a1", "status": "Working", "provider": "u2", "requester": "me"},
            },
            ("GET", "/user/bookings"): {
                "success": True,
                "bookings": [
                    {"_id": "b1", "status": "In Progress", "provider": {"_id": "me"}, "requester": {"_id": "u2"}},
                    {"_id": "b2", "status": "In Progress", "provider": {"_id": "u9"}, "requester": {"_id": "me"}},
                    {"_id": "b3", "status": "Completed", "provider": {"_id": "me"}, "requester": {"_id": "u2"}},
                ],
            },
            ("GET", "/user/my-work-proof"): {
                "success": True,
                "workProof": [{"_id": "w1", "title": "Rewired kitchen", "verified": True}],
            },
            ("GET", "/user/notifications"): {
                "success": True,
                "notifications": [
                    {"_id": "n1", "title": "Offer", "message": "New offer", "read": False},
                    {"_id": "n2", "title": "Done", "message": "Job done", "read": True},
                ],
            },
        }

    def handler(self, request):
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body))
        if request.url.path == "/user/me":
            return httpx.Response(200 if self.me.get("success") else 403, json=self.me)
        payload = self.routes.get((request.method, request.url.path))
        if payload is not None:
            return httpx.Response(200, json=payload)
        if request.method in ("POST", "PUT", "DELETE"):
            return httpx.Response(200, json={"success": True})
        return httpx.Response(404, json={"success": False, "message": "Not found"})

    def paths(self):
        return [path for _, path, _ in self.calls]


@pytest.fixture
def upstream(tmp_path):
    fake = FakeMarketplace()
    store = PreferenceStore(db_path=str(tmp_path / "prefs.sqlite3"))
    app.dependency_overrides[get_api] = lambda: MarketplaceApi(
        token="t", base_url="http://upstream.test", transport=httpx.MockTransport(fake.handler)
    )
    app.dependency_overrides[get_preference_store] = lambda: store
    yield fake
    app.dependency_overrides.clear()
    chat_sessions.clear()
    notification_store.clear()
    support_conversations.clear()


def test_health_ok():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_bearer_token_is_rejected():
    response = client.get("/providers")
    assert response.status_code == 401


def test_session_reports_active_user(upstream):
    response = client.get("/auth/session")
    assert response.status_code == 200
    assert response.json()["state"] == "active"


def test_session_reports_pending_verification(upstream):
    upstream.me = {"success": False, "code": "ACCOUNT_NOT_VERIFIED", "message": "Verify first"}
    response = client.get("/auth/session")
    assert response.status_code == 200
    assert response.json() == {"state": "verification_pending", "user": None}


def test_banned_user_is_forbidden(upstream):
    upstream.me["user"]["banned"] = True
    response = client.get("/auth/session")
    assert response.status_code == 403
    assert response.json()["detail"] == "Your account has been banned"


def test_unverified_user_gets_verification_pending(upstream):
    upstream.me["user"]["verified"] = False
    response = client.get("/auth/session")
    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "verification_pending"
    assert body["user"]["_id"] == "me"


def test_unverified_user_cannot_open_chats(upstream):
    upstream.me["user"]["verified"] = False
    response = client.get("/chat/list")
    assert response.status_code == 403
    assert response.json()["detail"] == "Please verify your account to continue"
    assert "/user/chat-list" not in upstream.paths()


def test_banned_user_cannot_open_chats(upstream):
    upstream.me["user"]["banned"] = True
    response = client.get("/chat/list")
    assert response.status_code == 403
    assert response.json()["detail"] == "Your account has been banned"


def test_banned_user_cannot_send_direct_offer(upstream):
    upstream.me["user"]["banned"] = True
    response = client.post(
        "/providers/p1/offer",
        json={
            "title": "Fix sink",
            "description": "Leak",
            "location": "Tondo",
            "min_budget": 500,
            "max_budget": 1500,
            "preferred_date": "2024-06-10",
            "preferred_time": "09:00",
        },
    )
    assert response.status_code == 403
    assert "/user/send-direct-service-offer" not in upstream.paths()


@pytest.mark.parametrize(
    "method, path",
    [
        ("GET", "/providers"),
        ("GET", "/requests"),
        ("GET", "/applications"),
        ("GET", "/offers"),
        ("GET", "/bookings"),
        ("POST", "/reviews"),
    ],
)
def test_marketplace_routes_require_verified_account(upstream, method, path):
    upstream.me["user"]["verified"] = False
    response = client.request(method, path, json={"booking_id": "a1", "rating": 5} if method == "POST" else None)
    assert response.status_code == 403
    assert upstream.paths() == ["/user/me"]


def test_providers_are_filtered_and_paged(upstream):
    response = client.get("/providers", params={"min_rating": 4, "sort_by": "rating"})
    assert response.status_code == 200
    page = response.json()
    assert page["total"] == 1
    assert page["items"][0]["_id"] == "p1"
    assert ("GET", "/user/service-providers", None) in upstream.calls


def test_unknown_sort_is_rejected(upstream):
    response = client.get("/providers", params={"sort_by": "cheapest"})
    assert response.status_code == 400


def test_direct_offer_with_inverted_budget_never_reaches_upstream(upstream):
    response = client.post(
        "/providers/p1/offer",
        json={
            "title": "Fix sink",
            "description": "Leak",
            "location": "Tondo",
            "min_budget": 2000,
            "max_budget": 1000,
            "preferred_date": "2024-06-10",
            "preferred_time": "09:00",
        },
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Minimum budget cannot be greater than maximum budget"
    assert "/user/send-direct-service-offer" not in upstream.paths()


def test_direct_offer_is_forwarded(upstream):
    response = client.post(
        "/providers/p1/offer",
        json={
            "title": "Fix sink",
            "description": "Leak",
            "location": "Tondo",
            "min_budget": "500",
            "max_budget": "1500",
            "preferred_date": "2024-06-10",
            "preferred_time": "09:00",
        },
    )
    assert response.status_code == 200
    method, path, body = upstream.calls[-1]
    assert path == "/user/send-direct-service-offer"
    assert body["providerId"] == "p1"
    assert body["minBudget"] == 500
    assert body["maxBudget"] == 1500


def test_my_requests_are_deduplicated_and_filtered(upstream):
    response = client.get("/requests", params={"status": "Open"})
    assert response.status_code == 200
    assert [row["_id"] for row in response.json()] == ["r1"]


def test_available_jobs_rank_by_relevance(upstream):
    response = client.get("/requests/available")
    assert response.status_code == 200
    assert [row["_id"] for row in response.json()["items"]] == ["j1", "j2"]


def test_duplicate_application_conflicts(upstream):
    response = client.post("/requests/r1/apply", json={"commission_fee": 100})
    assert response.status_code == 409
    assert "/user/apply-to-request/r1" not in upstream.paths()


def test_commission_fee_above_budget_is_rejected(upstream):
    response = client.post("/requests/r9/apply", json={"commission_fee": 5000})
    assert response.status_code == 400
    assert response.json()["detail"] == "Commission fee cannot exceed ₱3,000"


def test_application_is_submitted(upstream):
    response = client.post("/requests/r9/apply", json={"commission_fee": "1200"})
    assert response.status_code == 200
    assert "Roof repair" in response.json()["message"]
    assert ("POST", "/user/apply-to-request/r9", {"commissionFee": 1200.0}) in upstream.calls


def test_request_offer_decline_uses_reject_endpoint(upstream):
    response = client.post("/offers/o1/respond", json={"action": "decline", "type": "request"})
    assert response.status_code == 200
    assert "/user/offer/o1/reject" in upstream.paths()


def test_upstream_outage_maps_to_bad_gateway(upstream):
    def broken(request):
        raise httpx.ConnectError("down")

    app.dependency_overrides[get_api] = lambda: MarketplaceApi(
        token="t", base_url="http://upstream.test", transport=httpx.MockTransport(broken)
    )
    response = client.get("/providers/p1")
    assert response.status_code == 502


def test_upstream_not_found_is_passed_through(upstream):
    response = client.get("/providers/zz")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not found"


def test_chat_flow_over_http(upstream):
    listing = client.get("/chat/list")
    assert listing.status_code == 200
    assert listing.json()["total_unread"] == 2

    opened = client.post("/chat/open", json={"appointment_id": "a1"})
    assert opened.status_code == 200
    state = opened.json()
    assert state["view"] == "chat"
    assert state["emissions"] == [{"event": "join-chat", "room": "a1"}]
    assert state["total_unread"] == 0

    sent = client.post("/chat/send", json={"message": "on my way"})
    assert sent.status_code == 200
    assert sent.json()["messages"][-1]["message"] == "on my way"
    assert {"event": "stop-typing", "room": "a1"} in sent.json()["emissions"]

    typing = client.post("/chat/typing")
    assert {"event": "typing", "room": "a1"} in typing.json()["emissions"]

    event = client.post(
        "/chat/events",
        json={"event": "new-message", "data": {"_id": "m1", "appointment": "a1", "message": "hey"}},
    )
    assert len(event.json()["messages"]) == 2

    back = client.post("/chat/back")
    assert back.json()["view"] == "list"

    closed = client.delete("/chat/session")
    assert closed.json() == {"status": "closed"}


def test_chat_rate_validates_rating(upstream):
    client.get("/chat/list")
    client.post("/chat/open", json={"appointment_id": "a1"})
    response = client.post("/chat/rate", json={"rating": 9})
    assert response.status_code == 400
    assert response.json()["detail"] == "Please enter a rating between 1 and 5."


def test_notifications_sync_and_mark_read(upstream):
    synced = client.post("/notifications/sync")
    assert synced.status_code == 200
    assert client.get("/notifications/unread-count").json() == {"unread_count": 1}

    read = client.post("/notifications/n1/read")
    assert read.status_code == 200
    assert read.json()["read"] is True
    assert "/user/notifications/n1/read" in upstream.paths()
    assert client.get("/notifications", params={"unread_only": True}).json() == []


def test_mark_read_before_any_sync_pulls_the_inbox(upstream):
    read = client.post("/notifications/n1/read")
    assert read.status_code == 200
    assert read.json()["_id"] == "n1"
    assert read.json()["read"] is True
    assert upstream.paths()[-2:] == ["/user/notifications/n1/read", "/user/notifications"]
    assert client.get("/notifications/unread-count").json() == {"unread_count": 0}


def test_mark_read_of_unknown_notification_is_not_found(upstream):
    response = client.post("/notifications/zz/read")
    assert response.status_code == 404


def test_provider_bookings_filtered_by_status_and_side(upstream):
    response = client.get("/bookings", params={"status": "In Progress", "role": "provider"})
    assert response.status_code == 200
    assert [row["_id"] for row in response.json()] == ["b1"]
    everything = client.get("/bookings").json()
    assert [row["_id"] for row in everything] == ["b1", "b2", "b3"]


def test_work_proof_is_listed(upstream):
    response = client.get("/bookings/work-proof")
    assert response.status_code == 200
    assert response.json() == [{"_id": "w1", "title": "Rewired kitchen", "verified": True}]


def test_booking_details(upstream):
    response = client.get("/bookings/a1")
    assert response.status_code == 200
    assert response.json()["status"] == "Working"


def test_support_endpoints(upstream):
    topics = client.get("/support/topics").json()
    assert len(topics["topics"]) == 8
    turns = client.post("/support/options/password").json()
    assert turns[1]["message"].startswith("For password issues")
    assert client.post("/support/options/billing").status_code == 404
    follow_up = client.post("/support/messages", json={"message": "still stuck"}).json()
    assert len(follow_up) == 4


def test_preferences_round_trip(upstream):
    assert client.post("/preferences/favorites/p1").json()["favorite_providers"] == ["p1"]
    assert client.post("/preferences/recent-searches", json={"term": "plumber"}).json() == ["plumber"]
    saved = client.post("/preferences/saved-searches", json={"name": "Plumbers", "filters": {"search": "plumber"}})
    assert saved.status_code == 200
    bad = client.post("/preferences/saved-searches", json={"name": "Empty", "filters": {}})
    assert bad.status_code == 400
    prefs = client.get("/preferences").json()
    assert [s["name"] for s in prefs["saved_searches"]] == ["Plumbers"]
    assert client.delete(f"/preferences/saved-searches/{saved.json()['id']}").status_code == 200


def test_review_is_validated_before_posting(upstream):
    response = client.post("/reviews", json={"booking_id": "a1", "rating": 0})
    assert response.status_code == 400
    assert "/review" not in upstream.paths()
    ok = client.post("/reviews", json={"booking_id": "a1", "rating": 5, "comments": "great"})
    assert ok.status_code == 200
    assert ("POST", "/review", {"bookingId": "a1", "rating": 5, "comments": "great"}) in upstream.calls

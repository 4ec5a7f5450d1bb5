from fastapi import APIRouter, Depends, HTTPException, Query

from skillconnect.auth import get_api, get_current_user
from skillconnect.http_errors import raise_http_error
from skillconnect.models import Notification, User
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError
from skillconnect.services.notification_store import notification_store

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[Notification])
def list_notifications(
    unread_only: bool = Query(default=False),
    user: User = Depends(get_current_user),
):
    return notification_store.list_for_user(user_id=user.id, unread_only=unread_only)


@router.get("/unread-count", response_model=dict)
def unread_count(user: User = Depends(get_current_user)):
    return {"unread_count": notification_store.unread_count(user.id)}


@router.post("/sync", response_model=list[Notification])
def sync_notifications(user: User = Depends(get_current_user), api: MarketplaceApi = Depends(get_api)):
    try:
        rows = api.list_notifications()
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    return notification_store.sync(user.id, rows)


@router.post("/read-all", response_model=dict)
def mark_all_read(user: User = Depends(get_current_user), api: MarketplaceApi = Depends(get_api)):
    try:
        api.mark_all_notifications_read()
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    return {"status": "ok", "updated": notification_store.mark_all_read(user.id)}


@router.post("/{notification_id}/read", response_model=Notification)
def mark_notification_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        api.mark_notification_read(notification_id)
        updated = notification_store.mark_read(user_id=user.id, notification_id=notification_id)
        if updated is None:
            # Inbox never synced; upstream now holds the read copy.
            notification_store.sync(user.id, api.list_notifications())
            updated = notification_store.mark_read(user_id=user.id, notification_id=notification_id)
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    if not updated:
        raise HTTPException(status_code=404, detail="Notification not found")
    return updated

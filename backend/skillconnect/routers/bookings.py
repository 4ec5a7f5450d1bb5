from typing import Any, Dict, List, Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from skillconnect.auth import get_api, get_current_user
from skillconnect.http_errors import raise_http_error
from skillconnect.models import Booking, User
from skillconnect.services.browse import filter_bookings, unique_by_id
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=list[Booking])
def list_bookings(
    status: str = Query(default="All"),
    role: Literal["all", "provider", "requester"] = Query(default="all"),
    user: User = Depends(get_current_user),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        rows = api.list_bookings(status=None if status == "All" else status)
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    return filter_bookings(unique_by_id(rows), user_id=user.id, status=status, role=role)


@router.get("/work-proof", response_model=List[Dict[str, Any]])
def my_work_proof(user: User = Depends(get_current_user), api: MarketplaceApi = Depends(get_api)):
    try:
        return api.list_work_proof()
    except MarketplaceApiError as exc:
        raise_http_error(exc)


@router.get("/{booking_id}", response_model=Booking)
def booking_details(booking_id: str, user: User = Depends(get_current_user), api: MarketplaceApi = Depends(get_api)):
    try:
        booking = api.get_booking(booking_id)
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking

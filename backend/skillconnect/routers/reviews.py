from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from skillconnect.auth import get_api, get_current_user
from skillconnect.http_errors import raise_http_error
from skillconnect.models import ReviewCreate
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError
from skillconnect.services.validation import FormValidationError, validate_review

router = APIRouter(prefix="/reviews", tags=["reviews"], dependencies=[Depends(get_current_user)])


@router.post("", response_model=dict)
def submit_review(payload: ReviewCreate, api: MarketplaceApi = Depends(get_api)):
    try:
        rating = validate_review(payload.rating)
        api.submit_review(payload.booking_id, rating, payload.comments)
    except (FormValidationError, MarketplaceApiError) as exc:
        raise_http_error(exc)
    return {"status": "ok", "rating": rating}


@router.get("/mine", response_model=List[Dict[str, Any]])
def my_reviews(api: MarketplaceApi = Depends(get_api)):
    try:
        return api.list_my_reviews()
    except MarketplaceApiError as exc:
        raise_http_error(exc)

from fastapi import APIRouter, Depends

from skillconnect.auth import get_api, get_current_user
from skillconnect.http_errors import raise_http_error
from skillconnect.models import Offer, OfferRespondRequest
from skillconnect.services.browse import unique_by_id
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError

router = APIRouter(prefix="/offers", tags=["offers"], dependencies=[Depends(get_current_user)])


@router.get("", response_model=list[Offer])
def list_offers(api: MarketplaceApi = Depends(get_api)):
    try:
        return unique_by_id(api.list_provider_offers())
    except MarketplaceApiError as exc:
        raise_http_error(exc)


@router.post("/{offer_id}/respond", response_model=dict)
def respond_to_offer(offer_id: str, payload: OfferRespondRequest, api: MarketplaceApi = Depends(get_api)):
    try:
        api.respond_to_offer(offer_id, payload.action, offer_type=payload.type)
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    verb = "accepted" if payload.action == "accept" else "declined"
    return {"status": "ok", "message": f"Offer {verb} successfully!"}

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from skillconnect.auth import get_api, get_current_user
from skillconnect.http_errors import raise_http_error
from skillconnect.models import DirectOfferCreate, Page, Provider, ProviderFilters
from skillconnect.services.browse import filter_providers, page_size_for, paginate
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError
from skillconnect.services.validation import FormValidationError, parse_number, validate_direct_offer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/providers", tags=["providers"], dependencies=[Depends(get_current_user)])


@router.get("", response_model=Page)
def list_providers(
    search: str = Query(default=""),
    service: str = Query(default=""),
    min_rating: float = Query(default=0),
    max_rate: float = Query(default=10000),
    location: str = Query(default=""),
    verified: bool = Query(default=False),
    top_rated: bool = Query(default=False),
    available_now: bool = Query(default=False),
    sort_by: str = Query(default="rating"),
    page: int = Query(default=1),
    small_device: bool = Query(default=False),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        filters = ProviderFilters(
            search=search,
            service=service,
            min_rating=min_rating,
            max_rate=max_rate,
            location=location,
            verified=verified,
            top_rated=top_rated,
            available_now=available_now,
            sort_by=sort_by,
        )
    except ValueError:
        raise_http_error(FormValidationError(f"Unsupported sort option: {sort_by}"))
    try:
        providers = api.list_service_providers()
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    rows = filter_providers(providers, filters)
    return paginate(rows, page=page, per_page=page_size_for(small_device))


@router.get("/recommended", response_model=list[Provider])
def recommended_providers(
    service_request_id: Optional[str] = Query(default=None),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        return api.list_recommended_providers(service_request_id)
    except MarketplaceApiError as exc:
        raise_http_error(exc)


@router.get("/{provider_id}", response_model=Provider)
def provider_profile(provider_id: str, api: MarketplaceApi = Depends(get_api)):
    try:
        return api.get_provider_profile(provider_id)
    except MarketplaceApiError as exc:
        raise_http_error(exc)


@router.post("/{provider_id}/offer", response_model=dict)
def send_direct_offer(provider_id: str, payload: DirectOfferCreate, api: MarketplaceApi = Depends(get_api)):
    try:
        validate_direct_offer(payload)
        api.send_direct_service_offer(
            provider_id,
            {
                "title": payload.title,
                "description": payload.description,
                "location": payload.location,
                "minBudget": parse_number(payload.min_budget),
                "maxBudget": parse_number(payload.max_budget),
                "preferredDate": payload.preferred_date or None,
                "preferredTime": payload.preferred_time or None,
            },
        )
    except (FormValidationError, MarketplaceApiError) as exc:
        raise_http_error(exc)
    logger.info("Direct offer sent to provider %s", provider_id)
    return {"status": "ok", "message": "Service request sent successfully!"}

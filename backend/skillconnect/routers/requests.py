import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from skillconnect.auth import get_api, get_current_user
from skillconnect.http_errors import raise_http_error
from skillconnect.models import (
    ApplyRequest,
    JobFilters,
    OfferToProviderRequest,
    Page,
    RequestFilters,
    ServiceRequest,
    ServiceRequestCreate,
    User,
)
from skillconnect.services.browse import filter_jobs, filter_requests, page_size_for, paginate, unique_by_id
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError
from skillconnect.services.validation import (
    DUPLICATE_APPLICATION_MESSAGE,
    DuplicateApplicationError,
    FormValidationError,
    format_peso,
    has_already_applied,
    validate_commission_fee,
    validate_service_request,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"], dependencies=[Depends(get_current_user)])


@router.get("", response_model=list[ServiceRequest])
def my_requests(
    search: str = Query(default=""),
    status: str = Query(default="All"),
    service_type: str = Query(default="All"),
    min_budget: Optional[float] = Query(default=None),
    max_budget: Optional[float] = Query(default=None),
    api: MarketplaceApi = Depends(get_api),
):
    filters = RequestFilters(
        search=search,
        status=status,
        service_type=service_type,
        min_budget=min_budget,
        max_budget=max_budget,
    )
    try:
        rows = api.list_all_user_requests()
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    return filter_requests(unique_by_id(rows), filters)


@router.post("", response_model=ServiceRequest)
def create_request(payload: ServiceRequestCreate, api: MarketplaceApi = Depends(get_api)):
    try:
        validate_service_request(payload)
        created = api.create_service_request(
            {
                "title": payload.title.strip(),
                "description": payload.description.strip(),
                "location": payload.location.strip(),
                "serviceCategory": payload.service_category,
                "budgetRange": {"min": payload.min_budget, "max": payload.max_budget},
                "preferredDate": payload.preferred_date or None,
                "preferredTime": payload.preferred_time or None,
                "notes": payload.notes,
            }
        )
    except (FormValidationError, MarketplaceApiError) as exc:
        raise_http_error(exc)
    logger.info("Service request %s created", created.id)
    return created


@router.get("/available", response_model=Page)
def available_jobs(
    service_type: str = Query(default=""),
    min_budget: float = Query(default=0),
    max_budget: float = Query(default=10000),
    date_range: str = Query(default="any"),
    urgency: str = Query(default="any"),
    sort_by: str = Query(default="relevance"),
    page: int = Query(default=1),
    small_device: bool = Query(default=False),
    user: User = Depends(get_current_user),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        filters = JobFilters(
            service_type=service_type,
            min_budget=min_budget,
            max_budget=max_budget,
            date_range=date_range,
            urgency=urgency,
            sort_by=sort_by,
        )
    except ValueError:
        raise_http_error(FormValidationError("Unsupported job filter"))
    try:
        jobs = api.list_available_service_requests()
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    rows = filter_jobs(unique_by_id(jobs), filters, skills=user.skills)
    return paginate(rows, page=page, per_page=page_size_for(small_device))


@router.get("/{request_id}", response_model=ServiceRequest)
def request_details(request_id: str, api: MarketplaceApi = Depends(get_api)):
    try:
        return api.get_service_request(request_id)
    except MarketplaceApiError as exc:
        raise_http_error(exc)


@router.post("/{request_id}/offer-to-provider", response_model=dict)
def offer_to_provider(request_id: str, payload: OfferToProviderRequest, api: MarketplaceApi = Depends(get_api)):
    try:
        api.offer_to_provider(request_id, payload.provider_id)
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    return {"status": "ok"}


@router.post("/{request_id}/apply", response_model=dict)
def apply_to_request(request_id: str, payload: ApplyRequest, api: MarketplaceApi = Depends(get_api)):
    try:
        fee = validate_commission_fee(payload.commission_fee)
        if has_already_applied(api.list_provider_applications(), request_id):
            raise DuplicateApplicationError(DUPLICATE_APPLICATION_MESSAGE)
        request = api.get_service_request(request_id)
        validate_commission_fee(fee, request)
        api.apply_to_request(request_id, fee)
    except (FormValidationError, MarketplaceApiError) as exc:
        raise_http_error(exc)
    title = request.name or request.title or "this request"
    return {
        "status": "ok",
        "message": (
            f'Your application for "{title}" has been submitted successfully '
            f"with a commission fee of {format_peso(fee)}!"
        ),
    }


@router.delete("/{request_id}", response_model=dict)
def cancel_request(request_id: str, api: MarketplaceApi = Depends(get_api)):
    try:
        api.cancel_service_request(request_id)
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    return {"status": "cancelled"}

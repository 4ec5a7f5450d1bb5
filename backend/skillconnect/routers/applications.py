from typing import Literal

from fastapi import APIRouter, Depends, Query

from skillconnect.auth import get_api, get_current_user
from skillconnect.http_errors import raise_http_error
from skillconnect.models import Application, RespondRequest
from skillconnect.services.browse import filter_applications, unique_by_id
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError

router = APIRouter(prefix="/applications", tags=["applications"], dependencies=[Depends(get_current_user)])


@router.get("", response_model=list[Application])
def list_applications(
    role: Literal["client", "provider"] = Query(default="client"),
    status: str = Query(default="All"),
    search: str = Query(default=""),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        if role == "provider":
            rows = api.list_provider_applications()
        else:
            rows = api.list_client_applications()
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    return filter_applications(unique_by_id(rows), status=status, search=search)


@router.post("/{application_id}/respond", response_model=dict)
def respond_to_application(application_id: str, payload: RespondRequest, api: MarketplaceApi = Depends(get_api)):
    try:
        api.respond_to_application(application_id, payload.action)
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    verb = "accepted" if payload.action == "accept" else "declined"
    return {"status": "ok", "message": f"Application {verb} successfully!"}

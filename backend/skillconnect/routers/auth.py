from fastapi import APIRouter, Depends

from skillconnect.auth import get_api, load_account_session
from skillconnect.http_errors import raise_http_error
from skillconnect.models import AccountSession
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/session", response_model=AccountSession)
def session(api: MarketplaceApi = Depends(get_api)):
    try:
        return load_account_session(api)
    except MarketplaceApiError as exc:
        raise_http_error(exc)

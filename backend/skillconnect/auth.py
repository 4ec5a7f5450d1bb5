from typing import Iterator, Optional

from fastapi import Depends, Header, HTTPException, status

from skillconnect.http_errors import raise_http_error
from skillconnect.models import AccountSession, User
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError

ACCOUNT_NOT_VERIFIED = "ACCOUNT_NOT_VERIFIED"
BANNED_DETAIL = "Your account has been banned"
VERIFICATION_DETAIL = "Please verify your account to continue"


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def require_bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    token = parse_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing bearer token")
    return token


def get_api(token: str = Depends(require_bearer_token)) -> Iterator[MarketplaceApi]:
    """Marketplace client acting as the caller; closed when the request ends."""
    api = MarketplaceApi(token=token)
    try:
        yield api
    finally:
        api.close()


def resolve_account_state(user: User) -> str:
    if user.banned:
        return "banned"
    if not user.verified:
        return "verification_pending"
    if user.type == "admin" or user.role == "Admin":
        return "admin"
    return "active"


def load_account_session(api: MarketplaceApi) -> AccountSession:
    try:
        user = api.get_me()
    except MarketplaceApiError as exc:
        if exc.code == ACCOUNT_NOT_VERIFIED:
            return AccountSession(state="verification_pending")
        raise
    state = resolve_account_state(user)
    if state == "banned":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=BANNED_DETAIL)
    return AccountSession(state=state, user=user)


def get_current_user(api: MarketplaceApi = Depends(get_api)) -> User:
    """Caller's profile; banned and unverified accounts are refused with 403."""
    try:
        session = load_account_session(api)
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    if session.state == "verification_pending" or session.user is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=VERIFICATION_DETAIL)
    return session.user

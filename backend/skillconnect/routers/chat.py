from fastapi import APIRouter, Depends

from skillconnect.auth import get_api, get_current_user
from skillconnect.http_errors import raise_http_error
from skillconnect.models import (
    ChatEvent,
    ChatOpenProviderRequest,
    ChatOpenRequest,
    ChatRateRequest,
    ChatReportRequest,
    ChatSendRequest,
    ChatState,
    User,
)
from skillconnect.services.chat_session import ChatSession, chat_sessions
from skillconnect.services.marketplace_api import MarketplaceApi, MarketplaceApiError
from skillconnect.services.validation import FormValidationError

router = APIRouter(prefix="/chat", tags=["chat"])


def get_chat_session(user: User = Depends(get_current_user)) -> ChatSession:
    return chat_sessions.get_or_create(user)


@router.get("/list", response_model=ChatState)
def chat_list(session: ChatSession = Depends(get_chat_session), api: MarketplaceApi = Depends(get_api)):
    session.refresh_chat_list(api)
    return session.snapshot()


@router.get("/state", response_model=ChatState)
def chat_state(session: ChatSession = Depends(get_chat_session)):
    return session.snapshot()


@router.post("/open", response_model=ChatState)
def open_chat(
    payload: ChatOpenRequest,
    session: ChatSession = Depends(get_chat_session),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        session.open_chat(api, appointment_id=payload.appointment_id)
    except (FormValidationError, MarketplaceApiError) as exc:
        raise_http_error(exc)
    return session.snapshot()


@router.post("/open-provider", response_model=ChatState)
def open_provider_chat(
    payload: ChatOpenProviderRequest,
    session: ChatSession = Depends(get_chat_session),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        provider = api.get_provider_profile(payload.provider_id)
    except MarketplaceApiError as exc:
        raise_http_error(exc)
    session.open_provider_chat(provider)
    return session.snapshot()


@router.post("/send", response_model=ChatState)
def send_message(
    payload: ChatSendRequest,
    session: ChatSession = Depends(get_chat_session),
    api: MarketplaceApi = Depends(get_api),
):
    session.send_message(api, payload.message)
    return session.snapshot()


@router.post("/typing", response_model=ChatState)
def typing(session: ChatSession = Depends(get_chat_session)):
    session.keystroke()
    return session.snapshot()


@router.post("/events", response_model=ChatState)
def socket_event(
    payload: ChatEvent,
    session: ChatSession = Depends(get_chat_session),
    api: MarketplaceApi = Depends(get_api),
):
    session.handle_event(api, payload.event, payload.data)
    return session.snapshot()


@router.post("/back", response_model=ChatState)
def back_to_list(session: ChatSession = Depends(get_chat_session)):
    session.back_to_list()
    return session.snapshot()


@router.delete("/session", response_model=dict)
def close_session(user: User = Depends(get_current_user)):
    closed = chat_sessions.close(user.id)
    return {"status": "closed" if closed else "not_open"}


@router.post("/report", response_model=dict)
def report_user(
    payload: ChatReportRequest,
    session: ChatSession = Depends(get_chat_session),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        return {"status": "ok", "message": session.report_user(api, payload.reason)}
    except (FormValidationError, MarketplaceApiError) as exc:
        raise_http_error(exc)


@router.post("/block", response_model=dict)
def block_user(session: ChatSession = Depends(get_chat_session), api: MarketplaceApi = Depends(get_api)):
    try:
        return {"status": "ok", "message": session.block_user(api)}
    except (FormValidationError, MarketplaceApiError) as exc:
        raise_http_error(exc)


@router.post("/rate", response_model=dict)
def rate_user(
    payload: ChatRateRequest,
    session: ChatSession = Depends(get_chat_session),
    api: MarketplaceApi = Depends(get_api),
):
    try:
        return {"status": "ok", "message": session.rate_user(api, payload.rating, payload.comments)}
    except (FormValidationError, MarketplaceApiError) as exc:
        raise_http_error(exc)

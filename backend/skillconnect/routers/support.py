from fastapi import APIRouter, Depends, HTTPException

from skillconnect.auth import get_current_user
from skillconnect.models import SupportMessageRequest, SupportTurn, User
from skillconnect.services.support_bot import (
    SUPPORT_OPTIONS,
    help_categories,
    help_topics,
    support_conversations,
)

router = APIRouter(prefix="/support", tags=["support"])


@router.get("/topics", response_model=dict)
def list_help_topics():
    topics = help_topics()
    return {
        "topics": topics,
        "categories": [{"category": name, "topics": rows} for name, rows in help_categories(topics)],
    }


@router.get("/messages", response_model=list[SupportTurn])
def support_transcript(user: User = Depends(get_current_user)):
    return support_conversations.for_user(user.id).transcript()


@router.post("/messages", response_model=list[SupportTurn])
def send_support_message(payload: SupportMessageRequest, user: User = Depends(get_current_user)):
    return support_conversations.for_user(user.id).send(payload.message)


@router.post("/options/{option}", response_model=list[SupportTurn])
def choose_support_option(option: str, user: User = Depends(get_current_user)):
    if option not in SUPPORT_OPTIONS:
        raise HTTPException(status_code=404, detail="Unknown support option")
    return support_conversations.for_user(user.id).choose_option(option)

from fastapi import APIRouter, Depends, HTTPException

from skillconnect.auth import get_current_user
from skillconnect.http_errors import raise_http_error
from skillconnect.models import Preferences, RecentSearchCreate, SavedSearch, SavedSearchCreate, User
from skillconnect.services.preference_store import PreferenceStore, get_preference_store
from skillconnect.services.validation import FormValidationError

router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.get("", response_model=Preferences)
def load_preferences(
    user: User = Depends(get_current_user),
    store: PreferenceStore = Depends(get_preference_store),
):
    return store.load(user.id)


@router.post("/favorites/{provider_id}", response_model=Preferences)
def toggle_favorite(
    provider_id: str,
    user: User = Depends(get_current_user),
    store: PreferenceStore = Depends(get_preference_store),
):
    return store.toggle_favorite(user.id, provider_id)


@router.post("/saved-searches", response_model=SavedSearch)
def save_search(
    payload: SavedSearchCreate,
    user: User = Depends(get_current_user),
    store: PreferenceStore = Depends(get_preference_store),
):
    try:
        return store.save_search(user.id, payload.name, payload.filters)
    except FormValidationError as exc:
        raise_http_error(exc)


@router.delete("/saved-searches/{search_id}", response_model=dict)
def delete_saved_search(
    search_id: str,
    user: User = Depends(get_current_user),
    store: PreferenceStore = Depends(get_preference_store),
):
    if not store.delete_saved_search(user.id, search_id):
        raise HTTPException(status_code=404, detail="Saved search not found")
    return {"status": "deleted"}


@router.post("/recent-searches", response_model=list[str])
def add_recent_search(
    payload: RecentSearchCreate,
    user: User = Depends(get_current_user),
    store: PreferenceStore = Depends(get_preference_store),
):
    return store.add_recent_search(user.id, payload.term)

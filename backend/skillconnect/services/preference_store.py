import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, List, Optional
from uuid import uuid4

from skillconnect.models import Preferences, ProviderFilters, SavedSearch
from skillconnect.services.validation import FormValidationError

logger = logging.getLogger(__name__)

RECENT_SEARCH_LIMIT = 5
DEFAULT_DB_PATH = str(Path(__file__).resolve().parents[2] / "data" / "preferences.sqlite3")


class PreferenceStore:
    """Favourites, saved searches and recent searches per user, shared by web and mobile."""

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS user_preferences (
                        user_id TEXT PRIMARY KEY,
                        favorites_json TEXT NOT NULL DEFAULT '[]',
                        saved_searches_json TEXT NOT NULL DEFAULT '[]',
                        recent_searches_json TEXT NOT NULL DEFAULT '[]',
                        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                    )
                    """
                )
                conn.commit()

    def _load_unlocked(self, conn: sqlite3.Connection, user_id: str) -> Preferences:
        row = conn.execute(
            "SELECT favorites_json, saved_searches_json, recent_searches_json FROM user_preferences WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if not row:
            return Preferences()

        saved: List[SavedSearch] = []
        for item in self._safe_json_list(row["saved_searches_json"]):
            try:
                saved.append(SavedSearch.model_validate(item))
            except ValueError:
                logger.warning("Dropping malformed saved search for %s", user_id)
        return Preferences(
            favorite_providers=[str(v) for v in self._safe_json_list(row["favorites_json"]) if isinstance(v, str)],
            saved_searches=saved,
            recent_searches=[str(v) for v in self._safe_json_list(row["recent_searches_json"]) if isinstance(v, str)],
        )

    def _save_unlocked(self, conn: sqlite3.Connection, user_id: str, prefs: Preferences) -> None:
        conn.execute(
            """
            INSERT INTO user_preferences (user_id, favorites_json, saved_searches_json, recent_searches_json, updated_at)
            VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(user_id) DO UPDATE SET
                favorites_json = excluded.favorites_json,
                saved_searches_json = excluded.saved_searches_json,
                recent_searches_json = excluded.recent_searches_json,
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                user_id,
                json.dumps(prefs.favorite_providers),
                json.dumps([row.model_dump() for row in prefs.saved_searches]),
                json.dumps(prefs.recent_searches),
            ),
        )
        conn.commit()

    def load(self, user_id: str) -> Preferences:
        with self._lock:
            with self._connect() as conn:
                return self._load_unlocked(conn, user_id)

    def toggle_favorite(self, user_id: str, provider_id: str) -> Preferences:
        with self._lock:
            with self._connect() as conn:
                prefs = self._load_unlocked(conn, user_id)
                if provider_id in prefs.favorite_providers:
                    prefs.favorite_providers = [pid for pid in prefs.favorite_providers if pid != provider_id]
                else:
                    prefs.favorite_providers = prefs.favorite_providers + [provider_id]
                self._save_unlocked(conn, user_id, prefs)
                return prefs

    def save_search(self, user_id: str, name: str, filters: ProviderFilters) -> SavedSearch:
        name = (name or "").strip()
        if not name or not filters.search.strip():
            raise FormValidationError("Enter a name and a search term to save this search")
        saved = SavedSearch(
            id=f"srch_{uuid4().hex[:10]}",
            name=name,
            filters=filters.model_dump(),
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            with self._connect() as conn:
                prefs = self._load_unlocked(conn, user_id)
                prefs.saved_searches = prefs.saved_searches + [saved]
                self._save_unlocked(conn, user_id, prefs)
        return saved

    def delete_saved_search(self, user_id: str, search_id: str) -> bool:
        with self._lock:
            with self._connect() as conn:
                prefs = self._load_unlocked(conn, user_id)
                remaining = [row for row in prefs.saved_searches if row.id != search_id]
                if len(remaining) == len(prefs.saved_searches):
                    return False
                prefs.saved_searches = remaining
                self._save_unlocked(conn, user_id, prefs)
                return True

    def add_recent_search(self, user_id: str, term: str) -> List[str]:
        with self._lock:
            with self._connect() as conn:
                prefs = self._load_unlocked(conn, user_id)
                if not term.strip():
                    return prefs.recent_searches
                updated = [term] + [row for row in prefs.recent_searches if row != term]
                prefs.recent_searches = updated[:RECENT_SEARCH_LIMIT]
                self._save_unlocked(conn, user_id, prefs)
                return prefs.recent_searches

    def _safe_json_list(self, raw_value: Any) -> List[Any]:
        if raw_value in (None, ""):
            return []
        if isinstance(raw_value, list):
            return raw_value
        if not isinstance(raw_value, str):
            return []
        try:
            parsed = json.loads(raw_value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []


_store: Optional[PreferenceStore] = None
_store_lock = Lock()


def get_preference_store() -> PreferenceStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = PreferenceStore(db_path=os.getenv("PREFERENCES_DB_PATH", DEFAULT_DB_PATH))
        return _store

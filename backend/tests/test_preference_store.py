import os
import sqlite3
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from skillconnect.models import ProviderFilters
from skillconnect.services.preference_store import PreferenceStore
from skillconnect.services.validation import FormValidationError


def test_favorites_toggle(tmp_path):
    store = PreferenceStore(db_path=str(tmp_path / "prefs.sqlite3"))
    assert store.toggle_favorite("u1", "p1").favorite_providers == ["p1"]
    assert store.toggle_favorite("u1", "p2").favorite_providers == ["p1", "p2"]
    assert store.toggle_favorite("u1", "p1").favorite_providers == ["p2"]
    assert store.load("u2").favorite_providers == []


def test_recent_searches_are_deduplicated_and_capped(tmp_path):
    store = PreferenceStore(db_path=str(tmp_path / "prefs.sqlite3"))
    for term in ["plumber", "electrician", "carpenter", "painter", "welder", "plumber", "mason"]:
        store.add_recent_search("u1", term)
    assert store.load("u1").recent_searches == ["mason", "plumber", "welder", "painter", "carpenter"]
    assert store.add_recent_search("u1", "   ") == ["mason", "plumber", "welder", "painter", "carpenter"]


def test_saved_search_needs_name_and_search(tmp_path):
    store = PreferenceStore(db_path=str(tmp_path / "prefs.sqlite3"))
    with pytest.raises(FormValidationError):
        store.save_search("u1", "", ProviderFilters(search="plumber"))
    with pytest.raises(FormValidationError):
        store.save_search("u1", "Nearby", ProviderFilters(location="Tondo"))

    saved = store.save_search("u1", "Plumbers", ProviderFilters(search="plumber", min_rating=4))
    prefs = store.load("u1")
    assert [s.name for s in prefs.saved_searches] == ["Plumbers"]
    assert prefs.saved_searches[0].filters["min_rating"] == 4
    assert store.delete_saved_search("u1", saved.id) is True
    assert store.delete_saved_search("u1", saved.id) is False


def test_preferences_survive_reopen(tmp_path):
    db_path = str(tmp_path / "prefs.sqlite3")
    PreferenceStore(db_path=db_path).toggle_favorite("u1", "p1")
    assert PreferenceStore(db_path=db_path).load("u1").favorite_providers == ["p1"]


def test_corrupt_rows_decode_to_empty(tmp_path):
    db_path = tmp_path / "prefs.sqlite3"
    store = PreferenceStore(db_path=str(db_path))
    with sqlite3.connect(str(db_path)) as conn:
        conn.execute(
            """
            INSERT INTO user_preferences (user_id, favorites_json, saved_searches_json, recent_searches_json)
            VALUES (?, ?, ?, ?)
            """,
            ("u1", "{bad", '[{"name": "no id"}]', "42"),
        )
        conn.commit()

    prefs = store.load("u1")
    assert prefs.favorite_providers == []
    assert prefs.saved_searches == []
    assert prefs.recent_searches == []

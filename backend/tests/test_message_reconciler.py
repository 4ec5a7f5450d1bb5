import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from skillconnect.models import ChatMessage
from skillconnect.services.message_reconciler import (
    duplicate_window_ms,
    find_duplicate,
    reconcile,
    remove_local,
)


def _msg(text="Hello", sender="u1", timestamp="2024-05-01T10:00:00Z", **extra):
    row = {"message": text, "sender": {"_id": sender}, "timestamp": timestamp, "appointment": "a1"}
    row.update(extra)
    return ChatMessage.model_validate(row)


def test_new_message_is_appended():
    rows, appended = reconcile([_msg("first", _id="m1")], _msg("second", _id="m2"))
    assert appended is True
    assert [r.message for r in rows] == ["first", "second"]


def test_same_server_id_is_not_appended_twice():
    existing = [_msg(_id="m1")]
    rows, appended = reconcile(existing, _msg(_id="m1"))
    assert appended is False
    assert len(rows) == 1


def test_server_echo_replaces_optimistic_copy_in_place():
    echo = _msg(localId="local_1", status="sent", pending=True, timestamp="2024-05-01T10:00:00Z")
    server = _msg(_id="m1", status="delivered", timestamp="2024-05-01T10:00:02Z")
    rows, appended = reconcile([_msg("before", sender="u2", _id="m0"), echo], server)
    assert appended is False
    assert len(rows) == 2
    assert rows[1].id == "m1"
    assert rows[1].status == "delivered"
    assert rows[1].local_id == "local_1"
    assert rows[1].pending is False


def test_distinct_server_ids_inside_window_collapse():
    rows, appended = reconcile(
        [_msg(_id="m1", timestamp="2024-05-01T10:00:00Z")],
        _msg(_id="m2", timestamp="2024-05-01T10:00:02Z"),
    )
    assert appended is False
    assert [r.id for r in rows] == ["m1"]


def test_idless_copy_outside_window_is_kept():
    rows, appended = reconcile(
        [_msg(timestamp="2024-05-01T10:00:00Z")],
        _msg(timestamp="2024-05-01T10:00:06Z"),
    )
    assert appended is True
    assert len(rows) == 2


def test_different_sender_is_not_a_duplicate():
    assert find_duplicate([_msg(sender="u1")], _msg(sender="u2")) is None


def test_missing_timestamp_never_matches_by_window():
    assert find_duplicate([_msg(timestamp=None)], _msg(timestamp=None)) is None


def test_input_list_is_not_mutated():
    existing = [_msg(_id="m1")]
    reconcile(existing, _msg("other", _id="m2"))
    assert len(existing) == 1


def test_remove_local_rolls_back_only_that_message():
    rows = [_msg(_id="m1"), _msg("pending", localId="local_9")]
    assert [r.message for r in remove_local(rows, "local_9")] == ["Hello"]


def test_window_env_fallback(monkeypatch):
    monkeypatch.setenv("CHAT_DUPLICATE_WINDOW_MS", "nope")
    assert duplicate_window_ms() == 5000
    monkeypatch.setenv("CHAT_DUPLICATE_WINDOW_MS", "2500")
    assert duplicate_window_ms() == 2500


def test_idless_ok_sent_500ms_apart_collapses_to_one():
    rows, appended = reconcile(
        [_msg("ok", timestamp="2024-05-01T10:00:00.000Z")],
        _msg("ok", timestamp="2024-05-01T10:00:00.500Z"),
    )
    assert appended is False
    assert len(rows) == 1


def test_ok_sent_500ms_apart_with_server_ids_collapses_to_one():
    rows, appended = reconcile(
        [_msg("ok", _id="m1", timestamp="2024-05-01T10:00:00.000Z")],
        _msg("ok", _id="m2", timestamp="2024-05-01T10:00:00.500Z"),
    )
    assert appended is False
    assert [r.id for r in rows] == ["m1"]


def test_ok_sent_2000ms_apart_outside_window_are_both_kept():
    rows, appended = reconcile(
        [_msg("ok", _id="m1", timestamp="2024-05-01T10:00:00Z")],
        _msg("ok", _id="m2", timestamp="2024-05-01T10:00:02Z"),
        window_ms=1500,
    )
    assert appended is True
    assert [r.id for r in rows] == ["m1", "m2"]

from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from bson.objectid import ObjectId

from cozycabin.exceptions import InvalidIdentifierError
from cozycabin.models import apply_status_timestamps, document_to_dict, public_profile, sort_tickets
from cozycabin.utils import redact_emails, retry, to_object_id

NOW = datetime(2024, 5, 1, 12, 0, 0)


def ticket(subject, priority, minutes_ago):
    return {"subject": subject, "priority": priority, "created_at": NOW - timedelta(minutes=minutes_ago)}


TICKETS = [
    ticket("old normal", "normal", 30),
    ticket("new low", "low", 1),
    ticket("old urgent", "urgent", 60),
    ticket("new medium", "medium", 5),
    ticket("new urgent", "urgent", 2),
]


def test_sort_by_created_at():
    assert [t["subject"] for t in sort_tickets(TICKETS)] == [
        "new low", "new urgent", "new medium", "old normal", "old urgent",
    ]
    assert [t["subject"] for t in sort_tickets(TICKETS, descending=False)][0] == "old urgent"


def test_sort_by_priority_breaks_ties_by_created_at():
    """
    GIVEN tickets with shared priority ranks (normal and medium rank the same)
    WHEN sorting by priority
    THEN ranks come first and ties keep the creation date order
    """
    assert [t["subject"] for t in sort_tickets(TICKETS, sort_by="priority")] == [
        "new urgent", "old urgent", "new medium", "old normal", "new low",
    ]


def test_apply_status_timestamps():
    assert apply_status_timestamps({"status": "closed"}, NOW)["closed_at"] == NOW
    assert apply_status_timestamps({"status": "open"}, NOW)["closed_at"] is None
    assert apply_status_timestamps({"priority": "low"}, NOW) == {"priority": "low"}
    # Volver a cerrar un ticket cerrado no toca closed_at
    assert "closed_at" not in apply_status_timestamps({"status": "closed"}, NOW, previous_status="closed")
    assert apply_status_timestamps({"status": "open"}, NOW, previous_status="closed")["closed_at"] is None


def test_document_to_dict_converts_ids():
    oid, ref = ObjectId(), ObjectId()
    data = document_to_dict({"_id": oid, "created_by": ref, "subject": "x"})
    assert data == {"id": str(oid), "created_by": str(ref), "subject": "x"}
    assert document_to_dict(None) is None


def test_public_profile_drops_password_hash():
    profile = public_profile({"_id": ObjectId(), "email": "a@example.com", "password_hash": "secreto", "role": "agent"})
    assert "password_hash" not in profile
    assert profile["email"] == "a@example.com"


def test_to_object_id():
    oid = ObjectId()
    assert to_object_id(str(oid)) == oid
    assert to_object_id(oid) is oid
    with pytest.raises(InvalidIdentifierError):
        to_object_id("1234")
    with pytest.raises(InvalidIdentifierError):
        to_object_id(None)


def test_redact_emails_in_nested_values():
    value = {"to": "ana@example.com", "items": ["hola", {"cc": "b@example.com"}], "count": 2}
    assert redact_emails(value) == {"to": "[REDACTED]", "items": ["hola", {"cc": "[REDACTED]"}], "count": 2}


def test_retry_succeeds_after_failures():
    func = MagicMock(side_effect=[ConnectionError("uno"), ConnectionError("dos"), "ok"])
    func.__name__ = "func"
    wrapped = retry(max_attempts=3, delay=0.5, backoff=2.0, exceptions=(ConnectionError,))(func)

    with patch("cozycabin.utils.time.sleep") as mock_sleep:
        assert wrapped() == "ok"

    assert func.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]


def test_retry_reraises_last_error_and_ignores_other_exceptions():
    failing = MagicMock(side_effect=ConnectionError("siempre"))
    failing.__name__ = "failing"
    with patch("cozycabin.utils.time.sleep"):
        with pytest.raises(ConnectionError):
            retry(max_attempts=2, exceptions=(ConnectionError,))(failing)()
    assert failing.call_count == 2

    wrong = MagicMock(side_effect=ValueError("no reintentable"))
    wrong.__name__ = "wrong"
    with pytest.raises(ValueError):
        retry(max_attempts=3, exceptions=(ConnectionError,))(wrong)()
    assert wrong.call_count == 1

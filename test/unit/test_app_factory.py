from unittest.mock import patch

import mongomock
import pytest

from cozycabin import create_app


def test_create_app_can_build_several_apps():
    """
    GIVEN the application factory
    WHEN two applications are built in the same process
    THEN both are created and each answers CORS preflight on the functions endpoints
    """
    with patch('flask_pymongo.MongoClient', mongomock.MongoClient):
        first = create_app('testing')
        second = create_app('testing')

    for app in (first, second):
        response = app.test_client().options("/functions/v1/handle-invite", headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
        })
        assert response.status_code == 200
        assert "Access-Control-Allow-Origin" in response.headers


def test_cors_only_applies_to_functions(client, db):
    response = client.get("/health", headers={"Origin": "http://localhost:5173"})
    assert response.status_code == 200
    assert "Access-Control-Allow-Origin" not in response.headers


def test_json_responses_use_plain_ids_and_iso_dates(client, customer, auth_headers):
    """Las respuestas serializan ObjectId como texto y fechas en ISO 8601."""
    response = client.get("/auth/session", headers=auth_headers(customer))
    profile = response.get_json()["profile"]
    assert profile["id"] == customer.id
    assert isinstance(profile["created_at"], str)
    assert "T" in profile["created_at"]


def test_missing_required_settings_abort_startup(monkeypatch):
    monkeypatch.setattr("config.TestingConfig.SERVICE_ROLE_KEY", None)
    with patch('flask_pymongo.MongoClient', mongomock.MongoClient):
        with pytest.raises(RuntimeError):
            create_app('testing')

from datetime import timedelta
from unittest.mock import patch

from cozycabin.repositories import MongoInviteRepository

PASSWORD = "ThisIsA-Valid-Password123!"

NEW_PASSWORD = "Another-Valid-Pass456"


def signup_payload(email="new.user@example.com", **extra):
    payload = {
        "email": email,
        "full_name": "Nuevo Usuario",
        "password": PASSWORD,
        "password2": PASSWORD,
    }
    payload.update(extra)
    return payload


def test_login_and_logout(client, customer):
    """Test que un usuario puede iniciar sesión y cerrar sesión."""
    response = client.post("/auth/login", json={"email": "customer@example.com", "password": PASSWORD})
    data = response.get_json()
    assert response.status_code == 200
    assert data["profile"]["email"] == "customer@example.com"
    assert data["profile"]["role"] == "customer"
    assert data["access_token"]

    session = client.get("/auth/session").get_json()
    assert session["authenticated"] is True
    assert session["csrf_token"]

    logout_response = client.post("/auth/logout")
    assert logout_response.status_code == 200
    assert client.get("/auth/session").get_json()["authenticated"] is False


def test_login_with_wrong_password(client, customer):
    response = client.post("/auth/login", json={"email": "customer@example.com", "password": "Wrong-Password1"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "Correo electrónico o contraseña inválidos."


def test_login_with_deactivated_account(client, make_profile):
    make_profile("inactive@example.com", "customer", "Cuenta Inactiva", is_active=False)

    response = client.post("/auth/login", json={"email": "inactive@example.com", "password": PASSWORD})
    assert response.status_code == 401
    assert response.get_json()["error"] == "Tu cuenta está desactivada."


def test_login_validation_errors(client, db):
    response = client.post("/auth/login", json={"email": "no-es-un-correo"})
    data = response.get_json()
    assert response.status_code == 400
    assert "email" in data["errors"]
    assert "password" in data["errors"]


def test_access_token_authenticates_requests(client, customer):
    token = client.post("/auth/login", json={"email": customer.email, "password": PASSWORD}).get_json()["access_token"]
    other_client = client.application.test_client()

    response = other_client.get("/tickets", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert other_client.get("/tickets", headers={"Authorization": "Bearer token-falso"}).status_code == 401


def test_signup_creates_customer(client, db):
    """
    GIVEN a new email
    WHEN the user signs up without an invite
    THEN a customer profile is created and the session is started
    """
    response = client.post("/auth/signup", json=signup_payload(email="New.User@example.com"))
    data = response.get_json()
    assert response.status_code == 201
    assert data["profile"]["role"] == "customer"
    assert data["profile"]["email"] == "new.user@example.com"
    assert db.db.profiles.count_documents({"email": "new.user@example.com"}) == 1
    assert client.get("/auth/session").get_json()["authenticated"] is True


def test_signup_duplicate_email(client, customer):
    response = client.post("/auth/signup", json=signup_payload(email=customer.email))
    assert response.status_code == 409


def test_signup_weak_password(client, db):
    response = client.post("/auth/signup", json=signup_payload(password="short", password2="short"))
    assert response.status_code == 400
    assert "password" in response.get_json()["errors"]


def test_signup_with_invite_gets_invited_role(client, db):
    """
    GIVEN a valid invite for an agent
    WHEN the invited person signs up with its token
    THEN the profile has the agent role and the invite is consumed
    """
    invite = MongoInviteRepository(db.db).create("new.agent@example.com", "agent", None, timedelta(days=7))

    assert client.get(f"/auth/invites/{invite['token']}").get_json() == {
        "is_valid": True, "email": "new.agent@example.com", "role": "agent",
    }

    response = client.post("/auth/signup", json=signup_payload(email="new.agent@example.com", invite_token=invite["token"]))
    assert response.status_code == 201
    assert response.get_json()["profile"]["role"] == "agent"
    assert db.db.invites.find_one({"token": invite["token"]})["used_at"] is not None
    assert client.get(f"/auth/invites/{invite['token']}").status_code == 404


def test_signup_with_invite_for_other_email(client, db):
    invite = MongoInviteRepository(db.db).create("someone.else@example.com", "admin", None, timedelta(days=7))

    response = client.post("/auth/signup", json=signup_payload(invite_token=invite["token"]))
    assert response.status_code == 400
    assert db.db.profiles.count_documents({}) == 0
    assert db.db.invites.find_one({"token": invite["token"]})["used_at"] is None


def test_request_password_reset(client, customer):
    """Test que se envía el correo solo si la cuenta existe, sin revelarlo en la respuesta."""
    with patch("cozycabin.stores.auth_store.send_password_reset_email") as mock_send:
        known = client.post("/auth/reset_password", json={"email": customer.email})
        unknown = client.post("/auth/reset_password", json={"email": "nobody@example.com"})

    assert known.status_code == 200
    assert unknown.status_code == 200
    assert known.get_json() == unknown.get_json()
    mock_send.assert_called_once()
    assert mock_send.call_args[0][0].email == customer.email


def test_reset_password_with_token(app, client, customer):
    with app.app_context():
        token = customer.get_reset_password_token()

    response = client.post(f"/auth/reset_password/{token}", json={"password": NEW_PASSWORD, "password2": NEW_PASSWORD})
    assert response.status_code == 200

    assert client.post("/auth/login", json={"email": customer.email, "password": PASSWORD}).status_code == 401
    assert client.post("/auth/login", json={"email": customer.email, "password": NEW_PASSWORD}).status_code == 200


def test_reset_password_with_invalid_token(client, db):
    response = client.post("/auth/reset_password/token-invalido", json={"password": NEW_PASSWORD, "password2": NEW_PASSWORD})
    assert response.status_code == 400
    assert response.get_json()["error"] == "El enlace no es válido o ha expirado."


def test_health(client, db):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_cookie_session_reloads_profile_from_database(client, db, customer, login):
    """
    GIVEN a cookie session
    WHEN the stored profile changes or disappears
    THEN each request loads the current profile from the database
    """
    login(client, customer.email)
    db.db.profiles.update_one({"email": customer.email}, {"$set": {"role": "agent"}})
    assert client.get("/auth/session").get_json()["profile"]["role"] == "agent"

    db.db.profiles.delete_one({"email": customer.email})
    session = client.get("/auth/session").get_json()
    assert session["authenticated"] is False
    assert client.get("/tickets").status_code == 401

from unittest.mock import patch

from cozycabin.exceptions import EmailDeliveryError


def test_admin_routes_require_admin(client, agent, auth_headers):
    """
    GIVEN a logged-in agent
    WHEN they list the invites
    THEN access is denied
    """
    response = client.get("/admin/invites", headers=auth_headers(agent))
    assert response.status_code == 403


def test_create_invite_sends_email(client, db, admin, auth_headers):
    """
    GIVEN an admin
    WHEN they invite a new agent
    THEN the invite is stored with a server-side token and the email is sent
    """
    with patch("cozycabin.invites.send_invite_email") as mock_send:
        response = client.post("/admin/invites", json={"email": "New.Agent@example.com", "role": "agent"},
                               headers=auth_headers(admin))

    data = response.get_json()
    assert response.status_code == 201
    assert data["invite"]["email"] == "new.agent@example.com"
    assert data["invite"]["role"] == "agent"
    assert len(data["invite"]["token"]) >= 32
    assert [i["id"] for i in data["invites"]] == [data["invite"]["id"]]
    mock_send.assert_called_once()


def test_create_invite_rejects_customer_role(client, db, admin, auth_headers):
    with patch("cozycabin.invites.send_invite_email") as mock_send:
        response = client.post("/admin/invites", json={"email": "someone@example.com", "role": "customer"},
                               headers=auth_headers(admin))
    assert response.status_code == 400
    assert "role" in response.get_json()["errors"]
    mock_send.assert_not_called()
    assert db.db.invites.count_documents({}) == 0


def test_create_invite_email_failure_keeps_invite(client, db, admin, auth_headers):
    with patch("cozycabin.invites.send_invite_email", side_effect=EmailDeliveryError()):
        response = client.post("/admin/invites", json={"email": "someone@example.com", "role": "admin"},
                               headers=auth_headers(admin))
    assert response.status_code == 502
    assert db.db.invites.count_documents({"email": "someone@example.com"}) == 1


def test_list_users_hides_password_hash(client, admin, customer, auth_headers):
    response = client.get("/admin/users", headers=auth_headers(admin))
    users = response.get_json()["users"]
    assert {u["email"] for u in users} == {"admin@example.com", "customer@example.com"}
    assert all("password_hash" not in u for u in users)


def test_edit_user_role_and_deactivate(client, db, admin, customer, auth_headers):
    """
    GIVEN an admin and a customer
    WHEN the admin promotes and then deactivates the customer
    THEN the profile changes and the customer's token stops working
    """
    headers = auth_headers(admin)
    customer_headers = auth_headers(customer)

    response = client.patch(f"/admin/users/{customer.id}", json={"role": "agent"}, headers=headers)
    assert response.status_code == 200
    assert response.get_json()["user"]["role"] == "agent"

    response = client.patch(f"/admin/users/{customer.id}", json={"is_active": False}, headers=headers)
    assert response.get_json()["user"]["is_active"] is False
    assert client.get("/tickets", headers=customer_headers).status_code == 401


def test_admin_cannot_demote_themselves(client, admin, auth_headers):
    response = client.patch(f"/admin/users/{admin.id}", json={"role": "agent"}, headers=auth_headers(admin))
    assert response.status_code == 400


def test_console_message_round_trip(client, admin, login):
    """
    GIVEN an admin with a cookie session
    WHEN they send a console message and the assistant answers
    THEN both turns are kept in the session history
    """
    login(client, admin.email)
    with patch("cozycabin.stores.admin_store.requests.post") as mock_post:
        mock_post.return_value.ok = True
        mock_post.return_value.json.return_value = {"reply": "Hay 3 tickets sin asignar."}
        response = client.post("/admin/console/messages", json={"content": "show unassigned tickets"})

    data = response.get_json()
    assert response.status_code == 200
    assert data["reply"]["content"] == "Hay 3 tickets sin asignar."
    assert [m["role"] for m in data["messages"]] == ["user", "assistant"]

    history = client.get("/admin/console/messages").get_json()["messages"]
    assert len(history) == 2

    assert client.delete("/admin/console/messages").get_json()["messages"] == []
    assert client.get("/admin/console/messages").get_json()["messages"] == []


def test_console_message_agent_failure(client, admin, login):
    login(client, admin.email)
    with patch("cozycabin.stores.admin_store.requests.post") as mock_post:
        mock_post.return_value.ok = False
        mock_post.return_value.status_code = 400
        mock_post.return_value.json.return_value = {"error": "Message cannot be empty"}
        response = client.post("/admin/console/messages", json={"content": "hola"})

    data = response.get_json()
    assert response.status_code == 502
    assert data["error"] == "Message cannot be empty"
    assert [m["role"] for m in data["messages"]] == ["user"]

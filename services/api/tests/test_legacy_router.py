"""Tests for the endpoint shapes kept for deployed clients."""

EMAIL = "driver@fleet.example.com"
TOKEN = "tok-1234567890abc"
OTHER_TOKEN = "tok-abcdefghijklm"


def _tokens(client):
    return client.get("/api/check-user-token", params={"email": EMAIL}).json()["tokens"]


class TestSaveToken:
    def test_messages_follow_registration_result(self, client):
        body = {"email": EMAIL, "fcmToken": TOKEN}

        first = client.post("/api/savetoken", json=body).json()
        second = client.post("/api/savetoken", json=body).json()
        third = client.post("/api/savetoken", json={**body, "fcmToken": OTHER_TOKEN}).json()

        assert first["message"] == "New token registered for this email."
        assert second["message"] == "Token was already registered for this email."
        assert third["message"] == "Token updated for this email."
        assert first["tokenPrefix"] == TOKEN[:10] + "..."
        assert _tokens(client) == [OTHER_TOKEN]

    def test_rejects_bad_email(self, client):
        response = client.post("/api/savetoken", json={"email": "nope", "fcmToken": TOKEN})

        assert response.status_code == 400


class TestNotificationsRegister:
    def test_registers(self, client):
        response = client.post("/api/notifications-register", json={"email": EMAIL, "fcmToken": TOKEN})

        assert response.json()["registered"] is True
        assert _tokens(client) == [TOKEN]


class TestDeleteToken:
    def test_removes_token(self, client):
        client.post("/api/savetoken", json={"email": EMAIL, "fcmToken": TOKEN})

        response = client.post("/api/delete-token", json={"email": EMAIL, "fcmToken": TOKEN})

        assert response.json()["removed"] is True
        assert _tokens(client) == []

    def test_not_found(self, client):
        response = client.post("/api/delete-token", json={"email": EMAIL, "token": TOKEN})

        assert response.status_code == 200
        assert response.json()["removed"] is False


class TestNotificationsShape:
    def test_register_check_delete_by_device(self, client):
        client.post("/api/notifications", json={"email": EMAIL, "fcmToken": TOKEN, "deviceId": "phone"})
        client.post("/api/notifications", json={"email": EMAIL, "fcmToken": OTHER_TOKEN, "deviceId": "tablet"})

        check = client.get("/api/notifications", params={"email": EMAIL, "deviceId": "tablet"})
        assert check.json() == {"hasValidToken": True, "token": OTHER_TOKEN}

        deleted = client.request("DELETE", "/api/notifications", json={"email": EMAIL, "deviceId": "tablet"})
        assert deleted.json() == {"success": True, "removed": True}
        assert _tokens(client) == [TOKEN]

    def test_device_id_wins_over_token(self, client):
        client.post("/api/notifications", json={"email": EMAIL, "fcmToken": TOKEN, "deviceId": "phone"})

        response = client.request(
            "DELETE",
            "/api/notifications",
            json={"email": EMAIL, "deviceId": "tablet", "fcmToken": TOKEN},
        )

        assert response.json()["removed"] is False
        assert _tokens(client) == [TOKEN]

    def test_check_without_token(self, client):
        response = client.get("/api/notifications", params={"email": EMAIL})

        assert response.json() == {"hasValidToken": False, "token": None}

"""Tests for POST /notifications/send."""

from fleetpush.exceptions import DeliveryUnavailable
from fleetpush.services.push_service import DeliveryOutcome, ErrorKind

EMAIL = "driver@fleet.example.com"
T1 = "tok-1111111111111"
T2 = "tok-2222222222222"
NOTIFICATION = {"title": "Hello", "body": "World"}


def _register(client, token, device_id):
    client.post("/api/tokens", json={"email": EMAIL, "fcmToken": token, "deviceId": device_id})


def _send(client, **body):
    return client.post("/api/notifications/send", json={"notification": NOTIFICATION, **body})


class TestSendToIdentity:
    def test_invalid_token_is_pruned(self, client, transport):
        _register(client, T1, "A")
        _register(client, T2, "B")
        transport.send_multicast.side_effect = lambda tokens, notification, data=None: [
            DeliveryOutcome.delivered("m1"),
            DeliveryOutcome.failed(ErrorKind.INVALID_TOKEN, code="invalid-argument"),
        ]

        response = _send(client, email=EMAIL, data={"deviceId": 5})

        assert response.status_code == 200
        body = response.json()
        assert (body["sent"], body["failed"], body["invalidRemoved"]) == (1, 1, 1)
        assert body["success"] is True
        assert [r["token"] for r in body["results"]] == [T1[:10] + "...", T2[:10] + "..."]
        assert client.get("/api/tokens/all", params={"email": EMAIL}).json() == {"tokens": [T1]}
        assert transport.send_multicast.await_args.args[2] == {"deviceId": "5"}

    def test_no_tokens(self, client, transport):
        response = _send(client, email=EMAIL)

        assert response.status_code == 404
        assert response.json()["error_type"] == "NoRecipientError"
        transport.send_multicast.assert_not_called()

    def test_all_transient_failures(self, client, transport):
        _register(client, T1, "A")
        transport.send_multicast.side_effect = lambda tokens, notification, data=None: [
            DeliveryOutcome.failed(ErrorKind.OTHER, code="unavailable")
        ]

        response = _send(client, email=EMAIL)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert client.get("/api/tokens/all", params={"email": EMAIL}).json() == {"tokens": [T1]}

    def test_gateway_outage(self, client, transport):
        _register(client, T1, "A")
        transport.send_multicast.side_effect = DeliveryUnavailable("Push gateway timed out")

        response = _send(client, email=EMAIL)

        assert response.status_code == 503
        assert response.json()["error_type"] == "DeliveryUnavailable"

    def test_email_wins_over_token(self, client, transport):
        _register(client, T1, "A")

        _send(client, email=EMAIL, token=T2)

        assert transport.send_multicast.await_args.args[0] == [T1]


class TestSendToToken:
    def test_single_token(self, client, transport):
        response = _send(client, token=T2)

        assert response.status_code == 200
        assert response.json()["sent"] == 1
        assert transport.send_multicast.await_args.args[0] == [T2]

    def test_neither_email_nor_token(self, client):
        assert _send(client).status_code == 400

    def test_missing_notification(self, client):
        response = client.post("/api/notifications/send", json={"email": EMAIL})

        assert response.status_code == 422

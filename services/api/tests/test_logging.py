"""Tests for request logging and PII redaction."""

from fleetpush.middleware.logging import redact_pii


class TestRedactPii:
    def test_redacts_emails(self):
        text = "Token store read failed for Driver@Fleet.example.com"

        assert redact_pii(text) == "Token store read failed for [REDACTED_EMAIL]"

    def test_leaves_other_text(self):
        assert redact_pii("tok-123456... removed") == "tok-123456... removed"


class TestRequestId:
    def test_generated_when_absent(self, client):
        response = client.get("/health")

        assert len(response.headers["X-Request-ID"]) == 8

    def test_upstream_id_is_reused(self, client):
        response = client.get("/health", headers={"X-Request-ID": "traccar-42"})

        assert response.headers["X-Request-ID"] == "traccar-42"

    def test_malformed_upstream_id_is_replaced(self, client):
        response = client.get("/health", headers={"X-Request-ID": "bad id with spaces!"})

        assert response.headers["X-Request-ID"] != "bad id with spaces!"

import logging
import uuid

import pytest


class TestCorrelationIdMiddleware:
    def test_returns_provided_request_id(self, client):
        custom_id = "my-custom-request-id-123"
        response = client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        assert response["X-Request-ID"] == custom_id

    def test_generates_uuid_when_no_request_id(self, client):
        response = client.get("/health")
        request_id = response["X-Request-ID"]
        parsed = uuid.UUID(request_id, version=4)
        assert str(parsed) == request_id

    def test_correlation_id_in_logs(self, client, caplog):
        custom_id = "log-test-correlation-456"
        with caplog.at_level(logging.INFO):
            client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        found = any(custom_id in record.getMessage() for record in caplog.records)
        assert found, (
            f"correlation_id '{custom_id}' not found in log records: "
            f"{[r.getMessage() for r in caplog.records]}"
        )


class TestSensitiveDataMasking:
    def test_card_number_keeps_bin_and_last_four(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "card": "card 4084084084084081 declined"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "4084084084084081" not in result["card"]
        assert "408408******4081" in result["card"]

    def test_password_masked_in_log_output(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_token_masked_in_log_output(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_sensitive_key_masks_whole_value(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "signature": "9f86d081884c7d65"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["signature"] == "***MASKED***"

    def test_email_left_intact(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "notification.sent", "recipient": "ada@example.com"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["recipient"] == "ada@example.com"

    def test_non_sensitive_data_unchanged(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "payment.verified", "order_number": "ORD-20260301-ABC123"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["order_number"] == "ORD-20260301-ABC123"
        assert result["event"] == "payment.verified"

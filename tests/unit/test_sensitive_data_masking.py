import pytest

from config.settings import mask_sensitive_data

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    def test_card_number_masked(self):
        event_dict = {"event": "test", "card": "8600 1234 5678 9012"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "5678" not in result["card"]
        assert "***MASKED***" in result["card"]

    def test_card_number_without_spaces_masked(self):
        event_dict = {"event": "test", "card": "8600123456789012"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["card"] == "***MASKED***"

    def test_uzbek_phone_masked(self):
        event_dict = {"event": "test", "phone": "+998 90 123 45 67"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "123 45 67" not in result["phone"]
        assert "***MASKED***" in result["phone"]

    def test_basic_credentials_masked(self):
        event_dict = {"event": "test", "header": "Basic UGF5Y29tOnNlY3JldA=="}
        result = mask_sensitive_data(None, None, event_dict)
        assert "UGF5Y29tOnNlY3JldA==" not in result["header"]

    def test_sign_string_masked(self):
        event_dict = {"event": "test", "data": "sign_string=9f86d081884c7d65"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "9f86d081884c7d65" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_password_masked(self):
        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]

    def test_token_masked(self):
        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]

    def test_non_sensitive_data_unchanged(self):
        event_dict = {"event": "payment.completed", "provider": "click", "amount": 500}
        result = mask_sensitive_data(None, None, event_dict)
        assert result == {
            "event": "payment.completed",
            "provider": "click",
            "amount": 500,
        }

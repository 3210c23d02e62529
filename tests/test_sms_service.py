"""
Tests for the Twilio SMS service and the /api/v1/sms/send endpoint.
"""
import uuid

import pytest
from unittest.mock import MagicMock, patch
from twilio.base.exceptions import TwilioRestException

from relay.errors import ConfigurationError, DownstreamError, PayloadValidationError
from relay.models.action import Action
from relay.services.sms import clean_phone, send_sms


@pytest.fixture
def twilio_settings(settings, monkeypatch):
    monkeypatch.setattr(settings, "twilio_account_sid", "ACtest")
    monkeypatch.setattr(settings, "twilio_auth_token", "token")
    monkeypatch.setattr(settings, "twilio_phone_number", "+15125550000")
    return settings


@pytest.fixture
def twilio_client():
    client = MagicMock()
    client.messages.create.return_value = MagicMock(sid="SM123")
    with patch("relay.services.sms._get_twilio_client", return_value=client):
        yield client


class TestCleanPhone:
    def test_strips_formatting(self):
        assert clean_phone("+1 (512) 555-9876") == "+15125559876"

    def test_none(self):
        assert clean_phone(None) == ""


class TestSendSms:
    @pytest.mark.asyncio
    async def test_sends(self, db, twilio_settings, twilio_client):
        result = await send_sms(db, "(512) 555-9876", "Your showing is confirmed")

        assert result == {
            "success": True,
            "message": "SMS sent successfully",
            "twilioSid": "SM123",
            "to": "5125559876",
        }
        twilio_client.messages.create.assert_called_once_with(
            to="5125559876", from_="+15125550000", body="Your showing is confirmed",
        )

    @pytest.mark.asyncio
    async def test_short_number_rejected(self, db, twilio_settings, twilio_client):
        with pytest.raises(PayloadValidationError, match="at least 10 digits"):
            await send_sms(db, "555-1234", "hi")
        twilio_client.messages.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, db, twilio_settings, twilio_client):
        with pytest.raises(PayloadValidationError):
            await send_sms(db, "+15125559876", "   ")

    @pytest.mark.asyncio
    async def test_missing_credentials(self, db, settings, monkeypatch):
        monkeypatch.setattr(settings, "twilio_account_sid", "")
        with pytest.raises(ConfigurationError):
            await send_sms(db, "+15125559876", "hi")

    @pytest.mark.asyncio
    async def test_twilio_error_wrapped(self, db, twilio_settings, twilio_client):
        twilio_client.messages.create.side_effect = TwilioRestException(
            400, "/Messages", msg="The 'To' number is not a valid phone number.",
        )
        with pytest.raises(DownstreamError) as exc_info:
            await send_sms(db, "+15125559876", "hi")
        assert exc_info.value.upstream_status == 400

    @pytest.mark.asyncio
    async def test_completes_action(self, db, twilio_settings, twilio_client):
        action = Action(action_type="sms", title="Text Dana about Oak St")
        db.add(action)
        await db.commit()

        await send_sms(db, "+15125559876", "hi", action_id=str(action.id))
        await db.refresh(action)

        assert action.status == "completed"
        assert action.completed_at is not None
        assert action.notes == "SMS sent successfully. Twilio SID: SM123"

    @pytest.mark.asyncio
    async def test_unknown_action_does_not_fail_send(self, db, twilio_settings, twilio_client):
        result = await send_sms(db, "+15125559876", "hi", action_id=str(uuid.uuid4()))
        assert result["success"] is True

    @pytest.mark.asyncio
    async def test_malformed_action_id_does_not_fail_send(self, db, twilio_settings, twilio_client):
        result = await send_sms(db, "+15125559876", "hi", action_id="not-a-uuid")
        assert result["success"] is True


class TestSmsEndpoint:
    @pytest.mark.asyncio
    async def test_camel_case_body(self, client, twilio_settings, twilio_client):
        response = await client.post("/api/v1/sms/send", json={
            "phoneNumber": "+15125559876", "message": "See you at 5",
        })
        assert response.status_code == 200
        assert response.json()["twilioSid"] == "SM123"

    @pytest.mark.asyncio
    async def test_validation_error(self, client, twilio_settings, twilio_client):
        response = await client.post("/api/v1/sms/send", json={"phoneNumber": "123", "message": "x"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Phone number must be at least 10 digits"}

    @pytest.mark.asyncio
    async def test_missing_credentials_is_500(self, client, settings, monkeypatch):
        monkeypatch.setattr(settings, "twilio_auth_token", "")
        response = await client.post("/api/v1/sms/send", json={
            "phoneNumber": "+15125559876", "message": "hi",
        })
        assert response.status_code == 500
        assert response.json()["success"] is False

"""Integration tests for the Twilio webhooks and flow editor routes."""

import xml.etree.ElementTree as ET

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from twilio.request_validator import RequestValidator

from numsphere_core.api.app import create_app
from numsphere_core.config import Settings
from numsphere_core.storage import CallFlowRecord, PhoneNumberRecord, SubscriptionInfo

NUMBER = "+15550001111"
CALLER = "+15557770000"


def call_form(**extra) -> dict:
    form = {"CallSid": "CA_test_123", "From": CALLER, "To": NUMBER, "CallStatus": "ringing"}
    form.update(extra)
    return form


def spoken(response) -> list:
    root = ET.fromstring(response.text)
    return [say.text for say in root.iter("Say")]


def assert_twiml(response):
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/xml")
    assert ET.fromstring(response.text).tag == "Response"


class TestVoiceWebhook:
    """Tests for POST /voice."""

    @pytest.mark.asyncio
    async def test_runs_active_flow(self, client):
        """Test the active flow is run."""
        response = await client.post("/webhooks/twilio/voice", data=call_form())

        assert_twiml(response)
        root = ET.fromstring(response.text)
        assert [v.tag for v in root] == ["Say", "Gather", "Say", "Hangup"]
        assert root.find("Gather").get("action") == (
            "https://voice.example.com/webhooks/twilio/gather?blockId=menu"
        )

    @pytest.mark.asyncio
    async def test_unknown_number(self, client):
        """Test an unknown number on the voice webhook."""
        response = await client.post("/webhooks/twilio/voice", data=call_form(To="+15550009999"))

        assert_twiml(response)
        assert spoken(response) == ["This number is not configured."]

    @pytest.mark.asyncio
    async def test_unpaid_owner(self, client, repository):
        """Test an unpaid owner gets the unavailable message."""
        await repository.add_subscription(SubscriptionInfo(user_id="usr_1", has_completed_payment=False))

        response = await client.post("/webhooks/twilio/voice", data=call_form())

        assert_twiml(response)
        assert spoken(response) == ["This service is temporarily unavailable."]

    @pytest.mark.asyncio
    async def test_minute_limit_reached(self, client, repository):
        """Test the minute limit message."""
        await repository.record_usage("num_1", 500)

        response = await client.post("/webhooks/twilio/voice", data=call_form())

        assert_twiml(response)
        assert spoken(response) == [
            "Your monthly minute limit has been reached. Please upgrade your plan."
        ]

    @pytest.mark.asyncio
    async def test_no_active_flow_gets_default_greeting(self, client, repository):
        """Test a number without an active flow gets the default greeting."""
        await repository.add_number(PhoneNumberRecord(id="num_2", phone_number="+15550002222", user_id="usr_1"))

        response = await client.post("/webhooks/twilio/voice", data=call_form(To="+15550002222"))

        assert_twiml(response)
        assert spoken(response)[0] == "Hello! Thank you for calling. This number is powered by NumSphere."

    @pytest.mark.asyncio
    async def test_malformed_flow_gets_configuration_error(self, client, repository):
        """Test a malformed flow gets the configuration error."""
        await repository.add_flow(
            CallFlowRecord(id="flow_bad", number_id="num_1", name="Broken", config="{oops", is_active=True)
        )

        response = await client.post("/webhooks/twilio/voice", data=call_form())

        assert_twiml(response)
        assert spoken(response) == ["Configuration error. Please contact support."]


class TestGatherWebhook:
    """Tests for POST /gather."""

    @pytest.mark.asyncio
    async def test_routes_digit(self, client):
        """Test a pressed digit is routed."""
        response = await client.post(
            "/webhooks/twilio/gather",
            params={"blockId": "menu"},
            data=call_form(Digits="1"),
        )

        assert_twiml(response)
        root = ET.fromstring(response.text)
        assert root.find("Dial/Number").text == "+15559990000"

    @pytest.mark.asyncio
    async def test_no_digits(self, client):
        """Test a gather callback without digits."""
        response = await client.post("/webhooks/twilio/gather", params={"blockId": "menu"}, data=call_form())

        assert_twiml(response)
        assert spoken(response) == ["No input received. Please try again."]

    @pytest.mark.asyncio
    async def test_unknown_number(self, client):
        """Test an unknown number on the gather webhook."""
        response = await client.post(
            "/webhooks/twilio/gather",
            params={"blockId": "menu"},
            data=call_form(To="+15550009999", Digits="1"),
        )

        assert_twiml(response)
        assert spoken(response) == ["This number is not configured."]


class TestStatusWebhook:
    """Tests for POST /status."""

    @pytest.mark.asyncio
    async def test_completed_call_is_recorded(self, client, repository):
        """Test a completed call is recorded."""
        response = await client.post(
            "/webhooks/twilio/status",
            data=call_form(CallStatus="completed", CallDuration="120", Direction="inbound"),
        )

        assert response.status_code == 200
        assert response.text == "OK"
        assert (await repository.get_number(NUMBER)).minutes_used == pytest.approx(2.0)
        assert len(await repository.list_call_logs("num_1")) == 1

    @pytest.mark.asyncio
    async def test_unknown_number_is_ignored(self, client):
        """Test status for an unknown number is ignored."""
        response = await client.post(
            "/webhooks/twilio/status",
            data=call_form(To="+15550009999", CallStatus="completed", CallDuration="60", Direction="inbound"),
        )

        assert response.status_code == 200


class TestMultiForwardAndSms:
    """Tests for POST /multi-forward and POST /sms."""

    @pytest.mark.asyncio
    async def test_multi_forward(self, client):
        """Test the multi-forward webhook."""
        response = await client.post(
            "/webhooks/twilio/multi-forward",
            data=call_form(ForwardNumbers="+15550000001,+15550000002", Strategy="priority", RingTimeout="15"),
        )

        assert_twiml(response)
        dials = ET.fromstring(response.text).findall("Dial")
        assert dials[0].get("timeout") == "25"
        assert len(dials) == 2

    @pytest.mark.asyncio
    async def test_sms_auto_reply(self, client):
        """Test the SMS auto reply."""
        response = await client.post(
            "/webhooks/twilio/sms",
            data={"MessageSid": "SM1", "From": CALLER, "To": NUMBER, "Body": "help"},
        )

        assert_twiml(response)
        assert "automated response" in ET.fromstring(response.text).find("Message").text

    @pytest.mark.asyncio
    async def test_sms_unknown_number(self, client):
        """Test SMS to an unknown number."""
        response = await client.post(
            "/webhooks/twilio/sms",
            data={"MessageSid": "SM1", "From": CALLER, "To": "+15550009999", "Body": "hi"},
        )

        assert response.status_code == 404


class TestSignatureValidation:
    """Tests for X-Twilio-Signature enforcement."""

    TOKEN = "test_auth_token"

    @pytest_asyncio.fixture
    async def signed_client(self, repository):
        settings = Settings(
            public_base_url="https://voice.example.com",
            twilio_validate_signatures=True,
            twilio_auth_token=self.TOKEN,
        )
        transport = ASGITransport(app=create_app(settings, repository))
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

    @pytest.mark.asyncio
    async def test_rejects_missing_signature(self, signed_client):
        """Test a missing signature is rejected."""
        response = await signed_client.post("/webhooks/twilio/voice", data=call_form())

        assert response.status_code == 403
        assert response.json()["code"] == "AUTH_1006"

    @pytest.mark.asyncio
    async def test_accepts_valid_signature(self, signed_client):
        """Test a valid signature is accepted."""
        form = call_form()
        signature = RequestValidator(self.TOKEN).compute_signature(
            "https://voice.example.com/webhooks/twilio/voice", form
        )

        response = await signed_client.post(
            "/webhooks/twilio/voice",
            data=form,
            headers={"X-Twilio-Signature": signature},
        )

        assert_twiml(response)


class TestFlowRoutes:
    """Tests for the flow editor routes."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        """Test the health check."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_validate(self, client):
        """Test flow validation."""
        response = await client.post(
            "/api/v1/flows/validate",
            json={"config": {"blocks": [{"id": "a", "type": "say", "connections": ["ghost"]}]}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is False
        assert body["errors"] == 1

    @pytest.mark.asyncio
    async def test_preview(self, client, menu_flow):
        """Test flow preview."""
        response = await client.post("/api/v1/flows/preview", json={"config": menu_flow})

        assert response.status_code == 200
        body = response.json()
        assert body["visited"] == ["welcome", "menu"]
        assert body["stopped_by"] == "awaiting_input"
        assert body["fallback"] == "none"
        assert ET.fromstring(body["twiml"]).tag == "Response"

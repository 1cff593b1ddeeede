"""Shared pytest fixtures for testing."""

import os
import xml.etree.ElementTree as ET
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

# Set test environment
os.environ["ENVIRONMENT"] = "development"
os.environ.pop("TWILIO_VALIDATE_SIGNATURES", None)

from numsphere_core.config import Settings, get_settings  # noqa: E402
from numsphere_core.flows import CallContext  # noqa: E402
from numsphere_core.storage import (  # noqa: E402
    CallFlowRecord,
    InMemoryNumberRepository,
    PhoneNumberRecord,
    SubscriptionInfo,
)

NUMBER = "+15550001111"
CALLER = "+15557770000"


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests get a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def parse_twiml() -> Callable[[str], ET.Element]:
    """Parse a TwiML document and check its root."""

    def _parse(twiml: str) -> ET.Element:
        root = ET.fromstring(twiml)
        assert root.tag == "Response"
        return root

    return _parse


@pytest.fixture
def call_context() -> CallContext:
    return CallContext(
        call_sid="CA_test_123",
        caller=CALLER,
        called=NUMBER,
        callback_base_url="https://voice.example.com/webhooks/twilio",
    )


# =============================================================================
# Flow Fixtures
# =============================================================================


@pytest.fixture
def menu_flow() -> dict:
    """Greeting, then a menu routing 1 to sales and 2 to a goodbye."""
    return {
        "blocks": [
            {"id": "welcome", "type": "say", "config": {"text": "Welcome to Acme."}, "connections": ["menu"]},
            {
                "id": "menu",
                "type": "gather",
                "config": {
                    "prompt": "Press 1 for sales, 2 to hang up.",
                    "options": [
                        {"digit": "1", "text": "sales", "blockId": "sales"},
                        {"digit": "2", "text": "hang up", "blockId": "bye"},
                        {"digit": "3", "text": "Our hours are nine to five."},
                    ],
                },
                "connections": [],
            },
            {"id": "sales", "type": "forward", "config": {"number": "+15559990000"}, "connections": ["bye"]},
            {"id": "bye", "type": "hangup", "config": {}, "connections": []},
        ]
    }


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        public_base_url="https://voice.example.com",
        twilio_validate_signatures=False,
        flows_seed_file=None,
    )


@pytest_asyncio.fixture
async def repository(menu_flow) -> InMemoryNumberRepository:
    """Repository with one paid number running the menu flow."""
    repo = InMemoryNumberRepository()
    await repo.add_subscription(
        SubscriptionInfo(user_id="usr_1", has_completed_payment=True, plan_id="starter", status="active")
    )
    await repo.add_number(PhoneNumberRecord(id="num_1", phone_number=NUMBER, user_id="usr_1"))
    await repo.add_flow(CallFlowRecord(id="flow_1", number_id="num_1", name="Main", config=menu_flow, is_active=True))
    return repo


@pytest_asyncio.fixture
async def app(settings, repository) -> FastAPI:
    """Create test FastAPI application."""
    from numsphere_core.api.app import create_app

    return create_app(settings, repository)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

"""API test fixtures — FastAPI app with an in-memory storefront session.

Invariants:
    - app.state.storefront is replaced per test; lifespan does not run under ASGITransport
    - The real GatewaySessionRegistry is used, so tests drive payments through the routes
"""

import pytest
from httpx import ASGITransport, AsyncClient

from storefront.infrastructure.gateway_sessions import GatewaySessionRegistry
from storefront.main import app
from storefront.services.cart_store import CartStore
from storefront.services.checkout_orchestrator import CheckoutOrchestrator
from storefront.services.gateway_bridge import PaymentGatewayBridge
from storefront.services.storefront_session import SessionTokenHolder, StorefrontSession
from tests.services.fakes import FakeMarketplaceApi, FakeScriptLoader


@pytest.fixture
def backend():
    return FakeMarketplaceApi()


@pytest.fixture
def script_loader():
    return FakeScriptLoader()


@pytest.fixture
def storefront(backend, script_loader):
    registry = GatewaySessionRegistry()
    gateway = PaymentGatewayBridge(script_loader, registry)
    orch = CheckoutOrchestrator(
        backend, gateway, merchant_name="AutogenLabs", theme_color="#3B82F6",
    )
    session = StorefrontSession(
        SessionTokenHolder(), backend, gateway, registry, orch,
        CartStore(backend, orch),
    )
    app.state.storefront = session
    yield session
    del app.state.storefront


@pytest.fixture
async def client(storefront):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

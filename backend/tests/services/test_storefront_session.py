"""Storefront Session — sign-in sync, sign-out teardown, ownership tracking.

Tests:
    - sign_in stores the token, loads owned items, and syncs the cart
    - An ownership lookup failure does not block the cart sync
    - sign_out clears the token and cart and dismisses an open gateway session
    - Granted purchases mark items owned
    - A purchase that is granted after sign-out is not credited to the next session
    - from_settings wires real clients against the configured backend
"""

import asyncio

import httpx
import pytest

from storefront.config import Settings
from storefront.core.domain_types import CartState, ItemType, OutcomeStatus
from storefront.core.errors import ApiError, ApiErrorKind, VerificationFailedError
from storefront.infrastructure.gateway_sessions import GatewaySessionRegistry
from storefront.services.cart_store import CartStore
from storefront.services.checkout_orchestrator import CheckoutOrchestrator
from storefront.services.gateway_bridge import PaymentGatewayBridge
from storefront.services.storefront_session import SessionTokenHolder, StorefrontSession
from tests.services.fakes import FakeMarketplaceApi, FakeScriptLoader, item, settle


def _session(server_items=()):
    api = FakeMarketplaceApi(server_items)
    registry = GatewaySessionRegistry()
    gateway = PaymentGatewayBridge(FakeScriptLoader(), registry)
    orch = CheckoutOrchestrator(api, gateway)
    return StorefrontSession(
        SessionTokenHolder(), api, gateway, registry, orch, CartStore(api, orch),
    ), api


async def test_sign_in_syncs_cart_and_ownership():
    session, api = _session([item("t1", 500)])
    api.purchased = [("t9", ItemType.TEMPLATE)]

    cart = await session.sign_in("tok", name="Ana", email="ana@example.com")

    assert session.signed_in
    assert await session.tokens.get_token() == "tok"
    assert cart.item_count == 1
    assert session.is_owned("t9", ItemType.TEMPLATE)
    assert session.prefill == {"name": "Ana", "email": "ana@example.com"}


async def test_ownership_failure_does_not_block_cart():
    session, api = _session([item("t1", 500)])
    api.fail["get_purchased_items"] = ApiError(ApiErrorKind.SERVER_ERROR, "down", 500)

    cart = await session.sign_in("tok")

    assert cart.item_count == 1
    assert session.owned_items == set()


async def test_sign_out_resets_everything():
    session, _ = _session([item("t1", 500)])
    await session.sign_in("tok", email="ana@example.com")

    session.sign_out()

    assert not session.signed_in
    assert await session.tokens.get_token() is None
    assert session.cart.state is CartState.EMPTY
    assert session.prefill == {}


async def test_sign_out_aborts_open_checkout():
    session, _ = _session([item("t1", 500)])
    await session.sign_in("tok")

    checkout = asyncio.ensure_future(session.checkout())
    await settle()
    assert len(session.gateway_sessions.pending()) == 1

    session.sign_out()

    outcome = await checkout
    assert outcome.status is OutcomeStatus.ABORTED
    assert session.gateway_sessions.pending() == []


async def test_granted_single_purchase_marks_owned():
    session, _ = _session()
    await session.sign_in("tok")

    outcome = await session.purchase_single_item(item("c1", 0, ItemType.COMPONENT))

    assert outcome.granted
    assert session.is_owned("c1", ItemType.COMPONENT)


async def test_from_settings_talks_to_configured_backend():
    seen = []

    def backend(request):
        seen.append((request.method, request.url.path))
        if request.url.path == "/cart":
            return httpx.Response(200, json={"items": [
                {"item_id": "t1", "item_type": "template", "price_minor_units": 500},
            ]})
        return httpx.Response(200, json=[])

    session = StorefrontSession.from_settings(
        Settings(api_base_url="http://backend.test/"),
        api_transport=httpx.MockTransport(backend),
        script_transport=httpx.MockTransport(lambda r: httpx.Response(200, text="js")),
    )

    cart = await session.sign_in("tok")
    assert await session.gateway.ensure_loaded()
    await session.aclose()

    assert cart.total_minor_units == 500
    assert ("GET", "/user/purchased-items") in seen
    assert ("GET", "/cart") in seen


async def test_rejected_verification_does_not_mark_owned():
    session, api = _session()
    api.verify_response = {"success": False, "detail": "Signature mismatch"}
    await session.sign_in("tok")

    purchase = asyncio.ensure_future(session.purchase_single_item(item("t1", 999)))
    await settle()
    [pending] = session.gateway_sessions.pending()
    session.gateway_sessions.complete(pending["order_id"], "pay_1", "sig_bad")

    with pytest.raises(VerificationFailedError):
        await purchase
    assert not session.is_owned("t1", ItemType.TEMPLATE)


async def test_purchase_granted_after_sign_out_is_not_owned_by_next_user():
    session, api = _session()
    api.gate["verify_item_purchase"] = asyncio.Event()
    await session.sign_in("tok_a")

    purchase = asyncio.ensure_future(session.purchase_single_item(item("t1", 999)))
    await settle()
    [pending] = session.gateway_sessions.pending()
    session.gateway_sessions.complete(pending["order_id"], "pay_1", "sig_1")
    await settle()
    assert len(api.calls("verify_item_purchase")) == 1

    session.sign_out()
    await session.sign_in("tok_b")
    api.gate["verify_item_purchase"].set()

    outcome = await purchase
    assert outcome.granted
    assert not session.is_owned("t1", ItemType.TEMPLATE)

"""Checkout Orchestrator — sequential handshake, in-flight guard, verification integrity.

Tests:
    - Single-item and cart purchases: one order, one session, one verify
    - Cancelled at the gateway → ABORTED, zero verification calls
    - Verification failure after payment → VerificationFailedError, never retried
    - Concurrent checkout of the same target → CheckoutConflictError, one session opened
    - Failure before payment names its phase; the original error is preserved
    - Verification runs to completion even if the caller is cancelled
    - A checkout cancelled while the gateway is open withdraws its session
"""

import asyncio

import pytest

from storefront.core.domain_types import CheckoutPhase, OutcomeStatus
from storefront.core.errors import (
    ApiError, ApiErrorKind, CheckoutConflictError, EmptyCartError,
    GatewaySessionClosedError,
    GatewayUnavailableError, InvalidCartItemError, VerificationFailedError,
)
from storefront.core.models import Cart
from storefront.infrastructure.gateway_sessions import GatewaySessionRegistry
from storefront.services.checkout_orchestrator import CheckoutOrchestrator
from storefront.services.gateway_bridge import PaymentGatewayBridge
from tests.services.fakes import (
    FakeMarketplaceApi, FakeScriptLoader, FakeWidgetFactory, item, settle,
)


def _orchestrator(api=None, mode="complete", loader=None):
    api = api or FakeMarketplaceApi()
    factory = FakeWidgetFactory(mode)
    bridge = PaymentGatewayBridge(loader or FakeScriptLoader(), factory)
    orch = CheckoutOrchestrator(
        api, bridge, merchant_name="AutogenLabs", theme_color="#3B82F6",
    )
    return orch, api, factory


async def test_single_item_purchase_is_verified():
    orch, api, factory = _orchestrator()

    outcome = await orch.purchase_item(item("t1", 500, title="Landing"), prefill={"name": "Ana"})

    assert outcome.status is OutcomeStatus.GRANTED
    assert outcome.receipt.payment_id == "pay_1"
    assert outcome.receipt.order_id == "order_1"
    assert len(api.calls("create_item_order")) == 1
    [verify] = api.calls("verify_item_purchase")
    assert verify[1].signature == "sig_1"
    [options] = factory.opened
    assert options.amount == 500
    assert options.name == "AutogenLabs"
    assert options.description == "Purchase template: Landing"
    assert options.prefill == {"name": "Ana"}


async def test_cart_purchase_uses_cart_order_and_bulk_verify():
    api = FakeMarketplaceApi([item("t1", 500), item("t2", 300)])
    orch, _, factory = _orchestrator(api)

    outcome = await orch.purchase_cart(Cart.of(api.server_items))

    assert outcome.granted
    assert len(api.calls("create_cart_order")) == 1
    assert len(api.calls("verify_cart_purchase")) == 1
    assert factory.opened[0].amount == 800
    assert factory.opened[0].description == "Cart Purchase: 2 items"


async def test_cancelled_payment_is_aborted_without_verification():
    orch, api, _ = _orchestrator(mode="cancel")

    outcome = await orch.purchase_item(item("t1", 500))

    assert outcome.status is OutcomeStatus.ABORTED
    assert outcome.order.order_id == "order_1"
    assert api.calls("verify_item_purchase") == []
    assert not orch.is_in_flight("template:t1")


async def test_verification_failure_needs_reconciliation():
    api = FakeMarketplaceApi([item("t1", 500), item("t2", 300)])
    api.fail["verify_cart_purchase"] = ApiError(
        ApiErrorKind.SERVER_ERROR, "Internal error", 500,
    )
    orch, _, _ = _orchestrator(api)

    with pytest.raises(VerificationFailedError) as exc:
        await orch.purchase_cart(Cart.of(api.server_items))

    err = exc.value
    assert err.needs_reconciliation
    assert err.checkout_phase is CheckoutPhase.VERIFICATION
    assert err.context.payment_id == "pay_1"
    assert err.context.order_id == "order_1"
    assert err.context.target == "cart"
    assert isinstance(err.cause, ApiError)
    assert len(api.calls("verify_cart_purchase")) == 1


async def test_verification_rejected_in_body_is_a_failure():
    api = FakeMarketplaceApi()
    api.verify_response = {"success": False, "detail": "Signature mismatch"}
    orch, _, _ = _orchestrator(api)

    with pytest.raises(VerificationFailedError) as exc:
        await orch.purchase_item(item("t1", 500))

    assert "Signature mismatch" in exc.value.message


async def test_network_failure_during_verify_is_not_retried():
    api = FakeMarketplaceApi()
    api.fail["verify_item_purchase"] = ApiError(
        ApiErrorKind.NETWORK_FAILURE, "Network error",
    )
    orch, _, _ = _orchestrator(api)

    with pytest.raises(VerificationFailedError):
        await orch.purchase_item(item("t1", 500))

    assert len(api.calls("verify_item_purchase")) == 1


async def test_duplicate_checkout_of_same_target_is_rejected():
    orch, api, factory = _orchestrator(mode="manual")

    first = asyncio.ensure_future(orch.purchase_item(item("t1", 500)))
    await settle()
    assert orch.is_in_flight("template:t1")

    with pytest.raises(CheckoutConflictError):
        await orch.purchase_item(item("t1", 500))

    assert len(factory.widgets) == 1
    assert len(api.calls("create_item_order")) == 1
    factory.widgets[0].complete()
    assert (await first).granted
    assert not orch.is_in_flight("template:t1")


async def test_different_targets_may_run_concurrently():
    orch, _, factory = _orchestrator(mode="manual")

    a = asyncio.ensure_future(orch.purchase_item(item("t1", 500)))
    b = asyncio.ensure_future(orch.purchase_item(item("t2", 300)))
    await settle()

    assert len(factory.widgets) == 2
    for widget in factory.widgets:
        widget.complete(payment_id=f"pay_{widget.options.order_id}")
    assert (await a).granted and (await b).granted


async def test_guard_is_released_after_failure():
    api = FakeMarketplaceApi()
    api.fail["create_item_order"] = ApiError(ApiErrorKind.SERVER_ERROR, "down", 500)
    orch, _, _ = _orchestrator(api)

    with pytest.raises(ApiError):
        await orch.purchase_item(item("t1", 500))

    assert (await orch.purchase_item(item("t1", 500))).granted


async def test_order_creation_failure_keeps_original_error_and_names_phase():
    api = FakeMarketplaceApi()
    original = ApiError(ApiErrorKind.SERVER_ERROR, "order service down", 500)
    api.fail["create_cart_order"] = original
    orch, _, factory = _orchestrator(api)

    with pytest.raises(ApiError) as exc:
        await orch.purchase_cart(Cart.of([item("t1", 500)]))

    assert exc.value is original
    assert exc.value.checkout_phase is CheckoutPhase.ORDER_CREATION
    assert exc.value.context.target == "cart"
    assert factory.widgets == []


async def test_gateway_load_failure_creates_no_order():
    orch, api, _ = _orchestrator(loader=FakeScriptLoader(results=[False]))

    with pytest.raises(GatewayUnavailableError) as exc:
        await orch.purchase_item(item("t1", 500))

    assert exc.value.checkout_phase is CheckoutPhase.GATEWAY_LOAD
    assert api.log == []


async def test_free_item_skips_payment():
    orch, api, factory = _orchestrator()

    outcome = await orch.purchase_item(item("c1", 0))

    assert outcome.granted and outcome.free
    assert api.log == []
    assert factory.widgets == []


async def test_invalid_item_is_rejected_before_io():
    orch, api, _ = _orchestrator()

    with pytest.raises(InvalidCartItemError):
        await orch.purchase_item(item("t1", -5))

    assert api.log == []


async def test_empty_cart_checkout_is_rejected():
    orch, api, _ = _orchestrator()

    with pytest.raises(EmptyCartError):
        await orch.purchase_cart(Cart.empty())

    assert api.log == []


async def test_verification_completes_when_caller_is_cancelled():
    api = FakeMarketplaceApi()
    api.gate["verify_item_purchase"] = asyncio.Event()
    orch, _, _ = _orchestrator(api)

    task = asyncio.ensure_future(orch.purchase_item(item("t1", 500)))
    await settle()
    assert len(api.calls("verify_item_purchase")) == 1

    task.cancel()
    await settle()
    api.gate["verify_item_purchase"].set()

    outcome = await task
    assert outcome.granted


async def test_abandoned_checkout_cannot_be_completed_later():
    api = FakeMarketplaceApi()
    registry = GatewaySessionRegistry()
    bridge = PaymentGatewayBridge(FakeScriptLoader(), registry)
    orch = CheckoutOrchestrator(api, bridge, merchant_name="AutogenLabs")

    task = asyncio.ensure_future(orch.purchase_item(item("t1", 500)))
    await settle()
    assert len(registry.pending()) == 1
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert registry.pending() == []
    with pytest.raises(GatewaySessionClosedError):
        registry.complete("order_1", "pay_1", "sig_1")
    assert api.calls("verify_item_purchase") == []
    assert not orch.is_in_flight("template:t1")

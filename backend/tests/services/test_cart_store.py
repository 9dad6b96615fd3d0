"""Cart Store — canonical sync, serialized mutations, checkout lock, sign-out discard.

Tests:
    - Every successful round trip replaces the local cart with the server's
    - Re-adding an item never duplicates it (including a 409 from the backend)
    - Failures keep the last known-good cart, set last_error, and propagate
    - Mutations queue behind each other and are rejected during checkout
    - Results of requests started before sign-out are discarded
    - A verified checkout empties the cart; a cancelled one leaves it untouched
    - A failed re-sync after a verified checkout still reports the purchase
"""

import asyncio

import httpx
import pytest

from storefront.config import Settings
from storefront.core.domain_types import CartState, ItemType
from storefront.core.errors import (
    ApiError, ApiErrorKind, CartLockedError, CheckoutConflictError,
    EmptyCartError, InvalidCartItemError, VerificationFailedError,
)
from storefront.infrastructure.api_client import AuthenticatedApiClient
from storefront.infrastructure.marketplace_api import MarketplaceApi
from storefront.services.cart_store import CartStore
from storefront.services.checkout_orchestrator import CheckoutOrchestrator
from storefront.services.gateway_bridge import PaymentGatewayBridge
from tests.services.fakes import (
    FakeMarketplaceApi, FakeScriptLoader, FakeTokens, FakeWidgetFactory, item,
    settle,
)


def _store(server_items=(), mode="complete", resync=False):
    api = FakeMarketplaceApi(server_items)
    factory = FakeWidgetFactory(mode)
    orch = CheckoutOrchestrator(
        api, PaymentGatewayBridge(FakeScriptLoader(), factory),
    )
    return CartStore(api, orch, resync_after_checkout=resync), api, factory


async def test_load_adopts_server_cart():
    store, _, _ = _store([item("t1", 500), item("t2", 300)])

    await store.load()

    assert store.state is CartState.SYNCED
    assert store.count == 2
    assert store.total == 800
    assert store.contains("t2", ItemType.TEMPLATE)


async def test_adding_same_item_twice_keeps_one():
    store, api, _ = _store()
    await store.load()

    await store.add(item("t1", 500))
    await store.add(item("t1", 500))

    assert store.count == 1
    assert store.total == 500
    assert len(api.calls("add_to_cart")) == 2


async def test_add_conflict_resyncs_instead_of_failing():
    store, api, _ = _store([item("t1", 500)])
    api.conflict_on_duplicate = True
    await store.load()

    cart = await store.add(item("t1", 500))

    assert cart.item_count == 1
    assert store.state is CartState.SYNCED
    assert store.last_error is None
    assert len(api.calls("get_cart")) == 2


async def test_failed_add_keeps_last_good_cart():
    store, api, _ = _store([item("t1", 500)])
    await store.load()
    api.fail["add_to_cart"] = ApiError(ApiErrorKind.NETWORK_FAILURE, "Network error")

    with pytest.raises(ApiError):
        await store.add(item("t2", 300))

    assert store.state is CartState.ERROR
    assert store.last_error.kind is ApiErrorKind.NETWORK_FAILURE
    assert [i.item_id for i in store.items] == ["t1"]
    assert store.total == 500


async def test_recovers_from_error_on_next_success():
    store, api, _ = _store()
    api.fail["get_cart"] = ApiError(ApiErrorKind.SERVER_ERROR, "down", 500)

    with pytest.raises(ApiError):
        await store.load()
    await store.add(item("t1", 500))

    assert store.state is CartState.SYNCED
    assert store.last_error is None


async def test_clear_error():
    store, api, _ = _store()
    api.fail["get_cart"] = ApiError(ApiErrorKind.SERVER_ERROR, "down", 500)
    with pytest.raises(ApiError):
        await store.load()

    store.clear_error()

    assert store.last_error is None


async def test_invalid_item_is_rejected_locally():
    store, api, _ = _store()

    with pytest.raises(InvalidCartItemError):
        await store.add(item("t1", -1))

    assert isinstance(store.last_error, InvalidCartItemError)
    assert api.log == []


async def test_missing_cart_is_empty():
    store, api, _ = _store()
    api.fail["get_cart"] = ApiError(ApiErrorKind.NOT_FOUND, "no cart", 404)

    cart = await store.load()

    assert cart.is_empty
    assert store.state is CartState.SYNCED


async def test_unauthenticated_sync_retries_once():
    store, api, _ = _store([item("t1", 500)])
    api.fail["get_cart"] = ApiError(ApiErrorKind.UNAUTHENTICATED, "expired", 401)

    await store.load()

    assert store.count == 1
    assert len(api.calls("get_cart")) == 2


async def test_remove_without_body_refetches():
    store, api, _ = _store([item("t1", 500), item("t2", 300)])
    api.remove_returns_cart = False
    await store.load()

    await store.remove("t1")

    assert [i.item_id for i in store.items] == ["t2"]
    assert len(api.calls("get_cart")) == 2


async def test_clear_empties_cart_in_one_request():
    store, api, _ = _store([item("t1", 500), item("t2", 300)])
    await store.load()

    await store.clear()

    assert store.count == 0
    assert len(api.calls("clear_cart")) == 1
    assert api.calls("remove_from_cart") == []


async def test_mutations_are_serialized():
    store, api, _ = _store()
    await store.load()
    api.gate["add_to_cart"] = asyncio.Event()

    first = asyncio.ensure_future(store.add(item("t1", 500)))
    second = asyncio.ensure_future(store.add(item("t2", 300)))
    await settle()

    assert store.state is CartState.MUTATING
    assert len(api.calls("add_to_cart")) == 1
    api.gate["add_to_cart"].set()
    await asyncio.gather(first, second)

    assert store.count == 2
    assert store.state is CartState.SYNCED


async def test_sign_out_discards_in_flight_result():
    store, api, _ = _store()
    await store.load()
    api.gate["add_to_cart"] = asyncio.Event()

    pending = asyncio.ensure_future(store.add(item("t1", 500)))
    await settle()
    store.reset()
    api.gate["add_to_cart"].set()
    await pending

    assert store.state is CartState.EMPTY
    assert store.count == 0


async def test_checkout_empties_cart_after_verification():
    store, api, _ = _store([item("t1", 500), item("t2", 300)])
    await store.load()

    outcome = await store.checkout(prefill={"email": "a@b.co"})

    assert outcome.granted
    assert store.state is CartState.EMPTY
    assert store.count == 0
    assert len(api.calls("get_cart")) == 1


async def test_checkout_can_resync_instead():
    store, api, _ = _store([item("t1", 500)], resync=True)
    await store.load()

    await store.checkout()

    assert len(api.calls("get_cart")) == 2
    assert store.state is CartState.SYNCED
    assert store.count == 0


async def test_granted_checkout_survives_failed_resync():
    store, api, _ = _store([item("t1", 500)], resync=True)
    await store.load()
    api.fail["get_cart"] = ApiError(ApiErrorKind.NETWORK_FAILURE, "Network error")

    outcome = await store.checkout()

    assert outcome.granted
    assert store.state is CartState.EMPTY
    assert store.count == 0
    assert store.last_error.kind is ApiErrorKind.NETWORK_FAILURE


async def test_cancelled_checkout_leaves_cart_untouched():
    store, api, _ = _store([item("t1", 500)], mode="cancel")
    await store.load()

    outcome = await store.checkout()

    assert outcome.aborted
    assert store.state is CartState.SYNCED
    assert store.count == 1


async def test_failed_verification_keeps_cart_and_records_error():
    store, api, _ = _store([item("t1", 500)])
    api.fail["verify_cart_purchase"] = ApiError(ApiErrorKind.SERVER_ERROR, "down", 500)
    await store.load()

    with pytest.raises(VerificationFailedError):
        await store.checkout()

    assert store.state is CartState.ERROR
    assert isinstance(store.last_error, VerificationFailedError)
    assert store.count == 1


async def test_empty_cart_checkout_is_rejected():
    store, _, _ = _store()
    await store.load()

    with pytest.raises(EmptyCartError):
        await store.checkout()


async def test_cart_is_locked_during_checkout():
    store, api, factory = _store([item("t1", 500)], mode="manual")
    await store.load()

    checkout = asyncio.ensure_future(store.checkout())
    await settle()
    assert store.checking_out

    with pytest.raises(CartLockedError):
        await store.add(item("t2", 300))
    with pytest.raises(CartLockedError):
        await store.remove("t1")
    with pytest.raises(CheckoutConflictError):
        await store.checkout()
    assert api.calls("add_to_cart") == []
    assert len(factory.widgets) == 1

    factory.widgets[0].complete()
    assert (await checkout).granted
    assert not store.checking_out
    await store.add(item("t2", 300))


async def test_mutation_without_token_makes_no_request():
    seen = []
    client = AuthenticatedApiClient(
        "http://backend.test", FakeTokens([]),
        transport=httpx.MockTransport(
            lambda r: seen.append(r) or httpx.Response(200, json={"items": []}),
        ),
    )
    api = MarketplaceApi(client, Settings())
    orch = CheckoutOrchestrator(
        api, PaymentGatewayBridge(FakeScriptLoader(), FakeWidgetFactory()),
    )
    store = CartStore(api, orch)

    with pytest.raises(ApiError) as exc:
        await store.add(item("t1", 999))

    assert exc.value.kind is ApiErrorKind.UNAUTHENTICATED
    assert store.state is CartState.ERROR
    assert seen == []

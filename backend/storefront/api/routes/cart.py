"""Cart Routes — read, mutate, and check out the session cart.

Invariants:
    - Every mutation responds with the canonical snapshot the store adopted
    - Failures surface through the global StorefrontError handler; the store
      keeps its last known-good snapshot, readable via GET /cart
    - A cancelled checkout is a 200 with status "aborted", not an error
"""

from fastapi import APIRouter, Depends

from storefront.api.dependencies import get_storefront
from storefront.schemas.storefront_api import (
    CartItemRequest, CartSnapshotResponse, PurchaseOutcomeResponse,
)
from storefront.services.storefront_session import StorefrontSession

router = APIRouter(prefix="/api/v1/cart", tags=["cart"])


def _snapshot(storefront: StorefrontSession) -> CartSnapshotResponse:
    store = storefront.cart
    return CartSnapshotResponse.build(
        store.cart, store.state,
        last_error=store.last_error, checking_out=store.checking_out,
    )


@router.get("", response_model=CartSnapshotResponse)
async def get_cart(storefront: StorefrontSession = Depends(get_storefront)):
    """Current local snapshot. No backend round trip."""
    return _snapshot(storefront)


@router.post("/sync", response_model=CartSnapshotResponse)
async def sync_cart(storefront: StorefrontSession = Depends(get_storefront)):
    await storefront.cart.load()
    return _snapshot(storefront)


@router.post("/items", response_model=CartSnapshotResponse)
async def add_item(
    body: CartItemRequest, storefront: StorefrontSession = Depends(get_storefront),
):
    await storefront.add_to_cart(body.to_domain())
    return _snapshot(storefront)


@router.delete("/items/{item_id}", response_model=CartSnapshotResponse)
async def remove_item(
    item_id: str, storefront: StorefrontSession = Depends(get_storefront),
):
    await storefront.remove_from_cart(item_id)
    return _snapshot(storefront)


@router.delete("", response_model=CartSnapshotResponse)
async def clear_cart(storefront: StorefrontSession = Depends(get_storefront)):
    await storefront.clear_cart()
    return _snapshot(storefront)


@router.post("/checkout", response_model=PurchaseOutcomeResponse)
async def checkout(storefront: StorefrontSession = Depends(get_storefront)):
    """Buy the whole cart. Blocks until the gateway session ends and verification settles."""
    outcome = await storefront.checkout()
    return PurchaseOutcomeResponse.build(outcome)

"""Session Routes — sign-in and sign-out for the single local storefront session.

Invariants:
    - sign-in performs the initial cart sync; its snapshot is the response
    - sign-out always succeeds and leaves an EMPTY cart
"""

import logging

from fastapi import APIRouter, Depends, status

from storefront.api.dependencies import get_storefront
from storefront.schemas.storefront_api import CartSnapshotResponse, SignInRequest
from storefront.services.storefront_session import StorefrontSession

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/session", tags=["session"])


@router.post("/sign-in", response_model=CartSnapshotResponse)
async def sign_in(
    body: SignInRequest, storefront: StorefrontSession = Depends(get_storefront),
):
    """Store the bearer token and sync the user's cart."""
    cart = await storefront.sign_in(body.token, name=body.name, email=body.email)
    logger.info("Signed in", extra={"item_count": cart.item_count})
    return CartSnapshotResponse.build(cart, storefront.cart.state)


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(storefront: StorefrontSession = Depends(get_storefront)):
    storefront.sign_out()

"""Purchase Routes — buy a single item outside the cart."""

from fastapi import APIRouter, Depends

from storefront.api.dependencies import get_storefront
from storefront.schemas.storefront_api import CartItemRequest, PurchaseOutcomeResponse
from storefront.services.storefront_session import StorefrontSession

router = APIRouter(prefix="/api/v1/purchases", tags=["purchases"])


@router.post("", response_model=PurchaseOutcomeResponse)
async def purchase_item(
    body: CartItemRequest, storefront: StorefrontSession = Depends(get_storefront),
):
    outcome = await storefront.purchase_single_item(body.to_domain())
    return PurchaseOutcomeResponse.build(outcome)


@router.get("/owned")
async def owned_items(storefront: StorefrontSession = Depends(get_storefront)):
    return {
        "items": [
            {"item_id": item_id, "item_type": item_type.value}
            for item_id, item_type in sorted(storefront.owned_items)
        ],
    }

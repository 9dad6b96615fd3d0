"""Marketplace API — typed wrappers over the backend REST contract.

Invariants:
    - Every method is one AuthenticatedApiClient.request() call (one network round trip),
      except the one-time gateway key fallback below
    - Responses are validated by schemas/marketplace.py and returned as core objects
    - A response that fails validation becomes ApiError(UNKNOWN), never a raw ValidationError
    - Verification payloads never include anything the gateway did not return
    - An order without a gateway key borrows the public config key (one extra call,
      then cached); no key anywhere → ApiError(UNKNOWN)

Design Decisions:
    - Paths come from Settings so deployments can remap endpoints without code changes
    - remove/clear return None when the backend replies without a cart body;
      the caller then re-syncs rather than guessing
"""

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from storefront.config import Settings
from storefront.core.domain_types import ItemType
from storefront.core.errors import ApiError, ApiErrorKind, ErrorContext
from storefront.core.models import (
    Cart, CartItem, PaymentOrder, PurchaseReceipt,
)
from storefront.infrastructure.api_client import AuthenticatedApiClient
from storefront.schemas.marketplace import (
    CartPayload, PaymentConfigPayload, PaymentOrderPayload, PurchasedItemPayload,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class MarketplaceApi:
    """Cart and payment endpoints of the marketplace backend."""

    def __init__(self, client: AuthenticatedApiClient, settings: Settings):
        self._client = client
        self._settings = settings
        self._config_key: str | None = None

    # -- Cart ------------------------------------------------------------------

    async def get_cart(self) -> Cart:
        data = await self._client.request("GET", self._settings.cart_path)
        return _to_cart(data or {})

    async def add_to_cart(self, item: CartItem) -> Cart:
        data = await self._client.request(
            "POST", self._settings.cart_add_path, _item_body(item),
        )
        return _to_cart(data or {})

    async def remove_from_cart(self, item_id: str) -> Cart | None:
        path = self._settings.cart_item_path.format(item_id=item_id)
        data = await self._client.request("DELETE", path)
        return _cart_or_none(data)

    async def clear_cart(self) -> Cart | None:
        data = await self._client.request("DELETE", self._settings.cart_clear_path)
        return _cart_or_none(data)

    # -- Orders ----------------------------------------------------------------

    async def create_cart_order(self) -> PaymentOrder:
        """Create one order covering the whole server-side cart."""
        data = await self._client.request(
            "POST", self._settings.cart_checkout_path,
        )
        return await self._to_order(data)

    async def create_item_order(self, item: CartItem) -> PaymentOrder:
        data = await self._client.request(
            "POST", self._settings.item_order_path, _item_body(item),
        )
        return await self._to_order(data)

    async def _to_order(self, data: Any) -> PaymentOrder:
        payload = _parse(PaymentOrderPayload, data, "payment order")
        key = payload.gateway_key or await self._fallback_gateway_key()
        return payload.to_domain(key)

    async def _fallback_gateway_key(self) -> str:
        """Public config key, fetched once per process."""
        if self._config_key is None:
            config = await self.get_payment_config()
            if not config.gateway_key:
                raise ApiError(
                    ApiErrorKind.UNKNOWN,
                    "Backend returned no payment gateway key",
                )
            self._config_key = config.gateway_key
        return self._config_key

    # -- Verification ----------------------------------------------------------

    async def verify_item_purchase(self, receipt: PurchaseReceipt) -> dict:
        item = receipt.target.item
        body = {
            **_gateway_fields(receipt),
            "item_id": item.item_id,
            "item_type": item.item_type.value,
        }
        data = await self._client.request(
            "POST", self._settings.verify_item_path, body,
        )
        return data if isinstance(data, dict) else {}

    async def verify_cart_purchase(self, receipt: PurchaseReceipt) -> dict:
        body = {
            **_gateway_fields(receipt),
            "items": [
                {"item_id": i.item_id, "item_type": i.item_type.value}
                for i in receipt.target.items
            ],
            "total_minor_units": receipt.target.amount_minor_units,
        }
        data = await self._client.request(
            "POST", self._settings.verify_cart_path, body,
        )
        return data if isinstance(data, dict) else {}

    # -- Reference data --------------------------------------------------------

    async def get_payment_config(self) -> PaymentConfigPayload:
        """Public gateway configuration. No bearer token required."""
        data = await self._client.request(
            "GET", self._settings.payment_config_path, authenticated=False,
        )
        return _parse(PaymentConfigPayload, data or {}, "payment config")

    async def get_purchased_items(
        self,
        skip: int | None = None,
        limit: int | None = None,
        item_type: ItemType | None = None,
    ) -> list[tuple[str, ItemType]]:
        """(item_id, item_type) pairs the user already owns."""
        params: dict[str, Any] = {}
        if skip is not None:
            params["skip"] = skip
        if limit is not None:
            params["limit"] = limit
        if item_type:
            params["item_type"] = item_type.value
        data = await self._client.request(
            "GET", self._settings.purchased_items_path, params=params or None,
        )
        rows = data.get("items", []) if isinstance(data, dict) else (data or [])
        owned = []
        for row in rows:
            item = _parse(PurchasedItemPayload, row, "purchased item")
            owned.append((item.item_id, item.item_type))
        return owned


def _item_body(item: CartItem) -> dict:
    return {
        "item_id": item.item_id,
        "item_type": item.item_type.value,
        "price_minor_units": item.price_minor_units,
        "title": item.title,
    }


def _gateway_fields(receipt: PurchaseReceipt) -> dict:
    return {
        "razorpay_payment_id": receipt.payment_id,
        "razorpay_order_id": receipt.order_id,
        "razorpay_signature": receipt.signature,
    }


def _cart_or_none(data: Any) -> Cart | None:
    if isinstance(data, dict) and "items" in data:
        return _to_cart(data)
    return None


def _parse(model: type[ModelT], data: Any, what: str) -> ModelT:
    """Validate a backend payload; shape mismatches surface as ApiError(UNKNOWN)."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Unexpected {what} payload: {e.error_count()} errors")
        raise ApiError(
            ApiErrorKind.UNKNOWN,
            f"Unexpected {what} response from backend",
            details=e.errors(include_url=False),
            context=ErrorContext(debug_info={"payload_type": type(data).__name__}),
        ) from e


def _to_cart(data: Any) -> Cart:
    """Adopt the server cart; the local total is recomputed, never copied."""
    payload = _parse(CartPayload, data, "cart")
    cart = payload.to_domain()
    if (
        payload.total_minor_units is not None
        and payload.total_minor_units != cart.total_minor_units
    ):
        logger.warning(
            f"Server cart total {payload.total_minor_units} differs from "
            f"item sum {cart.total_minor_units}; using item sum",
            extra={"item_count": cart.item_count},
        )
    return cart

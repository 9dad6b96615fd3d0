"""Marketplace Wire Schemas — pydantic models for backend REST responses.

Invariants:
    - Prices and amounts are integer minor units, never negative
    - Cart totals are recomputed from items; a server total is only cross-checked
    - Numeric identifiers from the backend are coerced to str

Design Decisions:
    - AliasChoices on the gateway key: the backend names it razorpay_key_id today,
      key_id / key are accepted so a gateway swap does not touch the client
    - An order may omit its gateway key; the public payment config supplies it
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from storefront.core.domain_types import ItemId, ItemType, MinorUnits, OrderId
from storefront.core.models import Cart, CartItem, PaymentOrder


class CartItemPayload(BaseModel):
    """One cart line as returned by the backend."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    item_id: str = Field(min_length=1)
    item_type: ItemType
    price_minor_units: int = Field(ge=0)
    title: str = ""

    def to_domain(self) -> CartItem:
        return CartItem(
            item_id=ItemId(self.item_id),
            item_type=self.item_type,
            price_minor_units=MinorUnits(self.price_minor_units),
            title=self.title,
        )


class CartPayload(BaseModel):
    """Canonical cart as returned by GET /cart and every cart mutation."""
    items: list[CartItemPayload] = Field(default_factory=list)
    total_minor_units: int | None = None

    def to_domain(self) -> Cart:
        return Cart.of(item.to_domain() for item in self.items)


class PaymentOrderPayload(BaseModel):
    """Order created for one gateway session."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    order_id: str = Field(min_length=1)
    amount: int = Field(ge=0)
    currency: str = "INR"
    gateway_key: str | None = Field(
        None, validation_alias=AliasChoices("razorpay_key_id", "key_id", "key"),
    )

    def to_domain(self, gateway_key: str) -> PaymentOrder:
        """gateway_key: the order's own key, or the public config key if it had none."""
        return PaymentOrder(
            order_id=OrderId(self.order_id),
            amount_minor_units=MinorUnits(self.amount),
            currency=self.currency,
            gateway_key=gateway_key,
        )


class PaymentConfigPayload(BaseModel):
    """Public gateway configuration (GET /payments/config)."""
    gateway_key: str | None = Field(
        None, validation_alias=AliasChoices("razorpay_key_id", "key_id", "key"),
    )
    currency: str = "INR"


class PurchasedItemPayload(BaseModel):
    """One owned item from the user's purchase history."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    item_id: str = Field(min_length=1)
    item_type: ItemType

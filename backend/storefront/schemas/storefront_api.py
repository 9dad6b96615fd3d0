"""Storefront API Schemas — request/response models for the local UI-facing API.

Invariants:
    - CartItemRequest.price_minor_units >= 0, item_id stripped and non-empty
    - Snapshots expose items, count, total, state, and the last error envelope
    - Outcome responses never include the payment signature
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from storefront.core.domain_types import (
    CartState, CheckoutMode, ItemId, ItemType, MinorUnits, OutcomeStatus,
)
from storefront.core.models import Cart, CartItem, PurchaseOutcome
from storefront.core.errors import StorefrontError


class SignInRequest(BaseModel):
    """Bearer token handed over by the Auth collaborator, plus optional prefill."""
    token: str = Field(min_length=1)
    name: str | None = Field(None, max_length=200)
    email: str | None = Field(None, max_length=320)


class CartItemRequest(BaseModel):
    """Item to add to the cart or buy directly."""
    item_id: str = Field(min_length=1, max_length=200)
    item_type: ItemType = ItemType.TEMPLATE
    price_minor_units: int = Field(ge=0)
    title: str = Field("", max_length=500)

    @field_validator("item_id")
    @classmethod
    def strip_item_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("item_id cannot be empty or whitespace")
        return v

    def to_domain(self) -> CartItem:
        return CartItem(
            item_id=ItemId(self.item_id),
            item_type=self.item_type,
            price_minor_units=MinorUnits(self.price_minor_units),
            title=self.title,
        )


class CartItemView(BaseModel):
    item_id: str
    item_type: ItemType
    price_minor_units: int
    title: str


class CartSnapshotResponse(BaseModel):
    """What the UI renders: read-only cart plus the last error, if any."""
    state: CartState
    items: list[CartItemView]
    count: int
    total: int
    checking_out: bool = False
    last_error: dict[str, Any] | None = None

    @classmethod
    def build(
        cls,
        cart: Cart,
        state: CartState,
        last_error: StorefrontError | None = None,
        checking_out: bool = False,
    ) -> "CartSnapshotResponse":
        return cls(
            state=state,
            items=[
                CartItemView(
                    item_id=i.item_id, item_type=i.item_type,
                    price_minor_units=i.price_minor_units, title=i.title,
                )
                for i in cart.items
            ],
            count=cart.item_count,
            total=cart.total_minor_units,
            checking_out=checking_out,
            last_error=last_error.to_response()["error"] if last_error else None,
        )


class PurchaseOutcomeResponse(BaseModel):
    """Result of a checkout or single-item purchase that did not fail."""
    status: OutcomeStatus
    mode: CheckoutMode
    items: list[CartItemView]
    order_id: str | None = None
    payment_id: str | None = None
    free: bool = False
    message: str

    @classmethod
    def build(cls, outcome: PurchaseOutcome) -> "PurchaseOutcomeResponse":
        if outcome.granted:
            message = "Purchase complete"
        else:
            message = "Payment cancelled"
        order_id = outcome.order.order_id if outcome.order else None
        return cls(
            status=outcome.status,
            mode=outcome.target.mode,
            items=[
                CartItemView(
                    item_id=i.item_id, item_type=i.item_type,
                    price_minor_units=i.price_minor_units, title=i.title,
                )
                for i in outcome.target.items
            ],
            order_id=order_id,
            payment_id=outcome.receipt.payment_id if outcome.receipt else None,
            free=outcome.free,
            message=message,
        )


class GatewayCompletion(BaseModel):
    """Success payload the gateway handed to the payment page."""
    payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)

"""Checkout Value Objects — cart, order, receipt, and outcome types. Pure, immutable.

Invariants:
    - A Cart holds at most one CartItem per (item_id, item_type) pair
    - Cart.total_minor_units is always recomputed from items, never stored
    - PaymentOrder is single-use; a new attempt needs a new order
    - GatewayResult is exactly one of Completed{payment_id, order_id, signature} or Cancelled
    - PurchaseOutcome covers the non-error endings (granted, aborted); failures are exceptions

Design Decisions:
    - Frozen dataclasses: UI code reads snapshots and cannot mutate store state
    - Dedupe keeps the first occurrence: the server's ordering wins
"""

from dataclasses import dataclass, field
from typing import Any, Iterable

from storefront.core.domain_types import (
    CheckoutMode, GatewayResultKind, ItemId, ItemType, MinorUnits, OrderId,
    OutcomeStatus, PaymentId,
)
from storefront.core.errors import EmptyCartError, InvalidCartItemError


@dataclass(frozen=True)
class CartItem:
    """One purchasable item in a cart."""
    item_id: ItemId
    item_type: ItemType
    price_minor_units: MinorUnits
    title: str = ""

    @property
    def key(self) -> tuple[str, ItemType]:
        return (self.item_id, self.item_type)


def validate_cart_item(item: CartItem) -> None:
    """Reject items the backend would never accept. Raises InvalidCartItemError."""
    if not str(item.item_id).strip():
        raise InvalidCartItemError("item_id cannot be empty", "item_id")
    if not isinstance(item.price_minor_units, int) or isinstance(
        item.price_minor_units, bool,
    ):
        raise InvalidCartItemError(
            "price_minor_units must be an integer", "price_minor_units",
        )
    if item.price_minor_units < 0:
        raise InvalidCartItemError(
            "price_minor_units cannot be negative", "price_minor_units",
        )


def dedupe_items(items: Iterable[CartItem]) -> tuple[CartItem, ...]:
    """Drop repeated (item_id, item_type) pairs, keeping the first."""
    seen: set[tuple[str, ItemType]] = set()
    result = []
    for item in items:
        if item.key in seen:
            continue
        seen.add(item.key)
        result.append(item)
    return tuple(result)


@dataclass(frozen=True)
class Cart:
    """Immutable cart snapshot. Build with Cart.of() to enforce uniqueness."""
    items: tuple[CartItem, ...] = ()

    @classmethod
    def of(cls, items: Iterable[CartItem]) -> "Cart":
        return cls(items=dedupe_items(items))

    @classmethod
    def empty(cls) -> "Cart":
        return cls()

    @property
    def total_minor_units(self) -> MinorUnits:
        return MinorUnits(sum(item.price_minor_units for item in self.items))

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def contains(self, item_id: str, item_type: ItemType | None = None) -> bool:
        """Whether an item is in the cart; item_type=None matches any type."""
        return any(
            item.item_id == item_id
            and (item_type is None or item.item_type == item_type)
            for item in self.items
        )


@dataclass(frozen=True)
class PurchaseTarget:
    """What a checkout attempt buys: one item, or a frozen copy of the cart."""
    mode: CheckoutMode
    items: tuple[CartItem, ...]

    @classmethod
    def single(cls, item: CartItem) -> "PurchaseTarget":
        return cls(mode=CheckoutMode.SINGLE_ITEM, items=(item,))

    @classmethod
    def whole_cart(cls, cart: Cart) -> "PurchaseTarget":
        if cart.is_empty:
            raise EmptyCartError()
        return cls(mode=CheckoutMode.CART, items=cart.items)

    @property
    def item(self) -> CartItem:
        """The purchased item (single-item mode only)."""
        if self.mode is not CheckoutMode.SINGLE_ITEM:
            raise ValueError("cart targets have no single item")
        return self.items[0]

    @property
    def key(self) -> str:
        """In-flight guard key: one per item, one for the whole cart."""
        if self.mode is CheckoutMode.CART:
            return "cart"
        item = self.items[0]
        return f"{item.item_type.value}:{item.item_id}"

    @property
    def amount_minor_units(self) -> MinorUnits:
        return MinorUnits(sum(item.price_minor_units for item in self.items))

    @property
    def description(self) -> str:
        if self.mode is CheckoutMode.CART:
            return f"Cart Purchase: {len(self.items)} items"
        item = self.items[0]
        return f"Purchase {item.item_type.value}: {item.title or 'Item'}"


@dataclass(frozen=True)
class PaymentOrder:
    """Backend-created order for one gateway round trip."""
    order_id: OrderId
    amount_minor_units: MinorUnits
    currency: str
    gateway_key: str


@dataclass(frozen=True)
class GatewayResult:
    """Tagged result of one gateway session."""
    kind: GatewayResultKind
    payment_id: PaymentId | None = None
    order_id: OrderId | None = None
    signature: str | None = None

    @classmethod
    def completed(
        cls, payment_id: str, order_id: str, signature: str,
    ) -> "GatewayResult":
        return cls(
            GatewayResultKind.COMPLETED,
            PaymentId(payment_id), OrderId(order_id), signature,
        )

    @classmethod
    def cancelled(cls) -> "GatewayResult":
        return cls(GatewayResultKind.CANCELLED)

    @property
    def is_completed(self) -> bool:
        return self.kind is GatewayResultKind.COMPLETED


@dataclass(frozen=True)
class PurchaseReceipt:
    """Verification payload: what the gateway returned plus what was bought."""
    payment_id: PaymentId
    order_id: OrderId
    signature: str
    target: PurchaseTarget

    def __repr__(self) -> str:
        # signature stays out of logs and tracebacks
        return (
            f"PurchaseReceipt(payment_id={self.payment_id!r}, "
            f"order_id={self.order_id!r}, target={self.target.key!r})"
        )


@dataclass(frozen=True)
class PurchaseOutcome:
    """Non-error end of a checkout attempt."""
    status: OutcomeStatus
    target: PurchaseTarget
    receipt: PurchaseReceipt | None = None
    order: PaymentOrder | None = None
    free: bool = False
    verification: dict[str, Any] = field(default_factory=dict)

    @property
    def granted(self) -> bool:
        return self.status is OutcomeStatus.GRANTED

    @property
    def aborted(self) -> bool:
        return self.status is OutcomeStatus.ABORTED

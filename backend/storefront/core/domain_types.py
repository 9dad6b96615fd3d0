"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - ItemId, OrderId, PaymentId wrap opaque backend identifiers (str)
    - Money is always an integer count of minor units (paise, cents) — never float
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

ItemId = NewType("ItemId", str)
OrderId = NewType("OrderId", str)
PaymentId = NewType("PaymentId", str)


# ─── Value Types ─────────────────────────────────────────────────

MinorUnits = NewType("MinorUnits", int)    # >= 0


# ─── Enums ───────────────────────────────────────────────────────

class ItemType(str, Enum):
    """Kinds of purchasable marketplace items."""
    TEMPLATE = "template"
    COMPONENT = "component"


class CartState(str, Enum):
    """Cart store lifecycle states."""
    EMPTY = "empty"
    SYNCED = "synced"
    MUTATING = "mutating"
    ERROR = "error"


class CheckoutMode(str, Enum):
    """What a checkout attempt is buying."""
    SINGLE_ITEM = "single_item"
    CART = "cart"


class CheckoutPhase(str, Enum):
    """Checkout steps, in order. Errors name the phase so the user knows
    whether money may have moved."""
    GATEWAY_LOAD = "gateway_load"
    ORDER_CREATION = "order_creation"
    PAYMENT = "payment"
    VERIFICATION = "verification"


class OutcomeStatus(str, Enum):
    """Non-error terminal states of a checkout attempt."""
    GRANTED = "granted"
    ABORTED = "aborted"


class GatewayResultKind(str, Enum):
    """The two mutually exclusive ways a gateway session can end."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"

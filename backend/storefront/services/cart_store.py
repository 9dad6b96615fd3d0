"""Cart Store — the session's single authoritative local cart, synchronized with the backend.

Invariants:
    - After every successful server round trip the local cart IS the server's
      canonical cart (replaced wholesale, never merged); the total is recomputed
    - At most one CartItem per (item_id, item_type); re-adding is idempotent
    - Mutations are serialized: a second request waits for the first to settle
    - While a cart checkout is in flight, mutations raise CartLockedError
    - On any failure the last known-good cart stays visible, last_error is set,
      and the error propagates; items are never silently dropped
    - sign-out resets to EMPTY; results of operations started before sign-out are discarded
    - A granted checkout resets the cart to EMPTY (or re-syncs, if configured)
    - A granted checkout is never turned into a failure: if the re-sync fails the
      cart falls back to EMPTY with last_error set

States:
    EMPTY → (load) → SYNCED | ERROR
    SYNCED → (add/remove/clear) → MUTATING → SYNCED | ERROR
    any → (reset) → EMPTY

Design Decisions:
    - asyncio.Lock as the MUTATING soft lock: queues instead of interleaving
    - Generation counter instead of task cancellation for sign-out: an in-flight
      request may still land server-side, only its local effect is dropped
    - Reads may retry once on UNAUTHENTICATED (fresh token); writes never retry
"""

import asyncio
import logging
from typing import Awaitable, Callable

from storefront.core.domain_types import CartState, ItemType
from storefront.core.errors import (
    ApiError, ApiErrorKind, CartLockedError, CheckoutConflictError, StorefrontError,
)
from storefront.core.models import (
    Cart, CartItem, PurchaseOutcome, validate_cart_item,
)
from storefront.infrastructure.marketplace_api import MarketplaceApi
from storefront.services.checkout_orchestrator import CheckoutOrchestrator

logger = logging.getLogger(__name__)

_CART_TARGET = "cart"


class CartStore:
    """Owns the cart snapshot and every operation that changes it."""

    def __init__(
        self,
        api: MarketplaceApi,
        orchestrator: CheckoutOrchestrator,
        resync_after_checkout: bool = False,
    ):
        self._api = api
        self._orchestrator = orchestrator
        self._resync_after_checkout = resync_after_checkout
        self._cart = Cart.empty()
        self._state = CartState.EMPTY
        self._lock = asyncio.Lock()
        self._generation = 0
        self._checking_out = False
        self.last_error: StorefrontError | None = None

    # --- Snapshot ---------------------------------------------------------------

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def items(self) -> tuple[CartItem, ...]:
        return self._cart.items

    @property
    def count(self) -> int:
        return self._cart.item_count

    @property
    def total(self) -> int:
        return self._cart.total_minor_units

    @property
    def checking_out(self) -> bool:
        return self._checking_out

    def contains(self, item_id: str, item_type: ItemType | None = None) -> bool:
        return self._cart.contains(item_id, item_type)

    def clear_error(self) -> None:
        self.last_error = None

    # --- Lifecycle --------------------------------------------------------------

    async def load(self) -> Cart:
        """Fetch the canonical cart (initial sign-in sync, or manual refresh)."""
        return await self._run("sync", self._fetch_canonical)

    def reset(self) -> None:
        """Drop all local state (sign-out). In-flight results will be discarded."""
        self._generation += 1
        self._cart = Cart.empty()
        self.last_error = None
        self._transition(CartState.EMPTY, "reset")

    # --- Mutations --------------------------------------------------------------

    async def add(self, item: CartItem) -> Cart:
        try:
            validate_cart_item(item)
        except StorefrontError as e:
            self.last_error = e
            raise

        async def action() -> Cart:
            try:
                return await self._api.add_to_cart(item)
            except ApiError as e:
                if e.kind is not ApiErrorKind.CONFLICT:
                    raise
                logger.info(
                    f"Item {item.item_id} already in cart; adopting server cart",
                )
                return await self._fetch_canonical()

        return await self._run("add", action)

    async def remove(self, item_id: str) -> Cart:
        async def action() -> Cart:
            cart = await self._api.remove_from_cart(item_id)
            return cart if cart is not None else await self._fetch_canonical()

        return await self._run("remove", action)

    async def clear(self) -> Cart:
        """Empty the cart with one explicit request."""
        async def action() -> Cart:
            cart = await self._api.clear_cart()
            return cart if cart is not None else await self._fetch_canonical()

        return await self._run("clear", action)

    async def checkout(self, prefill: dict[str, str] | None = None) -> PurchaseOutcome:
        """Buy the whole cart. The cart is frozen until the attempt ends."""
        if self._checking_out:
            raise CheckoutConflictError(_CART_TARGET)
        self._checking_out = True
        generation = self._generation
        try:
            async with self._lock:
                snapshot = self._cart
            outcome = await self._orchestrator.purchase_cart(snapshot, prefill=prefill)
        except StorefrontError as e:
            if generation == self._generation:
                self.last_error = e
                self._transition(CartState.ERROR, "checkout")
            raise
        finally:
            self._checking_out = False

        if not outcome.granted or generation != self._generation:
            return outcome
        resync_error: StorefrontError | None = None
        if self._resync_after_checkout:
            try:
                await self.load()
                return outcome
            except StorefrontError as e:
                logger.warning(
                    f"Cart re-sync after a granted checkout failed: {e.message}",
                    extra={"order_id": outcome.order.order_id if outcome.order else None},
                )
                resync_error = e
        if generation == self._generation:
            self._cart = Cart.empty()
            self.last_error = resync_error
            self._transition(CartState.EMPTY, "checkout")
        return outcome

    # --- Internals --------------------------------------------------------------

    async def _run(self, operation: str, action: Callable[[], Awaitable[Cart]]) -> Cart:
        self._ensure_unlocked()
        async with self._lock:
            self._ensure_unlocked()
            generation = self._generation
            previous = self._state
            self.last_error = None
            self._transition(CartState.MUTATING, operation)
            try:
                cart = await action()
            except StorefrontError as e:
                if generation == self._generation:
                    self.last_error = e
                    self._transition(CartState.ERROR, operation)
                raise
            except BaseException:
                # cancelled or crashed mid-request: nothing learned, keep the prior state
                if generation == self._generation:
                    self._transition(previous, operation)
                raise
            if generation != self._generation:
                logger.info(f"Discarding {operation} result from a previous session")
                return self._cart
            self._cart = cart
            self._transition(CartState.SYNCED, operation)
            return self._cart

    async def _fetch_canonical(self) -> Cart:
        try:
            return await self._get_cart_or_empty()
        except ApiError as e:
            if e.kind is not ApiErrorKind.UNAUTHENTICATED:
                raise
            logger.info("Cart sync unauthenticated; retrying once with a fresh token")
            return await self._get_cart_or_empty()

    async def _get_cart_or_empty(self) -> Cart:
        try:
            return await self._api.get_cart()
        except ApiError as e:
            if e.kind is ApiErrorKind.NOT_FOUND:
                return Cart.empty()
            raise

    def _ensure_unlocked(self) -> None:
        if self._checking_out:
            raise CartLockedError()

    def _transition(self, state: CartState, operation: str) -> None:
        if state is not self._state:
            logger.debug(
                f"Cart {self._state.value} -> {state.value} ({operation})",
                extra={"cart_state": state, "item_count": self._cart.item_count},
            )
        self._state = state

"""Checkout Orchestrator — order creation → gateway session → verification, as one operation.

Invariants:
    - Steps are strictly sequential: load gateway, create order, open session, verify
    - At most one checkout in flight per target (one item, or the whole cart);
      a concurrent attempt for the same target raises CheckoutConflictError
      before any IO and without opening a second gateway session
    - Different targets may check out concurrently
    - Cancelled at the gateway → PurchaseOutcome(ABORTED); no verification call is made
    - Completed at the gateway but not verified → VerificationFailedError, always;
      never retried, never turned into a success, never swallowed
    - Once verification is sent it runs to completion even if the caller is cancelled
    - Order-creation failures re-raise the original error tagged with its phase

Design Decisions:
    - In-flight guard is a plain set: the event loop is single-threaded, and the
      check-and-claim happens before the first await
    - Free single items skip order and gateway entirely (nothing to charge)
    - A verify response carrying success=false is a failed verification,
      even with HTTP 200
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from storefront.core.domain_types import CheckoutMode, CheckoutPhase, OutcomeStatus
from storefront.core.errors import (
    ApiError, ApiErrorKind, CheckoutConflictError, ErrorContext,
    GatewayUnavailableError, StorefrontError, VerificationFailedError,
)
from storefront.core.models import (
    Cart, CartItem, PaymentOrder, PurchaseOutcome, PurchaseReceipt,
    PurchaseTarget, validate_cart_item,
)
from storefront.infrastructure.marketplace_api import MarketplaceApi
from storefront.services.gateway_bridge import PaymentGatewayBridge

logger = logging.getLogger(__name__)


class CheckoutOrchestrator:
    """Runs single-item and whole-cart purchases through the payment handshake."""

    def __init__(
        self,
        api: MarketplaceApi,
        gateway: PaymentGatewayBridge,
        merchant_name: str = "",
        theme_color: str | None = None,
    ):
        self._api = api
        self._gateway = gateway
        self._merchant_name = merchant_name
        self._theme_color = theme_color
        self._in_flight: set[str] = set()

    def is_in_flight(self, target_key: str) -> bool:
        return target_key in self._in_flight

    async def purchase_item(
        self, item: CartItem, prefill: dict[str, str] | None = None,
    ) -> PurchaseOutcome:
        """Buy one item outside the cart."""
        validate_cart_item(item)
        target = PurchaseTarget.single(item)
        if item.price_minor_units == 0:
            logger.info("Free item granted without payment", extra={"target": target.key})
            return PurchaseOutcome(OutcomeStatus.GRANTED, target, free=True)
        return await self._run(target, prefill)

    async def purchase_cart(
        self, cart: Cart, prefill: dict[str, str] | None = None,
    ) -> PurchaseOutcome:
        """Buy every item in the given cart snapshot. Raises EmptyCartError if empty."""
        target = PurchaseTarget.whole_cart(cart)
        return await self._run(target, prefill)

    @contextmanager
    def _claim(self, target: PurchaseTarget) -> Iterator[None]:
        if target.key in self._in_flight:
            logger.warning(
                "Rejected duplicate checkout", extra={"target": target.key},
            )
            raise CheckoutConflictError(target.key)
        self._in_flight.add(target.key)
        try:
            yield
        finally:
            self._in_flight.discard(target.key)

    async def _run(
        self, target: PurchaseTarget, prefill: dict[str, str] | None,
    ) -> PurchaseOutcome:
        with self._claim(target):
            logger.info(
                "Checkout started",
                extra={"target": target.key, "checkout_phase": CheckoutPhase.GATEWAY_LOAD},
            )
            if not await self._gateway.ensure_loaded():
                raise GatewayUnavailableError(
                    "Failed to load payment gateway",
                    ErrorContext(
                        checkout_phase=CheckoutPhase.GATEWAY_LOAD, target=target.key,
                    ),
                )

            order = await self._create_order(target)

            try:
                result = await self._gateway.open_session(
                    order,
                    name=self._merchant_name,
                    description=target.description,
                    prefill=prefill,
                    theme_color=self._theme_color,
                )
            except StorefrontError as e:
                e.context.target = target.key
                raise

            if not result.is_completed:
                logger.info(
                    "Payment cancelled by user",
                    extra={"target": target.key, "order_id": order.order_id},
                )
                return PurchaseOutcome(OutcomeStatus.ABORTED, target, order=order)

            receipt = PurchaseReceipt(
                payment_id=result.payment_id,
                order_id=result.order_id or order.order_id,
                signature=result.signature or "",
                target=target,
            )
            verification = await self._verify_to_completion(receipt)
            logger.info(
                "Purchase verified",
                extra={
                    "target": target.key, "order_id": receipt.order_id,
                    "payment_id": receipt.payment_id,
                },
            )
            return PurchaseOutcome(
                OutcomeStatus.GRANTED, target, receipt=receipt, order=order,
                verification=verification,
            )

    async def _create_order(self, target: PurchaseTarget) -> PaymentOrder:
        logger.info(
            "Creating payment order",
            extra={"target": target.key, "checkout_phase": CheckoutPhase.ORDER_CREATION},
        )
        try:
            if target.mode is CheckoutMode.CART:
                return await self._api.create_cart_order()
            return await self._api.create_item_order(target.item)
        except StorefrontError as e:
            # unchanged error, tagged so the UI can say "no money moved"
            e.context.checkout_phase = CheckoutPhase.ORDER_CREATION
            e.context.target = target.key
            raise

    async def _verify_to_completion(self, receipt: PurchaseReceipt) -> dict[str, Any]:
        """Verify, ignoring cancellation: past this point only granted or
        reconciliation-needed are valid endings."""
        task = asyncio.ensure_future(self._verify(receipt))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None:
                current.uncancel()
            logger.warning(
                "Cancellation ignored while verifying a completed payment",
                extra={"order_id": receipt.order_id, "payment_id": receipt.payment_id},
            )
            return await task

    async def _verify(self, receipt: PurchaseReceipt) -> dict[str, Any]:
        logger.info(
            "Verifying purchase",
            extra={
                "order_id": receipt.order_id, "payment_id": receipt.payment_id,
                "checkout_phase": CheckoutPhase.VERIFICATION,
            },
        )
        try:
            if receipt.target.mode is CheckoutMode.CART:
                result = await self._api.verify_cart_purchase(receipt)
            else:
                result = await self._api.verify_item_purchase(receipt)
        except Exception as e:
            raise self._verification_failed(receipt, e) from e
        if result.get("success") is False:
            message = result.get("detail") or result.get("message") or "verification rejected"
            raise self._verification_failed(
                receipt, ApiError(ApiErrorKind.VALIDATION, str(message), details=result),
            )
        return result

    def _verification_failed(
        self, receipt: PurchaseReceipt, cause: BaseException,
    ) -> VerificationFailedError:
        error = VerificationFailedError(
            receipt, cause=cause, context=ErrorContext(target=receipt.target.key),
        )
        logger.error(
            error.message,
            extra={
                "order_id": receipt.order_id, "payment_id": receipt.payment_id,
                "target": receipt.target.key, "error_code": error.code,
                "checkout_phase": CheckoutPhase.VERIFICATION,
            },
        )
        return error

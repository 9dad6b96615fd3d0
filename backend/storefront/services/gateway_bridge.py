"""Payment Gateway Bridge — single-flight script loading and one-shot payment sessions.

Invariants:
    - The checkout script is loaded at most once per process; concurrent callers
      of ensure_loaded() await the same in-flight load
    - The loaded flag is write-once: set on the first success, never cleared
    - A failed load is not cached: the next ensure_loaded() tries again
    - open_session() resolves exactly once: the first of handler / on_dismiss wins,
      any later callback is logged and ignored
    - No timeout and no retry here: the gateway UI owns the wait, a new attempt
      needs a new order
    - A caller cancelled while waiting closes the widget, so a late completion
      cannot land in a session nobody is verifying

Design Decisions:
    - Callback SDK collapsed into one awaitable: handler and on_dismiss both
      settle the same Future with a tagged GatewayResult
    - A success payload with missing fields still counts as Completed: money may
      have moved, so verification (not the bridge) must decide
"""

import asyncio
import logging
from typing import Any

from storefront.core.boundary_protocols import (
    GatewayOptions, GatewayWidgetFactory, ScriptLoader,
)
from storefront.core.domain_types import CheckoutPhase
from storefront.core.errors import ErrorContext, GatewayUnavailableError
from storefront.core.models import GatewayResult, PaymentOrder

logger = logging.getLogger(__name__)


class PaymentGatewayBridge:
    """Loads the gateway once and drives single payment sessions to completion."""

    def __init__(self, loader: ScriptLoader, widget_factory: GatewayWidgetFactory):
        self._loader = loader
        self._widget_factory = widget_factory
        self._loaded = False
        self._loading: asyncio.Future[bool] | None = None

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def ensure_loaded(self) -> bool:
        """Load the checkout script if needed. False if it cannot be loaded."""
        if self._loaded:
            return True
        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load_once())
        # shield: one cancelled waiter must not abort the load for the others
        return await asyncio.shield(self._loading)

    async def _load_once(self) -> bool:
        try:
            ok = await self._loader.load()
        except Exception as e:
            logger.error(f"Gateway script loader raised: {e}", exc_info=True)
            ok = False
        if ok:
            self._loaded = True
        self._loading = None
        return ok

    async def open_session(
        self,
        order: PaymentOrder,
        *,
        name: str = "",
        description: str = "",
        prefill: dict[str, str] | None = None,
        theme_color: str | None = None,
    ) -> GatewayResult:
        """Open one gateway session for the order and wait for its single result."""
        if not self._loaded:
            raise GatewayUnavailableError(
                "Payment gateway is not loaded",
                ErrorContext(
                    checkout_phase=CheckoutPhase.PAYMENT, order_id=order.order_id,
                ),
            )

        future: asyncio.Future[GatewayResult] = (
            asyncio.get_running_loop().create_future()
        )

        def handler(response: dict[str, Any]) -> None:
            if future.done():
                logger.warning(
                    "Ignoring gateway success callback: session already resolved",
                    extra={"order_id": order.order_id},
                )
                return
            future.set_result(GatewayResult.completed(
                payment_id=response.get("razorpay_payment_id") or "",
                order_id=response.get("razorpay_order_id") or order.order_id,
                signature=response.get("razorpay_signature") or "",
            ))

        def on_dismiss() -> None:
            if future.done():
                logger.warning(
                    "Ignoring gateway dismissal: session already resolved",
                    extra={"order_id": order.order_id},
                )
                return
            future.set_result(GatewayResult.cancelled())

        options = GatewayOptions(
            key=order.gateway_key,
            amount=order.amount_minor_units,
            currency=order.currency,
            order_id=order.order_id,
            handler=handler,
            on_dismiss=on_dismiss,
            name=name,
            description=description,
            prefill=dict(prefill or {}),
            theme_color=theme_color,
        )
        try:
            widget = self._widget_factory(options)
            widget.open()
        except Exception as e:
            if future.done():
                # the widget already reported a result; it must not be lost
                logger.warning(
                    f"Gateway widget raised after resolving: {e}",
                    extra={"order_id": order.order_id},
                )
                return future.result()
            future.cancel()
            raise GatewayUnavailableError(
                f"Payment window could not be opened: {e}",
                ErrorContext(
                    checkout_phase=CheckoutPhase.PAYMENT, order_id=order.order_id,
                ),
            ) from e

        logger.info(
            "Gateway session opened",
            extra={"order_id": order.order_id, "checkout_phase": CheckoutPhase.PAYMENT},
        )
        try:
            return await future
        except asyncio.CancelledError:
            if (
                future.done() and not future.cancelled()
                and future.result().is_completed
            ):
                # money moved before the caller gave up; verification must still run
                asyncio.current_task().uncancel()
                logger.warning(
                    "Caller cancelled after gateway completion; keeping the result",
                    extra={"order_id": order.order_id},
                )
                return future.result()
            future.cancel()
            widget.close()
            logger.info(
                "Gateway session abandoned by caller",
                extra={"order_id": order.order_id},
            )
            raise

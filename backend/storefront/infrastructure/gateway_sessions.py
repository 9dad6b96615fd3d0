"""Gateway Session Registry — hands open payment sessions to a browser payment page.

Invariants:
    - The registry is a GatewayWidgetFactory: calling it builds a widget for one order
    - A widget becomes visible in pending() only once open() is called
    - complete()/dismiss() fire the session's handler/on_dismiss exactly once,
      then the session is closed; later callbacks raise GatewaySessionClosedError
    - Unknown order ids raise GatewaySessionNotFoundError
    - close() withdraws a session without firing any callback; the page can no
      longer complete it

Design Decisions:
    - The payment page opens the real gateway widget with public_view() options and
      posts the gateway's handler payload (or dismissal) back through the API;
      this module turns those posts into the callback contract the bridge expects
    - Closed order ids are remembered so duplicate posts get 409, not 404;
      only the most recent max_closed ids are kept
"""

import logging
from collections import OrderedDict
from typing import Any

from storefront.core.boundary_protocols import GatewayOptions
from storefront.core.errors import (
    GatewaySessionClosedError, GatewaySessionNotFoundError,
)

logger = logging.getLogger(__name__)

_CLOSED_HISTORY = 1024


class CallbackGatewayWidget:
    """Widget whose callbacks are fired by the registry."""

    def __init__(self, registry: "GatewaySessionRegistry", options: GatewayOptions):
        self._registry = registry
        self.options = options

    def open(self) -> None:
        self._registry._register(self)

    def close(self) -> None:
        self._registry._close(self.options.order_id)


class GatewaySessionRegistry:
    """Open gateway sessions keyed by order id."""

    def __init__(self, max_closed: int = _CLOSED_HISTORY):
        self._open: dict[str, CallbackGatewayWidget] = {}
        self._closed: OrderedDict[str, None] = OrderedDict()
        self._max_closed = max_closed

    def __call__(self, options: GatewayOptions) -> CallbackGatewayWidget:
        return CallbackGatewayWidget(self, options)

    def pending(self) -> list[dict[str, Any]]:
        """Options of every open session, for the payment page."""
        return [w.options.public_view() for w in self._open.values()]

    def complete(
        self, order_id: str, payment_id: str, signature: str,
    ) -> None:
        """Deliver the gateway's success payload for an open session."""
        widget = self._take(order_id)
        logger.info(
            "Gateway session completed",
            extra={"order_id": order_id, "payment_id": payment_id},
        )
        widget.options.handler({
            "razorpay_payment_id": payment_id,
            "razorpay_order_id": order_id,
            "razorpay_signature": signature,
        })

    def dismiss(self, order_id: str) -> None:
        """Deliver the gateway's modal dismissal for an open session."""
        widget = self._take(order_id)
        logger.info("Gateway session dismissed", extra={"order_id": order_id})
        widget.options.on_dismiss()

    def clear(self) -> None:
        """Dismiss every open session (sign-out)."""
        for order_id in list(self._open):
            self.dismiss(order_id)

    def _register(self, widget: CallbackGatewayWidget) -> None:
        order_id = widget.options.order_id
        if order_id in self._open or order_id in self._closed:
            raise GatewaySessionClosedError(order_id)
        self._open[order_id] = widget

    def _take(self, order_id: str) -> CallbackGatewayWidget:
        widget = self._open.pop(order_id, None)
        if widget is None:
            if order_id in self._closed:
                raise GatewaySessionClosedError(order_id)
            raise GatewaySessionNotFoundError(order_id)
        self._remember_closed(order_id)
        return widget

    def _close(self, order_id: str) -> None:
        if self._open.pop(order_id, None) is None:
            return
        self._remember_closed(order_id)
        logger.info(
            "Gateway session closed without a result", extra={"order_id": order_id},
        )

    def _remember_closed(self, order_id: str) -> None:
        self._closed[order_id] = None
        while len(self._closed) > self._max_closed:
            self._closed.popitem(last=False)

"""Storefront Session — composition root tying auth, cart, gateway, and checkout to one sign-in.

Invariants:
    - One StorefrontSession per process; it owns every store, nothing is module-global
    - sign_in stores the bearer token, then performs the initial cart sync
    - sign_out clears the token, dismisses open gateway sessions, and resets the cart
    - A granted purchase marks its items owned; an aborted one changes nothing
    - Purchases and owned-item refreshes that finish after sign-out leave the
      new session's owned set untouched

Design Decisions:
    - Explicit dependency passing: services receive collaborators in __init__,
      from_settings() is the only place that wires real implementations
    - Owned-item refresh on sign-in is best-effort: a failure is logged, not raised,
      because ownership display must not block the cart
"""

import logging

import httpx

from storefront.config import Settings
from storefront.core.domain_types import ItemType
from storefront.core.errors import StorefrontError
from storefront.core.models import Cart, CartItem, PurchaseOutcome
from storefront.infrastructure.api_client import AuthenticatedApiClient
from storefront.infrastructure.gateway_sessions import GatewaySessionRegistry
from storefront.infrastructure.marketplace_api import MarketplaceApi
from storefront.infrastructure.script_loader import HttpScriptLoader
from storefront.services.cart_store import CartStore
from storefront.services.checkout_orchestrator import CheckoutOrchestrator
from storefront.services.gateway_bridge import PaymentGatewayBridge

logger = logging.getLogger(__name__)


class SessionTokenHolder:
    """TokenProvider for a locally signed-in user."""

    def __init__(self):
        self._token: str | None = None

    async def get_token(self) -> str | None:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class StorefrontSession:
    """Everything the UI layer calls: cart operations, purchases, session lifecycle."""

    def __init__(
        self,
        tokens: SessionTokenHolder,
        api: MarketplaceApi,
        gateway: PaymentGatewayBridge,
        gateway_sessions: GatewaySessionRegistry,
        orchestrator: CheckoutOrchestrator,
        cart: CartStore,
        http_client: AuthenticatedApiClient | None = None,
    ):
        self.tokens = tokens
        self.api = api
        self.gateway = gateway
        self.gateway_sessions = gateway_sessions
        self.orchestrator = orchestrator
        self.cart = cart
        self._http_client = http_client
        self.owned_items: set[tuple[str, ItemType]] = set()
        self.prefill: dict[str, str] = {}
        self._signed_in = False
        self._generation = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        api_transport: httpx.AsyncBaseTransport | None = None,
        script_transport: httpx.AsyncBaseTransport | None = None,
    ) -> "StorefrontSession":
        tokens = SessionTokenHolder()
        client = AuthenticatedApiClient(
            settings.api_base_url, tokens,
            timeout_seconds=settings.api_timeout_seconds,
            transport=api_transport,
        )
        api = MarketplaceApi(client, settings)
        registry = GatewaySessionRegistry()
        gateway = PaymentGatewayBridge(
            HttpScriptLoader(
                settings.gateway_script_url,
                timeout_seconds=settings.gateway_script_timeout_seconds,
                transport=script_transport,
            ),
            registry,
        )
        orchestrator = CheckoutOrchestrator(
            api, gateway,
            merchant_name=settings.merchant_name,
            theme_color=settings.theme_color,
        )
        cart = CartStore(
            api, orchestrator,
            resync_after_checkout=settings.cart_resync_after_checkout,
        )
        return cls(
            tokens, api, gateway, registry, orchestrator, cart, http_client=client,
        )

    # --- Lifecycle --------------------------------------------------------------

    @property
    def signed_in(self) -> bool:
        return self._signed_in

    async def sign_in(
        self, token: str, name: str | None = None, email: str | None = None,
    ) -> Cart:
        """Start an authenticated session and sync its cart."""
        if self._signed_in:
            self.sign_out()
        self.tokens.set(token)
        self._signed_in = True
        self.prefill = {k: v for k, v in (("name", name), ("email", email)) if v}
        await self.refresh_owned_items()
        return await self.cart.load()

    def sign_out(self) -> None:
        self._generation += 1
        self.tokens.clear()
        self._signed_in = False
        self.prefill = {}
        self.owned_items.clear()
        self.gateway_sessions.clear()
        self.cart.reset()
        logger.info("Signed out; cart reset")

    async def refresh_owned_items(self) -> None:
        generation = self._generation
        try:
            owned = await self.api.get_purchased_items()
        except StorefrontError as e:
            logger.warning(
                f"Could not load purchased items: {e.message}",
                extra={"error_code": e.code},
            )
            return
        if generation == self._generation:
            self.owned_items = set(owned)

    def is_owned(self, item_id: str, item_type: ItemType) -> bool:
        return (item_id, item_type) in self.owned_items

    # --- Cart -------------------------------------------------------------------

    async def add_to_cart(self, item: CartItem) -> Cart:
        return await self.cart.add(item)

    async def remove_from_cart(self, item_id: str) -> Cart:
        return await self.cart.remove(item_id)

    async def clear_cart(self) -> Cart:
        return await self.cart.clear()

    async def checkout(self) -> PurchaseOutcome:
        generation = self._generation
        outcome = await self.cart.checkout(prefill=self.prefill)
        self._mark_owned(outcome, generation)
        return outcome

    # --- Single item ------------------------------------------------------------

    async def purchase_single_item(self, item: CartItem) -> PurchaseOutcome:
        generation = self._generation
        outcome = await self.orchestrator.purchase_item(item, prefill=self.prefill)
        self._mark_owned(outcome, generation)
        return outcome

    def _mark_owned(self, outcome: PurchaseOutcome, generation: int) -> None:
        if not outcome.granted:
            return
        if generation != self._generation:
            logger.info(
                "Purchase granted after sign-out; not marking items owned",
                extra={"order_id": outcome.order.order_id if outcome.order else None},
            )
            return
        for item in outcome.target.items:
            self.owned_items.add(item.key)

    async def aclose(self) -> None:
        self.sign_out()
        if self._http_client is not None:
            await self._http_client.aclose()

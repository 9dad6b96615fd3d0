"""Boundary Protocols — contracts between the checkout core and its collaborators.

Invariants:
    - Core NEVER imports from infrastructure — dependency arrows point inward only
    - Auth, script loading, and the gateway widget are reached only through these types
    - GatewayOptions mirrors the gateway constructor contract:
      {key, amount, currency, order_id, handler, modal.ondismiss}

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no base class
    - handler / on_dismiss are plain callables: the bridge, not the widget,
      decides which of them wins
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol


class TokenProvider(Protocol):
    """Auth collaborator. Returns the current bearer token, or None if signed out.

    May re-acquire a fresh token on every call; refresh handling is its concern.
    """
    async def get_token(self) -> str | None: ...


class ScriptLoader(Protocol):
    """Loads the third-party checkout script. True on success, False if blocked."""
    async def load(self) -> bool: ...


@dataclass
class GatewayOptions:
    """Options handed to the gateway constructor for one session."""
    key: str
    amount: int
    currency: str
    order_id: str
    handler: Callable[[dict[str, Any]], None]
    on_dismiss: Callable[[], None]
    name: str = ""
    description: str = ""
    prefill: dict[str, str] = field(default_factory=dict)
    theme_color: str | None = None

    def public_view(self) -> dict[str, Any]:
        """Everything a payment page needs to open the widget, minus the callbacks."""
        return {
            "key": self.key,
            "amount": self.amount,
            "currency": self.currency,
            "order_id": self.order_id,
            "name": self.name,
            "description": self.description,
            "prefill": dict(self.prefill),
            "theme": {"color": self.theme_color} if self.theme_color else {},
        }


class GatewayWidget(Protocol):
    """An opened-or-openable gateway checkout UI."""
    def open(self) -> None: ...
    def close(self) -> None: ...


class GatewayWidgetFactory(Protocol):
    """The globally-provided gateway constructor."""
    def __call__(self, options: GatewayOptions) -> GatewayWidget: ...

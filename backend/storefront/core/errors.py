"""Error Hierarchy — typed, categorized exceptions for every checkout failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Backend failures are decoded once, into ApiError with a fixed ApiErrorKind;
      nothing downstream branches on raw HTTP status codes
    - VerificationFailedError is always CRITICAL: the user may have been charged
    - A user-cancelled payment is NOT an error (see PurchaseOutcome in core/models.py)
    - to_response() produces the REST envelope; no internal details leaked

Design Decisions:
    - Single hierarchy with StorefrontError base: FastAPI global handler catches all
    - ErrorContext as dataclass: the checkout phase and target travel with the error
      without coupling callers to logging
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone

from storefront.core.domain_types import CheckoutPhase


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    EXTERNAL_API = "external_api"
    NETWORK = "network"
    GATEWAY = "gateway"
    CONFLICT = "conflict"
    RECONCILIATION = "reconciliation"
    INTERNAL = "internal"


class ApiErrorKind(str, Enum):
    """Backend failure kinds, decoded from HTTP status at the client boundary."""
    UNAUTHENTICATED = "unauthenticated"
    NETWORK_FAILURE = "network_failure"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Rich context for error observability and user-facing messages."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    checkout_phase: CheckoutPhase | None = None
    target: str | None = None
    order_id: str | None = None
    payment_id: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def checkout_phase(self) -> CheckoutPhase | None:
        return self.context.checkout_phase

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        phase = self.context.checkout_phase
        return {
            "error": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "checkout_phase": phase.value if phase else None,
                    "target": self.context.target,
                    "order_id": self.context.order_id,
                    "payment_id": self.context.payment_id,
                },
            }
        }


# ─── Backend / Transport Errors ─────────────────────────────────

_KIND_CATEGORY = {
    ApiErrorKind.UNAUTHENTICATED: ErrorCategory.AUTHENTICATION,
    ApiErrorKind.NETWORK_FAILURE: ErrorCategory.NETWORK,
    ApiErrorKind.CONFLICT: ErrorCategory.CONFLICT,
    ApiErrorKind.VALIDATION: ErrorCategory.VALIDATION,
}

_KIND_HTTP_STATUS = {
    ApiErrorKind.UNAUTHENTICATED: 401,
    ApiErrorKind.NETWORK_FAILURE: 503,
    ApiErrorKind.FORBIDDEN: 403,
    ApiErrorKind.NOT_FOUND: 404,
    ApiErrorKind.CONFLICT: 409,
    ApiErrorKind.VALIDATION: 400,
    ApiErrorKind.SERVER_ERROR: 502,
    ApiErrorKind.UNKNOWN: 502,
}


class ApiError(StorefrontError):
    """Marketplace backend call failed (or was never attempted for lack of a token)."""

    def __init__(
        self,
        kind: ApiErrorKind,
        message: str,
        status_code: int | None = None,
        details: Any = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, f"API_{kind.name}",
            _KIND_CATEGORY.get(kind, ErrorCategory.EXTERNAL_API),
            ErrorSeverity.ERROR, context, _KIND_HTTP_STATUS[kind],
        )
        self.kind = kind
        self.status_code = status_code
        self.details = details


def api_error_kind_for_status(status_code: int) -> ApiErrorKind:
    """Map an HTTP error status onto the fixed ApiErrorKind set."""
    if status_code == 401:
        return ApiErrorKind.UNAUTHENTICATED
    if status_code == 403:
        return ApiErrorKind.FORBIDDEN
    if status_code == 404:
        return ApiErrorKind.NOT_FOUND
    if status_code == 409:
        return ApiErrorKind.CONFLICT
    if status_code in (400, 422):
        return ApiErrorKind.VALIDATION
    if status_code >= 500:
        return ApiErrorKind.SERVER_ERROR
    return ApiErrorKind.UNKNOWN


# ─── Domain Errors (400-level) ──────────────────────────────────

class InvalidCartItemError(StorefrontError):
    """Cart item failed local validation; nothing was sent."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_CART_ITEM", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class EmptyCartError(StorefrontError):
    """Checkout requested with nothing in the cart."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Cart is empty", "CART_EMPTY", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class CheckoutConflictError(StorefrontError):
    """A checkout for the same target is already in flight."""
    def __init__(self, target: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.target = target
        super().__init__(
            f"A checkout for {target} is already in progress",
            "CHECKOUT_IN_PROGRESS", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, ctx, 409,
        )


class CartLockedError(StorefrontError):
    """Cart mutation requested while the cart is being checked out."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Cart cannot be changed while checkout is in progress",
            "CART_LOCKED", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


# ─── Gateway / Payment Errors ───────────────────────────────────

class GatewayUnavailableError(StorefrontError):
    """Payment gateway script could not be loaded or the session could not open."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        if ctx.checkout_phase is None:
            ctx.checkout_phase = CheckoutPhase.GATEWAY_LOAD
        super().__init__(
            message, "GATEWAY_UNAVAILABLE", ErrorCategory.GATEWAY,
            ErrorSeverity.ERROR, ctx, 503,
        )


class VerificationFailedError(StorefrontError):
    """Payment completed at the gateway but the backend did not grant access.

    The charge may have gone through. Never retried automatically, never
    downgraded: the user needs support / manual reconciliation.
    """
    def __init__(
        self,
        receipt: Any,
        cause: BaseException | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.checkout_phase = CheckoutPhase.VERIFICATION
        ctx.order_id = receipt.order_id
        ctx.payment_id = receipt.payment_id
        ctx.user_message = (
            "Your payment was received but could not be verified. "
            f"Please contact support with payment id {receipt.payment_id}."
        )
        reason = getattr(cause, "message", None) or str(cause or "unknown reason")
        super().__init__(
            f"Purchase verification failed for order {receipt.order_id}: {reason}",
            "VERIFICATION_FAILED", ErrorCategory.RECONCILIATION,
            ErrorSeverity.CRITICAL, ctx, 502,
        )
        self.receipt = receipt
        self.cause = cause
        self.needs_reconciliation = True


class GatewaySessionNotFoundError(StorefrontError):
    """No open gateway session exists for the given order."""
    def __init__(self, order_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.order_id = order_id
        super().__init__(
            f"No open payment session for order '{order_id}'",
            "GATEWAY_SESSION_NOT_FOUND", ErrorCategory.GATEWAY,
            ErrorSeverity.WARNING, ctx, 404,
        )


class GatewaySessionClosedError(StorefrontError):
    """The gateway session already resolved; callbacks fire at most once."""
    def __init__(self, order_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.order_id = order_id
        super().__init__(
            f"Payment session for order '{order_id}' has already finished",
            "GATEWAY_SESSION_CLOSED", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, ctx, 409,
        )

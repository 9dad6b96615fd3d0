"""Gateway Routes — the payment page's side of an open gateway session.

Invariants:
    - GET /gateway/sessions lists open sessions without their callbacks
    - complete/dismiss resolve a session exactly once; a second call → 409,
      an unknown order id → 404
    - The checkout request blocked on the session resumes as soon as one resolves

Design Decisions:
    - The hosted checkout widget runs in the browser; this router is how its
      handler/on_dismiss callbacks reach the in-process bridge
"""

from fastapi import APIRouter, Depends, status

from storefront.api.dependencies import get_storefront
from storefront.schemas.storefront_api import GatewayCompletion
from storefront.services.storefront_session import StorefrontSession

router = APIRouter(prefix="/api/v1/gateway", tags=["gateway"])


@router.get("/sessions")
async def list_sessions(storefront: StorefrontSession = Depends(get_storefront)):
    return {"sessions": storefront.gateway_sessions.pending()}


@router.post(
    "/sessions/{order_id}/complete", status_code=status.HTTP_202_ACCEPTED,
)
async def complete_session(
    order_id: str,
    body: GatewayCompletion,
    storefront: StorefrontSession = Depends(get_storefront),
):
    storefront.gateway_sessions.complete(order_id, body.payment_id, body.signature)
    return {"order_id": order_id, "status": "completed"}


@router.post(
    "/sessions/{order_id}/dismiss", status_code=status.HTTP_202_ACCEPTED,
)
async def dismiss_session(
    order_id: str, storefront: StorefrontSession = Depends(get_storefront),
):
    storefront.gateway_sessions.dismiss(order_id)
    return {"order_id": order_id, "status": "cancelled"}

"""API Dependencies — FastAPI providers for the process-wide storefront session."""

from fastapi import Request

from storefront.services.storefront_session import StorefrontSession


def get_storefront(request: Request) -> StorefrontSession:
    """The StorefrontSession built in the app lifespan."""
    return request.app.state.storefront

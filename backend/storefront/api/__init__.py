"""API Layer — FastAPI routes and error handlers for the UI layer.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - All endpoints return structured JSON responses

Design Decisions:
    - Thin routes delegate to StorefrontSession; no cart or checkout logic here
"""

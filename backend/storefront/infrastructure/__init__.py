"""Infrastructure Layer — outbound HTTP, gateway hand-off, and cross-cutting concerns.

Invariants:
    - Infrastructure never decides checkout flow; it only performs and maps IO
    - All outbound failures mapped to typed errors (core/errors.py)
"""

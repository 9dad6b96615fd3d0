"""Pydantic Schemas — wire validation for the marketplace backend and the local API.

Invariants:
    - Schemas validate at system boundary (backend responses, UI requests)
    - Domain types from core/ used for enum fields
    - to_domain() converts a validated payload into core value objects

Design Decisions:
    - Separate from core models: schemas are wire contracts, core objects are domain
"""

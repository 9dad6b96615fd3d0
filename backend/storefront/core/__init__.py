"""Core Layer — pure domain logic and boundary contracts, no IO, no HTTP.

Invariants:
    - No module in core/ imports from services/, api/, or infrastructure/
    - All functions are pure and deterministic

Design Decisions:
    - Functional core separated from imperative shell: the cart total and dedupe
      rules are testable without a network or an event loop
"""

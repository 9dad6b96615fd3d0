"""Services Layer — gateway bridge, checkout orchestrator, cart store, session root.

Invariants:
    - Services depend on infrastructure only through constructor injection
    - No module-level mutable state; every store is owned by a StorefrontSession
"""

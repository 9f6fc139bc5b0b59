"""Route Modules — one file per concern.

Invariants:
    - Bootstrap routes (health, docs) are FastAPI APIRouters
    - Versioned /api/v1 routes register on the gateway Router (v1.py)
"""

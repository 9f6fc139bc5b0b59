"""API Layer — ASGI middleware hosting the pipeline, error handlers and routes.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - Every non-2xx JSON response uses the failure envelope
"""

"""Core Layer — request pipeline, rate limiting, CORS policy, routing and error taxonomy.

Invariants:
    - No module in core/ imports from api/ or infrastructure/
    - Policies (CORS, rate limit, routing) return tagged results; only handlers raise
"""

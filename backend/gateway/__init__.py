"""Anime API Gateway Package — HTTP gateway fronting the anime metadata API.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""

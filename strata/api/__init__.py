"""API Layer — controllers, FastAPI routes and error handlers.

Invariants:
    - Controllers are the only layer that turns exceptions into response envelopes
    - Routes registered explicitly in main.py (no auto-discovery)

Design Decisions:
    - Thin routes adapt HTTP into Request envelopes and delegate to controllers
"""

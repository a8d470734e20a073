"""Core Layer — pure framework contracts, no IO, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Everything here is deterministic given its inputs (clocks are injected)

Design Decisions:
    - Functional core separated from imperative shell (ADR: impureim sandwich)
"""

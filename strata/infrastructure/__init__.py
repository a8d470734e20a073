"""Infrastructure Layer — persistence adapters and cross-cutting concerns (logging).

Invariants:
    - Adapters satisfy the Protocols in core/boundary_protocols.py
    - Backend failures are mapped to PersistenceError at the adapter or repository edge

Design Decisions:
    - Two interchangeable Persistence adapters (in-memory, async SQLAlchemy) behind one Protocol
"""

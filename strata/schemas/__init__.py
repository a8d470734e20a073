"""Pydantic Schemas — envelopes and request payload validation.

Invariants:
    - Schemas validate at system boundary (request envelopes, domain payloads)
    - Domain enums come from core/domain_types.py

Design Decisions:
    - Separate from models: schemas are contracts, models are persistence (ADR: DDD boundary)
"""

"""Services Layer — repositories, services and workflow orchestration.

Invariants:
    - Every collaborator (persistence, logger, cache) is constructor-injected
    - Errors are logged with full context and re-raised, never swallowed

Design Decisions:
    - Base classes carry the pipeline; domain subclasses only fill hooks (ADR: template method)
"""

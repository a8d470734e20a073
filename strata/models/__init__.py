"""ORM Models — SQLAlchemy declarative models backing SqlAlchemyPersistence.

Invariants:
    - All models inherit from Base (db/base.py)
    - Column names match entity dict keys one-to-one

Design Decisions:
    - All models imported here so Base.metadata is complete before create_all / autogenerate
"""

from strata.models.insight import Insight  # noqa: F401

"""Transactions — begin/commit/rollback state machine and compound-operation outcomes.

Invariants:
    - status moves only active → committed or active → rolled_back
    - Once terminal, commit()/rollback() raise TransactionStateError (no silent double-commit)
    - TransactionOutcome: success ⇔ failed_index is None; results hold only operations that ran
    - BatchOutcome: success ⇔ errors is empty; len(successful_results) + len(errors) == attempted

Design Decisions:
    - Pure dataclasses: the repository owns IO and logging, this module owns the rules
    - failed_index is 0-based (Python indexing); the error message names the 1-based operation
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from strata.core.domain_types import TransactionStatus
from strata.core.errors import TransactionAbortedError, TransactionStateError


@dataclass
class Transaction:
    """A bracket around compound operations with a terminal status."""
    id: str
    status: TransactionStatus = TransactionStatus.ACTIVE
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is TransactionStatus.ACTIVE

    def _finish(self, target: TransactionStatus, operation: str) -> None:
        if not self.is_active:
            raise TransactionStateError(self.id, self.status.value, operation)
        self.status = target
        self.ended_at = datetime.now(timezone.utc)

    def commit(self) -> None:
        self._finish(TransactionStatus.COMMITTED, "commit")

    def rollback(self) -> None:
        self._finish(TransactionStatus.ROLLED_BACK, "rollback")

    def to_dict(self) -> dict:
        return {"id": self.id, "status": self.status.value}


@dataclass
class TransactionOutcome:
    """Result of a sequential, abort-on-first-failure run."""
    success: bool
    results: list[Any] = field(default_factory=list)
    failed_index: int | None = None
    error: TransactionAbortedError | None = None
    transaction_id: str | None = None

    def unwrap(self) -> list[Any]:
        """Return results or raise the abort error."""
        if self.error is not None:
            raise self.error
        return self.results


@dataclass
class BatchFailure:
    index: int
    error: BaseException

    def describe(self) -> str:
        return f"Operation {self.index + 1}: {self.error}"


@dataclass
class BatchOutcome:
    """Result of a concurrent, settle-all run."""
    successful_results: list[Any] = field(default_factory=list)
    errors: list[BatchFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def attempted(self) -> int:
        return len(self.successful_results) + len(self.errors)

    def error_summary(self) -> str | None:
        if not self.errors:
            return None
        return "; ".join(f.describe() for f in self.errors)

"""
Result DTOs for batch runs and sweeps.

Every multi-item operation returns a BatchRunResult: one BatchItemResult
per input item, each run in its own transaction, so a failed item never
hides or undoes the others.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class BatchItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Intentionally not processed (e.g., already done)


class BatchRunStatus(str, Enum):
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome of one item; error_code is the kernel exception's ``code``."""

    item_key: str
    status: BatchItemStatus
    calculation_id: UUID | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def succeeded(cls, item_key: str, calculation_id: UUID | None) -> BatchItemResult:
        return cls(item_key, BatchItemStatus.SUCCEEDED, calculation_id)

    @classmethod
    def failed(cls, item_key: str, code: str, message: str) -> BatchItemResult:
        return cls(item_key, BatchItemStatus.FAILED, None, code, message)

    @classmethod
    def skipped(cls, item_key: str, code: str, message: str) -> BatchItemResult:
        return cls(item_key, BatchItemStatus.SKIPPED, None, code, message)


@dataclass(frozen=True)
class BatchRunResult:
    batch_id: UUID
    operation: str
    item_results: tuple[BatchItemResult, ...] = ()

    def _count(self, status: BatchItemStatus) -> int:
        return sum(1 for r in self.item_results if r.status == status)

    @property
    def total(self) -> int:
        return len(self.item_results)

    @property
    def succeeded(self) -> int:
        return self._count(BatchItemStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(BatchItemStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(BatchItemStatus.SKIPPED)

    @property
    def status(self) -> BatchRunStatus:
        if self.failed == 0:
            return BatchRunStatus.COMPLETED
        if self.succeeded == 0 and self.skipped == 0:
            return BatchRunStatus.FAILED
        return BatchRunStatus.PARTIALLY_COMPLETED

    def result_for(self, item_key: str) -> BatchItemResult | None:
        for result in self.item_results:
            if result.item_key == item_key:
                return result
        return None

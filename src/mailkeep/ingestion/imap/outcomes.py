"""Per-message outcomes and the run counters they fold into."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class OutcomeKind(str, Enum):
    SKIPPED = "skipped"
    INSERTED = "inserted"
    FAILED = "failed"


@dataclass(frozen=True)
class MessageOutcome:
    """Result of processing one fetched message."""

    kind: OutcomeKind
    uid: Optional[int]
    reason: Optional[str] = None

    @classmethod
    def skipped(cls, uid: Optional[int]) -> "MessageOutcome":
        return cls(OutcomeKind.SKIPPED, uid)

    @classmethod
    def inserted(cls, uid: Optional[int]) -> "MessageOutcome":
        return cls(OutcomeKind.INSERTED, uid)

    @classmethod
    def failed(cls, uid: Optional[int], reason: str) -> "MessageOutcome":
        return cls(OutcomeKind.FAILED, uid, reason)


@dataclass
class RunCounters:
    """Processed/new/updated/failed tallies for one run.

    Incremental syncs count an already stored message as processed and
    updated. First syncs count it as processed only, and bulk inserts are
    credited in one step via ``add_inserted``.
    """

    processed: int = 0
    new: int = 0
    updated: int = 0
    failed: int = 0
    failures: List[MessageOutcome] = field(default_factory=list)

    def apply(self, outcome: MessageOutcome, *, skipped_counts_as_updated: bool = False) -> None:
        if outcome.kind is OutcomeKind.INSERTED:
            self.processed += 1
            self.new += 1
        elif outcome.kind is OutcomeKind.SKIPPED:
            self.processed += 1
            if skipped_counts_as_updated:
                self.updated += 1
        else:
            self.failed += 1
            self.failures.append(outcome)

    def add_inserted(self, count: int) -> None:
        self.processed += count
        self.new += count


__all__ = ["MessageOutcome", "OutcomeKind", "RunCounters"]

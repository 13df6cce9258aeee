"""
Data models for batched persistence.

A CommitReport records what happened to every chunk of a batched commit so
callers can tell a clean failure from one that left earlier chunks applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ChunkStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ChunkResult:
    """Outcome of one write group."""
    index: int
    size: int
    status: ChunkStatus = ChunkStatus.PENDING
    attempts: int = 0
    error: str | None = None


@dataclass
class CommitReport:
    chunks: list[ChunkResult] = field(default_factory=list)

    @property
    def total_ops(self) -> int:
        return sum(c.size for c in self.chunks)

    @property
    def committed_ops(self) -> int:
        return sum(c.size for c in self.chunks if c.status == ChunkStatus.COMMITTED)

    @property
    def failed_chunks(self) -> list[ChunkResult]:
        return [c for c in self.chunks if c.status == ChunkStatus.FAILED]

    @property
    def ok(self) -> bool:
        return all(c.status == ChunkStatus.COMMITTED for c in self.chunks)

    @property
    def partially_applied(self) -> bool:
        """True when some chunks landed in the store and at least one did not."""
        return not self.ok and self.committed_ops > 0

    def summary(self) -> dict:
        statuses: dict[str, int] = {}
        for c in self.chunks:
            statuses[c.status.value] = statuses.get(c.status.value, 0) + 1
        return {
            "total_chunks": len(self.chunks),
            "total_ops": self.total_ops,
            "committed_ops": self.committed_ops,
            "statuses": statuses,
            "partially_applied": self.partially_applied,
        }

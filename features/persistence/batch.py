"""
Batched writes with chunking and retry.

The store accepts at most STORE_BATCH_LIMIT operations per atomic commit.
BatchPersistence splits a list of field updates into chunks under that
ceiling and commits them in order. A failed chunk is retried with exponential
backoff; once a chunk exhausts its attempts the commit stops, and the chunks
already written stay written. The CommitReport attached to the raised error
says which ones.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import config
from features.errors import BatchCommitError
from features.persistence.models import ChunkResult, ChunkStatus, CommitReport
from utils.docstore import DocumentStore, FieldUpdate, StoreError

log = logging.getLogger(__name__)


def chunk_updates(updates: list[FieldUpdate], size: int) -> list[list[FieldUpdate]]:
    if size <= 0:
        raise ValueError("chunk size must be greater than zero")
    return [updates[i:i + size] for i in range(0, len(updates), size)]


class BatchPersistence:
    def __init__(
        self,
        store: DocumentStore,
        batch_limit: int | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.batch_limit = min(batch_limit or config.STORE_BATCH_LIMIT, store.max_batch_ops)
        self.max_attempts = max_attempts or config.MAX_COMMIT_ATTEMPTS
        self.base_delay = config.RETRY_BASE_DELAY_SEC if base_delay is None else base_delay
        self._sleep = sleep

    async def commit(self, updates: list[FieldUpdate]) -> CommitReport:
        """Commit every update, chunk by chunk.

        Raises BatchCommitError when a chunk fails all of its attempts.
        """
        chunks = chunk_updates(list(updates), self.batch_limit) if updates else []
        report = CommitReport(chunks=[ChunkResult(index=i, size=len(c)) for i, c in enumerate(chunks)])

        for chunk, result in zip(chunks, report.chunks):
            await self._commit_chunk(chunk, result, len(chunks))
            if result.status == ChunkStatus.FAILED:
                for later in report.chunks[result.index + 1:]:
                    later.status = ChunkStatus.SKIPPED
                log.error(
                    "[BATCH] Chunk %d/%d failed after %d attempts (%d/%d ops committed): %s",
                    result.index + 1, len(chunks), result.attempts,
                    report.committed_ops, report.total_ops, result.error,
                )
                raise BatchCommitError(
                    f"Failed to save changes after {self.max_attempts} attempts. "
                    "Please check your connection and try again.",
                    report,
                )

        if chunks:
            log.info("[BATCH] Committed %d ops in %d chunk(s)", report.total_ops, len(chunks))
        return report

    async def _commit_chunk(self, chunk: list[FieldUpdate], result: ChunkResult, total: int) -> None:
        for attempt in range(self.max_attempts):
            result.attempts = attempt + 1
            try:
                await self.store.commit(chunk)
                result.status = ChunkStatus.COMMITTED
                result.error = None
                return
            except StoreError as e:
                result.error = str(e)
                if attempt == self.max_attempts - 1:
                    break
                delay = self.base_delay * (2 ** attempt)
                log.warning(
                    "[BATCH] Chunk %d/%d attempt %d/%d failed, retrying in %.2fs: %s",
                    result.index + 1, total, attempt + 1, self.max_attempts, delay, e,
                )
                await self._sleep(delay)
        result.status = ChunkStatus.FAILED

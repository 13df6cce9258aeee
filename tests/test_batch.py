"""Tests for chunked, retried batch commits."""

import pytest

from features.errors import BatchCommitError
from features.persistence import BatchPersistence, ChunkStatus, chunk_updates
from tests.conftest import FlakyStore, run
from utils.docstore import FieldUpdate, WriteKind


def merges(n):
    return [FieldUpdate("things", f"t{i}", {"n": i}, WriteKind.MERGE) for i in range(n)]


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def test_chunk_updates_respects_size():
    chunks = chunk_updates(merges(1203), 500)
    assert [len(c) for c in chunks] == [500, 500, 203]


def test_chunk_updates_rejects_bad_size():
    with pytest.raises(ValueError):
        chunk_updates(merges(3), 0)


def test_commit_writes_every_chunk():
    store = FlakyStore()
    report = run(BatchPersistence(store, base_delay=0).commit(merges(1001)))
    assert report.ok
    assert [c.size for c in report.chunks] == [500, 500, 1]
    assert store.commit_calls == 3
    assert len(store.snapshot()["things"]) == 1001


def test_empty_commit_is_a_no_op():
    store = FlakyStore()
    report = run(BatchPersistence(store).commit([]))
    assert report.ok and report.total_ops == 0
    assert store.commit_calls == 0


def test_retries_with_exponential_backoff():
    store = FlakyStore(failures=2)
    sleep = RecordingSleep()
    report = run(BatchPersistence(store, max_attempts=3, base_delay=1.0, sleep=sleep).commit(merges(3)))
    assert report.ok
    assert report.chunks[0].attempts == 3
    assert sleep.delays == [1.0, 2.0]


def test_no_sleep_after_last_attempt():
    store = FlakyStore(failures=3)
    sleep = RecordingSleep()
    with pytest.raises(BatchCommitError):
        run(BatchPersistence(store, max_attempts=3, base_delay=0.5, sleep=sleep).commit(merges(3)))
    assert sleep.delays == [0.5, 1.0]
    assert store.commit_calls == 3


def test_failed_chunk_stops_later_chunks():
    # chunk 1 commits on call 1; chunk 2 fails calls 2-4; chunk 3 is never tried
    store = FlakyStore(fail_calls={2, 3, 4})
    with pytest.raises(BatchCommitError) as exc_info:
        run(BatchPersistence(store, batch_limit=2, max_attempts=3, base_delay=0).commit(merges(6)))

    report = exc_info.value.report
    assert [c.status for c in report.chunks] == [ChunkStatus.COMMITTED, ChunkStatus.FAILED, ChunkStatus.SKIPPED]
    assert report.committed_ops == 2
    assert report.partially_applied
    assert exc_info.value.partially_applied
    assert sorted(store.snapshot()["things"]) == ["t0", "t1"]


def test_first_chunk_failure_is_not_partial():
    store = FlakyStore(failures=3)
    with pytest.raises(BatchCommitError) as exc_info:
        run(BatchPersistence(store, max_attempts=3, base_delay=0).commit(merges(2)))
    assert not exc_info.value.partially_applied
    assert exc_info.value.recoverable
    assert store.snapshot() == {}


def test_batch_limit_never_exceeds_store_ceiling():
    store = FlakyStore()
    assert BatchPersistence(store, batch_limit=10_000).batch_limit == store.max_batch_ops

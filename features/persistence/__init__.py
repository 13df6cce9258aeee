"""
Persistence feature: chunked, retried batch commits to the document store.

Public API:
    from features.persistence import BatchPersistence, CommitReport
"""

from features.persistence.batch import BatchPersistence, chunk_updates
from features.persistence.models import ChunkResult, ChunkStatus, CommitReport

__all__ = ["BatchPersistence", "ChunkResult", "ChunkStatus", "CommitReport", "chunk_updates"]

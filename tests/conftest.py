"""Shared pytest fixtures."""

import asyncio
import sys
from pathlib import Path

# Ensure the repo root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

import config
from features.engine import CatalogEngine
from features.persistence import BatchPersistence
from features.pick2 import Pick2Config
from features.placement import load_catalog
from utils.docstore import MemoryDocumentStore, StoreError


def run(coro):
    return asyncio.run(coro)


# Package 1: f3 | Package 2: f1, f2 | Catalog: f4 | Featured: f5 | Unassigned: f6
SEED = {
    config.FEATURES_COLLECTION: {
        "f1": {"name": "RustGuard Pro", "price": 300, "cost": 100, "column": 2, "position": 0,
               "catalogPrice": 199, "connector": "AND"},
        "f2": {"name": "ToughGuard", "price": 250, "cost": 90, "column": 2, "position": 1, "connector": "OR"},
        "f3": {"name": "Diamond Shield", "price": 900, "cost": 300, "column": 1, "position": 0},
        "f4": {"name": "Windshield Repair", "price": 150, "cost": 40, "position": 0,
               "publishToCatalog": True, "catalogPrice": 149},
        "f5": {"name": "Key Fob Replacement", "price": 120, "cost": 30, "position": 0,
               "publishToCatalog": True, "catalogPrice": 99},
        "f6": {"name": "Window Tint", "price": 400, "cost": 120, "position": 0, "warranty": "Lifetime"},
    },
    config.CATALOG_COLLECTION: {
        "f4": {"name": "Windshield Repair", "price": 149, "cost": 40, "isPublished": True, "column": 2,
               "position": 0, "sourceFeatureId": "f4", "pick2Eligible": True, "pick2Sort": 1},
        "f5": {"name": "Key Fob Replacement", "price": 99, "cost": 30, "isPublished": True, "column": 4,
               "position": 0, "sourceFeatureId": "f5", "pick2Eligible": True, "pick2Sort": 0},
    },
}


class FlakyStore(MemoryDocumentStore):
    """Memory store whose commits can be made to fail.

    `failures` fails the next N commits; `fail_calls` fails specific commit
    numbers (1-based).
    """

    def __init__(self, seed=None, failures=0, fail_calls=()):
        super().__init__(seed)
        self.failures = failures
        self.fail_calls = set(fail_calls)
        self.commit_calls = 0
        self.committed: list[list] = []

    async def commit(self, writes):
        self.commit_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise StoreError("store unavailable")
        if self.commit_calls in self.fail_calls:
            raise StoreError("store unavailable")
        await super().commit(writes)
        self.committed.append(list(writes))

    def doc(self, collection, doc_id):
        return self.snapshot().get(collection, {}).get(doc_id)


def make_engine(store, pick2=None):
    loaded = run(load_catalog(store))
    return CatalogEngine.create(
        store,
        loaded.state,
        pick2 or Pick2Config(enabled=True, price=500.0),
        BatchPersistence(store, max_attempts=3, base_delay=0),
    )


@pytest.fixture
def store():
    return FlakyStore(SEED)


@pytest.fixture
def engine(store):
    return make_engine(store)


@pytest.fixture
def state(engine):
    return engine.state

"""
Catalog migration: normalize stored documents to the current model.

Folds legacy `columns` / `positionsByColumn` fields into one column and
position, renames a la carte field names, makes `publishToCatalog` agree with
each feature's lane and renumbers positions so every lane is contiguous.

Usage:
    python migrate.py            # write the repairs
    python migrate.py --dry-run  # report only
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import config
from features.errors import PersistenceError
from features.persistence import BatchPersistence
from features.placement import load_catalog
from utils.docstore import DocumentStore, build_store

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


async def migrate(dry_run: bool = False, store: DocumentStore | None = None) -> int:
    store = store or build_store()
    loaded = await load_catalog(store)

    for write in loaded.repairs:
        log.info("%s/%s: %s", write.collection, write.doc_id, sorted(write.fields))
    if not loaded.repairs:
        log.info("Nothing to repair")
        return 0
    if dry_run:
        log.info("Dry run: %d document(s) would be updated", len(loaded.repairs))
        return 0

    try:
        report = await BatchPersistence(store).commit(loaded.repairs)
    except PersistenceError as e:
        log.error("Migration failed: %s", e)
        return 1
    log.info("Migration complete: %s", report.summary())
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Normalize catalog documents")
    parser.add_argument("--dry-run", action="store_true", help="report repairs without writing them")
    args = parser.parse_args(argv)
    return asyncio.run(migrate(dry_run=args.dry_run))


if __name__ == "__main__":
    sys.exit(main())

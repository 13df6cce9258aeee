"""
Configuration: loads settings from environment / .env file.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).parent

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Document store (Postgres JSONB). Empty URL means in-memory store.
DATABASE_URL = os.getenv("DATABASE_URL", "")
DOCUMENTS_TABLE = os.getenv("DOCUMENTS_TABLE", "documents")

# Collections
FEATURES_COLLECTION = "features"
CATALOG_COLLECTION = "ala_carte_options"
APP_CONFIG_COLLECTION = "app_config"
PICK2_CONFIG_DOC_ID = "pick2"

# Batch writes: the store rejects commits above this many operations
STORE_BATCH_LIMIT = 500
MAX_COMMIT_ATTEMPTS = int(os.getenv("MAX_COMMIT_ATTEMPTS", "3"))
RETRY_BASE_DELAY_SEC = float(os.getenv("RETRY_BASE_DELAY_SEC", "1.0"))

# Package lanes (Gold, Elite, Platinum) and the featured slot on catalog records
PACKAGE_COLUMNS = (1, 2, 3)
FEATURED_COLUMN = 4

# Pick-2 bundle
PICK2_CAPACITY = 2
MAX_RECOMMENDED_PAIRS = 4
MAX_PICK2_HIGHLIGHTS = 2
# Open shopper selections kept by the API; the least recently used is dropped first
MAX_PICK2_SESSIONS = int(os.getenv("MAX_PICK2_SESSIONS", "1000"))

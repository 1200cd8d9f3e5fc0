"""
LIMSDB - Centralised configuration.

All tunables live here.  Every other module imports from config
instead of reading os.environ directly.
"""

from __future__ import annotations
import os
from pathlib import Path


# ── Paths ──────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent

# ── Database ───────────────────────────────────────────────────────────
DB_URL = os.environ.get("LIMSDB_DB", f"sqlite:///{BASE_DIR / 'limsdb.sqlite'}")

# ── Server ─────────────────────────────────────────────────────────────
HOST   = os.environ.get("LIMSDB_HOST", "0.0.0.0")
PORT   = int(os.environ.get("LIMSDB_PORT", "5000"))
DEBUG  = os.environ.get("LIMSDB_DEBUG", "0") == "1"
SECRET = os.environ.get("LIMSDB_SECRET", "limsdb-dev-key-change-in-prod")

# ── Logging ────────────────────────────────────────────────────────────
LOG_LEVEL  = os.environ.get("LIMSDB_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# ── Upload ─────────────────────────────────────────────────────────────
MAX_UPLOAD_MB = int(os.environ.get("LIMSDB_MAX_UPLOAD_MB", "50"))

# ── Import engine ──────────────────────────────────────────────────────
IMPORT_CHUNK_SIZE   = int(os.environ.get("LIMSDB_IMPORT_CHUNK_SIZE", "1000"))
PARSE_WORKERS       = int(os.environ.get("LIMSDB_PARSE_WORKERS", "4"))
LOW_SUCCESS_RATE    = float(os.environ.get("LIMSDB_LOW_SUCCESS_RATE", "0.8"))
PREVIEW_SAMPLE_ROWS = int(os.environ.get("LIMSDB_PREVIEW_SAMPLE_ROWS", "5"))

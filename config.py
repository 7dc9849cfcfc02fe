"""
Poster Corpus Configuration — Central settings for every pass.

All scripts import from here. Override with environment variables (a .env
file at the repository root is loaded first):
    POSTERS_CORPUS_ROOT       — Folder holding <category>/*.json poster files
    POSTERS_ASSET_ROOT        — Folder holding the centralized originals/ store
    POSTERS_BACKUP_DIR        — Where pre-overwrite snapshots are written
    POSTERS_DEFAULT_CATEGORY  — Category used when a record has none
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# ── Paths ──────────────────────────────────────────────────────
REPO_ROOT = Path(__file__).resolve().parent

load_dotenv(REPO_ROOT / ".env")

CORPUS_ROOT = Path(os.getenv("POSTERS_CORPUS_ROOT", str(REPO_ROOT / "JSON_Posters")))
ASSET_ROOT = Path(os.getenv("POSTERS_ASSET_ROOT", str(REPO_ROOT / "images")))
BACKUP_DIR = Path(os.getenv("POSTERS_BACKUP_DIR", str(REPO_ROOT / "backups")))

# ── Corpus layout ──────────────────────────────────────────────
STORE_DIR_NAME = "originals"
ASSET_URL_PREFIX = "images/originals/"
JOURNEYS_DIR_NAME = "Journeys"
CONSOLIDATED_DIR_NAME = "Posters"
IMAGES_SUBDIR_NAME = "images"

# Folders under the corpus root that are not poster categories
SKIP_DIRS = {"poster_schemas", JOURNEYS_DIR_NAME}

# ── Records ────────────────────────────────────────────────────
DEFAULT_CATEGORY = os.getenv("POSTERS_DEFAULT_CATEGORY", "Uncategorized")
MAX_BACK_IMAGES = 5

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")
RESOLVE_EXTENSION_PRIORITY = (".webp", ".png", ".jpg")

# Journey thumbnails left as template placeholders by the journey editor
PLACEHOLDER_THUMBNAIL_MARKER = "path/to/optional"

# Bound on "<name>__<folder>_<n>" attempts before a move is abandoned
MAX_COLLISION_ATTEMPTS = int(os.getenv("POSTERS_MAX_COLLISION_ATTEMPTS", "1000"))

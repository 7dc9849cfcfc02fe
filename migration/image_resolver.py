"""
Image Resolver — the centralized asset store and everything that looks into it.

The store is one flat folder, <asset-root>/originals/, referenced from records
as "images/originals/<filename>". ImageStore keeps an index of it keyed by
lowercased filename, both with and without extension.

resolve(reference) finds the store file a broken or legacy reference most
likely meant. Candidates are tried in a fixed order and the first hit wins:

    1. the reference's filename as-is
    2. the filename with a leading "<lowercase>_" category prefix stripped
    3. 1–2 again with the stem plus each of .webp, .png, .jpg

There is no similarity scoring. The index is built from a sorted listing and
stem collisions are broken by extension priority, so the answer depends only
on which files exist.

centralize(source, category) copies a legacy image into the store as
"<category-slug>_<basename>". An existing name is reused, never overwritten.
The check-then-copy and check-then-rename sequences hold the store lock.
"""

import logging
import os
import posixpath
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from config import ASSET_URL_PREFIX, RESOLVE_EXTENSION_PRIORITY, STORE_DIR_NAME
from corpus_errors import MissingSourceAsset, WriteFailure
from migration.schema_detector import is_image_extension

logger = logging.getLogger(__name__)

CATEGORY_PREFIX_RE = re.compile(r"^[a-z]+_")


def category_slug(category):
    """'Ancient History' -> 'ancient_history'. Used as the centralization prefix."""
    return re.sub(r"[^a-z0-9]+", "_", str(category or "").lower()).strip("_")


def is_external(reference):
    return isinstance(reference, str) and reference.startswith("http")


def reference_filename(reference):
    """Last path component of a reference, tolerating Windows separators."""
    return posixpath.basename(str(reference).replace("\\", "/"))


def strip_category_prefix(name):
    stripped = CATEGORY_PREFIX_RE.sub("", name, count=1)
    return stripped or name


def _extension_rank(filename):
    ext = os.path.splitext(filename)[1].lower()
    if ext in RESOLVE_EXTENSION_PRIORITY:
        return RESOLVE_EXTENSION_PRIORITY.index(ext)
    return len(RESOLVE_EXTENSION_PRIORITY)


class ImageStore:
    """Index over <asset-root>/originals plus the operations that mutate it."""

    def __init__(self, fs, asset_root, url_prefix=ASSET_URL_PREFIX):
        self.fs = fs
        self.store_dir = Path(asset_root) / STORE_DIR_NAME
        self.url_prefix = url_prefix
        self._lock = threading.Lock()
        self._files: List[str] = []
        self._by_name: Dict[str, str] = {}
        self._by_stem: Dict[str, str] = {}
        self.refresh()

    # ── Index ────────────────────────────────────────────────────

    def refresh(self):
        """Rebuild the index from the current store listing."""
        files = [
            name for name in self.fs.list_dir(self.store_dir)
            if is_image_extension(os.path.splitext(name)[1])
            and self.fs.is_file(self.store_dir / name)
        ]
        self._set_files(files)

    def _set_files(self, files):
        self._files = sorted(set(files))
        self._by_name = {}
        self._by_stem = {}
        for name in sorted(self._files, key=lambda n: (_extension_rank(n), n)):
            self._by_name.setdefault(name.lower(), name)
            self._by_stem.setdefault(os.path.splitext(name)[0].lower(), name)

    @property
    def filenames(self):
        return list(self._files)

    def __len__(self):
        return len(self._files)

    def lookup(self, key) -> Optional[str]:
        """Store filename for a case-insensitive name or stem, else None."""
        key = str(key or "").lower()
        if not key:
            return None
        return self._by_name.get(key) or self._by_stem.get(key)

    def lookup_stem(self, stem) -> Optional[str]:
        return self._by_stem.get(str(stem or "").lower())

    def canonical_path(self, filename):
        return f"{self.url_prefix}{filename}"

    def path_on_disk(self, filename):
        return self.store_dir / filename

    def filename_for(self, reference) -> Optional[str]:
        """Filename part of a canonical reference, or None if not canonical."""
        if not isinstance(reference, str) or not reference.startswith(self.url_prefix):
            return None
        rest = reference[len(self.url_prefix):]
        if not rest or "/" in rest:
            return None
        return rest

    def is_canonical(self, reference):
        """True when `reference` points into the store at a file that exists."""
        filename = self.filename_for(reference)
        return filename is not None and filename in self._files

    # ── Resolution ───────────────────────────────────────────────

    def candidates(self, reference) -> List[str]:
        filename = reference_filename(reference)
        if not filename:
            return []
        stem = os.path.splitext(filename)[0]
        out = [filename, strip_category_prefix(filename)]
        for ext in RESOLVE_EXTENSION_PRIORITY:
            out.append(stem + ext)
            out.append(strip_category_prefix(stem) + ext)
        seen = set()
        ordered = []
        for c in out:
            if c.lower() not in seen:
                seen.add(c.lower())
                ordered.append(c)
        return ordered

    def resolve(self, reference) -> Optional[str]:
        """Canonical path of the best-matching store file, or None (orphan)."""
        if not reference or not isinstance(reference, str) or is_external(reference):
            return None
        for candidate in self.candidates(reference):
            hit = self.lookup(candidate)
            if hit:
                return self.canonical_path(hit)
        return None

    # ── Mutation ─────────────────────────────────────────────────

    def centralize(self, source_file, category) -> Tuple[str, bool]:
        """Copy `source_file` into the store. Returns (canonical_path, copied)."""
        basename = Path(source_file).name
        slug = category_slug(category)
        name = f"{slug}_{basename}" if slug else basename

        with self._lock:
            existing = self._by_name.get(name.lower())
            if existing:
                logger.debug("Image already centralized: %s", existing)
                return self.canonical_path(existing), False
            if not self.fs.is_file(source_file):
                raise MissingSourceAsset(f"Image not found: {source_file}", source_file)
            try:
                self.fs.copy_file(source_file, self.store_dir / name)
            except OSError as e:
                raise WriteFailure(f"Failed to copy {source_file}: {e}", source_file) from e
            self._set_files(self._files + [name])

        logger.debug("Centralized image: %s -> %s", source_file, name)
        return self.canonical_path(name), True

    def rename(self, old_name, new_name):
        """Rename a store file. Refuses (returns False) if new_name is taken."""
        with self._lock:
            if old_name not in self._files:
                return False
            taken = self._by_name.get(new_name.lower())
            if taken and taken != old_name:
                return False
            try:
                self.fs.rename(self.store_dir / old_name, self.store_dir / new_name)
            except OSError as e:
                raise WriteFailure(f"Failed to rename {old_name}: {e}", self.store_dir / old_name) from e
            self._set_files([f for f in self._files if f != old_name] + [new_name])
        return True

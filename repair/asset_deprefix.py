"""
Asset De-prefix — rename originals/<slug>_<name> to originals/<name>.

Centralization prefixes every image with its category slug. Once the corpus
is settled those prefixes are noise, so this corpus-level pass strips them
when it is safe:

    * the prefix is the slug of a known category folder
    * the bare name is unique store-wide (no existing file, no other
      candidate stripping to the same name, case-insensitively)
    * no unparseable corpus file mentions the asset's name and none is
      unreadable; we cannot rewrite a reference inside a file we cannot read

Each asset is handled atomically: the referencer set is computed in memory
first, then the asset is renamed and every referencing poster and journey is
rewritten. If any referencer write fails, the already-written referencers are
restored from their original text and the asset is renamed back. An asset
that cannot be renamed back is reported as stranded.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from config import JOURNEYS_DIR_NAME, SKIP_DIRS
from corpus_errors import CorpusError, ParseError, WriteFailure
from corpus_fs import dump_record
from migration.category_normalizer import to_category_list
from migration.image_resolver import category_slug
from repair.reference_repair import rewrite_references

logger = logging.getLogger(__name__)


@dataclass
class CorpusDocument:
    """One corpus JSON file as loaded for a corpus-level pass."""
    path: Path
    relative: str
    raw: Optional[str]
    data: Optional[Any] = None
    journey: bool = False

    @property
    def parsed(self):
        return self.data is not None


def load_documents(fs, corpus_root, skip_dirs=SKIP_DIRS):
    """Every poster and journey JSON under the corpus root, sorted by path."""
    corpus_root = Path(corpus_root)
    folders = [
        name for name in fs.list_dir(corpus_root)
        if fs.is_dir(corpus_root / name) and name not in skip_dirs
    ]
    if fs.is_dir(corpus_root / JOURNEYS_DIR_NAME):
        folders.append(JOURNEYS_DIR_NAME)

    docs = []
    for folder in folders:
        for name in fs.list_dir(corpus_root / folder):
            path = corpus_root / folder / name
            if not name.endswith(".json") or not fs.is_file(path):
                continue
            doc = CorpusDocument(
                path=path,
                relative=f"{folder}/{name}",
                raw="",
                journey=(folder == JOURNEYS_DIR_NAME),
            )
            try:
                doc.data, doc.raw = fs.read_json(path)
            except ParseError:
                doc.raw = fs.read_text(path)
            except UnicodeDecodeError:
                doc.raw = fs.read_text(path, errors="replace")
            except OSError as e:
                logger.warning("  Unreadable %s: %s", doc.relative, e)
                doc.raw = None
            docs.append(doc)
    return docs


def deprefix_plan(store, known_slugs):
    """[(old_name, new_name)] for every store file that can safely lose its prefix."""
    slugs = sorted({s for s in known_slugs if s}, key=lambda s: (-len(s), s))
    proposals = []
    for name in store.filenames:
        for slug in slugs:
            prefix = slug + "_"
            if name.lower().startswith(prefix) and len(name) > len(prefix):
                proposals.append((name, name[len(prefix):]))
                break

    targets = {}
    for _, new in proposals:
        targets[new.lower()] = targets.get(new.lower(), 0) + 1

    existing = {f.lower() for f in store.filenames}
    plan = []
    for old, new in proposals:
        if targets[new.lower()] > 1:
            logger.debug("  Conflict: several assets strip to %s, keeping %s", new, old)
            continue
        if new.lower() in existing:
            logger.debug("  Conflict: %s already exists, keeping %s", new, old)
            continue
        plan.append((old, new))
    return plan


def _stamp(data, journey, now):
    if not now or not isinstance(data, dict):
        return
    if journey:
        data["dateModified"] = now
    elif isinstance(data.get("meta"), dict):
        data["meta"]["modified"] = now


def deprefix_asset(fs, store, docs, old, new, report, backup=None, now=None):
    """Rename one asset and rewrite its referencers. Returns True if applied."""
    old_ref = store.canonical_path(old)
    new_ref = store.canonical_path(new)

    blocked = [d for d in docs if not d.parsed and (d.raw is None or old in d.raw)]
    if blocked:
        doc = blocked[0]
        reason = f"{'unreadable' if doc.raw is None else 'mentioned by unparseable'} {doc.relative}"
        logger.warning("  Refusing to rename %s: %s", old, reason)
        report.refused_renames.append({"asset": old, "reason": reason})
        return False

    updates = []
    for doc in docs:
        if not doc.parsed:
            continue
        data, hits = rewrite_references(doc.data, old_ref, new_ref, journey=doc.journey)
        if hits:
            _stamp(data, doc.journey, now)
            updates.append((doc, data))

    try:
        renamed = store.rename(old, new)
    except WriteFailure as e:
        report.add_error(e)
        return False
    if not renamed:
        report.refused_renames.append({"asset": old, "reason": f"{new} is taken"})
        return False

    written = []
    try:
        for doc, data in updates:
            if backup is not None:
                backup.backup(doc.path, doc.relative)
            fs.write_json(doc.path, data)
            written.append(doc)
    except (OSError, CorpusError) as e:
        logger.error("  Rolling back rename of %s: %s", old, e)
        for doc in written:
            try:
                fs.write_text(doc.path, doc.raw)
            except OSError as restore_error:
                logger.error("  Could not restore %s: %s", doc.path, restore_error)
                report.add_error(WriteFailure(f"Restore failed: {restore_error}", doc.path))
        try:
            restored = store.rename(new, old)
        except WriteFailure as rename_error:
            logger.error("  Could not rename %s back: %s", new, rename_error)
            restored = False
        if not restored:
            report.add_error(WriteFailure(
                f"Asset stranded as {new}; referencers point at {old}",
                store.store_dir / new,
            ))
        failed = updates[len(written)][0].path
        report.add_error(WriteFailure(f"De-prefix of {old} rolled back: {e}", failed))
        return False

    for doc, data in updates:
        doc.data = data
        doc.raw = dump_record(data)
        report.written_files.append(str(doc.path))

    logger.info("  Renamed %s -> %s (%d referencers)", old, new, len(updates))
    report.renamed_assets.append({"from": old, "to": new, "referencers": len(updates)})
    report.by_mod["deprefix"] += 1
    return True


def document_category_slugs(docs):
    """Slugs of every category named in a poster, so consolidated corpora still de-prefix."""
    slugs = set()
    for doc in docs:
        if not doc.parsed or doc.journey or not isinstance(doc.data, dict):
            continue
        meta = doc.data.get("meta") if isinstance(doc.data.get("meta"), dict) else {}
        for category in to_category_list(meta.get("categories")):
            if isinstance(category, str):
                slugs.add(category_slug(category))
    return slugs


def deprefix_assets(fs, store, corpus_root, known_slugs, report, backup=None, now=None,
                    docs: Optional[List[CorpusDocument]] = None):
    """Run the de-prefix pass over the whole store. Returns the number of renames."""
    if docs is None:
        docs = load_documents(fs, corpus_root)
    plan = deprefix_plan(store, set(known_slugs) | document_category_slugs(docs))
    logger.info("De-prefix: %d candidate assets", len(plan))
    applied = 0
    for old, new in plan:
        if deprefix_asset(fs, store, docs, old, new, report, backup=backup, now=now):
            applied += 1
    return applied

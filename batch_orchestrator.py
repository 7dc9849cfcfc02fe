#!/usr/bin/env python3
"""
Poster Corpus Batch Orchestrator
================================

Walks the poster corpus and runs the selected mods over it, one file at a time.

Record mods run per file, in registry order, inside a single
read → transform → write cycle. The whole transform is computed in memory
first; the file is backed up and rewritten only if the result differs.
Corpus mods run after every file has been processed (deprefix before
consolidate).

    migrate          legacy variants → v2, direct images → sibling JSON     (default)
    normalize        idempotent field/category repair of v2 records         (default)
    categories       category normalization only
    category-audit   report posters whose categories omit their folder      (default)
    repair-refs      rewrite stale image references, posters + journeys     (default)
    link-images      link imageless posters to a same-named store image
    titles           prettify auto-generated titles
    deprefix         strip category prefixes from store filenames (corpus)
    consolidate      flatten category folders into Posters/ (corpus)

Usage:
    python3 batch_orchestrator.py                          # default mods
    python3 batch_orchestrator.py --dry-run -v             # plan only, nothing written
    python3 batch_orchestrator.py --mod normalize --mod repair-refs
    python3 batch_orchestrator.py --list-mods
    python3 batch_orchestrator.py --include-non-v2 --ensure-folder-category
    python3 batch_orchestrator.py --report-json run.json   # also write a JSON run log

Exit status is 0 when the run completes, whatever per-file errors it
reported, and 1 for an unknown mod or a missing corpus root.
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from config import (
    ASSET_ROOT,
    BACKUP_DIR,
    CONSOLIDATED_DIR_NAME,
    CORPUS_ROOT,
    DEFAULT_CATEGORY,
    IMAGES_SUBDIR_NAME,
    JOURNEYS_DIR_NAME,
    SKIP_DIRS,
)
from consolidation.consolidate_posters import consolidate_posters
from corpus_errors import CorpusError, ParseError, UnknownVariant, WriteFailure
from corpus_fs import BackupWriter, CorpusFS, DryRunFS
from migration.category_normalizer import audit_categories
from migration.field_normalizer import (
    NormalizeContext,
    NormalizeOptions,
    improve_record_title,
    normalize_categories_only,
    normalize_record,
)
from migration.image_resolver import ImageStore, category_slug, reference_filename
from migration.record_migrator import (
    MIGRATORS,
    MigrationContext,
    migrate_direct_image,
    migrate_generic_legacy,
    migrate_record,
)
from migration.schema_detector import Variant, detect_variant, is_image_extension
from migration_report import MigrationReport
from repair.asset_deprefix import deprefix_assets
from repair.image_linker import link_matching_image
from repair.reference_repair import poster_references, repair_journey_refs, repair_poster_refs

logger = logging.getLogger("batch_orchestrator")


# ── Mod registry ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Mod:
    name: str
    scope: str
    default: bool
    description: str


MODS = {
    m.name: m for m in (
        Mod("migrate", "record", True, "Convert legacy poster variants and bare images to v2 records"),
        Mod("normalize", "record", True, "Fill missing v2 fields, reconcile images/links/categories"),
        Mod("categories", "record", False, "Normalize meta.categories only"),
        Mod("category-audit", "record", True, "Report posters whose categories omit their folder"),
        Mod("repair-refs", "record", True, "Rewrite stale image references in posters and journeys"),
        Mod("link-images", "record", False, "Link imageless posters to a same-named store image"),
        Mod("titles", "record", False, "Prettify auto-generated poster titles"),
        Mod("deprefix", "corpus", False, "Strip category prefixes from store filenames"),
        Mod("consolidate", "corpus", False, "Move every category's posters into Posters/"),
    )
}


def default_mods():
    return [name for name, mod in MODS.items() if mod.default]


def resolve_mods(names=None):
    """Selected mod names in registry order. Raises ValueError for unknown names."""
    if not names:
        return default_mods()
    unknown = [n for n in names if n not in MODS]
    if unknown:
        raise ValueError(f"Unknown mod(s): {', '.join(unknown)}. Use --list-mods to see available mods.")
    selected = set(names)
    return [name for name in MODS if name in selected]


def print_mods():
    print("Available mods:")
    for mod in MODS.values():
        marker = "*" if mod.default else " "
        print(f"  {marker} {mod.name:<16s} [{mod.scope}]  {mod.description}")
    print("\n  * = runs by default")


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Options ───────────────────────────────────────────────────────────

@dataclass
class BatchOptions:
    corpus_root: Path = CORPUS_ROOT
    asset_root: Path = ASSET_ROOT
    backup_dir: Path = BACKUP_DIR
    mods: Optional[List[str]] = None
    dry_run: bool = False
    verbose: bool = False
    default_category: str = DEFAULT_CATEGORY
    ensure_folder_category: bool = False
    include_non_v2: bool = False
    prefer_root_categories: bool = False
    report_json: Optional[Path] = None

    def normalize_options(self):
        return NormalizeOptions(
            default_category=self.default_category,
            ensure_folder_category=self.ensure_folder_category,
            prefer_root_categories=self.prefer_root_categories,
        )


# ── One run ───────────────────────────────────────────────────────────

class BatchRun:
    """State for a single pass over the corpus: fs, store, backups, report."""

    def __init__(self, options, fs, now):
        self.options = options
        self.fs = fs
        self.now = now
        self.mods = resolve_mods(options.mods)
        self.corpus_root = Path(options.corpus_root)
        self.store = ImageStore(fs, options.asset_root)
        self.backup = None if fs.dry_run else BackupWriter(fs, options.backup_dir)
        self.report = MigrationReport(dry_run=fs.dry_run, mods=list(self.mods))

    def selected(self, name):
        return name in self.mods

    # ── Walk ──

    def category_folders(self):
        return [
            name for name in self.fs.list_dir(self.corpus_root)
            if name not in SKIP_DIRS and self.fs.is_dir(self.corpus_root / name)
        ]

    def run(self):
        logger.info("Store: %d images in %s", len(self.store), self.store.store_dir)

        for folder in self.category_folders():
            category = None if folder == CONSOLIDATED_DIR_NAME else folder
            self.process_folder(folder, category)

        if self.selected("repair-refs"):
            self.process_journeys()

        if self.selected("deprefix"):
            slugs = {category_slug(f) for f in self.category_folders()}
            deprefix_assets(self.fs, self.store, self.corpus_root, slugs, self.report,
                            backup=self.backup, now=self.now)
            self._note_backup()

        if self.selected("consolidate"):
            consolidate_posters(self.fs, self.corpus_root, self.report)

        return self.report

    def process_folder(self, folder, category):
        folder_dir = self.corpus_root / folder
        names = self.fs.list_dir(folder_dir)
        logger.info("── %s (%d entries)", folder, len(names))

        referenced = set()
        for name in names:
            path = folder_dir / name
            if not self.fs.is_file(path):
                continue
            if name.lower().endswith(".json"):
                referenced |= self.process_record_file(path, f"{folder}/{name}", category)
            elif self.selected("migrate") and is_image_extension(Path(name).suffix):
                referenced |= self.process_direct_image(path, f"{folder}/{name}", category)

        if self.selected("migrate"):
            self.find_orphan_images(folder, referenced)

    # ── Record files ──

    def process_record_file(self, path, relative, category):
        """Run every selected record mod over one JSON file. Returns referenced basenames."""
        report = self.report
        report.scanned += 1
        try:
            data, _raw = self.fs.read_json(path)
        except ParseError as e:
            logger.warning("  PARSE ERROR  %s", relative)
            report.add_error(e)
            report.skipped += 1
            return set()
        except (OSError, UnicodeDecodeError) as e:
            report.add_error(ParseError(f"Failed to read: {e}", path))
            report.skipped += 1
            return set()

        variant = detect_variant(data, ".json")
        report.per_variant[variant.value] += 1

        try:
            record, migrated, changed = self.transform(data, variant, path, relative, category)
        except CorpusError as e:
            if e.path is None:
                e.path = str(path)
            logger.warning("  %s  %s: %s", e.kind, relative, e)
            report.add_error(e)
            report.skipped += 1
            return _referenced_names(data)
        except (KeyError, TypeError, ValueError) as e:
            report.add_error(CorpusError(f"Unexpected record structure: {e}", path))
            report.skipped += 1
            return _referenced_names(data)

        if record is None:
            report.skipped += 1
            return _referenced_names(data)

        if changed:
            if self.write_record(path, relative, record):
                if migrated:
                    report.migrated += 1
                    logger.info("  MIGRATED   %s (%s)", relative, variant.value)
                else:
                    report.modified += 1
                    logger.info("  MODIFIED   %s", relative)
        else:
            report.unchanged += 1
            logger.debug("  UNCHANGED  %s", relative)

        return _referenced_names(data) | _referenced_names(record)

    def transform(self, data, variant, path, relative, category):
        """(record, migrated, changed). record is None when the file is left alone."""
        record = data
        migrated = False

        if variant == Variant.UNKNOWN:
            if self.selected("normalize") and self.options.include_non_v2 and isinstance(data, dict):
                result = migrate_generic_legacy(data, self.migration_context(path, category))
                record = self._fold_migration(result, relative)
                migrated = True
            else:
                raise UnknownVariant("Unrecognized record shape, left untouched", path)
        elif variant in MIGRATORS and self.selected("migrate"):
            result = migrate_record(variant, data, self.migration_context(path, category))
            record = self._fold_migration(result, relative)
            migrated = True

        if variant != Variant.ALREADY_V2 and not migrated and not self.selected("repair-refs"):
            return None, False, False

        record, changed = self.apply_record_mods(record, path.name, relative, category)
        return record, migrated, migrated or changed

    def apply_record_mods(self, record, filename, relative, category):
        """Every selected record mod after migrate. Returns (record, changed)."""
        report = self.report
        changed = False
        is_v2 = isinstance(record, dict) and record.get("version") == 2
        ctx = NormalizeContext(
            filename=filename,
            folder_category=category,
            now=self.now,
            options=self.options.normalize_options(),
        )

        if is_v2 and self.selected("normalize"):
            record, changes, conflict = normalize_record(record, ctx)
            self._fold_categories(relative, conflict)
            report.count_changes("normalize", changes)
            changed |= bool(changes)

        if is_v2 and self.selected("categories"):
            record, changes, conflict = normalize_categories_only(record, ctx)
            if not self.selected("normalize"):
                self._fold_categories(relative, conflict)
            report.count_changes("categories", changes)
            changed |= bool(changes)

        if self.selected("category-audit") and is_v2:
            mismatch = audit_categories(record, category)
            if mismatch:
                report.category_mismatches.append({"file": relative, **mismatch})

        if self.selected("repair-refs"):
            result = repair_poster_refs(record, self.store, now=self.now)
            for field_name, reference in result.orphans:
                report.add_orphan_reference(relative, reference, field_name)
            record = result.record
            report.count_changes("repair-refs", result.changes)
            changed |= bool(result.changes)

        if is_v2 and self.selected("link-images"):
            record, changes = link_matching_image(record, filename, self.store, now=self.now)
            report.count_changes("link-images", changes)
            changed |= bool(changes)

        if is_v2 and self.selected("titles"):
            record, changes = improve_record_title(record, self.now)
            report.count_changes("titles", changes)
            changed |= bool(changes)

        return record, changed

    def migration_context(self, path, category):
        return MigrationContext(path=Path(path), category=category, store=self.store, now=self.now)

    def _fold_migration(self, result, relative):
        for field_name, reference in result.orphans:
            self.report.add_orphan_reference(relative, reference, field_name)
        self.report.images_moved += result.images_copied
        self.report.by_mod["migrate"] += 1
        return result.record

    def _fold_categories(self, relative, conflict):
        if conflict:
            item = {"file": relative, **conflict}
            if item not in self.report.category_conflicts:
                self.report.category_conflicts.append(item)

    # ── Direct images ──

    def process_direct_image(self, path, relative, category):
        """A bare image in a category folder becomes <stem>.json beside it."""
        report = self.report
        report.scanned += 1
        report.per_variant[Variant.LEGACY_DIRECT_IMAGE.value] += 1

        sibling = path.with_suffix(".json")
        if self.fs.exists(sibling):
            logger.debug("  SKIP       %s (sibling JSON exists)", relative)
            report.skipped += 1
            return set()

        sibling_relative = str(Path(relative).with_suffix(".json"))
        try:
            result = migrate_direct_image(path, self.migration_context(path, category))
            record = self._fold_migration(result, relative)
            record, _ = self.apply_record_mods(record, sibling.name, sibling_relative, category)
        except CorpusError as e:
            report.add_error(e)
            report.skipped += 1
            return set()

        if self.write_record(sibling, sibling_relative, record):
            report.migrated += 1
            logger.info("  CREATED    %s (from %s)", sibling_relative, path.name)
        return _referenced_names(record)

    def find_orphan_images(self, folder, referenced):
        images_dir = self.corpus_root / folder / IMAGES_SUBDIR_NAME
        slug = category_slug(folder)
        for name in self.fs.list_dir(images_dir):
            if not is_image_extension(Path(name).suffix) or not self.fs.is_file(images_dir / name):
                continue
            lowered = name.lower()
            if lowered in referenced or f"{slug}_{lowered}" in referenced:
                continue
            self.report.add_orphan_image(f"{folder}/{IMAGES_SUBDIR_NAME}/{name}")

    # ── Journeys ──

    def process_journeys(self):
        journeys_dir = self.corpus_root / JOURNEYS_DIR_NAME
        names = [n for n in self.fs.list_dir(journeys_dir) if n.lower().endswith(".json")]
        if not names:
            return
        logger.info("── %s (%d journeys)", JOURNEYS_DIR_NAME, len(names))
        report = self.report
        for name in names:
            path = journeys_dir / name
            relative = f"{JOURNEYS_DIR_NAME}/{name}"
            report.scanned += 1
            try:
                data, _raw = self.fs.read_json(path)
            except ParseError as e:
                report.add_error(e)
                report.skipped += 1
                continue
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("  UNREADABLE  %s", relative)
                report.add_error(ParseError(f"Failed to read: {e}", path))
                report.skipped += 1
                continue

            result = repair_journey_refs(data, self.store, now=self.now)
            for field_name, reference in result.orphans:
                report.add_orphan_reference(relative, reference, field_name)
            if not result.changes:
                report.unchanged += 1
                continue
            report.count_changes("repair-refs", result.changes)
            if self.write_record(path, relative, result.record):
                report.modified += 1
                logger.info("  MODIFIED   %s", relative)

    # ── Writes ──

    def write_record(self, path, relative, record):
        """Back up, then atomically write. Returns False (and reports) on failure."""
        try:
            if self.backup is not None:
                self.backup.backup(path, relative)
                self._note_backup()
            self.fs.write_json(path, record)
        except OSError as e:
            self.report.add_error(WriteFailure(f"Failed to write: {e}", path))
            return False
        self.report.written_files.append(str(path))
        return True

    def _note_backup(self):
        if self.backup is not None and self.report.backup_dir is None and self.fs.is_dir(self.backup.run_dir):
            self.report.backup_dir = str(self.backup.run_dir)


def _referenced_names(record):
    """Lowercased basenames of every image reference a record carries."""
    return {
        reference_filename(container[key]).lower()
        for container, key in poster_references(record)
        if isinstance(container.get(key), str) and container[key]
    }


def run_batch(options, fs=None, now=None):
    """Run the selected mods over the corpus and return the MigrationReport."""
    if fs is None:
        fs = DryRunFS() if options.dry_run else CorpusFS()
    if not fs.is_dir(options.corpus_root):
        raise FileNotFoundError(f"Corpus root not found: {options.corpus_root}")
    return BatchRun(options, fs, now or utc_now_iso()).run()


def write_report_json(report, path):
    """The run log lives outside the corpus, so it is written even on a dry run."""
    CorpusFS().write_text(path, json.dumps(report.to_dict(), indent=2, ensure_ascii=False) + "\n")


# ── CLI ───────────────────────────────────────────────────────────────

def build_parser():
    parser = argparse.ArgumentParser(
        description="Poster Corpus Batch Orchestrator — "
                    "migrate, normalize and repair poster records"
    )
    parser.add_argument("--dry-run", action="store_true",
                        help="Compute every change without writing anything")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log every file, including unchanged ones")
    parser.add_argument("--mod", action="append", default=None, metavar="NAME",
                        help="Run only this mod (repeatable; default: the default mods)")
    parser.add_argument("--list-mods", action="store_true",
                        help="List available mods and exit")
    parser.add_argument("--ensure-folder-category", action="store_true",
                        help="Append the folder name to categories when missing")
    parser.add_argument("--default-category", default=DEFAULT_CATEGORY, metavar="NAME",
                        help=f"Category for posters with none (default: {DEFAULT_CATEGORY})")
    parser.add_argument("--include-non-v2", action="store_true",
                        help="Let normalize migrate unrecognized non-v2 records generically")
    parser.add_argument("--prefer-root-categories", action="store_true",
                        help="On a meta/root category conflict, keep the root list")
    parser.add_argument("--backup-dir", default=str(BACKUP_DIR), metavar="PATH",
                        help="Where pre-overwrite backups go")
    parser.add_argument("--corpus-root", default=str(CORPUS_ROOT), metavar="PATH",
                        help="Folder holding <category>/*.json")
    parser.add_argument("--asset-root", default=str(ASSET_ROOT), metavar="PATH",
                        help="Folder holding the originals/ image store")
    parser.add_argument("--report-json", default=None, metavar="PATH",
                        help="Also write the run report as JSON")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    if args.list_mods:
        print_mods()
        return 0

    try:
        mods = resolve_mods(args.mod)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    corpus_root = Path(args.corpus_root)
    if not corpus_root.is_dir():
        print(f"ERROR: Corpus root not found: {corpus_root}")
        return 1

    options = BatchOptions(
        corpus_root=corpus_root,
        asset_root=Path(args.asset_root),
        backup_dir=Path(args.backup_dir),
        mods=mods,
        dry_run=args.dry_run,
        verbose=args.verbose,
        default_category=args.default_category,
        ensure_folder_category=args.ensure_folder_category,
        include_non_v2=args.include_non_v2,
        prefer_root_categories=args.prefer_root_categories,
        report_json=Path(args.report_json) if args.report_json else None,
    )

    print("=" * 70)
    print("Poster Corpus Batch Orchestrator")
    print(f"  Corpus:  {options.corpus_root}")
    print(f"  Assets:  {options.asset_root}")
    print(f"  Mods:    {', '.join(mods)}")
    print(f"  Started: {utc_now_iso()}")
    if options.dry_run:
        print("  MODE: DRY RUN (no files will be written)")
    print("=" * 70)

    report = run_batch(options)
    print()
    report.print_summary()

    if options.report_json:
        write_report_json(report, options.report_json)
        print(f"\nReport written to {options.report_json}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Migration Report — the accumulator one batch run threads through every pass.

Nothing here is module-level state: the orchestrator creates one report per
run, passes it down, and returns it. `to_dict()` is what --report-json writes;
`print_summary()` is the banner printed at the end of a run.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MAX_LISTED = 50


@dataclass
class MigrationReport:
    dry_run: bool = False
    mods: List[str] = field(default_factory=list)

    scanned: int = 0
    migrated: int = 0
    modified: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: int = 0
    images_moved: int = 0

    per_variant: Counter = field(default_factory=Counter)
    by_mod: Counter = field(default_factory=Counter)
    filled: Counter = field(default_factory=Counter)

    orphan_references: List[Dict[str, str]] = field(default_factory=list)
    orphan_images: List[str] = field(default_factory=list)
    category_mismatches: List[Dict[str, Any]] = field(default_factory=list)
    category_conflicts: List[Dict[str, Any]] = field(default_factory=list)
    renamed_assets: List[Dict[str, Any]] = field(default_factory=list)
    refused_renames: List[Dict[str, str]] = field(default_factory=list)
    consolidated: List[Dict[str, str]] = field(default_factory=list)
    error_items: List[Dict[str, Optional[str]]] = field(default_factory=list)
    written_files: List[str] = field(default_factory=list)
    backup_dir: Optional[str] = None

    # ── Accumulation ─────────────────────────────────────────────

    def add_error(self, error):
        """Fold a CorpusError (or anything with to_dict) into the report."""
        self.errors += 1
        self.error_items.append(error.to_dict())

    def add_orphan_reference(self, file, reference, field_name):
        item = {"file": str(file), "reference": reference, "field": field_name}
        if item not in self.orphan_references:
            self.orphan_references.append(item)

    def add_orphan_image(self, path):
        path = str(path)
        if path not in self.orphan_images:
            self.orphan_images.append(path)

    def count_changes(self, mod_name, changes):
        """Record one changed file for `mod_name` and tally filled fields."""
        if changes:
            self.by_mod[mod_name] += 1
            self.filled.update(changes)

    # ── Output ───────────────────────────────────────────────────

    def to_dict(self):
        return {
            "dry_run": self.dry_run,
            "mods": list(self.mods),
            "scanned": self.scanned,
            "migrated": self.migrated,
            "modified": self.modified,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "errors": self.errors,
            "imagesMoved": self.images_moved,
            "perVariantCounts": dict(self.per_variant),
            "byMod": dict(self.by_mod),
            "filled": dict(self.filled),
            "orphanReferences": list(self.orphan_references),
            "orphanImages": list(self.orphan_images),
            "categoryMismatches": list(self.category_mismatches),
            "categoryConflicts": list(self.category_conflicts),
            "renamedAssets": list(self.renamed_assets),
            "refusedRenames": list(self.refused_renames),
            "consolidated": list(self.consolidated),
            "errorItems": list(self.error_items),
            "writtenFiles": list(self.written_files),
            "backupDir": self.backup_dir,
        }

    def print_summary(self):
        print("=" * 70)
        print("RESULTS" + (" (DRY RUN)" if self.dry_run else ""))
        print("=" * 70)
        print(f"Mods:               {', '.join(self.mods)}")
        print(f"Files scanned:      {self.scanned}")
        print(f"Records migrated:   {self.migrated}")
        print(f"Files modified:     {self.modified}")
        print(f"Files unchanged:    {self.unchanged}")
        print(f"Files skipped:      {self.skipped}")
        print(f"Errors:             {self.errors}")
        print(f"Images centralized: {self.images_moved}")

        if self.per_variant:
            print("\nBy detected variant:")
            for name, count in sorted(self.per_variant.items()):
                print(f"  {name:<28s}  {count}")

        if self.by_mod:
            print("\nBy mod (files changed):")
            for name, count in self.by_mod.items():
                print(f"  {name:<28s}  {count}")

        if self.filled:
            print("\nFilled / repaired fields:")
            for name, count in sorted(self.filled.items()):
                print(f"  {name:<28s}  {count}")

        _print_items("Orphan references", [
            f"{i['file']}: {i['field']} -> {i['reference']}" for i in self.orphan_references
        ])
        _print_items("Orphan images (no referencing poster)", self.orphan_images)
        _print_items("Category mismatches (folder not in categories)", [
            f"{i['file']} | folder: {i['folder']} | categories: {', '.join(i['categories']) or '(none)'}"
            for i in self.category_mismatches
        ])
        _print_items("Category conflicts (root categories kept)", [
            f"{i['file']} | meta: {', '.join(i['meta'])} | root: {', '.join(i['root'])}"
            for i in self.category_conflicts
        ])
        _print_items("Renamed assets", [
            f"{i['from']} -> {i['to']} ({i['referencers']} referencers)" for i in self.renamed_assets
        ])
        _print_items("Renames refused", [f"{i['asset']}: {i['reason']}" for i in self.refused_renames])
        _print_items("Consolidated", [f"{i['from']} -> {i['to']}" for i in self.consolidated])
        _print_items("Errors", [f"{i['kind']}: {i['file']} — {i['message']}" for i in self.error_items])

        if self.dry_run:
            print("\n*** This was a DRY RUN. Run without --dry-run to apply changes. ***")
        elif self.backup_dir:
            print(f"\nBackup location: {self.backup_dir}")


def _print_items(title, lines):
    if not lines:
        return
    print(f"\n{title} ({len(lines)}):")
    for line in lines[:MAX_LISTED]:
        print(f"  - {line}")
    if len(lines) > MAX_LISTED:
        print(f"  ... and {len(lines) - MAX_LISTED} more")

"""
Consolidate Posters — move every category's poster JSON into one flat folder.

    <corpus-root>/<category>/*.json  →  <corpus-root>/Posters/

Files keep their name when it is free. On a collision the source folder is
appended before the extension ("logo.json" from B → "logo__B.json"), and if
that is taken too a counter follows ("logo__B_1.json", "logo__B_2.json", ...).
Nothing in the target is ever overwritten. A file that exhausts the attempt
bound is reported as CollisionExhausted and left where it is; the rest of the
run continues.

Planning is separate from applying so a dry run can print the full mapping.
The record content (uid included) is moved byte-for-byte.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from config import CONSOLIDATED_DIR_NAME, MAX_COLLISION_ATTEMPTS, SKIP_DIRS
from corpus_errors import CollisionExhausted, CorpusError, WriteFailure

logger = logging.getLogger(__name__)


@dataclass
class PlannedMove:
    source: Path
    target: Path
    renamed: bool = False


def next_available_name(filename, source_folder, taken, max_attempts=MAX_COLLISION_ATTEMPTS):
    """First of name, name__folder, name__folder_1, ... not in `taken` (lowercased)."""
    path = Path(filename)
    stem, ext = path.stem, path.suffix
    for attempt, candidate in enumerate(_candidate_names(stem, ext, source_folder)):
        if attempt >= max_attempts:
            break
        if candidate.lower() not in taken:
            return candidate
    raise CollisionExhausted(f"No free name for {filename} after {max_attempts} attempts", filename)


def _candidate_names(stem, ext, source_folder):
    yield f"{stem}{ext}"
    yield f"{stem}__{source_folder}{ext}"
    n = 1
    while True:
        yield f"{stem}__{source_folder}_{n}{ext}"
        n += 1


def plan_consolidation(fs, corpus_root, target_name=CONSOLIDATED_DIR_NAME, skip_dirs=SKIP_DIRS,
                       max_attempts=MAX_COLLISION_ATTEMPTS) -> Tuple[List[PlannedMove], List[CorpusError]]:
    """Compute every move without touching the disk. Returns (moves, errors)."""
    corpus_root = Path(corpus_root)
    target_dir = corpus_root / target_name
    excluded = set(skip_dirs) | {target_name}

    taken = {name.lower() for name in fs.list_dir(target_dir)}
    moves = []
    errors = []

    sources = [
        name for name in fs.list_dir(corpus_root)
        if name not in excluded and fs.is_dir(corpus_root / name)
    ]
    logger.info("Target directory: %s", target_dir)
    logger.info("Source directories: %s", ", ".join(sources) or "None")

    for folder in sources:
        for filename in fs.list_dir(corpus_root / folder):
            source = corpus_root / folder / filename
            if not filename.lower().endswith(".json") or not fs.is_file(source):
                continue
            try:
                name = next_available_name(filename, folder, taken, max_attempts)
            except CollisionExhausted as e:
                e.path = str(source)
                errors.append(e)
                continue
            taken.add(name.lower())
            moves.append(PlannedMove(source=source, target=target_dir / name, renamed=(name != filename)))
    return moves, errors


def apply_consolidation(fs, moves, report):
    """Execute planned moves through `fs`. Returns the number moved."""
    moved = 0
    for move in moves:
        prefix = "[DRY RUN] " if fs.dry_run else ""
        logger.info("%s%s -> %s", prefix, move.source, move.target)
        if fs.exists(move.target):
            report.add_error(WriteFailure(f"Target already exists: {move.target}", move.source))
            continue
        try:
            fs.rename(move.source, move.target)
        except OSError as e:
            report.add_error(WriteFailure(f"Failed to move {move.source}: {e}", move.source))
            continue
        report.consolidated.append({"from": str(move.source), "to": str(move.target)})
        moved += 1
    if moved:
        report.by_mod["consolidate"] += moved
    return moved


def consolidate_posters(fs, corpus_root, report, target_name=CONSOLIDATED_DIR_NAME,
                        skip_dirs=SKIP_DIRS, max_attempts=MAX_COLLISION_ATTEMPTS):
    """Plan, report planning failures, apply."""
    moves, errors = plan_consolidation(fs, corpus_root, target_name, skip_dirs, max_attempts)
    for error in errors:
        report.add_error(error)
    renamed = sum(1 for m in moves if m.renamed)
    logger.info("Consolidation: %d files planned, %d renamed on collision", len(moves), renamed)
    return apply_consolidation(fs, moves, report)

"""
Reference Repair — point stale image references back at the asset store.

A reference needs repair when it is not external ("http...") and either does
not start with the store prefix or names a store file that no longer exists.
Such a reference is rewritten iff ImageStore.resolve() finds a match;
otherwise it is reported as an orphan and left exactly as it was.

Poster fields:  front.thumbnail, back.image.src, back.images[].src,
                legacy root imagePath and thumbnail
Journey fields: posters[].thumbnail only. posters[].filename names a poster
                file, not an image, and is never touched. Thumbnails still
                holding the journey editor's "path/to/optional" placeholder
                are skipped.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from config import PLACEHOLDER_THUMBNAIL_MARKER
from migration.image_resolver import is_external


@dataclass
class RepairResult:
    record: Dict[str, Any]
    changes: List[str] = field(default_factory=list)
    orphans: List[Tuple[str, str]] = field(default_factory=list)


def needs_repair(reference, store):
    if not isinstance(reference, str) or not reference.strip():
        return False
    if is_external(reference):
        return False
    return not store.is_canonical(reference)


def _repair_field(container, key, field_name, store, result):
    reference = container.get(key)
    if not needs_repair(reference, store):
        return
    resolved = store.resolve(reference)
    if resolved is None:
        result.orphans.append((field_name, reference))
    elif resolved != reference:
        container[key] = resolved
        result.changes.append(field_name)


def repair_poster_refs(record, store, now=None):
    """Repair every image reference a poster carries. Returns a RepairResult."""
    poster = copy.deepcopy(record)
    result = RepairResult(record=poster)
    if not isinstance(poster, dict):
        return result

    front = poster.get("front")
    if isinstance(front, dict):
        _repair_field(front, "thumbnail", "front.thumbnail", store, result)

    back = poster.get("back")
    if isinstance(back, dict):
        if isinstance(back.get("image"), dict):
            _repair_field(back["image"], "src", "back.image.src", store, result)
        if isinstance(back.get("images"), list):
            for i, img in enumerate(back["images"]):
                if isinstance(img, dict):
                    _repair_field(img, "src", f"back.images[{i}].src", store, result)

    # Legacy records that were never migrated still carry these at the root
    _repair_field(poster, "imagePath", "imagePath", store, result)
    _repair_field(poster, "thumbnail", "thumbnail", store, result)

    if result.changes and now and isinstance(poster.get("meta"), dict):
        poster["meta"]["modified"] = now
    return result


def is_placeholder(reference):
    return isinstance(reference, str) and PLACEHOLDER_THUMBNAIL_MARKER in reference


def repair_journey_refs(record, store, now=None):
    """Repair posters[].thumbnail in a journey. Returns a RepairResult."""
    journey = copy.deepcopy(record)
    result = RepairResult(record=journey)
    if not isinstance(journey, dict) or not isinstance(journey.get("posters"), list):
        return result

    for i, entry in enumerate(journey["posters"]):
        if not isinstance(entry, dict) or is_placeholder(entry.get("thumbnail")):
            continue
        _repair_field(entry, "thumbnail", f"posters[{i}].thumbnail", store, result)

    if result.changes and now:
        journey["dateModified"] = now
    return result


# ── Reference rewriting (used by de-prefix) ──────────────────────

def poster_references(record):
    """Yield (container, key) for every image reference field in a poster."""
    if not isinstance(record, dict):
        return
    front = record.get("front")
    if isinstance(front, dict) and "thumbnail" in front:
        yield front, "thumbnail"
    back = record.get("back")
    if isinstance(back, dict):
        if isinstance(back.get("image"), dict) and "src" in back["image"]:
            yield back["image"], "src"
        for img in back.get("images") or []:
            if isinstance(img, dict) and "src" in img:
                yield img, "src"
    for key in ("imagePath", "thumbnail"):
        if key in record:
            yield record, key


def journey_references(record):
    if not isinstance(record, dict):
        return
    for entry in record.get("posters") or []:
        if isinstance(entry, dict) and "thumbnail" in entry:
            yield entry, "thumbnail"


def rewrite_references(record, old, new, journey=False):
    """Copy of `record` with every reference equal to `old` set to `new`, plus the hit count."""
    out = copy.deepcopy(record)
    fields = journey_references(out) if journey else poster_references(out)
    hits = 0
    for container, key in fields:
        if container.get(key) == old:
            container[key] = new
            hits += 1
    return out, hits

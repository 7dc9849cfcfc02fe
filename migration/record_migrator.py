"""
Record Migrator — legacy poster variants → canonical v2 records.

One mapping per detected variant, dispatched through MIGRATORS (the same
registry shape the normalizers use). Each mapping builds a fresh v2 record:

    legacy-text           figure → front.title, header → back.text,
                          chronology copied verbatim, thumbnail resolved
    legacy-website        title → front.title, url → one primary external
                          link, description → back.text; http thumbnails kept
    legacy-image-wrapper  imagePath → back.image (poster's images/ folder,
                          then the category folder, then the store);
                          annotations appended to back.text as **Notes:**
    legacy-direct-image   a bare image file → a new sibling JSON record
                          titled from the filename

Every mapping stamps meta.modified, leaves meta.created for the normalizer,
and records meta.migratedFrom (stripped again by the normalizer). An existing
uid, subtitle, and legacy categories/tags/source are carried over.

A referenced image that cannot be found is not an error: the field is
omitted and the reference comes back in MigrationResult.orphans.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config import IMAGES_SUBDIR_NAME
from corpus_errors import UnknownVariant
from migration.image_resolver import ImageStore, is_external
from migration.schema_detector import Variant

logger = logging.getLogger(__name__)

GENERIC_VARIANT = "legacy"


# ── Text helpers ─────────────────────────────────────────────────

def title_from_filename(filename):
    """'ancient_rome-map.png' -> 'Ancient Rome Map'"""
    stem = Path(str(filename)).stem
    tokens = [t for t in re.split(r"[_\-\s]+", stem) if t]
    return " ".join(t[:1].upper() + t[1:] for t in tokens)


def alt_from_src(src, fallback_title=None):
    if src:
        alt = title_from_filename(Path(str(src)).name)
        if alt:
            return alt
    return fallback_title or "Poster Image"


def coerce_string(value):
    if isinstance(value, str) and value.strip():
        return value.strip()
    return ""


def legacy_text(raw):
    """First non-blank of the legacy header / description / text fields."""
    for key in ("header", "description", "text"):
        if coerce_string(raw.get(key)):
            return raw[key]
    return ""


def flatten_annotations(annotations):
    """Annotation list → '**Notes:**' bullet block, or '' if there is nothing to add."""
    if not isinstance(annotations, list) or not annotations:
        return ""
    lines = []
    for a in annotations:
        text = a.get("text") if isinstance(a, dict) else a
        if text is None or text == "":
            continue
        lines.append(f"- {text}")
    if not lines:
        return ""
    return "**Notes:**\n" + "\n".join(lines)


# ── Context / result ─────────────────────────────────────────────

@dataclass
class MigrationContext:
    """Where a record came from and what it may resolve images against."""
    path: Path
    category: Optional[str]
    store: ImageStore
    now: str

    @property
    def category_dir(self):
        return Path(self.path).parent

    @property
    def slug_source(self):
        return self.category or self.category_dir.name


@dataclass
class MigrationResult:
    record: Dict[str, Any]
    variant: str
    orphans: List[Tuple[str, str]] = field(default_factory=list)
    images_copied: int = 0


# ── Asset resolution ─────────────────────────────────────────────

def local_candidates(reference, category_dir):
    """On-disk places a legacy reference may point at, in search order."""
    ref = str(reference).replace("\\", "/").lstrip("/")
    category_dir = Path(category_dir)
    out = [category_dir / IMAGES_SUBDIR_NAME / ref, category_dir / ref]
    unique = []
    for p in out:
        if p not in unique:
            unique.append(p)
    return unique


def resolve_legacy_asset(reference, ctx, result, field_name):
    """Centralize or resolve a legacy image reference. None means orphan."""
    if not isinstance(reference, str) or not reference.strip():
        return None
    reference = reference.strip()
    if is_external(reference):
        return reference
    if ctx.store.is_canonical(reference):
        return reference

    for candidate in local_candidates(reference, ctx.category_dir):
        if ctx.store.fs.is_file(candidate):
            path, copied = ctx.store.centralize(candidate, ctx.slug_source)
            if copied:
                result.images_copied += 1
            return path

    resolved = ctx.store.resolve(reference)
    if resolved:
        return resolved

    logger.debug("  Missing source image for %s: %s", field_name, reference)
    result.orphans.append((field_name, reference))
    return None


# ── Skeleton ─────────────────────────────────────────────────────

def _skeleton(raw, ctx, variant, layout="auto"):
    v2 = {"version": 2}
    if coerce_string(raw.get("uid")):
        v2["uid"] = raw["uid"]
    v2["front"] = {}
    v2["back"] = {"layout": layout}
    v2["meta"] = {"modified": ctx.now, "migratedFrom": variant}

    if raw.get("categories"):
        v2["meta"]["categories"] = copy.deepcopy(raw["categories"])
    if raw.get("tags"):
        v2["meta"]["tags"] = copy.deepcopy(raw["tags"])
    if coerce_string(raw.get("source")):
        v2["meta"]["source"] = raw["source"]
    return v2


def _carry_front(raw, v2):
    if coerce_string(raw.get("subtitle")):
        v2["front"]["subtitle"] = raw["subtitle"]
    if raw.get("chronology") is not None:
        v2["front"]["chronology"] = copy.deepcopy(raw["chronology"])


# ── Migrators ────────────────────────────────────────────────────

def migrate_text_poster(raw, ctx):
    """legacy-text: {figure, header, chronology?, thumbnail?}"""
    result = MigrationResult(record={}, variant=Variant.LEGACY_TEXT.value)
    v2 = _skeleton(raw, ctx, Variant.LEGACY_TEXT.value)
    v2["front"]["title"] = coerce_string(raw.get("figure")) or "Untitled"
    _carry_front(raw, v2)

    if coerce_string(raw.get("header")):
        v2["back"]["text"] = raw["header"]

    if raw.get("thumbnail"):
        thumb = resolve_legacy_asset(raw["thumbnail"], ctx, result, "front.thumbnail")
        if thumb:
            v2["front"]["thumbnail"] = thumb

    result.record = v2
    return result


def migrate_website_poster(raw, ctx):
    """legacy-website: {type: "website", title, url, description?, thumbnail?}"""
    result = MigrationResult(record={}, variant=Variant.LEGACY_WEBSITE.value)
    v2 = _skeleton(raw, ctx, Variant.LEGACY_WEBSITE.value)
    v2["front"]["title"] = coerce_string(raw.get("title")) or "Website"
    _carry_front(raw, v2)

    if coerce_string(raw.get("url")):
        v2["back"]["links"] = [{
            "type": "external",
            "url": raw["url"].strip(),
            "label": "Open Website",
            "primary": True,
        }]

    if coerce_string(raw.get("description")):
        v2["back"]["text"] = raw["description"]

    if raw.get("thumbnail"):
        thumb = resolve_legacy_asset(raw["thumbnail"], ctx, result, "front.thumbnail")
        if thumb:
            v2["front"]["thumbnail"] = thumb

    result.record = v2
    return result


def migrate_image_poster(raw, ctx):
    """legacy-image-wrapper: {type: "image", imagePath, title?, alt?, description?, annotations?}"""
    result = MigrationResult(record={}, variant=Variant.LEGACY_IMAGE_WRAPPER.value)
    v2 = _skeleton(raw, ctx, Variant.LEGACY_IMAGE_WRAPPER.value, layout="image-top")
    title = coerce_string(raw.get("title")) or "Image"
    v2["front"]["title"] = title
    _carry_front(raw, v2)

    if raw.get("imagePath"):
        src = resolve_legacy_asset(raw["imagePath"], ctx, result, "back.image.src")
        if src:
            v2["back"]["image"] = {
                "src": src,
                "alt": coerce_string(raw.get("alt")) or title,
                "position": "top",
            }

    text = raw.get("description") if coerce_string(raw.get("description")) else ""
    notes = flatten_annotations(raw.get("annotations"))
    if notes:
        text = (text + "\n\n" if text else "") + notes
    if text:
        v2["back"]["text"] = text

    result.record = v2
    return result


def migrate_direct_image(image_path, ctx):
    """legacy-direct-image: a bare image file becomes a new poster record."""
    result = MigrationResult(record={}, variant=Variant.LEGACY_DIRECT_IMAGE.value)
    title = title_from_filename(Path(image_path).name) or "Image"
    v2 = _skeleton({}, ctx, Variant.LEGACY_DIRECT_IMAGE.value, layout="image-top")
    v2["front"]["title"] = title

    src, copied = ctx.store.centralize(image_path, ctx.slug_source)
    if copied:
        result.images_copied += 1
    v2["back"]["image"] = {"src": src, "alt": title, "position": "top"}

    result.record = v2
    return result


def migrate_generic_legacy(raw, ctx):
    """Best-effort mapping for non-v2 records no specific migrator claims."""
    result = MigrationResult(record={}, variant=GENERIC_VARIANT)
    v2 = _skeleton(raw, ctx, GENERIC_VARIANT)
    title = (coerce_string(raw.get("figure")) or coerce_string(raw.get("title"))
             or coerce_string(raw.get("name")) or title_from_filename(Path(ctx.path).name)
             or "Untitled")
    v2["front"]["title"] = title
    _carry_front(raw, v2)

    text = legacy_text(raw)
    if text:
        v2["back"]["text"] = text

    if raw.get("imagePath"):
        src = resolve_legacy_asset(raw["imagePath"], ctx, result, "back.image.src")
        if src:
            v2["back"]["image"] = {
                "src": src,
                "alt": coerce_string(raw.get("alt")) or title,
                "position": "top",
            }

    if coerce_string(raw.get("url")):
        v2["back"]["links"] = [{
            "type": "external",
            "url": raw["url"].strip(),
            "label": "Visit Website",
            "primary": True,
        }]

    result.record = v2
    return result


# ── Registry ─────────────────────────────────────────────────────

MIGRATORS = {
    Variant.LEGACY_TEXT: migrate_text_poster,
    Variant.LEGACY_WEBSITE: migrate_website_poster,
    Variant.LEGACY_IMAGE_WRAPPER: migrate_image_poster,
}


def migrate_record(variant, raw, ctx):
    """Dispatch a parsed JSON record to its migrator. Raises UnknownVariant."""
    migrator = MIGRATORS.get(variant)
    if migrator is None:
        raise UnknownVariant(f"No migrator for variant '{Variant(variant).value}'", ctx.path)
    return migrator(raw, ctx)

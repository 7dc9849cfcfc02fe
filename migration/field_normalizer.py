"""
Field Normalizer — the idempotent repair pass over v2 poster records.

Fills what is missing and reconciles what disagrees, in this order, each step
gated on the field being absent or inconsistent:

    uid                 random opaque token, never regenerated
    front.title         derived from the filename
    back.layout         "auto"
    back.text           legacy header/description/text, else a placeholder
    back.image          alt derived from src, position "top"; dropped if src-less
    back.images         primary image first, de-duplicated by src, at most 5,
                        back.image re-derived from element 0 when unset
    back.links          type and label backfilled, address field chosen by type
    meta.migratedFrom   stripped
    meta.categories     see category_normalizer
    meta.created        now, only if absent
    meta.modified       now, only if anything above changed

A record that needs nothing comes back equal to its input with an empty
change list, and the orchestrator does not rewrite it. That is the
idempotence contract: normalize(normalize(x)) == normalize(x).
"""

import copy
import re
import uuid
from dataclasses import dataclass, field
from typing import Optional

from config import DEFAULT_CATEGORY, MAX_BACK_IMAGES
from migration.category_normalizer import apply_categories, normalize_category_list, to_category_list
from migration.record_migrator import alt_from_src, coerce_string, legacy_text, title_from_filename

LINK_ADDRESS_FIELDS = {"external": "url", "internal": "target", "file": "path"}
LINK_KNOWN_KEYS = {"type", "label", "url", "target", "path", "primary"}


@dataclass
class NormalizeOptions:
    default_category: str = DEFAULT_CATEGORY
    ensure_folder_category: bool = False
    prefer_root_categories: bool = False


@dataclass
class NormalizeContext:
    filename: str
    folder_category: Optional[str]
    now: str
    options: NormalizeOptions = field(default_factory=NormalizeOptions)


def new_uid():
    return f"poster-{uuid.uuid4().hex[:12]}"


def dummy_back_text(title, category=None):
    where = f" in {category.replace('_', ' ')}" if category else ""
    return f"Overview for {title}{where}. Details coming soon."


def _placeholder_category(poster, ctx):
    """Folder category, else the record's own first category (Posters/ has no folder category)."""
    if ctx.folder_category:
        return ctx.folder_category
    meta = poster.get("meta") if isinstance(poster.get("meta"), dict) else {}
    categories = normalize_category_list(
        to_category_list(meta.get("categories")) or to_category_list(poster.get("categories"))
    )
    return categories[0] if categories else None


def _set_uid(poster, uid):
    """Put uid right after version so files read the way the editors write them."""
    if "uid" in poster:
        poster["uid"] = uid
        return poster
    out = {}
    for k, v in poster.items():
        out[k] = v
        if k == "version":
            out["uid"] = uid
    if "uid" not in out:
        out = {"uid": uid, **out}
    return out


# ── Links ────────────────────────────────────────────────────────

def _label_for(url):
    host = re.sub(r"^https?://", "", url).split("/")[0]
    return host or "Learn more"


def normalize_link(link):
    """One LinkRef, or None when the link has no address at all."""
    if not isinstance(link, dict):
        return None
    link_type = str(link.get("type") or "").lower()
    if link_type not in LINK_ADDRESS_FIELDS:
        if coerce_string(link.get("url")):
            link_type = "external"
        elif coerce_string(link.get("target")):
            link_type = "internal"
        elif coerce_string(link.get("path")):
            link_type = "file"
        else:
            link_type = "external"

    address_field = LINK_ADDRESS_FIELDS[link_type]
    address = (coerce_string(link.get(address_field)) or coerce_string(link.get("url"))
               or coerce_string(link.get("target")) or coerce_string(link.get("path")))
    if not address:
        return None

    label = coerce_string(link.get("label"))
    if not label:
        label = _label_for(address) if link_type == "external" else "Learn more"

    out = {"type": link_type, "label": label, address_field: address}
    if link.get("primary"):
        out["primary"] = True
    for k, v in link.items():
        if k not in LINK_KNOWN_KEYS:
            out[k] = v
    return out


def normalize_links(links):
    if not isinstance(links, list):
        return []
    return [n for n in (normalize_link(link) for link in links) if n is not None]


# ── Images ───────────────────────────────────────────────────────

def _image_entry(img, title):
    if isinstance(img, str) and img.strip():
        return {"src": img.strip(), "alt": alt_from_src(img, title)}
    if not isinstance(img, dict) or not coerce_string(img.get("src")):
        return None
    entry = dict(img)
    if not coerce_string(entry.get("alt")):
        entry["alt"] = alt_from_src(entry["src"], title)
    return entry


def _normalize_image(back, title, changes):
    if "image" not in back:
        return
    image = back["image"]
    if not isinstance(image, dict) or not coerce_string(image.get("src")):
        del back["image"]
        changes.append("imageDropped")
        return
    if not coerce_string(image.get("alt")):
        image["alt"] = alt_from_src(image["src"], title)
        changes.append("imageAlt")
    if not image.get("position"):
        image["position"] = "top"
        changes.append("imagePosition")


def _normalize_image_list(back, title, changes):
    if "images" not in back:
        return
    raw = back["images"] if isinstance(back["images"], list) else []
    entries = [e for e in (_image_entry(img, title) for img in raw) if e is not None]

    primary = back.get("image")
    if isinstance(primary, dict) and primary.get("src"):
        head = next((e for e in entries if e["src"] == primary["src"]), None)
        if head is None:
            head = {"src": primary["src"], "alt": primary.get("alt") or alt_from_src(primary["src"], title)}
        entries = [head] + [e for e in entries if e["src"] != primary["src"]]

    seen = set()
    unique = []
    for e in entries:
        if e["src"] in seen:
            continue
        seen.add(e["src"])
        unique.append(e)
    unique = unique[:MAX_BACK_IMAGES]

    if not unique:
        del back["images"]
        changes.append("imageList")
        return

    if unique != back["images"]:
        back["images"] = unique
        changes.append("imageList")

    if not isinstance(primary, dict) or primary.get("src") != unique[0]["src"]:
        back["image"] = {
            "src": unique[0]["src"],
            "alt": unique[0].get("alt") or alt_from_src(unique[0]["src"], title),
            "position": "top",
        }
        changes.append("image")


# ── Main entry ───────────────────────────────────────────────────

def normalize_record(record, ctx):
    """Return (normalized_copy, changes, category_conflict_or_None)."""
    poster = copy.deepcopy(record)
    changes = []

    if not coerce_string(poster.get("uid")):
        poster = _set_uid(poster, new_uid())
        changes.append("uid")

    if not isinstance(poster.get("front"), dict):
        poster["front"] = {}
        changes.append("front")
    front = poster["front"]
    if not coerce_string(front.get("title")):
        front["title"] = title_from_filename(ctx.filename) or "Untitled"
        changes.append("title")
    title = front["title"]

    if not isinstance(poster.get("back"), dict):
        poster["back"] = {}
        changes.append("back")
    back = poster["back"]
    if not back.get("layout"):
        back["layout"] = "auto"
        changes.append("layout")

    if not coerce_string(back.get("text")):
        back["text"] = legacy_text(poster) or dummy_back_text(title, _placeholder_category(poster, ctx))
        changes.append("text")

    _normalize_image(back, title, changes)
    _normalize_image_list(back, title, changes)

    if "links" in back:
        links = normalize_links(back["links"])
        if not links:
            del back["links"]
            changes.append("links")
        elif links != back["links"]:
            back["links"] = links
            changes.append("links")

    if not isinstance(poster.get("meta"), dict):
        poster["meta"] = {}
        changes.append("meta")
    meta = poster["meta"]
    if "migratedFrom" in meta:
        del meta["migratedFrom"]
        changes.append("migratedFrom")

    opts = ctx.options
    category_changes, conflict = apply_categories(
        poster,
        folder_category=ctx.folder_category,
        default_category=opts.default_category,
        ensure_folder_category=opts.ensure_folder_category,
        prefer_root=opts.prefer_root_categories,
    )
    changes.extend(category_changes)

    if not meta.get("created"):
        meta["created"] = ctx.now
        changes.append("metaCreated")

    if changes or not meta.get("modified"):
        meta["modified"] = ctx.now
        changes.append("metaModified")

    return poster, changes, conflict


def normalize_categories_only(record, ctx):
    """The `categories` mod: category step alone, plus the modified stamp."""
    poster = copy.deepcopy(record)
    opts = ctx.options
    changes, conflict = apply_categories(
        poster,
        folder_category=ctx.folder_category,
        default_category=opts.default_category,
        ensure_folder_category=opts.ensure_folder_category,
        prefer_root=opts.prefer_root_categories,
    )
    if changes:
        poster["meta"]["modified"] = ctx.now
    return poster, changes, conflict


# ── Title prettifying (opt-in `titles` mod) ──────────────────────

TITLE_ABBREVIATIONS = (
    (re.compile(r"\bGdp\b", re.IGNORECASE), "GDP"),
    (re.compile(r"\bUs\b"), "US"),
    (re.compile(r"\bAi\b"), "AI"),
    (re.compile(r"\bApi\b"), "API"),
)


def improve_title(title):
    """'RealGDP_Top50' -> 'Real GDP Top 50'"""
    if not title:
        return "Untitled"
    out = re.sub(r"([a-z])([A-Z])", r"\1 \2", title)
    out = re.sub(r"([a-zA-Z])(\d)", r"\1 \2", out)
    out = re.sub(r"[_-]", " ", out)
    out = re.sub(r"\s+", " ", out)
    for pattern, replacement in TITLE_ABBREVIATIONS:
        out = pattern.sub(replacement, out)
    return out.strip()


def improve_record_title(record, now):
    """Return (copy, changes). Also renames back.image.alt when it mirrored the title."""
    poster = copy.deepcopy(record)
    front = poster.get("front") if isinstance(poster.get("front"), dict) else None
    if front is None or not coerce_string(front.get("title")):
        return poster, []
    current = front["title"]
    improved = improve_title(current)
    if improved == current:
        return poster, []
    front["title"] = improved
    back = poster.get("back") if isinstance(poster.get("back"), dict) else {}
    image = back.get("image")
    if isinstance(image, dict) and image.get("alt") == current:
        image["alt"] = improved
    if isinstance(poster.get("meta"), dict):
        poster["meta"]["modified"] = now
    return poster, ["title"]

"""
Image Linker — give imageless v2 posters the store image that shares their name.

A poster "<stem>.json" without back.image.src is linked to the store file
whose stem equals <stem> case-insensitively (extension priority decides when
several match). Opt-in: a name match is a guess, not a repair.
"""

import copy
from pathlib import Path


def link_matching_image(record, filename, store, now=None):
    """Return (copy, changes)."""
    poster = copy.deepcopy(record)
    if not isinstance(poster, dict) or poster.get("version") != 2:
        return poster, []

    back = poster.get("back")
    if isinstance(back, dict) and isinstance(back.get("image"), dict) and back["image"].get("src"):
        return poster, []

    stem = Path(filename).stem
    match = store.lookup_stem(stem)
    if not match:
        return poster, []

    if not isinstance(back, dict):
        back = poster["back"] = {}
    front = poster.get("front") if isinstance(poster.get("front"), dict) else {}
    image = back["image"] if isinstance(back.get("image"), dict) else {}
    image["src"] = store.canonical_path(match)
    image["alt"] = front.get("title") or stem
    image["position"] = "top"
    back["image"] = image

    if now and isinstance(poster.get("meta"), dict):
        poster["meta"]["modified"] = now
    return poster, ["back.image"]

"""
Schema Detector — classifies a parsed poster file into one record variant.

Legacy posters carry no discriminator beyond their shape, so detection is
structural. The rules are checked in order and the first match wins:

    1. image file extension          → legacy-direct-image
    2. version == 2                  → already-v2
    3. type == "website"             → legacy-website
    4. type == "image"               → legacy-image-wrapper
    5. "figure" or "header" present  → legacy-text
    6. anything else                 → unknown  (reported, never migrated)

Detection is pure and total: it never raises.
"""

from enum import Enum

from config import IMAGE_EXTENSIONS


class Variant(str, Enum):
    ALREADY_V2 = "already-v2"
    LEGACY_TEXT = "legacy-text"
    LEGACY_WEBSITE = "legacy-website"
    LEGACY_IMAGE_WRAPPER = "legacy-image-wrapper"
    LEGACY_DIRECT_IMAGE = "legacy-direct-image"
    UNKNOWN = "unknown"


LEGACY_VARIANTS = (
    Variant.LEGACY_TEXT,
    Variant.LEGACY_WEBSITE,
    Variant.LEGACY_IMAGE_WRAPPER,
    Variant.LEGACY_DIRECT_IMAGE,
)


def is_image_extension(extension):
    ext = (extension or "").lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext in IMAGE_EXTENSIONS


def detect_variant(record, extension=".json"):
    """Return the Variant for a parsed record read from a file with `extension`."""
    if is_image_extension(extension):
        return Variant.LEGACY_DIRECT_IMAGE
    if not isinstance(record, dict):
        return Variant.UNKNOWN
    if record.get("version") == 2:
        return Variant.ALREADY_V2
    if record.get("type") == "website":
        return Variant.LEGACY_WEBSITE
    if record.get("type") == "image":
        return Variant.LEGACY_IMAGE_WRAPPER
    if "figure" in record or "header" in record:
        return Variant.LEGACY_TEXT
    return Variant.UNKNOWN

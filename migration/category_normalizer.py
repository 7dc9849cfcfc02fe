"""
Category Normalizer — one clean category list per poster, under meta.categories.

Source precedence:
    meta.categories (if non-empty)
    → legacy root-level "categories"
    → the folder the poster lives in
    → the configured default category

Normalization trims, drops empties, de-duplicates case-insensitively keeping
the first-seen casing, and never reorders. With ensure_folder_category the
folder category is appended when missing.

When meta.categories and the root list are both non-empty and the root list
carries categories meta does not, the root list is kept in place and the
conflict is returned to the caller for the report. prefer_root flips the
precedence for that case. A root list fully contained in meta is dropped.
"""


def to_category_list(value):
    if not value:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [value]
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return [str(value)]
    return []


def normalize_category_list(items):
    """['Rome', 'rome', ' Rome '] -> ['Rome']"""
    seen = set()
    result = []
    for item in items or []:
        if isinstance(item, bool) or item is None:
            continue
        if isinstance(item, (int, float)):
            item = str(item)
        if not isinstance(item, str):
            continue
        trimmed = item.strip()
        if not trimmed:
            continue
        key = trimmed.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(trimmed)
    return result


def has_category(categories, name):
    name = (name or "").lower()
    return any(c.lower() == name for c in categories)


def _is_subset(items, container):
    return all(has_category(container, c) for c in items)


def apply_categories(record, folder_category=None, default_category="Uncategorized",
                     ensure_folder_category=False, prefer_root=False):
    """Normalize categories in place. Returns (changes, conflict_or_None)."""
    changes = []
    conflict = None

    meta = record.get("meta")
    if not isinstance(meta, dict):
        meta = {}
        record["meta"] = meta
        changes.append("meta")

    meta_list = normalize_category_list(to_category_list(meta.get("categories")))
    root_present = "categories" in record
    root_list = normalize_category_list(to_category_list(record.get("categories")))
    drop_root = root_present

    if meta_list:
        source = meta_list
        if root_list and not _is_subset(root_list, meta_list):
            if prefer_root:
                source = root_list
            else:
                conflict = {"meta": meta_list, "root": root_list}
                drop_root = False
    else:
        source = root_list

    normalized = list(source)
    if not normalized:
        if folder_category:
            normalized = [folder_category]
        elif default_category:
            normalized = [default_category]

    if ensure_folder_category and folder_category and not has_category(normalized, folder_category):
        normalized.append(folder_category)

    if meta.get("categories") != normalized:
        meta["categories"] = normalized
        changes.append("metaCategories")

    if drop_root:
        del record["categories"]
        changes.append("rootCategories")

    return changes, conflict


def audit_categories(record, folder_category):
    """Read-only. Returns a mismatch item when the folder is not among the categories."""
    if not folder_category or not isinstance(record, dict):
        return None
    meta = record.get("meta") if isinstance(record.get("meta"), dict) else {}
    meta_list = to_category_list(meta.get("categories"))
    source = meta_list if meta_list else to_category_list(record.get("categories"))
    normalized = normalize_category_list(source)
    if has_category(normalized, folder_category):
        return None
    return {"folder": folder_category, "categories": normalized}

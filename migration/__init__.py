"""
Record-level transforms: variant detection, image resolution, legacy → v2
migration, and the idempotent field/category normalizer.
"""

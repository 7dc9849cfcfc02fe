"""
Cross-reference passes: repair stale image references, de-prefix store
assets, and link imageless posters to matching store images.
"""

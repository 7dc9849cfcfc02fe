"""Shared fixtures for the poster corpus test suite."""
import json
import sys
from pathlib import Path

import pytest

# Add project root to path so imports work
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from batch_orchestrator import BatchOptions  # noqa: E402
from corpus_fs import CorpusFS  # noqa: E402
from migration.image_resolver import ImageStore  # noqa: E402

NOW = "2026-01-01T00:00:00.000Z"
LATER = "2026-02-01T00:00:00.000Z"


# ── Minimal records for each variant ────────────────────────────────────

LEGACY_TEXT = {
    "figure": "Ancient Rome",
    "header": "A city on seven hills.",
    "chronology": {"epochStart": -753},
}

LEGACY_WEBSITE = {
    "type": "website",
    "title": "Example",
    "url": "https://example.com",
    "description": "d",
}

LEGACY_IMAGE = {
    "type": "image",
    "imagePath": "colosseum.jpg",
    "title": "Colosseum",
    "description": "Arena of Rome.",
    "annotations": [{"text": "Built 80 AD"}, "Seats 50,000"],
}

V2_POSTER = {
    "version": 2,
    "uid": "poster-000000000001",
    "front": {"title": "Rome"},
    "back": {
        "layout": "auto",
        "text": "The eternal city.",
        "image": {"src": "images/originals/rome.png", "alt": "Rome", "position": "top"},
    },
    "meta": {"created": NOW, "modified": NOW, "categories": ["Empires"]},
}


def write_json(path, data):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    return path


def snapshot(root):
    """{relative path: bytes} for every file under root."""
    root = Path(root)
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*")) if p.is_file()
    }


class CorpusBuilder:
    """Builds <tmp>/JSON_Posters, <tmp>/images/originals and <tmp>/backups."""

    def __init__(self, root):
        self.root = Path(root)
        self.corpus = self.root / "JSON_Posters"
        self.assets = self.root / "images"
        self.store_dir = self.assets / "originals"
        self.backups = self.root / "backups"
        self.corpus.mkdir(parents=True)
        self.store_dir.mkdir(parents=True)

    def poster(self, category, name, data):
        return write_json(self.corpus / category / name, data)

    def raw(self, category, name, text):
        path = self.corpus / category / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    def raw_bytes(self, category, name, content):
        path = self.corpus / category / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    def image(self, category, name, in_images_dir=True, content=b"\x89PNG fake"):
        folder = self.corpus / category
        if in_images_dir:
            folder = folder / "images"
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / name
        path.write_bytes(content)
        return path

    def store_image(self, name, content=b"\x89PNG fake"):
        path = self.store_dir / name
        path.write_bytes(content)
        return path

    def journey(self, name, data):
        return write_json(self.corpus / "Journeys" / name, data)

    def read(self, category, name):
        return json.loads((self.corpus / category / name).read_text())

    def store(self, fs=None):
        return ImageStore(fs or CorpusFS(), self.assets)

    def options(self, **kwargs):
        return BatchOptions(
            corpus_root=self.corpus,
            asset_root=self.assets,
            backup_dir=self.backups,
            **kwargs,
        )


@pytest.fixture
def corpus(tmp_path):
    """An empty corpus tree under tmp_path."""
    return CorpusBuilder(tmp_path)

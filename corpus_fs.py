"""
Corpus FS — the only place the engine touches the disk.

Every pass reads and writes through one of these objects:

    CorpusFS   — the real filesystem. Writes are atomic (temp file in the
                 target directory, then os.replace) so a crash never leaves a
                 half-written record behind.
    DryRunFS   — reads the real filesystem but keeps every write, copy and
                 rename in an in-memory overlay. Later reads in the same run
                 see the overlay, so a dry run computes exactly the plan a real
                 run would execute, and the disk is never mutated.

BackupWriter snapshots a file into <backup-root>/migration-<unix-ms>/ before
it is overwritten. One snapshot per file per run.
"""

import json
import os
import shutil
import tempfile
import time
from pathlib import Path

from corpus_errors import ParseError


def dump_record(data):
    """Serialize a record the way the editors write it."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


class CorpusFS:
    """Real filesystem access."""

    dry_run = False

    def exists(self, path):
        return Path(path).exists()

    def is_file(self, path):
        return Path(path).is_file()

    def is_dir(self, path):
        return Path(path).is_dir()

    def list_dir(self, path):
        """Sorted entry names of a directory; empty if it does not exist."""
        p = Path(path)
        if not p.is_dir():
            return []
        return sorted(entry.name for entry in p.iterdir())

    def read_text(self, path, errors="strict"):
        with open(path, encoding="utf-8", errors=errors) as f:
            return f.read()

    def read_json(self, path):
        """Returns (data, raw_text). Raises ParseError on malformed JSON."""
        text = self.read_text(path)
        try:
            return json.loads(text), text
        except json.JSONDecodeError as e:
            raise ParseError(f"Failed to parse: {e}", path) from e

    def write_text(self, path, text):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def write_json(self, path, data):
        self.write_text(path, dump_record(data))

    def copy_file(self, src, dst):
        dst = Path(dst)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)

    def rename(self, src, dst):
        dst = Path(dst)
        dst.parent.mkdir(parents=True, exist_ok=True)
        os.rename(src, dst)


class DryRunFS(CorpusFS):
    """Real reads, simulated writes. `planned` lists every simulated mutation."""

    dry_run = True

    def __init__(self):
        # key -> ("text", content) | ("copy", disk_path)
        self._overlay = {}
        self._removed = set()
        self._dirs = set()
        self.planned = []

    @staticmethod
    def _key(path):
        return str(Path(path))

    def _add_parents(self, path):
        for parent in Path(path).parents:
            self._dirs.add(str(parent))

    def exists(self, path):
        return self.is_file(path) or self.is_dir(path)

    def is_file(self, path):
        key = self._key(path)
        if key in self._overlay:
            return True
        if key in self._removed:
            return False
        return Path(path).is_file()

    def is_dir(self, path):
        return self._key(path) in self._dirs or Path(path).is_dir()

    def list_dir(self, path):
        key = self._key(path)
        names = set()
        for name in super().list_dir(path):
            if str(Path(key) / name) not in self._removed:
                names.add(name)
        for other in list(self._overlay) + list(self._dirs):
            p = Path(other)
            if str(p.parent) == key:
                names.add(p.name)
        return sorted(names)

    def read_text(self, path, errors="strict"):
        key = self._key(path)
        entry = self._overlay.get(key)
        if entry is not None:
            kind, value = entry
            if kind == "text":
                return value
            with open(value, encoding="utf-8", errors=errors) as f:
                return f.read()
        if key in self._removed:
            raise FileNotFoundError(key)
        return super().read_text(path, errors=errors)

    def write_text(self, path, text):
        key = self._key(path)
        self._overlay[key] = ("text", text)
        self._removed.discard(key)
        self._add_parents(path)
        self.planned.append(("write", None, key))

    def copy_file(self, src, dst):
        src_key, dst_key = self._key(src), self._key(dst)
        if not self.is_file(src):
            raise FileNotFoundError(src_key)
        self._overlay[dst_key] = self._overlay.get(src_key, ("copy", src_key))
        self._removed.discard(dst_key)
        self._add_parents(dst)
        self.planned.append(("copy", src_key, dst_key))

    def rename(self, src, dst):
        src_key, dst_key = self._key(src), self._key(dst)
        if not self.is_file(src):
            raise FileNotFoundError(src_key)
        entry = self._overlay.pop(src_key, ("copy", src_key))
        self._overlay[dst_key] = entry
        self._removed.add(src_key)
        self._removed.discard(dst_key)
        self._add_parents(dst)
        self.planned.append(("rename", src_key, dst_key))


class BackupWriter:
    """Write-once-per-run snapshots of files about to be overwritten."""

    def __init__(self, fs, backup_root, run_ms=None):
        self.fs = fs
        run_ms = run_ms if run_ms is not None else int(time.time() * 1000)
        self.run_dir = Path(backup_root) / f"migration-{run_ms}"
        self._done = set()

    def backup(self, path, relative):
        """Copy `path` to <run_dir>/<relative> unless already done this run."""
        key = str(path)
        if key in self._done or not self.fs.is_file(path):
            return None
        dest = self.run_dir / relative
        self.fs.copy_file(path, dest)
        self._done.add(key)
        return dest

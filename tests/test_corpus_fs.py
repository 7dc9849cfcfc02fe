"""Tests for the filesystem seam: atomic writes, dry-run overlay, backups."""
import pytest

from corpus_errors import ParseError
from corpus_fs import BackupWriter, CorpusFS, DryRunFS, dump_record


class TestDumpRecord:

    def test_format(self):
        assert dump_record({"a": "é", "b": [1]}) == '{\n  "a": "é",\n  "b": [\n    1\n  ]\n}\n'


class TestCorpusFS:

    def test_write_is_atomic_and_leaves_no_temp(self, tmp_path):
        fs = CorpusFS()
        target = tmp_path / "cat" / "a.json"
        fs.write_json(target, {"version": 2})
        assert target.read_text(encoding="utf-8") == '{\n  "version": 2\n}\n'
        assert [p.name for p in target.parent.iterdir()] == ["a.json"]

    def test_read_json_returns_raw_text(self, tmp_path):
        path = tmp_path / "a.json"
        path.write_text('{"x": 1}')
        data, raw = CorpusFS().read_json(path)
        assert data == {"x": 1}
        assert raw == '{"x": 1}'

    def test_parse_error_carries_path(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{nope")
        with pytest.raises(ParseError) as exc:
            CorpusFS().read_json(path)
        assert exc.value.path == str(path)
        assert exc.value.to_dict()["kind"] == "ParseError"

    def test_list_dir_sorted_and_missing_is_empty(self, tmp_path):
        for name in ("b", "a", "c"):
            (tmp_path / name).write_text("")
        fs = CorpusFS()
        assert fs.list_dir(tmp_path) == ["a", "b", "c"]
        assert fs.list_dir(tmp_path / "missing") == []


class TestDryRunFS:
    """Reads see simulated writes; the disk never changes."""

    def test_write_then_read(self, tmp_path):
        fs = DryRunFS()
        target = tmp_path / "new" / "a.json"
        fs.write_json(target, {"x": 1})
        assert not target.exists()
        assert fs.is_file(target)
        assert fs.read_json(target)[0] == {"x": 1}
        assert fs.list_dir(tmp_path) == ["new"]
        assert fs.planned == [("write", None, str(target))]

    def test_copy_and_rename(self, tmp_path):
        src = tmp_path / "a.png"
        src.write_bytes(b"img")
        fs = DryRunFS()
        fs.copy_file(src, tmp_path / "store" / "b.png")
        fs.rename(tmp_path / "store" / "b.png", tmp_path / "store" / "c.png")
        assert fs.list_dir(tmp_path / "store") == ["c.png"]
        assert not fs.is_file(tmp_path / "store" / "b.png")
        assert not (tmp_path / "store").exists()

    def test_rename_hides_real_source(self, tmp_path):
        src = tmp_path / "a.json"
        src.write_text("{}")
        fs = DryRunFS()
        fs.rename(src, tmp_path / "b.json")
        assert fs.list_dir(tmp_path) == ["b.json"]
        assert fs.read_text(tmp_path / "b.json") == "{}"
        assert src.exists()

    def test_missing_source_raises(self, tmp_path):
        fs = DryRunFS()
        with pytest.raises(FileNotFoundError):
            fs.copy_file(tmp_path / "nope.png", tmp_path / "x.png")


class TestBackupWriter:

    def test_once_per_run(self, tmp_path):
        original = tmp_path / "Empires" / "rome.json"
        original.parent.mkdir()
        original.write_text("v1")
        backup = BackupWriter(CorpusFS(), tmp_path / "backups", run_ms=1234)

        dest = backup.backup(original, "Empires/rome.json")
        original.write_text("v2")
        again = backup.backup(original, "Empires/rome.json")

        assert dest == tmp_path / "backups" / "migration-1234" / "Empires" / "rome.json"
        assert dest.read_text() == "v1"
        assert again is None

    def test_missing_file_not_backed_up(self, tmp_path):
        backup = BackupWriter(CorpusFS(), tmp_path / "backups", run_ms=1)
        assert backup.backup(tmp_path / "nope.json", "nope.json") is None

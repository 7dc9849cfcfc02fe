"""Tests for the idempotent v2 normalizer: fill order, images, links, stamps."""
import copy
import re

from migration.field_normalizer import (
    NormalizeContext,
    NormalizeOptions,
    dummy_back_text,
    improve_record_title,
    improve_title,
    normalize_link,
    normalize_record,
)
from conftest import LATER, NOW, V2_POSTER


def ctx(filename="rome.json", category="Empires", now=LATER, **options):
    return NormalizeContext(filename, category, now, NormalizeOptions(**options))


def normalize(record, **kwargs):
    return normalize_record(record, ctx(**kwargs))


class TestIdempotence:
    """normalize(normalize(x)) == normalize(x)."""

    def test_complete_record_is_untouched(self):
        record, changes, conflict = normalize(V2_POSTER)
        assert changes == []
        assert conflict is None
        assert record == V2_POSTER
        assert record["meta"]["modified"] == NOW

    def test_second_pass_changes_nothing(self):
        messy = {
            "version": 2,
            "front": {},
            "back": {
                "images": [{"src": "b.png"}, "a.png", {"src": "b.png"}, {"alt": "no src"}],
                "links": [{"url": "https://example.com/x"}, {"label": "dead"}],
            },
            "meta": {"categories": ["Rome", "rome"], "migratedFrom": "legacy-text"},
            "categories": ["Rome"],
        }
        once, changes, _ = normalize(messy)
        assert changes
        twice, changes2, _ = normalize(once)
        assert changes2 == []
        assert twice == once

    def test_input_not_mutated(self):
        record = {"version": 2, "front": {}}
        before = copy.deepcopy(record)
        normalize(record)
        assert record == before


class TestFillOrder:

    def test_uid_generated_after_version(self):
        record, changes, _ = normalize({"version": 2, "front": {"title": "T"}})
        assert re.fullmatch(r"poster-[0-9a-f]{12}", record["uid"])
        assert list(record)[:2] == ["version", "uid"]
        assert "uid" in changes

    def test_existing_uid_never_regenerated(self):
        record, _, _ = normalize(dict(V2_POSTER, back={}))
        assert record["uid"] == V2_POSTER["uid"]

    def test_title_from_filename(self):
        record, _, _ = normalize({"version": 2}, filename="roman_forum.json")
        assert record["front"]["title"] == "Roman Forum"

    def test_layout_defaults_to_auto(self):
        record, _, _ = normalize({"version": 2, "front": {"title": "T"}})
        assert record["back"]["layout"] == "auto"

    def test_text_from_legacy_fields(self):
        record, _, _ = normalize({"version": 2, "front": {"title": "T"}, "description": "Old text"})
        assert record["back"]["text"] == "Old text"

    def test_placeholder_text(self):
        record, _, _ = normalize({"version": 2, "front": {"title": "Rome"}}, category="Ancient_History")
        assert record["back"]["text"] == "Overview for Rome in Ancient History. Details coming soon."

    def test_placeholder_uses_record_category_in_posters_folder(self):
        poster = {"version": 2, "front": {"title": "Rome"}, "meta": {"categories": [" Ancient_History ", "Empires"]}}
        record, _, _ = normalize(poster, category=None)
        assert record["back"]["text"] == "Overview for Rome in Ancient History. Details coming soon."

    def test_placeholder_without_category(self):
        assert dummy_back_text("Rome") == "Overview for Rome. Details coming soon."

    def test_migrated_from_stripped(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["meta"]["migratedFrom"] = "legacy-text"
        record, changes, _ = normalize(poster)
        assert "migratedFrom" not in record["meta"]
        assert "migratedFrom" in changes

    def test_created_only_if_absent_and_modified_on_change(self):
        poster = copy.deepcopy(V2_POSTER)
        del poster["back"]["layout"]
        record, _, _ = normalize(poster)
        assert record["meta"]["created"] == NOW
        assert record["meta"]["modified"] == LATER

        fresh, _, _ = normalize({"version": 2, "front": {"title": "T"}})
        assert fresh["meta"]["created"] == LATER


class TestImages:
    """back.image / back.images consistency."""

    def test_alt_and_position_filled(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["back"]["image"] = {"src": "images/originals/roman_forum.png"}
        record, _, _ = normalize(poster)
        assert record["back"]["image"] == {
            "src": "images/originals/roman_forum.png",
            "alt": "Roman Forum",
            "position": "top",
        }

    def test_image_without_src_dropped(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["back"]["image"] = {"alt": "nothing"}
        record, _, _ = normalize(poster)
        assert "image" not in record["back"]

    def test_primary_first_deduped_and_capped(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["back"]["image"] = {"src": "a.png", "alt": "A", "position": "top"}
        poster["back"]["images"] = [{"src": s} for s in ("b.png", "a.png", "b.png", "c.png", "d.png", "e.png", "f.png")]
        record, _, _ = normalize(poster)
        srcs = [img["src"] for img in record["back"]["images"]]
        assert srcs == ["a.png", "b.png", "c.png", "d.png", "e.png"]
        assert record["back"]["image"]["src"] == "a.png"

    def test_image_derived_from_first_element(self):
        poster = copy.deepcopy(V2_POSTER)
        del poster["back"]["image"]
        poster["back"]["images"] = [{"src": "x.png"}, {"src": "y.png", "alt": "Y"}]
        record, changes, _ = normalize(poster)
        assert record["back"]["image"] == {"src": "x.png", "alt": "X", "position": "top"}
        assert "image" in changes

    def test_empty_image_list_removed(self):
        poster = copy.deepcopy(V2_POSTER)
        del poster["back"]["image"]
        poster["back"]["images"] = [{"alt": "no src"}]
        record, _, _ = normalize(poster)
        assert "images" not in record["back"]
        assert "image" not in record["back"]

    def test_extra_image_keys_preserved(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["back"]["image"]["maxWidth"] = 400
        record, _, _ = normalize(poster)
        assert record["back"]["image"]["maxWidth"] == 400


class TestLinks:

    def test_type_inferred_and_label_from_host(self):
        assert normalize_link({"url": "https://example.com/page"}) == {
            "type": "external", "label": "example.com", "url": "https://example.com/page",
        }

    def test_internal_and_file(self):
        assert normalize_link({"target": "poster-2"}) == {
            "type": "internal", "label": "Learn more", "target": "poster-2",
        }
        assert normalize_link({"type": "file", "path": "docs/a.pdf", "label": "PDF"}) == {
            "type": "file", "label": "PDF", "path": "docs/a.pdf",
        }

    def test_address_less_link_dropped(self):
        assert normalize_link({"label": "nowhere"}) is None
        assert normalize_link("https://example.com") is None

    def test_primary_kept(self):
        link = normalize_link({"type": "external", "url": "https://x.org", "label": "X", "primary": True})
        assert link["primary"] is True

    def test_all_links_dropped_removes_field(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["back"]["links"] = [{"label": "dead"}]
        record, changes, _ = normalize(poster)
        assert "links" not in record["back"]
        assert "links" in changes


class TestCategories:
    """Category step inside the normalizer."""

    def test_dedupe(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["meta"]["categories"] = ["Rome", "rome", " Rome "]
        record, _, _ = normalize(poster)
        assert record["meta"]["categories"] == ["Rome"]

    def test_empty_falls_back_to_folder(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["meta"]["categories"] = []
        record, _, _ = normalize(poster, category="Wars")
        assert record["meta"]["categories"] == ["Wars"]

    def test_default_category_without_folder(self):
        poster = copy.deepcopy(V2_POSTER)
        del poster["meta"]["categories"]
        record, _, _ = normalize(poster, category=None, default_category="Misc")
        assert record["meta"]["categories"] == ["Misc"]

    def test_conflict_reported_and_root_kept(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["categories"] = ["Wars"]
        record, _, conflict = normalize(poster)
        assert conflict == {"meta": ["Empires"], "root": ["Wars"]}
        assert record["categories"] == ["Wars"]

    def test_prefer_root(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["categories"] = ["Wars"]
        record, _, conflict = normalize(poster, prefer_root_categories=True)
        assert conflict is None
        assert record["meta"]["categories"] == ["Wars"]
        assert "categories" not in record


class TestTitles:
    """Opt-in title prettifying."""

    def test_improve_title(self):
        assert improve_title("RealGDP_Top50") == "Real GDP Top 50"
        assert improve_title("gdpGrowth") == "GDP Growth"
        assert improve_title("open-Api_docs") == "open API docs"
        assert improve_title("") == "Untitled"

    def test_alt_follows_title(self):
        poster = copy.deepcopy(V2_POSTER)
        poster["front"]["title"] = "romeMap"
        poster["back"]["image"]["alt"] = "romeMap"
        record, changes = improve_record_title(poster, LATER)
        assert record["front"]["title"] == "rome Map"
        assert record["back"]["image"]["alt"] == "rome Map"
        assert record["meta"]["modified"] == LATER
        assert changes == ["title"]

    def test_clean_title_unchanged(self):
        record, changes = improve_record_title(V2_POSTER, LATER)
        assert changes == []
        assert record == V2_POSTER

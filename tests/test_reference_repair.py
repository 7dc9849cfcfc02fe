"""Tests for stale reference repair in posters and journeys."""
import copy

from repair.image_linker import link_matching_image
from repair.reference_repair import (
    needs_repair,
    repair_journey_refs,
    repair_poster_refs,
    rewrite_references,
)
from conftest import LATER, NOW, V2_POSTER


def poster_with(**back):
    poster = copy.deepcopy(V2_POSTER)
    poster["back"].update(back)
    return poster


class TestNeedsRepair:

    def test_rules(self, corpus):
        corpus.store_image("a.png")
        store = corpus.store()
        assert not needs_repair("images/originals/a.png", store)
        assert not needs_repair("https://x.org/a.png", store)
        assert not needs_repair("", store)
        assert needs_repair("images/originals/b.png", store)
        assert needs_repair("a.png", store)


class TestPosterRefs:
    """front.thumbnail, back.image.src, back.images[].src, legacy fields."""

    def test_stale_image_rewritten(self, corpus):
        corpus.store_image("Chatbots.webp")
        poster = poster_with(image={"src": "images/originals/competitors_Chatbots.png", "alt": "C"})
        result = repair_poster_refs(poster, corpus.store(), now=LATER)
        assert result.record["back"]["image"]["src"] == "images/originals/Chatbots.webp"
        assert result.changes == ["back.image.src"]
        assert result.record["meta"]["modified"] == LATER
        assert result.orphans == []

    def test_valid_references_untouched(self, corpus):
        corpus.store_image("rome.png")
        result = repair_poster_refs(V2_POSTER, corpus.store(), now=LATER)
        assert result.changes == []
        assert result.record == V2_POSTER

    def test_unresolvable_is_orphan_and_unchanged(self, corpus):
        result = repair_poster_refs(V2_POSTER, corpus.store(), now=LATER)
        assert result.orphans == [("back.image.src", "images/originals/rome.png")]
        assert result.record["back"]["image"]["src"] == "images/originals/rome.png"
        assert result.record["meta"]["modified"] == NOW

    def test_all_fields(self, corpus):
        corpus.store_image("rome.png")
        corpus.store_image("map.webp")
        poster = poster_with(images=[{"src": "old/map.png"}, {"src": "https://x.org/y.png"}])
        poster["front"]["thumbnail"] = "images/rome.png"
        poster["imagePath"] = "history_map.jpg"
        result = repair_poster_refs(poster, corpus.store())
        assert result.record["front"]["thumbnail"] == "images/originals/rome.png"
        assert result.record["back"]["images"][0]["src"] == "images/originals/map.webp"
        assert result.record["back"]["images"][1]["src"] == "https://x.org/y.png"
        assert result.record["imagePath"] == "images/originals/map.webp"
        assert sorted(result.changes) == ["back.images[0].src", "front.thumbnail", "imagePath"]


class TestJourneyRefs:
    """Only posters[].thumbnail is ever rewritten."""

    def test_thumbnail_repaired_filename_untouched(self, corpus):
        corpus.store_image("rome.webp")
        journey = {
            "name": "Rome",
            "posters": [{"filename": "Empires/rome.png", "type": "json", "title": "Rome",
                         "thumbnail": "images/empires_rome.png"}],
        }
        result = repair_journey_refs(journey, corpus.store(), now=LATER)
        entry = result.record["posters"][0]
        assert entry["thumbnail"] == "images/originals/rome.webp"
        assert entry["filename"] == "Empires/rome.png"
        assert result.record["dateModified"] == LATER

    def test_placeholder_ignored(self, corpus):
        journey = {"posters": [{"filename": "a.json", "thumbnail": "path/to/optional/thumb.png"}]}
        result = repair_journey_refs(journey, corpus.store(), now=LATER)
        assert result.changes == []
        assert result.orphans == []
        assert "dateModified" not in result.record

    def test_missing_posters_list(self, corpus):
        assert repair_journey_refs({"name": "Empty"}, corpus.store()).changes == []


class TestRewriteReferences:

    def test_counts_hits(self):
        poster = poster_with(images=[{"src": "images/originals/rome.png"}])
        out, hits = rewrite_references(poster, "images/originals/rome.png", "images/originals/r.png")
        assert hits == 2
        assert out["back"]["image"]["src"] == "images/originals/r.png"
        assert poster["back"]["image"]["src"] == "images/originals/rome.png"


class TestLinkImages:
    """Imageless posters pick up a store image with the same stem."""

    def test_links_by_stem(self, corpus):
        corpus.store_image("Roman_Forum.webp")
        poster = copy.deepcopy(V2_POSTER)
        del poster["back"]["image"]
        record, changes = link_matching_image(poster, "roman_forum.json", corpus.store(), now=LATER)
        assert record["back"]["image"] == {
            "src": "images/originals/Roman_Forum.webp", "alt": "Rome", "position": "top",
        }
        assert changes == ["back.image"]
        assert record["meta"]["modified"] == LATER

    def test_existing_image_kept(self, corpus):
        corpus.store_image("rome.webp")
        record, changes = link_matching_image(V2_POSTER, "rome.json", corpus.store())
        assert changes == []
        assert record == V2_POSTER

"""
Unit tests for HTML extraction helpers and the formation parser
"""

import json
import re
import pytest
from scraper.extractors.html import (
    parse_html,
    extract_text,
    extract_attr,
    extract_int,
    extract_float,
    extract_price,
    extract_tags,
    extract_image_url,
    find_json_blob,
)
from scraper.extractors.formation_parser import FormationParser
from schemas.formation import UNCATEGORIZED, UNKNOWN_CREATOR


class TestHtmlHelpers:
    """Test tolerant field extraction"""

    def test_extract_text_first_non_empty_selector_wins(self):
        node = parse_html('<div><span class="a"></span><span class="b">Second</span><span class="c">Third</span></div>')

        assert extract_text(node, (".a", ".b", ".c")) == "Second"

    def test_extract_text_returns_default_when_nothing_matches(self):
        node = parse_html("<div></div>")

        assert extract_text(node, (".missing",), default="fallback") == "fallback"
        assert extract_text(node, (".missing",), default=None) is None

    def test_attribute_selector_reads_attribute_value(self):
        """[data-duration] with no text falls back to the attribute itself"""
        node = parse_html('<div><span data-duration="12.5"></span></div>')

        assert extract_float(node, ("[data-duration]",)) == 12.5

    def test_extract_int_takes_first_digit_run(self):
        node = parse_html('<div><span class="drones">Uses 250 drones</span></div>')

        assert extract_int(node, (".drones",)) == 250

    def test_extract_int_without_digits_returns_default(self):
        node = parse_html('<div><span class="drones">many</span></div>')

        assert extract_int(node, (".drones",), default=7) == 7

    def test_extract_price_strips_currency(self):
        node = parse_html('<div><span class="price">$1,299.50</span></div>')

        assert extract_price(node, (".price",)) == 1299.50

    def test_extract_price_non_numeric_is_default(self):
        node = parse_html('<div><span class="price">Free</span></div>')

        assert extract_price(node, (".price",)) is None

    def test_extract_attr_reads_node_itself(self):
        node = parse_html('<div data-id="abc"></div>').div

        assert extract_attr(node, ("data-formation-id", "data-id")) == "abc"
        assert extract_attr(node, ("data-missing",), default="x") == "x"

    def test_extract_tags_unique_in_order(self):
        node = parse_html(
            '<div class="tags"><span class="tag">night</span><span class="tag">city</span></div>'
            '<span class="badge">night</span><span class="badge">new</span>'
        )

        assert extract_tags(node) == ["night", "city", "new"]

    def test_extract_image_url_prefers_src_and_resolves_base(self):
        node = parse_html('<div><img src="/a.png" data-src="/b.png"></div>')

        assert extract_image_url(node) == "/a.png"
        assert extract_image_url(node, "https://example.com") == "https://example.com/a.png"

    def test_extract_image_url_lazy_loaded(self):
        node = parse_html('<div><img data-src="/lazy.png"></div>')

        assert extract_image_url(node) == "/lazy.png"

    def test_extract_image_url_without_image(self):
        assert extract_image_url(parse_html("<p>no image</p>")) is None

    def test_find_json_blob_reads_nested_object(self):
        """Decoding continues past the pattern so nested braces are kept"""
        content = 'var x = 1; window.formationData = {"id": "f1", "data": {"frames": [{"t": 0}]}}; more();'
        pattern = re.compile(r"window\.formationData\s*=\s*(?=\{)")

        blob = find_json_blob(content, (pattern,))

        assert blob == {"id": "f1", "data": {"frames": [{"t": 0}]}}

    def test_find_json_blob_skips_invalid_json(self):
        content = "formationData = {not json}"
        pattern = re.compile(r"formationData\s*=\s*(?=\{)")

        assert find_json_blob(content, (pattern,)) is None


class TestListingParser:
    """Test listing page card extraction"""

    def test_parses_cards_and_drops_nameless(self, listing_page_html):
        """Cards without a name are dropped, not emitted as placeholders"""
        parser = FormationParser()

        records = parser.parse_listing_page(listing_page_html, endpoint="/new-browse-formations")

        assert [r.id for r in records] == ["heart-01", "spiral-7"]

    def test_card_fields(self, listing_page_html):
        parser = FormationParser(base_url="https://skystage.test")

        heart = parser.parse_listing_page(listing_page_html, endpoint="/new-browse-formations")[0]

        assert heart.name == "Beating Heart"
        assert heart.description == "A pulsating heart"
        assert heart.category == "Love"
        assert heart.drone_count == 100
        assert heart.duration == pytest.approx(47.92)
        assert heart.price == pytest.approx(1299.50)
        assert heart.rating == pytest.approx(4.8)
        assert heart.tags == ["heart", "romantic"]
        assert heart.creator == "Sky Studio"
        assert heart.download_count == 1024
        assert heart.thumbnail_url == "https://skystage.test/thumbs/heart.jpg"
        assert heart.listing_endpoint == "/new-browse-formations"

    def test_card_defaults(self, listing_page_html):
        """Missing fields fall back to neutral defaults"""
        spiral = FormationParser().parse_listing_page(listing_page_html)[1]

        assert spiral.id == "spiral-7"
        assert spiral.name == "Spiral"
        assert spiral.drone_count == 200
        assert spiral.duration == 0.0
        assert spiral.category == UNCATEGORIZED
        assert spiral.creator == UNKNOWN_CREATOR
        assert spiral.price is None
        assert spiral.thumbnail_url == "https://cdn.example.com/spiral.png"

    def test_card_id_from_descendant_data_id(self):
        html = '<div class="formation-item"><h3>Star</h3><button data-id="star-9">Buy</button></div>'

        records = FormationParser().parse_listing_page(html)

        assert records[0].id == "star-9"

    def test_card_without_any_id_gets_stable_hash(self):
        html = '<div class="show-card"><span class="title">Comet</span></div>'
        parser = FormationParser()

        first = parser.parse_listing_page(html)[0]
        second = parser.parse_listing_page(html)[0]

        assert first.id.startswith("formation-")
        assert len(first.id) == len("formation-") + 12
        assert first.id == second.id

    def test_card_matched_by_several_selectors_parsed_once(self):
        html = '<div class="formation-card" data-formation-id="x1"><h3>Only Once</h3></div>'

        records = FormationParser().parse_listing_page(html)

        assert len(records) == 1

    def test_placeholder_name_is_dropped(self):
        html = '<div class="formation-card" data-formation-id="p1"><h3>Untitled Formation</h3></div>'

        assert FormationParser().parse_listing_page(html) == []

    def test_empty_page(self):
        assert FormationParser().parse_listing_page("") == []


class TestDetailParser:
    """Test detail page extraction"""

    def test_next_data_blob(self, make_detail_html):
        record = FormationParser().parse_detail_page(make_detail_html("abc", "Aurora", drone_count=64))

        assert record.id == "abc"
        assert record.name == "Aurora"
        assert record.description == "Aurora in detail"
        assert record.drone_count == 64
        assert record.duration == 45.5
        assert record.creator == "Sky Studio"
        assert record.tags == ["show", "night"]
        assert len(record.formation_data["frames"]) == 2

    def test_inline_script_blob(self):
        payload = {"_id": "f-22", "displayName": "Galaxy", "droneCount": "300", "coordinates": [[0, 0, 1]]}
        html = f"<html><script>window.formationData = {json.dumps(payload)};</script><h1>Ignored</h1></html>"

        record = FormationParser().parse_detail_page(html)

        assert record.id == "f-22"
        assert record.name == "Galaxy"
        assert record.drone_count == 300
        assert record.formation_data == [[0, 0, 1]]

    def test_blob_without_id_uses_fallback(self):
        html = '<script>var formationData = {"title": "No Id"};</script>'

        record = FormationParser().parse_detail_page(html, fallback_id="from-url")

        assert record.id == "from-url"

    def test_dom_fallback(self, detail_page_dom_html):
        record = FormationParser(base_url="https://skystage.test").parse_detail_page(detail_page_dom_html)

        assert record.id == "wave-3"
        assert record.name == "Ocean Wave"
        assert record.description == "Rolling waves of light"
        assert record.category == "Nature"
        assert record.drone_count == 150
        assert record.duration == 30.0
        assert record.price is None
        assert record.thumbnail_url == "https://skystage.test/media/wave.jpg"

    def test_unusable_blob_falls_back_to_dom(self):
        """A blob with no name does not stop DOM parsing"""
        html = '<script>formationData = {"id": "z"};</script><div data-id="z"><h1>From Dom</h1></div>'

        record = FormationParser().parse_detail_page(html)

        assert record.id == "z"
        assert record.name == "From Dom"

    def test_page_without_formation(self):
        assert FormationParser().parse_detail_page("<html><body><p>Not found</p></body></html>") is None

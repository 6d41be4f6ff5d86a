"""
Formation parser for listing and detail pages.

Listing pages are parsed card by card with the extraction helpers. Detail
pages are parsed from an embedded JSON blob when one is present, and from
the DOM structure otherwise.

Selector chains are ordered from most specific to most generic; the first
non-empty match wins.
"""

import hashlib
import re
from typing import List, Optional
from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError
from schemas.formation import FormationRecord, UNTITLED_FORMATION, UNCATEGORIZED, UNKNOWN_CREATOR
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
from scraper.transformers.normalizer import FormationNormalizer
import logging

logger = logging.getLogger(__name__)

# --------------------------------------------------
# Listing cards
# --------------------------------------------------
CARD_SELECTORS = (
    ".formation-card",
    ".formation-item",
    "[data-formation-id]",
    ".card[data-id]",
    ".formation",
    ".show-card",
)

NAME_SELECTORS = (".formation-name", ".title", "h3", "h4", ".name", ".card-title")
DESCRIPTION_SELECTORS = (".formation-description", ".description", ".card-text", ".summary")
CATEGORY_SELECTORS = (".category", "[data-category]", ".tag", ".type")
DRONE_COUNT_SELECTORS = ("[data-drone-count]", ".drone-count", ".drones")
DURATION_SELECTORS = ("[data-duration]", ".duration", ".time", ".length")
PRICE_SELECTORS = ("[data-price]", ".price", ".cost")
RATING_SELECTORS = ("[data-rating]", ".rating", ".stars")
CREATOR_SELECTORS = (".creator", ".author", ".by")
DOWNLOAD_SELECTORS = ("[data-downloads]", ".downloads", ".download-count")
LINK_SELECTORS = ("a[href*='/formation']", "a[href*='/shows/']")

# --------------------------------------------------
# Detail pages
# --------------------------------------------------
DETAIL_NAME_SELECTORS = ("h1", ".formation-title", ".title")
DETAIL_DESCRIPTION_SELECTORS = (".description", ".formation-description", ".summary")
DETAIL_CATEGORY_SELECTORS = (".category", ".type")

# Each pattern stops right before the opening brace of the blob
EMBEDDED_JSON_PATTERNS = (
    re.compile(r"formation[Dd]ata\s*[=:]\s*(?=\{)"),
    re.compile(r"\"formation\"\s*:\s*(?=\{)"),
    re.compile(r"window\.__INITIAL_STATE__\s*=\s*(?=\{)"),
    re.compile(r"window\.formationData\s*=\s*(?=\{)"),
    re.compile(r"__NEXT_DATA__\s*=\s*(?=\{)"),
)


class FormationParser:
    """
    Convert fetched pages into FormationRecord instances.

    Cards or pages without a usable name are dropped rather than emitted
    with placeholder values.
    """

    def __init__(self, base_url: Optional[str] = None, normalizer: Optional[FormationNormalizer] = None):
        self.base_url = base_url
        self.normalizer = normalizer or FormationNormalizer()

    # --------------------------------------------------
    # Listing pages
    # --------------------------------------------------
    def parse_listing_page(self, html: str, endpoint: Optional[str] = None) -> List[FormationRecord]:
        """
        Extract every formation card on a listing page.

        Args:
            html: Page markup
            endpoint: Listing endpoint the page came from (kept for provenance)

        Returns:
            Records grouped by matching selector, in document order within
            each group; a card matched by several selectors is parsed once
        """
        soup = parse_html(html)
        records: List[FormationRecord] = []
        taken = set()

        for selector in CARD_SELECTORS:
            for card in soup.select(selector):
                if id(card) in taken:
                    continue
                # Nested matches belong to a card that was already taken
                if any(id(parent) in taken for parent in card.parents):
                    continue
                if any(id(child) in taken for child in card.find_all(True)):
                    continue
                taken.add(id(card))

                record = self._parse_card(card, len(records), endpoint)
                if record is not None:
                    records.append(record)

        logger.debug(f"Parsed {len(records)} formation cards from {endpoint or 'listing page'}")
        return records

    def _parse_card(self, card: Tag, index: int, endpoint: Optional[str]) -> Optional[FormationRecord]:
        name = extract_text(card, NAME_SELECTORS, default=UNTITLED_FORMATION)
        if not name or name == UNTITLED_FORMATION:
            logger.debug(f"Dropping card #{index}: no name")
            return None

        try:
            return FormationRecord(
                id=self._card_id(card, name),
                name=name,
                description=extract_text(card, DESCRIPTION_SELECTORS, default=""),
                category=extract_text(card, CATEGORY_SELECTORS, default=UNCATEGORIZED),
                thumbnail_url=extract_image_url(card, self.base_url),
                drone_count=extract_int(card, DRONE_COUNT_SELECTORS, default=0),
                duration=extract_float(card, DURATION_SELECTORS, default=0.0),
                price=extract_price(card, PRICE_SELECTORS),
                rating=extract_float(card, RATING_SELECTORS, default=None),
                tags=extract_tags(card),
                creator=extract_text(card, CREATOR_SELECTORS, default=UNKNOWN_CREATOR),
                download_count=extract_int(card, DOWNLOAD_SELECTORS, default=0),
                listing_endpoint=endpoint,
            )
        except ValidationError as e:
            logger.debug(f"Dropping card #{index} ({name!r}): {e}")
            return None

    def _card_id(self, card: Tag, name: str) -> str:
        """
        Card identifier, in order: card attributes, a descendant carrying
        ``data-id``, the last path segment of the card link, then a stable
        hash of the name.
        """
        card_id = extract_attr(card, ("data-formation-id", "data-id"))
        if card_id:
            return card_id

        child = card.select_one("[data-id]")
        if child is not None and child.get("data-id"):
            return str(child["data-id"]).strip()

        for selector in LINK_SELECTORS:
            link = card.select_one(selector)
            if link is not None:
                segment = link["href"].rstrip("/").rsplit("/", 1)[-1]
                if segment:
                    return segment

        digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:12]
        return f"formation-{digest}"

    # --------------------------------------------------
    # Detail pages
    # --------------------------------------------------
    def parse_detail_page(self, html: str, fallback_id: Optional[str] = None) -> Optional[FormationRecord]:
        """
        Parse a single formation page.

        Tries the embedded JSON conventions first, then the DOM structure.

        Returns:
            FormationRecord, or None when neither strategy yields a usable
            id and name
        """
        soup = parse_html(html)

        blob = self._embedded_blob(soup)
        if blob is not None:
            record = self.normalizer.normalize(blob, fallback_id=fallback_id)
            if record is not None:
                return record
            logger.debug("Embedded data found but not usable, falling back to DOM")

        return self._parse_detail_dom(soup, fallback_id)

    def _embedded_blob(self, soup: BeautifulSoup) -> Optional[dict]:
        # Next.js ships its state as a JSON script element
        next_data = soup.find("script", id="__NEXT_DATA__")
        if next_data is not None and next_data.string:
            blob = find_json_blob(next_data.string, (re.compile(r"^\s*(?=\{)"),))
            if blob is not None:
                return blob

        for script in soup.find_all("script"):
            content = script.string or ""
            if not content:
                continue
            blob = find_json_blob(content, EMBEDDED_JSON_PATTERNS)
            if blob is not None:
                return blob

        return None

    def _parse_detail_dom(self, soup: BeautifulSoup, fallback_id: Optional[str]) -> Optional[FormationRecord]:
        id_holder = soup.select_one("[data-formation-id]") or soup.select_one("[data-id]")
        formation_id = None
        if id_holder is not None:
            formation_id = extract_attr(id_holder, ("data-formation-id", "data-id"))
        formation_id = formation_id or fallback_id

        name = extract_text(soup, DETAIL_NAME_SELECTORS, default=None)
        if not formation_id or not name:
            return None

        try:
            return FormationRecord(
                id=formation_id,
                name=name,
                description=extract_text(soup, DETAIL_DESCRIPTION_SELECTORS, default=""),
                category=extract_text(soup, DETAIL_CATEGORY_SELECTORS, default=UNCATEGORIZED),
                thumbnail_url=extract_image_url(soup, self.base_url),
                drone_count=extract_int(soup, DRONE_COUNT_SELECTORS, default=0),
                duration=extract_float(soup, DURATION_SELECTORS, default=0.0),
                price=extract_price(soup, PRICE_SELECTORS),
                rating=extract_float(soup, RATING_SELECTORS, default=None),
                tags=extract_tags(soup),
                creator=extract_text(soup, CREATOR_SELECTORS, default=UNKNOWN_CREATOR),
                download_count=extract_int(soup, DOWNLOAD_SELECTORS, default=0),
            )
        except ValidationError as e:
            logger.debug(f"Discarding detail page for id={formation_id}: {e}")
            return None

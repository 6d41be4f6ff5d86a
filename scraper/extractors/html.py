"""
Tolerant field extractors for scraped HTML.

Every helper walks an ordered list of CSS selectors (most specific first)
and returns the first non-empty match coerced to the target type, or the
caller's default. Missing data is expected on third-party pages, so none
of these helpers raise on absence.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence
from urllib.parse import urljoin
from bs4 import BeautifulSoup, Tag
import logging

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"\d+")
_FLOAT_RE = re.compile(r"\d+(?:\.\d+)?")
_NON_PRICE_RE = re.compile(r"[^\d.]")
_ATTR_SELECTOR_RE = re.compile(r"^\[([\w-]+)\]$")

_decoder = json.JSONDecoder()


def parse_html(html: str) -> BeautifulSoup:
    """Parse markup with the stdlib-backed parser"""
    return BeautifulSoup(html or "", "html.parser")


def _node_text(element: Tag, selector: str) -> str:
    text = element.get_text(" ", strip=True)
    if text:
        return text

    # Bare attribute selectors like [data-duration] usually carry the value
    # in the attribute itself
    match = _ATTR_SELECTOR_RE.match(selector)
    if match:
        value = element.get(match.group(1))
        if value is not None:
            return str(value).strip()
    return ""


def extract_text(node: Tag, selectors: Sequence[str], default: Optional[str] = "") -> Optional[str]:
    """First non-empty text among the candidate selectors"""
    for selector in selectors:
        element = node.select_one(selector)
        if element is None:
            continue
        text = _node_text(element, selector)
        if text:
            return text
    return default


def extract_attr(node: Tag, attributes: Sequence[str], default: Optional[str] = None) -> Optional[str]:
    """First non-empty attribute value on the node itself"""
    for attribute in attributes:
        value = node.get(attribute)
        if value:
            return str(value).strip()
    return default


def extract_int(node: Tag, selectors: Sequence[str], default: int = 0) -> int:
    """First run of digits in the matched text"""
    text = extract_text(node, selectors, default=None)
    if not text:
        return default
    match = _INT_RE.search(text)
    return int(match.group()) if match else default


def extract_float(node: Tag, selectors: Sequence[str], default: Optional[float] = 0.0) -> Optional[float]:
    """First decimal number in the matched text"""
    text = extract_text(node, selectors, default=None)
    if not text:
        return default
    match = _FLOAT_RE.search(text)
    return float(match.group()) if match else default


def extract_price(node: Tag, selectors: Sequence[str], default: Optional[float] = None) -> Optional[float]:
    """Currency amount with every non-numeric, non-dot character removed"""
    text = extract_text(node, selectors, default=None)
    if not text:
        return default
    cleaned = _NON_PRICE_RE.sub("", text)
    try:
        return float(cleaned)
    except ValueError:
        return default


def extract_tags(node: Tag, selector: str = ".tags .tag, .tag, .badge") -> List[str]:
    """Unique tag texts in document order"""
    tags: List[str] = []
    for element in node.select(selector):
        text = element.get_text(" ", strip=True)
        if text and text not in tags:
            tags.append(text)
    return tags


def extract_image_url(node: Tag, base_url: Optional[str] = None) -> Optional[str]:
    """``src`` or lazy-load ``data-src`` of the first image"""
    image = node.find("img")
    if image is None:
        return None
    src = image.get("src") or image.get("data-src")
    if not src:
        return None
    return urljoin(base_url, src) if base_url else src


def find_json_blob(content: str, patterns: Iterable[Pattern]) -> Optional[Dict[str, Any]]:
    """
    Locate and decode the first embedded JSON object.

    Each pattern must end right before the opening brace; decoding then
    continues from that offset so nested objects are read in full.
    """
    for pattern in patterns:
        for match in pattern.finditer(content):
            try:
                blob, _ = _decoder.raw_decode(content, match.end())
            except json.JSONDecodeError:
                logger.debug(f"Pattern {pattern.pattern!r} matched but JSON did not decode")
                continue
            if isinstance(blob, dict) and blob:
                return blob
    return None

"""
Normalize heterogeneous formation payloads into FormationRecord
"""

from typing import Dict, Any, Optional, Sequence
from pydantic import ValidationError
from schemas.formation import FormationRecord, UNCATEGORIZED, UNKNOWN_CREATOR
import logging

logger = logging.getLogger(__name__)

# Field aliases, most trusted first
ID_KEYS = ("id", "_id", "uuid")
NAME_KEYS = ("name", "title", "displayName")
DESCRIPTION_KEYS = ("description", "desc", "summary")
CATEGORY_KEYS = ("category", "type")
THUMBNAIL_KEYS = ("thumbnail", "image", "preview", "thumbnailUrl")
DRONE_COUNT_KEYS = ("droneCount", "drone_count", "drones")
DURATION_KEYS = ("duration", "length", "time")
PRICE_KEYS = ("price", "cost")
CREATOR_KEYS = ("creator", "author", "createdBy")
RATING_KEYS = ("rating", "score")
DOWNLOAD_KEYS = ("downloads", "downloadCount")
PAYLOAD_KEYS = ("formationData", "data", "coordinates")
FILE_URL_KEYS = ("fileUrl", "file_url", "downloadUrl")
CREATED_AT_KEYS = ("createdAt", "created_at")

# Fields a detail record may leave empty that the listing card already knew
MERGEABLE_FIELDS = (
    "description", "thumbnail_url", "file_url", "price", "rating",
    "formation_data", "source_created_at",
)


class FormationNormalizer:
    """
    Map embedded formation payloads onto the canonical record.

    Handles:
    - Nesting conventions (``formation``, ``props.formation``,
      ``props.pageProps.formation``, or the root object)
    - Field aliases between page generations
    - Loose numeric types ("120", 120.0, "3.5")
    """

    def unwrap(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Return the object that actually holds the formation fields"""
        if isinstance(data.get("formation"), dict):
            return data["formation"]

        props = data.get("props")
        if isinstance(props, dict):
            if isinstance(props.get("formation"), dict):
                return props["formation"]
            page_props = props.get("pageProps")
            if isinstance(page_props, dict) and isinstance(page_props.get("formation"), dict):
                return page_props["formation"]

        return data

    def normalize(
        self,
        data: Dict[str, Any],
        fallback_id: Optional[str] = None
    ) -> Optional[FormationRecord]:
        """
        Normalize a raw payload.

        Returns:
            FormationRecord, or None when no usable id or name is present
        """
        if not isinstance(data, dict):
            return None

        formation = self.unwrap(data)

        formation_id = self._first(formation, ID_KEYS) or fallback_id
        name = self._first(formation, NAME_KEYS)
        if formation_id is None or not name:
            return None

        try:
            return FormationRecord(
                id=str(formation_id),
                name=str(name),
                description=self._first(formation, DESCRIPTION_KEYS) or "",
                category=self._first(formation, CATEGORY_KEYS) or UNCATEGORIZED,
                thumbnail_url=self._first(formation, THUMBNAIL_KEYS),
                file_url=self._first(formation, FILE_URL_KEYS),
                drone_count=self._parse_int(self._first(formation, DRONE_COUNT_KEYS)) or 0,
                duration=self._parse_float(self._first(formation, DURATION_KEYS)) or 0.0,
                price=self._parse_float(self._first(formation, PRICE_KEYS)),
                rating=self._parse_float(self._first(formation, RATING_KEYS)),
                download_count=self._parse_int(self._first(formation, DOWNLOAD_KEYS)) or 0,
                tags=self._parse_tags(formation.get("tags")),
                creator=self._first(formation, CREATOR_KEYS) or UNKNOWN_CREATOR,
                is_public=formation.get("isPublic") is not False,
                formation_data=self._first(formation, PAYLOAD_KEYS),
                source_created_at=self._as_optional_str(self._first(formation, CREATED_AT_KEYS)),
            )
        except ValidationError as e:
            logger.debug(f"Discarding payload for id={formation_id}: {e}")
            return None

    @staticmethod
    def merge(listing: FormationRecord, detail: FormationRecord) -> FormationRecord:
        """
        Combine a listing card with its detail record.

        The listing id always wins, detail values win otherwise, and fields
        the detail page left empty fall back to what the card showed.
        """
        merged = detail.dict()
        merged["id"] = listing.id
        merged["listing_endpoint"] = listing.listing_endpoint

        for field in MERGEABLE_FIELDS:
            if merged.get(field) in (None, ""):
                merged[field] = getattr(listing, field)

        if not merged["drone_count"]:
            merged["drone_count"] = listing.drone_count
        if not merged["duration"]:
            merged["duration"] = listing.duration
        if not merged["download_count"]:
            merged["download_count"] = listing.download_count
        if not merged["tags"]:
            merged["tags"] = list(listing.tags)
        if merged["category"] == UNCATEGORIZED:
            merged["category"] = listing.category
        if merged["creator"] == UNKNOWN_CREATOR:
            merged["creator"] = listing.creator

        return FormationRecord(**merged)

    @staticmethod
    def _first(data: Dict[str, Any], keys: Sequence[str]) -> Any:
        for key in keys:
            value = data.get(key)
            if value not in (None, ""):
                return value
        return None

    @staticmethod
    def _parse_tags(value: Any):
        if isinstance(value, list):
            return [str(t) for t in value]
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return []

    @staticmethod
    def _as_optional_str(value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @staticmethod
    def _parse_float(value: Any) -> Optional[float]:
        """Safely parse float value"""
        if value is None or value == "":
            return None
        try:
            return float(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _parse_int(value: Any) -> Optional[int]:
        """Safely parse int value"""
        if value is None or value == "":
            return None
        try:
            return int(float(value))  # Handle "10.0" strings
        except (ValueError, TypeError):
            return None

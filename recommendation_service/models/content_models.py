"""
Content and consumer input models.

These are the records handed to the engine by the content-listing and
interaction-history providers. They are validated with Pydantic; the
``from_record`` constructors accept the loosely-typed rows those providers
actually return and fall back to empty values instead of raising.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_identifier(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        # Epoch milliseconds are what the portal front end stores.
        seconds = value / 1000.0 if value > 1e11 else float(value)
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_tags(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple, set)):
        return []
    tags: List[str] = []
    for tag in value:
        if isinstance(tag, dict):
            tag = tag.get("name") or tag.get("slug")
        if isinstance(tag, str) and tag.strip():
            tags.append(tag.strip())
    return tags


class ContentItem(BaseModel):
    """A candidate article as supplied by the content store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Content identifier")
    category_id: str = Field(default="", description="Category identifier")
    published_at: Optional[datetime] = Field(default=None, description="Publication time (UTC)")
    popularity: int = Field(default=0, ge=0, description="View counter")
    content_length: int = Field(default=0, ge=0, description="Body length in characters")
    has_image: bool = Field(default=False, description="Whether a lead image is attached")
    tags: List[str] = Field(default_factory=list, description="Tag names")
    is_featured: bool = Field(default=False, description="Editorial featured flag")
    excerpt: Optional[str] = Field(default=None, description="Short summary shown in listings")
    category_slug: Optional[str] = Field(default=None, description="Category slug, used for weight lookup")
    author: Optional[str] = Field(default=None, description="Byline")

    @field_validator("id", "category_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> str:
        return _as_identifier(value)

    @field_validator("published_at")
    @classmethod
    def _ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ContentItem":
        """Build an item from a raw article row, defaulting anything malformed."""
        category = record.get("categories") or record.get("category")
        category_slug = record.get("category_slug")
        if isinstance(category, dict):
            category_slug = category_slug or category.get("slug")
        elif isinstance(category, str):
            category_slug = category_slug or category

        content_length = record.get("content_length")
        if content_length is None and isinstance(record.get("content"), str):
            content_length = len(record["content"])

        has_image = record.get("has_image")
        if has_image is None:
            has_image = bool(record.get("image_url"))

        excerpt = record.get("excerpt")
        author = record.get("author")

        return cls(
            id=record.get("id"),
            category_id=record.get("category_id", category_slug),
            published_at=_as_datetime(record.get("published_at")),
            popularity=_as_int(record.get("popularity", record.get("view_count"))),
            content_length=_as_int(content_length),
            has_image=bool(has_image),
            tags=_as_tags(record.get("tags")),
            is_featured=bool(record.get("is_featured", False)),
            excerpt=excerpt if isinstance(excerpt, str) else None,
            category_slug=category_slug if isinstance(category_slug, str) else None,
            author=author if isinstance(author, str) and author.strip() else None,
        )


class InteractionRecord(BaseModel):
    """One past interaction of a consumer with an article."""

    model_config = ConfigDict(frozen=True)

    item_id: str = Field(default="", description="Article the consumer interacted with")
    category_id: str = Field(default="", description="Category of that article")
    timestamp: Optional[datetime] = Field(default=None, description="When the interaction happened")
    strength: float = Field(default=1.0, description="Interaction strength, 1.0 for a plain view")

    @field_validator("item_id", "category_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> str:
        return _as_identifier(value)

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "InteractionRecord":
        """Build an interaction from a reading-history row."""
        article = record.get("article") if isinstance(record.get("article"), dict) else {}
        return cls(
            item_id=record.get("item_id", record.get("article_id", article.get("id"))),
            category_id=record.get("category_id", article.get("category_id")),
            timestamp=_as_datetime(record.get("timestamp", record.get("created_at"))),
            strength=_as_float(record.get("strength"), default=1.0),
        )


class ConsumerProfile(BaseModel):
    """Signals about one reader, read-only to the engine."""

    model_config = ConfigDict(frozen=True)

    consumer_id: Optional[str] = Field(default=None, description="Reader id, None when anonymous")
    interactions: List[InteractionRecord] = Field(
        default_factory=list, description="Past interactions, oldest first"
    )

    @field_validator("consumer_id", mode="before")
    @classmethod
    def _coerce_consumer_id(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return _as_identifier(value) or None

    @property
    def is_anonymous(self) -> bool:
        return self.consumer_id is None

    @classmethod
    def from_records(
        cls, consumer_id: Optional[str], records: Iterable[Dict[str, Any]]
    ) -> "ConsumerProfile":
        """Build a profile from raw reading-history rows, skipping non-dict rows."""
        interactions = [
            InteractionRecord.from_record(record)
            for record in records or []
            if isinstance(record, dict)
        ]
        return cls(consumer_id=consumer_id, interactions=interactions)

"""
Watchlist item, candidate and response schemas.

WatchlistItem doubles as the on-disk record: its serialization aliases are
the durable field names and must round-trip exactly.
"""
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class CategoryEnum(str, Enum):
    """Content categories a watchlist entry can point at."""

    MOVIE = "movie"
    TV = "tv"


class PersistenceIssue(str, Enum):
    """Classified durable-storage failures. None of them are fatal."""

    CORRUPT_DATA = "CORRUPT_DATA"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    PERSISTENCE_UNAVAILABLE = "PERSISTENCE_UNAVAILABLE"


def canonical_id(value: int | str) -> str:
    """String form of an item id, used for equality and indexing."""
    if isinstance(value, bool):
        raise ValueError("id must be a string or an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


class WatchlistItem(BaseModel):
    """A saved reference to a movie or tv show."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    category: CategoryEnum = CategoryEnum.MOVIE
    poster_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("poster_path", "posterPath"),
    )
    title: str
    original_title: str = Field(
        default="",
        validation_alias=AliasChoices("original_title", "originalTitle"),
    )
    name: str = ""
    overview: str | None = None
    backdrop_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("backdrop_path", "backdropPath"),
    )
    added_at: str = Field(
        validation_alias=AliasChoices("addedAt", "added_at"),
        serialization_alias="addedAt",
    )

    def to_record(self) -> dict:
        """Durable representation (on-disk field names)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WatchlistCandidate(BaseModel):
    """
    Loosely-typed input to WatchlistStore.add().

    Only ``id`` is required; every other field has an explicit default and
    the store derives the display title from whichever of
    original_title / name / title is present.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | str
    category: CategoryEnum | None = None
    poster_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("poster_path", "posterPath"),
    )
    original_title: str | None = Field(
        default=None,
        validation_alias=AliasChoices("original_title", "originalTitle"),
    )
    name: str | None = None
    title: str | None = None
    overview: str | None = None
    backdrop_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("backdrop_path", "backdropPath"),
    )

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: int | str) -> int | str:
        if isinstance(value, str) and not value.strip():
            raise ValueError("id cannot be empty")
        return value

    @property
    def canonical_id(self) -> str:
        return canonical_id(self.id)

    @property
    def display_title(self) -> str:
        return self.original_title or self.name or self.title or ""


# ── Response envelopes ────────────────────────────────────────────────────────

class StoreNotice(BaseModel):
    """Non-blocking notification about a persistence problem."""

    issue: PersistenceIssue
    message: str


class WatchlistItemResponse(BaseModel):
    """A watchlist entry as returned over HTTP."""

    id: str
    category: CategoryEnum
    poster_path: str | None = None
    title: str
    original_title: str = ""
    name: str = ""
    overview: str | None = None
    backdrop_path: str | None = None
    added_at: str


class WatchlistMeta(BaseModel):
    """Metadata attached to every watchlist snapshot."""

    count: int
    count_label: str
    hydrated: bool
    persistent: bool
    notice: StoreNotice | None = None


class WatchlistResponse(BaseModel):
    """Response envelope for /watchlist."""

    items: list[WatchlistItemResponse]
    meta: WatchlistMeta


class MembershipResponse(BaseModel):
    """Response for GET /watchlist/{item_id} and POST /watchlist/toggle."""

    id: str
    in_watchlist: bool
    notice: StoreNotice | None = None

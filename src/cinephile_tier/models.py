"""Records passed between the scraper, resolver, fetcher and scoring engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class FavoriteFilmRef:
    """A favourite scraped from a profile page, not yet resolved to a TMDB id."""
    title: str
    year: int | None = None
    slug: str | None = None
    source_url: str | None = None

    def __post_init__(self) -> None:
        self.title = (self.title or "").strip()
        if not self.title and not self.slug:
            raise ValueError("FavoriteFilmRef needs a title or a slug")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ResolvedFilm:
    """
    Full metadata for one film, as consumed by the scoring engine.

    release_year == 0 means the year is unknown. Placeholders stand in for
    favourites that could not be resolved so that scoring still sees four films.
    """
    tmdb_id: int | None
    title: str
    release_year: int = 0
    rating: float = 0.0
    vote_count: int = 0
    genres: list[str] = field(default_factory=list)
    directors: list[str] = field(default_factory=list)
    countries: list[str] = field(default_factory=list)
    is_foreign: bool = False
    is_black_and_white: bool = False
    is_silent_era: bool = False
    rarity_score: int = 0
    poster_path: str | None = None
    slug: str | None = None
    is_placeholder: bool = False

    def __post_init__(self) -> None:
        # Genres behave as an ordered set
        self.genres = list(dict.fromkeys(self.genres or []))
        self.directors = list(self.directors or [])
        self.countries = list(self.countries or [])

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResolvedFilm:
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class ProfileStats:
    """Aggregate profile numbers. Passed through to callers, never scored."""
    username: str
    display_name: str = ""
    bio: str = ""
    films_watched: int = 0
    films_this_year: int = 0
    following: int = 0
    followers: int = 0
    lists: int = 0
    reviews: int = 0

    # Filled from the stats subpage
    top_genres: list[dict[str, Any]] = field(default_factory=list)
    top_decades: list[dict[str, Any]] = field(default_factory=list)
    top_countries: list[dict[str, Any]] = field(default_factory=list)
    hours_watched: int = 0
    avg_rating: float = 0.0
    most_watched_directors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ScrapedProfile:
    films: list[FavoriteFilmRef]
    stats: ProfileStats


@dataclass
class ScoreBreakdown:
    rating: int = 0
    genre: int = 0
    rarity: int = 0
    era: int = 0
    traits: int = 0
    penalty: int = 0
    raw_total: int = 0
    final_score: int = 0


@dataclass
class Analysis:
    """Derived display fields explaining a score."""
    genre_count: int = 0
    year_spread: int = 0
    oldest_year: int = 0
    newest_year: int = 0
    avg_year_gap: float = 0.0
    avg_rarity: int = 0
    auteur_count: int = 0
    has_foreign: bool = False
    has_classic: bool = False
    has_silent_or_bw: bool = False
    has_modern_classic: bool = False
    franchise_count: int = 0


@dataclass(frozen=True)
class TierInfo:
    level: int
    name: str
    icon: str
    description: str
    color: str


@dataclass
class RankResult:
    level: int
    tier: TierInfo
    score: int
    avg_rating: float
    score_breakdown: ScoreBreakdown
    analysis: Analysis
    reasons: list[str]
    films: list[ResolvedFilm] = field(default_factory=list)
    profile_stats: ProfileStats | None = None
    favorites: list[FavoriteFilmRef] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

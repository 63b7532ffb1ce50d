import asyncio
import logging

from .cache import FilmCache, NullFilmCache
from .config import (
    BLACK_AND_WHITE_BEFORE,
    BLACK_AND_WHITE_KEYWORD,
    ENGLISH_LANGUAGE_CODE,
    SILENT_ERA_BEFORE,
)
from .models import ResolvedFilm
from .scoring import rarity_score
from .tmdb import TmdbClient, parse_release_year

logger = logging.getLogger(__name__)


def _names(items) -> list[str]:
    return [item["name"] for item in items or [] if isinstance(item, dict) and item.get("name")]


def film_from_payload(data: dict) -> ResolvedFilm:
    """Build a ResolvedFilm from a /movie/{id} response with credits and keywords appended."""
    year = parse_release_year(data.get("release_date"))
    rating = float(data.get("vote_average") or 0.0)
    vote_count = int(data.get("vote_count") or 0)

    crew = (data.get("credits") or {}).get("crew") or []
    directors = [member["name"] for member in crew if member.get("job") == "Director" and member.get("name")]
    countries = [c["iso_3166_1"] for c in data.get("production_countries") or [] if c.get("iso_3166_1")]
    keywords = [name.lower() for name in _names((data.get("keywords") or {}).get("keywords"))]

    # Heuristics: the year test needs a known year, the keyword test does not
    is_black_and_white = (0 < year < BLACK_AND_WHITE_BEFORE) or any(
        BLACK_AND_WHITE_KEYWORD in k for k in keywords
    )
    is_silent_era = 0 < year < SILENT_ERA_BEFORE

    return ResolvedFilm(
        tmdb_id=int(data["id"]),
        title=data.get("title") or data.get("original_title") or "",
        release_year=year,
        rating=rating,
        vote_count=vote_count,
        genres=_names(data.get("genres")),
        directors=directors,
        countries=countries,
        is_foreign=data.get("original_language") != ENGLISH_LANGUAGE_CODE,
        is_black_and_white=is_black_and_white,
        is_silent_era=is_silent_era,
        rarity_score=rarity_score(vote_count, rating, year),
        poster_path=data.get("poster_path"),
    )


class FilmDetailFetcher:
    """Read-through, write-through film metadata lookups."""

    def __init__(self, tmdb: TmdbClient, cache: FilmCache | None = None):
        self.tmdb = tmdb
        self.cache = cache if cache is not None else NullFilmCache()

    async def get_details(self, tmdb_id: int) -> ResolvedFilm | None:
        """
        Film metadata for a TMDB id.

        Returns None when TMDB has no API key or does not know the id.
        Network failures raise UpstreamUnavailableError.
        """
        cached = await asyncio.to_thread(self.cache.get, tmdb_id)
        if cached is not None:
            logger.debug(f"Cache hit for {tmdb_id} '{cached.title}'")
            return cached

        if not self.tmdb.configured:
            logger.info(f"No TMDB API key configured, cannot fetch film {tmdb_id}")
            return None

        data = await self.tmdb.get_movie(tmdb_id)
        if data is None:
            logger.info(f"Film {tmdb_id} not found on TMDB")
            return None

        film = film_from_payload(data)
        logger.debug(
            f"Fetched {tmdb_id} '{film.title}' ({film.release_year or 'N/A'}): "
            f"{film.vote_count} votes, rating {film.rating}, rarity {film.rarity_score}"
        )
        await asyncio.to_thread(self.cache.put, tmdb_id, film)
        return film

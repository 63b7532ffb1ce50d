"""
Title/year reconciliation against TMDB search results.

A scraped favourite carries a title and usually a release year. The year
comes from Letterboxd and is trusted over title text, since foreign and
retitled films are common. When a year is known and nothing fits, no id is
returned: a wrong film is worse than no film.
"""
import asyncio
import logging
from dataclasses import dataclass

from .config import (
    MIN_MEANINGFUL_YEAR,
    YEAR_TOLERANCE,
    SIMILARITY_WITH_YEAR,
    SIMILARITY_WITHOUT_YEAR,
    TMDB_SEARCH_LANGUAGE,
    SEARCH_ALT_LANGUAGES,
    SEARCH_RESULT_LIMIT,
)
from .errors import CinephileTierError
from .matching import title_similarity, titles_match
from .tmdb import SearchCandidate, TmdbClient, poster_url

logger = logging.getLogger(__name__)


def clean_search_title(title: str) -> str:
    """Trim and straighten curly apostrophes before searching."""
    return title.replace("‘", "'").replace("’", "'").strip()


def _title_ok(search_title: str, candidate: SearchCandidate) -> bool:
    return titles_match(search_title, candidate.title) or titles_match(search_title, candidate.original_title)


def _similarity(search_title: str, candidate: SearchCandidate) -> int:
    return max(
        title_similarity(search_title, candidate.title),
        title_similarity(search_title, candidate.original_title),
    )


def pick_candidate(title: str, year: int | None, candidates: list[SearchCandidate]) -> int | None:
    """
    Apply the matching ladder to an ordered candidate list.

    With a year (> 1800), first hit wins:
      1. same year and matching title
      2. same year and similarity >= 50
      3. same year
      4. year within +/-1 and matching title
    Without a year: first matching title, else first similarity >= 80.
    """
    if not candidates:
        return None

    if year is not None and year > MIN_MEANINGFUL_YEAR:
        same_year = [c for c in candidates if c.year == year]

        for movie in same_year:
            if _title_ok(title, movie):
                logger.info(f"Matched '{title}' ({year}) -> {movie.id} '{movie.title}': exact title + year")
                return movie.id

        for movie in same_year:
            similarity = _similarity(title, movie)
            if similarity >= SIMILARITY_WITH_YEAR:
                logger.info(f"Matched '{title}' ({year}) -> {movie.id} '{movie.title}': year + similarity {similarity}")
                return movie.id
            logger.debug(f"  '{movie.title}' ({movie.year}): same year but similarity {similarity}")

        if same_year:
            movie = same_year[0]
            logger.info(f"Matched '{title}' ({year}) -> {movie.id} '{movie.title}': year only")
            return movie.id

        for movie in candidates:
            if abs(movie.year - year) <= YEAR_TOLERANCE and _title_ok(title, movie):
                logger.info(f"Matched '{title}' ({year}) -> {movie.id} '{movie.title}' ({movie.year}): title, year +/-1")
                return movie.id
            logger.debug(f"  Rejected '{movie.title}' ({movie.year or 'N/A'}): year mismatch for {year}")

        first = candidates[0]
        logger.info(
            f"No match for '{title}' ({year}); best result '{first.title}' ({first.year or 'N/A'}) rejected"
        )
        return None

    for movie in candidates:
        if _title_ok(title, movie):
            logger.info(f"Matched '{title}' (no year) -> {movie.id} '{movie.title}' ({movie.year})")
            return movie.id

    for movie in candidates:
        similarity = _similarity(title, movie)
        if similarity >= SIMILARITY_WITHOUT_YEAR:
            logger.info(f"Matched '{title}' (no year) -> {movie.id} '{movie.title}': similarity {similarity}")
            return movie.id
        logger.debug(f"  Rejected '{movie.title}' ({movie.year or 'N/A'}): similarity {similarity}")

    logger.info(f"No title match for '{title}', rejecting all {len(candidates)} results")
    return None


def merge_candidates(result_sets: list[list[SearchCandidate]]) -> list[SearchCandidate]:
    """Concatenate result sets, keeping the first occurrence of each id."""
    merged: dict[int, SearchCandidate] = {}
    for results in result_sets:
        for candidate in results:
            merged.setdefault(candidate.id, candidate)
    return list(merged.values())


@dataclass
class SearchHit:
    """An interactive search result enriched with its director."""
    id: int
    title: str
    year: int | None
    poster: str | None
    director: str | None


class CandidateResolver:
    """Resolves a (title, year) favourite to a TMDB id."""

    def __init__(self, tmdb: TmdbClient, alt_languages: tuple[str, ...] = SEARCH_ALT_LANGUAGES):
        self.tmdb = tmdb
        self.alt_languages = alt_languages

    async def _gather_candidates(self, title: str, year: int | None) -> list[SearchCandidate]:
        """
        Run every search strategy concurrently and merge the results.

        The bare-title query is required; the extra year and alternate-language
        queries only widen the pool and their failures are logged and skipped.
        """
        optional = []
        if year is not None and year > MIN_MEANINGFUL_YEAR:
            optional.append(("year", self.tmdb.search_movie(title, language=TMDB_SEARCH_LANGUAGE, year=year)))
            optional.append((
                "primary_release_year",
                self.tmdb.search_movie(title, language=TMDB_SEARCH_LANGUAGE, primary_release_year=year),
            ))
        for language in self.alt_languages:
            optional.append((f"language={language}", self.tmdb.search_movie(title, language=language)))

        results = await asyncio.gather(
            self.tmdb.search_movie(title, language=TMDB_SEARCH_LANGUAGE),
            *(coro for _, coro in optional),
            return_exceptions=True,
        )

        primary, extra = results[0], results[1:]
        if isinstance(primary, BaseException):
            raise primary

        result_sets = [primary]
        for (label, _), result in zip(optional, extra):
            if isinstance(result, CinephileTierError):
                logger.warning(f"Search strategy {label} failed for '{title}': {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            result_sets.append(result)

        return merge_candidates(result_sets)

    async def resolve(self, title: str, year: int | None = None) -> int | None:
        """TMDB id for a scraped favourite, or None when no candidate fits."""
        clean_title = clean_search_title(title)
        if not clean_title:
            return None

        logger.info(f"Searching TMDB: '{clean_title}' | year: {year or 'unknown'}")
        candidates = await self._gather_candidates(clean_title, year)
        if not candidates:
            logger.info(f"No results found for '{clean_title}'")
            return None

        for i, movie in enumerate(candidates[:5], 1):
            logger.debug(f"  {i}. '{movie.title}' ({movie.year or 'N/A'}) [original: '{movie.original_title}']")

        return pick_candidate(clean_title, year, candidates)

    async def _first_director(self, tmdb_id: int) -> str | None:
        try:
            credits = await self.tmdb.get_credits(tmdb_id)
        except CinephileTierError as exc:
            logger.debug(f"Credits lookup failed for {tmdb_id}: {exc}")
            return None
        for member in (credits or {}).get("crew") or []:
            if member.get("job") == "Director":
                return member.get("name")
        return None

    async def search_with_directors(self, query: str, limit: int = SEARCH_RESULT_LIMIT) -> list[SearchHit]:
        """Interactive search: top hits with their director (None if credits fail)."""
        query = clean_search_title(query)
        if len(query) < 2:
            return []

        results = (await self.tmdb.search_movie(query, language=TMDB_SEARCH_LANGUAGE))[:limit]
        directors = await asyncio.gather(*(self._first_director(movie.id) for movie in results))

        return [
            SearchHit(
                id=movie.id,
                title=movie.title,
                year=movie.year or None,
                poster=poster_url(movie.poster_path),
                director=director,
            )
            for movie, director in zip(results, directors)
        ]

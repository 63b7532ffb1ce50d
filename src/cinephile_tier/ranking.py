"""
End-to-end ranking: profile or TMDB ids in, RankResult out.

Favourites are resolved and fetched concurrently. A favourite that cannot
be resolved becomes a placeholder so scoring still sees four films; a
profile with fewer than four favourites is an error.
"""
import asyncio
import logging
from dataclasses import replace

from .cache import FilmCache, NullFilmCache, build_film_cache
from .config import FAVORITES_COUNT, PLACEHOLDER_RATING
from .details import FilmDetailFetcher
from .errors import (
    ConfigurationError,
    InsufficientFilmsError,
    NotFoundError,
    UpstreamUnavailableError,
)
from .models import FavoriteFilmRef, RankResult, ResolvedFilm
from .resolver import CandidateResolver
from .scoring import score_films
from .scraper import ProfileScraper, humanize_slug
from .tmdb import TmdbClient

logger = logging.getLogger(__name__)


def placeholder_film(ref: FavoriteFilmRef) -> ResolvedFilm:
    """Stand-in for a favourite that could not be resolved."""
    return ResolvedFilm(
        tmdb_id=None,
        title=ref.title or humanize_slug(ref.slug),
        release_year=ref.year or 0,
        rating=PLACEHOLDER_RATING,
        slug=ref.slug,
        is_placeholder=True,
    )


class CinephileRanker:
    def __init__(
        self,
        tmdb: TmdbClient,
        scraper: ProfileScraper | None = None,
        cache: FilmCache | None = None,
    ):
        self.tmdb = tmdb
        self.scraper = scraper
        self.resolver = CandidateResolver(tmdb)
        self.fetcher = FilmDetailFetcher(tmdb, cache if cache is not None else NullFilmCache())

    def _require_tmdb(self):
        if not self.tmdb.configured:
            raise ConfigurationError("TMDB_API_KEY environment variable not set.")

    async def _resolve_favorite(self, ref: FavoriteFilmRef) -> ResolvedFilm:
        try:
            tmdb_id = await self.resolver.resolve(ref.title, ref.year)
            film = await self.fetcher.get_details(tmdb_id) if tmdb_id is not None else None
        except (UpstreamUnavailableError, NotFoundError) as e:
            logger.warning(f"Could not resolve '{ref.title}': {e}")
            film = None

        if film is None:
            logger.warning(f"Using placeholder for '{ref.title}' ({ref.year or 'no year'})")
            return placeholder_film(ref)

        logger.info(f"Resolved '{ref.title}' -> {film.tmdb_id} '{film.title}' ({film.release_year or 'N/A'})")
        # Cached films are shared between requests, so copy before tagging with the slug
        return replace(film, slug=ref.slug) if ref.slug else film

    async def rank_by_profile(self, username: str) -> RankResult:
        """Scrape a profile's favourites and score them."""
        self._require_tmdb()
        if self.scraper is None:
            raise RuntimeError("CinephileRanker needs a ProfileScraper to rank profiles")

        profile = await self.scraper.scrape_favorites(username)
        favorites = profile.films
        if len(favorites) < FAVORITES_COUNT:
            raise InsufficientFilmsError(
                found=len(favorites),
                required=FAVORITES_COUNT,
                detail=f"{username} has only {len(favorites)} favourite films",
            )

        films = await asyncio.gather(*(self._resolve_favorite(ref) for ref in favorites))

        placeholders = sum(1 for film in films if film.is_placeholder)
        if placeholders:
            logger.warning(f"{placeholders} of {len(films)} favourites for {username} are placeholders")

        result = score_films(list(films))
        result.profile_stats = profile.stats
        result.favorites = favorites
        return result

    async def rank_by_film_ids(self, film_ids) -> RankResult:
        """Score exactly four TMDB ids; every one must be fetchable."""
        ids = [int(film_id) for film_id in film_ids]
        if len(ids) != FAVORITES_COUNT:
            raise ValueError(f"Expected exactly {FAVORITES_COUNT} film ids, got {len(ids)}")
        self._require_tmdb()

        films = await asyncio.gather(*(self.fetcher.get_details(film_id) for film_id in ids))

        missing = [film_id for film_id, film in zip(ids, films) if film is None]
        if missing:
            raise InsufficientFilmsError(
                found=len(ids) - len(missing),
                required=FAVORITES_COUNT,
                detail=f"could not fetch {', '.join(str(m) for m in missing)}",
            )

        return score_films(list(films))


async def rank_by_profile(username: str, cache: FilmCache | None = None) -> RankResult:
    """Rank a Letterboxd profile with freshly opened clients."""
    if cache is None:
        cache = build_film_cache()
    async with TmdbClient() as tmdb, ProfileScraper() as scraper:
        return await CinephileRanker(tmdb, scraper, cache).rank_by_profile(username)


async def rank_by_film_ids(film_ids, cache: FilmCache | None = None) -> RankResult:
    """Rank four TMDB ids with a freshly opened client."""
    if cache is None:
        cache = build_film_cache()
    async with TmdbClient() as tmdb:
        return await CinephileRanker(tmdb, cache=cache).rank_by_film_ids(film_ids)

"""
Film caches keyed by TMDB id.

Every cache is synchronous; the detail fetcher calls them through
asyncio.to_thread so sqlite never blocks the event loop. Caching is an
optimization only: a cache that always misses yields the same results.
"""
import logging
import sqlite3
import threading

from . import database
from .config import CACHE_ENABLED, CACHE_MAX_AGE_DAYS
from .models import ResolvedFilm

logger = logging.getLogger(__name__)


class FilmCache:
    """get/put interface shared by every cache layer."""

    def get(self, tmdb_id: int) -> ResolvedFilm | None:
        raise NotImplementedError

    def put(self, tmdb_id: int, film: ResolvedFilm) -> None:
        raise NotImplementedError


class NullFilmCache(FilmCache):
    """Always misses."""

    def get(self, tmdb_id: int) -> ResolvedFilm | None:
        return None

    def put(self, tmdb_id: int, film: ResolvedFilm) -> None:
        return None


class MemoryFilmCache(FilmCache):
    """Process-local dict guarded by a lock."""

    def __init__(self):
        self._films: dict[int, ResolvedFilm] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._films)

    def get(self, tmdb_id: int) -> ResolvedFilm | None:
        with self._lock:
            return self._films.get(tmdb_id)

    def put(self, tmdb_id: int, film: ResolvedFilm) -> None:
        with self._lock:
            self._films[tmdb_id] = film


class SqliteFilmCache(FilmCache):
    """The films table of the sqlite database; rows past max_age_days miss."""

    def __init__(self, max_age_days: int = CACHE_MAX_AGE_DAYS):
        self.max_age_days = max_age_days
        database.init_db()

    def get(self, tmdb_id: int) -> ResolvedFilm | None:
        return database.load_film(tmdb_id, max_age_days=self.max_age_days)

    def put(self, tmdb_id: int, film: ResolvedFilm) -> None:
        database.save_film(film)


class LayeredFilmCache(FilmCache):
    """
    Memory in front of a persistent cache.

    Persistent hits are promoted into memory. Persistent errors are logged
    and treated as a miss (reads) or ignored (writes).
    """

    def __init__(self, memory: FilmCache, persistent: FilmCache):
        self.memory = memory
        self.persistent = persistent

    def get(self, tmdb_id: int) -> ResolvedFilm | None:
        film = self.memory.get(tmdb_id)
        if film is not None:
            logger.debug(f"Cache hit (memory) for {tmdb_id}")
            return film

        try:
            film = self.persistent.get(tmdb_id)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Persistent cache read failed for {tmdb_id}: {e}")
            return None

        if film is not None:
            logger.debug(f"Cache hit (database) for {tmdb_id} '{film.title}'")
            self.memory.put(tmdb_id, film)
        return film

    def put(self, tmdb_id: int, film: ResolvedFilm) -> None:
        self.memory.put(tmdb_id, film)
        try:
            self.persistent.put(tmdb_id, film)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Could not cache film {tmdb_id}: {e}")


def build_film_cache(enabled: bool = CACHE_ENABLED) -> FilmCache:
    """Memory cache, backed by sqlite when enabled and the database opens."""
    memory = MemoryFilmCache()
    if not enabled:
        logger.debug("Persistent cache disabled, using memory only")
        return memory

    try:
        persistent = SqliteFilmCache()
    except (sqlite3.Error, OSError) as e:
        logger.warning(f"Could not open film cache at {database.DB_PATH}: {e}. Using memory only")
        return memory

    return LayeredFilmCache(memory, persistent)

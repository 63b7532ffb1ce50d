import sqlite3
import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from .config import DB_PATH, CACHE_MAX_AGE_DAYS
from .models import ResolvedFilm

logger = logging.getLogger(__name__)

_LIST_COLUMNS = ("genres", "directors", "countries")
_BOOL_COLUMNS = ("is_foreign", "is_black_and_white", "is_silent_era")


class ConnectionPool:
    """
    One SQLite connection per thread, with a per-thread nesting depth so only
    the outermost get_db() commits.

    Cache reads and writes arrive from asyncio.to_thread workers, so a
    connection is dropped once its thread is gone.
    """

    def __init__(self, db_path):
        self._db_path = db_path
        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        self._depth: dict[int, int] = {}

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _drop_dead_threads(self):
        alive = {t.ident for t in threading.enumerate()}
        for thread_id in set(self._connections) - alive:
            self._depth.pop(thread_id, None)
            self._close(thread_id, self._connections.pop(thread_id))

    @staticmethod
    def _close(thread_id: int, conn: sqlite3.Connection):
        try:
            conn.close()
        except sqlite3.Error as e:
            logger.warning(f"Error closing connection for thread {thread_id}: {e}")

    def connection(self) -> sqlite3.Connection:
        thread_id = threading.get_ident()
        with self._lock:
            conn = self._connections.get(thread_id)
            if conn is None:
                self._drop_dead_threads()
                conn = self._connections[thread_id] = self._connect()
                logger.debug(f"Opened cache connection for thread {thread_id}")
            return conn

    def enter(self) -> bool:
        """Bump this thread's depth; True when this is the outermost context."""
        thread_id = threading.get_ident()
        with self._lock:
            depth = self._depth.get(thread_id, 0)
            self._depth[thread_id] = depth + 1
        return depth == 0

    def leave(self):
        thread_id = threading.get_ident()
        with self._lock:
            self._depth[thread_id] = max(0, self._depth.get(thread_id, 1) - 1)

    def close_all(self):
        with self._lock:
            for thread_id, conn in self._connections.items():
                self._close(thread_id, conn)
            self._connections.clear()
            self._depth.clear()


_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> ConnectionPool:
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                DB_PATH.parent.mkdir(exist_ok=True, parents=True)
                _pool = ConnectionPool(DB_PATH)
    return _pool


def init_db() -> None:
    DB_PATH.parent.mkdir(exist_ok=True, parents=True)
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS films (
                tmdb_id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                release_year INTEGER DEFAULT 0,
                rating REAL DEFAULT 0,
                vote_count INTEGER DEFAULT 0,
                genres TEXT,        -- JSON list
                directors TEXT,     -- JSON list
                countries TEXT,     -- JSON list
                is_foreign INTEGER DEFAULT 0,
                is_black_and_white INTEGER DEFAULT 0,
                is_silent_era INTEGER DEFAULT 0,
                rarity_score INTEGER DEFAULT 0,
                poster_path TEXT,
                cached_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_films_cached_at ON films(cached_at);
        """)


@contextmanager
def get_db(read_only: bool = False):
    """
    Connection for the current thread. Only the outermost context commits
    (unless read_only) or rolls back; nested contexts share its transaction.
    """
    pool = _get_pool()
    conn = pool.connection()
    outermost = pool.enter()

    try:
        yield conn
        if outermost and not read_only:
            conn.commit()
    except Exception:
        if outermost:
            conn.rollback()
        raise
    finally:
        pool.leave()


def close_pool():
    """Close the connection pool. Call on application shutdown."""
    global _pool
    if _pool is not None:
        _pool.close_all()
        _pool = None


def load_json(val):
    """Safely load JSON from db field."""
    if not val:
        return []
    if isinstance(val, list):
        return val
    try:
        return json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON '{val[:50]}...': {e}")
        return []


def _row_to_film(row: sqlite3.Row) -> ResolvedFilm:
    data = dict(row)
    data.pop("cached_at", None)
    for column in _LIST_COLUMNS:
        data[column] = load_json(data.get(column))
    for column in _BOOL_COLUMNS:
        data[column] = bool(data.get(column))
    return ResolvedFilm.from_dict(data)


def load_film(tmdb_id: int, max_age_days: int = CACHE_MAX_AGE_DAYS) -> ResolvedFilm | None:
    """Cached film, or None if absent or older than max_age_days."""
    with get_db(read_only=True) as conn:
        row = conn.execute("SELECT * FROM films WHERE tmdb_id = ?", (tmdb_id,)).fetchone()

    if not row:
        return None

    cached_at = datetime.fromisoformat(row["cached_at"])
    if datetime.now() - cached_at > timedelta(days=max_age_days):
        logger.debug(f"Cached film {tmdb_id} is stale (cached {row['cached_at']})")
        return None

    return _row_to_film(row)


def save_film(film: ResolvedFilm) -> None:
    """Insert or refresh one film. Placeholders and id-less films are never stored."""
    if film.tmdb_id is None or film.is_placeholder:
        return

    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO films (
                tmdb_id, title, release_year, rating, vote_count, genres, directors,
                countries, is_foreign, is_black_and_white, is_silent_era, rarity_score,
                poster_path, cached_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            film.tmdb_id,
            film.title,
            film.release_year,
            film.rating,
            film.vote_count,
            json.dumps(film.genres),
            json.dumps(film.directors),
            json.dumps(film.countries),
            int(film.is_foreign),
            int(film.is_black_and_white),
            int(film.is_silent_era),
            film.rarity_score,
            film.poster_path,
            datetime.now().isoformat(),
        ))


def purge_stale_films(older_than_days: int = CACHE_MAX_AGE_DAYS) -> int:
    """
    Delete cached films older than the given age.

    Returns:
        Count of films deleted
    """
    cutoff = (datetime.now() - timedelta(days=older_than_days)).isoformat()
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM films WHERE cached_at < ?", (cutoff,))
        deleted = cursor.rowcount
    logger.info(f"Purged {deleted} cached films older than {older_than_days} days")
    return deleted


def film_cache_stats(max_age_days: int = CACHE_MAX_AGE_DAYS) -> dict:
    """Row counts for the films table."""
    cutoff = (datetime.now() - timedelta(days=max_age_days)).isoformat()
    with get_db(read_only=True) as conn:
        row = conn.execute("""
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN cached_at < ? THEN 1 ELSE 0 END) AS stale,
                MIN(cached_at) AS oldest,
                MAX(cached_at) AS newest
            FROM films
        """, (cutoff,)).fetchone()

    return {
        "path": str(DB_PATH),
        "total": row["total"] or 0,
        "stale": row["stale"] or 0,
        "fresh": (row["total"] or 0) - (row["stale"] or 0),
        "oldest": row["oldest"],
        "newest": row["newest"],
    }

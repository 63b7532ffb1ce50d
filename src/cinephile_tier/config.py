"""
Configuration constants for the cinephile tier estimator.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_bool_env(key: str, default: bool) -> bool:
    """Parse a boolean flag ('1/true/yes/on' or '0/false/no/off')."""
    raw = os.environ.get(key)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    logger.warning(f"Invalid {key}='{raw}', using default {default}")
    return default


def _get_list_env(key: str) -> tuple[str, ...]:
    """Parse a comma-separated list, dropping blanks and duplicates."""
    raw = os.environ.get(key, "")
    items = [part.strip() for part in raw.split(",") if part.strip()]
    return tuple(dict.fromkeys(items))


def _get_api_key(key: str) -> str | None:
    """Read an API key, treating the sample .env placeholder as unset."""
    value = os.environ.get(key, "").strip()
    if not value or value.startswith("your_"):
        return None
    return value


# TMDB
TMDB_API_KEY = _get_api_key("TMDB_API_KEY")
TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w500"
TMDB_TIMEOUT = _get_float_env("CINEPHILE_TMDB_TIMEOUT", 10.0, min_val=1.0)
TMDB_MAX_RETRIES = _get_int_env("CINEPHILE_TMDB_MAX_RETRIES", 2, min_val=1)
TMDB_RETRY_DELAY = 0.5  # Initial back-off before retrying a transport error
TMDB_SEARCH_LANGUAGE = "en-US"
SEARCH_ALT_LANGUAGES = _get_list_env("CINEPHILE_SEARCH_ALT_LANGUAGES")
SEARCH_RESULT_LIMIT = 10  # Hits enriched with directors by the interactive search

# Letterboxd scraping
LETTERBOXD_BASE = "https://letterboxd.com"
PROFILE_TIMEOUT = _get_float_env("CINEPHILE_PROFILE_TIMEOUT", 10.0, min_val=1.0)
STATS_TIMEOUT = _get_float_env("CINEPHILE_STATS_TIMEOUT", 15.0, min_val=1.0)
SCRAPER_HTTP2 = _get_bool_env("CINEPHILE_HTTP2", False)
SCRAPER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
FAVORITES_COUNT = 4  # Letterboxd profiles showcase four favourites
STATS_TOP_N = 10  # Entries kept per stats-page breakdown

# Database / cache
DB_PATH = Path(os.environ.get("CINEPHILE_DB", "data/cinephile.db"))
CACHE_ENABLED = _get_bool_env("CINEPHILE_CACHE_ENABLED", True)
CACHE_MAX_AGE_DAYS = _get_int_env("CINEPHILE_CACHE_MAX_AGE_DAYS", 30, min_val=1)

# Batch ranking
DEFAULT_MAX_CONCURRENT_PROFILES = _get_int_env("CINEPHILE_MAX_CONCURRENT_PROFILES", 3, min_val=1)

# Resolver thresholds
MIN_MEANINGFUL_YEAR = 1800  # Years at or below this are not a constraint
YEAR_TOLERANCE = 1  # Regional release-date skew
SIMILARITY_WITH_YEAR = 50
SIMILARITY_WITHOUT_YEAR = 80

# Film flags
BLACK_AND_WHITE_BEFORE = 1960
SILENT_ERA_BEFORE = 1930
ENGLISH_LANGUAGE_CODE = "en"
BLACK_AND_WHITE_KEYWORD = "black and white"

# Placeholder used when a favourite cannot be resolved
PLACEHOLDER_RATING = 6.0

# Rarity score components: (exclusive lower bound, points), checked top to bottom
RARITY_VOTE_STEPS = (
    (2_000_000, 0),
    (1_000_000, 5),
    (500_000, 10),
    (200_000, 15),
    (100_000, 18),
    (50_000, 22),
    (20_000, 26),
)
RARITY_VOTE_MAX = 30
# (minimum age in years, points)
RARITY_AGE_STEPS = (
    (80, 10),
    (60, 7),
    (40, 5),
    (25, 3),
    (15, 1),
)
# (minimum rating, vote ceiling, points)
RARITY_GEM_STEPS = (
    (8.0, 50_000, 10),
    (7.5, 100_000, 5),
)
RARITY_MAX = 50

# Taste score weights
SUBSCORE_MAX = 20
RATING_BASELINE = 5.0  # Average rating worth zero points
RATING_MULTIPLIER = 5.0
GENRE_MULTIPLIER = 2.5
RARITY_MULTIPLIER = 0.4
ERA_MULTIPLIER = 0.25
TRAIT_FOREIGN_BONUS = 5
TRAIT_CLASSIC_BONUS = 5
TRAIT_MODERN_CLASSIC_BONUS = 5
TRAIT_AUTEUR_PER_DIRECTOR = 1.5
TRAIT_AUTEUR_MAX = 5
CLASSIC_BEFORE = 1970
MODERN_CLASSIC_FROM = 2000
MODERN_CLASSIC_MIN_RATING = 8.0

# Franchise penalty: (minimum franchise films, points), checked top to bottom
FRANCHISE_PENALTIES = (
    (3, 12),
    (2, 6),
)

# Reason thresholds
REASON_RATING_EXCELLENT = 8.0
REASON_RATING_SOLID = 7.0
REASON_GENRES_DIVERSE = 7
REASON_GENRES_VARIED = 5
REASON_RARITY_DEEP = 35
REASON_RARITY_MIXED = 20
REASON_ERA_WIDE = 50
REASON_ERA_DECENT = 25

# Score -> level, checked top to bottom
LEVEL_THRESHOLDS = (
    (90, 10),
    (80, 9),
    (70, 8),
    (60, 7),
    (50, 6),
    (42, 5),
    (34, 4),
    (26, 3),
    (15, 2),
)

"""
Async TMDB client: movie search, movie details and credits.

httpx errors never leave this module; they are mapped to
UpstreamUnavailableError. A missing API key raises ConfigurationError.
"""
import logging
from dataclasses import dataclass

import httpx

from .config import (
    TMDB_API_KEY,
    TMDB_BASE_URL,
    TMDB_IMAGE_BASE_URL,
    TMDB_TIMEOUT,
    TMDB_MAX_RETRIES,
    TMDB_RETRY_DELAY,
    SCRAPER_HTTP2,
)
from .errors import ConfigurationError, UpstreamUnavailableError
from .utils import async_retry_with_backoff

logger = logging.getLogger(__name__)


def parse_release_year(release_date: str | None) -> int:
    """Year from a 'YYYY-MM-DD' string; 0 when missing or malformed."""
    if not release_date or len(release_date) < 4:
        return 0
    try:
        return int(release_date[:4])
    except ValueError:
        return 0


def poster_url(poster_path: str | None) -> str | None:
    if not poster_path:
        return None
    if poster_path.startswith("http"):
        return poster_path
    return f"{TMDB_IMAGE_BASE_URL}{poster_path}"


@dataclass
class SearchCandidate:
    """One row of a /search/movie response."""
    id: int
    title: str
    original_title: str = ""
    release_date: str = ""
    popularity: float = 0.0
    original_language: str = ""
    poster_path: str | None = None

    @property
    def year(self) -> int:
        return parse_release_year(self.release_date)

    @classmethod
    def from_payload(cls, payload: dict) -> "SearchCandidate":
        return cls(
            id=int(payload["id"]),
            title=payload.get("title") or "",
            original_title=payload.get("original_title") or "",
            release_date=payload.get("release_date") or "",
            popularity=float(payload.get("popularity") or 0.0),
            original_language=payload.get("original_language") or "",
            poster_path=payload.get("poster_path"),
        )


class TmdbClient:
    """Thin async wrapper over the TMDB v3 REST API. Use as an async context manager."""

    def __init__(
        self,
        api_key: str | None = TMDB_API_KEY,
        timeout: float = TMDB_TIMEOUT,
        base_url: str = TMDB_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self.client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            http2=SCRAPER_HTTP2,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None
        return False

    @async_retry_with_backoff(
        max_retries=TMDB_MAX_RETRIES,
        initial_delay=TMDB_RETRY_DELAY,
        exceptions=(httpx.TransportError,),
    )
    async def _request(self, url: str, params: dict) -> httpx.Response:
        return await self.client.get(url, params=params)

    async def _get(self, path: str, params: dict | None = None) -> dict | None:
        """
        GET a TMDB path and decode the JSON body.

        Returns None on 404. Raises ConfigurationError without a key (or when
        TMDB rejects it) and UpstreamUnavailableError for everything else.
        """
        if not self.configured:
            raise ConfigurationError("TMDB_API_KEY environment variable not set.")
        if not self.client:
            raise RuntimeError("TmdbClient must be used as an async context manager")

        query = {k: v for k, v in (params or {}).items() if v is not None}
        query["api_key"] = self.api_key

        try:
            resp = await self._request(f"{self.base_url}{path}", query)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"TMDB request failed for {path}: {type(exc).__name__}: {exc}") from exc

        if resp.status_code == 404:
            return None
        if resp.status_code == 401:
            raise ConfigurationError("TMDB rejected the configured API key")
        if resp.status_code >= 400:
            raise UpstreamUnavailableError(f"TMDB returned HTTP {resp.status_code} for {path}")

        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamUnavailableError(f"TMDB returned invalid JSON for {path}") from exc

    async def search_movie(
        self,
        query: str,
        language: str | None = None,
        year: int | None = None,
        primary_release_year: int | None = None,
    ) -> list[SearchCandidate]:
        """Ordered search results; malformed rows are skipped."""
        data = await self._get("/search/movie", {
            "query": query,
            "language": language,
            "year": year,
            "primary_release_year": primary_release_year,
            "include_adult": "false",
        })
        candidates = []
        for row in (data or {}).get("results") or []:
            try:
                candidates.append(SearchCandidate.from_payload(row))
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug(f"Skipping malformed search row for '{query}': {exc}")
        return candidates

    async def get_movie(self, tmdb_id: int) -> dict | None:
        """Movie details with credits and keywords appended; None if unknown."""
        return await self._get(f"/movie/{tmdb_id}", {"append_to_response": "credits,keywords"})

    async def get_credits(self, tmdb_id: int) -> dict | None:
        return await self._get(f"/movie/{tmdb_id}/credits")

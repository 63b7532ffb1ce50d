import importlib
import sys
from pathlib import Path

import httpx
import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cinephile_tier.models import ResolvedFilm  # noqa: E402


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("CINEPHILE_DB", str(db_path))
    import cinephile_tier.config as config

    importlib.reload(config)
    yield config

    monkeypatch.undo()
    importlib.reload(config)


@pytest.fixture
def fresh_db(monkeypatch, tmp_path):
    """
    Reload config/database modules with a temp DB and cleanly close the pool after use.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("CINEPHILE_DB", str(db_path))

    import cinephile_tier.config as config
    import cinephile_tier.database as database

    importlib.reload(config)
    importlib.reload(database)
    database.init_db()

    yield database
    database.close_pool()


@pytest.fixture
def make_film():
    """Factory for ResolvedFilm with neutral defaults."""
    def _make(tmdb_id=1, title="Film", **overrides):
        fields = {
            "release_year": 2010,
            "rating": 6.0,
            "vote_count": 1_500_000,
            "genres": ["Drama"],
        }
        fields.update(overrides)
        return ResolvedFilm(tmdb_id=tmdb_id, title=title, **fields)
    return _make


@pytest.fixture
def tmdb_transport():
    """
    Build an httpx.MockTransport from a handler taking (path, params).

    The handler returns a JSON-able payload, an int status code, or an
    httpx.Response. Every request is recorded on transport.requests.
    """
    def _build(handler):
        requests = []

        def _dispatch(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            outcome = handler(request.url.path, dict(request.url.params))
            if isinstance(outcome, httpx.Response):
                return outcome
            if isinstance(outcome, int):
                return httpx.Response(outcome, json={"status_message": "error"})
            return httpx.Response(200, json=outcome)

        transport = httpx.MockTransport(_dispatch)
        transport.requests = requests
        return transport

    return _build

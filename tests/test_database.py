from datetime import datetime, timedelta

from cinephile_tier.models import ResolvedFilm


def _film(tmdb_id=496243, **overrides):
    fields = dict(
        title="Parasite",
        release_year=2019,
        rating=8.5,
        vote_count=18_000,
        genres=["Comedy", "Thriller", "Drama"],
        directors=["Bong Joon-ho"],
        countries=["KR"],
        is_foreign=True,
        rarity_score=36,
        poster_path="/parasite.jpg",
    )
    fields.update(overrides)
    return ResolvedFilm(tmdb_id=tmdb_id, **fields)


def _age_row(db, tmdb_id, days):
    with db.get_db() as conn:
        conn.execute(
            "UPDATE films SET cached_at = ? WHERE tmdb_id = ?",
            ((datetime.now() - timedelta(days=days)).isoformat(), tmdb_id),
        )


def test_init_db_creates_films_table(fresh_db):
    db = fresh_db

    with db.get_db(read_only=True) as conn:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }

    assert "films" in tables


def test_film_round_trip(fresh_db):
    db = fresh_db
    film = _film()

    db.save_film(film)
    loaded = db.load_film(film.tmdb_id)

    assert loaded == film
    assert loaded.is_foreign is True
    assert loaded.is_black_and_white is False


def test_placeholders_are_not_stored(fresh_db):
    db = fresh_db

    db.save_film(ResolvedFilm(tmdb_id=None, title="Unknown", rating=6.0, is_placeholder=True))
    db.save_film(_film(tmdb_id=5, is_placeholder=True))

    assert db.film_cache_stats()["total"] == 0


def test_stale_rows_are_ignored_and_purged(fresh_db):
    db = fresh_db
    db.save_film(_film(tmdb_id=1))
    db.save_film(_film(tmdb_id=2))
    _age_row(db, 1, days=45)

    assert db.load_film(1, max_age_days=30) is None
    assert db.load_film(1, max_age_days=60) is not None

    stats = db.film_cache_stats(max_age_days=30)
    assert (stats["total"], stats["fresh"], stats["stale"]) == (2, 1, 1)

    assert db.purge_stale_films(older_than_days=30) == 1
    assert db.load_film(2) is not None
    assert db.film_cache_stats()["total"] == 1


def test_nested_transactions_commit_once(fresh_db):
    db = fresh_db

    with db.get_db() as conn:
        conn.execute(
            "INSERT INTO films (tmdb_id, title, cached_at) VALUES (?, ?, ?)",
            (1, "Outer", datetime.now().isoformat()),
        )
        with db.get_db() as inner:
            inner.execute(
                "INSERT INTO films (tmdb_id, title, cached_at) VALUES (?, ?, ?)",
                (2, "Inner", datetime.now().isoformat()),
            )

    with db.get_db(read_only=True) as conn:
        assert conn.execute("SELECT COUNT(*) FROM films").fetchone()[0] == 2


def test_load_json_handles_bad_values(fresh_db):
    db = fresh_db

    assert db.load_json(None) == []
    assert db.load_json(["a"]) == ["a"]
    assert db.load_json('["a", "b"]') == ["a", "b"]
    assert db.load_json("{not json") == []

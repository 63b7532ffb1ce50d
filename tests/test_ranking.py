import httpx
import pytest

from cinephile_tier import ranking
from cinephile_tier.cache import MemoryFilmCache, NullFilmCache
from cinephile_tier.config import PLACEHOLDER_RATING
from cinephile_tier.errors import ConfigurationError, InsufficientFilmsError
from cinephile_tier.models import FavoriteFilmRef
from cinephile_tier.ranking import CinephileRanker, placeholder_film
from cinephile_tier.scraper import ProfileScraper
from cinephile_tier.tmdb import TmdbClient


MOVIES = {
    10494: {"id": 10494, "title": "Perfect Blue", "release_date": "1997-02-28", "vote_average": 8.1,
            "vote_count": 4000, "genres": [{"name": "Animation"}, {"name": "Thriller"}],
            "original_language": "ja", "credits": {"crew": [{"job": "Director", "name": "Satoshi Kon"}]}},
    1398: {"id": 1398, "title": "Stalker", "release_date": "1979-05-25", "vote_average": 8.1,
           "vote_count": 3000, "genres": [{"name": "Drama"}, {"name": "Science Fiction"}],
           "original_language": "ru", "credits": {"crew": [{"job": "Director", "name": "Andrei Tarkovsky"}]}},
    11645: {"id": 11645, "title": "Ran", "release_date": "1985-06-01", "vote_average": 8.1,
            "vote_count": 2000, "genres": [{"name": "Action"}, {"name": "Drama"}, {"name": "History"}],
            "original_language": "ja", "credits": {"crew": [{"job": "Director", "name": "Akira Kurosawa"}]}},
    862: {"id": 862, "title": "Toy Story", "release_date": "1995-11-22", "vote_average": 8.0,
          "vote_count": 18000, "genres": [{"name": "Animation"}, {"name": "Family"}],
          "original_language": "en", "credits": {"crew": [{"job": "Director", "name": "John Lasseter"}]}},
}

SEARCH = {
    "Perfect Blue": [10494],
    "Stalker": [1398],
    "Ran": [11645],
}


def tmdb_handler(path, params):
    if path.endswith("/search/movie"):
        query = params["query"]
        if query == "Broken Search":
            return 500
        return {"results": [
            {"id": i, "title": MOVIES[i]["title"], "original_title": MOVIES[i]["title"],
             "release_date": MOVIES[i]["release_date"]}
            for i in SEARCH.get(query, [])
        ]}
    movie_id = int(path.rstrip("/").rsplit("/", 1)[1])
    return MOVIES.get(movie_id, 404)


def profile_html(*favourites):
    items = "".join(
        f'<li class="poster-container"><div data-film-slug="{slug}" data-item-name="{name}">'
        f'<img alt="{name.rsplit(" (", 1)[0]}" /><a href="/film/{slug}/"></a></div></li>'
        for slug, name in favourites
    )
    return f'<html><body><section id="favourites"><ul>{items}</ul></section></body></html>'


FOUR_FAVOURITES = profile_html(
    ("perfect-blue", "Perfect Blue (1997)"),
    ("stalker", "Stalker (1979)"),
    ("broken-search", "Broken Search (2001)"),
    ("ran", "Ran (1985)"),
)


def letterboxd_transport(pages):
    def handler(request: httpx.Request) -> httpx.Response:
        page = pages.get(request.url.path)
        if page is None:
            return httpx.Response(404)
        return httpx.Response(200, text=page)
    return httpx.MockTransport(handler)


def test_placeholder_film_uses_scraped_title_and_year():
    film = placeholder_film(FavoriteFilmRef(title="Lost Film", year=1931, slug="lost-film"))

    assert film.tmdb_id is None
    assert (film.title, film.release_year, film.rating) == ("Lost Film", 1931, PLACEHOLDER_RATING)
    assert film.is_placeholder is True

    assert placeholder_film(FavoriteFilmRef(title="", slug="lost-film")).title == "Lost Film"
    assert placeholder_film(FavoriteFilmRef(title="No Year")).release_year == 0


@pytest.mark.asyncio
async def test_rank_by_profile_with_placeholder(tmdb_transport):
    cache = MemoryFilmCache()
    pages = {"/cinephile/": FOUR_FAVOURITES}

    async with TmdbClient(api_key="k", transport=tmdb_transport(tmdb_handler)) as tmdb, \
            ProfileScraper(transport=letterboxd_transport(pages)) as scraper:
        result = await CinephileRanker(tmdb, scraper, cache).rank_by_profile("cinephile")

    assert [film.title for film in result.films] == ["Perfect Blue", "Stalker", "Broken Search", "Ran"]
    placeholder = result.films[2]
    assert placeholder.is_placeholder
    assert (placeholder.release_year, placeholder.rating) == (2001, PLACEHOLDER_RATING)

    assert result.films[0].slug == "perfect-blue"
    # Cached entries stay untagged
    assert cache.get(10494).slug is None

    assert len(result.favorites) == 4
    assert result.profile_stats.username == "cinephile"
    assert result.analysis.auteur_count == 2  # Tarkovsky, Kurosawa
    assert 1 <= result.level <= 10


@pytest.mark.asyncio
async def test_rank_by_profile_needs_four_favourites(tmdb_transport):
    pages = {"/sparse/": profile_html(("stalker", "Stalker (1979)"), ("ran", "Ran (1985)"))}

    async with TmdbClient(api_key="k", transport=tmdb_transport(tmdb_handler)) as tmdb, \
            ProfileScraper(transport=letterboxd_transport(pages)) as scraper:
        with pytest.raises(InsufficientFilmsError) as excinfo:
            await CinephileRanker(tmdb, scraper).rank_by_profile("sparse")

    assert (excinfo.value.found, excinfo.value.required) == (2, 4)


@pytest.mark.asyncio
async def test_rank_by_profile_requires_api_key(tmdb_transport):
    lb_requests = []

    def handler(request):
        lb_requests.append(request)
        return httpx.Response(200, text=FOUR_FAVOURITES)

    async with TmdbClient(api_key=None, transport=tmdb_transport(tmdb_handler)) as tmdb, \
            ProfileScraper(transport=httpx.MockTransport(handler)) as scraper:
        with pytest.raises(ConfigurationError):
            await CinephileRanker(tmdb, scraper).rank_by_profile("cinephile")

    assert lb_requests == []


@pytest.mark.asyncio
async def test_rank_by_film_ids(tmdb_transport):
    async with TmdbClient(api_key="k", transport=tmdb_transport(tmdb_handler)) as tmdb:
        result = await CinephileRanker(tmdb).rank_by_film_ids(["10494", 1398, 11645, 862])

    assert [film.tmdb_id for film in result.films] == [10494, 1398, 11645, 862]
    assert result.profile_stats is None
    assert result.favorites == []
    assert result.analysis.has_foreign is True


@pytest.mark.asyncio
async def test_rank_by_film_ids_validation(tmdb_transport):
    async with TmdbClient(api_key="k", transport=tmdb_transport(tmdb_handler)) as tmdb:
        ranker = CinephileRanker(tmdb)

        with pytest.raises(ValueError):
            await ranker.rank_by_film_ids([1, 2, 3])

        with pytest.raises(InsufficientFilmsError) as excinfo:
            await ranker.rank_by_film_ids([10494, 1398, 11645, 999999])

    assert excinfo.value.found == 3
    assert "999999" in str(excinfo.value)


@pytest.mark.asyncio
async def test_rank_by_film_ids_requires_api_key(tmdb_transport):
    async with TmdbClient(api_key=None, transport=tmdb_transport(tmdb_handler)) as tmdb:
        with pytest.raises(ConfigurationError):
            await CinephileRanker(tmdb).rank_by_film_ids([10494, 1398, 11645, 862])


@pytest.mark.asyncio
async def test_module_level_entry_point_opens_its_own_client(monkeypatch, tmdb_transport):
    transport = tmdb_transport(tmdb_handler)
    monkeypatch.setattr(ranking, "TmdbClient", lambda: TmdbClient(api_key="k", transport=transport))

    result = await ranking.rank_by_film_ids([10494, 1398, 11645, 862], cache=NullFilmCache())

    assert len(result.films) == 4
    assert len(transport.requests) == 4


@pytest.mark.asyncio
async def test_memory_only_cache_is_filled(tmdb_transport):
    cache = MemoryFilmCache()
    transport = tmdb_transport(tmdb_handler)

    async with TmdbClient(api_key="k", transport=transport) as tmdb:
        ranker = CinephileRanker(tmdb, cache=cache)
        await ranker.rank_by_film_ids([10494, 1398, 11645, 862])
        await ranker.rank_by_film_ids([10494, 1398, 11645, 862])

    assert len(cache) == 4
    assert len(transport.requests) == 4

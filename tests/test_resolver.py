import pytest

from cinephile_tier.errors import UpstreamUnavailableError
from cinephile_tier.resolver import (
    CandidateResolver,
    clean_search_title,
    merge_candidates,
    pick_candidate,
)
from cinephile_tier.tmdb import SearchCandidate, TmdbClient


def candidate(id, title, date, original_title=""):
    return SearchCandidate(id=id, title=title, original_title=original_title or title, release_date=date)


def test_clean_search_title_straightens_quotes():
    assert clean_search_title("  Don’t Look Now ") == "Don't Look Now"


def test_exact_title_and_year_wins_over_earlier_same_year_result():
    candidates = [
        candidate(1, "Something Else", "1954-01-01"),
        candidate(2, "Seven Samurai", "1954-04-26"),
    ]
    assert pick_candidate("Seven Samurai", 1954, candidates) == 2


def test_same_year_similarity_uses_original_title():
    candidates = [
        candidate(10, "Unrelated", "1997-01-01"),
        candidate(11, "Perfect Blue Remastered Edition", "1997-02-28", original_title="Perfect Blue Edition"),
    ]
    # similarity("Perfect Blue", "Perfect Blue Edition") = round(2/3 * 12/20 * 100) = 40 < 50
    # and against the English title it is lower still, so rule 3 picks the first same-year film
    assert pick_candidate("Perfect Blue", 1997, candidates) == 10


def test_same_year_similarity_above_threshold():
    candidates = [
        candidate(20, "Unrelated", "1954-01-01"),
        candidate(21, "Seven Samurai 2", "1954-04-26"),
    ]
    # Not a title match, but similarity is 87 (single-character tokens are ignored)
    assert pick_candidate("Seven Samurai", 1954, candidates) == 21


def test_year_outranks_title_text():
    candidates = [
        candidate(30, "Solaris", "2002-11-27"),
        candidate(31, "Солярис", "1972-03-20", original_title="Солярис"),
    ]
    assert pick_candidate("Solaris", 1972, candidates) == 31


def test_adjacent_year_needs_matching_title():
    candidates = [
        candidate(40, "Heat", "1996-02-01"),
        candidate(41, "Heat Wave", "1994-01-01"),
    ]
    assert pick_candidate("Heat", 1995, candidates) == 40
    assert pick_candidate("Heat Wave", 1995, [candidates[0]]) is None


def test_wrong_year_exact_title_is_rejected():
    candidates = [candidate(50, "Suspiria", "2018-10-26")]
    assert pick_candidate("Suspiria", 1977, candidates) is None


def test_no_year_prefers_title_match_then_high_similarity():
    candidates = [
        candidate(60, "The Cure for Wellness", "2016-10-20"),
        candidate(61, "Cure", "1997-12-27"),
    ]
    assert pick_candidate("Cure", None, candidates) == 61
    assert pick_candidate("Cure", None, [candidates[0]]) is None
    # Years at or below 1800 are ignored
    assert pick_candidate("Cure", 1700, candidates) == 61


def test_no_candidates():
    assert pick_candidate("Anything", 2000, []) is None


def test_merge_candidates_keeps_first_occurrence():
    first = [candidate(1, "A", "2000-01-01"), candidate(2, "B", "2000-01-01")]
    second = [candidate(2, "B (dup)", "2000-01-01"), candidate(3, "C", "2000-01-01")]

    merged = merge_candidates([first, second])

    assert [c.id for c in merged] == [1, 2, 3]
    assert merged[1].title == "B"


def _search_row(id, title, date):
    return {"id": id, "title": title, "original_title": title, "release_date": date}


@pytest.mark.asyncio
async def test_resolve_merges_year_queries(tmdb_transport):
    def handler(path, params):
        if "primary_release_year" in params:
            return {"results": [_search_row(2, "Stalker", "1979-05-25")]}
        if "year" in params:
            return {"results": []}
        return {"results": [_search_row(1, "Stalker", "2012-01-01")]}

    transport = tmdb_transport(handler)
    async with TmdbClient(api_key="k", transport=transport) as tmdb:
        resolver = CandidateResolver(tmdb, alt_languages=())
        assert await resolver.resolve("Stalker", 1979) == 2

    assert len(transport.requests) == 3


@pytest.mark.asyncio
async def test_resolve_without_year_issues_one_query_per_language(tmdb_transport):
    def handler(path, params):
        if params.get("language") == "ja-JP":
            return {"results": [_search_row(5, "Tokyo Story", "1953-11-03")]}
        return {"results": []}

    transport = tmdb_transport(handler)
    async with TmdbClient(api_key="k", transport=transport) as tmdb:
        resolver = CandidateResolver(tmdb, alt_languages=("ja-JP",))
        assert await resolver.resolve("Tokyo Story") == 5

    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_optional_query_failure_is_skipped(tmdb_transport):
    def handler(path, params):
        if "year" in params:
            return 500
        return {"results": [_search_row(7, "Ikiru", "1952-10-09")]}

    async with TmdbClient(api_key="k", transport=tmdb_transport(handler)) as tmdb:
        assert await CandidateResolver(tmdb, alt_languages=()).resolve("Ikiru", 1952) == 7


@pytest.mark.asyncio
async def test_primary_query_failure_propagates(tmdb_transport):
    def handler(path, params):
        if "year" in params or "primary_release_year" in params:
            return {"results": []}
        return 502

    async with TmdbClient(api_key="k", transport=tmdb_transport(handler)) as tmdb:
        with pytest.raises(UpstreamUnavailableError):
            await CandidateResolver(tmdb, alt_languages=()).resolve("Ikiru", 1952)


@pytest.mark.asyncio
async def test_resolve_blank_title_makes_no_request(tmdb_transport):
    transport = tmdb_transport(lambda path, params: {"results": []})
    async with TmdbClient(api_key="k", transport=transport) as tmdb:
        assert await CandidateResolver(tmdb).resolve("   ") is None
    assert transport.requests == []


@pytest.mark.asyncio
async def test_search_with_directors_degrades_on_credit_failure(tmdb_transport):
    def handler(path, params):
        if path.endswith("/search/movie"):
            return {"results": [
                {"id": 1, "title": "Heat", "release_date": "1995-12-15", "poster_path": "/heat.jpg"},
                {"id": 2, "title": "Heat", "release_date": ""},
            ]}
        if path.endswith("/movie/1/credits"):
            return {"crew": [{"job": "Producer", "name": "Art Linson"}, {"job": "Director", "name": "Michael Mann"}]}
        return 500

    async with TmdbClient(api_key="k", transport=tmdb_transport(handler)) as tmdb:
        hits = await CandidateResolver(tmdb).search_with_directors("Heat")

    assert [(h.id, h.year, h.director) for h in hits] == [(1, 1995, "Michael Mann"), (2, None, None)]
    assert hits[0].poster.endswith("/heat.jpg")
    assert hits[1].poster is None


@pytest.mark.asyncio
async def test_search_with_directors_ignores_short_queries(tmdb_transport):
    transport = tmdb_transport(lambda path, params: {"results": []})
    async with TmdbClient(api_key="k", transport=transport) as tmdb:
        assert await CandidateResolver(tmdb).search_with_directors("x") == []
    assert transport.requests == []

import argparse
import asyncio
import json
import logging
from pathlib import Path

from tqdm import tqdm

from .cache import build_film_cache
from .config import CACHE_MAX_AGE_DAYS, DEFAULT_MAX_CONCURRENT_PROFILES, SEARCH_RESULT_LIMIT
from .database import close_pool, film_cache_stats, init_db, purge_stale_films
from .errors import CinephileTierError
from .knowledge import TIERS
from .models import RankResult
from .ranking import CinephileRanker, rank_by_film_ids, rank_by_profile
from .resolver import CandidateResolver
from .scraper import ProfileScraper
from .tmdb import TmdbClient

logger = logging.getLogger(__name__)


def _output_result(result: RankResult, output_format: str, label: str) -> None:
    """Log a RankResult as JSON or readable text."""
    if output_format == "json":
        logger.info(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return

    breakdown = result.score_breakdown
    logger.info(f"\n{result.tier.icon}  {label}: {result.tier.name} (level {result.level})")
    logger.info(f"   {result.tier.description}")
    logger.info(f"   Score: {result.score}/100   Avg rating: {result.avg_rating:.1f}/5")
    logger.info(
        f"   Breakdown: rating {breakdown.rating}, genre {breakdown.genre}, rarity {breakdown.rarity}, "
        f"era {breakdown.era}, traits {breakdown.traits}, penalty -{breakdown.penalty}"
    )

    if result.films:
        logger.info("\nFilms:")
        for film in result.films:
            year = film.release_year or "?"
            note = " [unresolved]" if film.is_placeholder else f" - rarity {film.rarity_score}"
            logger.info(f"  {film.title} ({year}){note}")

    if result.reasons:
        logger.info("\nWhy:")
        for reason in result.reasons:
            logger.info(f"  - {reason}")

    stats = result.profile_stats
    if stats and stats.films_watched:
        logger.info(f"\n{stats.display_name or stats.username}: {stats.films_watched} films watched, "
                    f"{stats.followers} followers")


def cmd_rank(args: argparse.Namespace) -> None:
    result = asyncio.run(rank_by_profile(args.username))
    _output_result(result, args.format, args.username)


def cmd_rank_ids(args: argparse.Namespace) -> None:
    result = asyncio.run(rank_by_film_ids(args.ids))
    _output_result(result, args.format, "Selected films")


def cmd_search(args: argparse.Namespace) -> None:
    async def _search():
        async with TmdbClient() as tmdb:
            return await CandidateResolver(tmdb).search_with_directors(args.query, limit=args.limit)

    hits = asyncio.run(_search())
    if args.format == "json":
        logger.info(json.dumps([hit.__dict__ for hit in hits], indent=2, ensure_ascii=False))
        return

    if not hits:
        logger.info(f"No results for '{args.query}'")
        return
    for hit in hits:
        director = f" - dir. {hit.director}" if hit.director else ""
        logger.info(f"{hit.id:>8}  {hit.title} ({hit.year or '?'}){director}")


def cmd_tiers(args: argparse.Namespace) -> None:
    for level, tier in sorted(TIERS.items(), reverse=True):
        logger.info(f"{level:>2}. {tier.icon}  {tier.name} - {tier.description}")


def _read_usernames(path: Path) -> list[str]:
    usernames = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            usernames.append(line)
    return list(dict.fromkeys(usernames))


async def _rank_batch(usernames: list[str], max_concurrent: int) -> list[dict]:
    """Rank many profiles with shared clients; failures are recorded per user."""
    semaphore = asyncio.Semaphore(max_concurrent)
    cache = build_film_cache()
    rows: dict[str, dict] = {}

    async with TmdbClient() as tmdb, ProfileScraper() as scraper:
        ranker = CinephileRanker(tmdb, scraper, cache)

        with tqdm(total=len(usernames), desc="Profiles") as pbar:
            async def _process(username: str):
                async with semaphore:
                    try:
                        result = await ranker.rank_by_profile(username)
                        rows[username] = {
                            "username": username,
                            "level": result.level,
                            "tier": result.tier.name,
                            "score": result.score,
                            "avg_rating": result.avg_rating,
                        }
                    except CinephileTierError as e:
                        logger.warning(f"Could not rank {username}: {e}")
                        rows[username] = {"username": username, "error": str(e)}
                    finally:
                        pbar.update(1)

            await asyncio.gather(*(_process(username) for username in usernames))

    return [rows[username] for username in usernames]


def cmd_batch(args: argparse.Namespace) -> None:
    usernames = _read_usernames(Path(args.file))
    if not usernames:
        logger.info(f"No usernames in {args.file}")
        return

    rows = asyncio.run(_rank_batch(usernames, args.max_concurrent))

    if args.format == "json":
        logger.info(json.dumps(rows, indent=2, ensure_ascii=False))
        return

    ranked = sorted((r for r in rows if "error" not in r), key=lambda r: r["score"], reverse=True)
    for row in ranked:
        logger.info(f"{row['username']:<24} {row['score']:>3}  L{row['level']:<2} {row['tier']}")
    for row in rows:
        if "error" in row:
            logger.info(f"{row['username']:<24} failed: {row['error']}")


def cmd_cache_stats(args: argparse.Namespace) -> None:
    init_db()
    stats = film_cache_stats()
    logger.info(f"Film cache: {stats['path']}")
    logger.info(f"  Total: {stats['total']} ({stats['fresh']} fresh, {stats['stale']} stale)")
    if stats["total"]:
        logger.info(f"  Oldest: {stats['oldest']}")
        logger.info(f"  Newest: {stats['newest']}")


def cmd_cache_purge(args: argparse.Namespace) -> None:
    init_db()
    deleted = purge_stale_films(args.older_than)
    logger.info(f"Deleted {deleted} cached films")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Estimate a Letterboxd profile's cinephile tier")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rank_parser = subparsers.add_parser("rank", help="Rank a Letterboxd profile by its four favourites")
    rank_parser.add_argument("username", help="Letterboxd username")
    rank_parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    rank_parser.set_defaults(func=cmd_rank)

    ids_parser = subparsers.add_parser("rank-ids", help="Rank four TMDB film ids")
    ids_parser.add_argument("ids", nargs=4, type=int, metavar="ID", help="TMDB movie id")
    ids_parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    ids_parser.set_defaults(func=cmd_rank_ids)

    search_parser = subparsers.add_parser("search", help="Search TMDB for a film")
    search_parser.add_argument("query", help="Film title")
    search_parser.add_argument("--limit", type=int, default=SEARCH_RESULT_LIMIT, help="Number of results")
    search_parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    search_parser.set_defaults(func=cmd_search)

    tiers_parser = subparsers.add_parser("tiers", help="List the ten tiers")
    tiers_parser.set_defaults(func=cmd_tiers)

    batch_parser = subparsers.add_parser("batch", help="Rank every username in a file")
    batch_parser.add_argument("file", help="File with usernames (one per line)")
    batch_parser.add_argument("--max-concurrent", type=int, default=DEFAULT_MAX_CONCURRENT_PROFILES,
                              help="Profiles ranked in parallel")
    batch_parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    batch_parser.set_defaults(func=cmd_batch)

    stats_parser = subparsers.add_parser("cache-stats", help="Show film cache statistics")
    stats_parser.set_defaults(func=cmd_cache_stats)

    purge_parser = subparsers.add_parser("cache-purge", help="Delete stale cached films")
    purge_parser.add_argument("--older-than", type=int, default=CACHE_MAX_AGE_DAYS, metavar="DAYS",
                              help="Age in days beyond which cached films are deleted")
    purge_parser.set_defaults(func=cmd_cache_purge)

    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        args.func(args)
    except (CinephileTierError, ValueError, OSError) as e:
        logger.error(f"Error: {e}")
        return 1
    finally:
        close_pool()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

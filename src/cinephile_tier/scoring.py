"""
Rarity heuristic and the four-film taste score.

Both functions are pure. The only clock dependence is the age component of
rarity_score, which reads the current year unless one is passed in.
"""
import logging
from datetime import datetime

from .config import (
    RARITY_VOTE_STEPS,
    RARITY_VOTE_MAX,
    RARITY_AGE_STEPS,
    RARITY_GEM_STEPS,
    RARITY_MAX,
    SUBSCORE_MAX,
    RATING_BASELINE,
    RATING_MULTIPLIER,
    GENRE_MULTIPLIER,
    RARITY_MULTIPLIER,
    ERA_MULTIPLIER,
    TRAIT_FOREIGN_BONUS,
    TRAIT_CLASSIC_BONUS,
    TRAIT_MODERN_CLASSIC_BONUS,
    TRAIT_AUTEUR_PER_DIRECTOR,
    TRAIT_AUTEUR_MAX,
    CLASSIC_BEFORE,
    SILENT_ERA_BEFORE,
    MODERN_CLASSIC_FROM,
    MODERN_CLASSIC_MIN_RATING,
    FRANCHISE_PENALTIES,
    REASON_RATING_EXCELLENT,
    REASON_RATING_SOLID,
    REASON_GENRES_DIVERSE,
    REASON_GENRES_VARIED,
    REASON_RARITY_DEEP,
    REASON_RARITY_MIXED,
    REASON_ERA_WIDE,
    REASON_ERA_DECENT,
    LEVEL_THRESHOLDS,
)
from .knowledge import AUTEUR_DIRECTORS, FRANCHISE_KEYWORDS, tier_for_level
from .models import Analysis, RankResult, ResolvedFilm, ScoreBreakdown
from .utils import clamp, round_half_up

logger = logging.getLogger(__name__)


def rarity_score(vote_count: int, rating: float, year: int, current_year: int | None = None) -> int:
    """
    Inverse-popularity score in 0..50.

    Vote count gives up to 30, age up to 10 and the hidden-gem bonus up to 10.
    An unknown year (0 or less) gets no age points.
    """
    vote_count = vote_count or 0
    rating = rating or 0.0

    score = RARITY_VOTE_MAX
    for floor, points in RARITY_VOTE_STEPS:
        if vote_count > floor:
            score = points
            break

    if year and year > 0:
        age = (current_year or datetime.now().year) - year
        for min_age, points in RARITY_AGE_STEPS:
            if age >= min_age:
                score += points
                break

    for min_rating, vote_ceiling, points in RARITY_GEM_STEPS:
        if rating >= min_rating and vote_count < vote_ceiling:
            score += points
            break

    return min(RARITY_MAX, score)


def level_for_score(score: int) -> int:
    for threshold, level in LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return 1


def _is_franchise(title: str) -> bool:
    lowered = (title or "").lower()
    return any(keyword in lowered for keyword in FRANCHISE_KEYWORDS)


def analyze_films(films: list[ResolvedFilm]) -> tuple[Analysis, float, float]:
    """
    One aggregation pass over the films.

    Returns the display Analysis plus the unrounded average rating (0-10)
    and average rarity (0-50) the sub-scores are computed from.
    """
    genres: dict[str, None] = {}
    years: list[int] = []
    rating_total = 0.0
    rarity_total = 0
    analysis = Analysis()

    for film in films:
        rating_total += film.rating or 0.0
        rarity_total += film.rarity_score or 0
        genres.update(dict.fromkeys(film.genres))

        year = film.release_year or 0
        if year > 0:
            years.append(year)
            if year < CLASSIC_BEFORE:
                analysis.has_classic = True
            if year < SILENT_ERA_BEFORE:
                analysis.has_silent_or_bw = True
            if year >= MODERN_CLASSIC_FROM and (film.rating or 0.0) >= MODERN_CLASSIC_MIN_RATING:
                analysis.has_modern_classic = True

        if film.is_black_and_white or film.is_silent_era:
            analysis.has_silent_or_bw = True
        if film.is_foreign:
            analysis.has_foreign = True

        # One count per matching director credit, not per film
        analysis.auteur_count += sum(
            1 for director in film.directors if director.lower() in AUTEUR_DIRECTORS
        )
        if _is_franchise(film.title):
            analysis.franchise_count += 1

    analysis.genre_count = len(genres)

    if years:
        years.sort()
        analysis.oldest_year = years[0]
        analysis.newest_year = years[-1]
        analysis.year_spread = years[-1] - years[0]
        if len(years) > 1:
            gaps = [later - earlier for earlier, later in zip(years, years[1:])]
            analysis.avg_year_gap = round(sum(gaps) / len(gaps), 1)

    avg_rating = rating_total / len(films)
    avg_rarity = rarity_total / len(films)
    analysis.avg_rarity = round_half_up(avg_rarity)
    return analysis, avg_rating, avg_rarity


def _subscore(raw: float) -> int:
    return round_half_up(clamp(raw, 0, SUBSCORE_MAX))


def _franchise_penalty(franchise_count: int) -> int:
    for min_count, points in FRANCHISE_PENALTIES:
        if franchise_count >= min_count:
            return points
    return 0


def score_films(films: list[ResolvedFilm | None]) -> RankResult:
    """
    Score up to four resolved films.

    Each sub-score is rounded before summing so the breakdown always adds up
    to the total shown. Reasons follow evaluation order: rating, genres,
    rarity, era, traits, penalty.
    """
    valid = [film for film in films if film is not None]
    if not valid:
        logger.info("No valid films to score")
        return RankResult(
            level=1,
            tier=tier_for_level(1),
            score=0,
            avg_rating=0.0,
            score_breakdown=ScoreBreakdown(),
            analysis=Analysis(),
            reasons=["No valid movies found"],
        )

    analysis, avg_rating, avg_rarity = analyze_films(valid)
    breakdown = ScoreBreakdown()
    reasons: list[str] = []

    breakdown.rating = _subscore((avg_rating - RATING_BASELINE) * RATING_MULTIPLIER)
    if avg_rating >= REASON_RATING_EXCELLENT:
        reasons.append(f"Excellent taste: {avg_rating:.1f} avg rating")
    elif avg_rating >= REASON_RATING_SOLID:
        reasons.append(f"Solid picks: {avg_rating:.1f} avg rating")
    else:
        reasons.append(f"Average rating: {avg_rating:.1f}")

    breakdown.genre = _subscore(analysis.genre_count * GENRE_MULTIPLIER)
    if analysis.genre_count >= REASON_GENRES_DIVERSE:
        reasons.append(f"Diverse palette: {analysis.genre_count} genres explored")
    elif analysis.genre_count >= REASON_GENRES_VARIED:
        reasons.append(f"Good variety: {analysis.genre_count} genres")

    breakdown.rarity = _subscore(avg_rarity * RARITY_MULTIPLIER)
    if avg_rarity >= REASON_RARITY_DEEP:
        reasons.append("Deep cuts - you dig beyond the surface")
    elif avg_rarity >= REASON_RARITY_MIXED:
        reasons.append("Nice mix of popular and lesser-known films")

    breakdown.era = _subscore(analysis.year_spread * ERA_MULTIPLIER)
    if analysis.year_spread >= REASON_ERA_WIDE:
        reasons.append(f"Time traveler: spans {analysis.year_spread} years of cinema")
    elif analysis.year_spread >= REASON_ERA_DECENT:
        reasons.append(f"Decent range: {analysis.year_spread} year spread")

    traits = 0.0
    if analysis.has_foreign:
        traits += TRAIT_FOREIGN_BONUS
        reasons.append("Subtitles don't scare you")
    if analysis.has_classic:
        traits += TRAIT_CLASSIC_BONUS
        reasons.append("Respects the classics")
    if analysis.auteur_count:
        traits += min(TRAIT_AUTEUR_MAX, analysis.auteur_count * TRAIT_AUTEUR_PER_DIRECTOR)
        noun = "master director" if analysis.auteur_count == 1 else "master directors"
        reasons.append(f"Auteur appreciation: {analysis.auteur_count} {noun}")
    if analysis.has_modern_classic:
        traits += TRAIT_MODERN_CLASSIC_BONUS
        reasons.append("Eye for modern masterpieces")
    breakdown.traits = _subscore(traits)

    breakdown.penalty = _franchise_penalty(analysis.franchise_count)
    if breakdown.penalty:
        if analysis.franchise_count >= FRANCHISE_PENALTIES[0][0]:
            reasons.append("Franchise heavy - branch out!")
        else:
            reasons.append("A couple of franchise picks in the mix")

    breakdown.raw_total = (
        breakdown.rating + breakdown.genre + breakdown.rarity
        + breakdown.era + breakdown.traits - breakdown.penalty
    )
    breakdown.final_score = int(clamp(breakdown.raw_total, 0, 100))

    logger.info(
        f"Score breakdown: rating={breakdown.rating} + genre={breakdown.genre} + rarity={breakdown.rarity} "
        f"+ era={breakdown.era} + traits={breakdown.traits} - penalty={breakdown.penalty} "
        f"= {breakdown.final_score}"
    )

    level = level_for_score(breakdown.final_score)
    return RankResult(
        level=level,
        tier=tier_for_level(level),
        score=breakdown.final_score,
        avg_rating=round_half_up(avg_rating * 5) / 10,
        score_breakdown=breakdown,
        analysis=analysis,
        reasons=reasons,
        films=valid,
    )

"""
Title normalization and comparison used to pick the right TMDB candidate.

Matching is deliberately strict: "Linda Linda Linda" must not match
"The Story of Linda", and "Cure" must not match "The Cure for Wellness".
"""
import re

from .utils import round_half_up

_SINGLE_QUOTES_RE = re.compile(r"[‘’`´]")
_DOUBLE_QUOTES_RE = re.compile(r"[“”„]")
_PUNCTUATION_RE = re.compile(r"[:\-–—,.!?]")
_DISALLOWED_RE = re.compile(r"[^a-z0-9 ']")
_WHITESPACE_RE = re.compile(r"\s+")

_LEADING_ARTICLES = ("the ", "a ")


def normalize_title(title: str | None) -> str:
    """
    Canonical form of a title for comparison.

    Lowercases, unifies quote variants, turns punctuation into spaces, spells
    out '&', drops anything outside [a-z0-9 '] and collapses whitespace.
    Idempotent: normalize_title(normalize_title(x)) == normalize_title(x).
    """
    if not title:
        return ""
    text = title.lower()
    text = _SINGLE_QUOTES_RE.sub("'", text)
    text = _DOUBLE_QUOTES_RE.sub('"', text)
    text = _PUNCTUATION_RE.sub(" ", text)
    text = text.replace("&", "and")
    # Whitespace is unified before filtering so tabs/newlines survive as spaces
    text = _WHITESPACE_RE.sub(" ", text)
    text = _DISALLOWED_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def _strip_article(normalized: str, article: str) -> str:
    if normalized.startswith(article):
        return normalized[len(article):]
    return normalized


def titles_match(search_title: str | None, candidate_title: str | None) -> bool:
    """
    True when two titles are the same film title.

    Accepts exact normalized equality, or equality once a single leading
    "the " or "a " is dropped from either side. Never matches on substrings.
    """
    norm_search = normalize_title(search_title)
    norm_candidate = normalize_title(candidate_title)
    if not norm_search or not norm_candidate:
        return False
    if norm_search == norm_candidate:
        return True

    for article in _LEADING_ARTICLES:
        search_bare = _strip_article(norm_search, article)
        candidate_bare = _strip_article(norm_candidate, article)
        if search_bare == candidate_bare:
            return True
        if search_bare == norm_candidate or norm_search == candidate_bare:
            return True

    return False


def _tokens(normalized: str) -> set[str]:
    return {word for word in normalized.split(" ") if len(word) > 1}


def title_similarity(title1: str | None, title2: str | None) -> int:
    """
    Similarity in 0..100 requiring word overlap in both directions.

    The unique-token overlap ratio of the weaker side is multiplied by the
    ratio of normalized string lengths, so a short title fully contained in a
    long unrelated one still scores low.

    Two titles that both normalize to nothing score 0, not 100: an empty
    string carries no evidence of a match.
    """
    norm1 = normalize_title(title1)
    norm2 = normalize_title(title2)

    if norm1 and norm1 == norm2:
        return 100
    if not norm1 or not norm2:
        return 0

    words1 = _tokens(norm1)
    words2 = _tokens(norm2)
    if not words1 or not words2:
        return 0

    shared = words1 & words2
    min_ratio = min(len(shared) / len(words1), len(shared) / len(words2))
    length_ratio = min(len(norm1), len(norm2)) / max(len(norm1), len(norm2))

    return round_half_up(min_ratio * length_ratio * 100)

import httpx
import logging
import re
from selectolax.parser import HTMLParser, Node
from .config import (
    LETTERBOXD_BASE,
    PROFILE_TIMEOUT,
    STATS_TIMEOUT,
    SCRAPER_HTTP2,
    SCRAPER_USER_AGENT,
    FAVORITES_COUNT,
    STATS_TOP_N,
)
from .errors import InvalidUsernameError, ProfileNotFoundError, UpstreamUnavailableError
from .models import FavoriteFilmRef, ProfileStats, ScrapedProfile

logger = logging.getLogger(__name__)

_TRAILING_YEAR_RE = re.compile(r"\s*\((\d{4})\)\s*$")
_POSTER_ALT_PREFIX = "poster for "


def validate_slug(slug: str | None) -> str | None:
    """
    Validate film slug format to prevent injection or malformed data.

    Returns cleaned slug or None if invalid.
    Letterboxd slugs are typically lowercase alphanumeric with hyphens, but
    some endpoints now emit a namespaced format like 'film:482919'. We allow
    that prefix while still validating the core slug characters.
    """
    if not slug:
        return None

    cleaned = slug.strip().lower()

    prefix = ""
    core = cleaned
    if core.startswith("film:"):
        prefix = "film:"
        core = core.split(":", 1)[1]

    if not core or not re.match(r'^[a-z0-9-]+$', core):
        logger.warning(f"Invalid slug format (contains disallowed characters): '{slug}'")
        return None

    full_slug = prefix + core

    if len(full_slug) > 200:
        logger.warning(f"Slug exceeds maximum length: '{slug[:50]}...'")
        return None

    return full_slug


def validate_username(username: str) -> str:
    """
    Sanitize a Letterboxd username.
    Returns lowercased alphanumeric + underscores/hyphens only.
    Raises InvalidUsernameError if nothing usable is left.
    """
    sanitized = re.sub(r'[^a-z0-9_-]', '', username.strip().lower())
    if not sanitized:
        raise InvalidUsernameError(username)
    if sanitized != username.strip().lower():
        logger.warning(f"Username '{username}' sanitized to '{sanitized}'")
    return sanitized


def humanize_slug(slug: str | None) -> str:
    """'the-godfather' -> 'The Godfather'."""
    if not slug:
        return "Unknown"
    return " ".join(word[:1].upper() + word[1:] for word in slug.split("-") if word)


def title_to_slug(title: str) -> str:
    slug = title.lower().replace("'", "").replace("’", "")
    return re.sub(r"[^a-z0-9]+", "-", slug).strip("-")


def split_title_year(text: str | None) -> tuple[str, int | None]:
    """'Perfect Blue (1997)' -> ('Perfect Blue', 1997); year is None if absent."""
    text = (text or "").strip()
    match = _TRAILING_YEAR_RE.search(text)
    if not match:
        return text, None
    return text[:match.start()].strip(), int(match.group(1))


def _clean_alt(alt: str | None) -> str:
    """Poster alt text, minus the 'Poster for' prefix newer markup adds."""
    alt = (alt or "").strip()
    if alt.lower().startswith(_POSTER_ALT_PREFIX):
        alt = alt[len(_POSTER_ALT_PREFIX):].strip()
    return alt


def _slug_from_href(href: str | None) -> str | None:
    if not href or "/film/" not in href:
        return None
    return href.split("/film/", 1)[1].strip("/") or None


def _film_url(slug: str | None) -> str | None:
    return f"{LETTERBOXD_BASE}/film/{slug}/" if slug else None


def _parse_count(text: str | None) -> int:
    """Leading number of a stat like '1,234 Films' or '2.4K'; 0 when absent."""
    if not text:
        return 0
    match = re.search(r"(\d[\d,. ]*)\s*([KkMm])?", text)
    if not match:
        return 0
    raw = match.group(1).replace(",", "").replace(" ", "")
    suffix = (match.group(2) or "").upper()
    try:
        value = float(raw)
    except ValueError:
        return 0
    if suffix == "K":
        value *= 1_000
    elif suffix == "M":
        value *= 1_000_000
    return int(value)


def _ancestor_with_attr(node: Node, attr: str) -> Node | None:
    current = node
    while current is not None:
        if attr in (current.attributes or {}):
            return current
        current = current.parent
    return None


def _name_and_year(*candidates: str | None) -> tuple[str, int | None]:
    """First non-empty display string, split into title and trailing year."""
    for text in candidates:
        if text and text.strip():
            return split_title_year(text)
    return "", None


# --- Favourite extraction strategies ---------------------------------------
# Each takes the parsed profile page and returns refs in page order.


def extract_from_favorites_section(tree: HTMLParser) -> list[FavoriteFilmRef]:
    """Poster list items inside the favourites container."""
    films: list[FavoriteFilmRef] = []
    seen: set[str] = set()

    items = tree.css(
        "section#favourites li, #favourites li, .favourites li, "
        "section.profile-favorites li.poster-container"
    )
    for item in items:
        if len(films) >= FAVORITES_COUNT:
            break

        img = item.css_first("img")
        title, alt_year = split_title_year(_clean_alt(img.attributes.get("alt") if img else None))
        if not title:
            continue

        link = item.css_first("a")
        slug = _slug_from_href(link.attributes.get("href") if link else None)
        if not slug:
            slug_el = item.css_first("[data-film-slug]")
            if slug_el:
                slug = slug_el.attributes.get("data-film-slug")
        slug = validate_slug(slug) if slug else None

        year = None
        name_el = item.css_first("[data-item-name]")
        if name_el:
            _, year = split_title_year(name_el.attributes.get("data-item-name"))
        if year is None:
            display_el = item.css_first("[data-item-full-display-name]")
            if display_el:
                _, year = split_title_year(display_el.attributes.get("data-item-full-display-name"))
        if year is None:
            year = alt_year

        key = slug or title
        if key in seen:
            continue
        seen.add(key)

        logger.debug(f"Favourites section - found '{title}' ({year or 'no year'}) slug: '{slug}'")
        films.append(FavoriteFilmRef(
            title=title,
            year=year,
            slug=slug or title_to_slug(title),
            source_url=_film_url(slug),
        ))

    return films


def extract_from_slug_attributes(tree: HTMLParser) -> list[FavoriteFilmRef]:
    """Any element carrying data-film-slug (first four only)."""
    films: list[FavoriteFilmRef] = []
    seen: set[str] = set()

    for element in tree.css("[data-film-slug]")[:FAVORITES_COUNT]:
        slug = validate_slug(element.attributes.get("data-film-slug"))
        if not slug or slug in seen:
            continue
        seen.add(slug)

        img = element.css_first("img")
        alt = _clean_alt(img.attributes.get("alt") if img else None)
        title, year = split_title_year(
            element.attributes.get("data-item-name")
            or element.attributes.get("data-item-full-display-name")
            or alt
        )
        if year is None:
            title = element.attributes.get("data-film-name") or alt or humanize_slug(slug)

        logger.debug(f"Slug attributes - found '{title}' ({year or 'no year'}) slug: '{slug}'")
        films.append(FavoriteFilmRef(title=title, year=year, slug=slug, source_url=_film_url(slug)))

    return films


def extract_from_film_links(tree: HTMLParser) -> list[FavoriteFilmRef]:
    """Every /film/<slug>/ anchor on the page, skipping 'more' and sub-pages."""
    films: list[FavoriteFilmRef] = []
    seen: set[str] = set()

    for link in tree.css('a[href^="/film/"]'):
        if len(films) >= FAVORITES_COUNT:
            break

        href = link.attributes.get("href") or ""
        slug = href[len("/film/"):].rstrip("/")
        if not slug or slug == "more" or "/" in slug or slug in seen:
            continue
        slug = validate_slug(slug)
        if not slug:
            continue
        seen.add(slug)

        img = link.css_first("img")
        parent = _ancestor_with_attr(link, "data-item-name")
        title, year = _name_and_year(
            parent.attributes.get("data-item-name") if parent else None,
            _clean_alt(img.attributes.get("alt") if img else None),
        )
        if year is None:
            title = link.attributes.get("title") or title or humanize_slug(slug)

        logger.debug(f"Film links - found '{title}' ({year or 'no year'}) slug: '{slug}'")
        films.append(FavoriteFilmRef(title=title, year=year, slug=slug, source_url=_film_url(slug)))

    return films


EXTRACTION_STRATEGIES = (
    extract_from_favorites_section,
    extract_from_slug_attributes,
    extract_from_film_links,
)


def extract_favorites(tree: HTMLParser) -> list[FavoriteFilmRef]:
    """Run the strategies in order; the first non-empty result wins outright."""
    for strategy in EXTRACTION_STRATEGIES:
        try:
            films = strategy(tree)
        except (AttributeError, ValueError, TypeError) as exc:
            logger.warning(f"Favourite extraction '{strategy.__name__}' failed: {exc}")
            continue
        if films:
            logger.debug(f"Using {len(films)} favourites from {strategy.__name__}")
            return films[:FAVORITES_COUNT]
        logger.debug(f"{strategy.__name__} found nothing, trying next strategy")
    return []


# --- Profile statistics ------------------------------------------------------


def parse_profile_stats(tree: HTMLParser, username: str) -> ProfileStats:
    """
    Best-effort profile header numbers. Each field is tried with several
    independent selectors; whatever cannot be found stays at zero/empty.
    """
    stats = ProfileStats(username=username)

    for selector in ("h1.title-1", ".profile-name h1", ".profile-name .displayname"):
        el = tree.css_first(selector)
        if el and el.text(strip=True):
            stats.display_name = el.text(strip=True)
            break
    if not stats.display_name:
        stats.display_name = username

    for selector in (".bio .collapsible-text", ".bio"):
        el = tree.css_first(selector)
        if el and el.text(strip=True):
            stats.bio = el.text(strip=True)
            break

    # Header statistics: Films / This year / Lists / Following / Followers
    for el in tree.css(".profile-stats a, .profile-statistic"):
        label = el.text(separator=" ", strip=True).lower()
        value_el = el.css_first(".value, .statistic")
        value = _parse_count(value_el.text(strip=True) if value_el else label)

        if "following" in label:
            stats.following = stats.following or value
        elif "follower" in label:
            stats.followers = stats.followers or value
        elif "year" in label:
            stats.films_this_year = stats.films_this_year or value
        elif "list" in label:
            stats.lists = stats.lists or value
        elif "film" in label:
            stats.films_watched = stats.films_watched or value

    # The film count is in a span child element: <a class="thousands"><span>2,479</span><span>Films</span></a>
    if not stats.films_watched:
        count_link = tree.css_first("a.thousands[href$='/films/']")
        if count_link:
            count_span = count_link.css_first("span")
            stats.films_watched = _parse_count(count_span.text(strip=True) if count_span else None)

    if not stats.films_watched:
        for link in tree.css("a[href*='/films/']"):
            href = link.attributes.get("href") or ""
            if href.startswith(f"/{username}/films/"):
                value = _parse_count(link.text(strip=True))
                if value:
                    stats.films_watched = value
                    break

    for link in tree.css("a[href*='/reviews/']"):
        value = _parse_count(link.text(strip=True))
        if value:
            stats.reviews = value
            break

    if not stats.lists:
        for link in tree.css("a[href*='/lists/']"):
            value = _parse_count(link.text(strip=True))
            if value:
                stats.lists = value
                break

    return stats


def _stat_name_and_count(el: Node) -> tuple[str, int]:
    name_el = el.css_first(".name, .title")
    name = name_el.text(strip=True) if name_el else el.text(strip=True)
    count_el = el.css_first(".count")
    count = _parse_count(count_el.text(strip=True)) if count_el else 0
    return name, count


def _append_unique(items: list[dict], name: str, count: int) -> None:
    if len(items) >= STATS_TOP_N:
        return
    if any(item["name"] == name for item in items):
        return
    items.append({"name": name, "count": count})


def parse_stats_page(tree: HTMLParser, stats: ProfileStats) -> ProfileStats:
    """Merge the /<user>/stats/ breakdowns into an existing ProfileStats."""
    for el in tree.css("#stats-genres .stat, section.stats-genres .stat, .stats-chart a"):
        name, count = _stat_name_and_count(el)
        if name and "more" not in name.lower():
            _append_unique(stats.top_genres, name, count)

    for el in tree.css("#stats-decades .stat, section.stats-decades .stat"):
        name, count = _stat_name_and_count(el)
        if name and re.search(r"\d{4}", name):
            _append_unique(stats.top_decades, name, count)

    for el in tree.css("#stats-countries .stat, section.stats-countries .stat"):
        name, count = _stat_name_and_count(el)
        if name:
            _append_unique(stats.top_countries, name, count)

    for el in tree.css("#stats-directors .stat, section.stats-directors .stat"):
        name, _ = _stat_name_and_count(el)
        if name and name not in stats.most_watched_directors and len(stats.most_watched_directors) < STATS_TOP_N:
            stats.most_watched_directors.append(name)

    # Bar charts label decades in their title attribute
    for el in tree.css(".bar-chart .bar, .stat-bar"):
        label_el = el.css_first(".label")
        label = el.attributes.get("title") or (label_el.text(strip=True) if label_el else "")
        value_el = el.css_first(".value")
        value = _parse_count(el.attributes.get("data-value") or (value_el.text(strip=True) if value_el else ""))
        if label and value > 0 and re.search(r"\d{4}s?", label):
            _append_unique(stats.top_decades, label, value)

    for el in tree.css("h4, .statistic"):
        text = el.text(separator=" ", strip=True)
        lowered = text.lower()
        if not stats.hours_watched and "hour" in lowered:
            match = re.search(r"([\d,]+)\s*hours?", text, re.IGNORECASE)
            if match:
                stats.hours_watched = int(match.group(1).replace(",", ""))
        elif not stats.avg_rating and "average" in lowered:
            match = re.search(r"(\d+(?:\.\d+)?)", text)
            if match:
                stats.avg_rating = float(match.group(1))

    # Sections that only list names under a heading
    for section in tree.css("section"):
        heading = section.css_first("h2, h3")
        heading_text = heading.text(strip=True).lower() if heading else ""
        if "genre" in heading_text:
            target = stats.top_genres
        elif "countr" in heading_text:
            target = stats.top_countries
        else:
            continue
        for el in section.css("a, .list-item"):
            name = el.text(strip=True)
            if name and "more" not in name.lower():
                _append_unique(target, name, 0)

    return stats


class ProfileScraper:
    """Async scraper for a profile's favourites and stats. Use as an async context manager."""

    BASE = LETTERBOXD_BASE

    def __init__(
        self,
        profile_timeout: float = PROFILE_TIMEOUT,
        stats_timeout: float = STATS_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.profile_timeout = profile_timeout
        self.stats_timeout = stats_timeout
        self._transport = transport
        self.client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        """Async context manager entry."""
        self.client = httpx.AsyncClient(
            headers={
                "User-Agent": SCRAPER_USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
            },
            follow_redirects=True,
            timeout=self.profile_timeout,
            http2=SCRAPER_HTTP2,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client:
            await self.client.aclose()
            self.client = None
        return False

    async def _get(self, url: str, username: str, timeout: float) -> HTMLParser:
        """
        Fetch and parse one page.

        404 raises ProfileNotFoundError; timeouts, transport errors and other
        non-2xx responses raise UpstreamUnavailableError.
        """
        if not self.client:
            raise RuntimeError("ProfileScraper must be used as an async context manager")

        try:
            resp = await self.client.get(url, timeout=timeout)
        except httpx.TimeoutException as exc:
            logger.error(f"Timeout on {url}: {exc}")
            raise UpstreamUnavailableError(f"Could not fetch Letterboxd profile: timeout on {url}") from exc
        except httpx.HTTPError as exc:
            logger.error(f"Request error on {url}: {type(exc).__name__}: {exc}")
            raise UpstreamUnavailableError(f"Could not fetch Letterboxd profile: {exc}") from exc

        if resp.status_code == 404:
            raise ProfileNotFoundError(username)
        if resp.status_code >= 400:
            logger.error(f"HTTP {resp.status_code} on {url}")
            raise UpstreamUnavailableError(f"Could not fetch Letterboxd profile: HTTP {resp.status_code}")

        return HTMLParser(resp.text)

    async def scrape_stats_page(self, username: str, stats: ProfileStats) -> ProfileStats:
        """Add stats-page breakdowns; any failure leaves stats unchanged."""
        try:
            tree = await self._get(f"{self.BASE}/{username}/stats/", username, self.stats_timeout)
            parse_stats_page(tree, stats)
        except (UpstreamUnavailableError, ProfileNotFoundError) as exc:
            logger.warning(f"Could not fetch stats page for {username}: {exc}")
        except (AttributeError, ValueError, TypeError) as exc:
            logger.warning(f"Could not parse stats page for {username}: {exc}")
        else:
            logger.debug(
                f"Stats page - {len(stats.top_genres)} genres, {len(stats.top_decades)} decades, "
                f"{len(stats.top_countries)} countries"
            )
        return stats

    async def scrape_favorites(self, username: str) -> ScrapedProfile:
        """Scrape a profile's four favourites plus best-effort profile stats."""
        username = validate_username(username)
        url = f"{self.BASE}/{username}/"
        logger.info(f"Fetching profile: {url}")

        tree = await self._get(url, username, self.profile_timeout)

        films = extract_favorites(tree)
        try:
            stats = parse_profile_stats(tree, username)
        except (AttributeError, ValueError, TypeError) as exc:
            logger.warning(f"Could not parse profile stats for {username}: {exc}")
            stats = ProfileStats(username=username, display_name=username)

        stats = await self.scrape_stats_page(username, stats)

        logger.info(f"Found {len(films)} favourites for {username}")
        return ScrapedProfile(films=films[:FAVORITES_COUNT], stats=stats)

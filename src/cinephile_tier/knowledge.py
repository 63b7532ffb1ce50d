"""
Static lookup tables used by the scoring engine.

Tier display records, the auteur allow-list and franchise keywords are data,
built once at import and never mutated.
"""
from types import MappingProxyType

from .models import TierInfo

TIERS = MappingProxyType({
    1: TierInfo(1, "The Casual Viewer", "\U0001F4FA", "You watch movies to pass the time.", "#6c757d"),
    2: TierInfo(2, "The Popcorn Enthusiast", "\U0001F37F", "You enjoy the movie-going experience.", "#fd7e14"),
    3: TierInfo(3, "The Avid Watcher", "\U0001F39F️", "You have solid taste and watch regularly.", "#20c997"),
    4: TierInfo(4, "The Eclectic Explorer", "\U0001F30A", "You appreciate variety across genres.", "#0dcaf0"),
    5: TierInfo(5, "The Dedicated Cinephile", "\U0001F943", "You dig deeper than most viewers.", "#6f42c1"),
    6: TierInfo(6, "The Refined Curator", "\U0001F3A9", "Your taste is sharp and intentional.", "#d63384"),
    7: TierInfo(7, "The Cinema Connoisseur", "\U0001F377", "You have excellent, well-rounded taste.", "#ffc107"),
    8: TierInfo(8, "The Elite Cinephile", "\U0001F39E️", "Your picks show deep film appreciation.", "#198754"),
    9: TierInfo(9, "The Master Curator", "\U0001F441️", "You see cinema on another level.", "#dc3545"),
    10: TierInfo(10, "The Cinema Deity", "\U0001F3C6", "Your taste is legendary. Absolute peak.", "#ffd700"),
})

# Lowercased director names, matched exactly
AUTEUR_DIRECTORS = frozenset({
    "stanley kubrick", "alfred hitchcock", "martin scorsese", "quentin tarantino",
    "christopher nolan", "david lynch", "wes anderson", "paul thomas anderson",
    "denis villeneuve", "coen brothers", "david fincher", "ridley scott",
    "francis ford coppola", "steven spielberg", "akira kurosawa", "ingmar bergman",
    "andrei tarkovsky", "federico fellini", "wong kar-wai", "terrence malick",
    "sofia coppola", "darren aronofsky", "guillermo del toro", "bong joon-ho",
    "park chan-wook", "hayao miyazaki", "charlie kaufman", "spike jonze",
    "alfonso cuarón", "alejandro gonzález iñárritu", "lars von trier",
    "michael haneke", "jean-luc godard", "orson welles", "billy wilder", "fritz lang",
    "f.w. murnau", "john ford", "sergio leone", "greta gerwig", "ari aster",
    "robert eggers", "yorgos lanthimos", "gaspar noé", "nicolas winding refn",
    "joel coen", "ethan coen", "agnès varda", "yasujirō ozu",
    "krzysztof kieślowski", "apichatpong weerasethakul", "chantal akerman",
})

# Substrings of a lowercased title
FRANCHISE_KEYWORDS = (
    "marvel", "avengers", "spider-man", "batman", "superman", "dc extended",
    "fast & furious", "fast and furious", "transformers", "jurassic", "star wars",
    "harry potter", "lord of the rings", "hobbit", "pirates of the caribbean",
    "mission impossible", "mission: impossible", "james bond", "007", "x-men",
    "fantastic four", "teenage mutant ninja", "minions",
)


def tier_for_level(level: int) -> TierInfo:
    """Display record for a level, clamped into 1..10."""
    return TIERS[max(1, min(10, level))]

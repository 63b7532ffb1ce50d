"""Exception types raised by the ranking pipeline."""


class CinephileTierError(Exception):
    """Base class for every error this package raises on purpose."""


class NotFoundError(CinephileTierError):
    """The requested profile or film does not exist upstream."""


class InvalidUsernameError(CinephileTierError, ValueError):
    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Invalid username: '{username}'")


class ProfileNotFoundError(NotFoundError):
    def __init__(self, username: str):
        self.username = username
        super().__init__(f'User "{username}" not found on Letterboxd')


class FilmNotFoundError(NotFoundError):
    def __init__(self, tmdb_id: int):
        self.tmdb_id = tmdb_id
        super().__init__(f"Film {tmdb_id} not found on TMDB")


class UpstreamUnavailableError(CinephileTierError):
    """Network failure, timeout or non-2xx response from Letterboxd or TMDB."""


class ConfigurationError(CinephileTierError):
    """External credentials (the TMDB API key) are missing."""


class InsufficientFilmsError(CinephileTierError):
    """Fewer than four films could be produced for scoring."""

    def __init__(self, found: int, required: int = 4, detail: str | None = None):
        self.found = found
        self.required = required
        message = f"Need {required} films to rank, could only produce {found}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

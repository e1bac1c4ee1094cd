"""Logical store paths shared by every client."""

GAMES = "games"
PLAYERS = "players"
MATCHES = "matches"
PLAYER_GROUPS = "playerGroups"
SESSIONS = "sessions"
SESSIONS_BY_CODE = "sessionsByCode"


def is_segment(value: str) -> bool:
    return bool(value) and "/" not in value


def join(*segments: str) -> str:
    """Join path segments, rejecting empty segments and embedded separators."""
    for segment in segments:
        if not is_segment(segment):
            raise ValueError(f"Invalid path segment: {segment!r}")
    return "/".join(segments)


def split(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]

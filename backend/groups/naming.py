"""Display names for player groups."""

from collections.abc import Iterable

NO_PLAYERS = "No players"


def group_name(names: Iterable[str]) -> str:
    """Join member names: "A", "A & B", "A, B, & C".

    Names are sorted case-insensitively so the result depends only on the members.
    """
    ordered = sorted(names, key=lambda name: (name.casefold(), name))
    if not ordered:
        return NO_PLAYERS
    if len(ordered) == 1:
        return ordered[0]
    if len(ordered) == 2:  # noqa: PLR2004
        return f"{ordered[0]} & {ordered[1]}"
    return f"{', '.join(ordered[:-1])}, & {ordered[-1]}"

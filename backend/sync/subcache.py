"""Derived match lists keyed by game, player or group id."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.models import Match


class MatchSubCache:
    """Match lists filled as a side effect of other fetches.

    Entries have no TTL; they live until discarded or until the whole cache is
    cleared on a match mutation.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[str, list[Match]] = {}

    def get(self, key: str) -> list[Match] | None:
        matches = self._entries.get(key)
        return list(matches) if matches is not None else None

    def put(self, key: str, matches: list[Match]) -> None:
        self._entries[key] = list(matches)

    def discard(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

"""Reconstruct player groups from recent match history.

A group is the exact set of players who played a match together: matches are
bucketed by their unordered player-id set, so {A, B} and {B, A} share a group
while {A, B, C} is a different one. Group identity is that set, never the
surrogate id, which may change between refreshes.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from groups.naming import group_name
from shared.clock import utc_now

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from shared.clock import Clock
    from shared.dal.models import Game, Match, Player, PlayerGroup

DEFAULT_GROUP_WINDOW = timedelta(days=30)


@dataclass(frozen=True)
class DerivedGroup:
    """One bucket of matches sharing the same player set, newest match first."""

    player_ids: frozenset[str]
    name: str
    matches: tuple[Match, ...]
    game_ids: frozenset[str]

    @property
    def sorted_player_ids(self) -> list[str]:
        return sorted(self.player_ids)

    @property
    def last_played(self) -> datetime:
        return self.matches[0].date


class GroupAction(StrEnum):
    CREATE = "create"
    RENAME = "rename"
    REUSE = "reuse"


@dataclass(frozen=True)
class GroupAssignment:
    derived: DerivedGroup
    existing: PlayerGroup | None
    action: GroupAction


class GroupDeriver:
    """Stateless transform from a match window to group buckets."""

    def __init__(
        self,
        window: timedelta = DEFAULT_GROUP_WINDOW,
        clock: Clock = utc_now,
        *,
        rename_existing: bool = True,
    ) -> None:
        self._window = window
        self._clock = clock
        self._rename_existing = rename_existing

    @property
    def window(self) -> timedelta:
        return self._window

    def window_start(self) -> datetime:
        return self._clock() - self._window

    def derive(
        self,
        matches: Iterable[Match],
        players: Iterable[Player],
        games: Iterable[Game] | None = None,
    ) -> list[DerivedGroup]:
        """Bucket matches inside the window by player set and name each bucket.

        Unknown player ids are named by their id. When games are given, only
        games that still exist are listed in game_ids. Groups come back most
        recently played first.
        """
        cutoff = self.window_start()
        names = {player.id: player.name for player in players}
        known_games = {game.id for game in games} if games is not None else None

        buckets: dict[frozenset[str], list[Match]] = defaultdict(list)
        for match in matches:
            if match.date >= cutoff:
                buckets[match.player_set].append(match)

        derived: list[DerivedGroup] = []
        for player_ids, bucket in buckets.items():
            bucket.sort(key=lambda match: match.date, reverse=True)
            derived.append(
                DerivedGroup(
                    player_ids=player_ids,
                    name=group_name(names.get(player_id, player_id) for player_id in player_ids),
                    matches=tuple(bucket),
                    game_ids=frozenset(
                        match.game_id for match in bucket if known_games is None or match.game_id in known_games
                    ),
                ),
            )
        derived.sort(key=lambda group: (-group.last_played.timestamp(), group.name))
        return derived

    def reconcile(self, derived: Iterable[DerivedGroup], existing: Iterable[PlayerGroup]) -> list[GroupAssignment]:
        """Pair each bucket with a stored group of the same player set.

        Buckets without a stored group are created. A stored group whose name
        no longer matches its members is renamed unless renaming is disabled.
        When the store holds duplicates for a set, the lowest id wins.
        """
        by_key: dict[frozenset[str], PlayerGroup] = {}
        for group in sorted(existing, key=lambda group: group.id):
            by_key.setdefault(group.key, group)

        assignments: list[GroupAssignment] = []
        for group in derived:
            stored = by_key.get(group.player_ids)
            if stored is None:
                action = GroupAction.CREATE
            elif stored.name != group.name and self._rename_existing:
                action = GroupAction.RENAME
            else:
                action = GroupAction.REUSE
            assignments.append(GroupAssignment(derived=group, existing=stored, action=action))
        return assignments

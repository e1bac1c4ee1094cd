"""Match winners and per-game champions."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.dal.models import Game, Match, Player


def compute_winner_id(match: Match, game: Game | None) -> str | None:
    """Derive the winner from scores under the game's rules.

    Binary-score games are won by the player scoring 1. Otherwise the highest
    (or lowest, when highest_score_wins is off) score wins, first player on ties.
    Falls back to the explicit winner_id when scores cannot decide.
    """
    if game is None or not match.scores:
        return match.winner_id

    order = match.ordered_player_ids
    if game.is_binary_score:
        index = next((i for i, score in enumerate(match.scores) if score == 1), None)
    else:
        pick = max if game.highest_score_wins else min
        index = pick(range(len(match.scores)), key=lambda i: match.scores[i])

    if index is not None and index < len(order):
        return order[index]
    return match.winner_id


@dataclass(frozen=True)
class GameChampion:
    game_id: str
    win_count: int = 0
    player_ids: list[str] = field(default_factory=list)
    player_names: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str | None:
        if not self.player_names:
            return None
        return " & ".join(self.player_names)


def game_champions(
    games: Iterable[Game],
    matches: Iterable[Match],
    players: Iterable[Player],
) -> dict[str, GameChampion]:
    """Most wins per game; ties keep every leader."""
    names = {player.id: player.name for player in players}
    by_game: dict[str, list[Match]] = {}
    for match in matches:
        by_game.setdefault(match.game_id, []).append(match)

    champions: dict[str, GameChampion] = {}
    for game in games:
        wins = Counter(
            winner for match in by_game.get(game.id, []) if (winner := compute_winner_id(match, game)) is not None
        )
        if not wins:
            champions[game.id] = GameChampion(game_id=game.id)
            continue
        top = max(wins.values())
        leaders = sorted(player_id for player_id, count in wins.items() if count == top)
        champions[game.id] = GameChampion(
            game_id=game.id,
            win_count=top,
            player_ids=leaders,
            player_names=sorted((names[pid] for pid in leaders if pid in names), key=str.casefold),
        )
    return champions

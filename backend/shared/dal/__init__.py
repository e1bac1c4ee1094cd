"""Data access layer: persistence models and store-backed repositories."""

from shared.dal.models import Game, Match, Player, PlayerGroup, Session
from shared.dal.repositories import (
    GameRepository,
    MatchRepository,
    PlayerGroupRepository,
    PlayerRepository,
)

__all__ = [
    "Game",
    "GameRepository",
    "Match",
    "MatchRepository",
    "Player",
    "PlayerGroup",
    "PlayerGroupRepository",
    "PlayerRepository",
    "Session",
]

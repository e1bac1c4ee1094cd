"""Persistence models for games, players, matches, player groups and sessions.

Documents keep the camelCase field names the other clients write, so every
model aliases its fields and is dumped with ``by_alias=True``. Timestamps are
stored as epoch milliseconds.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Self

from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    PlainSerializer,
    computed_field,
    field_validator,
    model_validator,
)


def _from_epoch_millis(value: object) -> object:
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_epoch_millis(value: datetime) -> int:
    return round(value.timestamp() * 1000)


EpochMillis = Annotated[
    datetime,
    BeforeValidator(_from_epoch_millis),
    PlainSerializer(_to_epoch_millis, return_type=int),
]


def _unique_in_order(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


class StoreModel(BaseModel):
    """Base for records stored under ``<collection>/<id>``."""

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    id: str

    @classmethod
    def from_document(cls, record_id: str, data: dict[str, Any]) -> Self:
        return cls.model_validate({**data, "id": record_id})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Game(StoreModel):
    title: str
    is_binary_score: bool = Field(default=False, alias="isBinaryScore")
    supported_player_counts: list[int] = Field(alias="supportedPlayerCounts")
    created_by_id: str | None = Field(default=None, alias="createdByID")
    count_all_scores: bool = Field(default=False, alias="countAllScores")
    count_losers_only: bool = Field(default=False, alias="countLosersOnly")
    highest_score_wins: bool = Field(default=True, alias="highestScoreWins")
    highest_round_score_wins: bool = Field(default=True, alias="highestRoundScoreWins")
    winning_conditions: str = Field(default="", alias="winningConditions")
    creation_date: EpochMillis | None = Field(default=None, alias="creationDate")

    @field_validator("supported_player_counts")
    @classmethod
    def _validate_player_counts(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("supported_player_counts must not be empty")
        if any(count < 1 for count in value):
            raise ValueError("supported_player_counts entries must be >= 1")
        return sorted(set(value))


class Player(StoreModel):
    name: str
    photo_data: str | None = Field(default=None, alias="photoData")
    color_data: str | None = Field(default=None, alias="colorData")
    google_user_id: str | None = Field(default=None, alias="googleUserID")
    owner_id: str | None = Field(default=None, alias="ownerID")
    email: str | None = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("player name must not be empty")
        return value


class Match(StoreModel):
    game_id: str = Field(alias="gameID")
    date: EpochMillis
    player_ids: list[str] = Field(alias="playerIDs")
    player_order: list[str] = Field(default_factory=list, alias="playerOrder")
    scores: list[float] = Field(default_factory=list)
    rounds: list[list[float]] = Field(default_factory=list)
    winner_id: str | None = Field(default=None, alias="winnerID")
    is_multiplayer: bool = Field(default=False, alias="isMultiplayer")
    status: str = "active"
    created_by_id: str | None = Field(default=None, alias="createdByID")
    session_code: str | None = Field(default=None, alias="sessionCode")
    last_modified: EpochMillis | None = Field(default=None, alias="lastModified")

    @field_validator("player_ids")
    @classmethod
    def _validate_player_ids(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("a match needs at least one player")
        if len(set(value)) != len(value):
            raise ValueError("player_ids must be unique")
        return value

    @model_validator(mode="after")
    def _validate_winner(self) -> Self:
        if self.winner_id is not None and self.winner_id not in self.player_ids:
            raise ValueError(f"winner '{self.winner_id}' is not a player in this match")
        return self

    @computed_field(alias="playerIDsString")
    @property
    def player_ids_string(self) -> str:
        """Sorted, comma-joined player ids; lets the store answer equality queries."""
        return ",".join(sorted(self.player_ids))

    @property
    def player_set(self) -> frozenset[str]:
        return frozenset(self.player_ids)

    @property
    def ordered_player_ids(self) -> list[str]:
        """Player ids in score order (falls back to player_ids when no order was recorded)."""
        return self.player_order or self.player_ids


class PlayerGroup(StoreModel):
    """Derived aggregate identified by the exact set of its players."""

    name: str
    player_ids: list[str] = Field(alias="playerIDs")
    created_by_id: str | None = Field(default=None, alias="createdByID")

    @field_validator("player_ids")
    @classmethod
    def _canonical_player_ids(cls, value: list[str]) -> list[str]:
        return sorted(set(value))

    @property
    def key(self) -> frozenset[str]:
        return frozenset(self.player_ids)


class Session(StoreModel):
    """Ephemeral, code-addressable pairing of participants."""

    code: str
    participant_ids: list[str] = Field(default_factory=list, alias="participantIDs")
    created_at: EpochMillis = Field(alias="createdAt")
    created_by_id: str = Field(alias="createdByID")
    last_activity_at: EpochMillis = Field(alias="lastActivityAt")
    game_id: str | None = Field(default=None, alias="gameID")

    @field_validator("participant_ids")
    @classmethod
    def _set_semantics(cls, value: list[str]) -> list[str]:
        return _unique_in_order(value)

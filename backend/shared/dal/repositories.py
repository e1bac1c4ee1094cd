"""Store-backed repositories for games, players, matches and player groups.

Each repository is a thin request/response wrapper around one collection of
the RemoteStore. Records that fail validation are skipped on list reads so a
single malformed document written by another client cannot hide the rest.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

import structlog
from pydantic import ValidationError

from shared.dal.models import Game, Match, Player, PlayerGroup, StoreModel
from shared.store import paths

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from shared.store.protocol import RemoteStore

logger = structlog.get_logger()


class CollectionRepository:
    collection: ClassVar[str]
    model: ClassVar[type[StoreModel]]

    def __init__(self, store: RemoteStore) -> None:
        self._store = store

    async def new_id(self) -> str:
        return await self._store.push(self.collection)

    async def get(self, record_id: str) -> StoreModel | None:
        data = await self._store.get(paths.join(self.collection, record_id))
        if not data:
            return None
        return self._parse(record_id, data)

    async def list_all(self) -> list[StoreModel]:
        data = await self._store.get(self.collection) or {}
        return list(self._parse_many(data.items()))

    async def save(self, item: StoreModel) -> None:
        await self._store.set(paths.join(self.collection, item.id), item.to_document())

    async def delete(self, record_id: str) -> None:
        await self._store.remove(paths.join(self.collection, record_id))

    def _parse(self, record_id: str, data: Any) -> StoreModel | None:
        if not isinstance(data, dict):
            logger.warning("skipping non-document record", collection=self.collection, record_id=record_id)
            return None
        try:
            return self.model.from_document(record_id, data)
        except ValidationError as exc:
            logger.warning(
                "skipping malformed record",
                collection=self.collection,
                record_id=record_id,
                errors=exc.error_count(),
            )
            return None

    def _parse_many(self, items: Iterable[tuple[str, Any]]) -> Iterable[StoreModel]:
        for record_id, data in items:
            parsed = self._parse(record_id, data)
            if parsed is not None:
                yield parsed


class GameRepository(CollectionRepository):
    collection = paths.GAMES
    model = Game

    async def list_all(self) -> list[Game]:
        games = await super().list_all()
        return sorted(games, key=lambda game: game.title.casefold())


class PlayerRepository(CollectionRepository):
    collection = paths.PLAYERS
    model = Player


def _newest_first(matches: Iterable[Match]) -> list[Match]:
    return sorted(matches, key=lambda match: match.date, reverse=True)


class MatchRepository(CollectionRepository):
    """Matches are filtered client-side; the store only answers whole-collection reads."""

    collection = paths.MATCHES
    model = Match

    async def list_all(self) -> list[Match]:
        return _newest_first(await super().list_all())

    async def list_for_game(self, game_id: str) -> list[Match]:
        return [match for match in await self.list_all() if match.game_id == game_id]

    async def list_for_player(self, player_id: str) -> list[Match]:
        return [match for match in await self.list_all() if player_id in match.player_ids]

    async def list_recent(self, since: datetime, limit: int = 500) -> list[Match]:
        return [match for match in await self.list_all() if match.date >= since][:limit]


class PlayerGroupRepository(CollectionRepository):
    collection = paths.PLAYER_GROUPS
    model = PlayerGroup

    async def rename(self, group_id: str, name: str) -> None:
        await self._store.update(paths.join(self.collection, group_id), {"name": name})

"""DataCache: the app-wide cache service object.

Constructed once at startup and passed to whatever needs entity data. Owns
one CacheController per entity family, the derived match sub-caches and the
subscription listeners that turn store push signals into invalidations.
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog

from groups.deriver import DEFAULT_GROUP_WINDOW, GroupAction, GroupAssignment, GroupDeriver
from shared.clock import utc_now
from shared.dal.models import PlayerGroup
from shared.dal.repositories import GameRepository, MatchRepository, PlayerGroupRepository, PlayerRepository
from shared.store import paths
from sync.controller import DEFAULT_CACHE_TIMEOUT, DEFAULT_SIGNAL_DEBOUNCE_SECONDS, CacheController
from sync.debounce import Debouncer
from sync.single_flight import SingleFlight
from sync.subcache import MatchSubCache

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from shared.clock import Clock
    from shared.dal.models import Game, Match, Player
    from shared.settings import SyncSettings
    from shared.store.protocol import ChangeEvent, RemoteStore, Subscription

DEFAULT_PLAYER_DEBOUNCE_SECONDS = 2.0

# Entity types whose push signals the cache listens to. Group records are
# written by the group refresh itself and are not subscribed.
SUBSCRIBED_ENTITY_TYPES = (paths.GAMES, paths.PLAYERS, paths.MATCHES)

logger = structlog.get_logger()


class DataCache:
    def __init__(
        self,
        store: RemoteStore,
        *,
        clock: Clock = utc_now,
        cache_timeout: timedelta = DEFAULT_CACHE_TIMEOUT,
        group_refresh: timedelta = DEFAULT_CACHE_TIMEOUT,
        group_window: timedelta = DEFAULT_GROUP_WINDOW,
        player_debounce_seconds: float = DEFAULT_PLAYER_DEBOUNCE_SECONDS,
        fetch_debounce_seconds: float = 0.0,
        signal_debounce_seconds: float = DEFAULT_SIGNAL_DEBOUNCE_SECONDS,
    ) -> None:
        self._store = store
        self._clock = clock
        self.game_repository = GameRepository(store)
        self.player_repository = PlayerRepository(store)
        self.match_repository = MatchRepository(store)
        self.group_repository = PlayerGroupRepository(store)
        self._deriver = GroupDeriver(window=group_window, clock=clock)

        self.games = CacheController(
            paths.GAMES,
            self.game_repository.list_all,
            point_loader=self.game_repository.get,
            clock=clock,
            cache_timeout=cache_timeout,
            debounce_seconds=fetch_debounce_seconds,
            signal_debounce_seconds=signal_debounce_seconds,
            sort_key=lambda game: game.title.casefold(),
        )
        self.players = CacheController(
            paths.PLAYERS,
            self.player_repository.list_all,
            point_loader=self.player_repository.get,
            clock=clock,
            cache_timeout=cache_timeout,
            debounce_seconds=player_debounce_seconds,
            signal_debounce_seconds=signal_debounce_seconds,
        )
        self.groups = CacheController(
            paths.PLAYER_GROUPS,
            self._load_groups,
            clock=clock,
            cache_timeout=group_refresh,
            debounce_seconds=fetch_debounce_seconds,
            signal_debounce_seconds=signal_debounce_seconds,
        )

        self.matches_by_game = MatchSubCache("matches_by_game")
        self.matches_by_player = MatchSubCache("matches_by_player")
        self.matches_by_group = MatchSubCache("matches_by_group")
        # Bumped on every wholesale invalidation so a fetch that started before
        # a mutation cannot repopulate a sub-cache with pre-mutation data.
        self._match_generation = 0
        self._match_flights = SingleFlight()
        self._match_signal_debouncer = Debouncer(
            signal_debounce_seconds,
            self._apply_match_signal,
            name="matches.signal",
        )

        self._subscriptions: list[Subscription] = []
        self._listener_tasks: list[asyncio.Task[None]] = []

    @classmethod
    def from_settings(cls, store: RemoteStore, settings: SyncSettings, clock: Clock = utc_now) -> DataCache:
        return cls(
            store,
            clock=clock,
            cache_timeout=settings.cache_timeout,
            group_refresh=settings.group_refresh,
            group_window=settings.group_window,
            player_debounce_seconds=settings.player_debounce_seconds,
            fetch_debounce_seconds=settings.fetch_debounce_seconds,
            signal_debounce_seconds=settings.signal_debounce_seconds,
        )

    # Games

    async def fetch_games(self, *, force_refresh: bool = False) -> list[Game]:
        return await self.games.fetch(force_refresh=force_refresh)

    async def save_game(self, game: Game) -> Game:
        await self.game_repository.save(game)
        self.games.upsert(game)
        logger.info("game saved", game_id=game.id)
        return game

    async def delete_game(self, game_id: str) -> None:
        await self.game_repository.delete(game_id)
        self.games.discard(game_id)
        self.matches_by_game.discard(game_id)
        logger.info("game deleted", game_id=game_id)

    # Players

    async def fetch_players(self, *, force_refresh: bool = False) -> list[Player]:
        return await self.players.fetch(force_refresh=force_refresh)

    async def fetch_player(self, player_id: str) -> Player | None:
        """Point read one player and merge it into the cache without a full refresh."""
        return await self.players.refresh_record(player_id)

    def get_cached_player(self, player_id: str) -> Player | None:
        return self.players.get(player_id)

    async def save_player(self, player: Player) -> Player:
        await self.player_repository.save(player)
        self.players.upsert(player)
        logger.info("player saved", player_id=player.id)
        return player

    async def delete_player(self, player_id: str) -> None:
        await self.player_repository.delete(player_id)
        self.players.discard(player_id)
        self.matches_by_player.discard(player_id)
        logger.info("player deleted", player_id=player_id)

    # Matches

    async def fetch_matches_for_game(self, game_id: str, *, force_refresh: bool = False) -> list[Match]:
        if not force_refresh and (cached := self.matches_by_game.get(game_id)) is not None:
            return cached
        return await self._fill_sub_cache(
            self.matches_by_game,
            game_id,
            lambda: self.match_repository.list_for_game(game_id),
        )

    async def fetch_matches_for_player(self, player_id: str, *, force_refresh: bool = False) -> list[Match]:
        if not force_refresh and (cached := self.matches_by_player.get(player_id)) is not None:
            return cached
        return await self._fill_sub_cache(
            self.matches_by_player,
            player_id,
            lambda: self.match_repository.list_for_player(player_id),
        )

    def get_game_matches(self, game_id: str) -> list[Match] | None:
        return self.matches_by_game.get(game_id)

    def get_player_matches(self, player_id: str) -> list[Match] | None:
        return self.matches_by_player.get(player_id)

    def get_group_matches(self, group_id: str) -> list[Match] | None:
        return self.matches_by_group.get(group_id)

    async def save_match(self, match: Match) -> Match:
        stamped = match.model_copy(update={"last_modified": self._clock()})
        await self.match_repository.save(stamped)
        self.invalidate_matches()
        logger.info("match saved", match_id=match.id, game_id=match.game_id)
        return stamped

    async def delete_match(self, match_id: str) -> None:
        await self.match_repository.delete(match_id)
        self.invalidate_matches()
        logger.info("match deleted", match_id=match_id)

    def invalidate_matches(self) -> None:
        """Drop every match sub-cache and mark groups stale."""
        self._match_generation += 1
        self.matches_by_game.clear()
        self.matches_by_player.clear()
        self.matches_by_group.clear()
        self.groups.invalidate()

    # Groups

    async def fetch_player_groups(self, *, force_refresh: bool = False) -> list[PlayerGroup]:
        return await self.groups.fetch(force_refresh=force_refresh)

    # Push signals

    def handle_change(self, event: ChangeEvent) -> asyncio.Future[object] | None:
        """Route a push signal to the cache it invalidates. Returns the debounce future."""
        if event.entity_type == paths.GAMES:
            return self.games.handle_signal(event)
        if event.entity_type == paths.PLAYERS:
            return self.players.handle_signal(event)
        if event.entity_type == paths.MATCHES:
            return self._match_signal_debouncer.trigger()
        logger.debug("ignoring change event", entity_type=event.entity_type)
        return None

    def start(self) -> None:
        """Subscribe to push signals for games, players and matches."""
        if self._listener_tasks:
            return
        for entity_type in SUBSCRIBED_ENTITY_TYPES:
            subscription = self._store.subscribe(entity_type)
            self._subscriptions.append(subscription)
            self._listener_tasks.append(asyncio.create_task(self._listen(subscription)))
        logger.info("data cache listening", entity_types=list(SUBSCRIBED_ENTITY_TYPES))

    async def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        for task in self._listener_tasks:
            task.cancel()
        for task in self._listener_tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._subscriptions.clear()
        self._listener_tasks.clear()
        self._match_signal_debouncer.cancel()
        self._match_flights.cancel_all()
        for controller in (self.games, self.players, self.groups):
            controller.close()

    async def _listen(self, subscription: Subscription) -> None:
        async for event in subscription:
            try:
                self.handle_change(event)
            except Exception:
                logger.exception("failed to handle change event", entity_type=event.entity_type)

    async def _apply_match_signal(self) -> None:
        self.invalidate_matches()
        logger.debug("match caches invalidated by push signal")

    async def _fill_sub_cache(
        self,
        cache: MatchSubCache,
        key: str,
        load: Callable[[], Awaitable[list[Match]]],
    ) -> list[Match]:
        generation = self._match_generation
        matches = await self._match_flights.do(f"{cache.name}:{key}", load)
        if generation == self._match_generation:
            cache.put(key, matches)
        return list(matches)

    async def _load_groups(self) -> list[PlayerGroup]:
        """Derive groups from the recent match window and persist new or renamed ones."""
        generation = self._match_generation
        matches = await self.match_repository.list_recent(self._deriver.window_start())
        games = await self.games.fetch()
        players = await self.players.fetch()
        derived = self._deriver.derive(matches, players, games)
        assignments = self._deriver.reconcile(derived, await self.group_repository.list_all())

        groups: list[PlayerGroup] = []
        group_matches: dict[str, list[Match]] = {}
        for assignment in assignments:
            group = await self._apply_assignment(assignment)
            groups.append(group)
            group_matches[group.id] = list(assignment.derived.matches)

        if generation == self._match_generation:
            self.matches_by_group.clear()
            for group_id, bucket in group_matches.items():
                self.matches_by_group.put(group_id, bucket)
        logger.debug("player groups derived", count=len(groups))
        return groups

    async def _apply_assignment(self, assignment: GroupAssignment) -> PlayerGroup:
        derived, existing = assignment.derived, assignment.existing
        if existing is not None and assignment.action == GroupAction.REUSE:
            return existing
        if existing is not None and assignment.action == GroupAction.RENAME:
            await self.group_repository.rename(existing.id, derived.name)
            logger.info("player group renamed", group_id=existing.id, name=derived.name)
            return existing.model_copy(update={"name": derived.name})
        group = PlayerGroup(
            id=await self.group_repository.new_id(),
            name=derived.name,
            player_ids=derived.sorted_player_ids,
        )
        await self.group_repository.save(group)
        logger.info("player group created", group_id=group.id, name=group.name)
        return group

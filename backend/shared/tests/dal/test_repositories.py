from datetime import timedelta

import pytest

from shared.dal import (
    Game,
    GameRepository,
    MatchRepository,
    Player,
    PlayerGroup,
    PlayerGroupRepository,
    PlayerRepository,
)
from shared.store import InMemoryRemoteStore
from shared.tests.mocks import EPOCH, game_doc, match_doc, player_doc


@pytest.fixture
def store():
    return InMemoryRemoteStore(
        initial={
            "games": {"g1": game_doc("spades"), "g2": game_doc("Hearts")},
            "players": {
                "p1": player_doc("Alice", googleUserID="google-1"),
                "p2": player_doc("Bob"),
                "bad": {"name": ""},
            },
            "matches": {
                "m1": match_doc("g1", ["p1", "p2"], EPOCH - timedelta(days=40)),
                "m2": match_doc("g2", ["p2", "p1"], EPOCH - timedelta(days=1)),
                "m3": match_doc("g1", ["p2"], EPOCH),
            },
        },
    )


class TestCollectionRepository:
    async def test_get_returns_model(self, store):
        player = await PlayerRepository(store).get("p1")

        assert player == Player(id="p1", name="Alice", google_user_id="google-1")

    async def test_get_missing_returns_none(self, store):
        assert await PlayerRepository(store).get("nobody") is None

    async def test_list_all_skips_malformed_records(self, store):
        players = await PlayerRepository(store).list_all()

        assert {player.id for player in players} == {"p1", "p2"}

    async def test_save_and_delete(self, store):
        repo = GameRepository(store)
        await repo.save(Game(id="g3", title="Rummy", supported_player_counts=[2]))

        assert (await repo.get("g3")).title == "Rummy"

        await repo.delete("g3")
        assert await repo.get("g3") is None

    async def test_new_id_is_unique(self, store):
        repo = GameRepository(store)

        assert await repo.new_id() != await repo.new_id()


class TestGameRepository:
    async def test_sorted_by_title_case_insensitively(self, store):
        games = await GameRepository(store).list_all()

        assert [game.title for game in games] == ["Hearts", "spades"]


class TestMatchRepository:
    async def test_newest_first(self, store):
        matches = await MatchRepository(store).list_all()

        assert [match.id for match in matches] == ["m3", "m2", "m1"]

    async def test_list_for_game(self, store):
        matches = await MatchRepository(store).list_for_game("g1")

        assert [match.id for match in matches] == ["m3", "m1"]

    async def test_list_for_player(self, store):
        matches = await MatchRepository(store).list_for_player("p1")

        assert [match.id for match in matches] == ["m2", "m1"]

    async def test_list_recent(self, store):
        matches = await MatchRepository(store).list_recent(EPOCH - timedelta(days=30))

        assert [match.id for match in matches] == ["m3", "m2"]

    async def test_list_recent_limit(self, store):
        matches = await MatchRepository(store).list_recent(EPOCH - timedelta(days=60), limit=1)

        assert [match.id for match in matches] == ["m3"]


class TestPlayerGroupRepository:
    async def test_saved_group_player_ids_are_canonical(self, store):
        repo = PlayerGroupRepository(store)
        await repo.save(PlayerGroup(id="grp1", name="Alice & Bob", player_ids=["p2", "p1"]))

        assert (await store.get("playerGroups/grp1"))["playerIDs"] == ["p1", "p2"]

    async def test_rename(self, store):
        repo = PlayerGroupRepository(store)
        await repo.save(PlayerGroup(id="grp1", name="old", player_ids=["p1", "p2"]))

        await repo.rename("grp1", "Alice & Bob")

        group = await repo.get("grp1")
        assert group.name == "Alice & Bob"
        assert group.player_ids == ["p1", "p2"]

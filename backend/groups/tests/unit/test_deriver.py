from datetime import timedelta

from groups.deriver import GroupAction, GroupDeriver
from shared.dal.models import Game, Match, Player, PlayerGroup
from shared.tests.mocks import EPOCH, FakeClock

PLAYERS = [Player(id="a", name="Alice"), Player(id="b", name="Bob"), Player(id="c", name="Cid")]


def _match(match_id: str, player_ids: list[str], days_ago: float, game_id: str = "g1") -> Match:
    return Match(id=match_id, game_id=game_id, player_ids=player_ids, date=EPOCH - timedelta(days=days_ago))


def _deriver(**kwargs) -> GroupDeriver:
    return GroupDeriver(clock=FakeClock(), **kwargs)


class TestDerive:
    def test_buckets_by_unordered_player_set(self):
        matches = [_match("m1", ["a", "b"], 1), _match("m2", ["b", "a"], 2), _match("m3", ["a", "b", "c"], 3)]

        groups = _deriver().derive(matches, PLAYERS)

        assert len(groups) == 2
        assert [group.name for group in groups] == ["Alice & Bob", "Alice, Bob, & Cid"]
        assert [m.id for m in groups[0].matches] == ["m1", "m2"]
        assert groups[0].sorted_player_ids == ["a", "b"]

    def test_subset_is_a_different_group(self):
        matches = [_match("m1", ["a", "b", "c"], 1), _match("m2", ["a", "b"], 1)]

        groups = _deriver().derive(matches, PLAYERS)

        assert {group.player_ids for group in groups} == {frozenset("abc"), frozenset("ab")}

    def test_ignores_matches_outside_window(self):
        matches = [_match("m1", ["a", "b"], 29), _match("m2", ["a", "c"], 31)]

        groups = _deriver().derive(matches, PLAYERS)

        assert [group.name for group in groups] == ["Alice & Bob"]

    def test_custom_window(self):
        deriver = _deriver(window=timedelta(days=7))

        assert deriver.window_start() == EPOCH - timedelta(days=7)
        assert deriver.derive([_match("m1", ["a", "b"], 8)], PLAYERS) == []

    def test_orders_by_most_recent_match(self):
        matches = [_match("m1", ["a", "c"], 5), _match("m2", ["a", "b"], 1), _match("m3", ["a", "c"], 0.5)]

        groups = _deriver().derive(matches, PLAYERS)

        assert [group.name for group in groups] == ["Alice & Cid", "Alice & Bob"]
        assert groups[0].last_played == EPOCH - timedelta(days=0.5)

    def test_unknown_player_named_by_id(self):
        groups = _deriver().derive([_match("m1", ["a", "zz"], 1)], PLAYERS)

        assert groups[0].name == "Alice & zz"

    def test_game_ids_limited_to_known_games(self):
        matches = [_match("m1", ["a", "b"], 1, game_id="g1"), _match("m2", ["a", "b"], 2, game_id="gone")]
        games = [Game(id="g1", title="Hearts", supported_player_counts=[2])]

        groups = _deriver().derive(matches, PLAYERS, games)

        assert groups[0].game_ids == frozenset({"g1"})
        assert len(groups[0].matches) == 2

    def test_no_matches(self):
        assert _deriver().derive([], PLAYERS) == []


class TestReconcile:
    def test_creates_missing_groups(self):
        deriver = _deriver()
        derived = deriver.derive([_match("m1", ["a", "b"], 1)], PLAYERS)

        (assignment,) = deriver.reconcile(derived, [])

        assert assignment.action == GroupAction.CREATE
        assert assignment.existing is None

    def test_reuses_group_with_equal_set(self):
        deriver = _deriver()
        derived = deriver.derive([_match("m1", ["b", "a"], 1)], PLAYERS)
        stored = PlayerGroup(id="grp", name="Alice & Bob", player_ids=["a", "b"])

        (assignment,) = deriver.reconcile(derived, [stored])

        assert assignment.action == GroupAction.REUSE
        assert assignment.existing == stored

    def test_renames_when_member_names_changed(self):
        deriver = _deriver()
        derived = deriver.derive([_match("m1", ["a", "b"], 1)], PLAYERS)
        stored = PlayerGroup(id="grp", name="Alice & Robert", player_ids=["a", "b"])

        (assignment,) = deriver.reconcile(derived, [stored])

        assert assignment.action == GroupAction.RENAME

    def test_rename_can_be_disabled(self):
        deriver = _deriver(rename_existing=False)
        derived = deriver.derive([_match("m1", ["a", "b"], 1)], PLAYERS)
        stored = PlayerGroup(id="grp", name="Alice & Robert", player_ids=["a", "b"])

        (assignment,) = deriver.reconcile(derived, [stored])

        assert assignment.action == GroupAction.REUSE

    def test_lowest_id_wins_among_duplicates(self):
        deriver = _deriver()
        derived = deriver.derive([_match("m1", ["a", "b"], 1)], PLAYERS)
        duplicates = [
            PlayerGroup(id="grp-2", name="Alice & Bob", player_ids=["a", "b"]),
            PlayerGroup(id="grp-1", name="Alice & Bob", player_ids=["b", "a"]),
        ]

        (assignment,) = deriver.reconcile(derived, duplicates)

        assert assignment.existing.id == "grp-1"

    def test_superset_group_is_not_reused(self):
        deriver = _deriver()
        derived = deriver.derive([_match("m1", ["a", "b"], 1)], PLAYERS)
        stored = PlayerGroup(id="grp", name="Alice, Bob, & Cid", player_ids=["a", "b", "c"])

        (assignment,) = deriver.reconcile(derived, [stored])

        assert assignment.action == GroupAction.CREATE

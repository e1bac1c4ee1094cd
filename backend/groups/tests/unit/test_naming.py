import pytest

from groups.naming import NO_PLAYERS, group_name


class TestGroupName:
    @pytest.mark.parametrize(
        ("names", "expected"),
        [
            ([], NO_PLAYERS),
            (["Alice"], "Alice"),
            (["Alice", "Bob"], "Alice & Bob"),
            (["Bob", "Alice"], "Alice & Bob"),
            (["Alice", "Bob", "Cid"], "Alice, Bob, & Cid"),
            (["Dee", "Cid", "Bob", "Alice"], "Alice, Bob, Cid, & Dee"),
        ],
    )
    def test_names(self, names, expected):
        assert group_name(names) == expected

    def test_sort_is_case_insensitive(self):
        assert group_name(["bob", "Alice"]) == "Alice & bob"

    def test_accepts_generators(self):
        assert group_name(name for name in ("Bob", "Alice")) == "Alice & Bob"

"""
Tests for stage creation: topology, BYE resolution at build time and input validation.
"""
import pytest

from bracket_engine.errors import ValidationError
from bracket_engine.models.match import MatchStatus
from tests.conftest import match_of

NAMES_8 = [f"T{i}" for i in range(1, 9)]
NAMES_16 = [f"T{i}" for i in range(1, 17)]


def _counts(manager, stage_id):
    """(rounds per group number, match count)"""
    groups = sorted(manager.storage.select("group", {"stage_id": stage_id}), key=lambda g: g.number)
    rounds = [len(manager.storage.select("round", {"group_id": g.id})) for g in groups]
    return rounds, len(manager.storage.select("match", {"stage_id": stage_id}))


class TestSingleElimination:
    """log2(N) rounds, N - 1 matches."""

    def test_eight_participants(self, manager):
        stage = manager.create_stage(1, "Playoffs", "single_elimination", seeding=NAMES_8)
        assert _counts(manager, stage.id) == ([3], 7)
        assert stage.settings["seed_ordering"] == ["inner_outer"]

    def test_first_round_uses_inner_outer(self, manager):
        stage = manager.create_stage(1, "Playoffs", "single_elimination", seeding=NAMES_8)
        first = match_of(manager, stage.id, 1, 1, 1)
        assert first.opponent1 == {"id": 1, "position": 1}
        assert first.opponent2 == {"id": 8, "position": 8}
        assert first.status == MatchStatus.READY
        assert match_of(manager, stage.id, 1, 2, 1).status == MatchStatus.LOCKED

    def test_consolation_final(self, manager):
        stage = manager.create_stage(
            1, "Playoffs", "single_elimination", seeding=NAMES_8, settings={"consolation_final": True}
        )
        assert _counts(manager, stage.id) == ([3, 1], 8)

    def test_size_only_creates_tbd_slots(self, manager):
        stage = manager.create_stage(1, "Playoffs", "single_elimination", settings={"size": 4})
        first = match_of(manager, stage.id, 1, 1, 1)
        assert first.opponent1 == {"id": None, "position": 1}
        assert first.status == MatchStatus.LOCKED
        assert manager.storage.select("participant") == []

    def test_byes_resolved_at_creation(self, manager):
        stage = manager.create_stage(1, "Playoffs", "single_elimination", seeding=["T1", None, None, None])
        final = match_of(manager, stage.id, 1, 2, 1)
        assert final.opponent1 == {"id": 1}
        assert final.opponent2 is None
        assert final.status == MatchStatus.LOCKED

    def test_bye_sends_participant_to_round_two(self, manager):
        stage = manager.create_stage(1, "Playoffs", "single_elimination", seeding=["T1", "T2", "T3", None])
        # inner_outer: (T1, BYE), (T2, T3)
        assert match_of(manager, stage.id, 1, 1, 1).opponent2 is None
        semi_final = match_of(manager, stage.id, 1, 2, 1)
        assert semi_final.opponent1 == {"id": 1}
        assert semi_final.status == MatchStatus.WAITING

    def test_balance_byes(self, manager):
        stage = manager.create_stage(
            1,
            "Playoffs",
            "single_elimination",
            seeding=["T1", "T2", "T3", None, None, None, None, None],
            settings={"balance_byes": True},
        )
        # Every participant gets a BYE when fewer than half the seeds are filled
        assert manager.get_seeding(stage.id) == [
            {"id": 1, "position": 1},
            None,
            {"id": 2, "position": 3},
            None,
            {"id": 3, "position": 5},
            None,
            None,
            None,
        ]

    def test_child_games_created(self, manager):
        stage = manager.create_stage(
            1, "Playoffs", "single_elimination", seeding=NAMES_8[:4], settings={"matches_child_count": 3}
        )
        first = match_of(manager, stage.id, 1, 1, 1)
        games = manager.get_match_games([first.id])
        assert [g.number for g in games] == [1, 2, 3]
        assert games[0].opponent1 == {"id": first.opponent1["id"]}
        assert all(g.status == MatchStatus.READY for g in games)


class TestDoubleElimination:
    def test_sixteen_simple_grand_final(self, manager):
        stage = manager.create_stage(
            1, "Main", "double_elimination", seeding=NAMES_16, settings={"grand_final": "simple"}
        )
        assert _counts(manager, stage.id) == ([4, 6, 1], 30)

    def test_eight_double_grand_final(self, manager):
        stage = manager.create_stage(
            1, "Main", "double_elimination", seeding=NAMES_8, settings={"grand_final": "double"}
        )
        assert _counts(manager, stage.id) == ([3, 4, 2], 15)
        reset = match_of(manager, stage.id, 3, 2, 1)
        assert reset.status == MatchStatus.LOCKED

    def test_no_grand_final(self, manager):
        stage = manager.create_stage(1, "Main", "double_elimination", seeding=NAMES_8)
        assert _counts(manager, stage.id) == ([3, 4], 13)

    def test_default_orderings(self, manager):
        stage = manager.create_stage(1, "Main", "double_elimination", seeding=NAMES_8[:4])
        assert stage.settings["seed_ordering"] == ["inner_outer", "natural"]

    def test_loser_bracket_slots_remember_origin(self, manager):
        stage = manager.create_stage(1, "Main", "double_elimination", seeding=NAMES_8)
        first = match_of(manager, stage.id, 2, 1, 1)
        assert first.opponent1 == {"id": None, "position": 1}
        assert first.opponent2 == {"id": None, "position": 2}

    def test_no_consolation_final(self, manager):
        stage = manager.create_stage(
            1, "Main", "double_elimination", seeding=NAMES_8, settings={"consolation_final": True}
        )
        assert stage.settings["consolation_final"] is False


class TestRoundRobin:
    def test_odd_pool(self, manager):
        stage = manager.create_stage(
            1, "Pools", "round_robin", seeding=["A", "B", "C", "D", "E"], settings={"group_count": 1}
        )
        assert _counts(manager, stage.id) == ([5], 10)

    def test_two_pools_of_four(self, manager):
        stage = manager.create_stage(1, "Pools", "round_robin", seeding=NAMES_8, settings={"group_count": 2})
        assert _counts(manager, stage.id) == ([3, 3], 12)
        assert stage.settings["seed_ordering"] == ["groups.effort_balanced"]
        assert stage.settings["points"] == {"win": 3, "draw": 1, "loss": 0}

    def test_double_mode(self, manager):
        stage = manager.create_stage(
            1,
            "Pools",
            "round_robin",
            seeding=["A", "B", "C", "D"],
            settings={"group_count": 1, "round_robin_mode": "double"},
        )
        assert _counts(manager, stage.id) == ([6], 12)

    def test_group_count_required(self, manager):
        with pytest.raises(ValidationError, match="group count"):
            manager.create_stage(1, "Pools", "round_robin", seeding=["A", "B", "C", "D"])


class TestSwiss:
    def test_only_first_round_created(self, manager):
        stage = manager.create_stage(1, "Swiss", "swiss", seeding=NAMES_8)
        assert _counts(manager, stage.id) == ([1], 4)
        assert stage.settings["round_count"] == 3
        # Half split: seed 1 vs seed 5
        first = match_of(manager, stage.id, 1, 1, 1)
        assert (first.opponent1["id"], first.opponent2["id"]) == (1, 5)


class TestValidation:
    """A rejected stage writes nothing."""

    def test_unknown_type(self, manager):
        with pytest.raises(ValidationError):
            manager.create_stage(1, "X", "ladder", seeding=NAMES_8)

    def test_not_power_of_two(self, manager):
        with pytest.raises(ValidationError):
            manager.create_stage(1, "X", "single_elimination", seeding=NAMES_8[:6], settings={"size": 6})
        assert manager.storage.select("stage") == []

    def test_too_few_participants(self, manager):
        with pytest.raises(ValidationError, match="less than 2"):
            manager.create_stage(1, "X", "single_elimination", settings={"size": 1})

    def test_seeding_larger_than_size(self, manager):
        with pytest.raises(ValidationError):
            manager.create_stage(1, "X", "single_elimination", seeding=NAMES_8, settings={"size": 4})

    def test_duplicate_participant(self, manager):
        with pytest.raises(ValidationError, match="duplicate"):
            manager.create_stage(1, "X", "single_elimination", seeding=["A", "B", "A", "C"])
        assert manager.storage.select("participant") == []
        assert manager.storage.select("stage") == []

    def test_missing_size_and_seeding(self, manager):
        with pytest.raises(ValidationError):
            manager.create_stage(1, "X", "single_elimination")

    def test_duplicate_stage_number(self, manager):
        manager.create_stage(1, "A", "single_elimination", seeding=NAMES_8[:4], number=1)
        with pytest.raises(ValidationError, match="already exists"):
            manager.create_stage(1, "B", "single_elimination", seeding=NAMES_8[:4], number=1)

    def test_stage_numbers_increment(self, manager):
        first = manager.create_stage(1, "A", "single_elimination", seeding=NAMES_8[:4])
        second = manager.create_stage(1, "B", "single_elimination", seeding=NAMES_8[:4])
        assert (first.number, second.number) == (1, 2)

    def test_existing_participants_reused(self, manager):
        manager.create_stage(1, "A", "single_elimination", seeding=NAMES_8[:4])
        manager.create_stage(1, "B", "single_elimination", seeding=NAMES_8[:4])
        assert len(manager.storage.select("participant")) == 4

    def test_unknown_participant_id(self, manager):
        with pytest.raises(ValidationError):
            manager.create_stage(1, "X", "single_elimination", seeding=[1, 2])

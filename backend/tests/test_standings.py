"""
Tests for final standings: elimination tiers and group rankings.
"""
import pytest

from bracket_engine.errors import StateError, ValidationError
from bracket_engine.services.standings_service import default_ranking_formula, group_ranking
from tests.conftest import match_of, play_out, win

NAMES_8 = [f"T{i}" for i in range(1, 9)]


def _ranks(standings):
    return [(row["name"], row["rank"]) for row in standings]


class TestEliminationStandings:
    def test_single_elimination(self, manager):
        stage = manager.create_stage(1, "Cup", "single_elimination", seeding=NAMES_8)
        play_out(manager, stage.id)

        standings = manager.get_final_standings(stage.id)

        assert [row["rank"] for row in standings] == [1, 2, 3, 3, 4, 4, 4, 4]
        assert standings[0] == {"id": 1, "name": "T1", "rank": 1}
        assert standings[1]["name"] == "T2"
        assert {row["name"] for row in standings[2:4]} == {"T3", "T4"}

    def test_consolation_final_splits_semi_final_losers(self, manager):
        stage = manager.create_stage(
            1, "Cup", "single_elimination", seeding=NAMES_8, settings={"consolation_final": True}
        )
        play_out(manager, stage.id)

        standings = manager.get_final_standings(stage.id)

        assert [row["rank"] for row in standings] == [1, 2, 3, 4, 5, 5, 5, 5]
        # (T4, T3) consolation final, won by opponent1
        assert _ranks(standings)[2:4] == [("T4", 3), ("T3", 4)]

    def test_double_elimination(self, manager):
        stage = manager.create_stage(
            1, "Main", "double_elimination", seeding=["T1", "T2", "T3", "T4"], settings={"grand_final": "simple"}
        )
        play_out(manager, stage.id)

        standings = manager.get_final_standings(stage.id)

        assert _ranks(standings) == [("T1", 1), ("T2", 2), ("T4", 3), ("T3", 4)]

    def test_double_elimination_decided_by_reset(self, manager):
        stage = manager.create_stage(
            1, "Main", "double_elimination", seeding=["T1", "T2", "T3", "T4"], settings={"grand_final": "double"}
        )
        for location in [(1, 1, 1), (1, 1, 2), (2, 1, 1), (1, 2, 1), (2, 2, 1)]:
            win(manager, match_of(manager, stage.id, *location).id)
        win(manager, match_of(manager, stage.id, 3, 1, 1).id, "opponent2")
        win(manager, match_of(manager, stage.id, 3, 2, 1).id, "opponent2")

        standings = manager.get_final_standings(stage.id)

        assert _ranks(standings)[:2] == [("T2", 1), ("T1", 2)]

    def test_unfinished_stage(self, manager):
        stage = manager.create_stage(1, "Cup", "single_elimination", seeding=NAMES_8)
        with pytest.raises(StateError, match="not finished"):
            manager.get_final_standings(stage.id)

    def test_ranking_options_rejected(self, manager):
        stage = manager.create_stage(1, "Cup", "single_elimination", seeding=NAMES_8)
        play_out(manager, stage.id)
        with pytest.raises(ValidationError):
            manager.get_final_standings(stage.id, max_qualified_participants_per_group=2)


class TestGroupStandings:
    def test_round_robin_points(self, manager):
        stage = manager.create_stage(
            1, "Pools", "round_robin", seeding=["A", "B", "C", "D"], settings={"group_count": 1}
        )
        play_out(manager, stage.id)

        standings = manager.get_final_standings(stage.id)

        top = standings[0]
        assert (top["name"], top["points"], top["rank"], top["wins"], top["played"]) == ("A", 9, 1, 3, 3)
        assert [row["name"] for row in standings] == ["A", "B", "C", "D"]
        assert [row["points"] for row in standings] == [9, 6, 3, 0]

    def test_custom_points(self, manager):
        stage = manager.create_stage(
            1,
            "Pools",
            "round_robin",
            seeding=["A", "B", "C", "D"],
            settings={"group_count": 1, "points": {"win": 2}},
        )
        play_out(manager, stage.id)
        assert manager.get_final_standings(stage.id)[0]["points"] == 6

    def test_max_qualified_per_group(self, manager):
        stage = manager.create_stage(1, "Pools", "round_robin", seeding=NAMES_8, settings={"group_count": 2})
        play_out(manager, stage.id)

        standings = manager.get_final_standings(stage.id, max_qualified_participants_per_group=2)

        assert len(standings) == 4
        # Groups interleaved by rank
        assert [row["rank"] for row in standings] == [1, 1, 2, 2]

    def test_custom_formula(self, manager):
        stage = manager.create_stage(
            1, "Pools", "round_robin", seeding=["A", "B", "C", "D"], settings={"group_count": 1}
        )
        play_out(manager, stage.id)

        standings = manager.get_final_standings(stage.id, ranking_formula=lambda row: row["losses"])

        assert standings[0]["name"] == "D"

    def test_forfeit_counted_as_loss(self, manager):
        stage = manager.create_stage(1, "Pools", "round_robin", seeding=["A", "B"], settings={"group_count": 1})
        first = match_of(manager, stage.id, 1, 1, 1)
        manager.update_match({"id": first.id, "opponent2": {"forfeit": True}})

        standings = manager.get_final_standings(stage.id)

        loser = next(row for row in standings if row["name"] == "B")
        assert (loser["forfeits"], loser["losses"], loser["points"]) == (1, 1, 0)

    def test_ties_share_rank(self, manager):
        stage = manager.create_stage(1, "Pools", "round_robin", seeding=["A", "B"], settings={"group_count": 1})
        first = match_of(manager, stage.id, 1, 1, 1)
        manager.update_match({"id": first.id, "opponent1": {"result": "draw"}})

        standings = manager.get_final_standings(stage.id)

        assert [row["rank"] for row in standings] == [1, 1]
        assert [row["points"] for row in standings] == [1, 1]


class TestGroupRanking:
    def test_unplayed_matches_ignored(self, manager):
        stage = manager.create_stage(
            1, "Pools", "round_robin", seeding=["A", "B", "C", "D"], settings={"group_count": 1}
        )
        matches = manager.storage.select("match", {"stage_id": stage.id})
        ranking = group_ranking(matches, matches[0].group_id, default_ranking_formula({}), count_byes=False)
        assert all(row.played == 0 and row.rank == 1 for row in ranking)

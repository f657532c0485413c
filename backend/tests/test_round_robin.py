"""
Tests for circle-method round-robin scheduling.
"""
from itertools import combinations

from bracket_engine.utils.round_robin import make_round_robin_rounds, rr_pairings_by_round, rr_round_count


class TestRoundCount:
    def test_even_pool(self):
        assert rr_round_count(4) == 3

    def test_odd_pool(self):
        assert rr_round_count(5) == 5

    def test_degenerate_pool(self):
        assert rr_round_count(1) == 0


class TestPairings:
    """Every pair meets exactly once; odd pools give each participant one BYE."""

    def test_every_pair_once_even(self):
        pairs = [(a, b) for _, _, a, b in rr_pairings_by_round(6)]
        assert sorted(pairs) == list(combinations(range(6), 2))

    def test_odd_pool_of_five(self):
        pairings = rr_pairings_by_round(5)
        assert len({r for r, _, _, _ in pairings}) == 5
        assert len(pairings) == 10
        assert sorted((a, b) for _, _, a, b in pairings) == list(combinations(range(5), 2))

        for participant in range(5):
            rounds_played = {r for r, _, a, b in pairings if participant in (a, b)}
            # Sits out exactly one of the five rounds
            assert len(rounds_played) == 4

    def test_nobody_plays_twice_in_a_round(self):
        pairings = rr_pairings_by_round(8)
        for round_number in range(1, 8):
            seen = [p for r, _, a, b in pairings if r == round_number for p in (a, b)]
            assert len(seen) == len(set(seen))


class TestMakeRounds:
    def test_bye_vs_bye_dropped(self):
        rounds = make_round_robin_rounds(["A", "B", None, None])
        duels = [d for r in rounds for d in r]
        assert (None, None) not in duels
        assert len(duels) == 5

    def test_double_mode_swaps_sides(self):
        rounds = make_round_robin_rounds(["A", "B"], mode="double")
        assert rounds == [[("A", "B")], [("B", "A")]]

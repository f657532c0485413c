"""
Tests for seed ordering methods and seeding helpers.
"""
import pytest

from bracket_engine.errors import ValidationError
from bracket_engine.utils.seed_ordering import (
    apply_ordering,
    balance_byes,
    bracket_optimized,
    bracket_positions,
    effort_balanced,
    ensure_no_duplicates,
    ensure_valid_size,
    fix_seeding,
    half_shift,
    inner_outer,
    make_groups,
    pair_flip,
    position_in_ordering,
    reverse_half_shift,
    seed_optimized,
    validate_ordering,
)


class TestInnerOuter:
    """Standard bracket seeding: consecutive pairs become first-round matches."""

    def test_4_seeds(self):
        assert inner_outer([1, 2, 3, 4]) == [1, 4, 2, 3]

    def test_8_seeds(self):
        assert inner_outer(list(range(1, 9))) == [1, 8, 4, 5, 2, 7, 3, 6]

    def test_16_seeds(self):
        expected = [1, 16, 8, 9, 4, 13, 5, 12, 2, 15, 7, 10, 3, 14, 6, 11]
        assert inner_outer(list(range(1, 17))) == expected

    def test_two_or_fewer_untouched(self):
        assert inner_outer(["a", "b"]) == ["a", "b"]

    def test_every_seed_present(self):
        for n in (2, 4, 8, 16, 32):
            assert sorted(bracket_positions(n)) == list(range(1, n + 1))


class TestEliminationMethods:
    def test_half_shift(self):
        assert half_shift([1, 2, 3, 4]) == [3, 4, 1, 2]

    def test_reverse_half_shift(self):
        assert reverse_half_shift([1, 2, 3, 4, 5, 6, 7, 8]) == [4, 3, 2, 1, 8, 7, 6, 5]

    def test_pair_flip(self):
        assert pair_flip([1, 2, 3, 4]) == [2, 1, 4, 3]

    def test_reverse_by_name(self):
        assert apply_ordering("reverse", [1, 2, 3]) == [3, 2, 1]

    def test_position_in_ordering(self):
        # reverse of 1..4 is [4, 3, 2, 1]: item 1 lands last
        assert position_in_ordering("reverse", 4, 1) == 3
        assert position_in_ordering(None, 4, 1) == 0


class TestGroupMethods:
    """groups.* methods return a flat list chunked into pools by make_groups()."""

    def test_effort_balanced(self):
        assert effort_balanced(list(range(1, 9)), 2) == [1, 3, 5, 7, 2, 4, 6, 8]

    def test_seed_optimized_snake(self):
        assert seed_optimized(list(range(1, 9)), 2) == [1, 4, 5, 8, 2, 3, 6, 7]

    def test_bracket_optimized_separates_first_round_opponents(self):
        ordered = bracket_optimized(list(range(1, 9)), 2)
        pools = make_groups(ordered, 2)
        for a, b in [(1, 8), (4, 5), (2, 7), (3, 6)]:
            assert not any(a in pool and b in pool for pool in pools)

    def test_group_method_needs_group_count(self):
        with pytest.raises(ValidationError):
            apply_ordering("groups.effort_balanced", [1, 2, 3, 4])

    def test_make_groups(self):
        assert make_groups([1, 2, 3, 4, 5, 6], 3) == [[1, 2], [3, 4], [5, 6]]


class TestValidateOrdering:
    def test_natural_valid_everywhere(self):
        validate_ordering("natural", for_groups=True)
        validate_ordering("natural", for_groups=False)

    def test_group_method_rejected_for_elimination(self):
        with pytest.raises(ValidationError):
            validate_ordering("groups.seed_optimized", for_groups=False)

    def test_unknown_method(self):
        with pytest.raises(ValidationError):
            validate_ordering("zigzag", for_groups=True)


class TestSeedingHelpers:
    def test_size_below_two(self):
        with pytest.raises(ValidationError, match="less than 2"):
            ensure_valid_size("single_elimination", 1)

    def test_elimination_needs_power_of_two(self):
        with pytest.raises(ValidationError):
            ensure_valid_size("double_elimination", 6)

    def test_round_robin_any_size(self):
        ensure_valid_size("round_robin", 6)

    def test_fix_seeding_pads_with_byes(self):
        assert fix_seeding([1, 2, 3], 4) == [1, 2, 3, None]

    def test_fix_seeding_too_long(self):
        with pytest.raises(ValidationError):
            fix_seeding([1, 2, 3, 4, 5], 4)

    def test_duplicates_rejected(self):
        with pytest.raises(ValidationError, match="duplicate"):
            ensure_no_duplicates([1, 2, 1, None])

    def test_byes_are_not_duplicates(self):
        ensure_no_duplicates([1, None, None, 2])

    def test_balance_byes_strongest_play_each_other(self):
        assert balance_byes([1, 2, 3, 4, 5], 8) == [1, 2, 3, None, 4, None, 5, None]

    def test_balance_byes_few_participants(self):
        assert balance_byes([1, 2, 3], 8) == [1, None, 2, None, 3, None, None, None]

    def test_balance_byes_is_stable(self):
        balanced = balance_byes([1, 2, 3, 4, 5], 8)
        assert balance_byes(balanced, 8) == balanced

"""
Match dependency graph for elimination stages.

Everything here is a pure function of (stage type, settings, group number,
round number, match number): where a match sends its winner and loser, and
which matches feed it. No storage access; callers resolve the returned
coordinates to rows.

Group numbers:
    single elimination: 1 = bracket, 2 = consolation final
    double elimination: 1 = winner bracket, 2 = loser bracket, 3 = grand final
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from bracket_engine.utils.seed_ordering import apply_ordering, position_in_ordering
from bracket_engine.utils.slots import next_side

SINGLE = "single_elimination"
DOUBLE = "double_elimination"

WINNER_BRACKET = 1
LOSER_BRACKET = 2
FINAL_GROUP = 3
CONSOLATION_GROUP = 2

Location = Tuple[int, int, int]  # (group number, round number, match number)


@dataclass(frozen=True)
class SlotRef:
    group_number: int
    round_number: int
    match_number: int
    side: str  # "opponent1" | "opponent2"

    @property
    def location(self) -> Location:
        return (self.group_number, self.round_number, self.match_number)


# =============================================================================
# Structure
# =============================================================================


def upper_round_count(size: int) -> int:
    return int(math.log2(size))


def lower_round_count(size: int) -> int:
    return 2 * (upper_round_count(size) - 1)


def has_loser_bracket(settings: Dict[str, Any]) -> bool:
    return settings.get("size", 0) > 2


def grand_final_round_count(settings: Dict[str, Any]) -> int:
    if not has_loser_bracket(settings):
        return 0
    return {"none": 0, "simple": 1, "double": 2}.get(settings.get("grand_final") or "none", 0)


def has_consolation_final(settings: Dict[str, Any]) -> bool:
    return bool(settings.get("consolation_final")) and settings.get("size", 0) >= 4


def group_role(stage_type: str, group_number: int) -> str:
    """Role of a group, inferred from its number."""
    if stage_type == SINGLE:
        return "single_bracket" if group_number == 1 else "consolation_final"
    if stage_type == DOUBLE:
        return {1: "winner_bracket", 2: "loser_bracket", 3: "final_group"}.get(group_number, "unknown")
    return "round_robin"


def round_count(stage_type: str, settings: Dict[str, Any], group_number: int) -> int:
    size = settings["size"]
    if group_number == WINNER_BRACKET:
        return upper_round_count(size)
    if stage_type == SINGLE:
        return 1 if has_consolation_final(settings) else 0
    if group_number == LOSER_BRACKET:
        return lower_round_count(size) if has_loser_bracket(settings) else 0
    return grand_final_round_count(settings)


def loser_ordering(settings: Dict[str, Any], upper_round: int) -> str:
    """
    Ordering applied to the losers of an upper bracket round on their way down.

    seed_ordering[0] orders the first round; seed_ordering[r] orders the losers
    of upper round r. Missing entries mean natural.
    """
    methods = settings.get("seed_ordering") or []
    return methods[upper_round] if upper_round < len(methods) else "natural"


# =============================================================================
# Forward edges
# =============================================================================


def winner_destination(
    stage_type: str, settings: Dict[str, Any], group_number: int, round_number: int, match_number: int
) -> Optional[SlotRef]:
    """Slot receiving the winner, or None when the winner leaves the graph."""
    size = settings["size"]
    upper = upper_round_count(size)

    if group_number == WINNER_BRACKET:
        if round_number < upper:
            return SlotRef(WINNER_BRACKET, round_number + 1, (match_number + 1) // 2, next_side(match_number))
        if stage_type == DOUBLE and grand_final_round_count(settings) > 0:
            return SlotRef(FINAL_GROUP, 1, 1, "opponent1")
        return None

    if stage_type == DOUBLE and group_number == LOSER_BRACKET:
        last = lower_round_count(size)
        if round_number < last:
            if round_number % 2 == 1:
                # Major round: parallel match of the next minor round
                return SlotRef(LOSER_BRACKET, round_number + 1, match_number, "opponent2")
            return SlotRef(LOSER_BRACKET, round_number + 1, (match_number + 1) // 2, next_side(match_number))
        if grand_final_round_count(settings) > 0:
            return SlotRef(FINAL_GROUP, 1, 1, "opponent2")
        return None

    # Consolation final and grand final are terminal; the grand final reset
    # is handled by the propagation engine.
    return None


def loser_destination(
    stage_type: str, settings: Dict[str, Any], group_number: int, round_number: int, match_number: int
) -> Optional[SlotRef]:
    """Slot receiving the loser, or None when the loser is eliminated."""
    size = settings["size"]
    upper = upper_round_count(size)

    if stage_type == SINGLE:
        if group_number == WINNER_BRACKET and round_number == upper - 1 and has_consolation_final(settings):
            return SlotRef(CONSOLATION_GROUP, 1, 1, next_side(match_number))
        return None

    if group_number != WINNER_BRACKET or not has_loser_bracket(settings):
        return None

    match_count = size // 2 ** round_number
    index = position_in_ordering(loser_ordering(settings, round_number), match_count, match_number)
    if round_number == 1:
        return SlotRef(LOSER_BRACKET, 1, index // 2 + 1, "opponent1" if index % 2 == 0 else "opponent2")
    # Minor rounds take the upper bracket loser as opponent1
    return SlotRef(LOSER_BRACKET, 2 * (round_number - 1), index + 1, "opponent1")


def next_locations(
    stage_type: str, settings: Dict[str, Any], group_number: int, round_number: int, match_number: int
) -> List[Location]:
    """Every match that depends on this one."""
    result: List[Location] = []
    for ref in (
        winner_destination(stage_type, settings, group_number, round_number, match_number),
        loser_destination(stage_type, settings, group_number, round_number, match_number),
    ):
        if ref is not None:
            result.append(ref.location)
    if stage_type == DOUBLE and group_number == FINAL_GROUP and round_number < grand_final_round_count(settings):
        result.append((FINAL_GROUP, round_number + 1, 1))
    return result


# =============================================================================
# Backward edges
# =============================================================================


def previous_locations(
    stage_type: str, settings: Dict[str, Any], group_number: int, round_number: int, match_number: int
) -> List[Location]:
    """Matches feeding this one, opponent1's feeder first."""
    size = settings["size"]
    upper = upper_round_count(size)

    if group_number == WINNER_BRACKET:
        if round_number == 1:
            return []
        return [
            (WINNER_BRACKET, round_number - 1, 2 * match_number - 1),
            (WINNER_BRACKET, round_number - 1, 2 * match_number),
        ]

    if stage_type == SINGLE:
        return [(WINNER_BRACKET, upper - 1, 1), (WINNER_BRACKET, upper - 1, 2)]

    if group_number == LOSER_BRACKET:
        if round_number == 1:
            ordered = apply_ordering(loser_ordering(settings, 1), list(range(1, size // 2 + 1)))
            return [
                (WINNER_BRACKET, 1, ordered[2 * match_number - 2]),
                (WINNER_BRACKET, 1, ordered[2 * match_number - 1]),
            ]
        if round_number % 2 == 0:
            upper_round = round_number // 2 + 1
            count = size // 2 ** upper_round
            ordered = apply_ordering(loser_ordering(settings, upper_round), list(range(1, count + 1)))
            return [
                (WINNER_BRACKET, upper_round, ordered[match_number - 1]),
                (LOSER_BRACKET, round_number - 1, match_number),
            ]
        return [
            (LOSER_BRACKET, round_number - 1, 2 * match_number - 1),
            (LOSER_BRACKET, round_number - 1, 2 * match_number),
        ]

    # Grand final
    if round_number == 1:
        return [(WINNER_BRACKET, upper, 1), (LOSER_BRACKET, lower_round_count(size), 1)]
    return [(FINAL_GROUP, round_number - 1, 1)]


def orderable_round(stage_type: str, settings: Dict[str, Any], group_number: int, round_number: int) -> Optional[int]:
    """
    Index into seed_ordering controlling a round's slot order, or None when the
    round's origins are not statically known.
    """
    if stage_type not in (SINGLE, DOUBLE):
        return None
    if group_number == WINNER_BRACKET and round_number == 1:
        return 0
    if stage_type != DOUBLE or group_number != LOSER_BRACKET:
        return None
    if round_number == 1:
        return 1
    last_minor = lower_round_count(settings["size"])
    if round_number % 2 == 0 and round_number < last_minor:
        return round_number // 2 + 1
    return None

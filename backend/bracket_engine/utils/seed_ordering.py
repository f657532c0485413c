"""
Seed ordering methods.

Pure functions mapping a list of seeds (or slots) to a permutation. Elimination
methods work on flat lists whose consecutive pairs become first-round matches;
``groups.*`` methods take a group count and return a flat list to be chunked
into round-robin pools with make_groups().

Loser bracket reference:
https://web.archive.org/web/20200601102344/https://tl.net/forum/sc2-tournaments/202139-superior-double-elimination-losers-bracket-seeding
"""
import math
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from bracket_engine.errors import ValidationError

T = TypeVar("T")

# =============================================================================
# Elimination methods
# =============================================================================


def natural(items: Sequence[T]) -> List[T]:
    return list(items)


def reverse(items: Sequence[T]) -> List[T]:
    return list(reversed(items))


def half_shift(items: Sequence[T]) -> List[T]:
    """Rotate halves: [1,2,3,4] -> [3,4,1,2]."""
    half = len(items) // 2
    return list(items[half:]) + list(items[:half])


def reverse_half_shift(items: Sequence[T]) -> List[T]:
    """Reverse each half in place: [1,2,3,4] -> [2,1,4,3]."""
    half = len(items) // 2
    return list(reversed(items[:half])) + list(reversed(items[half:]))


def pair_flip(items: Sequence[T]) -> List[T]:
    """Swap within adjacent pairs: [1,2,3,4] -> [2,1,4,3]."""
    result: List[T] = []
    for i in range(0, len(items) - 1, 2):
        result.extend((items[i + 1], items[i]))
    if len(items) % 2 == 1:
        result.append(items[-1])
    return result


def bracket_positions(count: int) -> List[int]:
    """
    Standard bracket seed positions (1-based), built by recursive bisection.

    [1, 2] -> [1, 4, 2, 3] -> [1, 8, 4, 5, 2, 7, 3, 6]: every position p of the
    previous level is followed by its mirror (size + 1 - p).
    """
    positions = [1, 2]
    while len(positions) < count:
        size = len(positions) * 2
        positions = [p for pos in positions for p in (pos, size + 1 - pos)]
    return positions


def inner_outer(items: Sequence[T]) -> List[T]:
    """Reorder so consecutive pairs follow standard bracket seeding (1v8, 4v5, 2v7, 3v6)."""
    if len(items) <= 2:
        return list(items)
    return [items[pos - 1] for pos in bracket_positions(len(items))]


def inner_outer_pairs(items: Sequence[T]) -> List[List[T]]:
    """inner_outer() grouped into first-round pairs."""
    ordered = inner_outer(items)
    return [ordered[i:i + 2] for i in range(0, len(ordered), 2)]


# =============================================================================
# Group (round-robin) methods
# =============================================================================


def effort_balanced(items: Sequence[T], group_count: int) -> List[T]:
    """Stride distribution: with 2 groups, [1..8] -> [1,3,5,7, 2,4,6,8]."""
    result: List[T] = []
    i = j = 0
    while len(result) < len(items):
        result.append(items[i])
        i += group_count
        if i >= len(items):
            j += 1
            i = j
    return result


def seed_optimized(items: Sequence[T], group_count: int) -> List[T]:
    """Snake distribution: with 2 groups, [1..8] -> [1,4,5,8, 2,3,6,7]."""
    groups: List[List[T]] = [[] for _ in range(group_count)]
    runs = math.ceil(len(items) / group_count)
    for run in range(runs):
        for offset in range(group_count):
            index = run * group_count + offset
            if index >= len(items):
                break
            target = offset if run % 2 == 0 else group_count - offset - 1
            groups[target].append(items[index])
    return [item for group in groups for item in group]


def bracket_optimized(items: Sequence[T], group_count: int) -> List[T]:
    """
    Split standard bracket pairs (1v8, 4v5, ...) across opposite groups so that
    first-round bracket opponents never share a pool.

    Requires an even group count; an odd count falls back to seed_optimized().
    """
    if group_count < 2:
        return list(items)
    if group_count % 2 == 1:
        return seed_optimized(items, group_count)

    half = group_count // 2
    positions = bracket_positions(nearest_power_of_two(len(items)))

    def base_group(pair_index: int) -> int:
        t = pair_index % half
        block = pair_index // half
        inverted = (block // 2) % 2 == 1
        if block % 2 == 0:
            return half - 1 - t if inverted else t
        return half + t if inverted else group_count - 1 - t

    groups: List[List[int]] = [[] for _ in range(group_count)]
    pair_count = len(positions) // 2
    # Positions past the list length belong to missing seeds
    for i in range(pair_count):
        if positions[2 * i] <= len(items):
            groups[base_group(i)].append(positions[2 * i] - 1)
    for i in range(pair_count):
        if positions[2 * i + 1] <= len(items):
            groups[(base_group(i) + half) % group_count].append(positions[2 * i + 1] - 1)

    return [items[index] for group in groups for index in sorted(group)]


# =============================================================================
# Registry
# =============================================================================

ELIMINATION_METHODS: Dict[str, Callable[[Sequence[T]], List[T]]] = {
    "natural": natural,
    "reverse": reverse,
    "half_shift": half_shift,
    "reverse_half_shift": reverse_half_shift,
    "pair_flip": pair_flip,
    "inner_outer": inner_outer,
}

GROUP_METHODS: Dict[str, Callable[[Sequence[T], int], List[T]]] = {
    "groups.effort_balanced": effort_balanced,
    "groups.seed_optimized": seed_optimized,
    "groups.bracket_optimized": bracket_optimized,
}

# Loser bracket orderings by size: [major round 1, minor round 1, minor round 2, ...]
DEFAULT_MINOR_ORDERING: Dict[int, List[str]] = {
    4: ["natural", "reverse"],
    8: ["natural", "reverse", "natural"],
    16: ["natural", "reverse_half_shift", "reverse", "natural"],
    32: ["natural", "reverse", "half_shift", "natural", "natural"],
    64: ["natural", "reverse", "half_shift", "reverse", "natural", "natural"],
    128: ["natural", "reverse", "half_shift", "pair_flip", "pair_flip", "pair_flip", "natural"],
}

DEFAULT_ELIMINATION_ORDERING = "inner_outer"
DEFAULT_GROUP_ORDERING = "groups.effort_balanced"


def validate_ordering(method: str, for_groups: bool) -> None:
    """Reject unknown methods and methods of the wrong family."""
    if method == "natural":
        return
    if for_groups:
        if method not in GROUP_METHODS:
            raise ValidationError(f"Unknown group ordering method: {method}")
    elif method not in ELIMINATION_METHODS:
        raise ValidationError(f"Unknown elimination ordering method: {method}")


def apply_ordering(method: str, items: Sequence[T], group_count: Optional[int] = None) -> List[T]:
    if method in GROUP_METHODS:
        if not group_count:
            raise ValidationError(f"Ordering {method} needs a group count")
        return GROUP_METHODS[method](items, group_count)
    if method in ELIMINATION_METHODS:
        return ELIMINATION_METHODS[method](items)
    raise ValidationError(f"Unknown ordering method: {method}")


def position_in_ordering(method: Optional[str], count: int, number: int) -> int:
    """0-based index that item ``number`` (1-based) takes once 1..count is ordered by ``method``."""
    ordered = apply_ordering(method or "natural", list(range(1, count + 1)))
    return ordered.index(number)


# =============================================================================
# Seeding helpers
# =============================================================================


def is_power_of_two(n: int) -> bool:
    return n >= 1 and (n & (n - 1)) == 0


def nearest_power_of_two(n: int) -> int:
    return 1 if n <= 1 else 2 ** math.ceil(math.log2(n))


def ensure_valid_size(stage_type: str, size: int) -> None:
    if size < 2:
        raise ValidationError("Impossible to create a stage with less than 2 participants.")
    if stage_type == "round_robin":
        return
    if not is_power_of_two(size):
        raise ValidationError("The participant count must be a power of two.")


def fix_seeding(seeding: List[Optional[T]], size: int) -> List[Optional[T]]:
    """Pad with BYEs (None) or fail when the seeding does not fit the size."""
    if len(seeding) > size:
        raise ValidationError("The seeding has more participants than the size of the stage.")
    return list(seeding) + [None] * (size - len(seeding))


def ensure_no_duplicates(seeding: Sequence[Optional[object]]) -> None:
    present = [item for item in seeding if item is not None]
    if len(set(present)) != len(present):
        raise ValidationError("The seeding has a duplicate participant.")


def balance_byes(seeding: List[Optional[T]], size: int) -> List[Optional[T]]:
    """
    Spread BYEs so that no two BYEs face each other in round 1.

    The strongest seeds play each other in consecutive pairs; the remaining
    participants each get a BYE. With fewer participants than half the size,
    every participant gets a BYE.
    """
    present = [item for item in seeding if item is not None]
    if len(present) < size / 2:
        flat: List[Optional[T]] = [x for item in present for x in (item, None)]
        return fix_seeding(flat, size)

    bye_count = size - len(present)
    facing = present[: len(present) - bye_count]
    against_bye = present[len(present) - bye_count:]
    flat = list(facing) + [x for item in against_bye for x in (item, None)]
    return fix_seeding(flat, size)


def make_groups(items: Sequence[T], group_count: int) -> List[List[T]]:
    """Chunk a flat list into group_count groups of ceil(n / group_count)."""
    group_size = math.ceil(len(items) / group_count)
    return [list(items[i:i + group_size]) for i in range(0, len(items), group_size)]

"""
Round-robin scheduling (circle method).
"""
from typing import List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")


def rr_round_count(pool_size: int) -> int:
    """n - 1 rounds for an even pool, n rounds (one BYE each) for an odd pool."""
    if pool_size < 2:
        return 0
    return pool_size - 1 if pool_size % 2 == 0 else pool_size


def rr_pairings_by_round(pool_size: int) -> List[Tuple[int, int, int, int]]:
    """
    Round-robin pairings. Returns list of (round_number, sequence_in_round, idx_a, idx_b).
    idx_a < idx_b are 0-based pool positions.

    Circle method: position 0 stays fixed, the others rotate one step per round.
    For an odd pool a phantom BYE position is added; whoever faces it sits the
    round out, so every participant gets exactly one BYE.
    """
    n = pool_size
    n2 = n + 1 if n % 2 == 1 else n
    half = n2 // 2
    bye_idx = n if n % 2 == 1 else -1

    result: List[Tuple[int, int, int, int]] = []
    positions = list(range(n2))

    for round_num in range(1, rr_round_count(n) + 1):
        seq = 0
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                continue
            seq += 1
            result.append((round_num, seq, min(a, b), max(a, b)))
        # Rotate: keep 0, move last to second, shift others
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]

    return result


def make_round_robin_rounds(
    slots: Sequence[Optional[T]], mode: str = "simple"
) -> List[List[Tuple[Optional[T], Optional[T]]]]:
    """
    Duels per round for one pool. BYE-vs-BYE duels are dropped; a round may
    end up empty. ``mode="double"`` appends the return legs with sides swapped.
    """
    rounds: List[List[Tuple[Optional[T], Optional[T]]]] = [[] for _ in range(rr_round_count(len(slots)))]
    for round_num, _, idx_a, idx_b in rr_pairings_by_round(len(slots)):
        a, b = slots[idx_a], slots[idx_b]
        if a is None and b is None:
            continue
        rounds[round_num - 1].append((a, b))

    if mode == "double":
        rounds += [[(b, a) for a, b in duels] for duels in rounds]
    return rounds

"""
Match state machine.

Validates a partial result update against the stored slots and returns the new
slots; the status follows from the slots via compute_status(). Nothing here
touches storage, so every error is raised before a write happens.

Rules:
- LOCKED, WAITING and ARCHIVED matches reject result updates.
- Supplying one score defaults the other side's score to 0.
- ``win`` on one side infers ``loss`` on the other; a forfeit makes the other side win.
- A draw is only legal where the format accepts it (round-robin, Swiss).
- Asking for COMPLETED needs a resolvable winner (explicit result or unequal scores).
- A best-of-N parent completes on a strict majority of its games.
"""
import copy
from typing import Any, Dict, List, Sequence, Tuple

from bracket_engine.errors import ResultError, StateError, ValidationError
from bracket_engine.models.match import MatchStatus
from bracket_engine.utils.slots import Slot, is_result_completed

LOCKED_STATUSES = (MatchStatus.LOCKED, MatchStatus.WAITING, MatchStatus.ARCHIVED)

MATCH_KEYS = frozenset({"id", "status", "opponent1", "opponent2"})


def assert_updatable(status: int, what: str = "match") -> None:
    if status in LOCKED_STATUSES:
        raise StateError(f"The {what} is locked.")


def extra_fields(partial: Dict[str, Any]) -> Dict[str, Any]:
    """Caller-supplied keys that are not part of the result shape."""
    return {k: v for k, v in partial.items() if k not in MATCH_KEYS}


def _side_partials(stored1: Slot, stored2: Slot, partial: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Partials for each side, swapped when the caller named the opponents in inverted order."""
    p1 = dict(partial.get("opponent1") or {})
    p2 = dict(partial.get("opponent2") or {})
    id1, id2 = stored1.get("id"), stored2.get("id")

    given1, given2 = p1.get("id"), p2.get("id")
    inverted = (given1 is not None and given1 == id2 and given1 != id1) or (
        given2 is not None and given2 == id1 and given2 != id2
    )
    if inverted:
        p1, p2 = p2, p1

    for given, stored in ((p1.get("id"), id1), (p2.get("id"), id2)):
        if given is not None and given != stored:
            raise ValidationError(f"Participant {given} does not play in this match.")
    return p1, p2


def _set_results(op1: Dict[str, Any], op2: Dict[str, Any], p1: Dict[str, Any], p2: Dict[str, Any], allow_draw: bool) -> None:
    r1, r2 = p1.get("result"), p2.get("result")
    f1, f2 = bool(p1.get("forfeit")), bool(p2.get("forfeit"))

    if "draw" in (r1, r2) and not allow_draw:
        raise ResultError("Having a draw is forbidden in an elimination tournament.")
    if r1 == "win" and r2 == "win":
        raise ResultError("There are two winners.")
    if r1 == "loss" and r2 == "loss":
        raise ResultError("There are two losers.")
    if f1 and f2:
        raise ResultError("There are two forfeits.")
    if (r1 == "draw") != (r2 == "draw") and None not in (r1, r2):
        raise ResultError("A draw must be given to both opponents.")

    for slot in (op1, op2):
        slot.pop("result", None)
        slot.pop("forfeit", None)

    if f1:
        op1["forfeit"] = True
        op2["result"] = "win"
    elif f2:
        op2["forfeit"] = True
        op1["result"] = "win"
    elif r1 == "win" or r2 == "loss":
        op1["result"], op2["result"] = "win", "loss"
    elif r2 == "win" or r1 == "loss":
        op1["result"], op2["result"] = "loss", "win"
    elif "draw" in (r1, r2):
        op1["result"] = op2["result"] = "draw"


def _results_from_scores(op1: Dict[str, Any], op2: Dict[str, Any], allow_draw: bool) -> None:
    s1, s2 = op1.get("score"), op2.get("score")
    if s1 is None or s2 is None:
        raise ResultError("Cannot complete the match without a winner.")
    if s1 == s2:
        if not allow_draw:
            raise ResultError("Cannot complete the match without a winner.")
        op1["result"] = op2["result"] = "draw"
        return
    op1["result"], op2["result"] = ("win", "loss") if s1 > s2 else ("loss", "win")


def _clear(slot: Dict[str, Any], keep_scores: bool) -> None:
    slot.pop("result", None)
    slot.pop("forfeit", None)
    if not keep_scores:
        slot.pop("score", None)


def merge_result_update(
    stored1: Slot, stored2: Slot, partial: Dict[str, Any], allow_draw: bool
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Apply a partial update to two stored (non-BYE) slots.

    Args:
        partial: {"opponent1": {...}, "opponent2": {...}, "status": ...}; side
            dicts may hold id, score, result, forfeit and pass-through keys.
        allow_draw: whether the stage format accepts draws.

    Returns:
        (opponent1, opponent2) fresh dicts.
    """
    if stored1 is None or stored2 is None:
        raise StateError("The match is locked.")

    op1, op2 = copy.deepcopy(stored1), copy.deepcopy(stored2)
    p1, p2 = _side_partials(stored1, stored2, partial)

    # Pass-through keys on the slots themselves
    for slot, side_partial in ((op1, p1), (op2, p2)):
        for key, value in side_partial.items():
            if key not in ("id", "score", "result", "forfeit"):
                slot[key] = copy.deepcopy(value)

    if "score" in p1 or "score" in p2:
        if "score" in p1:
            op1["score"] = p1["score"]
        if "score" in p2:
            op2["score"] = p2["score"]
        for slot, other in ((op1, op2), (op2, op1)):
            if other.get("score") is not None and slot.get("score") is None:
                slot["score"] = 0

    if any(("result" in p and p["result"] is not None) or p.get("forfeit") for p in (p1, p2)):
        _set_results(op1, op2, p1, p2, allow_draw)

    status = partial.get("status")
    if status is not None:
        status = int(status)
        if status == MatchStatus.COMPLETED:
            if not is_result_completed(op1, op2):
                _results_from_scores(op1, op2, allow_draw)
        elif status == MatchStatus.RUNNING:
            _clear(op1, keep_scores=True)
            _clear(op2, keep_scores=True)
            for slot in (op1, op2):
                slot.setdefault("score", 0)
        elif status == MatchStatus.READY:
            _clear(op1, keep_scores=False)
            _clear(op2, keep_scores=False)
        else:
            raise ValidationError(f"Status {status} cannot be requested in an update.")

    return op1, op2


def reset_results(stored1: Slot, stored2: Slot) -> Tuple[Slot, Slot]:
    """Slots with score, result and forfeit removed."""
    result: List[Slot] = []
    for slot in (stored1, stored2):
        if slot is None:
            result.append(None)
            continue
        cleared = copy.deepcopy(slot)
        _clear(cleared, keep_scores=False)
        result.append(cleared)
    return result[0], result[1]


# =============================================================================
# Best-of-N
# =============================================================================


def parent_from_games(
    parent1: Slot, parent2: Slot, games: Sequence[Tuple[Slot, Slot]], child_count: int, allow_draw: bool
) -> Tuple[Slot, Slot]:
    """
    Parent slots derived from its child games: the score is the number of games
    won, and the parent completes once one side holds a strict majority.

    When every game is played with equal wins the parent is a draw in formats
    that accept it, otherwise the games are rejected. Unequal wins without a
    majority leave the parent running.
    """
    wins = [0, 0]
    played = 0
    started = False
    for g1, g2 in games:
        if g1 is None or g2 is None:
            continue
        if is_result_completed(g1, g2):
            played += 1
        if g1.get("score") is not None or g2.get("score") is not None or is_result_completed(g1, g2):
            started = True
        if g1.get("result") == "win":
            wins[0] += 1
        elif g2.get("result") == "win":
            wins[1] += 1

    op1, op2 = reset_results(parent1, parent2)
    if not started:
        return op1, op2

    op1["score"], op2["score"] = wins
    majority = child_count // 2 + 1
    if wins[0] >= majority:
        op1["result"], op2["result"] = "win", "loss"
    elif wins[1] >= majority:
        op1["result"], op2["result"] = "loss", "win"
    elif played >= child_count and wins[0] == wins[1]:
        if not allow_draw:
            raise ResultError("Match games result in a tie.")
        op1["result"] = op2["result"] = "draw"
    return op1, op2

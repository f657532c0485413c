"""
Opponent slot helpers.

A slot is either None (BYE) or a dict {"id": participant id or None (TBD),
"position"?, "score"?, "result"?, "forfeit"?}. Helpers here never mutate their
inputs; they return fresh dicts so JSON columns always get new objects.
"""
import copy
from typing import Any, Dict, Optional, Sequence, Tuple

from bracket_engine.models.match import MatchStatus

Slot = Optional[Dict[str, Any]]
Duel = Tuple[Slot, Slot]

SIDES = ("opponent1", "opponent2")

RESULT_KEYS = ("score", "result", "forfeit")


def copy_slot(slot: Slot) -> Slot:
    return copy.deepcopy(slot)


def slot_id(slot: Slot) -> Optional[int]:
    return None if slot is None else slot.get("id")


def other_side(side: str) -> str:
    return "opponent2" if side == "opponent1" else "opponent1"


def next_side(match_number: int) -> str:
    """Odd match numbers feed opponent1 of the next round, even ones opponent2."""
    return "opponent1" if match_number % 2 == 1 else "opponent2"


def has_bye(opponent1: Slot, opponent2: Slot) -> bool:
    return opponent1 is None or opponent2 is None


def strip_results(slot: Slot) -> Slot:
    """Same slot without score/result/forfeit."""
    if slot is None:
        return None
    return {k: copy.deepcopy(v) for k, v in slot.items() if k not in RESULT_KEYS}


def to_game_slot(slot: Slot) -> Slot:
    """Child games only carry the participant id, never the origin position."""
    if slot is None:
        return None
    return {"id": slot.get("id")}


def seed_slot(participant_id: Optional[int], position: int) -> Dict[str, Any]:
    return {"id": participant_id, "position": position}


# =============================================================================
# BYE resolution at build time
# =============================================================================


def bye_winner(duel: Sequence[Slot]) -> Slot:
    """
    What a duel sends forward before it is played:
    BYE vs BYE -> BYE, X vs BYE -> X, otherwise TBD.
    """
    a, b = duel
    if a is None and b is None:
        return None
    if a is None:
        return {"id": b.get("id")}
    if b is None:
        return {"id": a.get("id")}
    return {"id": None}


def bye_loser(duel: Sequence[Slot], index: int) -> Slot:
    """Loser of a duel: a BYE when the duel has one, otherwise TBD with its origin match number."""
    a, b = duel
    if a is None or b is None:
        return None
    return {"id": None, "position": index + 1}


# =============================================================================
# Results and status
# =============================================================================


def is_result_completed(opponent1: Slot, opponent2: Slot) -> bool:
    if opponent1 is None or opponent2 is None:
        return False
    if opponent1.get("forfeit") or opponent2.get("forfeit"):
        return True
    results = (opponent1.get("result"), opponent2.get("result"))
    return results in (("win", "loss"), ("loss", "win"), ("draw", "draw"))


def is_started(opponent1: Slot, opponent2: Slot) -> bool:
    return any(slot is not None and slot.get("score") is not None for slot in (opponent1, opponent2))


def compute_status(opponent1: Slot, opponent2: Slot) -> MatchStatus:
    """Status implied by the slots alone (never ARCHIVED)."""
    if opponent1 is None or opponent2 is None:
        return MatchStatus.LOCKED
    if opponent1.get("id") is None and opponent2.get("id") is None:
        return MatchStatus.LOCKED
    if opponent1.get("id") is None or opponent2.get("id") is None:
        return MatchStatus.WAITING
    if is_result_completed(opponent1, opponent2):
        return MatchStatus.COMPLETED
    if is_started(opponent1, opponent2):
        return MatchStatus.RUNNING
    return MatchStatus.READY


def winner_side(opponent1: Slot, opponent2: Slot) -> Optional[str]:
    if opponent1 is not None and opponent1.get("result") == "win":
        return "opponent1"
    if opponent2 is not None and opponent2.get("result") == "win":
        return "opponent2"
    return None


def is_bye_resolved(opponent1: Slot, opponent2: Slot) -> bool:
    """A match that will never be played because it has a BYE."""
    return has_bye(opponent1, opponent2)


def outcome(opponent1: Slot, opponent2: Slot) -> Tuple[Slot, Slot]:
    """
    (winner, loser) slots the match sends forward.

    A BYE match forwards its other side and a BYE as loser; an undecided match
    forwards TBD for both.
    """
    if has_bye(opponent1, opponent2):
        return bye_winner((opponent1, opponent2)), None
    side = winner_side(opponent1, opponent2)
    if side is None:
        return {"id": None}, {"id": None}
    winner, loser = (opponent1, opponent2) if side == "opponent1" else (opponent2, opponent1)
    return {"id": winner.get("id")}, {"id": loser.get("id")}


def fill_slot(current: Slot, incoming: Slot) -> Slot:
    """Place a forwarded participant (or BYE/TBD) into a slot, keeping its origin position."""
    if incoming is None:
        return None
    filled: Dict[str, Any] = {"id": incoming.get("id")}
    if current is not None and current.get("position") is not None:
        filled["position"] = current["position"]
    return filled

"""
Propagation engine: apply a result to a match and push its outcome through the bracket.

When a match's outcome (completed?, winner id, loser id) changes, the winner and
loser are written into the slots named by bracket_graph, dependent statuses are
recomputed, and matches left with a BYE forward their participant immediately.
Resubmitting the same outcome touches nothing downstream.

Upstream matches are archived once every match they feed has started, and
brought back to COMPLETED when one of them falls back.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from bracket_engine.errors import StateError, ValidationError
from bracket_engine.models.match import Match, MatchStatus
from bracket_engine.models.stage import ELIMINATION_TYPES, GROUP_TYPES, Stage, StageType
from bracket_engine.services import bracket_graph, swiss_pairing
from bracket_engine.services.match_state import (
    assert_updatable,
    extra_fields,
    merge_result_update,
    parent_from_games,
    reset_results,
)
from bracket_engine.services.stage_queries import (
    get_match,
    get_match_game,
    locate,
    match_at,
)
from bracket_engine.storage import BracketStorage
from bracket_engine.utils.seed_ordering import apply_ordering
from bracket_engine.utils.slots import (
    Slot,
    bye_winner,
    compute_status,
    fill_slot,
    has_bye,
    is_result_completed,
    outcome,
    slot_id,
    to_game_slot,
    winner_side,
)

logger = logging.getLogger(__name__)

Snapshot = Tuple[bool, Optional[int], Optional[int]]


@dataclass
class MatchUpdateResult:
    """What an update did: the final status of the match and every match rewritten downstream."""
    match_id: int
    status: int
    propagated: bool = False
    affected_match_ids: List[int] = field(default_factory=list)
    created_round_id: Optional[int] = None


def _snapshot(opponent1: Slot, opponent2: Slot) -> Snapshot:
    completed = is_result_completed(opponent1, opponent2)
    if not completed:
        return (False, None, None)
    winner, loser = outcome(opponent1, opponent2)
    return (True, slot_id(winner), slot_id(loser))


def _coords(stage: Stage, group_number: int, round_number: int, match_number: int):
    return (stage.type, stage.settings, group_number, round_number, match_number)


# =============================================================================
# Writes
# =============================================================================


def _sync_games(storage: BracketStorage, match_id: int, opponent1: Slot, opponent2: Slot, status: int) -> None:
    """Child games follow their parent's participants, and its status while it is not being played."""
    for game in storage.select("match_game", {"parent_id": match_id}):
        values: Dict[str, Any] = {}
        for side, parent_slot in (("opponent1", opponent1), ("opponent2", opponent2)):
            current = getattr(game, side)
            if (current is None) != (parent_slot is None) or slot_id(current) != slot_id(parent_slot):
                values[side] = to_game_slot(parent_slot)
        game1 = values.get("opponent1", game.opponent1)
        game2 = values.get("opponent2", game.opponent2)
        if status <= MatchStatus.READY or status == MatchStatus.ARCHIVED:
            values["status"] = status
        else:
            values["status"] = int(compute_status(game1, game2))
        if values.get("status") == game.status and len(values) == 1:
            continue
        storage.update("match_game", game.id, values)


def _write_match(
    storage: BracketStorage, match: Match, opponent1: Slot, opponent2: Slot, extra: Optional[Dict[str, Any]] = None
) -> int:
    status = int(compute_status(opponent1, opponent2))
    storage.update("match", match.id, {**(extra or {}), "opponent1": opponent1, "opponent2": opponent2, "status": status})
    if match.child_count:
        _sync_games(storage, match.id, opponent1, opponent2, status)
    return status


def _set_status(storage: BracketStorage, match: Match, status: int) -> None:
    storage.update("match", match.id, {"status": status})
    if match.child_count:
        _sync_games(storage, match.id, match.opponent1, match.opponent2, status)


# =============================================================================
# Guards
# =============================================================================


def _assert_dependents_unlocked(storage: BracketStorage, stage: Stage, location: bracket_graph.Location) -> None:
    """
    Refuse to change an outcome that a started match already relies on.

    Matches decided by a BYE are looked through, since they forward whatever
    they receive.
    """
    for loc in bracket_graph.next_locations(*_coords(stage, *location)):
        dependent = match_at(storage, stage.id, loc)
        if dependent is None:
            continue
        if dependent.status > MatchStatus.READY:
            raise StateError("The match is locked.")
        if has_bye(dependent.opponent1, dependent.opponent2):
            _assert_dependents_unlocked(storage, stage, loc)


def _assert_swiss_round_open(storage: BracketStorage, match: Match) -> None:
    current = storage.select("round", match.round_id)
    rounds = storage.select("round", {"group_id": match.group_id})
    if any(r.number > current.number for r in rounds):
        raise StateError("The match is locked.")


def _assert_outcome_change_allowed(storage: BracketStorage, stage: Stage, match: Match, location) -> None:
    if stage.type in ELIMINATION_TYPES:
        _assert_dependents_unlocked(storage, stage, location)
    elif stage.type == StageType.swiss.value:
        _assert_swiss_round_open(storage, match)


# =============================================================================
# Propagation
# =============================================================================


def _grand_final_reset_slots(opponent1: Slot, opponent2: Slot) -> Tuple[Slot, Slot]:
    """
    Second grand final: only played when the loser bracket champion (opponent2)
    wins the first one.
    """
    if has_bye(opponent1, opponent2):
        return bye_winner((opponent1, opponent2)), None
    side = winner_side(opponent1, opponent2)
    if side is None:
        return {"id": None}, {"id": None}
    if side == "opponent1":
        return {"id": slot_id(opponent1)}, None
    return {"id": slot_id(opponent1)}, {"id": slot_id(opponent2)}


def _place(
    storage: BracketStorage, stage: Stage, location: bracket_graph.Location, side: str, incoming: Slot, affected: List[int]
) -> None:
    target = match_at(storage, stage.id, location)
    if target is None:
        return

    current = getattr(target, side)
    filled = fill_slot(current, incoming)
    if filled == current:
        return

    slots = {"opponent1": target.opponent1, "opponent2": target.opponent2}
    slots[side] = filled
    _write_match(storage, target, slots["opponent1"], slots["opponent2"])
    affected.append(target.id)
    logger.debug("Match %s %s <- %s", target.id, side, slot_id(filled))

    # A BYE match forwards what it just received (or its reverted TBD)
    if has_bye(slots["opponent1"], slots["opponent2"]):
        _propagate(storage, stage, location, slots["opponent1"], slots["opponent2"], affected)


def _propagate(
    storage: BracketStorage,
    stage: Stage,
    location: bracket_graph.Location,
    opponent1: Slot,
    opponent2: Slot,
    affected: List[int],
) -> None:
    group_number, round_number, match_number = location
    coords = _coords(stage, group_number, round_number, match_number)
    winner, loser = outcome(opponent1, opponent2)

    for ref, slot in (
        (bracket_graph.winner_destination(*coords), winner),
        (bracket_graph.loser_destination(*coords), loser),
    ):
        if ref is not None:
            _place(storage, stage, ref.location, ref.side, slot, affected)

    if (
        stage.type == bracket_graph.DOUBLE
        and group_number == bracket_graph.FINAL_GROUP
        and round_number < bracket_graph.grand_final_round_count(stage.settings)
    ):
        reset = match_at(storage, stage.id, (bracket_graph.FINAL_GROUP, round_number + 1, 1))
        if reset is not None:
            slot1, slot2 = _grand_final_reset_slots(opponent1, opponent2)
            if (slot1, slot2) != (reset.opponent1, reset.opponent2):
                _write_match(storage, reset, slot1, slot2)
                affected.append(reset.id)


def _refresh_archives(storage: BracketStorage, stage: Stage, location: bracket_graph.Location) -> None:
    """Archive the matches feeding this one once all of their dependents have started, or restore them."""
    for loc in bracket_graph.previous_locations(*_coords(stage, *location)):
        previous = match_at(storage, stage.id, loc)
        if previous is None or previous.status < MatchStatus.COMPLETED:
            continue
        dependents = [
            match_at(storage, stage.id, nxt) for nxt in bracket_graph.next_locations(*_coords(stage, *loc))
        ]
        all_started = all(d is not None and d.status >= MatchStatus.RUNNING for d in dependents)
        wanted = MatchStatus.ARCHIVED if all_started else compute_status(previous.opponent1, previous.opponent2)
        if previous.status != wanted:
            logger.debug("Match %s status %s -> %s", previous.id, previous.status, int(wanted))
            _set_status(storage, previous, int(wanted))


def _commit(
    storage: BracketStorage,
    stage: Stage,
    match: Match,
    location: bracket_graph.Location,
    opponent1: Slot,
    opponent2: Slot,
    extra: Optional[Dict[str, Any]] = None,
) -> MatchUpdateResult:
    """Write new slots to a match and run whatever its change implies downstream."""
    changed = _snapshot(match.opponent1, match.opponent2) != _snapshot(opponent1, opponent2)
    status = _write_match(storage, match, opponent1, opponent2, extra)
    result = MatchUpdateResult(match_id=match.id, status=status)

    if stage.type in ELIMINATION_TYPES:
        if changed:
            _propagate(storage, stage, location, opponent1, opponent2, result.affected_match_ids)
            result.propagated = True
            logger.info(
                "Propagated match %s (stage %s): %d dependent match(es) rewritten",
                match.id,
                stage.id,
                len(result.affected_match_ids),
            )
        _refresh_archives(storage, stage, location)
    elif stage.type == StageType.swiss.value and changed:
        result.created_round_id = swiss_pairing.ensure_next_round(storage, stage)

    return result


def _location(storage: BracketStorage, match: Match) -> Tuple[Stage, bracket_graph.Location]:
    where = locate(storage, match)
    return where.stage, (where.group_number, where.round_number, match.number)


# =============================================================================
# Public operations
# =============================================================================


def update_match(storage: BracketStorage, partial: Dict[str, Any]) -> MatchUpdateResult:
    """
    Apply a partial result update to a match and propagate its outcome.

    Args:
        partial: {"id": match id, "opponent1": {...}, "opponent2": {...},
            "status"?: ...}; any other key is stored on the match as-is.

    Raises:
        ValidationError, StateError, ResultError before anything is written.
    """
    match_id = partial.get("id")
    if match_id is None:
        raise ValidationError("No match id given.")

    stored = get_match(storage, match_id)
    assert_updatable(stored.status)
    stage, location = _location(storage, stored)

    opponent1, opponent2 = merge_result_update(
        stored.opponent1, stored.opponent2, partial, allow_draw=stage.type in GROUP_TYPES
    )
    if _snapshot(stored.opponent1, stored.opponent2) != _snapshot(opponent1, opponent2):
        _assert_outcome_change_allowed(storage, stage, stored, location)

    return _commit(storage, stage, stored, location, opponent1, opponent2, extra_fields(partial))


def reset_match_results(storage: BracketStorage, match_id: int) -> MatchUpdateResult:
    """Clear a match's scores and results, and take its outcome back out of the bracket."""
    stored = get_match(storage, match_id)
    if stored.child_count > 0:
        raise StateError("The parent match is controlled by its child games.")
    assert_updatable(stored.status)
    stage, location = _location(storage, stored)

    opponent1, opponent2 = reset_results(stored.opponent1, stored.opponent2)
    if _snapshot(stored.opponent1, stored.opponent2) != _snapshot(opponent1, opponent2):
        _assert_outcome_change_allowed(storage, stage, stored, location)

    logger.info("Resetting results of match %s", match_id)
    return _commit(storage, stage, stored, location, opponent1, opponent2)


@dataclass
class _GameChange:
    game: Any
    slots: Tuple[Slot, Slot]
    stage: Stage
    parent: Match
    location: bracket_graph.Location
    parent_slots: Tuple[Slot, Slot]


def _apply_game(storage: BracketStorage, game_id: int, compute_slots: Callable) -> _GameChange:
    """New game slots and the parent slots they imply, checked but not yet written."""
    game = get_match_game(storage, game_id)
    assert_updatable(game.status, "match game")
    parent = get_match(storage, game.parent_id)
    stage, location = _location(storage, parent)
    allow_draw = stage.type in GROUP_TYPES

    game1, game2 = compute_slots(game, allow_draw)

    games = [
        (game1, game2) if g.id == game.id else (g.opponent1, g.opponent2)
        for g in sorted(storage.select("match_game", {"parent_id": parent.id}), key=lambda g: g.number)
    ]
    parent1, parent2 = parent_from_games(parent.opponent1, parent.opponent2, games, parent.child_count, allow_draw)
    if _snapshot(parent.opponent1, parent.opponent2) != _snapshot(parent1, parent2):
        _assert_outcome_change_allowed(storage, stage, parent, location)

    return _GameChange(game, (game1, game2), stage, parent, location, (parent1, parent2))


def _finish_game(storage: BracketStorage, change: _GameChange, extra: Optional[Dict[str, Any]] = None) -> MatchUpdateResult:
    game1, game2 = change.slots
    storage.update(
        "match_game",
        change.game.id,
        {**(extra or {}), "opponent1": game1, "opponent2": game2, "status": int(compute_status(game1, game2))},
    )
    parent1, parent2 = change.parent_slots
    return _commit(storage, change.stage, change.parent, change.location, parent1, parent2)


def update_match_game(storage: BracketStorage, partial: Dict[str, Any]) -> MatchUpdateResult:
    """Apply a result to one game of a best-of-N match, then update and propagate the parent."""
    game_id = partial.get("id")
    if game_id is None:
        raise ValidationError("No match game id given.")

    def merged(game, allow_draw):
        return merge_result_update(game.opponent1, game.opponent2, partial, allow_draw)

    change = _apply_game(storage, game_id, merged)
    return _finish_game(storage, change, extra_fields(partial))


def reset_match_game_results(storage: BracketStorage, game_id: int) -> MatchUpdateResult:
    """Clear one game's results and recompute its parent."""

    def cleared(game, allow_draw):
        return reset_results(game.opponent1, game.opponent2)

    change = _apply_game(storage, game_id, cleared)
    logger.info("Resetting results of match game %s (parent %s)", change.game.id, change.parent.id)
    return _finish_game(storage, change)


def reorder_round(
    storage: BracketStorage, stage: Stage, round_id: int, seed_index: int, method: str, settings: Dict[str, Any]
) -> List[int]:
    """
    Rearrange a loser bracket round after its seed ordering changed.

    Slots move by their origin position (the upper bracket match they come
    from), so participants already dropped down follow the new ordering. Matches
    that gain or lose a BYE re-run their propagation. Returns the ids of every
    rewritten match.
    """
    round_ = storage.select("round", round_id)
    group = storage.select("group", round_.group_id)
    matches = sorted(storage.select("match", {"round_id": round_id}), key=lambda m: m.number)
    first_round = round_.number == 1

    by_position: Dict[int, Slot] = {}
    for match in matches:
        for slot in (match.opponent1, match.opponent2) if first_round else (match.opponent1,):
            if slot is not None and slot.get("position") is not None:
                by_position[slot["position"]] = slot

    count = len(matches) * (2 if first_round else 1)
    order = apply_ordering(method, list(range(1, count + 1)))

    rewritten: List[Tuple[Match, Slot, Slot]] = []
    for i, match in enumerate(matches):
        if first_round:
            slot1, slot2 = by_position.get(order[2 * i]), by_position.get(order[2 * i + 1])
        else:
            slot1, slot2 = by_position.get(order[i]), match.opponent2
        if (slot1, slot2) != (match.opponent1, match.opponent2):
            rewritten.append((match, slot1, slot2))

    forwarding = [
        (match, slot1, slot2)
        for match, slot1, slot2 in rewritten
        if has_bye(match.opponent1, match.opponent2) or has_bye(slot1, slot2)
    ]
    for match, _, _ in forwarding:
        _assert_dependents_unlocked(storage, stage, (group.number, round_.number, match.number))

    storage.update("stage", stage.id, {"settings": settings})
    affected: List[int] = []
    for match, slot1, slot2 in rewritten:
        _write_match(storage, match, slot1, slot2)
        affected.append(match.id)
    for match, slot1, slot2 in forwarding:
        _propagate(storage, stage, (group.number, round_.number, match.number), slot1, slot2, affected)

    logger.info(
        "Reordered round %s of stage %s with %s (seed_ordering[%d]): %d match(es) rewritten",
        round_id,
        stage.id,
        method,
        seed_index,
        len(affected),
    )
    return affected

"""
Topology builder.

A stage is first planned in memory (groups -> rounds -> matches, every BYE chain
already resolved) by one builder per format, then persisted in one pass.
Planning is pure and validates everything, so a rejected stage writes nothing.

Builders:
    single_elimination  one bracket + optional consolation final
    double_elimination  winner bracket + loser bracket + grand final (none/simple/double)
    round_robin         pools scheduled with the circle method
    swiss               round 1 only; later rounds come from swiss_pairing
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from bracket_engine.errors import StateError, ValidationError
from bracket_engine.models.match import MatchStatus
from bracket_engine.models.stage import Stage, StageType
from bracket_engine.services.bracket_graph import (
    grand_final_round_count,
    has_consolation_final,
    has_loser_bracket,
    loser_ordering,
    upper_round_count,
)
from bracket_engine.storage import BracketStorage
from bracket_engine.utils.round_robin import make_round_robin_rounds
from bracket_engine.utils.seed_ordering import (
    DEFAULT_ELIMINATION_ORDERING,
    DEFAULT_GROUP_ORDERING,
    DEFAULT_MINOR_ORDERING,
    apply_ordering,
    balance_byes,
    ensure_no_duplicates,
    ensure_valid_size,
    fix_seeding,
    make_groups,
    validate_ordering,
)
from bracket_engine.utils.slots import Duel, Slot, bye_loser, bye_winner, compute_status, seed_slot, to_game_slot

logger = logging.getLogger(__name__)

SeedEntry = Union[None, int, str, Dict[str, Any]]

DEFAULT_POINTS = {"win": 3, "draw": 1, "loss": 0}


@dataclass
class PlannedMatch:
    number: int
    opponent1: Slot
    opponent2: Slot
    child_count: int = 0

    @property
    def status(self) -> MatchStatus:
        return compute_status(self.opponent1, self.opponent2)


@dataclass
class PlannedRound:
    number: int
    matches: List[PlannedMatch] = field(default_factory=list)


@dataclass
class PlannedGroup:
    number: int
    rounds: List[PlannedRound] = field(default_factory=list)


@dataclass
class StagePlan:
    stage_type: str
    settings: Dict[str, Any]
    groups: List[PlannedGroup]

    @property
    def match_count(self) -> int:
        return sum(len(r.matches) for g in self.groups for r in g.rounds)


# =============================================================================
# Settings
# =============================================================================


def _elimination_orderings(stage_type: str, size: int, given: Sequence[str]) -> List[str]:
    if stage_type == StageType.single_elimination.value:
        defaults = [DEFAULT_ELIMINATION_ORDERING]
    else:
        rounds = upper_round_count(size)
        minor = DEFAULT_MINOR_ORDERING.get(size, [])
        defaults = [DEFAULT_ELIMINATION_ORDERING] + [
            minor[i] if i < len(minor) else "natural" for i in range(max(rounds - 1, 0))
        ]
    methods = [given[i] if i < len(given) else default for i, default in enumerate(defaults)]
    for method in methods:
        validate_ordering(method, for_groups=False)
    return methods


def normalize_settings(stage_type: str, settings: Optional[Dict[str, Any]], seeding_length: Optional[int]) -> Dict[str, Any]:
    """Fill defaults and validate stage settings. Raises ValidationError."""
    if stage_type not in {t.value for t in StageType}:
        raise ValidationError(f"Unknown stage type: {stage_type}")

    result = dict(settings or {})
    size = result.get("size") or seeding_length
    if not size:
        raise ValidationError("Either size or seeding must be given.")
    ensure_valid_size(stage_type, size)
    if seeding_length is not None and seeding_length > size:
        raise ValidationError("The seeding has more participants than the size of the stage.")

    result["size"] = size
    result["matches_child_count"] = int(result.get("matches_child_count") or 0)
    if result["matches_child_count"] < 0:
        raise ValidationError("The child count cannot be negative.")
    result["balance_byes"] = bool(result.get("balance_byes", False))
    given = list(result.get("seed_ordering") or [])

    if stage_type == StageType.round_robin.value:
        group_count = result.get("group_count")
        if not group_count or group_count < 1:
            raise ValidationError("You must specify a group count for round-robin stages.")
        if group_count > size:
            raise ValidationError("The group count cannot be greater than the size.")
        method = given[0] if given else DEFAULT_GROUP_ORDERING
        validate_ordering(method, for_groups=True)
        result["seed_ordering"] = [method]
        mode = result.get("round_robin_mode") or "simple"
        if mode not in ("simple", "double"):
            raise ValidationError(f"Unknown round-robin mode: {mode}")
        result["round_robin_mode"] = mode
        result["points"] = {**DEFAULT_POINTS, **(result.get("points") or {})}

    elif stage_type == StageType.swiss.value:
        result["group_count"] = 1
        result["seed_ordering"] = ["natural"]
        round_count = result.get("round_count") or upper_round_count(size)
        if round_count < 1 or round_count > size - 1:
            raise ValidationError("The Swiss round count must be between 1 and size - 1.")
        result["round_count"] = round_count
        result["points"] = {**DEFAULT_POINTS, **(result.get("points") or {})}

    else:
        result["seed_ordering"] = _elimination_orderings(stage_type, size, given)
        result["consolation_final"] = bool(result.get("consolation_final", False))
        if stage_type == StageType.double_elimination.value:
            grand_final = result.get("grand_final") or "none"
            if grand_final not in ("none", "simple", "double"):
                raise ValidationError(f"Unknown grand final type: {grand_final}")
            result["grand_final"] = grand_final
            # No double elimination consolation final
            result["consolation_final"] = False

    return result


# =============================================================================
# Slots
# =============================================================================


def make_slots(stage_type: str, settings: Dict[str, Any], participant_ids: Optional[List[Optional[int]]]) -> List[Slot]:
    """
    Seed slots for the first round: TBD slots when only a size is known,
    otherwise one slot per seed (None for a BYE), padded to the size.
    """
    size = settings["size"]
    if participant_ids is None:
        return [seed_slot(None, i + 1) for i in range(size)]

    ids = fix_seeding(list(participant_ids), size)
    ensure_no_duplicates(ids)
    if stage_type != StageType.round_robin.value and settings.get("balance_byes"):
        ids = balance_byes(ids, size)
    return [None if pid is None else seed_slot(pid, i + 1) for i, pid in enumerate(ids)]


def _pairs(slots: Sequence[Slot]) -> List[Duel]:
    return [(slots[i], slots[i + 1]) for i in range(0, len(slots), 2)]


def _transition_to_major(duels: Sequence[Duel]) -> List[Duel]:
    winners = [bye_winner(d) for d in duels]
    return _pairs(winners)


def _transition_to_minor(duels: Sequence[Duel], losers: Sequence[Slot], method: str) -> List[Duel]:
    ordered = apply_ordering(method, list(losers))
    return [(ordered[i], bye_winner(duel)) for i, duel in enumerate(duels)]


def _round(number: int, duels: Sequence[Duel], child_count: int) -> PlannedRound:
    return PlannedRound(
        number=number,
        matches=[PlannedMatch(i + 1, a, b, child_count) for i, (a, b) in enumerate(duels)],
    )


# =============================================================================
# Builders
# =============================================================================


def _upper_bracket(slots: List[Slot], settings: Dict[str, Any]) -> Tuple[PlannedGroup, List[List[Slot]], Slot]:
    """Standard bracket: returns the group, the losers of each round and the bracket winner."""
    child_count = settings["matches_child_count"]
    duels = _pairs(apply_ordering(settings["seed_ordering"][0], slots))
    group = PlannedGroup(number=1)
    losers: List[List[Slot]] = []

    for number in range(1, upper_round_count(settings["size"]) + 1):
        if number > 1:
            duels = _transition_to_major(duels)
        losers.append([bye_loser(duel, i) for i, duel in enumerate(duels)])
        group.rounds.append(_round(number, duels, child_count))

    return group, losers, bye_winner(duels[0])


def build_single_elimination(slots: List[Slot], settings: Dict[str, Any]) -> List[PlannedGroup]:
    bracket, losers, _ = _upper_bracket(slots, settings)
    groups = [bracket]
    if has_consolation_final(settings):
        semi_final_losers = losers[-2]
        groups.append(
            PlannedGroup(
                number=2,
                rounds=[_round(1, [(semi_final_losers[0], semi_final_losers[1])], settings["matches_child_count"])],
            )
        )
    return groups


def _loser_bracket(losers: List[List[Slot]], settings: Dict[str, Any]) -> Tuple[PlannedGroup, Slot]:
    """
    Alternate major rounds (loser bracket survivors only) and minor rounds
    (survivors vs. fresh upper bracket losers, which take opponent1).
    """
    child_count = settings["matches_child_count"]
    duels = _pairs(apply_ordering(loser_ordering(settings, 1), list(losers[0])))
    group = PlannedGroup(number=2)
    number = 1

    for i in range(upper_round_count(settings["size"]) - 1):
        if i > 0:
            duels = _transition_to_major(duels)
        group.rounds.append(_round(number, duels, child_count))
        number += 1

        duels = _transition_to_minor(duels, losers[i + 1], loser_ordering(settings, i + 2))
        group.rounds.append(_round(number, duels, child_count))
        number += 1

    return group, bye_winner(duels[0])


def _grand_final(winner_wb: Slot, winner_lb: Slot, settings: Dict[str, Any]) -> Optional[PlannedGroup]:
    count = grand_final_round_count(settings)
    if count == 0:
        return None

    duels: List[Duel] = [(winner_wb, winner_lb)]
    if count == 2:
        if winner_wb is None or winner_lb is None:
            # Decided by a BYE: the reset match is never played either
            duels.append((bye_winner((winner_wb, winner_lb)), None))
        else:
            duels.append(({"id": None}, {"id": None}))

    child_count = settings["matches_child_count"]
    return PlannedGroup(number=3, rounds=[_round(i + 1, [duel], child_count) for i, duel in enumerate(duels)])


def build_double_elimination(slots: List[Slot], settings: Dict[str, Any]) -> List[PlannedGroup]:
    upper, losers, winner_wb = _upper_bracket(slots, settings)
    if not has_loser_bracket(settings):
        return [upper]

    lower, winner_lb = _loser_bracket(losers, settings)
    groups = [upper, lower]
    final = _grand_final(winner_wb, winner_lb, settings)
    if final is not None:
        groups.append(final)
    return groups


def build_round_robin(slots: List[Slot], settings: Dict[str, Any]) -> List[PlannedGroup]:
    group_count = settings["group_count"]
    method = settings["seed_ordering"][0]
    ordered = slots if method == "natural" else apply_ordering(method, slots, group_count)
    child_count = settings["matches_child_count"]

    groups: List[PlannedGroup] = []
    for index, pool in enumerate(make_groups(ordered, group_count)):
        rounds = make_round_robin_rounds(pool, settings.get("round_robin_mode", "simple"))
        groups.append(
            PlannedGroup(number=index + 1, rounds=[_round(i + 1, duels, child_count) for i, duels in enumerate(rounds)])
        )
    return groups


def build_swiss(slots: List[Slot], settings: Dict[str, Any]) -> List[PlannedGroup]:
    """Round 1 only: top half vs. bottom half by seed (1 vs n/2+1, 2 vs n/2+2, ...)."""
    half = len(slots) // 2
    duels = [(slots[i], slots[i + half]) for i in range(half) if slots[i] is not None or slots[i + half] is not None]
    return [PlannedGroup(number=1, rounds=[_round(1, duels, settings["matches_child_count"])])]


BUILDERS: Dict[str, Callable[[List[Slot], Dict[str, Any]], List[PlannedGroup]]] = {
    StageType.single_elimination.value: build_single_elimination,
    StageType.double_elimination.value: build_double_elimination,
    StageType.round_robin.value: build_round_robin,
    StageType.swiss.value: build_swiss,
}


def plan_stage(stage_type: str, settings: Dict[str, Any], slots: List[Slot]) -> StagePlan:
    return StagePlan(stage_type=stage_type, settings=settings, groups=BUILDERS[stage_type](slots, settings))


# =============================================================================
# Participants
# =============================================================================


def resolve_seeding(storage: BracketStorage, tournament_id: int, seeding: Sequence[SeedEntry]) -> List[Optional[int]]:
    """
    Turn seeding entries into participant ids, registering new participants.

    Entries: None (BYE), a participant id, a name, or a dict with "name" plus
    pass-through fields. Every check runs before the first insert.
    """
    existing = {p.name: p.id for p in storage.select("participant", {"tournament_id": tournament_id})}
    planned: List[Tuple[str, Any]] = []
    seen_names = set()
    seen_ids = set()

    for entry in seeding:
        if entry is None:
            planned.append(("bye", None))
        elif isinstance(entry, bool):
            raise ValidationError("Invalid seeding entry.")
        elif isinstance(entry, int):
            participant = storage.select("participant", entry)
            if participant is None or participant.tournament_id != tournament_id:
                raise ValidationError(f"Participant {entry} does not exist in this tournament.")
            if entry in seen_ids:
                raise ValidationError("The seeding has a duplicate participant.")
            seen_ids.add(entry)
            planned.append(("id", entry))
        else:
            data = {"name": entry} if isinstance(entry, str) else dict(entry)
            name = data.get("name")
            if not name:
                raise ValidationError("A participant needs a name.")
            if name in seen_names or existing.get(name) in seen_ids:
                raise ValidationError("The seeding has a duplicate participant.")
            seen_names.add(name)
            if name in existing:
                seen_ids.add(existing[name])
                planned.append(("id", existing[name]))
            else:
                planned.append(("new", data))

    ids: List[Optional[int]] = []
    for kind, value in planned:
        if kind == "new":
            ids.append(storage.insert("participant", {**value, "tournament_id": tournament_id}))
        else:
            ids.append(value)
    return ids


# =============================================================================
# Persistence
# =============================================================================


def insert_match(storage: BracketStorage, stage_id: int, group_id: int, round_id: int, match: PlannedMatch) -> int:
    status = int(match.status)
    match_id = storage.insert(
        "match",
        {
            "stage_id": stage_id,
            "group_id": group_id,
            "round_id": round_id,
            "number": match.number,
            "status": status,
            "opponent1": match.opponent1,
            "opponent2": match.opponent2,
            "child_count": match.child_count,
        },
    )
    for number in range(1, match.child_count + 1):
        storage.insert(
            "match_game",
            {
                "stage_id": stage_id,
                "parent_id": match_id,
                "number": number,
                "status": status,
                "opponent1": to_game_slot(match.opponent1),
                "opponent2": to_game_slot(match.opponent2),
            },
        )
    return match_id


def persist_plan(storage: BracketStorage, stage_id: int, plan: StagePlan) -> None:
    for group in plan.groups:
        group_id = storage.insert("group", {"stage_id": stage_id, "number": group.number})
        for round_ in group.rounds:
            round_id = storage.insert("round", {"stage_id": stage_id, "group_id": group_id, "number": round_.number})
            for match in round_.matches:
                insert_match(storage, stage_id, group_id, round_id, match)


def _next_stage_number(storage: BracketStorage, tournament_id: int, number: Optional[int]) -> int:
    stages = storage.select("stage", {"tournament_id": tournament_id})
    if number is None:
        return max((s.number for s in stages), default=0) + 1
    if any(s.number == number for s in stages):
        raise ValidationError("A stage with this number already exists in the tournament.")
    return number


def create_stage(
    storage: BracketStorage,
    tournament_id: int,
    name: str,
    stage_type: str,
    seeding: Optional[Sequence[SeedEntry]] = None,
    settings: Optional[Dict[str, Any]] = None,
    number: Optional[int] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Stage:
    """
    Create a stage with its whole topology.

    Without a seeding, ``settings["size"]`` TBD slots are created and filled
    later with update_seeding(). Swiss stages only get their first round here.
    """
    if tournament_id is None:
        raise ValidationError("A tournament id is required.")
    if not name:
        raise ValidationError("A stage name is required.")

    try:
        stage_type = StageType(stage_type).value
    except ValueError:
        raise ValidationError(f"Unknown stage type: {stage_type}")
    settings = normalize_settings(stage_type, settings, len(seeding) if seeding is not None else None)
    stage_number = _next_stage_number(storage, tournament_id, number)

    if seeding is not None:
        participant_ids: Optional[List[Optional[int]]] = resolve_seeding(storage, tournament_id, seeding)
    else:
        participant_ids = None

    plan = plan_stage(stage_type, settings, make_slots(stage_type, settings, participant_ids))

    stage_id = storage.insert(
        "stage",
        {
            **(extra or {}),
            "tournament_id": tournament_id,
            "name": name,
            "type": stage_type,
            "number": stage_number,
            "settings": settings,
        },
    )
    persist_plan(storage, stage_id, plan)
    logger.info(
        "Created %s stage %s (tournament %s, size %s): %d group(s), %d match(es)",
        stage_type,
        stage_id,
        tournament_id,
        settings["size"],
        len(plan.groups),
        plan.match_count,
    )
    return storage.select("stage", stage_id)


def assert_stage_not_started(storage: BracketStorage, stage_id: int) -> None:
    if any(m.status > MatchStatus.READY for m in storage.select("match", {"stage_id": stage_id})):
        raise StateError("At least one match has started or is completed.")


def rebuild_stage(storage: BracketStorage, stage: Stage, participant_ids: Optional[List[Optional[int]]], settings: Dict[str, Any]) -> None:
    """
    Re-plan an existing stage in place (new seeding or first-round ordering).

    Matches keep their ids by (group, round, match) coordinates. Refused once a
    match has started, since results would no longer match the participants.
    """
    assert_stage_not_started(storage, stage.id)

    plan = plan_stage(stage.type, settings, make_slots(stage.type, settings, participant_ids))

    for group in plan.groups:
        group_row = storage.select_first("group", {"stage_id": stage.id, "number": group.number})
        group_id = group_row.id if group_row else storage.insert("group", {"stage_id": stage.id, "number": group.number})
        for round_ in group.rounds:
            round_row = storage.select_first("round", {"group_id": group_id, "number": round_.number})
            round_id = (
                round_row.id
                if round_row
                else storage.insert("round", {"stage_id": stage.id, "group_id": group_id, "number": round_.number})
            )
            existing = {m.number: m for m in storage.select("match", {"round_id": round_id})}
            for planned in round_.matches:
                row = existing.pop(planned.number, None)
                if row is None:
                    insert_match(storage, stage.id, group_id, round_id, planned)
                    continue
                status = int(planned.status)
                storage.update(
                    "match", row.id, {"opponent1": planned.opponent1, "opponent2": planned.opponent2, "status": status}
                )
                storage.update(
                    "match_game",
                    {"parent_id": row.id},
                    {
                        "opponent1": to_game_slot(planned.opponent1),
                        "opponent2": to_game_slot(planned.opponent2),
                        "status": status,
                    },
                )
            for stale in existing.values():
                storage.delete("match_game", {"parent_id": stale.id})
                storage.delete("match", {"id": stale.id})

        # Swiss rounds generated after round 1 are planned again later
        planned_rounds = {r.number for r in group.rounds}
        for round_row in storage.select("round", {"group_id": group_id}):
            if round_row.number in planned_rounds:
                continue
            for stale in storage.select("match", {"round_id": round_row.id}):
                storage.delete("match_game", {"parent_id": stale.id})
            storage.delete("match", {"round_id": round_row.id})
            storage.delete("round", {"id": round_row.id})

    storage.update("stage", stage.id, {"settings": settings})
    logger.info("Rebuilt stage %s with %d match(es)", stage.id, plan.match_count)

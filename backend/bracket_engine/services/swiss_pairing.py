"""
Swiss system: lazy round generation.

Round 1 is a plain half split built with the stage. Every later round is
created once all matches of the previous round are resolved:

1. Rank participants by points (settings["points"], a BYE counts as a win),
   then by seed position.
2. With an odd participant count, the lowest-ranked participant that has not
   had a BYE yet gets one.
3. Pair the rest top-down, each with the highest-ranked remaining opponent
   they have not met (backtracking when a later pairing gets stuck).
4. If no rematch-free pairing exists, pair neighbours in ranking order.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from bracket_engine.models.match import Match, MatchStatus
from bracket_engine.models.stage import Stage, StageType
from bracket_engine.services.stage_builder import PlannedMatch, insert_match
from bracket_engine.storage import BracketStorage
from bracket_engine.utils.slots import has_bye, slot_id

logger = logging.getLogger(__name__)


@dataclass
class SwissRecord:
    participant_id: int
    seed: int
    points: float = 0
    opponents: Set[int] = field(default_factory=set)
    byes: int = 0


def is_round_resolved(matches: Sequence[Match]) -> bool:
    """Every match is completed or decided by a BYE."""
    return all(m.status >= MatchStatus.COMPLETED or has_bye(m.opponent1, m.opponent2) for m in matches)


def build_records(matches: Sequence[Match], points: Dict[str, float]) -> Dict[int, SwissRecord]:
    """Points, opponents and BYEs per participant; seeds come from round 1 positions."""
    records: Dict[int, SwissRecord] = {}

    def record(slot) -> Optional[SwissRecord]:
        pid = slot_id(slot)
        if pid is None:
            return None
        if pid not in records:
            records[pid] = SwissRecord(participant_id=pid, seed=slot.get("position") or 10**6)
        elif slot.get("position") is not None:
            records[pid].seed = min(records[pid].seed, slot["position"])
        return records[pid]

    for match in matches:
        r1, r2 = record(match.opponent1), record(match.opponent2)
        if r1 is None and r2 is None:
            continue
        if has_bye(match.opponent1, match.opponent2):
            lone = r1 or r2
            lone.byes += 1
            lone.points += points.get("win", 3)
            continue
        if r1 is None or r2 is None:
            continue
        r1.opponents.add(r2.participant_id)
        r2.opponents.add(r1.participant_id)
        for rec, slot in ((r1, match.opponent1), (r2, match.opponent2)):
            result = slot.get("result")
            if result in ("win", "draw", "loss"):
                rec.points += points.get(result, 0)
    return records


def _pair_without_rematch(ranked: List[int], opponents: Dict[int, Set[int]]) -> Optional[List[Tuple[int, int]]]:
    if not ranked:
        return []
    first = ranked[0]
    for j in range(1, len(ranked)):
        candidate = ranked[j]
        if candidate in opponents[first]:
            continue
        rest = _pair_without_rematch(ranked[1:j] + ranked[j + 1:], opponents)
        if rest is not None:
            return [(first, candidate)] + rest
    return None


def pair_next_round(records: Dict[int, SwissRecord]) -> Tuple[List[Tuple[int, int]], Optional[int]]:
    """Pairings for the next round and the participant receiving a BYE (if any)."""
    ranked = sorted(records.values(), key=lambda r: (-r.points, r.seed))
    bye: Optional[int] = None

    if len(ranked) % 2 == 1:
        fewest = min(r.byes for r in ranked)
        for rec in reversed(ranked):
            if rec.byes == fewest:
                bye = rec.participant_id
                break
        ranked = [r for r in ranked if r.participant_id != bye]

    ids = [r.participant_id for r in ranked]
    opponents = {r.participant_id: r.opponents for r in ranked}
    pairs = _pair_without_rematch(ids, opponents)
    if pairs is None:
        logger.warning("No rematch-free Swiss pairing exists; pairing neighbours in ranking order")
        pairs = [(ids[i], ids[i + 1]) for i in range(0, len(ids), 2)]
    return pairs, bye


def ensure_next_round(storage: BracketStorage, stage: Stage) -> Optional[int]:
    """
    Create the next Swiss round when the latest one is fully resolved.

    Repeats while new rounds resolve immediately (BYE-only rounds). Returns the
    id of the last round created, or None.
    """
    if stage.type != StageType.swiss.value:
        return None

    group = storage.select_first("group", {"stage_id": stage.id, "number": 1})
    if group is None:
        return None

    created: Optional[int] = None
    settings = stage.settings
    while True:
        rounds = sorted(storage.select("round", {"group_id": group.id}), key=lambda r: r.number)
        if not rounds or len(rounds) >= settings["round_count"]:
            return created
        latest = rounds[-1]
        if not is_round_resolved(storage.select("match", {"round_id": latest.id})):
            return created

        records = build_records(storage.select("match", {"stage_id": stage.id}), settings.get("points") or {})
        if len(records) < 2:
            return created
        pairs, bye = pair_next_round(records)

        round_id = storage.insert("round", {"stage_id": stage.id, "group_id": group.id, "number": latest.number + 1})
        child_count = settings.get("matches_child_count", 0)
        number = 0
        for a, b in pairs:
            number += 1
            insert_match(storage, stage.id, group.id, round_id, PlannedMatch(number, {"id": a}, {"id": b}, child_count))
        if bye is not None:
            number += 1
            insert_match(storage, stage.id, group.id, round_id, PlannedMatch(number, {"id": bye}, None, child_count))

        logger.info(
            "Generated Swiss round %d for stage %s: %d pairing(s)%s",
            latest.number + 1,
            stage.id,
            len(pairs),
            f", BYE for participant {bye}" if bye is not None else "",
        )
        created = round_id

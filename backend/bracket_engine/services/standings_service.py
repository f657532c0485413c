"""
Final standings of a stage.

Elimination stages rank participants by how far they went (dense ranks: every
participant eliminated in the same round shares a rank). Round-robin and Swiss
stages rank each group by a points formula, then interleave the groups by rank.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from bracket_engine.errors import StateError, ValidationError
from bracket_engine.models.match import Match
from bracket_engine.models.stage import ELIMINATION_TYPES, Stage, StageType
from bracket_engine.services import bracket_graph
from bracket_engine.services.stage_queries import find_group, get_stage
from bracket_engine.storage import BracketStorage
from bracket_engine.utils.slots import has_bye, is_result_completed, outcome, slot_id

logger = logging.getLogger(__name__)

RankingFormula = Callable[[Dict[str, Any]], float]


@dataclass
class RankingRow:
    id: int
    group_id: int
    played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    forfeits: int = 0
    score_for: int = 0
    score_against: int = 0
    score_difference: int = 0
    points: float = 0
    rank: int = 0
    name: Optional[str] = None


# =============================================================================
# Elimination
# =============================================================================


def _matches_by_round(storage: BracketStorage, group_id: int) -> List[List[Match]]:
    rounds = sorted(storage.select("round", {"group_id": group_id}), key=lambda r: r.number)
    return [sorted(storage.select("match", {"round_id": r.id}), key=lambda m: m.number) for r in rounds]


def _winner_id(match: Optional[Match]) -> int:
    if match is not None and has_bye(match.opponent1, match.opponent2):
        winner, _ = outcome(match.opponent1, match.opponent2)
        if slot_id(winner) is not None:
            return slot_id(winner)
    if match is None or not is_result_completed(match.opponent1, match.opponent2):
        raise StateError("The stage is not finished yet.")
    winner, _ = outcome(match.opponent1, match.opponent2)
    return slot_id(winner)


def _loser_id(match: Optional[Match]) -> Optional[int]:
    if match is None or has_bye(match.opponent1, match.opponent2):
        return None
    if not is_result_completed(match.opponent1, match.opponent2):
        return None
    _, loser = outcome(match.opponent1, match.opponent2)
    return slot_id(loser)


def _losers_per_round(rounds: Sequence[Sequence[Match]]) -> List[List[int]]:
    result = []
    for matches in rounds:
        losers = [pid for pid in (_loser_id(m) for m in matches) if pid is not None]
        result.append(losers)
    return result


def _single_elimination_tiers(storage: BracketStorage, stage: Stage) -> List[List[int]]:
    bracket = find_group(storage, stage.id, bracket_graph.WINNER_BRACKET)
    rounds = _matches_by_round(storage, bracket.id)
    final = rounds[-1][0]

    tiers = [[_winner_id(final)]]
    tiers.extend(reversed(_losers_per_round(rounds)))

    if bracket_graph.has_consolation_final(stage.settings) and len(tiers) > 2:
        consolation_group = find_group(storage, stage.id, bracket_graph.CONSOLATION_GROUP)
        consolation = _matches_by_round(storage, consolation_group.id)[0][0]
        # Semi-final losers are split by the consolation final
        tiers[2:3] = [[_winner_id(consolation)], [_loser_id(consolation)]]
    return tiers


def _double_elimination_tiers(storage: BracketStorage, stage: Stage) -> List[List[int]]:
    upper = _matches_by_round(storage, find_group(storage, stage.id, bracket_graph.WINNER_BRACKET).id)
    upper_final = upper[-1][0]
    lower_group = find_group(storage, stage.id, bracket_graph.LOSER_BRACKET)

    if lower_group is None:
        return [[_winner_id(upper_final)], [_loser_id(upper_final)]]

    lower = _matches_by_round(storage, lower_group.id)
    final_group = find_group(storage, stage.id, bracket_graph.FINAL_GROUP)

    if final_group is None:
        tiers = [[_winner_id(upper_final)], [_winner_id(lower[-1][0])]]
    else:
        finals = [r[0] for r in _matches_by_round(storage, final_group.id)]
        decisive = finals[0]
        if len(finals) > 1 and not has_bye(finals[1].opponent1, finals[1].opponent2):
            decisive = finals[1]
        tiers = [[_winner_id(decisive)], [_loser_id(decisive)]]

    tiers.extend(reversed(_losers_per_round(lower)))
    return tiers


def _tiers_to_standings(tiers: Sequence[Sequence[int]], names: Dict[int, str]) -> List[Dict[str, Any]]:
    standings = []
    rank = 0
    for tier in tiers:
        tier = [pid for pid in tier if pid is not None]
        if not tier:
            continue
        rank += 1
        for pid in tier:
            standings.append({"id": pid, "name": names.get(pid), "rank": rank})
    return standings


# =============================================================================
# Round-robin / Swiss
# =============================================================================


def default_ranking_formula(points: Dict[str, float]) -> RankingFormula:
    """Points from the stage's win/draw/loss weights."""
    def formula(row: Dict[str, Any]) -> float:
        return row["wins"] * points.get("win", 3) + row["draws"] * points.get("draw", 1) + row["losses"] * points.get("loss", 0)
    return formula


def _tally(rows: Dict[int, RankingRow], match: Match, count_byes: bool) -> None:
    op1, op2 = match.opponent1, match.opponent2
    if has_bye(op1, op2):
        lone = slot_id(op1) if op1 is not None else slot_id(op2)
        if count_byes and lone is not None and lone in rows:
            rows[lone].played += 1
            rows[lone].wins += 1
        return
    if not is_result_completed(op1, op2):
        return

    for slot, other in ((op1, op2), (op2, op1)):
        row = rows[slot["id"]]
        row.played += 1
        if slot.get("forfeit"):
            row.forfeits += 1
            row.losses += 1
        elif slot.get("result") == "win":
            row.wins += 1
        elif slot.get("result") == "draw":
            row.draws += 1
        else:
            row.losses += 1
        row.score_for += slot.get("score") or 0
        row.score_against += other.get("score") or 0


def group_ranking(
    matches: Sequence[Match], group_id: int, formula: RankingFormula, count_byes: bool
) -> List[RankingRow]:
    """Rank the participants of one group; equal (points, played) share a dense rank."""
    rows: Dict[int, RankingRow] = {}
    for match in matches:
        for slot in (match.opponent1, match.opponent2):
            pid = slot_id(slot)
            if pid is not None and pid not in rows:
                rows[pid] = RankingRow(id=pid, group_id=group_id)

    for match in matches:
        _tally(rows, match, count_byes)

    for row in rows.values():
        row.score_difference = row.score_for - row.score_against
        row.points = formula(asdict(row))

    ordered = sorted(rows.values(), key=lambda r: (-r.points, -r.played, r.id))
    rank = 0
    previous = None
    for row in ordered:
        key = (row.points, row.played)
        if key != previous:
            rank += 1
            previous = key
        row.rank = rank
    return ordered


def _group_standings(
    storage: BracketStorage,
    stage: Stage,
    names: Dict[int, str],
    ranking_formula: Optional[RankingFormula],
    max_qualified: Optional[int],
) -> List[Dict[str, Any]]:
    formula = ranking_formula or default_ranking_formula(stage.settings.get("points") or {})
    count_byes = stage.type == StageType.swiss.value
    groups = sorted(storage.select("group", {"stage_id": stage.id}), key=lambda g: g.number)
    group_numbers = {g.id: g.number for g in groups}

    rows: List[RankingRow] = []
    for group in groups:
        ranking = group_ranking(storage.select("match", {"group_id": group.id}), group.id, formula, count_byes)
        if max_qualified is not None:
            ranking = ranking[:max_qualified]
        for row in ranking:
            row.name = names.get(row.id)
        rows.extend(ranking)

    rows.sort(key=lambda r: (r.rank, -r.points, group_numbers[r.group_id]))
    return [asdict(row) for row in rows]


def get_final_standings(
    storage: BracketStorage,
    stage_id: int,
    ranking_formula: Optional[RankingFormula] = None,
    max_qualified_participants_per_group: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Final standings of a stage.

    Elimination: [{"id", "name", "rank"}]; raises StateError while the final is
    undecided. Round-robin/Swiss: one row per participant with played, wins,
    draws, losses, forfeits, scores, points and rank, groups interleaved by rank.
    """
    stage = get_stage(storage, stage_id)
    names = {p.id: p.name for p in storage.select("participant", {"tournament_id": stage.tournament_id})}

    if stage.type in ELIMINATION_TYPES:
        if ranking_formula is not None or max_qualified_participants_per_group is not None:
            raise ValidationError("Ranking options are not supported for elimination stages.")
        if stage.type == StageType.single_elimination.value:
            tiers = _single_elimination_tiers(storage, stage)
        else:
            tiers = _double_elimination_tiers(storage, stage)
        logger.debug("Elimination standings for stage %s: %d tier(s)", stage.id, len(tiers))
        return _tiers_to_standings(tiers, names)

    if max_qualified_participants_per_group is not None and max_qualified_participants_per_group < 1:
        raise ValidationError("The count of qualified participants per group must be positive.")
    return _group_standings(storage, stage, names, ranking_formula, max_qualified_participants_per_group)

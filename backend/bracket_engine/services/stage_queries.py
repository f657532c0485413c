"""
Read-side queries: entity lookups, match navigation, seeding and "current" views.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from bracket_engine.errors import NotFoundError, StateError
from bracket_engine.models.group import Group
from bracket_engine.models.match import Match, MatchStatus
from bracket_engine.models.match_game import MatchGame
from bracket_engine.models.round import Round
from bracket_engine.models.stage import ELIMINATION_TYPES, Stage
from bracket_engine.services import bracket_graph
from bracket_engine.storage import BracketStorage
from bracket_engine.utils.slots import Slot, has_bye, outcome, slot_id


@dataclass
class MatchLocation:
    stage: Stage
    group: Group
    round: Round

    @property
    def group_number(self) -> int:
        return self.group.number

    @property
    def round_number(self) -> int:
        return self.round.number


# =============================================================================
# Lookups
# =============================================================================


def get_stage(storage: BracketStorage, stage_id: int) -> Stage:
    stage = storage.select("stage", stage_id)
    if stage is None:
        raise NotFoundError("Stage not found.")
    return stage


def get_match(storage: BracketStorage, match_id: int) -> Match:
    match = storage.select("match", match_id)
    if match is None:
        raise NotFoundError("Match not found.")
    return match


def get_match_game(storage: BracketStorage, game_id: int) -> MatchGame:
    game = storage.select("match_game", game_id)
    if game is None:
        raise NotFoundError("Match game not found.")
    return game


def locate(storage: BracketStorage, match: Match) -> MatchLocation:
    stage = get_stage(storage, match.stage_id)
    group = storage.select("group", match.group_id)
    round_ = storage.select("round", match.round_id)
    if group is None or round_ is None:
        raise NotFoundError("Match is detached from its group or round.")
    return MatchLocation(stage=stage, group=group, round=round_)


def find_group(storage: BracketStorage, stage_id: int, number: int) -> Optional[Group]:
    return storage.select_first("group", {"stage_id": stage_id, "number": number})


def find_match(storage: BracketStorage, group_id: int, round_number: int, match_number: int) -> Match:
    round_ = storage.select_first("round", {"group_id": group_id, "number": round_number})
    if round_ is None:
        raise NotFoundError("Round not found.")
    match = storage.select_first("match", {"round_id": round_.id, "number": match_number})
    if match is None:
        raise NotFoundError("Match not found.")
    return match


def match_at(storage: BracketStorage, stage_id: int, location: bracket_graph.Location) -> Optional[Match]:
    """Match at (group number, round number, match number) in a stage, if it exists."""
    group_number, round_number, match_number = location
    group = find_group(storage, stage_id, group_number)
    if group is None:
        return None
    round_ = storage.select_first("round", {"group_id": group.id, "number": round_number})
    if round_ is None:
        return None
    return storage.select_first("match", {"round_id": round_.id, "number": match_number})


def find_upper_bracket(storage: BracketStorage, stage_id: int) -> Group:
    stage = get_stage(storage, stage_id)
    if stage.type not in ELIMINATION_TYPES:
        raise StateError("Round-robin and Swiss stages do not have an upper bracket.")
    group = find_group(storage, stage_id, bracket_graph.WINNER_BRACKET)
    if group is None:
        raise NotFoundError("Upper bracket not found.")
    return group


def find_loser_bracket(storage: BracketStorage, stage_id: int) -> Group:
    stage = get_stage(storage, stage_id)
    if stage.type != bracket_graph.DOUBLE:
        raise StateError("Only double elimination stages have a loser bracket.")
    group = find_group(storage, stage_id, bracket_graph.LOSER_BRACKET)
    if group is None:
        raise NotFoundError("Loser bracket not found.")
    return group


# =============================================================================
# Navigation
# =============================================================================


def _in_match(match: Match, participant_id: int) -> bool:
    return participant_id in (slot_id(match.opponent1), slot_id(match.opponent2))


def find_previous_matches(storage: BracketStorage, match_id: int, participant_id: Optional[int] = None) -> List[Match]:
    """Matches feeding this one; with a participant, only the one that participant came from."""
    match = get_match(storage, match_id)
    where = locate(storage, match)
    if where.stage.type not in ELIMINATION_TYPES:
        return []

    previous = [
        m
        for m in (
            match_at(storage, where.stage.id, loc)
            for loc in bracket_graph.previous_locations(
                where.stage.type, where.stage.settings, where.group_number, where.round_number, match.number
            )
        )
        if m is not None
    ]
    if participant_id is None:
        return previous
    return [m for m in previous if _in_match(m, participant_id)]


def find_next_matches(storage: BracketStorage, match_id: int, participant_id: Optional[int] = None) -> List[Match]:
    """
    Matches depending on this one.

    With a participant, the match must be decided; returns where that
    participant went next, or nothing once they are eliminated.
    """
    match = get_match(storage, match_id)
    where = locate(storage, match)
    stage = where.stage
    if stage.type not in ELIMINATION_TYPES:
        return []

    coords = (stage.type, stage.settings, where.group_number, where.round_number, match.number)

    if participant_id is None:
        return [m for m in (match_at(storage, stage.id, loc) for loc in bracket_graph.next_locations(*coords)) if m]

    if not _in_match(match, participant_id):
        raise StateError("The participant does not belong to this match.")
    if match.status < MatchStatus.COMPLETED:
        raise StateError("The match is not stale yet, so it is not possible to conclude the next matches for this participant.")

    winner, _ = outcome(match.opponent1, match.opponent2)
    ref = (
        bracket_graph.winner_destination(*coords)
        if slot_id(winner) == participant_id
        else bracket_graph.loser_destination(*coords)
    )
    if ref is not None:
        nxt = match_at(storage, stage.id, ref.location)
        return [nxt] if nxt is not None else []

    # Grand final reset: the second match is only played when it has no BYE
    for loc in bracket_graph.next_locations(*coords):
        nxt = match_at(storage, stage.id, loc)
        if nxt is not None and not has_bye(nxt.opponent1, nxt.opponent2) and _in_match(nxt, participant_id):
            return [nxt]
    return []


# =============================================================================
# Views
# =============================================================================


def is_unfinished(match: Match) -> bool:
    return match.status < MatchStatus.COMPLETED and not has_bye(match.opponent1, match.opponent2)


def get_seeding(storage: BracketStorage, stage_id: int) -> List[Slot]:
    """
    Seeding of a stage, indexed by seed position: {"id", "position"} per seed,
    None for a BYE seed.
    """
    stage = get_stage(storage, stage_id)
    size = stage.settings["size"]

    if stage.type in ELIMINATION_TYPES:
        group = find_group(storage, stage_id, bracket_graph.WINNER_BRACKET)
        round_ = storage.select_first("round", {"group_id": group.id, "number": 1}) if group else None
        matches = storage.select("match", {"round_id": round_.id}) if round_ else []
    else:
        first_rounds = [
            r for r in storage.select("round", {"stage_id": stage_id}) if stage.type != "swiss" or r.number == 1
        ]
        round_ids = {r.id for r in first_rounds}
        matches = [m for m in storage.select("match", {"stage_id": stage_id}) if m.round_id in round_ids]

    by_position: Dict[int, Slot] = {}
    for match in matches:
        for slot in (match.opponent1, match.opponent2):
            if slot is not None and slot.get("position") is not None:
                by_position[slot["position"]] = {"id": slot.get("id"), "position": slot["position"]}

    return [by_position.get(position) for position in range(1, size + 1)]


def get_round_matches(storage: BracketStorage, round_id: int) -> List[Match]:
    if storage.select("round", round_id) is None:
        raise NotFoundError("Round not found.")
    return sorted(storage.select("match", {"round_id": round_id}), key=lambda m: m.number)


def get_match_games(storage: BracketStorage, match_ids: Sequence[int]) -> List[MatchGame]:
    games: List[MatchGame] = []
    for match_id in match_ids:
        games.extend(sorted(storage.select("match_game", {"parent_id": match_id}), key=lambda g: g.number))
    return games


def _ordered_rounds(storage: BracketStorage, stage_id: int) -> List[Round]:
    groups = {g.id: g.number for g in storage.select("group", {"stage_id": stage_id})}
    rounds = storage.select("round", {"stage_id": stage_id})
    return sorted(rounds, key=lambda r: (groups.get(r.group_id, 0), r.number))


def get_current_stage(storage: BracketStorage, tournament_id: int) -> Optional[Stage]:
    """First stage (by number) that still has a match to play."""
    stages = sorted(storage.select("stage", {"tournament_id": tournament_id}), key=lambda s: s.number)
    for stage in stages:
        if any(is_unfinished(m) for m in storage.select("match", {"stage_id": stage.id})):
            return stage
    return None


def get_current_round(storage: BracketStorage, stage_id: int) -> Optional[Round]:
    """First round (by group, then number) that still has a match to play."""
    get_stage(storage, stage_id)
    for round_ in _ordered_rounds(storage, stage_id):
        if any(is_unfinished(m) for m in storage.select("match", {"round_id": round_.id})):
            return round_
    return None


def get_current_matches(storage: BracketStorage, stage_id: int) -> List[Match]:
    """
    Matches that can be played now (READY or RUNNING).

    Elimination: anywhere in the stage. Round-robin/Swiss: the current round of
    each group.
    """
    stage = get_stage(storage, stage_id)
    playable = (MatchStatus.READY, MatchStatus.RUNNING)

    if stage.type in ELIMINATION_TYPES:
        result: List[Match] = []
        for round_ in _ordered_rounds(storage, stage_id):
            result.extend(m for m in storage.select("match", {"round_id": round_.id}) if m.status in playable)
        return result

    result = []
    for group in storage.select("group", {"stage_id": stage_id}):
        for round_ in sorted(storage.select("round", {"group_id": group.id}), key=lambda r: r.number):
            matches = storage.select("match", {"round_id": round_.id})
            if any(is_unfinished(m) for m in matches):
                result.extend(m for m in matches if m.status in playable)
                break
    return result

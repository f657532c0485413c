"""
BracketManager: the public operation surface of the engine.

One instance wraps a BracketStorage (one SQLModel session). Every operation
validates first, then writes; the routes call nothing else.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlmodel import Session

from bracket_engine.errors import NotFoundError, StateError, ValidationError
from bracket_engine.models.group import Group
from bracket_engine.models.match import Match, MatchStatus
from bracket_engine.models.match_game import MatchGame
from bracket_engine.models.round import Round
from bracket_engine.models.stage import ELIMINATION_TYPES, Stage
from bracket_engine.services import (
    advancement_service,
    bracket_graph,
    data_transfer,
    stage_builder,
    stage_queries,
    standings_service,
    swiss_pairing,
)
from bracket_engine.services.advancement_service import MatchUpdateResult
from bracket_engine.services.standings_service import RankingFormula
from bracket_engine.storage import BracketStorage
from bracket_engine.utils.seed_ordering import validate_ordering
from bracket_engine.utils.slots import Slot, to_game_slot

logger = logging.getLogger(__name__)

CHILD_COUNT_LEVELS = ("stage", "group", "round", "match")


class BracketManager:
    def __init__(self, storage: BracketStorage):
        self.storage = storage

    @classmethod
    def for_session(cls, session: Session) -> "BracketManager":
        return cls(BracketStorage(session))

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_stage(
        self,
        tournament_id: int,
        name: str,
        stage_type: str,
        seeding: Optional[Sequence[Any]] = None,
        settings: Optional[Dict[str, Any]] = None,
        number: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Stage:
        stage = stage_builder.create_stage(
            self.storage, tournament_id, name, stage_type, seeding=seeding, settings=settings, number=number, extra=extra
        )
        # A Swiss round 1 made only of BYEs is already resolved
        swiss_pairing.ensure_next_round(self.storage, stage)
        return stage

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def update_match(self, partial: Dict[str, Any]) -> MatchUpdateResult:
        return advancement_service.update_match(self.storage, partial)

    def update_match_game(self, partial: Dict[str, Any]) -> MatchUpdateResult:
        return advancement_service.update_match_game(self.storage, partial)

    def reset_match_results(self, match_id: int) -> MatchUpdateResult:
        return advancement_service.reset_match_results(self.storage, match_id)

    def reset_match_game_results(self, game_id: int) -> MatchUpdateResult:
        return advancement_service.reset_match_game_results(self.storage, game_id)

    # ------------------------------------------------------------------
    # Seeding and ordering
    # ------------------------------------------------------------------

    def _current_participants(self, stage: Stage) -> Optional[List[Optional[int]]]:
        """Participant ids by seed position, or None while the stage only has TBD seeds."""
        seeding = stage_queries.get_seeding(self.storage, stage.id)
        if all(slot is not None and slot.get("id") is None for slot in seeding):
            return None
        return [None if slot is None else slot.get("id") for slot in seeding]

    def update_seeding(self, stage_id: int, seeding: Sequence[Any]) -> None:
        """Replace the seeding of a stage that has not started."""
        stage = stage_queries.get_stage(self.storage, stage_id)
        if len(seeding) != stage.settings["size"]:
            raise ValidationError("The size of the seeding is incorrect.")
        stage_builder.assert_stage_not_started(self.storage, stage_id)

        participant_ids = stage_builder.resolve_seeding(self.storage, stage.tournament_id, seeding)
        stage_builder.rebuild_stage(self.storage, stage, participant_ids, dict(stage.settings))
        swiss_pairing.ensure_next_round(self.storage, stage)
        logger.info("Updated seeding of stage %s", stage_id)

    def reset_seeding(self, stage_id: int) -> None:
        """Put every seed of a stage that has not started back to TBD."""
        stage = stage_queries.get_stage(self.storage, stage_id)
        stage_builder.rebuild_stage(self.storage, stage, None, dict(stage.settings))
        logger.info("Reset seeding of stage %s", stage_id)

    def _orderable_round_count(self, stage: Stage) -> int:
        if stage.type == bracket_graph.DOUBLE and bracket_graph.has_loser_bracket(stage.settings):
            return bracket_graph.upper_round_count(stage.settings["size"])
        return 1

    def update_ordering(self, stage_id: int, methods: Sequence[str]) -> None:
        """Set the seed ordering of every orderable round of an elimination stage."""
        stage = stage_queries.get_stage(self.storage, stage_id)
        if stage.type not in ELIMINATION_TYPES:
            raise StateError("Impossible to update ordering in a round-robin or Swiss stage.")
        if len(methods) != self._orderable_round_count(stage):
            raise ValidationError("The count of seed orderings is incorrect.")
        for method in methods:
            validate_ordering(method, for_groups=False)

        settings = {**stage.settings, "seed_ordering": list(methods)}
        stage_builder.rebuild_stage(self.storage, stage, self._current_participants(stage), settings)
        logger.info("Updated seed ordering of stage %s: %s", stage_id, ", ".join(methods))

    def update_round_ordering(self, round_id: int, method: str) -> None:
        round_ = self._get_round(round_id)
        stage = stage_queries.get_stage(self.storage, round_.stage_id)
        group = self.storage.select("group", round_.group_id)
        index = bracket_graph.orderable_round(stage.type, stage.settings, group.number, round_.number)
        if index is None:
            raise StateError("This round does not support ordering.")

        matches = self.storage.select("match", {"round_id": round_id})
        if any(m.status > MatchStatus.READY for m in matches):
            raise StateError("At least one match has started or is completed.")
        validate_ordering(method, for_groups=False)

        orderings = list(stage.settings.get("seed_ordering") or [])
        orderings.extend(["natural"] * (index + 1 - len(orderings)))
        orderings[index] = method
        settings = {**stage.settings, "seed_ordering": orderings}

        if index == 0:
            stage_builder.rebuild_stage(self.storage, stage, self._current_participants(stage), settings)
        else:
            advancement_service.reorder_round(self.storage, stage, round_id, index, method, settings)

    # ------------------------------------------------------------------
    # Child games
    # ------------------------------------------------------------------

    def _adjust_child_games(self, match: Match, count: int) -> None:
        games = sorted(self.storage.select("match_game", {"parent_id": match.id}), key=lambda g: g.number)
        for number in range(len(games) + 1, count + 1):
            self.storage.insert(
                "match_game",
                {
                    "stage_id": match.stage_id,
                    "parent_id": match.id,
                    "number": number,
                    "status": match.status,
                    "opponent1": to_game_slot(match.opponent1),
                    "opponent2": to_game_slot(match.opponent2),
                },
            )
        for game in games[count:]:
            self.storage.delete("match_game", {"id": game.id})
        self.storage.update("match", match.id, {"child_count": count})

    def update_match_child_count(self, level: str, id: int, count: int) -> int:
        """
        Change the best-of-N count at a stage, group, round or match level.

        Matches already being played keep their games; asking for a single such
        match is an error. Returns how many matches were adjusted.
        """
        if level not in CHILD_COUNT_LEVELS:
            raise ValidationError(f"Unknown level: {level}")
        if count < 0:
            raise ValidationError("The child count cannot be negative.")

        if level == "match":
            match = stage_queries.get_match(self.storage, id)
            if match.status > MatchStatus.READY:
                raise StateError("At least one match has started or is completed.")
            matches = [match]
        else:
            if self.storage.select(level, id) is None:
                raise NotFoundError(f"{level.capitalize()} not found.")
            matches = self.storage.select("match", {f"{level}_id": id})

        adjusted = 0
        for match in matches:
            if match.status > MatchStatus.READY:
                logger.debug("Match %s has started; keeping its %d game(s)", match.id, match.child_count)
                continue
            self._adjust_child_games(match, count)
            adjusted += 1

        if level == "stage":
            stage = self.storage.select("stage", id)
            self.storage.update("stage", id, {"settings": {**stage.settings, "matches_child_count": count}})

        logger.info("Set child count %d on %s %s (%d match(es))", count, level, id, adjusted)
        return adjusted

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_stage(self, stage_id: int) -> None:
        """Delete a stage and everything it is made of; participants stay."""
        stage_queries.get_stage(self.storage, stage_id)
        for table in ("match_game", "match", "round", "group"):
            self.storage.delete(table, {"stage_id": stage_id})
        self.storage.delete("stage", {"id": stage_id})
        logger.info("Deleted stage %s", stage_id)

    def delete_tournament(self, tournament_id: int) -> None:
        for stage in self.storage.select("stage", {"tournament_id": tournament_id}):
            self.delete_stage(stage.id)
        self.storage.delete("participant", {"tournament_id": tournament_id})
        logger.info("Deleted tournament %s", tournament_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get_round(self, round_id: int) -> Round:
        round_ = self.storage.select("round", round_id)
        if round_ is None:
            raise NotFoundError("Round not found.")
        return round_

    def get_stage(self, stage_id: int) -> Stage:
        return stage_queries.get_stage(self.storage, stage_id)

    def get_match(self, match_id: int) -> Match:
        return stage_queries.get_match(self.storage, match_id)

    def get_seeding(self, stage_id: int) -> List[Slot]:
        return stage_queries.get_seeding(self.storage, stage_id)

    def get_final_standings(
        self,
        stage_id: int,
        ranking_formula: Optional[RankingFormula] = None,
        max_qualified_participants_per_group: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return standings_service.get_final_standings(
            self.storage, stage_id, ranking_formula, max_qualified_participants_per_group
        )

    def get_round_matches(self, round_id: int) -> List[Match]:
        return stage_queries.get_round_matches(self.storage, round_id)

    def get_match_games(self, match_ids: Sequence[int]) -> List[MatchGame]:
        return stage_queries.get_match_games(self.storage, match_ids)

    def get_current_stage(self, tournament_id: int) -> Optional[Stage]:
        return stage_queries.get_current_stage(self.storage, tournament_id)

    def get_current_round(self, stage_id: int) -> Optional[Round]:
        return stage_queries.get_current_round(self.storage, stage_id)

    def get_current_matches(self, stage_id: int) -> List[Match]:
        return stage_queries.get_current_matches(self.storage, stage_id)

    def get_stage_data(self, stage_id: int) -> Dict[str, List[Dict[str, Any]]]:
        return data_transfer.get_stage_data(self.storage, stage_id)

    def get_tournament_data(self, tournament_id: int) -> Dict[str, List[Dict[str, Any]]]:
        return data_transfer.get_tournament_data(self.storage, tournament_id)

    def find_match(self, group_id: int, round_number: int, match_number: int) -> Match:
        return stage_queries.find_match(self.storage, group_id, round_number, match_number)

    def find_upper_bracket(self, stage_id: int) -> Group:
        return stage_queries.find_upper_bracket(self.storage, stage_id)

    def find_loser_bracket(self, stage_id: int) -> Group:
        return stage_queries.find_loser_bracket(self.storage, stage_id)

    def find_previous_matches(self, match_id: int, participant_id: Optional[int] = None) -> List[Match]:
        return stage_queries.find_previous_matches(self.storage, match_id, participant_id)

    def find_next_matches(self, match_id: int, participant_id: Optional[int] = None) -> List[Match]:
        return stage_queries.find_next_matches(self.storage, match_id, participant_id)

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export(self) -> Dict[str, List[Dict[str, Any]]]:
        return data_transfer.export_data(self.storage)

    def import_data(self, data: Dict[str, List[Dict[str, Any]]], normalize_ids: bool = False) -> bool:
        return data_transfer.import_data(self.storage, data, normalize_ids=normalize_ids)

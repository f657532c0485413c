from bracket_engine.models.group import Group
from bracket_engine.models.match import Match, MatchStatus
from bracket_engine.models.match_game import MatchGame
from bracket_engine.models.participant import Participant
from bracket_engine.models.round import Round
from bracket_engine.models.stage import GrandFinalType, Stage, StageType

__all__ = [
    "Participant",
    "Stage",
    "StageType",
    "GrandFinalType",
    "Group",
    "Round",
    "Match",
    "MatchStatus",
    "MatchGame",
]

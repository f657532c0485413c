# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from bracket_engine.models.group import Group  # noqa: F401
from bracket_engine.models.match import Match  # noqa: F401
from bracket_engine.models.match_game import MatchGame  # noqa: F401
from bracket_engine.models.participant import Participant  # noqa: F401
from bracket_engine.models.round import Round  # noqa: F401
from bracket_engine.models.stage import Stage  # noqa: F401

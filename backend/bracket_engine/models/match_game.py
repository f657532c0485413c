from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

from bracket_engine.models.match import MatchStatus


class MatchGame(SQLModel, table=True):
    """One game of a best-of-N match. Slots carry id/score/result/forfeit only."""

    __tablename__ = "match_game"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    parent_id: int = Field(foreign_key="match.id", index=True)
    number: int
    status: int = Field(default=MatchStatus.LOCKED)

    opponent1: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    opponent2: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    extra: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

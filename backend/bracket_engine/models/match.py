from enum import IntEnum
from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class MatchStatus(IntEnum):
    LOCKED = 0  # BYE, or both opponents still unknown
    WAITING = 1  # one opponent known, the other awaits propagation
    READY = 2
    RUNNING = 3
    COMPLETED = 4
    ARCHIVED = 5  # completed and every dependent match has started


class Match(SQLModel, table=True):
    # Ids are never handed out twice, even after deletes
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    group_id: int = Field(foreign_key="stage_group.id", index=True)
    round_id: int = Field(foreign_key="round.id", index=True)
    number: int  # 1-based within the round
    status: int = Field(default=MatchStatus.LOCKED)

    # null = BYE; {"id": participant id or null (TBD), "position", "score", "result", "forfeit"}
    opponent1: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    opponent2: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    child_count: int = Field(default=0)

    extra: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

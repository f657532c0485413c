from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, SQLModel


class StageType(str, Enum):
    single_elimination = "single_elimination"
    double_elimination = "double_elimination"
    round_robin = "round_robin"
    swiss = "swiss"


class GrandFinalType(str, Enum):
    none = "none"
    simple = "simple"
    double = "double"


ELIMINATION_TYPES = (StageType.single_elimination.value, StageType.double_elimination.value)
GROUP_TYPES = (StageType.round_robin.value, StageType.swiss.value)


class Stage(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "number", name="uq_tournament_stage_number"),
        {"sqlite_autoincrement": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(index=True)
    name: str
    type: str = Field(sa_column=Column(String, nullable=False))  # StageType value
    number: int

    # size, seed_ordering, grand_final, consolation_final, matches_child_count,
    # balance_byes, group_count, round_robin_mode, round_count, points
    settings: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    extra: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

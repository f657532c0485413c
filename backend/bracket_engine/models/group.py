from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class Group(SQLModel, table=True):
    """A bracket or pool inside a stage.

    The role (winner bracket, loser bracket, grand final, consolation final or
    pool) is never stored; it follows from the stage type and ``number``.
    """

    __tablename__ = "stage_group"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    number: int

    extra: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

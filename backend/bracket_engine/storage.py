"""
Table-oriented storage over a SQLModel session.

The engine only talks to the six semantic tables through this class:
participant, stage, group, round, match, match_game. Keys that are not columns
of the target table are kept in the row's ``extra`` overlay, so caller-supplied
fields survive partial updates and round-trip through export.
"""
import copy
import logging
from typing import Any, Dict, List, Optional, Type, Union

from sqlalchemy.orm.attributes import flag_modified
from sqlmodel import Session, SQLModel, select

from bracket_engine.errors import ValidationError
from bracket_engine.models.group import Group
from bracket_engine.models.match import Match
from bracket_engine.models.match_game import MatchGame
from bracket_engine.models.participant import Participant
from bracket_engine.models.round import Round
from bracket_engine.models.stage import Stage

logger = logging.getLogger(__name__)

TABLES: Dict[str, Type[SQLModel]] = {
    "participant": Participant,
    "stage": Stage,
    "group": Group,
    "round": Round,
    "match": Match,
    "match_game": MatchGame,
}

# Columns holding JSON; assignments always get a fresh copy and are flagged dirty
JSON_COLUMNS = frozenset({"settings", "opponent1", "opponent2", "extra"})

Filter = Dict[str, Any]


def model_for(table: str) -> Type[SQLModel]:
    try:
        return TABLES[table]
    except KeyError:
        raise ValidationError(f"Unknown table: {table}")


def row_to_dict(row: SQLModel) -> Dict[str, Any]:
    """Flatten a row into a plain dict with its extra overlay merged back in."""
    data = row.model_dump()
    extra = data.pop("extra", None) or {}
    result = copy.deepcopy(data)
    for key, value in extra.items():
        result.setdefault(key, copy.deepcopy(value))
    return result


class BracketStorage:
    """CRUD over the six bracket tables. Every write commits its own unit."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # insert
    # ------------------------------------------------------------------

    def insert(self, table: str, value: Union[Dict[str, Any], List[Dict[str, Any]]]) -> Union[int, bool]:
        """Insert one row (returns its id) or a list of rows (returns True)."""
        model = model_for(table)
        if isinstance(value, list):
            for item in value:
                self.session.add(self._build(model, item))
            self.session.commit()
            return True

        row = self._build(model, value)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row.id

    def _build(self, model: Type[SQLModel], value: Dict[str, Any]) -> SQLModel:
        fields = model.model_fields
        known: Dict[str, Any] = {}
        extra: Dict[str, Any] = dict(value.get("extra") or {})
        for key, item in value.items():
            if key == "extra":
                continue
            if key in fields:
                known[key] = copy.deepcopy(item)
            else:
                extra[key] = copy.deepcopy(item)
        if extra:
            known["extra"] = extra
        return model(**known)

    # ------------------------------------------------------------------
    # select
    # ------------------------------------------------------------------

    def select(self, table: str, key: Union[int, Filter, None] = None):
        """
        select(table)          -> every row, ordered by id
        select(table, id)      -> the row or None
        select(table, filter)  -> matching rows, ordered by id
        """
        model = model_for(table)
        if key is None:
            return list(self.session.exec(select(model).order_by(model.id)).all())
        if isinstance(key, dict):
            return list(self.session.exec(self._filtered(model, key)).all())
        return self.session.get(model, key)

    def select_first(self, table: str, where: Filter):
        model = model_for(table)
        return self.session.exec(self._filtered(model, where)).first()

    def _filtered(self, model: Type[SQLModel], where: Filter):
        statement = select(model)
        for column, value in where.items():
            attr = getattr(model, column, None)
            if attr is None:
                raise ValidationError(f"Cannot filter {model.__name__} on {column}")
            statement = statement.where(attr.is_(None) if value is None else attr == value)
        return statement.order_by(model.id)

    # ------------------------------------------------------------------
    # update / delete
    # ------------------------------------------------------------------

    def update(self, table: str, key: Union[int, Filter], value: Dict[str, Any]) -> bool:
        """Apply a partial update to one row (by id) or to every row matching a filter."""
        model = model_for(table)
        if isinstance(key, dict):
            rows = list(self.session.exec(self._filtered(model, key)).all())
        else:
            row = self.session.get(model, key)
            rows = [row] if row is not None else []

        if not rows:
            return False

        for row in rows:
            self._patch(row, value)
            self.session.add(row)
        self.session.commit()
        return True

    def _patch(self, row: SQLModel, value: Dict[str, Any]) -> None:
        fields = type(row).model_fields
        extra = dict(row.extra or {})
        extra_changed = False

        for key, item in value.items():
            if key == "id":
                continue
            if key == "extra":
                extra.update(copy.deepcopy(item or {}))
                extra_changed = True
            elif key in fields:
                setattr(row, key, copy.deepcopy(item))
                if key in JSON_COLUMNS:
                    flag_modified(row, key)
            else:
                extra[key] = copy.deepcopy(item)
                extra_changed = True

        if extra_changed:
            row.extra = extra
            flag_modified(row, "extra")

    def delete(self, table: str, where: Optional[Filter] = None) -> bool:
        """Delete rows matching the filter; no filter wipes the table."""
        model = model_for(table)
        statement = select(model) if where is None else self._filtered(model, where)
        rows = list(self.session.exec(statement).all())
        for row in rows:
            self.session.delete(row)
        self.session.commit()
        logger.debug("Deleted %d row(s) from %s", len(rows), table)
        return True

"""
Export and import of the whole bracket dataset, and scoped views of it.

The exported shape is one list of plain dicts per table (extra fields merged
back into each row), so it can be stored as JSON and imported elsewhere.
"""
import logging
from typing import Any, Dict, List, Optional

from bracket_engine.errors import ValidationError
from bracket_engine.services.stage_queries import get_stage
from bracket_engine.storage import BracketStorage, row_to_dict

logger = logging.getLogger(__name__)

# Insert order; deletes run in reverse
TABLE_ORDER = ("participant", "stage", "group", "round", "match", "match_game")

Dataset = Dict[str, List[Dict[str, Any]]]


def _rows(rows) -> List[Dict[str, Any]]:
    return [row_to_dict(row) for row in sorted(rows, key=lambda r: r.id)]


def export_data(storage: BracketStorage) -> Dataset:
    return {table: _rows(storage.select(table)) for table in TABLE_ORDER}


def _stages_data(storage: BracketStorage, stages, tournament_id: int) -> Dataset:
    data: Dataset = {
        "participant": _rows(storage.select("participant", {"tournament_id": tournament_id})),
        "stage": _rows(stages),
        "group": [],
        "round": [],
        "match": [],
        "match_game": [],
    }
    for stage in sorted(stages, key=lambda s: s.number):
        for table in ("group", "round", "match", "match_game"):
            data[table].extend(_rows(storage.select(table, {"stage_id": stage.id})))
    return data


def get_stage_data(storage: BracketStorage, stage_id: int) -> Dataset:
    """Everything a stage is made of, plus the participants of its tournament."""
    stage = get_stage(storage, stage_id)
    return _stages_data(storage, [stage], stage.tournament_id)


def get_tournament_data(storage: BracketStorage, tournament_id: int) -> Dataset:
    stages = storage.select("stage", {"tournament_id": tournament_id})
    return _stages_data(storage, stages, tournament_id)


def _validate(data: Any) -> Dataset:
    if not isinstance(data, dict):
        raise ValidationError("The imported data must be an object with one list per table.")
    unknown = set(data) - set(TABLE_ORDER)
    if unknown:
        raise ValidationError(f"Unknown table(s) in imported data: {', '.join(sorted(unknown))}")

    dataset: Dataset = {}
    for table in TABLE_ORDER:
        rows = data.get(table) or []
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise ValidationError(f"Table {table} must be a list of objects.")
        dataset[table] = rows
    return dataset


def _remap_slot(slot: Optional[Dict[str, Any]], participants: Dict[Any, int]) -> Optional[Dict[str, Any]]:
    if slot is None:
        return None
    remapped = dict(slot)
    if remapped.get("id") is not None:
        remapped["id"] = participants.get(remapped["id"], remapped["id"])
    return remapped


def _append_normalized(storage: BracketStorage, dataset: Dataset) -> None:
    """Insert every row under a fresh id, rewriting the references between them."""
    ids: Dict[str, Dict[Any, int]] = {table: {} for table in TABLE_ORDER}
    references = {
        "stage_id": "stage",
        "group_id": "group",
        "round_id": "round",
        "parent_id": "match",
    }

    for table in TABLE_ORDER:
        for row in dataset[table]:
            value = {k: v for k, v in row.items() if k != "id"}
            for column, target in references.items():
                if column in value and value[column] is not None:
                    mapping = ids[target]
                    if value[column] not in mapping:
                        raise ValidationError(f"{table} row references unknown {target} {value[column]}.")
                    value[column] = mapping[value[column]]
            if table in ("match", "match_game"):
                for side in ("opponent1", "opponent2"):
                    if side in value:
                        value[side] = _remap_slot(value[side], ids["participant"])
            new_id = storage.insert(table, value)
            if "id" in row:
                ids[table][row["id"]] = new_id


def import_data(storage: BracketStorage, data: Dataset, normalize_ids: bool = False) -> bool:
    """
    Load an exported dataset.

    Without normalize_ids, the six tables are wiped and the rows inserted with
    their own ids. With normalize_ids, rows are appended under fresh ids.
    """
    dataset = _validate(data)

    if normalize_ids:
        _append_normalized(storage, dataset)
    else:
        for table in reversed(TABLE_ORDER):
            storage.delete(table)
        for table in TABLE_ORDER:
            if dataset[table]:
                storage.insert(table, dataset[table])

    logger.info(
        "Imported %s (normalize_ids=%s)",
        ", ".join(f"{len(dataset[t])} {t}" for t in TABLE_ORDER),
        normalize_ids,
    )
    return True

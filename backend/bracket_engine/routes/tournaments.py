from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response

from bracket_engine.routes.dependencies import get_manager
from bracket_engine.routes.stages import StageResponse
from bracket_engine.services.bracket_manager import BracketManager

router = APIRouter()


@router.get("/tournaments/{tournament_id}/current-stage", response_model=Optional[StageResponse])
def get_current_stage(tournament_id: int, manager: BracketManager = Depends(get_manager)):
    """First stage (by number) that still has a match to play, or null"""
    return manager.get_current_stage(tournament_id)


@router.get("/tournaments/{tournament_id}/data")
def get_tournament_data(
    tournament_id: int, manager: BracketManager = Depends(get_manager)
) -> Dict[str, List[Dict[str, Any]]]:
    return manager.get_tournament_data(tournament_id)


@router.delete("/tournaments/{tournament_id}", status_code=204)
def delete_tournament(tournament_id: int, manager: BracketManager = Depends(get_manager)):
    """Delete every stage of a tournament, then its participants"""
    manager.delete_tournament(tournament_id)
    return Response(status_code=204)


@router.get("/export")
def export_data(manager: BracketManager = Depends(get_manager)) -> Dict[str, List[Dict[str, Any]]]:
    return manager.export()


@router.post("/import")
def import_data(
    data: Dict[str, Any], normalize_ids: bool = False, manager: BracketManager = Depends(get_manager)
) -> Dict[str, bool]:
    """Load an exported dataset; without normalize_ids the current data is replaced"""
    return {"imported": manager.import_data(data, normalize_ids=normalize_ids)}

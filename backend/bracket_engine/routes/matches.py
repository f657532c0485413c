from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from bracket_engine.routes.dependencies import get_manager
from bracket_engine.services.advancement_service import MatchUpdateResult
from bracket_engine.services.bracket_manager import CHILD_COUNT_LEVELS, BracketManager

router = APIRouter()


class MatchResponse(BaseModel):
    id: int
    stage_id: int
    group_id: int
    round_id: int
    number: int
    status: int
    opponent1: Optional[Dict[str, Any]] = None
    opponent2: Optional[Dict[str, Any]] = None
    child_count: int

    class Config:
        from_attributes = True


class MatchGameResponse(BaseModel):
    id: int
    stage_id: int
    parent_id: int
    number: int
    status: int
    opponent1: Optional[Dict[str, Any]] = None
    opponent2: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class RoundResponse(BaseModel):
    id: int
    stage_id: int
    group_id: int
    number: int

    class Config:
        from_attributes = True


class ResultUpdate(BaseModel):
    """Partial result: opponent dicts may carry id, score, result, forfeit; other keys are stored as-is"""
    opponent1: Optional[Dict[str, Any]] = None
    opponent2: Optional[Dict[str, Any]] = None
    status: Optional[int] = None

    class Config:
        extra = "allow"


class MatchUpdateResponse(BaseModel):
    match: MatchResponse
    propagated: bool
    affected_match_ids: List[int]
    created_round_id: Optional[int] = None


class RoundOrderingUpdate(BaseModel):
    method: str


class ChildCountUpdate(BaseModel):
    count: int


def _update_response(manager: BracketManager, result: MatchUpdateResult) -> MatchUpdateResponse:
    return MatchUpdateResponse(
        match=MatchResponse.model_validate(manager.get_match(result.match_id)),
        propagated=result.propagated,
        affected_match_ids=result.affected_match_ids,
        created_round_id=result.created_round_id,
    )


@router.get("/matches/{match_id}", response_model=MatchResponse)
def get_match(match_id: int, manager: BracketManager = Depends(get_manager)):
    return manager.get_match(match_id)


@router.patch("/matches/{match_id}", response_model=MatchUpdateResponse)
def update_match(match_id: int, payload: ResultUpdate, manager: BracketManager = Depends(get_manager)):
    """Apply a result; a changed outcome is propagated to the dependent matches"""
    partial = payload.model_dump(exclude_unset=True)
    partial["id"] = match_id
    return _update_response(manager, manager.update_match(partial))


@router.delete("/matches/{match_id}/results", response_model=MatchUpdateResponse)
def reset_match_results(match_id: int, manager: BracketManager = Depends(get_manager)):
    return _update_response(manager, manager.reset_match_results(match_id))


@router.get("/matches/{match_id}/games", response_model=List[MatchGameResponse])
def get_match_games(match_id: int, manager: BracketManager = Depends(get_manager)):
    manager.get_match(match_id)
    return manager.get_match_games([match_id])


@router.patch("/match-games/{game_id}", response_model=MatchUpdateResponse)
def update_match_game(game_id: int, payload: ResultUpdate, manager: BracketManager = Depends(get_manager)):
    """Apply a result to one game; the parent match is recomputed from all its games"""
    partial = payload.model_dump(exclude_unset=True)
    partial["id"] = game_id
    return _update_response(manager, manager.update_match_game(partial))


@router.delete("/match-games/{game_id}/results", response_model=MatchUpdateResponse)
def reset_match_game_results(game_id: int, manager: BracketManager = Depends(get_manager)):
    return _update_response(manager, manager.reset_match_game_results(game_id))


@router.get("/matches/{match_id}/next", response_model=List[MatchResponse])
def get_next_matches(
    match_id: int, participant_id: Optional[int] = None, manager: BracketManager = Depends(get_manager)
):
    return manager.find_next_matches(match_id, participant_id)


@router.get("/matches/{match_id}/previous", response_model=List[MatchResponse])
def get_previous_matches(
    match_id: int, participant_id: Optional[int] = None, manager: BracketManager = Depends(get_manager)
):
    return manager.find_previous_matches(match_id, participant_id)


@router.patch("/rounds/{round_id}/ordering", response_model=List[MatchResponse])
def update_round_ordering(round_id: int, payload: RoundOrderingUpdate, manager: BracketManager = Depends(get_manager)):
    """Change the seed ordering of one round; returns the round's matches"""
    manager.update_round_ordering(round_id, payload.method)
    return manager.get_round_matches(round_id)


@router.put("/child-count/{level}/{item_id}")
def update_child_count(
    level: str, item_id: int, payload: ChildCountUpdate, manager: BracketManager = Depends(get_manager)
) -> Dict[str, int]:
    if level not in CHILD_COUNT_LEVELS:
        raise HTTPException(status_code=422, detail=f"level must be one of: {', '.join(CHILD_COUNT_LEVELS)}")
    adjusted = manager.update_match_child_count(level, item_id, payload.count)
    return {"adjusted_matches": adjusted}

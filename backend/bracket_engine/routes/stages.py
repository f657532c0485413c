from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, field_validator

from bracket_engine.models.stage import StageType
from bracket_engine.routes.dependencies import get_manager
from bracket_engine.routes.matches import MatchResponse, RoundResponse
from bracket_engine.services.bracket_manager import BracketManager

router = APIRouter()


class StageCreate(BaseModel):
    tournament_id: int
    name: str
    type: StageType
    seeding: Optional[List[Any]] = None
    settings: Optional[Dict[str, Any]] = None
    number: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class StageResponse(BaseModel):
    id: int
    tournament_id: int
    name: str
    type: str
    number: int
    settings: Dict[str, Any]

    class Config:
        from_attributes = True


class SeedingUpdate(BaseModel):
    seeding: List[Any]


class OrderingUpdate(BaseModel):
    seed_ordering: List[str]


@router.post("/stages", response_model=StageResponse, status_code=201)
def create_stage(payload: StageCreate, manager: BracketManager = Depends(get_manager)):
    """Create a stage with its whole bracket (groups, rounds, matches, games)"""
    return manager.create_stage(
        payload.tournament_id,
        payload.name,
        payload.type.value,
        seeding=payload.seeding,
        settings=payload.settings,
        number=payload.number,
    )


@router.get("/stages/{stage_id}")
def get_stage_data(stage_id: int, manager: BracketManager = Depends(get_manager)) -> Dict[str, List[Dict[str, Any]]]:
    """Stage with its groups, rounds, matches, games and the tournament's participants"""
    return manager.get_stage_data(stage_id)


@router.delete("/stages/{stage_id}", status_code=204)
def delete_stage(stage_id: int, manager: BracketManager = Depends(get_manager)):
    manager.delete_stage(stage_id)
    return Response(status_code=204)


@router.get("/stages/{stage_id}/seeding")
def get_seeding(stage_id: int, manager: BracketManager = Depends(get_manager)) -> List[Optional[Dict[str, Any]]]:
    return manager.get_seeding(stage_id)


@router.put("/stages/{stage_id}/seeding")
def update_seeding(stage_id: int, payload: SeedingUpdate, manager: BracketManager = Depends(get_manager)):
    """Replace the seeding; refused once a match has started"""
    manager.update_seeding(stage_id, payload.seeding)
    return manager.get_seeding(stage_id)


@router.delete("/stages/{stage_id}/seeding")
def reset_seeding(stage_id: int, manager: BracketManager = Depends(get_manager)):
    manager.reset_seeding(stage_id)
    return manager.get_seeding(stage_id)


@router.put("/stages/{stage_id}/ordering", response_model=StageResponse)
def update_ordering(stage_id: int, payload: OrderingUpdate, manager: BracketManager = Depends(get_manager)):
    manager.update_ordering(stage_id, payload.seed_ordering)
    return manager.get_stage(stage_id)


@router.get("/stages/{stage_id}/standings")
def get_standings(
    stage_id: int,
    max_qualified_participants_per_group: Optional[int] = None,
    manager: BracketManager = Depends(get_manager),
) -> List[Dict[str, Any]]:
    """Final standings; round-robin/Swiss stages rank with the stage's points weights"""
    return manager.get_final_standings(
        stage_id, max_qualified_participants_per_group=max_qualified_participants_per_group
    )


@router.get("/stages/{stage_id}/current-round", response_model=Optional[RoundResponse])
def get_current_round(stage_id: int, manager: BracketManager = Depends(get_manager)):
    return manager.get_current_round(stage_id)


@router.get("/stages/{stage_id}/current-matches", response_model=List[MatchResponse])
def get_current_matches(stage_id: int, manager: BracketManager = Depends(get_manager)):
    return manager.get_current_matches(stage_id)

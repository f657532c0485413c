from fastapi import Depends
from sqlmodel import Session

from bracket_engine.database import get_session
from bracket_engine.services.bracket_manager import BracketManager


def get_manager(session: Session = Depends(get_session)) -> BracketManager:
    """One manager per request, bound to the request's session"""
    return BracketManager.for_session(session)

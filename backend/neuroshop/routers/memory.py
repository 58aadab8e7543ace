"""
NeuroShop - Memory API Router

Core profile, recall events, archival notes, maturity level and on-demand
consolidation for the calling user.

Every recorded event also counts as one tracked interaction for the
maturity level.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user_id
from ..database import get_db, get_session_factory
from ..models.db_models import EventType
from ..services.memory import ConsolidationEngine, MaturityTracker, MemoryStore


router = APIRouter(prefix="/memory", tags=["memory"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class PriceRange(BaseModel):
    min: float = Field(..., ge=0)
    max: float = Field(..., ge=0)


class GoalRequest(BaseModel):
    goal: str = Field(..., min_length=1, description="Free-text shopping goal")
    priority: Optional[int] = Field(None, description="Accepted, not stored yet")


class PreferencesRequest(BaseModel):
    """Only the fields sent are replaced; each replaces the stored value wholesale."""
    price_range: Optional[PriceRange] = None
    favorite_categories: Optional[List[str]] = None
    idiosyncrasies: Optional[List[str]] = None


class EventRequest(BaseModel):
    event_type: EventType
    event_data: Dict[str, Any] = Field(default_factory=dict)


class ArchiveRequest(BaseModel):
    content: str = Field(..., min_length=1)
    category: Optional[str] = None
    importance: int = Field(5, ge=1, le=10)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/context", response_model=dict)
async def get_context(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """Core memory, recent interactions and top archival notes in one snapshot."""
    store = MemoryStore(db, session_factory=session_factory)
    return store.full_context(user_id).to_dict()


@router.get("/core", response_model=dict)
async def get_core_memory(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    memory = MemoryStore(db).get_or_create_core_memory(user_id)
    db.commit()
    return memory.to_dict()


@router.post("/goals", response_model=dict)
async def add_goal(
    request: GoalRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Append a goal to the end of the user's active goals."""
    memory = MemoryStore(db).append_goal(user_id, request.goal, request.priority)
    db.commit()
    return memory.to_dict()


@router.put("/preferences", response_model=dict)
async def update_preferences(
    request: PreferencesRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Replace the provided preference fields.

    Lists are overwritten, never merged. Sending null for price_range clears it.
    """
    memory = MemoryStore(db).update_preferences(user_id, request.model_dump(exclude_unset=True))
    db.commit()
    return memory.to_dict()


@router.post("/events", response_model=dict)
async def record_event(
    request: EventRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Record a user action and count it towards the maturity level."""
    event = MemoryStore(db).record_event(user_id, request.event_type, request.event_data)
    maturity = MaturityTracker(db).increment_interaction(user_id)
    db.commit()

    return {
        "event": event.to_dict(),
        "maturity": maturity.to_dict(),
    }


@router.get("/events", response_model=dict)
async def list_recent_events(
    limit: int = 10,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    events = MemoryStore(db).recent_events(user_id, limit)
    return {
        "count": len(events),
        "events": [e.to_dict() for e in events],
    }


@router.get("/maturity", response_model=dict)
async def get_maturity_level(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    state = MaturityTracker(db).get_state(user_id)
    db.commit()
    return state.to_dict()


@router.post("/consolidate", response_model=dict)
async def consolidate(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Archive recent product approvals and recompute the relationship stage."""
    result = ConsolidationEngine(db).consolidate(user_id)
    db.commit()
    return result.to_dict()


@router.post("/archival", response_model=dict)
async def archive_note(
    request: ArchiveRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    record = MemoryStore(db).archive(user_id, request.content, request.category, request.importance)
    db.commit()
    return record.to_dict()


@router.get("/archival", response_model=dict)
async def search_archival(
    category: Optional[str] = None,
    limit: int = 20,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    records = MemoryStore(db).search_archival(user_id, category, limit)
    return {
        "count": len(records),
        "records": [r.to_dict() for r in records],
    }

"""
NeuroShop - Assistant API Router

Memory-aware generation endpoints. Generation failures never surface as
errors here; responses keep their shape with empty values.

Handlers are plain functions so slow generation runs in the threadpool
instead of blocking the event loop.
"""
from typing import List, Literal, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user_id
from ..database import get_db, get_session_factory
from ..models.db_models import EventType
from ..models.memory_models import ChatMessageEvent
from ..services.assistant import AssistantService
from ..services.memory import MaturityTracker, MemoryStore


router = APIRouter(prefix="/assistant", tags=["assistant"])


def get_assistant() -> AssistantService:
    """Dependency for FastAPI - overridden in tests."""
    return AssistantService()


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class AnalyzeRequest(BaseModel):
    query: str = Field(..., min_length=1)


class ProductCandidate(BaseModel):
    id: Union[str, int]
    name: str
    price: float
    description: Optional[str] = None


class RecommendRequest(BaseModel):
    products: List[ProductCandidate]


class ReasoningRequest(BaseModel):
    product_name: str = Field(..., min_length=1)
    score: float = Field(..., ge=0, le=100)


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: List[ChatTurn] = Field(default_factory=list)


def _context(db: Session, session_factory, user_id: str):
    return MemoryStore(db, session_factory=session_factory).full_context(user_id)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/availability", response_model=dict)
def check_availability(assistant: AssistantService = Depends(get_assistant)):
    return assistant.client.check_availability().to_dict()


@router.post("/analyze", response_model=dict)
def analyze_search_query(
    request: AnalyzeRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    assistant: AssistantService = Depends(get_assistant),
):
    insight = assistant.analyze_search_query(request.query, _context(db, session_factory, user_id))
    return insight.to_dict()


@router.post("/recommend", response_model=dict)
def recommend_products(
    request: RecommendRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    assistant: AssistantService = Depends(get_assistant),
):
    recommendations = assistant.recommend_products(
        [p.model_dump() for p in request.products],
        _context(db, session_factory, user_id),
    )
    return {"recommendations": [r.to_dict() for r in recommendations]}


@router.post("/reasoning", response_model=dict)
def generate_reasoning(
    request: ReasoningRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    assistant: AssistantService = Depends(get_assistant),
):
    steps = assistant.generate_reasoning(
        request.product_name, request.score, _context(db, session_factory, user_id)
    )
    return {"reasoning": [s.to_dict() for s in steps]}


@router.post("/chat", response_model=dict)
def chat(
    request: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    assistant: AssistantService = Depends(get_assistant),
):
    """Reply with memory awareness and record the exchange as a chat_message event."""
    reply = assistant.chat(
        request.message,
        _context(db, session_factory, user_id),
        [turn.model_dump() for turn in request.history],
    )

    MemoryStore(db).record_event(
        user_id,
        EventType.CHAT_MESSAGE,
        ChatMessageEvent(message=request.message, response=reply),
    )
    MaturityTracker(db).increment_interaction(user_id)
    db.commit()

    return {"response": reply}

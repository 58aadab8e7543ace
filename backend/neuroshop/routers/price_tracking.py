"""
NeuroShop - Price Tracking API Router

Watch list, price history, explainable alerts, monthly budget and
conditional delegations for the calling user.

Alerts that require approval are answered here by the user; nothing is
bought or reserved on the user's behalf.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user_id
from ..database import get_db
from ..models.db_models import AlertResponse, DelegationAction
from ..services.price_tracking import (
    BudgetTracker,
    DelegationEngine,
    PriceAlertEngine,
    PriceWatchRegistry,
)


router = APIRouter(prefix="/price-tracking", tags=["price-tracking"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class WatchItemRequest(BaseModel):
    url: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    current_price: float = Field(..., gt=0)
    target_price: Optional[float] = Field(None, gt=0)
    source: Optional[str] = Field(None, description="Store or marketplace name")
    image_url: Optional[str] = None


class AlertResponseRequest(BaseModel):
    response: AlertResponse = Field(..., description="accepted | rejected | ignored")


class BudgetRequest(BaseModel):
    monthly_budget: float = Field(..., gt=0)
    alert_threshold: Optional[float] = Field(None, gt=0, le=1)


class SpendingRequest(BaseModel):
    amount: float = Field(..., ge=0)


class DelegationRequest(BaseModel):
    watch_item_id: int
    condition: str = Field(..., min_length=1, description='Stored literally, e.g. "price < 7000"')
    action: DelegationAction


def _items(rows: List) -> List[dict]:
    return [row.to_dict() for row in rows]


# =============================================================================
# WATCH LIST
# =============================================================================

@router.post("/watch-list", response_model=dict)
async def add_to_watch_list(
    request: WatchItemRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    item = PriceWatchRegistry(db).add_item(
        user_id,
        url=request.url,
        title=request.title,
        current_price=request.current_price,
        target_price=request.target_price,
        source=request.source,
        image_url=request.image_url,
    )
    db.commit()
    return item.to_dict()


@router.get("/watch-list", response_model=dict)
async def get_watch_list(
    active_only: bool = True,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    items = PriceWatchRegistry(db).get_watch_list(user_id, active_only)
    return {"count": len(items), "items": _items(items)}


@router.delete("/watch-list/{watch_item_id}", response_model=dict)
async def deactivate_watch_item(
    watch_item_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Stop watching an item. Its price history is kept."""
    item = PriceWatchRegistry(db).deactivate_item(watch_item_id, user_id)
    db.commit()
    return item.to_dict()


@router.get("/watch-list/{watch_item_id}/history", response_model=dict)
async def get_price_history(
    watch_item_id: int,
    limit: int = 30,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    registry = PriceWatchRegistry(db)
    registry.get_item(watch_item_id, user_id)
    samples = registry.get_price_history(watch_item_id, limit)
    return {
        "watch_item_id": watch_item_id,
        "count": len(samples),
        "history": _items(samples),
    }


@router.post("/check-prices", response_model=dict)
async def check_prices(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Observe prices for every active item and emit alerts where the rules fire."""
    result = PriceAlertEngine(db).check_prices(user_id)
    db.commit()
    return result.to_dict()


# =============================================================================
# ALERTS
# =============================================================================

@router.get("/alerts", response_model=dict)
async def get_user_alerts(
    status: Optional[AlertResponse] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    alerts = PriceAlertEngine(db).get_user_alerts(user_id, status)
    return {"count": len(alerts), "alerts": _items(alerts)}


@router.post("/alerts/{alert_id}/respond", response_model=dict)
async def respond_to_alert(
    alert_id: int,
    request: AlertResponseRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Answer a pending alert. A second answer is rejected with 409."""
    alert = PriceAlertEngine(db).respond_to_alert(alert_id, request.response, user_id)
    db.commit()
    return alert.to_dict()


# =============================================================================
# BUDGET
# =============================================================================

@router.get("/budget", response_model=dict)
async def get_budget(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    record = BudgetTracker(db).get_or_create(user_id)
    db.commit()
    return record.to_dict()


@router.put("/budget", response_model=dict)
async def update_budget(
    request: BudgetRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    record = BudgetTracker(db).update_budget(user_id, request.monthly_budget, request.alert_threshold)
    db.commit()
    return record.to_dict()


@router.post("/spending", response_model=dict)
async def add_spending(
    request: SpendingRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Add to this month's spending. `breach` is set on the call that crosses the threshold."""
    tracker = BudgetTracker(db)
    breach = tracker.add_spending(user_id, request.amount)
    record = tracker.get_or_create(user_id)
    db.commit()
    return {
        "budget": record.to_dict(),
        "breach": breach.to_dict() if breach else None,
    }


# =============================================================================
# DELEGATIONS
# =============================================================================

@router.post("/delegations", response_model=dict)
async def create_delegation(
    request: DelegationRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delegation = DelegationEngine(db).create(
        user_id, request.watch_item_id, request.condition, request.action
    )
    db.commit()
    return delegation.to_dict()


@router.get("/delegations", response_model=dict)
async def list_delegations(
    active_only: bool = True,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delegations = DelegationEngine(db).list_delegations(user_id, active_only)
    return {"count": len(delegations), "delegations": _items(delegations)}


@router.delete("/delegations/{delegation_id}", response_model=dict)
async def deactivate_delegation(
    delegation_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delegation = DelegationEngine(db).deactivate(delegation_id, user_id)
    db.commit()
    return delegation.to_dict()

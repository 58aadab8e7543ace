"""
Scheduler API Routes

Internal endpoints for system-automatic batch jobs, called by an external
timer. Both jobs run one SAVEPOINT per user; a failing user is reported in
the result and does not stop the batch.
"""
import logging
import os
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Header
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.memory import ConsolidationEngine
from ..services.price_tracking import PriceAlertEngine


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "scheduler-internal-key-change-in-production")


async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/price-check", response_model=dict)
async def run_price_check(
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Check prices for every user with an active watch item.

    System-automatic - alerts that need approval wait for the user.
    """
    result = PriceAlertEngine(db).check_all_users()
    db.commit()

    logger.info(
        f"Scheduled price check: users={result['users_processed']} "
        f"failed={result['users_failed']} alerts={result['alerts_created']}"
    )
    return {
        "run_date": datetime.now(timezone.utc).isoformat(),
        **result,
    }


@router.post("/consolidate", response_model=dict)
async def run_consolidation(
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """Consolidate memory for every user with recall events."""
    result = ConsolidationEngine(db).consolidate_all()
    db.commit()

    logger.info(
        f"Scheduled consolidation: users={result['users_processed']} failed={result['users_failed']}"
    )
    return {
        "run_date": datetime.now(timezone.utc).isoformat(),
        **result,
    }

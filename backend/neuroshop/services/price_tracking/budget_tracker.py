"""
Budget Tracker

Monthly budget per user with additive spending. Records are keyed by
(user, calendar month) and created lazily with the defaults below.

When spending moves the usage ratio from below the alert threshold to at or
above it, a BudgetBreach is returned to the caller and delivered to every
registered listener. Calls that stay above the threshold do not fire again.
"""
import logging
import math
from datetime import datetime
from numbers import Real
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ...database import get_or_create, store_operation
from ...exceptions import InvalidItem
from ...models.db_models import BudgetTrackingDB, utcnow
from ...models.price_models import BudgetBreach


logger = logging.getLogger(__name__)


BUDGET_DEFAULTS = {
    "monthly_budget": 10000.0,
    "current_spending": 0.0,
    "alert_threshold": 0.8,
}

BreachListener = Callable[[BudgetBreach], None]


def current_month(now: Optional[datetime] = None) -> str:
    """Calendar month key, e.g. '2025-01'."""
    return (now or utcnow()).strftime("%Y-%m")


def _check_threshold(alert_threshold) -> float:
    if isinstance(alert_threshold, bool) or not isinstance(alert_threshold, Real):
        raise InvalidItem(f"alert_threshold must be a number, got {alert_threshold!r}")
    if not 0 < alert_threshold <= 1:
        raise InvalidItem(f"alert_threshold must be in (0, 1], got {alert_threshold}")
    return float(alert_threshold)


class BudgetTracker:
    """
    Usage:
        tracker = BudgetTracker(db, listeners=[notify])
        breach = tracker.add_spending(user_id, 1500)
    """

    def __init__(self, db: Session, listeners: Optional[List[BreachListener]] = None):
        self.db = db
        self.listeners: List[BreachListener] = list(listeners or [])

    def add_listener(self, listener: BreachListener) -> None:
        self.listeners.append(listener)

    @store_operation
    def get_or_create(self, user_id: str, month: Optional[str] = None) -> BudgetTrackingDB:
        """Budget record for the user's current month, created with defaults if absent."""
        month = month or current_month()
        record, created = get_or_create(
            self.db,
            BudgetTrackingDB,
            {"user_id": user_id, "month": month},
            dict(BUDGET_DEFAULTS),
        )
        if created:
            logger.info(f"Created budget record for user {user_id} month {month}")
        return record

    @store_operation
    def update_budget(
        self,
        user_id: str,
        monthly_budget: float,
        alert_threshold: Optional[float] = None,
    ) -> BudgetTrackingDB:
        """Change the current month's budget. Past months are not touched."""
        if isinstance(monthly_budget, bool) or not isinstance(monthly_budget, Real) or monthly_budget <= 0:
            raise InvalidItem(f"monthly_budget must be a positive number, got {monthly_budget!r}")

        record = self.get_or_create(user_id)
        record.monthly_budget = float(monthly_budget)
        if alert_threshold is not None:
            record.alert_threshold = _check_threshold(alert_threshold)
        self.db.flush()
        return record

    @store_operation
    def add_spending(self, user_id: str, amount: float) -> Optional[BudgetBreach]:
        """
        Add to this month's spending.

        The stored total is read under a row lock before the SQL addition,
        and the crossing compares that stored value with the one after it,
        so concurrent calls cannot both report a breach.
        """
        if isinstance(amount, bool) or not isinstance(amount, Real) or not math.isfinite(amount) or amount < 0:
            raise InvalidItem(f"amount must be a non-negative number, got {amount!r}")

        record = self.get_or_create(user_id)
        row = self.db.query(BudgetTrackingDB).filter(BudgetTrackingDB.id == record.id)
        previous_spending = row.with_for_update().with_entities(BudgetTrackingDB.current_spending).scalar()
        row.update(
            {BudgetTrackingDB.current_spending: BudgetTrackingDB.current_spending + float(amount)},
            synchronize_session=False,
        )
        self.db.refresh(record)

        budget = record.monthly_budget
        previous_ratio = previous_spending / budget
        new_ratio = record.current_spending / budget

        if previous_ratio >= record.alert_threshold or new_ratio < record.alert_threshold:
            return None

        breach = BudgetBreach(
            user_id=user_id,
            month=record.month,
            monthly_budget=budget,
            current_spending=record.current_spending,
            alert_threshold=record.alert_threshold,
        )
        logger.warning(
            f"Budget threshold crossed for user {user_id} ({record.month}): "
            f"{record.current_spending:,.2f} of {budget:,.2f} ({new_ratio:.0%})"
        )
        for listener in self.listeners:
            listener(breach)
        return breach

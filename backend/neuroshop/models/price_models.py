"""
NeuroShop - Price Tracking Data Models
Value objects returned by the price and budget engines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class PriceCheckResult:
    """Summary of one check_prices batch for a user."""
    user_id: str
    items_checked: int = 0
    items_skipped: List[int] = field(default_factory=list)  # Watch item IDs the source could not price
    alerts: List[Any] = field(default_factory=list)         # PriceAlertDB rows created in this batch

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "items_checked": self.items_checked,
            "items_skipped": list(self.items_skipped),
            "alerts_created": len(self.alerts),
            "alerts": [a.to_dict() for a in self.alerts],
        }


@dataclass(frozen=True)
class BudgetBreach:
    """
    Emitted when spending crosses the alert threshold of a monthly budget.
    Fired once, on the call that moves the ratio from below to at-or-above it.
    """
    user_id: str
    month: str
    monthly_budget: float
    current_spending: float
    alert_threshold: float

    @property
    def usage_ratio(self) -> float:
        return self.current_spending / self.monthly_budget

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "month": self.month,
            "monthly_budget": self.monthly_budget,
            "current_spending": self.current_spending,
            "alert_threshold": self.alert_threshold,
            "usage_ratio": self.usage_ratio,
        }

"""
NeuroShop - Price Tracking

Watch list, explainable price alerts, monthly budget and conditional
delegations.
"""
from .price_source import PriceSource, JitterPriceSource, FixedPriceSource
from .watch_registry import PriceWatchRegistry
from .alert_engine import PriceAlertEngine, evaluate_price_change, ALERT_CONFIG
from .budget_tracker import BudgetTracker, current_month, BUDGET_DEFAULTS
from .delegation_engine import DelegationEngine

__all__ = [
    "PriceSource",
    "JitterPriceSource",
    "FixedPriceSource",
    "PriceWatchRegistry",
    "PriceAlertEngine",
    "evaluate_price_change",
    "ALERT_CONFIG",
    "BudgetTracker",
    "current_month",
    "BUDGET_DEFAULTS",
    "DelegationEngine",
]

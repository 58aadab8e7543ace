"""NeuroShop - Services"""
from .memory import MemoryStore, MaturityTracker, ConsolidationEngine
from .price_tracking import (
    PriceWatchRegistry,
    PriceAlertEngine,
    BudgetTracker,
    DelegationEngine,
)
from .assistant import AssistantService, OllamaClient

__all__ = [
    "MemoryStore",
    "MaturityTracker",
    "ConsolidationEngine",
    "PriceWatchRegistry",
    "PriceAlertEngine",
    "BudgetTracker",
    "DelegationEngine",
    "AssistantService",
    "OllamaClient",
]

"""NeuroShop - Data Models"""
from .db_models import (
    # Enums
    RelationshipState, EventType, MaturityLevel, AlertType, AlertResponse, DelegationAction,
    # Memory tiers
    CoreMemoryDB, RecallMemoryDB, ArchivalMemoryDB, UserMaturityLevelDB,
    # Price tracking
    PriceWatchItemDB, PriceHistoryDB, PriceAlertDB, ConditionalDelegationDB, BudgetTrackingDB,
)
from .memory_models import (
    EventPayload, SearchQueryEvent, ProductViewEvent, ProductRejectEvent,
    ProductApproveEvent, CanvasActionEvent, ChatMessageEvent,
    parse_event_payload, MemoryContext, ConsolidationResult,
)
from .price_models import PriceCheckResult, BudgetBreach

__all__ = [
    "RelationshipState", "EventType", "MaturityLevel", "AlertType", "AlertResponse", "DelegationAction",
    "CoreMemoryDB", "RecallMemoryDB", "ArchivalMemoryDB", "UserMaturityLevelDB",
    "PriceWatchItemDB", "PriceHistoryDB", "PriceAlertDB", "ConditionalDelegationDB", "BudgetTrackingDB",
    "EventPayload", "SearchQueryEvent", "ProductViewEvent", "ProductRejectEvent",
    "ProductApproveEvent", "CanvasActionEvent", "ChatMessageEvent",
    "parse_event_payload", "MemoryContext", "ConsolidationResult",
    "PriceCheckResult", "BudgetBreach",
]

"""
NeuroShop - SQLAlchemy ORM Models
Persistent storage for the memory tiers and the price monitoring engine
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, JSON, ForeignKey, Boolean,
    Enum as SQLEnum, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from ..database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_column(enum_cls):
    """Store enum values rather than member names."""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


def _iso(value):
    return value.isoformat() if value else None


# =============================================================================
# ENUMS FOR MEMORY SYSTEM
# =============================================================================

class RelationshipState(str, Enum):
    """Familiarity stage derived from total recall volume."""
    STRANGER = "stranger"
    ACQUAINTANCE = "acquaintance"
    PARTNER = "partner"


class EventType(str, Enum):
    """Recall memory event types."""
    SEARCH_QUERY = "search_query"
    PRODUCT_VIEW = "product_view"
    PRODUCT_REJECT = "product_reject"
    PRODUCT_APPROVE = "product_approve"
    CANVAS_ACTION = "canvas_action"
    CHAT_MESSAGE = "chat_message"


class MaturityLevel(str, Enum):
    """Capability tier derived from the interaction counter."""
    TOOL = "tool"
    COPILOT = "copilot"
    PARTNER = "partner"


# =============================================================================
# ENUMS FOR PRICE TRACKING SYSTEM
# =============================================================================

class AlertType(str, Enum):
    """Why a price alert fired."""
    TARGET_REACHED = "target_reached"
    SIGNIFICANT_DROP = "significant_drop"
    LOWEST_EVER = "lowest_ever"
    TRUST_WARNING = "trust_warning"
    BUDGET_CONFLICT = "budget_conflict"


class AlertResponse(str, Enum):
    """User response to an alert. PENDING is the only non-terminal value."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IGNORED = "ignored"


class DelegationAction(str, Enum):
    """Action a conditional delegation performs once its condition holds."""
    NOTIFY = "notify"
    RESERVE = "reserve"
    AUTO_BUY = "auto_buy"


# =============================================================================
# AGENTIC MEMORY MODELS
# =============================================================================

class CoreMemoryDB(Base):
    """
    Durable per-user profile: goals, preferences, trust and relationship stage.
    Exactly one row per user, enforced by the unique constraint on user_id.
    """
    __tablename__ = "core_memory"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)

    relationship_state = Column(_enum_column(RelationshipState), nullable=False, default=RelationshipState.STRANGER)
    trust_score = Column(Integer, nullable=False, default=0)  # 0-100

    # Collections are always reassigned whole, never mutated in place
    active_goals = Column(JSON, nullable=False, default=list)         # Insertion-ordered
    price_range = Column(JSON, nullable=True)                         # {"min": x, "max": y}
    favorite_categories = Column(JSON, nullable=False, default=list)
    idiosyncrasies = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "relationship_state": RelationshipState(self.relationship_state).value,
            "trust_score": self.trust_score,
            "active_goals": list(self.active_goals or []),
            "price_range": dict(self.price_range) if self.price_range else None,
            "favorite_categories": list(self.favorite_categories or []),
            "idiosyncrasies": list(self.idiosyncrasies or []),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class RecallMemoryDB(Base):
    """Append-only log of recent user actions."""
    __tablename__ = "recall_memory"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    event_type = Column(_enum_column(EventType), nullable=False)
    event_data = Column(JSON, nullable=False, default=dict)  # Schema-less at rest
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_recall_user_timestamp", "user_id", "timestamp"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_type": EventType(self.event_type).value,
            "event_data": dict(self.event_data or {}),
            "timestamp": _iso(self.timestamp),
        }


class ArchivalMemoryDB(Base):
    """Append-only long-term notes, ranked by importance (1-10)."""
    __tablename__ = "archival_memory"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String(64), nullable=True)
    importance = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_archival_user_category", "user_id", "category"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "content": self.content,
            "category": self.category,
            "importance": self.importance,
            "created_at": _iso(self.created_at),
        }


class UserMaturityLevelDB(Base):
    """Interaction counter and derived maturity level. One row per user."""
    __tablename__ = "user_maturity_level"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    current_level = Column(_enum_column(MaturityLevel), nullable=False, default=MaturityLevel.TOOL)
    interaction_count = Column(Integer, nullable=False, default=0)
    last_level_change = Column(DateTime, default=utcnow)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "current_level": MaturityLevel(self.current_level).value,
            "interaction_count": self.interaction_count,
            "last_level_change": _iso(self.last_level_change),
        }


# =============================================================================
# PRICE TRACKING MODELS
# =============================================================================

class PriceWatchItemDB(Base):
    """
    A product URL the user is watching.
    current_price always mirrors the latest PriceHistoryDB sample.
    Deactivated, never hard-deleted.
    """
    __tablename__ = "price_watch_list"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)

    url = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    current_price = Column(Float, nullable=False)
    target_price = Column(Float, nullable=True)
    source = Column(String(128), nullable=True)   # Store / marketplace name
    image_url = Column(Text, nullable=True)

    last_checked = Column(DateTime, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships - samples outlive deactivation, so no delete cascade
    samples = relationship("PriceHistoryDB", back_populates="watch_item")

    __table_args__ = (
        Index("ix_watch_user_active", "user_id", "is_active"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "url": self.url,
            "title": self.title,
            "current_price": self.current_price,
            "target_price": self.target_price,
            "source": self.source,
            "image_url": self.image_url,
            "last_checked": _iso(self.last_checked),
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }


class PriceHistoryDB(Base):
    """One row per price check. Append-only."""
    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    watch_item_id = Column(Integer, ForeignKey("price_watch_list.id"), nullable=False)
    price = Column(Float, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    watch_item = relationship("PriceWatchItemDB", back_populates="samples")

    __table_args__ = (
        Index("ix_history_item_timestamp", "watch_item_id", "timestamp"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "watch_item_id": self.watch_item_id,
            "price": self.price,
            "timestamp": _iso(self.timestamp),
        }


class PriceAlertDB(Base):
    """Explainable price alert awaiting (or carrying) the user's response."""
    __tablename__ = "price_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    watch_item_id = Column(Integer, ForeignKey("price_watch_list.id"), nullable=False)

    alert_type = Column(_enum_column(AlertType), nullable=False)
    old_price = Column(Float, nullable=True)
    new_price = Column(Float, nullable=False)
    reasoning = Column(Text, nullable=True)  # XAI explanation
    requires_approval = Column(Boolean, nullable=False, default=False)

    user_response = Column(_enum_column(AlertResponse), nullable=False, default=AlertResponse.PENDING)
    created_at = Column(DateTime, default=utcnow)
    responded_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_alert_user_response", "user_id", "user_response"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "watch_item_id": self.watch_item_id,
            "alert_type": AlertType(self.alert_type).value,
            "old_price": self.old_price,
            "new_price": self.new_price,
            "reasoning": self.reasoning,
            "requires_approval": self.requires_approval,
            "user_response": AlertResponse(self.user_response).value,
            "created_at": _iso(self.created_at),
            "responded_at": _iso(self.responded_at),
        }


class ConditionalDelegationDB(Base):
    """
    Stored rule pairing a condition literal with an action.
    The condition is not parsed here; a rules engine evaluates it later.
    """
    __tablename__ = "conditional_delegations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    watch_item_id = Column(Integer, ForeignKey("price_watch_list.id"), nullable=False)
    condition = Column(Text, nullable=False)  # e.g. "price < 7000"
    action = Column(_enum_column(DelegationAction), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    executed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_delegation_user_active", "user_id", "is_active"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "watch_item_id": self.watch_item_id,
            "condition": self.condition,
            "action": DelegationAction(self.action).value,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "executed_at": _iso(self.executed_at),
        }


class BudgetTrackingDB(Base):
    """Monthly budget and accumulated spending. One row per (user, month)."""
    __tablename__ = "budget_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    month = Column(String(7), nullable=False)  # "2025-01"
    monthly_budget = Column(Float, nullable=False)
    current_spending = Column(Float, nullable=False, default=0.0)
    alert_threshold = Column(Float, nullable=False, default=0.8)  # Fraction of budget

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_budget_user_month"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "month": self.month,
            "monthly_budget": self.monthly_budget,
            "current_spending": self.current_spending,
            "alert_threshold": self.alert_threshold,
            "usage_ratio": (
                self.current_spending / self.monthly_budget if self.monthly_budget else 0.0
            ),
        }

"""
NeuroShop - Memory System Data Models

Event payloads are stored schema-less (JSON) but are read through one typed
dataclass per event type, so consumers never inspect raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, List, Optional, Type

from .db_models import EventType, RelationshipState


# =============================================================================
# TYPED EVENT PAYLOADS
# =============================================================================

@dataclass
class EventPayload:
    """Base for typed recall payloads. Unknown keys are kept in `extra`."""

    event_type: ClassVar[EventType]

    @classmethod
    def from_payload(cls, data: Optional[Dict[str, Any]]) -> "EventPayload":
        data = dict(data or {})
        known = {f.name for f in fields(cls) if f.name != "extra"}
        kwargs = {name: data.pop(name) for name in list(data) if name in known}
        return cls(**kwargs, extra=data)

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        payload.update(self.extra)
        return payload


@dataclass
class SearchQueryEvent(EventPayload):
    event_type: ClassVar[EventType] = EventType.SEARCH_QUERY
    query: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProductViewEvent(EventPayload):
    event_type: ClassVar[EventType] = EventType.PRODUCT_VIEW
    product_id: Optional[str] = None
    title: Optional[str] = None
    price: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProductRejectEvent(EventPayload):
    event_type: ClassVar[EventType] = EventType.PRODUCT_REJECT
    product_id: Optional[str] = None
    title: Optional[str] = None
    reason: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProductApproveEvent(EventPayload):
    event_type: ClassVar[EventType] = EventType.PRODUCT_APPROVE
    product_id: Optional[str] = None
    title: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CanvasActionEvent(EventPayload):
    event_type: ClassVar[EventType] = EventType.CANVAS_ACTION
    action: Optional[str] = None
    artifact_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatMessageEvent(EventPayload):
    event_type: ClassVar[EventType] = EventType.CHAT_MESSAGE
    message: str = ""
    response: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


EVENT_PAYLOAD_TYPES: Dict[EventType, Type[EventPayload]] = {
    EventType.SEARCH_QUERY: SearchQueryEvent,
    EventType.PRODUCT_VIEW: ProductViewEvent,
    EventType.PRODUCT_REJECT: ProductRejectEvent,
    EventType.PRODUCT_APPROVE: ProductApproveEvent,
    EventType.CANVAS_ACTION: CanvasActionEvent,
    EventType.CHAT_MESSAGE: ChatMessageEvent,
}


def parse_event_payload(event_type: EventType, data: Optional[Dict[str, Any]]) -> EventPayload:
    """Read a stored payload as the dataclass for its event type."""
    return EVENT_PAYLOAD_TYPES[EventType(event_type)].from_payload(data)


# =============================================================================
# CONTEXT SNAPSHOT
# =============================================================================

@dataclass
class MemoryContext:
    """
    Canonical snapshot handed to the text-generation collaborator.

    core is None when the user has no core memory yet.
    """
    core: Optional[Dict[str, Any]]
    recent_events: List[Dict[str, Any]] = field(default_factory=list)
    archival: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "core": self.core,
            "recent_interactions": self.recent_events,
            "archival": self.archival,
        }


@dataclass
class ConsolidationResult:
    """Outcome of one consolidation pass for a user."""
    user_id: str
    events_scanned: int
    archived: int
    total_events: int
    previous_state: RelationshipState
    relationship_state: RelationshipState

    @property
    def state_changed(self) -> bool:
        return self.previous_state != self.relationship_state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "events_scanned": self.events_scanned,
            "archived": self.archived,
            "total_events": self.total_events,
            "previous_state": self.previous_state.value,
            "relationship_state": self.relationship_state.value,
            "state_changed": self.state_changed,
        }

"""
Memory Store

Owns the three memory tiers for a user:
- Core Memory: durable profile (goals, preferences, trust, relationship stage)
- Recall Memory: append-only log of recent actions, newest first
- Archival Memory: append-only long-term notes, ranked by importance

Writes flush but never commit. The request boundary owns the transaction.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ...database import get_or_create, store_operation
from ...exceptions import InvalidItem
from ...models.db_models import (
    CoreMemoryDB, RecallMemoryDB, ArchivalMemoryDB,
    EventType, RelationshipState,
)
from ...models.memory_models import EventPayload, MemoryContext


logger = logging.getLogger(__name__)


# Fields a caller may set through update_core_memory
CORE_MEMORY_FIELDS = {
    "relationship_state",
    "trust_score",
    "active_goals",
    "price_range",
    "favorite_categories",
    "idiosyncrasies",
}

# Fields update_preferences replaces wholesale
PREFERENCE_FIELDS = {"price_range", "favorite_categories", "idiosyncrasies"}

CONTEXT_RECENT_EVENTS = 10
CONTEXT_ARCHIVAL_NOTES = 5


def _normalize_price_range(value) -> Optional[Dict[str, float]]:
    if value is None:
        return None
    if isinstance(value, dict):
        low, high = value.get("min"), value.get("max")
    else:
        try:
            low, high = value
        except (TypeError, ValueError):
            raise InvalidItem(f"price_range must be a (min, max) pair, got {value!r}")
    if low is None or high is None:
        raise InvalidItem("price_range requires both min and max")
    if low > high:
        raise InvalidItem(f"price_range min ({low}) exceeds max ({high})")
    return {"min": low, "max": high}


def _string_list(name: str, value, unique: bool = False) -> List[str]:
    if isinstance(value, str) or not isinstance(value, (list, tuple, set)):
        raise InvalidItem(f"{name} must be a list of strings")
    items = [str(v) for v in value]
    # Set semantics, first occurrence keeps its position
    return list(dict.fromkeys(items)) if unique else items


class MemoryStore:
    """
    Read/write access to Core, Recall and Archival memory.

    Usage:
        store = MemoryStore(db)
        store.record_event(user_id, EventType.SEARCH_QUERY, {"query": "laptop"})
        context = store.full_context(user_id)
    """

    def __init__(self, db: Session, session_factory: Optional[Callable[[], Session]] = None):
        """
        Initialize with database session.

        session_factory enables full_context to run its three reads
        concurrently, each on its own session.
        """
        self.db = db
        self.session_factory = session_factory

    # =========================================================================
    # CORE MEMORY
    # =========================================================================

    @store_operation
    def get_core_memory(self, user_id: str) -> Optional[CoreMemoryDB]:
        """Return the user's core memory, or None if it was never created."""
        return self.db.query(CoreMemoryDB).filter(CoreMemoryDB.user_id == user_id).first()

    @store_operation
    def get_or_create_core_memory(self, user_id: str) -> CoreMemoryDB:
        """
        Return existing core memory or create it with defaults.

        Safe under concurrent first access: the unique user_id constraint
        decides the winner and the loser reads the winner's row.
        """
        memory, created = get_or_create(
            self.db,
            CoreMemoryDB,
            {"user_id": user_id},
            {
                "relationship_state": RelationshipState.STRANGER,
                "trust_score": 0,
                "active_goals": [],
                "price_range": None,
                "favorite_categories": [],
                "idiosyncrasies": [],
            },
        )
        if created:
            logger.info(f"Initialized core memory for user {user_id}")
        return memory

    @store_operation
    def update_core_memory(self, user_id: str, updates: Dict[str, Any]) -> CoreMemoryDB:
        """Merge the given fields into core memory, creating it first if absent."""
        unknown = set(updates) - CORE_MEMORY_FIELDS
        if unknown:
            raise InvalidItem(f"Unknown core memory fields: {sorted(unknown)}")

        values = dict(updates)
        if "relationship_state" in values:
            try:
                values["relationship_state"] = RelationshipState(values["relationship_state"])
            except ValueError:
                raise InvalidItem(f"Invalid relationship_state: {values['relationship_state']!r}")
        if "trust_score" in values:
            score = values["trust_score"]
            if not isinstance(score, int) or not 0 <= score <= 100:
                raise InvalidItem(f"trust_score must be an integer in [0, 100], got {score!r}")
        if "price_range" in values:
            values["price_range"] = _normalize_price_range(values["price_range"])
        if "active_goals" in values:
            values["active_goals"] = _string_list("active_goals", values["active_goals"])
        for name in ("favorite_categories", "idiosyncrasies"):
            if name in values:
                values[name] = _string_list(name, values[name], unique=True)

        memory = self.get_or_create_core_memory(user_id)
        for name, value in values.items():
            setattr(memory, name, value)
        self.db.flush()
        return memory

    def append_goal(self, user_id: str, goal: str, priority: Optional[int] = None) -> CoreMemoryDB:
        """
        Append a goal to the end of active_goals.

        priority is accepted but not stored yet.
        """
        if not goal or not goal.strip():
            raise InvalidItem("goal must be a non-empty string")
        memory = self.get_or_create_core_memory(user_id)
        return self.update_core_memory(user_id, {"active_goals": [*(memory.active_goals or []), goal]})

    def update_preferences(self, user_id: str, preferences: Dict[str, Any]) -> CoreMemoryDB:
        """
        Replace each provided preference field wholesale.

        Lists are overwritten, not merged: {"favorite_categories": ["x"]}
        leaves exactly ["x"] regardless of earlier values. Keys that are not
        provided are left untouched.
        """
        unknown = set(preferences) - PREFERENCE_FIELDS
        if unknown:
            raise InvalidItem(f"Unknown preference fields: {sorted(unknown)}")
        return self.update_core_memory(user_id, preferences)

    # =========================================================================
    # RECALL MEMORY
    # =========================================================================

    @store_operation
    def record_event(
        self,
        user_id: str,
        event_type: Union[EventType, str],
        event_data: Union[EventPayload, Dict[str, Any], None],
    ) -> RecallMemoryDB:
        """Append a recall event."""
        try:
            event_type = EventType(event_type)
        except ValueError:
            raise InvalidItem(f"Invalid event_type: {event_type!r}")

        if isinstance(event_data, EventPayload):
            if event_data.event_type != event_type:
                raise InvalidItem(
                    f"Payload for {event_data.event_type.value} recorded as {event_type.value}"
                )
            event_data = event_data.to_payload()
        elif event_data is None:
            event_data = {}
        elif not isinstance(event_data, dict):
            raise InvalidItem("event_data must be a mapping")

        event = RecallMemoryDB(
            user_id=user_id,
            event_type=event_type,
            event_data=event_data,
        )
        self.db.add(event)
        self.db.flush()
        return event

    @store_operation
    def recent_events(self, user_id: str, limit: int = 10) -> List[RecallMemoryDB]:
        """Most recent events first. Each call re-queries."""
        if limit <= 0:
            return []
        return (
            self.db.query(RecallMemoryDB)
            .filter(RecallMemoryDB.user_id == user_id)
            .order_by(desc(RecallMemoryDB.timestamp), desc(RecallMemoryDB.id))
            .limit(limit)
            .all()
        )

    @store_operation
    def count_events(self, user_id: str) -> int:
        """Total recall events ever recorded for the user."""
        return self.db.query(RecallMemoryDB).filter(RecallMemoryDB.user_id == user_id).count()

    # =========================================================================
    # ARCHIVAL MEMORY
    # =========================================================================

    @store_operation
    def archive(
        self,
        user_id: str,
        content: str,
        category: Optional[str] = None,
        importance: int = 5,
    ) -> ArchivalMemoryDB:
        """Append a long-term note."""
        if not content:
            raise InvalidItem("Archival content must be non-empty")
        if not isinstance(importance, int) or not 1 <= importance <= 10:
            raise InvalidItem(f"importance must be an integer in [1, 10], got {importance!r}")

        record = ArchivalMemoryDB(
            user_id=user_id,
            content=content,
            category=category,
            importance=importance,
        )
        self.db.add(record)
        self.db.flush()
        return record

    @store_operation
    def search_archival(
        self,
        user_id: str,
        category: Optional[str] = None,
        limit: int = 20,
    ) -> List[ArchivalMemoryDB]:
        """Notes for the user, optionally filtered by category, most important first."""
        query = self.db.query(ArchivalMemoryDB).filter(ArchivalMemoryDB.user_id == user_id)
        if category:
            query = query.filter(ArchivalMemoryDB.category == category)
        return (
            query
            .order_by(
                desc(ArchivalMemoryDB.importance),
                desc(ArchivalMemoryDB.created_at),
                desc(ArchivalMemoryDB.id),
            )
            .limit(limit)
            .all()
        )

    # =========================================================================
    # CONTEXT ASSEMBLY
    # =========================================================================

    def full_context(self, user_id: str) -> MemoryContext:
        """
        Core memory, the 10 most recent events and the 5 most important notes.

        With a session factory the three reads run concurrently on separate
        sessions; assembly waits for all of them. A failure in any read
        propagates.

        Fresh sessions cannot see this session's uncommitted writes, so while
        self.db has a transaction open the reads run on it sequentially.
        """
        fetchers = (
            lambda store: self._core_dict(store, user_id),
            lambda store: [e.to_dict() for e in store.recent_events(user_id, CONTEXT_RECENT_EVENTS)],
            lambda store: [a.to_dict() for a in store.search_archival(user_id, None, CONTEXT_ARCHIVAL_NOTES)],
        )

        if self.session_factory is None or self.db.in_transaction():
            core, recent, archival = (fetch(self) for fetch in fetchers)
        else:
            with ThreadPoolExecutor(max_workers=len(fetchers)) as pool:
                futures = [pool.submit(self._fetch_isolated, fetch) for fetch in fetchers]
                core, recent, archival = (f.result() for f in futures)

        return MemoryContext(core=core, recent_events=recent, archival=archival)

    @staticmethod
    def _core_dict(store: "MemoryStore", user_id: str) -> Optional[Dict[str, Any]]:
        memory = store.get_core_memory(user_id)
        return memory.to_dict() if memory else None

    def _fetch_isolated(self, fetch):
        session = self.session_factory()
        try:
            return fetch(MemoryStore(session))
        finally:
            session.close()

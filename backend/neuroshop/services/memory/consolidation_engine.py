"""
Consolidation Engine

Batch job that promotes salient recall events into archival memory and
recomputes the relationship stage from total interaction volume.

Re-runnable. Each run re-archives the approvals still inside the recall
window, so repeated runs produce duplicate archival notes for the same
approvals. De-duplication is not attempted.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...database import store_operation
from ...models.db_models import EventType, RecallMemoryDB, RelationshipState
from ...models.memory_models import ConsolidationResult, parse_event_payload
from .memory_store import MemoryStore


logger = logging.getLogger(__name__)


# =============================================================================
# CONSOLIDATION CONFIGURATION
# =============================================================================

CONSOLIDATION_CONFIG = {
    "recall_window": 50,              # Most recent events scanned per run
    "archive_category": "product_preference",
    "archive_importance": 7,
}

# (exclusive lower bound on total recall events, state), highest first
RELATIONSHIP_THRESHOLDS = (
    (50, RelationshipState.PARTNER),
    (10, RelationshipState.ACQUAINTANCE),
)


def relationship_for_count(total_events: int) -> RelationshipState:
    """Relationship stage for an absolute event count. Boundaries are strict (>)."""
    for bound, state in RELATIONSHIP_THRESHOLDS:
        if total_events > bound:
            return state
    return RelationshipState.STRANGER


def describe_approval(event: RecallMemoryDB) -> str:
    """Archival note text for a product_approve event."""
    payload = parse_event_payload(event.event_type, event.event_data).to_payload()
    return f"User approved product: {json.dumps(payload, ensure_ascii=False, sort_keys=True)}"


class ConsolidationEngine:
    """
    Moves product approvals from recall to archival memory and keeps the
    relationship stage in line with interaction volume.

    Usage:
        engine = ConsolidationEngine(db)
        result = engine.consolidate(user_id)
    """

    def __init__(self, db: Session, memory_store: Optional[MemoryStore] = None):
        """Initialize with database session."""
        self.db = db
        self.memory = memory_store or MemoryStore(db)

    def consolidate(self, user_id: str) -> ConsolidationResult:
        """Run one consolidation pass for a user."""
        window = self.memory.recent_events(user_id, CONSOLIDATION_CONFIG["recall_window"])

        archived = 0
        for event in window:
            if EventType(event.event_type) != EventType.PRODUCT_APPROVE:
                continue
            self.memory.archive(
                user_id,
                describe_approval(event),
                CONSOLIDATION_CONFIG["archive_category"],
                CONSOLIDATION_CONFIG["archive_importance"],
            )
            archived += 1

        # Relationship stage counts every event ever recorded, not just the window
        total_events = self.memory.count_events(user_id)
        core = self.memory.get_or_create_core_memory(user_id)
        previous_state = RelationshipState(core.relationship_state)
        new_state = relationship_for_count(total_events)

        if new_state != previous_state:
            self.memory.update_core_memory(user_id, {"relationship_state": new_state})

        result = ConsolidationResult(
            user_id=user_id,
            events_scanned=len(window),
            archived=archived,
            total_events=total_events,
            previous_state=previous_state,
            relationship_state=new_state,
        )
        logger.info(
            f"Consolidated memory for user {user_id}: scanned={len(window)} archived={archived} "
            f"relationship={previous_state.value}->{new_state.value}"
        )
        return result

    @store_operation
    def consolidate_all(self) -> Dict[str, Any]:
        """
        Consolidate every user with recall events.

        Each user runs in its own SAVEPOINT; a failing user is rolled back,
        logged and reported without stopping the batch.
        """
        user_ids: List[str] = [
            row[0] for row in self.db.query(RecallMemoryDB.user_id).distinct().all()
        ]

        results = []
        failures = []
        for user_id in user_ids:
            try:
                with self.db.begin_nested():
                    results.append(self.consolidate(user_id).to_dict())
            except Exception as e:
                failures.append({"user_id": user_id, "error": str(e)})
                logger.error(f"Consolidation failed for user {user_id}: {e}")

        return {
            "task": "consolidation",
            "users_processed": len(results),
            "users_failed": len(failures),
            "results": results,
            "failures": failures,
        }

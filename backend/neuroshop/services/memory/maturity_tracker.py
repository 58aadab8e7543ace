"""
Maturity Tracker

Derives a three-level capability tier from a per-user interaction counter:
    tool → copilot → partner

The level is recomputed from the absolute count on every increment rather
than stepped. Since the counter only grows, the level only moves forward.
"""
import logging

from sqlalchemy.orm import Session

from ...database import get_or_create, store_operation
from ...models.db_models import MaturityLevel, UserMaturityLevelDB, utcnow


logger = logging.getLogger(__name__)


# =============================================================================
# LEVEL CONFIGURATION
# =============================================================================

# (exclusive lower bound on interaction_count, level), highest first
MATURITY_THRESHOLDS = (
    (100, MaturityLevel.PARTNER),
    (20, MaturityLevel.COPILOT),
)


def level_for_count(interaction_count: int) -> MaturityLevel:
    """Level for an absolute interaction count. Boundaries are strict (>)."""
    for bound, level in MATURITY_THRESHOLDS:
        if interaction_count > bound:
            return level
    return MaturityLevel.TOOL


class MaturityTracker:
    """Tracks interaction volume and the maturity level derived from it."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    @store_operation
    def get_state(self, user_id: str) -> UserMaturityLevelDB:
        """Return the maturity row, creating it at tool/0 if absent."""
        state, created = get_or_create(
            self.db,
            UserMaturityLevelDB,
            {"user_id": user_id},
            {"current_level": MaturityLevel.TOOL, "interaction_count": 0},
        )
        if created:
            logger.info(f"Initialized maturity tracking for user {user_id}")
        return state

    def get_maturity_level(self, user_id: str) -> MaturityLevel:
        """Current level. Read-only apart from lazy creation; does not increment."""
        return MaturityLevel(self.get_state(user_id).current_level)

    @store_operation
    def increment_interaction(self, user_id: str) -> UserMaturityLevelDB:
        """
        Count one interaction and recompute the level.

        The counter is incremented in SQL so concurrent increments are not lost.
        """
        state = self.get_state(user_id)

        self.db.query(UserMaturityLevelDB).filter(
            UserMaturityLevelDB.id == state.id
        ).update(
            {UserMaturityLevelDB.interaction_count: UserMaturityLevelDB.interaction_count + 1},
            synchronize_session=False,
        )
        self.db.refresh(state)

        previous_level = MaturityLevel(state.current_level)
        new_level = level_for_count(state.interaction_count)

        if new_level != previous_level:
            state.current_level = new_level
            state.last_level_change = utcnow()
            logger.info(
                f"User {user_id} maturity {previous_level.value} -> {new_level.value} "
                f"at {state.interaction_count} interactions"
            )

        self.db.flush()
        return state

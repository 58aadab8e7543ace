"""
Delegation Engine

Stores conditional rules pairing a watch item with an action, e.g.
"price < 7000" -> notify. Conditions are kept as literals; nothing here
parses or executes them.
"""
import logging
from typing import List, Optional, Union

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ...database import store_operation
from ...exceptions import InvalidItem, NotFound
from ...models.db_models import ConditionalDelegationDB, DelegationAction
from .watch_registry import PriceWatchRegistry


logger = logging.getLogger(__name__)


class DelegationEngine:
    """Registration and lifecycle of conditional delegations."""

    def __init__(self, db: Session, registry: Optional[PriceWatchRegistry] = None):
        self.db = db
        self.registry = registry or PriceWatchRegistry(db)

    @store_operation
    def create(
        self,
        user_id: str,
        watch_item_id: int,
        condition: str,
        action: Union[DelegationAction, str],
    ) -> ConditionalDelegationDB:
        """Register an active delegation on one of the user's own watch items."""
        if not condition or not condition.strip():
            raise InvalidItem("condition must be non-empty")
        try:
            action = DelegationAction(action)
        except ValueError:
            raise InvalidItem(f"Invalid delegation action: {action!r}")

        # Raises NotFound for items owned by another user
        self.registry.get_item(watch_item_id, user_id)

        delegation = ConditionalDelegationDB(
            user_id=user_id,
            watch_item_id=watch_item_id,
            condition=condition.strip(),
            action=action,
            is_active=True,
        )
        self.db.add(delegation)
        self.db.flush()

        logger.info(
            f"User {user_id} delegated {action.value} on item {watch_item_id} when '{delegation.condition}'"
        )
        return delegation

    @store_operation
    def list_delegations(self, user_id: str, active_only: bool = True) -> List[ConditionalDelegationDB]:
        query = self.db.query(ConditionalDelegationDB).filter(ConditionalDelegationDB.user_id == user_id)
        if active_only:
            query = query.filter(ConditionalDelegationDB.is_active.is_(True))
        return query.order_by(desc(ConditionalDelegationDB.created_at), desc(ConditionalDelegationDB.id)).all()

    @store_operation
    def deactivate(self, delegation_id: int, user_id: str) -> ConditionalDelegationDB:
        delegation = (
            self.db.query(ConditionalDelegationDB)
            .filter(ConditionalDelegationDB.id == delegation_id)
            .first()
        )
        if delegation is None or delegation.user_id != user_id:
            raise NotFound(f"Delegation {delegation_id} not found")

        if delegation.is_active:
            delegation.is_active = False
            self.db.flush()
            logger.info(f"User {user_id} deactivated delegation {delegation_id}")
        return delegation

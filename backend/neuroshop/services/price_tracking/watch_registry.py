"""
Price Watch Registry

CRUD over the products a user is watching and their price history.
Items are deactivated rather than deleted; their samples are kept.
"""
import logging
import math
from numbers import Real
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ...database import store_operation
from ...exceptions import InvalidItem, NotFound
from ...models.db_models import PriceHistoryDB, PriceWatchItemDB, utcnow


logger = logging.getLogger(__name__)


def is_valid_price(value) -> bool:
    """A real, finite, positive number. Booleans and NaN are not prices."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value) and value > 0


def _positive_price(name: str, value) -> float:
    if not is_valid_price(value):
        raise InvalidItem(f"{name} must be a positive number, got {value!r}")
    return float(value)


class PriceWatchRegistry:
    """
    Watch list storage.

    Usage:
        registry = PriceWatchRegistry(db)
        item = registry.add_item(user_id, url=..., title=..., current_price=1000.0)
        registry.record_price(item.id, 950.0)
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    @store_operation
    def add_item(
        self,
        user_id: str,
        url: str,
        title: str,
        current_price: float,
        target_price: Optional[float] = None,
        source: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> PriceWatchItemDB:
        """Start watching a product. Rejects empty URLs and non-positive prices."""
        if not url or not url.strip():
            raise InvalidItem("url must be non-empty")
        if not title or not title.strip():
            raise InvalidItem("title must be non-empty")
        current_price = _positive_price("current_price", current_price)
        if target_price is not None:
            target_price = _positive_price("target_price", target_price)

        item = PriceWatchItemDB(
            user_id=user_id,
            url=url.strip(),
            title=title.strip(),
            current_price=current_price,
            target_price=target_price,
            source=source,
            image_url=image_url,
            is_active=True,
            last_checked=utcnow(),
        )
        self.db.add(item)
        self.db.flush()

        logger.info(f"User {user_id} watching item {item.id} at {current_price:.2f}")
        return item

    @store_operation
    def get_watch_list(self, user_id: str, active_only: bool = True) -> List[PriceWatchItemDB]:
        """Items for the user, newest first."""
        query = self.db.query(PriceWatchItemDB).filter(PriceWatchItemDB.user_id == user_id)
        if active_only:
            query = query.filter(PriceWatchItemDB.is_active.is_(True))
        return query.order_by(desc(PriceWatchItemDB.created_at), desc(PriceWatchItemDB.id)).all()

    @store_operation
    def get_item(self, watch_item_id: int, user_id: Optional[str] = None) -> PriceWatchItemDB:
        """
        Fetch one item. With user_id, items owned by someone else are
        reported as missing.
        """
        item = self.db.query(PriceWatchItemDB).filter(PriceWatchItemDB.id == watch_item_id).first()
        if item is None or (user_id is not None and item.user_id != user_id):
            raise NotFound(f"Watch item {watch_item_id} not found")
        return item

    @store_operation
    def record_price(self, watch_item_id: int, new_price: float) -> PriceHistoryDB:
        """
        Store an observed price: update the item and append a sample.

        Both writes share one SAVEPOINT so neither lands without the other.
        """
        new_price = _positive_price("new_price", new_price)
        item = self.get_item(watch_item_id)

        now = utcnow()
        with self.db.begin_nested():
            item.current_price = new_price
            item.last_checked = now
            sample = PriceHistoryDB(watch_item_id=item.id, price=new_price, timestamp=now)
            self.db.add(sample)
        return sample

    @store_operation
    def get_price_history(self, watch_item_id: int, limit: int = 30) -> List[PriceHistoryDB]:
        """Samples for an item, newest first."""
        return (
            self.db.query(PriceHistoryDB)
            .filter(PriceHistoryDB.watch_item_id == watch_item_id)
            .order_by(desc(PriceHistoryDB.timestamp), desc(PriceHistoryDB.id))
            .limit(limit)
            .all()
        )

    @store_operation
    def deactivate_item(self, watch_item_id: int, user_id: str) -> PriceWatchItemDB:
        """Stop watching an item. History is retained."""
        item = self.get_item(watch_item_id, user_id)
        if item.is_active:
            item.is_active = False
            self.db.flush()
            logger.info(f"User {user_id} stopped watching item {watch_item_id}")
        return item

    @store_operation
    def users_with_active_items(self) -> List[str]:
        """User IDs that have at least one active watch item."""
        rows = (
            self.db.query(PriceWatchItemDB.user_id)
            .filter(PriceWatchItemDB.is_active.is_(True))
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

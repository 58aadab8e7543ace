"""
Price Alert Engine

AUTHORITY: SYSTEM (evaluation) / USER (response)
Observes prices for every active watch item, decides whether an explainable
alert should fire and records the observation.

Alert rules form a priority chain, first match wins:
1. TARGET_REACHED   - target set and new price <= target (requires approval)
2. SIGNIFICANT_DROP - new price < 85% of the last recorded price

Every observation is recorded whether or not an alert fires. An alert and
its price sample are written in the same SAVEPOINT so an alert never refers
to a price that was not recorded.

Alert responses are terminal: once an alert leaves PENDING it cannot be
answered again.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ...database import store_operation
from ...exceptions import AlreadyResolved, InvalidItem, NotFound, PriceSourceUnavailable
from ...models.db_models import AlertResponse, AlertType, PriceAlertDB, PriceWatchItemDB, utcnow
from ...models.price_models import PriceCheckResult
from .price_source import JitterPriceSource, PriceSource
from .watch_registry import PriceWatchRegistry, is_valid_price


logger = logging.getLogger(__name__)


# =============================================================================
# ALERT CONFIGURATION
# =============================================================================

ALERT_CONFIG = {
    # New price must fall strictly below this fraction of the last price (a >=15% drop)
    "significant_drop_ratio": 0.85,
}

RESPONSE_VALUES = (AlertResponse.ACCEPTED, AlertResponse.REJECTED, AlertResponse.IGNORED)


@dataclass(frozen=True)
class AlertDecision:
    """An alert the engine has decided to emit."""
    alert_type: AlertType
    requires_approval: bool
    reasoning: str


def drop_percent(old_price: float, new_price: float) -> int:
    """Drop from old to new as a whole percentage, halves rounded up."""
    return math.floor((1 - new_price / old_price) * 100 + 0.5)


def evaluate_price_change(
    current_price: float,
    new_price: float,
    target_price: Optional[float] = None,
) -> Optional[AlertDecision]:
    """Apply the alert rules to one observation. None means no alert."""
    if target_price is not None and new_price <= target_price:
        return AlertDecision(
            alert_type=AlertType.TARGET_REACHED,
            requires_approval=True,
            reasoning=(
                f"Price reached your target of {target_price:,.2f}. "
                f"It is now {new_price:,.2f}."
            ),
        )

    if new_price < current_price * ALERT_CONFIG["significant_drop_ratio"]:
        percent = drop_percent(current_price, new_price)
        return AlertDecision(
            alert_type=AlertType.SIGNIFICANT_DROP,
            requires_approval=False,
            reasoning=(
                f"Price dropped {percent}% (from {current_price:,.2f} to {new_price:,.2f}). "
                f"This is a significant discount."
            ),
        )

    return None


class PriceAlertEngine:
    """
    Evaluates watched items and manages the alert lifecycle.

    Usage:
        engine = PriceAlertEngine(db, price_source=my_source)
        result = engine.check_prices(user_id)
    """

    def __init__(
        self,
        db: Session,
        price_source: Optional[PriceSource] = None,
        registry: Optional[PriceWatchRegistry] = None,
    ):
        """
        Initialize with database session.

        Without a price_source the demo JitterPriceSource is used.
        """
        self.db = db
        self.price_source = price_source or JitterPriceSource()
        self.registry = registry or PriceWatchRegistry(db)

    # =========================================================================
    # EVALUATION (SYSTEM)
    # =========================================================================

    def check_prices(self, user_id: str) -> PriceCheckResult:
        """Observe, evaluate and record the price of every active item of a user."""
        result = PriceCheckResult(user_id=user_id)

        for item in self.registry.get_watch_list(user_id, active_only=True):
            observed = self._observe(item)
            if observed is None:
                result.items_skipped.append(item.id)
                continue

            alert = self._apply_observation(item, observed)
            result.items_checked += 1
            if alert is not None:
                result.alerts.append(alert)

        logger.info(
            f"Price check for user {user_id}: checked={result.items_checked} "
            f"skipped={len(result.items_skipped)} alerts={len(result.alerts)}"
        )
        return result

    def _observe(self, item: PriceWatchItemDB) -> Optional[float]:
        try:
            observed = self.price_source.fetch(item.url, item.current_price)
        except PriceSourceUnavailable as e:
            logger.warning(f"Skipping watch item {item.id}: {e}")
            return None

        if not is_valid_price(observed):
            logger.warning(f"Skipping watch item {item.id}: source returned {observed!r}")
            return None
        return float(observed)

    @store_operation
    def _apply_observation(self, item: PriceWatchItemDB, observed: float) -> Optional[PriceAlertDB]:
        previous_price = item.current_price
        decision = evaluate_price_change(previous_price, observed, item.target_price)

        alert = None
        with self.db.begin_nested():
            if decision is not None:
                alert = self.create_alert(
                    user_id=item.user_id,
                    watch_item_id=item.id,
                    alert_type=decision.alert_type,
                    old_price=previous_price,
                    new_price=observed,
                    reasoning=decision.reasoning,
                    requires_approval=decision.requires_approval,
                )
            self.registry.record_price(item.id, observed)
        return alert

    @store_operation
    def create_alert(
        self,
        user_id: str,
        watch_item_id: int,
        alert_type: Union[AlertType, str],
        old_price: Optional[float],
        new_price: float,
        reasoning: str,
        requires_approval: bool = False,
    ) -> PriceAlertDB:
        """Persist an alert in PENDING state."""
        alert = PriceAlertDB(
            user_id=user_id,
            watch_item_id=watch_item_id,
            alert_type=AlertType(alert_type),
            old_price=old_price,
            new_price=new_price,
            reasoning=reasoning,
            requires_approval=requires_approval,
            user_response=AlertResponse.PENDING,
        )
        self.db.add(alert)
        self.db.flush()

        logger.info(
            f"Alert {alert.id} ({alert.alert_type.value}) for user {user_id} "
            f"item {watch_item_id}: {old_price} -> {new_price:.2f}"
        )
        return alert

    def check_all_users(self) -> Dict[str, Any]:
        """
        Run check_prices for every user with an active watch item.

        Each user runs in its own SAVEPOINT; failures are logged and
        reported without stopping the batch.
        """
        results = []
        failures = []
        for user_id in self.registry.users_with_active_items():
            try:
                with self.db.begin_nested():
                    results.append(self.check_prices(user_id).to_dict())
            except Exception as e:
                failures.append({"user_id": user_id, "error": str(e)})
                logger.error(f"Price check failed for user {user_id}: {e}")

        return {
            "task": "price_check",
            "users_processed": len(results),
            "users_failed": len(failures),
            "alerts_created": sum(r["alerts_created"] for r in results),
            "results": results,
            "failures": failures,
        }

    # =========================================================================
    # RESPONSES (USER)
    # =========================================================================

    @store_operation
    def get_alert(self, alert_id: int, user_id: Optional[str] = None) -> PriceAlertDB:
        alert = self.db.query(PriceAlertDB).filter(PriceAlertDB.id == alert_id).first()
        if alert is None or (user_id is not None and alert.user_id != user_id):
            raise NotFound(f"Alert {alert_id} not found")
        return alert

    @store_operation
    def respond_to_alert(
        self,
        alert_id: int,
        response: Union[AlertResponse, str],
        user_id: Optional[str] = None,
    ) -> PriceAlertDB:
        """
        Record the user's response to a pending alert.

        Raises InvalidItem for anything but accepted/rejected/ignored and
        AlreadyResolved if the alert was answered before. The PENDING check
        is part of the UPDATE, so two racing responses cannot both win.
        """
        try:
            response = AlertResponse(response)
        except ValueError:
            raise InvalidItem(f"Invalid alert response: {response!r}")
        if response not in RESPONSE_VALUES:
            raise InvalidItem(f"Alert response must be one of {[r.value for r in RESPONSE_VALUES]}")

        alert = self.get_alert(alert_id, user_id)

        updated = self.db.query(PriceAlertDB).filter(
            PriceAlertDB.id == alert.id,
            PriceAlertDB.user_response == AlertResponse.PENDING,
        ).update(
            {
                PriceAlertDB.user_response: response,
                PriceAlertDB.responded_at: utcnow(),
            },
            synchronize_session=False,
        )
        self.db.refresh(alert)

        if updated == 0:
            raise AlreadyResolved(
                f"Alert {alert_id} already resolved as {AlertResponse(alert.user_response).value}"
            )

        logger.info(f"Alert {alert_id} resolved as {response.value}")
        return alert

    @store_operation
    def get_user_alerts(
        self,
        user_id: str,
        status: Optional[Union[AlertResponse, str]] = None,
    ) -> List[PriceAlertDB]:
        """Alerts for the user, newest first, optionally filtered by response status."""
        query = self.db.query(PriceAlertDB).filter(PriceAlertDB.user_id == user_id)
        if status is not None:
            try:
                status = AlertResponse(status)
            except ValueError:
                raise InvalidItem(f"Invalid alert status: {status!r}")
            query = query.filter(PriceAlertDB.user_response == status)
        return query.order_by(desc(PriceAlertDB.created_at), desc(PriceAlertDB.id)).all()

"""
Tests for BudgetTracker and DelegationEngine.

Budget breach fires once, on the call that moves spending from below the
alert threshold to at or above it.
"""
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from neuroshop.exceptions import InvalidItem, NotFound
from neuroshop.models.db_models import BudgetTrackingDB, DelegationAction
from neuroshop.services.price_tracking import (
    BudgetTracker,
    DelegationEngine,
    PriceWatchRegistry,
    current_month,
)


USER = "user-1"


# =============================================================================
# TEST: BUDGET TRACKER
# =============================================================================

class TestBudgetTracker:

    def test_current_month_format(self):
        assert current_month(datetime(2025, 1, 31, 23, 59)) == "2025-01"

    def test_created_with_defaults(self, db):
        record = BudgetTracker(db).get_or_create(USER)

        assert record.month == current_month()
        assert record.monthly_budget == 10000.0
        assert record.current_spending == 0.0
        assert record.alert_threshold == 0.8

    def test_one_record_per_user_and_month(self, db):
        tracker = BudgetTracker(db)
        tracker.get_or_create(USER)
        tracker.get_or_create(USER)
        tracker.get_or_create(USER, month="2020-05")

        assert db.query(BudgetTrackingDB).filter_by(user_id=USER).count() == 2

    def test_insert_conflict_returns_existing_row(self, db, session_factory):
        other = session_factory()
        BudgetTracker(other).get_or_create(USER)
        other.commit()
        other.close()

        with patch("neuroshop.database._lookup", return_value=None):
            BudgetTracker(db).get_or_create(USER)

        assert db.query(BudgetTrackingDB).filter_by(user_id=USER).count() == 1

    def test_breach_fires_once_when_crossing(self, db):
        listener = MagicMock()
        tracker = BudgetTracker(db, listeners=[listener])

        assert tracker.add_spending(USER, 7000) is None
        breach = tracker.add_spending(USER, 1500)
        again = tracker.add_spending(USER, 100)

        assert breach is not None
        assert breach.current_spending == 8500.0
        assert breach.usage_ratio == pytest.approx(0.85)
        assert again is None
        listener.assert_called_once_with(breach)

    def test_landing_exactly_on_threshold_fires(self, db):
        tracker = BudgetTracker(db)

        assert tracker.add_spending(USER, 8000) is not None

    def test_spend_after_landing_on_threshold_does_not_fire_again(self, db):
        listener = MagicMock()
        tracker = BudgetTracker(db, listeners=[listener])
        tracker.update_budget(USER, 10, alert_threshold=0.8)

        breach = tracker.add_spending(USER, 8.0)
        again = tracker.add_spending(USER, 0.03)

        assert breach is not None
        assert again is None
        listener.assert_called_once_with(breach)

    def test_fractional_amounts_cross_once(self, db):
        listener = MagicMock()
        tracker = BudgetTracker(db, listeners=[listener])
        tracker.update_budget(USER, 1, alert_threshold=0.3)

        results = [tracker.add_spending(USER, 0.1) for _ in range(5)]

        assert [r is not None for r in results] == [False, False, True, False, False]
        assert listener.call_count == 1

    @pytest.mark.parametrize("amount", [0, 0.01, 500])
    def test_spending_while_above_threshold_is_silent(self, db, amount):
        tracker = BudgetTracker(db)
        tracker.add_spending(USER, 9000)

        assert tracker.add_spending(USER, amount) is None

    def test_update_budget_changes_current_month_only(self, db):
        tracker = BudgetTracker(db)
        past = tracker.get_or_create(USER, month="2020-05")

        record = tracker.update_budget(USER, 5000, alert_threshold=0.5)

        assert record.month == current_month()
        assert record.monthly_budget == 5000.0
        assert record.alert_threshold == 0.5
        assert past.monthly_budget == 10000.0

    def test_update_budget_keeps_threshold_when_omitted(self, db):
        record = BudgetTracker(db).update_budget(USER, 2000)

        assert record.alert_threshold == 0.8

    @pytest.mark.parametrize("budget,threshold", [(0, None), (-100, None), (1000, 0), (1000, 1.5)])
    def test_update_budget_validation(self, db, budget, threshold):
        with pytest.raises(InvalidItem):
            BudgetTracker(db).update_budget(USER, budget, threshold)

    @pytest.mark.parametrize("amount", [-1, float("nan"), float("inf")])
    def test_unusable_spending_rejected(self, db, amount):
        with pytest.raises(InvalidItem):
            BudgetTracker(db).add_spending(USER, amount)


# =============================================================================
# TEST: DELEGATION ENGINE
# =============================================================================

class TestDelegationEngine:

    def _item(self, db, user_id=USER):
        return PriceWatchRegistry(db).add_item(
            user_id, url="https://shop.example/tv", title="TV", current_price=9000
        )

    def test_create_stores_condition_literally(self, db):
        item = self._item(db)

        delegation = DelegationEngine(db).create(USER, item.id, "price < 7000", "notify")

        assert delegation.is_active is True
        assert delegation.condition == "price < 7000"
        assert delegation.action == DelegationAction.NOTIFY
        assert delegation.executed_at is None

    def test_item_must_belong_to_user(self, db):
        item = self._item(db, user_id="someone-else")

        with pytest.raises(NotFound):
            DelegationEngine(db).create(USER, item.id, "price < 7000", "reserve")

    @pytest.mark.parametrize("condition,action", [("", "notify"), ("price < 1", "buy_everything")])
    def test_validation(self, db, condition, action):
        item = self._item(db)

        with pytest.raises(InvalidItem):
            DelegationEngine(db).create(USER, item.id, condition, action)

    def test_list_and_deactivate(self, db):
        item = self._item(db)
        engine = DelegationEngine(db)
        first = engine.create(USER, item.id, "price < 8000", DelegationAction.NOTIFY)
        second = engine.create(USER, item.id, "price < 7000", DelegationAction.AUTO_BUY)

        engine.deactivate(first.id, USER)

        assert [d.id for d in engine.list_delegations(USER)] == [second.id]
        assert len(engine.list_delegations(USER, active_only=False)) == 2

    def test_deactivate_other_users_delegation(self, db):
        item = self._item(db)
        delegation = DelegationEngine(db).create(USER, item.id, "price < 7000", "notify")

        with pytest.raises(NotFound):
            DelegationEngine(db).deactivate(delegation.id, "intruder")

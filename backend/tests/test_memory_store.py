"""
Tests for MemoryStore.

1. Core memory is created lazily with defaults, exactly once per user
2. Goals append in insertion order
3. Preferences replace provided fields wholesale
4. Recall events come back newest first
5. Archival notes rank by importance
6. full_context assembles core + 10 events + 5 notes, concurrently or not
"""
import threading

import pytest

from neuroshop.exceptions import InvalidItem
from neuroshop.models.db_models import CoreMemoryDB, EventType, RelationshipState
from neuroshop.models.memory_models import (
    MemoryContext,
    ProductApproveEvent,
    SearchQueryEvent,
    parse_event_payload,
)
from neuroshop.services.memory import MemoryStore


USER = "user-1"


# =============================================================================
# TEST: CORE MEMORY
# =============================================================================

class TestCoreMemory:

    def test_created_with_defaults(self, db):
        store = MemoryStore(db)

        memory = store.get_or_create_core_memory(USER)

        assert memory.relationship_state == RelationshipState.STRANGER
        assert memory.trust_score == 0
        assert memory.active_goals == []
        assert memory.price_range is None
        assert memory.favorite_categories == []
        assert memory.idiosyncrasies == []

    def test_get_core_memory_does_not_create(self, db):
        assert MemoryStore(db).get_core_memory(USER) is None
        assert db.query(CoreMemoryDB).count() == 0

    def test_second_call_returns_same_row(self, db):
        store = MemoryStore(db)

        first = store.get_or_create_core_memory(USER)
        second = store.get_or_create_core_memory(USER)

        assert first.id == second.id
        assert db.query(CoreMemoryDB).filter_by(user_id=USER).count() == 1

    def test_concurrent_first_access_from_two_threads(self, db, session_factory):
        """Both callers get the same row; neither sees a lock error."""
        barrier = threading.Barrier(2)
        ids, errors = [], []

        def first_access():
            session = session_factory()
            try:
                barrier.wait()
                ids.append(MemoryStore(session).get_or_create_core_memory(USER).id)
                session.commit()
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=first_access) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(ids) == 2 and ids[0] == ids[1]
        assert db.query(CoreMemoryDB).filter_by(user_id=USER).count() == 1

    def test_update_core_memory_merges_fields(self, db):
        store = MemoryStore(db)
        store.update_core_memory(USER, {"trust_score": 40})

        memory = store.update_core_memory(USER, {"relationship_state": "acquaintance"})

        assert memory.trust_score == 40
        assert memory.relationship_state == RelationshipState.ACQUAINTANCE

    @pytest.mark.parametrize("updates", [
        {"trust_score": 101},
        {"trust_score": -1},
        {"relationship_state": "best_friend"},
        {"price_range": {"min": 500, "max": 100}},
        {"favorite_categories": "books"},
        {"unknown_field": 1},
    ])
    def test_update_core_memory_rejects_invalid(self, db, updates):
        with pytest.raises(InvalidItem):
            MemoryStore(db).update_core_memory(USER, updates)


# =============================================================================
# TEST: GOALS AND PREFERENCES
# =============================================================================

class TestGoalsAndPreferences:

    def test_goals_keep_insertion_order(self, db):
        store = MemoryStore(db)

        store.append_goal(USER, "new laptop")
        store.append_goal(USER, "running shoes", priority=1)
        memory = store.append_goal(USER, "gift for mom")

        assert memory.active_goals == ["new laptop", "running shoes", "gift for mom"]

    def test_append_goal_creates_core_memory(self, db):
        MemoryStore(db).append_goal(USER, "headphones")

        assert db.query(CoreMemoryDB).filter_by(user_id=USER).count() == 1

    def test_empty_goal_rejected(self, db):
        with pytest.raises(InvalidItem):
            MemoryStore(db).append_goal(USER, "   ")

    def test_preferences_overwrite_not_merge(self, db):
        store = MemoryStore(db)
        store.update_preferences(USER, {"favorite_categories": ["a", "b"]})

        store.update_preferences(USER, {"favorite_categories": ["x"]})
        db.commit()
        db.expire_all()

        assert store.get_core_memory(USER).favorite_categories == ["x"]

    def test_preferences_leave_unsent_fields(self, db):
        store = MemoryStore(db)
        store.update_preferences(USER, {
            "price_range": {"min": 100, "max": 900},
            "idiosyncrasies": ["hates red"],
        })

        memory = store.update_preferences(USER, {"favorite_categories": ["audio"]})

        assert memory.price_range == {"min": 100, "max": 900}
        assert memory.idiosyncrasies == ["hates red"]
        assert memory.favorite_categories == ["audio"]

    def test_categories_behave_as_set(self, db):
        memory = MemoryStore(db).update_preferences(
            USER, {"favorite_categories": ["audio", "books", "audio"]}
        )

        assert memory.favorite_categories == ["audio", "books"]

    def test_price_range_accepts_pair(self, db):
        memory = MemoryStore(db).update_preferences(USER, {"price_range": (50, 75)})

        assert memory.price_range == {"min": 50, "max": 75}

    def test_preferences_reject_non_preference_fields(self, db):
        with pytest.raises(InvalidItem):
            MemoryStore(db).update_preferences(USER, {"trust_score": 90})


# =============================================================================
# TEST: RECALL MEMORY
# =============================================================================

class TestRecallMemory:

    def test_recent_events_newest_first(self, db):
        store = MemoryStore(db)
        for i in range(3):
            store.record_event(USER, EventType.SEARCH_QUERY, {"query": f"q{i}"})

        events = store.recent_events(USER)

        assert [e.event_data["query"] for e in events] == ["q2", "q1", "q0"]

    def test_recent_events_respects_limit_and_user(self, db):
        store = MemoryStore(db)
        for i in range(12):
            store.record_event(USER, "product_view", {"product_id": str(i)})
        store.record_event("someone-else", "product_view", {"product_id": "x"})

        assert len(store.recent_events(USER)) == 10
        assert len(store.recent_events(USER, limit=3)) == 3
        assert store.count_events(USER) == 12

    def test_typed_payload_stored_schema_less(self, db):
        store = MemoryStore(db)

        event = store.record_event(
            USER,
            EventType.PRODUCT_APPROVE,
            ProductApproveEvent(product_id="p1", title="Headphones", price=199.0),
        )

        assert event.event_data == {"product_id": "p1", "title": "Headphones", "price": 199.0}
        parsed = parse_event_payload(event.event_type, event.event_data)
        assert isinstance(parsed, ProductApproveEvent)
        assert parsed.title == "Headphones"

    def test_unknown_payload_keys_kept_in_extra(self):
        parsed = parse_event_payload(EventType.SEARCH_QUERY, {"query": "tv", "page": 2})

        assert isinstance(parsed, SearchQueryEvent)
        assert parsed.query == "tv"
        assert parsed.extra == {"page": 2}
        assert parsed.to_payload() == {"query": "tv", "page": 2}

    def test_mismatched_payload_type_rejected(self, db):
        with pytest.raises(InvalidItem):
            MemoryStore(db).record_event(USER, EventType.SEARCH_QUERY, ProductApproveEvent(product_id="p1"))

    def test_invalid_event_type_rejected(self, db):
        with pytest.raises(InvalidItem):
            MemoryStore(db).record_event(USER, "teleport", {})


# =============================================================================
# TEST: ARCHIVAL MEMORY
# =============================================================================

class TestArchivalMemory:

    def test_ranked_by_importance(self, db):
        store = MemoryStore(db)
        store.archive(USER, "low", importance=2)
        store.archive(USER, "high", importance=9)
        store.archive(USER, "default")

        assert [r.content for r in store.search_archival(USER)] == ["high", "default", "low"]

    def test_category_filter(self, db):
        store = MemoryStore(db)
        store.archive(USER, "likes vinyl", category="product_preference", importance=7)
        store.archive(USER, "birthday in may", category="personal")

        records = store.search_archival(USER, category="personal")

        assert [r.content for r in records] == ["birthday in may"]

    @pytest.mark.parametrize("importance", [0, 11])
    def test_importance_bounds(self, db, importance):
        with pytest.raises(InvalidItem):
            MemoryStore(db).archive(USER, "note", importance=importance)


# =============================================================================
# TEST: CONTEXT ASSEMBLY
# =============================================================================

class TestFullContext:

    def _seed(self, store):
        store.append_goal(USER, "new phone")
        for i in range(15):
            store.record_event(USER, EventType.SEARCH_QUERY, {"query": f"q{i}"})
        for importance in range(1, 9):
            store.archive(USER, f"note {importance}", importance=importance)

    def test_sequential_assembly(self, db):
        store = MemoryStore(db)
        self._seed(store)

        context = store.full_context(USER)

        assert isinstance(context, MemoryContext)
        assert context.core["active_goals"] == ["new phone"]
        assert len(context.recent_events) == 10
        assert context.recent_events[0]["event_data"] == {"query": "q14"}
        assert [a["importance"] for a in context.archival] == [8, 7, 6, 5, 4]

    def test_concurrent_assembly_matches_sequential(self, db, session_factory):
        self._seed(MemoryStore(db))
        db.commit()

        concurrent = MemoryStore(db, session_factory=session_factory).full_context(USER)
        sequential = MemoryStore(db).full_context(USER)

        assert concurrent.to_dict() == sequential.to_dict()

    def test_read_right_after_uncommitted_write(self, db, session_factory):
        store = MemoryStore(db, session_factory=session_factory)
        store.append_goal(USER, "new phone")
        store.record_event(USER, EventType.SEARCH_QUERY, {"query": "phone"})

        context = store.full_context(USER)

        assert context.core["active_goals"] == ["new phone"]
        assert context.recent_events[0]["event_data"] == {"query": "phone"}

    def test_unknown_user_has_empty_context(self, db):
        context = MemoryStore(db).full_context("nobody").to_dict()

        assert context == {"core": None, "recent_interactions": [], "archival": []}

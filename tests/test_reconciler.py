"""Tests for turning observed presence into session transitions."""

import random
from collections import Counter

import pytest

from gamehouse.config import ConcurrencyPolicy
from gamehouse.reconciler import SessionReconciler

from tests.conftest import at


class CountingStore:
    """Wraps a store and counts writes."""

    def __init__(self, inner):
        self.inner = inner
        self.saves = 0

    def save(self, record):
        self.saves += 1
        return self.inner.save(record)

    def find_active(self, identity):
        return self.inner.find_active(identity)

    def find_all(self):
        return self.inner.find_all()

    def find_all_active(self):
        return self.inner.find_all_active()


def assert_one_active_per_pair(store):
    pairs = Counter((r.identity, r.activity) for r in store.find_all_active())
    assert all(count == 1 for count in pairs.values()), pairs


class TestReconcile:
    """Poll-model reconciliation under the multi-activity policy."""

    def test_new_activity_opens_session(self, store):
        reconciler = SessionReconciler(store)
        outcome = reconciler.reconcile("u1", "Alice", {"chess"}, at(0))

        assert outcome.opened == ["chess"]
        assert outcome.closed == []
        (record,) = store.find_all_active()
        assert record.display_name == "Alice"
        assert record.start_time == at(0)
        assert record.accumulated_seconds == 0

    def test_missing_activity_closes_session_with_elapsed_time(self, store):
        reconciler = SessionReconciler(store)
        reconciler.reconcile("u1", "Alice", {"chess"}, at(0))
        outcome = reconciler.reconcile("u1", "Alice", set(), at(minutes=30))

        assert outcome.closed == ["chess"]
        (record,) = store.find_all()
        assert record.active is False
        assert record.accumulated_seconds == 1800

    def test_reopening_creates_new_record(self, store):
        reconciler = SessionReconciler(store)
        reconciler.reconcile("u1", "Alice", {"chess"}, at(0))
        reconciler.reconcile("u1", "Alice", set(), at(10))
        reconciler.reconcile("u1", "Alice", {"chess"}, at(20))

        records = store.find_all()
        assert len(records) == 2
        assert records[0].active is False
        assert records[0].accumulated_seconds == 600
        assert records[1].active is True
        assert records[1].start_time == at(20)

    def test_unchanged_observation_performs_no_writes(self, store):
        counting = CountingStore(store)
        reconciler = SessionReconciler(counting)
        reconciler.reconcile("u1", "Alice", {"chess", "go"}, at(0))
        writes = counting.saves

        outcome = reconciler.reconcile("u1", "Alice", {"chess", "go"}, at(5))
        assert counting.saves == writes
        assert not outcome.changed

    def test_multiple_simultaneous_activities(self, store):
        reconciler = SessionReconciler(store)
        outcome = reconciler.reconcile("u1", "Alice", {"go", "chess"}, at(0))
        assert outcome.opened == ["chess", "go"]

        outcome = reconciler.reconcile("u1", "Alice", {"go"}, at(15))
        assert outcome.closed == ["chess"]
        assert [r.activity for r in store.find_active("u1")] == ["go"]

    def test_switching_activity_closes_before_opening(self, store):
        reconciler = SessionReconciler(store)
        reconciler.reconcile("u1", "Alice", {"chess"}, at(0))
        outcome = reconciler.reconcile("u1", "Alice", {"go"}, at(5))

        assert outcome.closed == ["chess"]
        assert outcome.opened == ["go"]
        assert_one_active_per_pair(store)

    def test_blank_labels_are_ignored(self, store):
        reconciler = SessionReconciler(store)
        outcome = reconciler.reconcile("u1", "Alice", {"", "   ", None}, at(0))
        assert not outcome.changed
        assert store.find_all() == []

    def test_labels_are_normalized(self, store):
        reconciler = SessionReconciler(store)
        reconciler.reconcile("u1", "Alice", {"  Rocket   League "}, at(0))
        outcome = reconciler.reconcile("u1", "Alice", {"Rocket League"}, at(1))
        assert not outcome.changed
        assert [r.activity for r in store.find_all()] == ["Rocket League"]

    def test_identities_are_independent(self, store):
        reconciler = SessionReconciler(store)
        reconciler.reconcile("u1", "Alice", {"chess"}, at(0))
        reconciler.reconcile("u2", "Bob", {"chess"}, at(0))
        reconciler.reconcile("u1", "Alice", set(), at(10))

        assert [r.identity for r in store.find_all_active()] == ["u2"]

    def test_clock_going_backwards_never_banks_negative_time(self, store):
        reconciler = SessionReconciler(store)
        reconciler.reconcile("u1", "Alice", {"chess"}, at(10))
        reconciler.reconcile("u1", "Alice", set(), at(5))
        assert store.find_all()[0].accumulated_seconds == 0


class TestConservation:
    """Banked plus open time always equals observed engaged time."""

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_random_observation_sequences(self, store, seed):
        rng = random.Random(seed)
        reconciler = SessionReconciler(store)
        games = ["chess", "go", "poker"]
        expected: Counter = Counter()
        minute = 0
        observed: set[str] = set()

        for _ in range(40):
            observed = {game for game in games if rng.random() < 0.5}
            reconciler.reconcile("u1", "Alice", observed, at(minute))
            assert_one_active_per_pair(store)
            step = rng.randint(1, 9)
            for game in observed:
                expected[game] += step * 60
            minute += step

        end = at(minute)
        actual: Counter = Counter()
        for record in store.find_all():
            actual[record.activity] += record.effective_seconds(end)
        assert {k: v for k, v in actual.items() if v} == {k: v for k, v in expected.items() if v}


class TestSinglePolicy:
    """One open activity per identity."""

    def test_reconcile_keeps_one_activity(self, store):
        reconciler = SessionReconciler(store, ConcurrencyPolicy.SINGLE)
        outcome = reconciler.reconcile("u1", "Alice", {"go", "chess"}, at(0))
        assert outcome.opened == ["chess"]
        assert len(store.find_active("u1")) == 1

    def test_reconcile_prefers_already_open_activity(self, store):
        reconciler = SessionReconciler(store, ConcurrencyPolicy.SINGLE)
        reconciler.reconcile("u1", "Alice", {"go"}, at(0))
        outcome = reconciler.reconcile("u1", "Alice", {"chess", "go"}, at(5))
        assert not outcome.changed
        assert [r.activity for r in store.find_active("u1")] == ["go"]


class TestEvents:
    """Event-model entry points."""

    def test_start_under_single_policy_closes_everything_first(self, store):
        reconciler = SessionReconciler(store, ConcurrencyPolicy.SINGLE)
        reconciler.on_activity_start("u1", "Alice", "chess", at(0))
        outcome = reconciler.on_activity_start("u1", "Alice", "go", at(20))

        assert outcome.closed == ["chess"]
        assert outcome.opened == ["go"]
        closed = [r for r in store.find_all() if not r.active]
        assert closed[0].accumulated_seconds == 1200
        assert [r.activity for r in store.find_all_active()] == ["go"]

    def test_start_under_multi_policy_keeps_other_activities(self, store):
        reconciler = SessionReconciler(store)
        reconciler.on_activity_start("u1", "Alice", "chess", at(0))
        outcome = reconciler.on_activity_start("u1", "Alice", "go", at(1))

        assert outcome.closed == []
        assert sorted(r.activity for r in store.find_all_active()) == ["chess", "go"]

    def test_repeated_start_under_multi_policy_is_noop(self, store):
        counting = CountingStore(store)
        reconciler = SessionReconciler(counting)
        reconciler.on_activity_start("u1", "Alice", "chess", at(0))
        outcome = reconciler.on_activity_start("u1", "Alice", "chess", at(1))
        assert not outcome.changed
        assert counting.saves == 1

    def test_end_closes_matching_activity(self, store):
        reconciler = SessionReconciler(store)
        reconciler.on_activity_start("u1", "Alice", "chess", at(0))
        reconciler.on_activity_start("u1", "Alice", "go", at(0))
        outcome = reconciler.on_activity_end("u1", "chess", at(45))

        assert outcome.closed == ["chess"]
        chess = next(r for r in store.find_all() if r.activity == "chess")
        assert chess.accumulated_seconds == 2700
        assert [r.activity for r in store.find_all_active()] == ["go"]

    def test_end_without_open_session_is_noop(self, store):
        reconciler = SessionReconciler(store)
        outcome = reconciler.on_activity_end("u1", "chess", at(0))
        assert not outcome.changed
        assert store.find_all() == []

    def test_blank_start_is_ignored(self, store):
        reconciler = SessionReconciler(store, ConcurrencyPolicy.SINGLE)
        reconciler.on_activity_start("u1", "Alice", "chess", at(0))
        outcome = reconciler.on_activity_start("u1", "Alice", "  ", at(1))
        assert not outcome.changed
        assert [r.activity for r in store.find_all_active()] == ["chess"]


class TestNaiveTimestamps:
    """Naive times passed to the entry points are read as UTC."""

    def test_reconcile_closes_with_naive_now(self, store):
        reconciler = SessionReconciler(store)
        reconciler.reconcile("u1", "Alice", {"chess"}, at(0))
        outcome = reconciler.reconcile("u1", "Alice", set(), at(30).replace(tzinfo=None))

        assert outcome.closed == ["chess"]
        assert store.find_all()[0].accumulated_seconds == 1800

    def test_events_with_naive_now(self, store):
        reconciler = SessionReconciler(store)
        reconciler.on_activity_start("u1", "Alice", "chess", at(0).replace(tzinfo=None))
        reconciler.on_activity_end("u1", "chess", at(10).replace(tzinfo=None))

        (record,) = store.find_all()
        assert record.start_time == at(0)
        assert record.accumulated_seconds == 600

"""
Tests for the selector learning store.
"""

import sqlite3

import pytest

from formpilot.field_mapping import CanonicalField
from formpilot.selector_store import (
    INITIAL_CONFIDENCE,
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    LabelMapping,
    SelectorStore,
)


def mapping(label="Email", field=CanonicalField.EMAIL, scope="lever", **kwargs):
    return LabelMapping(raw_label=label, canonical_field=field, scope_key=scope, **kwargs)


class TestLookup:
    """Reading learned mappings back."""

    def test_cold_start_returns_none(self, store):
        assert store.lookup(CanonicalField.EMAIL, "lever") is None

    def test_lookup_is_scoped(self, store):
        store.record_success(mapping(scope="lever"), "css=#email")
        assert store.lookup(CanonicalField.EMAIL, "greenhouse") is None
        assert store.lookup(CanonicalField.EMAIL, "lever").learned_locator == "css=#email"

    def test_highest_confidence_wins(self, store):
        store.record_success(mapping(label="Email"), "css=#email")
        store.record_success(mapping(label="Email"), "css=#email")
        store.record_success(mapping(label="E-mail address"), "css=#mail")

        best = store.lookup(CanonicalField.EMAIL, "lever")
        assert best.raw_label == "Email"
        assert best.success_count == 2

    def test_equal_confidence_prefers_more_successes(self, store):
        # 0.8 - 0.1 + 0.05 + 0.05 = 0.8 with three successes
        store.record_success(mapping(label="Email"), "css=#a")
        store.record_failure(mapping(label="Email"))
        store.record_success(mapping(label="Email"), "css=#a")
        store.record_success(mapping(label="Email"), "css=#a")
        store.record_success(mapping(label="Your email"), "css=#b")

        best = store.lookup(CanonicalField.EMAIL, "lever")
        assert best.confidence == pytest.approx(0.8)
        assert best.raw_label == "Email"

    def test_full_tie_prefers_most_recently_used(self, store):
        store.record_success(mapping(label="Email"), "css=#a")
        store.record_success(mapping(label="Your email"), "css=#b")
        assert store.lookup(CanonicalField.EMAIL, "lever").raw_label == "Your email"

        store.record_success(mapping(label="Your email"), "css=#b")
        store.record_success(mapping(label="Email"), "css=#a")
        assert store.lookup(CanonicalField.EMAIL, "lever").raw_label == "Email"

    def test_read_error_is_a_miss(self, store):
        store._conn.execute("DROP TABLE label_map")
        assert store.lookup(CanonicalField.EMAIL, "lever") is None
        assert store.all_mappings() == []


class TestConfidence:
    """Confidence adjustments and their bounds."""

    def test_first_success_creates_row(self, store):
        m = store.record_success(mapping(), "css=#email")
        assert m.success_count == 1
        assert m.failure_count == 0
        assert m.confidence == pytest.approx(INITIAL_CONFIDENCE + 0.05)
        assert m.last_used_at is not None
        assert store.get("lever", "Email").learned_locator == "css=#email"

    def test_success_never_exceeds_max(self, store):
        for _ in range(20):
            m = store.record_success(mapping(), "css=#email")
        assert m.confidence == MAX_CONFIDENCE
        assert m.success_count == 20

    def test_failure_never_drops_below_min(self, store):
        store.record_success(mapping(), "css=#email")
        for _ in range(10):
            m = store.record_failure(mapping())
        assert m.confidence == MIN_CONFIDENCE
        assert m.failure_count == 10
        # The locator survives failures
        assert m.learned_locator == "css=#email"

    def test_confidence_monotonic(self, store):
        previous = store.record_success(mapping(), "css=#email").confidence
        for _ in range(5):
            current = store.record_success(mapping(), "css=#email").confidence
            assert current >= previous
            previous = current
        for _ in range(8):
            current = store.record_failure(mapping()).confidence
            assert current <= previous
            previous = current

    def test_failure_without_row_does_not_persist(self, store):
        m = store.record_failure(mapping())
        assert m.failure_count == 1
        assert m.confidence == pytest.approx(INITIAL_CONFIDENCE - 0.1)
        assert store.get("lever", "Email") is None

    def test_success_updates_locator_and_field(self, store):
        store.record_success(mapping(), "css=#old")
        m = store.record_success(mapping(), "css=#new")
        assert m.learned_locator == "css=#new"
        assert m.success_count == 2

    def test_write_errors_propagate(self, store):
        store._conn.execute("DROP TABLE label_map")
        with pytest.raises(sqlite3.Error):
            store.record_success(mapping(), "css=#email")


class TestPersistence:
    """Learned mappings survive across store instances."""

    def test_reopen_keeps_mappings(self, tmp_path):
        db = str(tmp_path / "data" / "store.db")
        with SelectorStore(db) as s:
            s.record_success(mapping(), "css=#email")

        with SelectorStore(db) as s:
            found = s.lookup(CanonicalField.EMAIL, "lever")
            assert found.learned_locator == "css=#email"
            assert s.stats().mappings == 1

    def test_stats(self, store):
        store.record_success(mapping(label="Email"), "css=#email")
        store.record_success(mapping(label="Phone", field=CanonicalField.PHONE), "css=#phone")
        store.record_failure(mapping(label="Phone", field=CanonicalField.PHONE))

        stats = store.stats()
        assert stats.mappings == 2
        assert stats.with_locator == 2
        assert stats.successes == 2
        assert stats.failures == 1

    def test_all_mappings_by_scope(self, store):
        store.record_success(mapping(scope="lever"), "css=#a")
        store.record_success(mapping(scope="generic:example.com"), "css=#b")
        assert len(store.all_mappings()) == 2
        assert [m.scope_key for m in store.all_mappings("lever")] == ["lever"]

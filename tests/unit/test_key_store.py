"""
Tests for the key store.

Covers upsert-increment semantics, cascade delete and concurrent increments.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from keypool.models.api_key import ApiKey

MODEL = "gemini-2.5-flash"
KEY = "AIza-test-key-0001"


class TestUpsertIncrement:
    """Tests for counter writes."""

    def test_first_usage_creates_row(self, store):
        store.create_key(KEY)
        store.add_usage(KEY, MODEL)

        row = store.get_usage(KEY, MODEL)
        assert (row.usage, row.error) == (1, 0)

    def test_first_error_creates_row(self, store):
        store.create_key(KEY)
        store.add_error(KEY, MODEL)

        row = store.get_usage(KEY, MODEL)
        assert (row.usage, row.error) == (0, 1)

    def test_increments_existing_row(self, store):
        store.create_key(KEY)
        store.add_usage(KEY, MODEL)
        store.add_usage(KEY, MODEL)
        store.add_error(KEY, MODEL)

        row = store.get_usage(KEY, MODEL)
        assert (row.usage, row.error) == (2, 1)

    def test_combined_increment(self, store):
        store.create_key(KEY)
        store.increment(KEY, MODEL, usage=1, error=1)
        store.increment(KEY, MODEL, usage=1, error=1)

        row = store.get_usage(KEY, MODEL)
        assert (row.usage, row.error) == (2, 2)

    def test_noop_increment_creates_nothing(self, store):
        store.create_key(KEY)
        store.increment(KEY, MODEL)
        assert store.get_usage(KEY, MODEL) is None

    def test_rows_are_per_model(self, store):
        store.create_key(KEY)
        store.add_usage(KEY, MODEL)
        store.add_usage(KEY, "gemini-2.5-pro")

        assert [r.model for r in store.get_key_usage(KEY)] == ["gemini-2.5-flash", "gemini-2.5-pro"]
        assert [r.model for r in store.get_key_usage(KEY, "gemini-2.5-pro")] == ["gemini-2.5-pro"]

    def test_unknown_key_rejected(self, store):
        with pytest.raises(IntegrityError):
            store.add_usage("never-registered-key", MODEL)

    def test_concurrent_increments_are_not_lost(self, store):
        store.create_key(KEY)
        store.add_usage(KEY, MODEL)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: store.add_usage(KEY, MODEL), range(40)))

        assert store.get_usage(KEY, MODEL).usage == 41


class TestKeyAdministration:
    """Tests for key CRUD."""

    def test_created_at_defaults_to_aware_utc(self):
        created_at = ApiKey(api_key=KEY).created_at
        assert created_at.tzinfo is not None
        assert created_at.utcoffset() == timedelta(0)

    def test_create_and_fetch(self, store):
        created = store.create_key(KEY)

        assert created.api_key == KEY
        assert created.created_at is not None
        assert store.get_key(KEY).api_key == KEY

    def test_list_keys_is_ordered(self, store):
        for key in ["key-c-000000", "key-a-000000", "key-b-000000"]:
            store.create_key(key)
        assert store.list_keys() == ["key-a-000000", "key-b-000000", "key-c-000000"]

    def test_duplicate_key_rejected(self, store):
        store.create_key(KEY)
        with pytest.raises(IntegrityError):
            store.create_key(KEY)

    def test_delete_removes_usage_rows(self, store):
        store.create_key(KEY)
        store.create_key("AIza-test-key-0002")
        store.add_usage(KEY, MODEL)
        store.add_error(KEY, "gemini-2.5-pro")
        store.add_usage("AIza-test-key-0002", MODEL)

        deleted = store.delete_key(KEY)

        assert deleted.api_key == KEY
        assert store.get_key(KEY) is None
        assert store.get_key_usage(KEY) == []
        assert [r.api_key for r in store.get_all_usage()] == ["AIza-test-key-0002"]

    def test_delete_unknown_key(self, store):
        assert store.delete_key("missing-key-000") is None

    def test_check_connection(self, store):
        assert store.check_connection() is True

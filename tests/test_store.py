# ABOUTME: Tests the in-memory record store's copy semantics and atomic primitives.
# ABOUTME: Failing mutators must leave no partial state behind.

from concurrent.futures import ThreadPoolExecutor

import pytest

from src.common.errors import NotFoundError, StoreConflictError
from src.common.schemas import LeaderboardEntry
from src.common.store import LEADERBOARD


def test_reads_return_copies(store):
    store.put(LEADERBOARD, LeaderboardEntry("c1", revenue=10))
    fetched = store.get(LEADERBOARD, "c1")
    fetched.revenue = 999

    assert store.get(LEADERBOARD, "c1").revenue == 10


def test_find_one_and_update_upserts_then_merges(store):
    def bump(entry):
        entry.views += 1

    store.find_one_and_update(LEADERBOARD, lambda e: e.course_id == "c1", bump, upsert=lambda: LeaderboardEntry("c1"))
    store.find_one_and_update(LEADERBOARD, lambda e: e.course_id == "c1", bump, upsert=lambda: LeaderboardEntry("c1"))

    assert store.get(LEADERBOARD, "c1").views == 2
    assert len(store.find(LEADERBOARD)) == 1


def test_find_one_and_update_without_upsert_returns_none(store):
    assert store.find_one_and_update(LEADERBOARD, lambda e: True, lambda e: None) is None


def test_find_one_and_update_is_atomic_under_threads(store):
    def bump(entry):
        entry.views += 1

    def call(_):
        return store.find_one_and_update(
            LEADERBOARD, lambda e: e.course_id == "c1", bump, upsert=lambda: LeaderboardEntry("c1")
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(call, range(200)))

    assert store.get(LEADERBOARD, "c1").views == 200


def test_update_missing_key_raises(store):
    with pytest.raises(NotFoundError):
        store.update(LEADERBOARD, "missing", lambda e: None)


def test_failed_update_leaves_record_untouched(store):
    store.put(LEADERBOARD, LeaderboardEntry("c1", views=5))

    def explode(entry):
        entry.views = 100
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.update(LEADERBOARD, "c1", explode)

    assert store.get(LEADERBOARD, "c1").views == 5


def test_put_many_rejects_duplicate_keys(store):
    with pytest.raises(StoreConflictError):
        store.put_many(LEADERBOARD, [LeaderboardEntry("c1"), LeaderboardEntry("c1")])
    assert store.find(LEADERBOARD) == []


def test_replace_all_drops_previous_records(store):
    store.put_many(LEADERBOARD, [LeaderboardEntry("c1"), LeaderboardEntry("c2")])
    store.replace_all(LEADERBOARD, [LeaderboardEntry("c3")])

    assert [e.course_id for e in store.find(LEADERBOARD)] == ["c3"]

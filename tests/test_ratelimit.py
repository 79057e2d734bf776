"""Tests for ratelimit module."""

from scene_rehearsal.constants import FREE_CHAR_LIMIT
from scene_rehearsal.ratelimit import QuotaService


class Clock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def test_allows_up_to_limit():
    quota = QuotaService(limit=3, window_seconds=100, clock=Clock(10.0))
    remaining = [quota.check_and_increment("a").remaining for _ in range(3)]
    assert remaining == [2, 1, 0]
    decision = quota.check_and_increment("a")
    assert not decision.allowed
    assert decision.remaining == 0
    assert decision.reset_time == 110.0


def test_window_slides():
    """Requests older than the window stop counting."""
    clock = Clock(0.0)
    quota = QuotaService(limit=1, window_seconds=100, clock=clock)
    assert quota.check_and_increment("a").allowed
    clock.now = 50.0
    assert not quota.check_and_increment("a").allowed
    clock.now = 101.0
    assert quota.check_and_increment("a").allowed


def test_clients_are_independent():
    quota = QuotaService(limit=1, clock=Clock(0.0))
    assert quota.check_and_increment("a").allowed
    assert quota.check_and_increment("b").allowed
    assert not quota.check_and_increment("a").allowed


def test_status_free_tier():
    quota = QuotaService(limit=5, window_seconds=100, clock=Clock(0.0))
    quota.check_and_increment("a")
    status = quota.get_status("a")
    assert status.tier == "free"
    assert status.remaining == 4
    assert status.limit == 5
    assert status.reset_time == 100.0
    assert status.character_limit == FREE_CHAR_LIMIT


def test_status_does_not_count():
    quota = QuotaService(limit=2, clock=Clock(0.0))
    quota.get_status("a")
    quota.get_status("a")
    assert quota.get_status("a").remaining == 2


def test_status_unlimited_with_api_key():
    status = QuotaService(limit=1).get_status("a", has_api_key=True)
    assert status.tier == "unlimited"
    assert status.remaining == float("inf")
    assert status.character_limit is None


def test_cleanup_drops_idle_clients():
    clock = Clock(0.0)
    quota = QuotaService(limit=5, window_seconds=100, clock=clock)
    quota.check_and_increment("a")
    clock.now = 90.0
    quota.check_and_increment("b")
    clock.now = 150.0
    assert quota.cleanup() == 1
    assert quota.get_status("b").remaining == 4


def test_ledger_persists_in_store(store):
    """Quota survives a new service instance on the same store."""
    clock = Clock(0.0)
    QuotaService(limit=2, store=store, clock=clock).check_and_increment("a")
    restored = QuotaService(limit=2, store=store, clock=clock)
    assert restored.get_status("a").remaining == 1


def test_idle_clients_dropped_when_ledger_loaded(store):
    clock = Clock(0.0)
    QuotaService(limit=2, window_seconds=100, store=store, clock=clock).check_and_increment("old")
    clock.now = 500.0
    QuotaService(limit=2, window_seconds=100, store=store, clock=clock)
    assert store.load("quota") == {}

import time

import fakeredis
import redis

from llc_backend import config
from llc_backend.payments import DeferredKind
from llc_backend.payments import ledger as ledger_mod
from llc_backend.payments.ledger import DeferredSubscriptionLedger


def _ledger(ttl=3600, pending_ttl=60):
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer())
    return DeferredSubscriptionLedger(client, ttl_seconds=ttl, pending_ttl_seconds=pending_ttl)


def test_key_format():
    assert DeferredSubscriptionLedger.key("cs_1", DeferredKind.MAIL) == "deferred-subscription:cs_1:mail"


def test_acquire_is_exclusive_with_short_lease():
    ledger = _ledger(ttl=3600, pending_ttl=60)
    key = ledger.key("cs_1", DeferredKind.RA)

    assert ledger.try_acquire(key, "worker-a") is True
    assert ledger.try_acquire(key, "worker-b") is False
    assert ledger.status(key) == "pending:worker-a"
    assert ledger.is_pending(key) is True
    assert 0 < ledger.client.ttl(key) <= 60


def test_completed_key_keeps_long_ttl():
    ledger = _ledger(ttl=3600, pending_ttl=60)
    key = ledger.key("cs_1", DeferredKind.RA)
    ledger.try_acquire(key, "worker-a")

    ledger.mark_completed(key, "sub_1")
    assert ledger.status(key) == "created:sub_1"
    assert ledger.is_completed(key) is True
    assert 60 < ledger.client.ttl(key) <= 3600
    assert ledger.try_acquire(key, "worker-b") is False


def test_release_only_by_holder():
    ledger = _ledger()
    key = ledger.key("cs_1", DeferredKind.MAIL)
    ledger.try_acquire(key, "worker-a")

    assert ledger.release(key, "worker-b") is False
    assert ledger.status(key) == "pending:worker-a"

    assert ledger.release(key, "worker-a") is True
    assert ledger.status(key) is None
    assert ledger.try_acquire(key, "worker-b") is True


def test_release_never_drops_completed_key():
    ledger = _ledger()
    key = ledger.key("cs_1", DeferredKind.MAIL)
    ledger.try_acquire(key, "worker-a")
    ledger.mark_completed(key, "sub_1")

    assert ledger.release(key, "worker-a") is False
    assert ledger.is_completed(key) is True


def test_expired_lease_can_be_taken_over():
    ledger = _ledger()
    key = ledger.key("cs_1", DeferredKind.MAIL)
    assert ledger.try_acquire(key, "worker-a") is True

    # Worker A tué: son bail expire
    ledger.client.pexpire(key, 20)
    time.sleep(0.1)

    assert ledger.try_acquire(key, "worker-b") is True
    # Le réveil tardif de A ne libère pas le verrou de B
    assert ledger.release(key, "worker-a") is False
    assert ledger.status(key) == "pending:worker-b"


def test_default_ttls_from_config(monkeypatch):
    monkeypatch.setattr(config, "DEDUP_TTL_SECONDS", 1000)
    monkeypatch.setattr(config, "DEDUP_PENDING_TTL_SECONDS", 30)
    ledger = DeferredSubscriptionLedger(fakeredis.FakeRedis(server=fakeredis.FakeServer()))
    assert ledger.ttl_seconds == 1000
    assert ledger.pending_ttl_seconds == 30


def test_pending_lease_shorter_than_redelivery_window():
    assert config.DEDUP_PENDING_TTL_SECONDS < 60 * 60
    assert config.DEDUP_PENDING_TTL_SECONDS > config.STRIPE_TIMEOUT_SECONDS


def test_build_ledger_disabled(monkeypatch):
    monkeypatch.setenv("DISABLE_DEDUP_LEDGER", "1")
    assert ledger_mod.build_ledger() is None


def test_build_ledger_fake_redis(monkeypatch):
    monkeypatch.delenv("DISABLE_DEDUP_LEDGER", raising=False)
    monkeypatch.setenv("USE_FAKE_REDIS_FOR_TESTS", "1")
    ledger = ledger_mod.build_ledger()
    assert isinstance(ledger.client, fakeredis.FakeRedis)
    assert ledger.ttl_seconds == config.DEDUP_TTL_SECONDS


def test_build_ledger_uses_configured_url(monkeypatch):
    monkeypatch.delenv("DISABLE_DEDUP_LEDGER", raising=False)
    monkeypatch.setenv("USE_FAKE_REDIS_FOR_TESTS", "0")
    monkeypatch.setattr(config, "DEDUP_REDIS_URL", "redis://cache.internal:6380/2")
    ledger = ledger_mod.build_ledger()

    assert isinstance(ledger.client, redis.Redis)
    kwargs = ledger.client.connection_pool.connection_kwargs
    assert kwargs["host"] == "cache.internal"
    assert kwargs["port"] == 6380
    assert kwargs["db"] == 2

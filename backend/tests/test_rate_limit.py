import threading
from datetime import timedelta

import pytest

from app.errors import RateLimitError
from app.services.rate_limit import InMemoryWindowStore, RateLimiter, rate_limit_key

from conftest import DOCTOR, PASSWORD, make_user


def make_limiter(max_requests=5, minutes=15):
    return RateLimiter(InMemoryWindowStore(), "test", max_requests,
                       timedelta(minutes=minutes), "Slow down")


def test_sixth_attempt_in_window_is_denied(frozen_clock):
    limiter = make_limiter()

    results = []
    for _ in range(6):
        results.append(limiter.try_acquire("1.2.3.4"))
        frozen_clock.advance(minutes=1)

    assert results == [True] * 5 + [False]


def test_window_slides(frozen_clock):
    limiter = make_limiter()
    for _ in range(5):
        assert limiter.try_acquire("1.2.3.4")
    assert not limiter.try_acquire("1.2.3.4")

    frozen_clock.advance(minutes=16)
    assert limiter.try_acquire("1.2.3.4")


def test_denied_attempts_are_not_recorded(frozen_clock):
    limiter = make_limiter(max_requests=2, minutes=10)
    limiter.try_acquire("k")
    frozen_clock.advance(minutes=5)
    limiter.try_acquire("k")
    for _ in range(10):
        assert not limiter.try_acquire("k")

    # Only the first attempt has aged out
    frozen_clock.advance(minutes=5, seconds=1)
    assert limiter.try_acquire("k")
    assert not limiter.try_acquire("k")


def test_keys_are_independent(frozen_clock):
    limiter = make_limiter(max_requests=1)

    assert limiter.try_acquire(rate_limit_key("1.2.3.4", "user-1"))
    assert limiter.try_acquire(rate_limit_key("1.2.3.4", "user-2"))
    assert limiter.try_acquire(rate_limit_key("5.6.7.8"))
    assert not limiter.try_acquire(rate_limit_key("1.2.3.4", "user-1"))


def test_check_raises(frozen_clock):
    limiter = make_limiter(max_requests=1)
    limiter.check("k")

    with pytest.raises(RateLimitError) as exc:
        limiter.check("k")
    assert exc.value.status_code == 429
    assert exc.value.message == "Slow down"


def test_concurrent_callers_never_exceed_the_limit():
    limiter = make_limiter(max_requests=5)
    results = []
    barrier = threading.Barrier(20)

    def attempt():
        barrier.wait()
        results.append(limiter.try_acquire("shared"))

    threads = [threading.Thread(target=attempt) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 5


def test_idle_windows_are_swept():
    store = InMemoryWindowStore(sweep_every=10)
    for i in range(1000):
        store.try_acquire(f"origin-{i}", now=0.0, window_seconds=900, limit=5)
    assert len(store) == 1000

    day = 24 * 60 * 60.0
    for i in range(10):
        store.try_acquire(f"late-{i}", now=day, window_seconds=900, limit=5)

    assert len(store) == 10
    assert len(store._locks) == 64


def test_sweep_keeps_live_windows():
    store = InMemoryWindowStore()
    store.try_acquire("old", now=0.0, window_seconds=60, limit=5)
    store.try_acquire("recent", now=50.0, window_seconds=60, limit=5)
    store.try_acquire("long", now=0.0, window_seconds=3600, limit=5)

    assert store.sweep(now=100.0) == 1
    assert len(store) == 2
    assert not store.try_acquire("recent", now=100.0, window_seconds=60, limit=1)


def test_sixth_login_from_one_origin_is_throttled(limited_client, db, frozen_clock):
    make_user(db, DOCTOR)

    statuses = []
    for _ in range(6):
        r = limited_client.post("/api/auth/login", json={"email": "d@x.com", "password": PASSWORD})
        statuses.append(r.status_code)
        frozen_clock.advance(seconds=30)

    assert statuses == [200] * 5 + [429]
    assert limited_client.post(
        "/api/auth/login", json={"email": "d@x.com", "password": PASSWORD}
    ).json()["success"] is False

    frozen_clock.advance(minutes=16)
    r = limited_client.post("/api/auth/login", json={"email": "d@x.com", "password": PASSWORD})
    assert r.status_code == 200

import json

from salonbook.cache import Cache, CacheCoordinator, CacheFamily, CacheStatus, CacheTTL, escape_glob

from .conftest import BrokenRedis


def test_disabled_cache_is_always_a_miss():
    cache = Cache(None)

    assert cache.get("appointment:org_1:id:1").status is CacheStatus.MISS
    assert cache.set("appointment:org_1:id:1", {"id": 1}) is False
    assert cache.invalidate_pattern("appointment:org_1:*").value == 0
    assert cache.health_check() == {"status": "disabled", "connected": False}


def test_set_and_get(fake_redis):
    cache = Cache(fake_redis)

    assert cache.set("shift:org_1:id:5", {"id": 5}, CacheTTL.LIST)
    lookup = cache.get("shift:org_1:id:5")

    assert lookup.hit
    assert lookup.value == {"id": 5}
    assert fake_redis.ttls["shift:org_1:id:5"] == 1800


def test_cache_errors_are_reported_not_raised():
    cache = Cache(BrokenRedis())

    lookup = cache.get("appointment:org_1:id:1")
    assert lookup.status is CacheStatus.ERROR
    assert lookup.error is not None
    assert cache.set("appointment:org_1:id:1", {"id": 1}) is False
    assert cache.delete("appointment:org_1:id:1") is False
    assert not cache.invalidate_pattern("appointment:org_1:*").ok
    assert cache.health_check()["connected"] is False
    assert cache.get_stats()["available"] is False


def test_get_or_compute_survives_a_broken_cache():
    coordinator = CacheCoordinator(Cache(BrokenRedis()))
    calls = []

    def compute():
        calls.append(1)
        return {"value": 42}

    assert coordinator.get_or_compute("member:org_1:x", CacheTTL.DETAIL, compute) == {"value": 42}
    assert coordinator.get_or_compute("member:org_1:x", CacheTTL.DETAIL, compute) == {"value": 42}
    assert len(calls) == 2


def test_get_or_compute_serves_hits(coordinator):
    calls = []

    def compute():
        calls.append(1)
        return [1, 2, 3]

    first = coordinator.get_or_compute("shift:org_1:list", CacheTTL.LIST, compute, decode=tuple)
    second = coordinator.get_or_compute("shift:org_1:list", CacheTTL.LIST, compute, decode=tuple)

    assert first == [1, 2, 3]
    assert second == (1, 2, 3)
    assert len(calls) == 1


def test_undecodable_entries_are_recomputed(coordinator, fake_redis):
    fake_redis.store["shift:org_1:id:1"] = json.dumps({"unexpected": True})

    def decode(value):
        return value["id"]

    result = coordinator.get_or_compute(
        "shift:org_1:id:1", CacheTTL.DETAIL, lambda: {"id": 1}, decode=decode
    )

    assert result == {"id": 1}
    assert json.loads(fake_redis.store["shift:org_1:id:1"]) == {"id": 1}


def test_invalidate_is_scoped_to_tenant_and_family(coordinator, fake_redis):
    for key in (
        "appointment:org_1:id:1",
        "appointment:org_1:availability:1:2024-06-03:60:30",
        "appointment:org_10:id:1",
        "shift:org_1:id:1",
        "member:org_1:working-hours:1",
    ):
        fake_redis.store[key] = "1"

    results = coordinator.invalidate("org_1", CacheFamily.APPOINTMENT, CacheFamily.MEMBER)

    assert results["appointment"].value == 2
    assert results["member"].value == 1
    assert sorted(fake_redis.store) == ["appointment:org_10:id:1", "shift:org_1:id:1"]


def test_key_layout():
    assert CacheCoordinator.key(CacheFamily.SHIFT, "org_1", "week", "2024-06-03", "all") == (
        "shift:org_1:week:2024-06-03:all"
    )


def test_escape_glob():
    assert escape_glob("org*1") == "org\\*1"
    assert escape_glob("org[a]?") == "org\\[a\\]\\?"
    assert escape_glob("org_1") == "org_1"


def test_stats_and_close(fake_redis):
    cache = Cache(fake_redis)

    stats = cache.get_stats()
    cache.close()

    assert stats["hit_rate"] == 75.0
    assert fake_redis.closed
    assert not cache.enabled


def test_ttl_tiers_follow_volatility():
    tiers = (CacheTTL.DETAIL, CacheTTL.LIST, CacheTTL.AVAILABILITY, CacheTTL.SEARCH)

    assert [int(t) for t in tiers] == [3600, 1800, 900, 300]

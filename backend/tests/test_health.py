from __future__ import annotations

from types import SimpleNamespace

from workflowpro.database import Database, check_database_health

from tests.conftest import fast_retry_policy

_SETTINGS = SimpleNamespace(
    HEALTH_CACHE_SECONDS=30,
    HEALTH_ERROR_CACHE_SECONDS=5,
    HEALTH_SLOW_RESPONSE_MS=5000,
)


async def test_empty_directory_is_degraded(empty_db: Database) -> None:
    health = await check_database_health(empty_db, settings=_SETTINGS)

    assert health.status == "degraded"
    assert health.errors == ["No users found in database"]
    assert health.response_time_ms >= 0


async def test_results_are_cached_until_expiry(db: Database) -> None:
    first = await check_database_health(db, settings=_SETTINGS)
    second = await check_database_health(db, settings=_SETTINGS)
    assert first.status == "healthy"
    assert second is first

    fresh = await check_database_health(db, use_cache=False, settings=_SETTINGS)
    assert fresh is not first


async def test_slow_database_is_degraded(db: Database) -> None:
    impatient = SimpleNamespace(HEALTH_CACHE_SECONDS=30, HEALTH_ERROR_CACHE_SECONDS=5, HEALTH_SLOW_RESPONSE_MS=-1)
    health = await check_database_health(db, use_cache=False, settings=impatient)
    assert health.status == "degraded"
    assert health.errors[0].startswith("Slow response time")


class _DownPool:
    async def acquire(self):
        raise ConnectionRefusedError("database is down")

    async def release(self, conn) -> None:
        return None

    def stats(self) -> dict[str, int]:
        return {"size": 0, "checked_out": 0, "idle": 0, "overflow": 0}


async def test_unreachable_database_is_unhealthy() -> None:
    db = Database(_DownPool(), fast_retry_policy())

    health = await check_database_health(db, settings=_SETTINGS)

    assert health.status == "unhealthy"
    assert health.response_time_ms == -1.0
    assert health.errors == ["ConnectionRefusedError"]
    assert db._health_cache is health

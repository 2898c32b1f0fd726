from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from swertres.services.rate_limit import (
    DEFAULT_POLICIES,
    InMemoryRateLimitStore,
    RateLimitPolicy,
    SqlRateLimitStore,
    policies_from_settings,
)


class ManualClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


def test_default_policies_match_operations():
    assert (DEFAULT_POLICIES["login"].limit, DEFAULT_POLICIES["login"].window_seconds) == (5, 30)
    assert (DEFAULT_POLICIES["claim"].limit, DEFAULT_POLICIES["claim"].window_seconds) == (10, 60)
    assert (DEFAULT_POLICIES["admin"].limit, DEFAULT_POLICIES["admin"].window_seconds) == (50, 300)


def test_policies_from_settings_overrides_defaults():
    policies = policies_from_settings({"claim": {"limit": 3, "window_seconds": 10}})

    assert policies["claim"] == RateLimitPolicy("claim", limit=3, window_seconds=10)
    assert policies["login"] == DEFAULT_POLICIES["login"]


def test_policy_validation():
    with pytest.raises(ValueError):
        RateLimitPolicy("claim", limit=0, window_seconds=10)


@pytest.mark.asyncio
async def test_in_memory_store_blocks_after_limit_and_resets_with_window():
    clock = ManualClock(1_000.0)
    store = InMemoryRateLimitStore(clock=clock)

    decisions = [await store.hit("10.0.0.1", "login") for _ in range(6)]

    assert [decision.allowed for decision in decisions] == [True] * 5 + [False]
    assert decisions[-1].count == 6
    assert decisions[-1].retry_after_seconds == 20

    clock.now = 1_020.0
    fresh = await store.hit("10.0.0.1", "login")
    assert fresh.allowed and fresh.count == 1


@pytest.mark.asyncio
async def test_in_memory_store_isolates_identifiers_and_scopes():
    store = InMemoryRateLimitStore({"claim": RateLimitPolicy("claim", 1, 60), "admin": RateLimitPolicy("admin", 1, 60)})

    assert (await store.hit("agent-1", "claim")).allowed
    assert not (await store.hit("agent-1", "claim")).allowed
    assert (await store.hit("agent-2", "claim")).allowed
    assert (await store.hit("agent-1", "admin")).allowed

    await store.reset("agent-1", "claim")
    assert (await store.hit("agent-1", "claim")).allowed


@pytest.mark.asyncio
async def test_unknown_scope_is_an_error():
    with pytest.raises(KeyError):
        await InMemoryRateLimitStore().hit("agent-1", "nope")


@pytest.mark.asyncio
async def test_sql_store_counts_atomically(engine: AsyncEngine):
    clock = ManualClock(2_000.0)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    store = SqlRateLimitStore(factory, {"claim": RateLimitPolicy("claim", limit=2, window_seconds=60)}, clock=clock)

    counts = [(await store.hit("agent-1", "claim")).count for _ in range(3)]
    blocked = await store.hit("agent-1", "claim")

    assert counts == [1, 2, 3]
    assert not blocked.allowed
    assert blocked.retry_after_seconds == 40

    clock.now = 2_041.0
    assert (await store.hit("agent-1", "claim")).count == 1

    await store.reset("agent-1", "claim")
    assert (await store.hit("agent-1", "claim")).count == 1


@pytest.mark.asyncio
async def test_sql_reset_treats_identifier_literally(engine: AsyncEngine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    store = SqlRateLimitStore(factory, {"claim": RateLimitPolicy("claim", limit=5, window_seconds=60)}, clock=lambda: 2_000.0)
    await store.hit("agent_1", "claim")
    await store.hit("agentX1", "claim")
    await store.hit("agent%", "claim")
    await store.hit("agent-9", "claim")

    await store.reset("agent_1", "claim")
    await store.reset("agent%", "claim")

    assert (await store.hit("agent_1", "claim")).count == 1
    assert (await store.hit("agentX1", "claim")).count == 2
    assert (await store.hit("agent-9", "claim")).count == 2


def test_custom_policies_keep_default_scopes():
    store = InMemoryRateLimitStore({"claim": RateLimitPolicy("claim", limit=1, window_seconds=60)})

    assert store.policy("login") == DEFAULT_POLICIES["login"]
    assert store.policy("claim").limit == 1

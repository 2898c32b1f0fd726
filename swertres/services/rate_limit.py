"""Fixed-window rate limiting for sensitive operations.

Counters are keyed by ``scope:identifier:window`` where ``window`` is the index
of the fixed window containing the hit. Windows that have ended are purged the
next time the store is touched.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping, Protocol

from sqlalchemy import delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.models import RateLimitRow

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RateLimitPolicy:
    scope: str
    limit: int
    window_seconds: int

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("limit must be at least 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")


@dataclass(slots=True, frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    retry_after_seconds: int = 0


DEFAULT_POLICIES: dict[str, RateLimitPolicy] = {
    "login": RateLimitPolicy("login", limit=5, window_seconds=30),
    "claim": RateLimitPolicy("claim", limit=10, window_seconds=60),
    "admin": RateLimitPolicy("admin", limit=50, window_seconds=300),
}


class RateLimitStore(Protocol):
    async def hit(self, identifier: str, scope: str) -> RateLimitDecision:
        ...

    async def reset(self, identifier: str, scope: str) -> None:
        ...


def _window_bounds(now: float, window_seconds: int) -> tuple[int, float]:
    index = int(now // window_seconds)
    return index, float((index + 1) * window_seconds)


def _decide(count: int, policy: RateLimitPolicy, now: float, window_end: float) -> RateLimitDecision:
    if count <= policy.limit:
        return RateLimitDecision(allowed=True, count=count)
    retry_after = max(1, int(math.ceil(window_end - now)))
    return RateLimitDecision(allowed=False, count=count, retry_after_seconds=retry_after)


def _bucket_key(scope: str, identifier: str, window: int) -> str:
    return f"{scope}:{identifier.strip() or '-'}:{window}"


class _PolicyLookup:
    def __init__(self, policies: Mapping[str, RateLimitPolicy] | None) -> None:
        self._policies = {**DEFAULT_POLICIES, **(policies or {})}

    def policy(self, scope: str) -> RateLimitPolicy:
        try:
            return self._policies[scope]
        except KeyError:
            raise KeyError(f"No rate limit policy configured for scope {scope!r}") from None


class InMemoryRateLimitStore(_PolicyLookup):
    """Process-local store; counts are lost on restart."""

    def __init__(
        self,
        policies: Mapping[str, RateLimitPolicy] | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(policies)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._counters: dict[str, tuple[int, float]] = {}

    async def hit(self, identifier: str, scope: str) -> RateLimitDecision:
        policy = self.policy(scope)
        now = float(self._clock())
        window, window_end = _window_bounds(now, policy.window_seconds)
        key = _bucket_key(scope, identifier, window)
        async with self._lock:
            self._purge(now)
            count, _ = self._counters.get(key, (0, window_end))
            count += 1
            self._counters[key] = (count, window_end)
        decision = _decide(count, policy, now, window_end)
        if not decision.allowed:
            logger.info("Rate limit exceeded for %s in scope %s", identifier, scope)
        return decision

    async def reset(self, identifier: str, scope: str) -> None:
        prefix = f"{scope}:{identifier.strip() or '-'}:"
        async with self._lock:
            for key in [key for key in self._counters if key.startswith(prefix)]:
                del self._counters[key]

    def _purge(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._counters.items() if expires_at <= now]
        for key in expired:
            del self._counters[key]


class SqlRateLimitStore(_PolicyLookup):
    """Counters persisted in the ``rate_limits`` table.

    The increment is a single ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``
    so concurrent hits on the same key never lose an update.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policies: Mapping[str, RateLimitPolicy] | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(policies)
        self._session_factory = session_factory
        self._clock = clock

    async def hit(self, identifier: str, scope: str) -> RateLimitDecision:
        policy = self.policy(scope)
        now = float(self._clock())
        window, window_end = _window_bounds(now, policy.window_seconds)
        key = _bucket_key(scope, identifier, window)
        expires_at = datetime.fromtimestamp(window_end, tz=timezone.utc)
        checked_at = datetime.fromtimestamp(now, tz=timezone.utc)

        async with self._session_factory() as session:
            async with session.begin():
                insert = self._insert_for(session)
                statement = insert(RateLimitRow).values(key=key, count=1, expires_at=expires_at)
                statement = statement.on_conflict_do_update(
                    index_elements=[RateLimitRow.key],
                    set_={"count": RateLimitRow.count + 1},
                ).returning(RateLimitRow.count)
                result = await session.execute(statement)
                count = int(result.scalar_one())
                await session.execute(delete(RateLimitRow).where(RateLimitRow.expires_at < checked_at))

        decision = _decide(count, policy, now, window_end)
        if not decision.allowed:
            logger.info("Rate limit exceeded for %s in scope %s", identifier, scope)
        return decision

    async def reset(self, identifier: str, scope: str) -> None:
        prefix = f"{scope}:{identifier.strip() or '-'}:"
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(RateLimitRow).where(RateLimitRow.key.startswith(prefix, autoescape=True))
                )

    @staticmethod
    def _insert_for(session: AsyncSession):
        dialect = session.bind.dialect.name if session.bind is not None else "postgresql"
        if dialect == "sqlite":
            return sqlite.insert
        return postgresql.insert


def policies_from_settings(raw: Mapping[str, Mapping[str, int]]) -> dict[str, RateLimitPolicy]:
    policies = dict(DEFAULT_POLICIES)
    for scope, values in raw.items():
        policies[scope] = RateLimitPolicy(
            scope,
            limit=int(values["limit"]),
            window_seconds=int(values["window_seconds"]),
        )
    return policies

"""
Fixed-window admission control keyed by caller identity and auth tier.

Counters live behind a RateLimitStore so the in-process store used by a
single worker can be swapped for an externally atomic one when the API runs
as several processes.
"""
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Protocol

from loguru import logger

from agents.scoping_agent.exceptions import AdmissionDenied
from config.settings import get_settings


@dataclass(frozen=True)
class RateLimitRecord:
    key: str
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitTier:
    requests: int
    window_seconds: float


class RateLimitStore(Protocol):
    def get(self, key: str) -> Optional[RateLimitRecord]:
        ...

    def set_if_absent_or_expired(self, key: str, now: float, window_seconds: float) -> RateLimitRecord:
        ...

    def increment(self, key: str) -> RateLimitRecord:
        ...

    def sweep_expired(self, now: float) -> int:
        ...

    def __len__(self) -> int:
        ...


class InMemoryRateLimitStore:
    """Process-local counters. Lost on restart."""

    def __init__(self):
        self._records: Dict[str, RateLimitRecord] = {}

    def get(self, key: str) -> Optional[RateLimitRecord]:
        return self._records.get(key)

    def set_if_absent_or_expired(self, key: str, now: float, window_seconds: float) -> RateLimitRecord:
        record = self._records.get(key)
        if record is None or now > record.reset_at:
            record = RateLimitRecord(key=key, count=0, reset_at=now + window_seconds)
            self._records[key] = record
        return record

    def increment(self, key: str) -> RateLimitRecord:
        record = replace(self._records[key], count=self._records[key].count + 1)
        self._records[key] = record
        return record

    def sweep_expired(self, now: float) -> int:
        expired = [key for key, record in self._records.items() if now > record.reset_at]
        for key in expired:
            del self._records[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)


class RateLimiter:
    # Lazy sweep instead of a timer so idle workers can shut down.
    SWEEP_MIN_KEYS = 50
    SWEEP_EVERY = 100

    def __init__(
            self,
            store: Optional[RateLimitStore] = None,
            unauthenticated: Optional[RateLimitTier] = None,
            authenticated: Optional[RateLimitTier] = None,
            clock: Callable[[], float] = time.time
    ):
        settings = get_settings()
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.unauthenticated = unauthenticated or RateLimitTier(
            requests=settings.RATE_LIMIT_UNAUTHENTICATED,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS
        )
        self.authenticated = authenticated or RateLimitTier(
            requests=settings.RATE_LIMIT_AUTHENTICATED,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS
        )
        self.clock = clock

    @staticmethod
    def make_key(identity: str, is_authenticated: bool) -> str:
        return f"{identity}:{'auth' if is_authenticated else 'unauth'}"

    def check(self, identity: str, is_authenticated: bool = False) -> RateLimitDecision:
        """
        Admit or deny one request for an identity.

        Args:
            identity: Caller identity, usually the client IP
            is_authenticated: Selects the authenticated tier and its separate counter

        Returns:
            RateLimitDecision with the remaining allowance and window reset time (epoch seconds)
        """
        now = self.clock()
        tier = self.authenticated if is_authenticated else self.unauthenticated
        key = self.make_key(identity, is_authenticated)

        record = self.store.set_if_absent_or_expired(key, now, tier.window_seconds)

        if len(self.store) > self.SWEEP_MIN_KEYS and record.count % self.SWEEP_EVERY == 0:
            swept = self.store.sweep_expired(now)
            logger.debug(f"Rate limiter swept {swept} expired records")

        if record.count >= tier.requests:
            logger.info(f"Rate limit exceeded for {key}")
            return RateLimitDecision(allowed=False, remaining=0, reset_at=record.reset_at)

        record = self.store.increment(key)
        return RateLimitDecision(
            allowed=True,
            remaining=tier.requests - record.count,
            reset_at=record.reset_at
        )

    def enforce(self, identity: str, is_authenticated: bool = False) -> RateLimitDecision:
        """Like check(), but raises AdmissionDenied when the request is not allowed."""
        decision = self.check(identity, is_authenticated)
        if not decision.allowed:
            raise AdmissionDenied(decision.reset_at)
        return decision


rate_limiter = RateLimiter()

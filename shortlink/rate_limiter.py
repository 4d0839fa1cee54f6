"""Per-identity token bucket rate limiting.

Bucket State Machine
====================
::
                  consume (tokens >= cost)
                 ┌──────────────┐
                 ▼              │
    ┌──────────────────┐   ┌────┴─────────────┐
    │   has-capacity   │──►│    exhausted     │
    └──────────────────┘   └──────────────────┘
         ▲  consume (tokens < cost)    │
         └──────── refill tick ────────┘

Refill is lazy: on every ``try_consume`` the bucket is credited with
``floor(elapsed / interval) * refill_tokens`` (capped at capacity) and
``last_refill`` advances by whole intervals only. Idle buckets cost nothing.

How to Use
===========
**Step 1 — Build one limiter per identity class**::
    limiters = RateLimiters(
        anonymous=RateLimiter(RateLimitPolicy(20, 20, 60.0)),
        authenticated=RateLimiter(RateLimitPolicy(100, 100, 60.0)),
    )

**Step 2 — Gate a request**::
    try:
        limiters.check(identity)
    except RateLimitExceeded as exc:
        ...  # exc.retry_after seconds until the next refill

Key Behaviours
===============
- Each bucket has its own lock, so two requests from one identity can never
  both spend the last token.
- The table lock is only taken to insert a missing bucket; contention on one
  identity never stalls another.
- The table never holds more than ``max_buckets`` buckets. A full table first
  drops buckets that have refilled to capacity, then the oldest buckets in
  insertion order, leaving a tenth of the table free for new identities. An
  evicted identity starts over with a full bucket.
- Anonymous and authenticated tables are fully independent.
"""

import itertools
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from prometheus_client import Counter, Gauge

from shortlink.enums import IdentityKind
from shortlink.exceptions import RateLimitExceeded

__all__ = ["Identity", "RateLimitPolicy", "TokenBucket", "RateLimiter", "RateLimiters"]

RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "shortlink_rate_limit_decisions_total",
    "Token bucket decisions",
    ["identity_kind", "admitted"],
)
RATE_LIMIT_BUCKETS = Gauge(
    "shortlink_rate_limit_buckets",
    "Live token buckets per identity class",
    ["identity_kind"],
)
RATE_LIMIT_EVICTIONS_TOTAL = Counter(
    "shortlink_rate_limit_evictions_total",
    "Buckets with unspent refill evicted to keep the table bounded",
    ["identity_kind"],
)


@dataclass(frozen=True)
class Identity:
    kind: IdentityKind
    key: str


@dataclass(frozen=True)
class RateLimitPolicy:
    capacity: int
    refill_tokens: int
    refill_interval_seconds: float

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        if self.refill_tokens < 1:
            raise ValueError("refill_tokens must be at least 1")
        if self.refill_interval_seconds <= 0:
            raise ValueError("refill_interval_seconds must be positive")


@dataclass
class TokenBucket:
    capacity: int
    tokens: int
    last_refill: float
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def refill(self, now: float, policy: RateLimitPolicy) -> None:
        """Credit whole elapsed intervals. Caller holds ``lock``."""
        elapsed = now - self.last_refill
        if elapsed < policy.refill_interval_seconds:
            return
        intervals = int(elapsed // policy.refill_interval_seconds)
        self.tokens = min(self.capacity, self.tokens + intervals * policy.refill_tokens)
        self.last_refill += intervals * policy.refill_interval_seconds


class RateLimiter:
    """One bucket table for one identity class."""

    def __init__(
        self,
        policy: RateLimitPolicy,
        clock: Callable[[], float] = time.monotonic,
        max_buckets: int = 100_000,
        kind: IdentityKind = IdentityKind.ANONYMOUS,
    ):
        if max_buckets < 1:
            raise ValueError("max_buckets must be at least 1")
        self.policy = policy
        self.kind = kind
        self._clock = clock
        self._max_buckets = max_buckets
        self._headroom = max(1, max_buckets // 10)
        self._buckets: dict[str, TokenBucket] = {}
        self._table_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._buckets)

    def _bucket(self, identity: str) -> TokenBucket:
        bucket = self._buckets.get(identity)
        if bucket is not None:
            return bucket

        with self._table_lock:
            bucket = self._buckets.get(identity)
            if bucket is None:
                if len(self._buckets) >= self._max_buckets:
                    self._compact()
                bucket = TokenBucket(
                    capacity=self.policy.capacity,
                    tokens=self.policy.capacity,
                    last_refill=self._clock(),
                )
                self._buckets[identity] = bucket
                RATE_LIMIT_BUCKETS.labels(identity_kind=self.kind).set(len(self._buckets))
            return bucket

    def _compact(self) -> None:
        """Make room for ``_headroom`` inserts. Caller holds ``_table_lock``.

        Full buckets go first; if that is not enough, the oldest buckets are
        evicted in insertion order.
        """
        self._prune_full(self._clock())
        target = self._max_buckets - self._headroom
        excess = len(self._buckets) - target
        if excess > 0:
            for identity in list(itertools.islice(self._buckets, excess)):
                del self._buckets[identity]
            RATE_LIMIT_EVICTIONS_TOTAL.labels(identity_kind=self.kind).inc(excess)

    def _prune_full(self, now: float) -> int:
        removable = []
        for identity, bucket in self._buckets.items():
            with bucket.lock:
                bucket.refill(now, self.policy)
                if bucket.tokens >= bucket.capacity:
                    removable.append(identity)
        for identity in removable:
            del self._buckets[identity]
        return len(removable)

    def try_consume(self, identity: str, cost: int = 1) -> bool:
        """Spend ``cost`` tokens from ``identity``'s bucket if it can cover them."""
        if cost < 1:
            raise ValueError("cost must be at least 1")

        bucket = self._bucket(identity)
        with bucket.lock:
            bucket.refill(self._clock(), self.policy)
            admitted = bucket.tokens >= cost
            if admitted:
                bucket.tokens -= cost

        RATE_LIMIT_DECISIONS_TOTAL.labels(identity_kind=self.kind, admitted=str(admitted).lower()).inc()
        return admitted

    def retry_after(self, identity: str) -> float:
        """Seconds until the next refill tick, or 0 if tokens are available."""
        bucket = self._buckets.get(identity)
        if bucket is None:
            return 0.0
        with bucket.lock:
            now = self._clock()
            bucket.refill(now, self.policy)
            if bucket.tokens > 0:
                return 0.0
            return max(0.0, bucket.last_refill + self.policy.refill_interval_seconds - now)

    def prune(self) -> int:
        """Drop buckets that have refilled to capacity; returns how many."""
        with self._table_lock:
            removed = self._prune_full(self._clock())
            RATE_LIMIT_BUCKETS.labels(identity_kind=self.kind).set(len(self._buckets))
        return removed


@dataclass
class RateLimiters:
    anonymous: RateLimiter
    authenticated: RateLimiter

    def for_identity(self, identity: Identity) -> RateLimiter:
        if identity.kind is IdentityKind.AUTHENTICATED:
            return self.authenticated
        return self.anonymous

    def check(self, identity: Identity, cost: int = 1) -> None:
        """Spend one request's tokens or raise ``RateLimitExceeded``."""
        limiter = self.for_identity(identity)
        if not limiter.try_consume(identity.key, cost):
            raise RateLimitExceeded(identity.key, limiter.retry_after(identity.key))

"""Short code allocation with collision avoidance.

Flow Diagram — allocate()
=========================
::
    ┌──────────────────┐
    │ now_ms + random  │◄─────────────┐
    │ perturbation     │              │
    └────────┬─────────┘              │
             ▼                        │
    ┌──────────────────┐              │
    │ Base62 encode,   │              │
    │ keep trailing 7  │              │
    └────────┬─────────┘              │
             ▼                        │
    ┌──────────────────┐   taken &    │
    │ exists_check()   ├─ attempts ───┘
    └────────┬─────────┘   left
        free │        taken & none left
             ▼                 ▼
        return code   AllocationExhaustedError

Key Behaviours
===============
- Truncation to the trailing characters trades monotonicity for brevity; the
  perturbation keeps same-millisecond requests apart after truncation.
- The existence check is advisory. The store's uniqueness constraint is the
  final arbiter and a late duplicate surfaces as ``AliasTakenError``.
- Caller-supplied aliases get exactly one existence check.
"""

import logging
import random
import time
from collections.abc import Awaitable, Callable

from prometheus_client import Counter

from shortlink.encoder import encode, is_valid_code
from shortlink.exceptions import AliasTakenError, AllocationExhaustedError, InvalidEncodingError

__all__ = ["CodeAllocator", "ExistsCheck"]

ExistsCheck = Callable[[str], Awaitable[bool]]

CODE_COLLISIONS_TOTAL = Counter(
    "shortlink_code_collisions_total",
    "Generated short code candidates that collided with an existing code",
)
CODE_ALLOCATION_EXHAUSTED_TOTAL = Counter(
    "shortlink_code_allocation_exhausted_total",
    "Allocations that ran out of attempts",
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class CodeAllocator:
    """Mints short codes that do not collide with existing records."""

    def __init__(
        self,
        clock_ms: Callable[[], int] = _now_ms,
        rng: random.Random | None = None,
        max_attempts: int = 10,
        code_length: int = 7,
        perturbation_range: int = 1000,
        alias_min_length: int = 3,
        alias_max_length: int = 20,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._clock_ms = clock_ms
        self._rng = rng or random.Random()
        self._max_attempts = max_attempts
        self._code_length = code_length
        self._perturbation_range = perturbation_range
        self._alias_min_length = alias_min_length
        self._alias_max_length = alias_max_length
        self._logger = logger or logging.getLogger(__name__)

    def candidate(self) -> str:
        seed = self._clock_ms() + self._rng.randrange(self._perturbation_range)
        code = encode(seed)
        if len(code) > self._code_length:
            code = code[-self._code_length:]
        return code

    async def allocate(self, exists_check: ExistsCheck) -> str:
        """Return a generated code for which ``exists_check`` was false.

        Raises:
            AllocationExhaustedError: When every attempt collided.
        """
        for attempt in range(1, self._max_attempts + 1):
            code = self.candidate()
            if not await exists_check(code):
                return code
            CODE_COLLISIONS_TOTAL.inc()
            self._logger.debug(f"Short code collision on attempt {attempt}: {code}")

        CODE_ALLOCATION_EXHAUSTED_TOTAL.inc()
        self._logger.error(f"Short code allocation exhausted after {self._max_attempts} attempts")
        raise AllocationExhaustedError(self._max_attempts)

    def check_alias(self, alias: str) -> None:
        if not self._alias_min_length <= len(alias) <= self._alias_max_length:
            raise InvalidEncodingError(
                f"Custom alias must be between {self._alias_min_length} and {self._alias_max_length} characters"
            )
        if not is_valid_code(alias):
            raise InvalidEncodingError("Custom alias must be alphanumeric")

    async def reserve(self, requested_code: str, exists_check: ExistsCheck) -> str:
        """Validate a caller-supplied alias and pre-check that it is free.

        Raises:
            InvalidEncodingError: If the alias is malformed.
            AliasTakenError: If the alias already exists.
        """
        self.check_alias(requested_code)
        if await exists_check(requested_code):
            raise AliasTakenError(requested_code)
        return requested_code

"""
BackoffPolicy Value Object

Wait duration inserted before a retry.

Responsibility:
    - Represent fixed(ms) and exponential(base_ms) policies
    - Compute the delay before the next attempt from attempts already made
    - Apply cap and jitter for the exponential policy

Architecture Notes:
    - Value Object (immutable, defined by values)
    - Uses Pydantic for validation, same as the other value objects
    - Randomness is injectable so tests can pin the jitter
"""

import random
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.jobs.constants import BACKOFF_JITTER_RATIO, MAX_BACKOFF_MS


class BackoffKind(str, Enum):
    """Kind of backoff policy."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class BackoffPolicy(BaseModel):
    """
    Immutable retry backoff policy.

    Attributes:
        kind: fixed or exponential
        delay_ms: Constant delay (fixed) or base delay (exponential)

    Examples:
        >>> policy = BackoffPolicy.exponential(2000)
        >>> policy.compute_delay_ms(0, rng=random.Random(1))  # ~2000 +/- 20%
        >>> BackoffPolicy.fixed(500).compute_delay_ms(7)
        500

    Business Rules:
        - exponential: base * 2^attempts_made, capped at 5 minutes,
          jittered +/-20%, never above the cap after jitter
        - fixed: constant delay, no jitter
    """

    kind: BackoffKind = Field(default=BackoffKind.EXPONENTIAL)
    delay_ms: int = Field(..., ge=0, description="Fixed delay or exponential base (ms)")

    model_config = {"frozen": True}

    @classmethod
    def fixed(cls, delay_ms: int) -> "BackoffPolicy":
        return cls(kind=BackoffKind.FIXED, delay_ms=delay_ms)

    @classmethod
    def exponential(cls, base_ms: int) -> "BackoffPolicy":
        return cls(kind=BackoffKind.EXPONENTIAL, delay_ms=base_ms)

    def compute_delay_ms(
        self, attempts_made: int, rng: Optional[random.Random] = None
    ) -> int:
        """
        Compute the wait before the next attempt.

        Args:
            attempts_made: Attempts finalized before the failing one (0-based)
            rng: Random source for jitter (module-level random if None)

        Returns:
            Delay in milliseconds
        """
        if self.kind == BackoffKind.FIXED:
            return self.delay_ms

        # Clamp the exponent so 2**n stays small for very large counters
        exponent = min(max(attempts_made, 0), 32)
        raw = min(self.delay_ms * (2**exponent), MAX_BACKOFF_MS)

        jitter = (rng or random).uniform(-BACKOFF_JITTER_RATIO, BACKOFF_JITTER_RATIO)
        return max(0, min(int(raw * (1 + jitter)), MAX_BACKOFF_MS))

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "delay_ms": self.delay_ms}

    @classmethod
    def from_dict(cls, data: dict) -> "BackoffPolicy":
        return cls(kind=BackoffKind(data["kind"]), delay_ms=int(data["delay_ms"]))

"""Retry policy with exponential backoff and jitter."""

import random
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class RetryPolicy:
    """
    Attempt ceiling and backoff schedule for retryable task failures.

    Attributes:
        max_attempts: Total attempts per task, including the first.
        base_delay: Delay after the first failed attempt, in seconds.
        max_delay: Cap for any single delay.
        exponential_base: Multiplier applied per further attempt.
        jitter: Scale each delay by a random factor in [0.5, 1.5).
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def should_retry(self, attempts: int) -> bool:
        """True while another attempt is allowed after `attempts` have run."""
        return attempts < self.max_attempts

    def delay_for(self, attempts: int) -> float:
        """Backoff before the next attempt, given the number already made."""
        delay = min(self.base_delay * (self.exponential_base ** max(0, attempts - 1)), self.max_delay)
        if self.jitter and delay > 0:
            delay = delay * (0.5 + self.rng.random())
        return delay

    @classmethod
    def from_settings(cls, settings, seed: Optional[int] = None) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.backoff_base_seconds,
            max_delay=settings.backoff_max_seconds,
            jitter=settings.backoff_jitter,
            rng=random.Random(seed),
        )

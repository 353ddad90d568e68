import random
import threading
from typing import Dict, Hashable

from pydantic import Field
from pydantic.dataclasses import dataclass


@dataclass
class ExponentialBackoff:
    """
    ExponentialBackoff computes growing delays for consecutive failures of the same operation, with optional
    randomization of each delay.

    The n-th consecutive failure (starting at 1) yields::

        base = min(max_interval, initial_interval * multiplier ** (n - 1))
        delay = random_between(base * (1 - randomization_factor), base * (1 + randomization_factor))

    With the defaults (initial_interval=0.005, multiplier=2, max_interval=1000, no randomization), the sequence
    is 5ms, 10ms, 20ms, ... capped at 1000s, which matches the per-item failure rate limiting applied to
    reconcile requests that returned an error.

    Note:
        - `max_interval` caps the base interval, not the randomized value
        - The implementation is not thread-safe, use ``KeyedBackoff`` to share backoffs between workers
    """

    initial_interval: float = Field(0.005, title="Delay after the first failure in seconds", gt=0)
    multiplier: float = Field(2.0, title="Multiply the delay by this factor each failure", gt=1)
    max_interval: float = Field(1000.0, title="Maximum delay in seconds", gt=0)
    randomization_factor: float = Field(0.0, title="Factor to randomize delays", ge=0, le=1)

    def __post_init__(self):
        self.failures: int = 0

    def reset(self) -> None:
        self.failures = 0

    def next_backoff(self) -> float:
        self.failures += 1

        # avoid float overflows for long lasting failures, the cap is reached long before
        exponent = min(self.failures - 1, 64)
        interval = min(self.max_interval, self.initial_interval * self.multiplier**exponent)

        if self.randomization_factor > 0:
            min_interval = interval * (1 - self.randomization_factor)
            max_interval = interval * (1 + self.randomization_factor)
            interval = random.uniform(min_interval, max_interval)

        return interval


class KeyedBackoff:
    """
    Thread-safe registry of one ``ExponentialBackoff`` per key, e.g., per ``namespace/name`` of a reconciled
    object. A key's backoff grows with each failure until ``forget`` is called for it.
    """

    def __init__(self, **backoff_kwargs):
        self._backoff_kwargs = backoff_kwargs
        self._backoffs: Dict[Hashable, ExponentialBackoff] = {}
        self._mutex = threading.Lock()

    def next_backoff(self, key: Hashable) -> float:
        with self._mutex:
            backoff = self._backoffs.get(key)
            if backoff is None:
                backoff = ExponentialBackoff(**self._backoff_kwargs)
                self._backoffs[key] = backoff
            return backoff.next_backoff()

    def failures(self, key: Hashable) -> int:
        with self._mutex:
            backoff = self._backoffs.get(key)
            return backoff.failures if backoff else 0

    def forget(self, key: Hashable) -> None:
        with self._mutex:
            self._backoffs.pop(key, None)

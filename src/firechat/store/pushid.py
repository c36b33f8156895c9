"""
Push Key Generation

Push keys are 20 characters: 8 encode the creation time in milliseconds,
12 are random. Keys sort lexically in creation order; keys generated in
the same millisecond by one generator increment the random part so they
stay strictly increasing.
"""

import random
import time
from typing import Callable, List, Optional

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class PushIdGenerator:
    """Generates time-ordered unique keys for new child records."""

    def __init__(
        self,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[random.Random] = None,
    ):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._rng = rng or random.SystemRandom()
        self._last_push_time = 0
        self._last_rand_chars: List[int] = [0] * 12

    def generate(self) -> str:
        now = self._clock()
        duplicate_time = now == self._last_push_time
        self._last_push_time = now

        time_chars = []
        for _ in range(8):
            time_chars.append(PUSH_CHARS[now % 64])
            now //= 64
        if now != 0:
            raise ValueError("Clock value out of range for push keys")
        key = "".join(reversed(time_chars))

        if not duplicate_time:
            self._last_rand_chars = [self._rng.randrange(64) for _ in range(12)]
        else:
            # Same millisecond: increment the random part by one.
            i = 11
            while i >= 0 and self._last_rand_chars[i] == 63:
                self._last_rand_chars[i] = 0
                i -= 1
            if i >= 0:
                self._last_rand_chars[i] += 1

        return key + "".join(PUSH_CHARS[c] for c in self._last_rand_chars)

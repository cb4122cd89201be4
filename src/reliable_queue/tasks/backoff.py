# src/reliable_queue/tasks/backoff.py

from __future__ import annotations

import random
import string
import time

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_id() -> str:
    """Unique-enough task id: '<epoch ms>-<9 random base36 chars>'."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


def calculate_retry_delay(
    attempt_count: int,
    base_delay: float,
    exponential: bool = True,
    max_delay: float = 30.0,
) -> float:
    """
    Delay (seconds) before the next attempt of a task.

    attempt_count is the number of failed attempts so far, including the one
    just observed. With exponential backoff the sequence is therefore
    2x, 4x, 8x, ... base_delay, never above max_delay.
    """
    if not exponential:
        return float(base_delay)

    # Cap the exponent so huge attempt counts cannot overflow the float.
    exponent = min(max(0, int(attempt_count)), 64)
    return float(min(base_delay * (2**exponent), max_delay))

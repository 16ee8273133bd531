"""Deterministic seeded shuffle used to vary retries reproducibly."""

from typing import Sequence, TypeVar

T = TypeVar("T")

_MULTIPLIER = 9301
_INCREMENT = 49297
_MODULUS = 233280


def shuffle(items: Sequence[T], seed: int) -> list[T]:
    """Return a shuffled copy of ``items`` (Fisher-Yates driven by an LCG).

    The same seed always yields the same order; the input is not modified.

    Args:
        items: Items to shuffle.
        seed: Non-negative seed.

    Returns:
        A new list with the items reordered.
    """
    shuffled = list(items)
    current = seed
    for i in range(len(shuffled) - 1, 0, -1):
        current = (current * _MULTIPLIER + _INCREMENT) % _MODULUS
        j = int(current / _MODULUS * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled

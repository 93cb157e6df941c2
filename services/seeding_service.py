# services/seeding_service.py
from __future__ import annotations

import logging
import random
from typing import Optional, Sequence, TypeVar

from domain.enums import SeedingStrategy
from domain.errors import InsufficientParticipants, InvalidSettings, ValidationError
from domain.models import Participant

log = logging.getLogger(__name__)

T = TypeVar("T")


def reorder(items: Sequence[T], strategy: str | SeedingStrategy, rng: Optional[random.Random] = None) -> list[T]:
    """
    Reorder a list by a named strategy. Always a permutation of the input,
    for any length (including 0 and 1). Unknown names behave like "natural".
    """
    out = list(items)
    n = len(out)
    name = strategy.value if isinstance(strategy, SeedingStrategy) else str(strategy or "").strip().lower()

    if name == SeedingStrategy.REVERSE.value:
        return out[::-1]

    if name == SeedingStrategy.HALF_SHIFT.value:
        half = n // 2
        return out[half:] + out[:half]

    if name == SeedingStrategy.REVERSE_HALF_SHIFT.value:
        half = n // 2
        return out[half:][::-1] + out[:half][::-1]

    if name == SeedingStrategy.PAIR_FLIP.value:
        flipped: list[T] = []
        for i in range(0, n, 2):
            if i + 1 < n:
                flipped.append(out[i + 1])
            flipped.append(out[i])
        return flipped

    if name == SeedingStrategy.INNER_OUTER.value:
        result: list[T] = []
        left, right = 0, n - 1
        to_left = True
        while left <= right:
            if to_left:
                result.append(out[left])
                left += 1
            else:
                result.append(out[right])
                right -= 1
            to_left = not to_left
        return result

    if name == SeedingStrategy.RANDOM.value:
        (rng or random.Random()).shuffle(out)
        return out

    if name != SeedingStrategy.NATURAL.value:
        log.debug("Unknown seeding strategy %r, using natural order", strategy)
    return out


class SeedingService:
    """
    Turns a list of display names into seeded participants.

    Participant ids follow input order (1-based) and never change;
    seed_position is the 1-based rank after seeding.
    """

    def __init__(self, *, rng: Optional[random.Random] = None) -> None:
        self._rng = rng

    def seed(
        self,
        names: Sequence[str],
        strategy: str | SeedingStrategy = SeedingStrategy.NATURAL,
        *,
        seed_ordering: Optional[Sequence[int]] = None,
    ) -> list[Participant]:
        if len(names) < 2:
            raise InsufficientParticipants(f"At least 2 participants are required, got {len(names)}.")
        blank = [i for i, n in enumerate(names, start=1) if not str(n or "").strip()]
        if blank:
            raise ValidationError(f"Participant names cannot be blank (entries {blank}).")

        indexed = list(enumerate(names, start=1))
        ordered = reorder(indexed, strategy, self._rng)

        if seed_ordering is not None:
            order = [int(i) for i in seed_ordering]
            if sorted(order) != list(range(len(ordered))):
                raise InvalidSettings(
                    f"seed_ordering must be a permutation of 0..{len(ordered) - 1}, got {order}"
                )
            ordered = [ordered[i] for i in order]

        return [
            Participant(id=pid, name=str(name).strip(), seed_position=pos)
            for pos, (pid, name) in enumerate(ordered, start=1)
        ]

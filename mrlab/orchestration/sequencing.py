"""Counterbalancing strategies that reorder a study's conditions per participant."""
from __future__ import annotations

import random
from itertools import permutations as _ordered_permutations
from math import factorial
from random import Random
from typing import Iterator, List, Optional, Sequence, TypeVar

from loguru import logger

T = TypeVar("T")

DEFAULT_MAX_PERMUTATION_ITEMS = 8


class SequencingError(ValueError):
    """Base class for errors raised while ordering conditions."""


class InvalidConditionList(SequencingError):
    """Raised when a strategy receives an empty condition list."""


class InvalidParticipant(SequencingError):
    """Raised when a participant index or seed is negative."""


class InfeasiblePermutations(SequencingError):
    """Raised when enumerating all orderings would be impractically large."""


def _validate(items: Sequence[T], participant: Optional[int] = None) -> List[T]:
    if len(items) == 0:
        raise InvalidConditionList("Cannot sequence an empty condition list.")
    if participant is not None and participant < 0:
        raise InvalidParticipant(f"Participant index must be non-negative, got {participant}.")
    return list(items)


def balanced_latin_square(items: Sequence[T], participant: int) -> List[T]:
    """Return the participant's row of a balanced Latin square.

    Based on Bradley, J. V. (1958), "Complete counterbalancing of immediate
    sequential effects in a Latin square design". For an even number of
    conditions, rows ``0..N-1`` place every condition in every position once
    and every ordered adjacent pair once. For an odd number, odd participants
    receive the reversed row, so rows ``0..2N-1`` cover every ordered pair
    exactly twice.
    """

    source = _validate(items, participant)
    n = len(source)
    result: List[T] = []
    j = 0
    h = 0
    for i in range(n):
        if i < 2 or i % 2 != 0:
            val = j
            j += 1
        else:
            val = n - h - 1
            h += 1
        result.append(source[(val + participant) % n])
    if n % 2 != 0 and participant % 2 != 0:
        result.reverse()
    return result


def latin_square_labels(n: int) -> List[List[int]]:
    """Build the ``n x n`` square of 1-based labels used by :func:`latin_square`."""

    if n <= 0:
        raise InvalidConditionList("A Latin square needs at least one condition.")
    square = [[0] * n for _ in range(n)]
    square[0][0] = 1
    if n > 1:
        square[0][1] = 2
    ascending = 3
    descending = 0
    for col in range(2, n):
        if col % 2 == 1:
            square[0][col] = ascending
            ascending += 1
        else:
            square[0][col] = n - descending
            descending += 1
    for row in range(n):
        square[row][0] = row + 1
    for row in range(1, n):
        for col in range(1, n):
            label = (square[row - 1][col] + 1) % n
            square[row][col] = label or n
    return square


def latin_square(items: Sequence[T], participant: int) -> List[T]:
    """Return row ``(participant + 1) % N`` of a simple Latin square.

    Every condition occupies every position once across ``N`` participants;
    carry-over between neighbouring conditions is not controlled.
    """

    source = _validate(items, participant)
    n = len(source)
    row = latin_square_labels(n)[(participant + 1) % n]
    return [source[label - 1] for label in row]


def permutation_rows(items: Sequence[T]) -> Iterator[List[T]]:
    """Yield every ordering of ``items`` in backtracking order.

    Positions are filled left to right, trying unused items in their input
    order, so the first row is the input itself.
    """

    for row in _ordered_permutations(list(items)):
        yield list(row)


def permutations(
    items: Sequence[T],
    participant: int,
    *,
    max_items: int = DEFAULT_MAX_PERMUTATION_ITEMS,
) -> List[T]:
    """Return ordering ``(participant + 1) % N!`` among all orderings of ``items``."""

    source = _validate(items, participant)
    n = len(source)
    if n > max_items:
        logger.warning(
            "Refusing to enumerate {}! orderings of {} conditions (limit is {}).", n, n, max_items
        )
        raise InfeasiblePermutations(
            f"Enumerating all orderings of {n} conditions ({factorial(n)} rows) exceeds the "
            f"limit of {max_items} conditions; use a Latin square or seeded shuffle instead."
        )
    rows = list(permutation_rows(source))
    return rows[(participant + 1) % len(rows)]


def shuffle_by_seed(items: Sequence[T], seed: int) -> List[T]:
    """Fisher-Yates shuffle driven by ``random.Random(seed)``; reproducible per seed."""

    result = _validate(items, seed)
    rng = Random(seed)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randrange(i + 1)
        result[i], result[j] = result[j], result[i]
    return result


def shuffle(items: Sequence[T], rng: Optional[Random] = None) -> List[T]:
    """Fisher-Yates shuffle from the process-global random source.

    Results are not reproducible; use :func:`shuffle_by_seed` when the
    assignment must be recoverable from the participant identifier.
    """

    result = _validate(items)
    source = rng if rng is not None else random
    n = len(result)
    logger.debug("Unseeded shuffle of {} conditions; ordering is not reproducible.", n)
    for i in range(n):
        r = source.randrange(i, n)
        result[i], result[r] = result[r], result[i]
    return result

import random
from typing import Iterable, Optional, Set

from bingo.errors import ExhaustedPool

MIN_NUMBER = 1
MAX_NUMBER = 75
POOL_SIZE = MAX_NUMBER - MIN_NUMBER + 1

_COLUMNS = (
    (15, 'B'),
    (30, 'I'),
    (45, 'N'),
    (60, 'G'),
    (75, 'O'),
)


def draw(count: int, low: int = MIN_NUMBER, high: int = MAX_NUMBER, rng: Optional[random.Random] = None) -> Set[int]:
    """Return `count` distinct integers drawn uniformly from [low, high].

    Rejection sampling: keep drawing until enough distinct values are
    collected. The domain must hold at least `count` values.
    """
    if high - low + 1 < count:
        raise ValueError(f'cannot draw {count} distinct numbers from [{low}, {high}]')
    rng = rng or random
    numbers: Set[int] = set()
    while len(numbers) < count:
        numbers.add(rng.randint(low, high))
    return numbers


def draw_next(exclude: Iterable[int], rng: Optional[random.Random] = None) -> int:
    """Draw one number in [1, 75] that is not in `exclude`."""
    taken = set(exclude)
    if len(taken & set(range(MIN_NUMBER, MAX_NUMBER + 1))) >= POOL_SIZE:
        raise ExhaustedPool('all numbers have been called')
    rng = rng or random
    while True:
        number = rng.randint(MIN_NUMBER, MAX_NUMBER)
        if number not in taken:
            return number


def bingo_letter(number: int) -> str:
    """Column letter for a called number, '' outside the domain."""
    if number < MIN_NUMBER:
        return ''
    for upper, letter in _COLUMNS:
        if number <= upper:
            return letter
    return ''

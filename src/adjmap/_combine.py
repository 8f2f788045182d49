"""Combiners: reductions from an array of numbers to a single number.

Every combiner is total. Given an empty array it returns a defined value
(0 for the arithmetic ones, opaque black for ``color-mean``), and it always
returns a one-element list so the result can flow straight back into the
evaluator.
"""

import math
from collections.abc import Callable, Sequence

from ._color import BLACK, mix_colors, pack_color, unpack_color
from ._constants import FALSE_NUMBER, TRUE_NUMBER, is_true
from ._str_enum_with_doc import StrEnumWithDoc

type Combiner = Callable[[Sequence[float]], list[float]]


class CombinerType(StrEnumWithDoc):
    """The names a definition may use to pick a combiner."""

    MEAN = "mean", "Arithmetic mean (the default)"
    FIRST = "first", "The first value"
    LAST = "last", "The last value"
    MIN = "min", "The smallest value"
    MAX = "max", "The largest value"
    SUM = "sum", "The sum of all values"
    PRODUCT = "product", "The product of all values"
    AND = "and", "True if every value is true"
    OR = "or", "True if any value is true"
    COLOR_MEAN = "color-mean", "Channel-wise average of packed colors"


def mean(nums: Sequence[float]) -> list[float]:
    if not nums:
        return [0.0]
    return [math.fsum(nums) / len(nums)]


def first(nums: Sequence[float]) -> list[float]:
    if not nums:
        return [0.0]
    return [nums[0]]


def last(nums: Sequence[float]) -> list[float]:
    if not nums:
        return [0.0]
    return [nums[-1]]


def min_(nums: Sequence[float]) -> list[float]:
    if not nums:
        return [0.0]
    return [min(nums)]


def max_(nums: Sequence[float]) -> list[float]:
    if not nums:
        return [0.0]
    return [max(nums)]


def sum_(nums: Sequence[float]) -> list[float]:
    if not nums:
        return [0.0]
    return [math.fsum(nums)]


def product(nums: Sequence[float]) -> list[float]:
    # An empty product is 0 here, not 1: "no edges" must not read as "all
    # multipliers are neutral".
    if not nums:
        return [0.0]
    return [math.prod(nums)]


def and_(nums: Sequence[float]) -> list[float]:
    if not nums:
        return [0.0]
    return [TRUE_NUMBER if all(is_true(num) for num in nums) else FALSE_NUMBER]


def or_(nums: Sequence[float]) -> list[float]:
    if not nums:
        return [0.0]
    return [TRUE_NUMBER if any(is_true(num) for num in nums) else FALSE_NUMBER]


def color_mean(nums: Sequence[float]) -> list[float]:
    if not nums:
        return [pack_color(BLACK)]
    return [pack_color(mix_colors([unpack_color(num) for num in nums]))]


COMBINERS: dict[CombinerType, Combiner] = {
    CombinerType.MEAN: mean,
    CombinerType.FIRST: first,
    CombinerType.LAST: last,
    CombinerType.MIN: min_,
    CombinerType.MAX: max_,
    CombinerType.SUM: sum_,
    CombinerType.PRODUCT: product,
    CombinerType.AND: and_,
    CombinerType.OR: or_,
    CombinerType.COLOR_MEAN: color_mean,
}

DEFAULT_COMBINER = CombinerType.MEAN


def get_combiner(name: CombinerType | str) -> Combiner:
    """Return the combiner registered under `name`.

    Raises:
        ValueError: If no combiner has that name.

    """
    return COMBINERS[CombinerType.parse(name, "combiner")]


def combine(name: CombinerType | str | None, nums: Sequence[float]) -> float:
    """Reduce `nums` with the named combiner (mean if `name` is None)."""
    combiner = get_combiner(name if name is not None else DEFAULT_COMBINER)
    return combiner(nums)[0]

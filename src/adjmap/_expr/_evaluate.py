"""Pure recursive evaluation of expressions.

Every expression evaluates to an array of numbers: one value per edge, ref or
input slot being processed in parallel. A scalar is a one-element array.
Binary forms broadcast by wrapping each operand's index modulo its own length,
so a one-element operand acts as a scalar against a longer one.
"""

from __future__ import annotations

import logging
import math
import operator
from collections.abc import Callable, Mapping, Sequence
from typing import assert_never

from adjmap._color import interpolate_colors, make_color, pack_color, unpack_color
from adjmap._combine import get_combiner
from adjmap._constants import NULL_SENTINEL, bool_to_number, is_true
from adjmap._errors import EvaluationError

from ._context import EvaluationContext
from ._nodes import (
    Arithmetic,
    BinaryOperator,
    Clip,
    Collect,
    ColorLiteral,
    ColorRGB,
    Combine,
    Compare,
    Comparator,
    EdgeConstant,
    Expression,
    Filter,
    Gradient,
    HasTag,
    If,
    InputValue,
    LengthOf,
    LengthOfMode,
    Let,
    Literal,
    Log,
    ParentValue,
    PercentDenormalize,
    RangeNormalize,
    ResultValue,
    RootValue,
    TagConstant,
    Unary,
    UnaryOperator,
    Variable,
)

logger = logging.getLogger(__name__)


def _divide(a: float, b: float) -> float:
    # IEEE semantics instead of ZeroDivisionError.
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _log(a: float, fn: Callable[[float], float]) -> float:
    if a > 0:
        return fn(a)
    return -math.inf if a == 0 else math.nan


def _exp(a: float) -> float:
    try:
        return math.exp(a)
    except OverflowError:
        return math.inf


_BINARY: dict[BinaryOperator, Callable[[float, float], float]] = {
    BinaryOperator.ADD: operator.add,
    BinaryOperator.SUBTRACT: operator.sub,
    BinaryOperator.MULTIPLY: operator.mul,
    BinaryOperator.DIVIDE: _divide,
    BinaryOperator.AND: lambda a, b: bool_to_number(is_true(a) and is_true(b)),
    BinaryOperator.OR: lambda a, b: bool_to_number(is_true(a) or is_true(b)),
}

_UNARY: dict[UnaryOperator, Callable[[float], float]] = {
    UnaryOperator.NOT: lambda a: bool_to_number(not is_true(a)),
    UnaryOperator.ABS: abs,
    UnaryOperator.NEGATE: operator.neg,
    UnaryOperator.LOG: lambda a: _log(a, math.log),
    UnaryOperator.LOG10: lambda a: _log(a, math.log10),
    UnaryOperator.EXP: _exp,
    UnaryOperator.SQRT: lambda a: math.sqrt(a) if a >= 0 else math.nan,
    UnaryOperator.ROUND: lambda a: float(round(a)) if math.isfinite(a) else a,
    UnaryOperator.FLOOR: lambda a: float(math.floor(a)) if math.isfinite(a) else a,
    UnaryOperator.CEIL: lambda a: float(math.ceil(a)) if math.isfinite(a) else a,
}

_COMPARATORS: dict[Comparator, Callable[[float, float], bool]] = {
    Comparator.EQUAL: operator.eq,
    Comparator.NOT_EQUAL: operator.ne,
    Comparator.LESS: operator.lt,
    Comparator.GREATER: operator.gt,
    Comparator.LESS_EQUAL: operator.le,
    Comparator.GREATER_EQUAL: operator.ge,
}


def _at(values: Sequence[float], i: int) -> float:
    return values[i % len(values)]


def _require(values: list[float], what: str) -> list[float]:
    if not values:
        msg = f"{what} evaluated to an empty array but at least one value is required"
        raise EvaluationError(msg)
    return values


def _broadcast(a: list[float], b: list[float], fn: Callable[[float, float], float], what: str) -> list[float]:
    _require(a, f"left operand of {what}")
    _require(b, f"right operand of {what}")
    return [fn(_at(a, i), _at(b, i)) for i in range(max(len(a), len(b)))]


def _bounds(low: list[float], high: list[float], i: int) -> tuple[float, float]:
    lo, hi = _at(low, i), _at(high, i)
    return (hi, lo) if hi < lo else (lo, hi)


def _normalize(x: float, lo: float, hi: float) -> float:
    if hi == lo:
        return 0.0
    return (x - lo) / (hi - lo)


def _length_for(mode: LengthOfMode, ctx: EvaluationContext) -> int:
    match mode:
        case LengthOfMode.REFS:
            return len(ctx.refs)
        case LengthOfMode.EDGES:
            return len(ctx.edges)
        case LengthOfMode.INPUT:
            if ctx.input is None:
                msg = "lengthOf 'input' used but no input is available"
                raise EvaluationError(msg)
            return len(ctx.input)
        case _:
            assert_never(mode)


def _lookup(values: Mapping[str, float], name: str, what: str) -> float:
    try:
        return values[name]
    except KeyError:
        msg = f"{what} '{name}' has no value"
        raise EvaluationError(msg) from None


def _eval(expr: Expression, ctx: EvaluationContext) -> list[float]:  # noqa: C901, PLR0911, PLR0912
    match expr:
        case Literal(values=values):
            return list(values)

        case InputValue():
            if ctx.input is None:
                msg = "'input' used but no input is available"
                raise EvaluationError(msg)
            return list(ctx.input)

        case EdgeConstant(name=name):
            return [_lookup(edge, name, "edge constant") for edge in ctx.edges]

        case ParentValue(property=name):
            return [_lookup(ref, name, "ref property") for ref in ctx.refs]

        case RootValue(property=name):
            return [_lookup(ctx.root, name, "root property")]

        case ResultValue(property=name):
            return [_lookup(ctx.partial, name, "result property")]

        case Combine(combiner=combiner, value=value):
            return get_combiner(combiner)(_eval(value, ctx))

        case ColorLiteral(packed=packed):
            return [packed]

        case ColorRGB(red=red, green=green, blue=blue, alpha=alpha):
            r = _require(_eval(red, ctx), "rgb red")
            g = _require(_eval(green, ctx), "rgb green")
            b = _require(_eval(blue, ctx), "rgb blue")
            a = _require(_eval(alpha, ctx), "rgb alpha") if alpha is not None else [1.0]
            n = max(len(r), len(g), len(b), len(a))
            return [pack_color(make_color(_at(r, i), _at(g, i), _at(b, i), _at(a, i))) for i in range(n)]

        case Gradient(progress=progress, start=start, end=end):
            p = _require(_eval(progress, ctx), "gradient progress")
            s = _require(_eval(start, ctx), "gradient start color")
            e = _require(_eval(end, ctx), "gradient end color")
            n = max(len(p), len(s), len(e))
            return [
                pack_color(interpolate_colors(unpack_color(_at(s, i)), unpack_color(_at(e, i)), _at(p, i)))
                for i in range(n)
            ]

        case Arithmetic(operator=op, a=a, b=b):
            return _broadcast(_eval(a, ctx), _eval(b, ctx), _BINARY[op], f"operator {op.value!r}")

        case Unary(operator=op, a=a):
            fn = _UNARY[op]
            return [fn(x) for x in _require(_eval(a, ctx), f"operand of {op.value!r}")]

        case Compare(comparator=comparator, a=a, b=b):
            test = _COMPARATORS[comparator]
            return _broadcast(
                _eval(a, ctx),
                _eval(b, ctx),
                lambda x, y: bool_to_number(test(x, y)),
                f"comparison {comparator.value!r}",
            )

        case If(condition=condition, then=then, otherwise=otherwise):
            cond = _require(_eval(condition, ctx), "if condition")
            then_values = _require(_eval(then, ctx), "if then")
            else_values = _require(_eval(otherwise, ctx), "if else")
            return [
                _at(then_values, i) if is_true(flag) else _at(else_values, i) for i, flag in enumerate(cond)
            ]

        case Filter(condition=condition, value=value, default=default):
            flags = _require(_eval(condition, ctx), "filter")
            values = _eval(value, ctx)
            kept = [x for i, x in enumerate(values) if is_true(_at(flags, i))]
            if kept:
                return kept
            return _eval(default, ctx) if default is not None else [NULL_SENTINEL]

        case Clip(value=value, low=low, high=high):
            lows = _require(_eval(low, ctx), "clip low") if low is not None else [-math.inf]
            highs = _require(_eval(high, ctx), "clip high") if high is not None else [math.inf]
            return [max(_at(lows, i), min(_at(highs, i), x)) for i, x in enumerate(_eval(value, ctx))]

        case RangeNormalize(value=value, low=low, high=high):
            lows = _require(_eval(low, ctx), "range low")
            highs = _require(_eval(high, ctx), "range high")
            return [_normalize(x, *_bounds(lows, highs, i)) for i, x in enumerate(_eval(value, ctx))]

        case PercentDenormalize(value=value, low=low, high=high):
            lows = _require(_eval(low, ctx), "percent low")
            highs = _require(_eval(high, ctx), "percent high")
            result: list[float] = []
            for i, x in enumerate(_eval(value, ctx)):
                lo, hi = _bounds(lows, highs, i)
                result.append(lo + x * (hi - lo))
            return result

        case Collect(children=items):
            return [x for item in items for x in _eval(item, ctx)]

        case LengthOf(mode=mode, value=value):
            count = _length_for(mode, ctx)
            values = _require(_eval(value, ctx), "lengthOf value")
            return [_at(values, i) for i in range(count)]

        case HasTag(tag=tag, which=which):
            if tag not in ctx.tag_constants:
                msg = f"tag '{tag}' is not defined"
                raise EvaluationError(msg)
            return [bool_to_number(tag in ctx.tags.scope(which))]

        case TagConstant(name=name, which=which, default=default):
            in_scope = ctx.tags.scope(which)
            found = [
                constants[name]
                for tag, constants in ctx.tag_constants.items()
                if tag in in_scope and name in constants
            ]
            if found or default is None:
                return found
            return _eval(default, ctx)

        case Let(name=name, value=value, block=block):
            return _eval(block, ctx.bind(name, _eval(value, ctx)))

        case Variable(name=name):
            if name not in ctx.variables:
                msg = f"variable '{name}' is not bound"
                raise EvaluationError(msg)
            return list(ctx.variables[name])

        case Log(value=value, label=label):
            values = _eval(value, ctx)
            logger.info("%s%s", f"{label}: " if label else "", values)
            return values

        case _:
            assert_never(expr)


def evaluate(expr: Expression, ctx: EvaluationContext) -> list[float]:
    """Evaluate `expr` against `ctx`.

    Returns:
        A non-empty list of numbers.

    Raises:
        EvaluationError: If the expression cannot be evaluated in `ctx`, or
            evaluates to an empty array.

    """
    return _require(_eval(expr, ctx), "expression")

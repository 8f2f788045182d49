"""Turn author-facing expression values into the `Expression` union.

Leaves are numbers, booleans, ``null``, arrays of those, and the string
``"input"``. Every structured form is a mapping identified by exactly one
marker key; a mapping with no marker, two markers, or a key the form does
not accept is rejected.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from adjmap._color import pack_color, parse_color
from adjmap._combine import CombinerType
from adjmap._constants import FALSE_NUMBER, NULL_SENTINEL, TRUE_NUMBER
from adjmap._errors import ExpressionError
from adjmap._str_enum_with_doc import StrEnumWithDoc

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
    TagScope,
    Unary,
    UnaryOperator,
    Variable,
)

INPUT_KEYWORD = "input"

type RawExpression = Any


def leaf_to_number(value: object) -> float | None:
    """Convert a leaf value to its number, or None if it is not a leaf.

    ``true`` maps to TRUE_NUMBER, ``false`` to FALSE_NUMBER and ``null`` to
    the null sentinel.
    """
    if value is None:
        return NULL_SENTINEL
    if isinstance(value, bool):
        return TRUE_NUMBER if value else FALSE_NUMBER
    if isinstance(value, int | float):
        number = float(value)
        return None if math.isnan(number) else number
    return None


def _require_str(raw: Mapping[str, Any], key: str, path: str) -> str:
    value = raw[key]
    if not isinstance(value, str) or not value:
        msg = f"'{key}' must be a non-empty string, got {value!r}"
        raise ExpressionError(msg, path)
    return value


def _enum[E: StrEnumWithDoc](enum_type: type[E], raw: Mapping[str, Any], key: str, path: str, what: str) -> E:
    try:
        return enum_type.parse(raw[key], what)
    except ValueError as e:
        raise ExpressionError(str(e), path) from None


def _sub(raw: Mapping[str, Any], key: str, path: str) -> Expression:
    if key not in raw:
        msg = f"missing required key '{key}'"
        raise ExpressionError(msg, path)
    return parse_expression(raw[key], f"{path}.{key}")


def _optional(raw: Mapping[str, Any], key: str, path: str) -> Expression | None:
    if key not in raw:
        return None
    return parse_expression(raw[key], f"{path}.{key}")


def _which(raw: Mapping[str, Any], path: str) -> TagScope:
    if "which" not in raw:
        return TagScope.ALL
    return _enum(TagScope, raw, "which", path, "tag scope")


def _parse_operator(raw: Mapping[str, Any], path: str) -> Expression:
    name = raw["operator"]
    if not isinstance(name, str):
        msg = f"Unknown operator: {name!r}"
        raise ExpressionError(msg, path)
    if name in UnaryOperator:
        if "b" in raw:
            msg = f"unary operator {name!r} does not take 'b'"
            raise ExpressionError(msg, path)
        return Unary(UnaryOperator(name), _sub(raw, "a", path))
    if name in BinaryOperator:
        return Arithmetic(BinaryOperator(name), _sub(raw, "a", path), _sub(raw, "b", path))
    choices = ", ".join(repr(op.value) for op in (*BinaryOperator, *UnaryOperator))
    msg = f"Unknown operator: {name!r} (expected one of {choices})"
    raise ExpressionError(msg, path)


def _parse_color(raw: Mapping[str, Any], path: str) -> Expression:
    text = _require_str(raw, "color", path)
    try:
        color = parse_color(text)
    except ValueError as e:
        raise ExpressionError(str(e), path) from None
    return ColorLiteral(text, pack_color(color))


def _parse_rgb(raw: Mapping[str, Any], path: str) -> Expression:
    channels = raw["rgb"]
    if not isinstance(channels, Sequence) or isinstance(channels, str) or len(channels) != 3:  # noqa: PLR2004
        msg = "'rgb' must be a list of three expressions"
        raise ExpressionError(msg, path)
    red, green, blue = (parse_expression(channel, f"{path}.rgb[{i}]") for i, channel in enumerate(channels))
    return ColorRGB(red, green, blue, _optional(raw, "alpha", path))


def _parse_collect(raw: Mapping[str, Any], path: str) -> Expression:
    items = raw["collect"]
    if not isinstance(items, Sequence) or isinstance(items, str):
        msg = "'collect' must be a list of expressions"
        raise ExpressionError(msg, path)
    if not items:
        msg = "'collect' must have at least one child"
        raise ExpressionError(msg, path)
    return Collect(tuple(parse_expression(item, f"{path}.collect[{i}]") for i, item in enumerate(items)))


def _parse_clip(raw: Mapping[str, Any], path: str) -> Expression:
    if "low" not in raw and "high" not in raw:
        msg = "'clip' requires at least one of 'low' or 'high'"
        raise ExpressionError(msg, path)
    return Clip(_sub(raw, "clip", path), _optional(raw, "low", path), _optional(raw, "high", path))


def _parse_let(raw: Mapping[str, Any], path: str) -> Expression:
    return Let(_require_str(raw, "let", path), _sub(raw, "value", path), _sub(raw, "block", path))


def _parse_log(raw: Mapping[str, Any], path: str) -> Expression:
    label = raw.get("label", "")
    if not isinstance(label, str):
        msg = "'label' must be a string"
        raise ExpressionError(msg, path)
    return Log(_sub(raw, "log", path), label)


# marker -> (other accepted keys, builder)
_FORMS: dict[str, tuple[frozenset[str], Callable[[Mapping[str, Any], str], Expression]]] = {
    "constant": (frozenset(), lambda raw, path: EdgeConstant(_require_str(raw, "constant", path))),
    "ref": (frozenset(), lambda raw, path: ParentValue(_require_str(raw, "ref", path))),
    "root": (frozenset(), lambda raw, path: RootValue(_require_str(raw, "root", path))),
    "result": (frozenset(), lambda raw, path: ResultValue(_require_str(raw, "result", path))),
    "combine": (
        frozenset({"value"}),
        lambda raw, path: Combine(_enum(CombinerType, raw, "combine", path, "combiner"), _sub(raw, "value", path)),
    ),
    "color": (frozenset(), _parse_color),
    "rgb": (frozenset({"alpha"}), _parse_rgb),
    "gradient": (
        frozenset({"a", "b"}),
        lambda raw, path: Gradient(_sub(raw, "gradient", path), _sub(raw, "a", path), _sub(raw, "b", path)),
    ),
    "operator": (frozenset({"a", "b"}), _parse_operator),
    "compare": (
        frozenset({"a", "b"}),
        lambda raw, path: Compare(
            _enum(Comparator, raw, "compare", path, "comparator"),
            _sub(raw, "a", path),
            _sub(raw, "b", path),
        ),
    ),
    "if": (
        frozenset({"then", "else"}),
        lambda raw, path: If(_sub(raw, "if", path), _sub(raw, "then", path), _sub(raw, "else", path)),
    ),
    "filter": (
        frozenset({"value", "default"}),
        lambda raw, path: Filter(_sub(raw, "filter", path), _sub(raw, "value", path), _optional(raw, "default", path)),
    ),
    "clip": (frozenset({"low", "high"}), _parse_clip),
    "range": (
        frozenset({"low", "high"}),
        lambda raw, path: RangeNormalize(_sub(raw, "range", path), _sub(raw, "low", path), _sub(raw, "high", path)),
    ),
    "percent": (
        frozenset({"low", "high"}),
        lambda raw, path: PercentDenormalize(
            _sub(raw, "percent", path),
            _sub(raw, "low", path),
            _sub(raw, "high", path),
        ),
    ),
    "collect": (frozenset(), _parse_collect),
    "lengthOf": (
        frozenset({"value"}),
        lambda raw, path: LengthOf(_enum(LengthOfMode, raw, "lengthOf", path, "lengthOf mode"), _sub(raw, "value", path)),
    ),
    "has": (frozenset({"which"}), lambda raw, path: HasTag(_require_str(raw, "has", path), _which(raw, path))),
    "tagConstant": (
        frozenset({"which", "default"}),
        lambda raw, path: TagConstant(
            _require_str(raw, "tagConstant", path),
            _which(raw, path),
            _optional(raw, "default", path),
        ),
    ),
    "let": (frozenset({"value", "block"}), _parse_let),
    "variable": (frozenset(), lambda raw, path: Variable(_require_str(raw, "variable", path))),
    "log": (frozenset({"label"}), _parse_log),
}

MARKERS = frozenset(_FORMS)


def _parse_array(raw: Sequence[Any], path: str) -> Literal:
    if not raw:
        msg = "an array of numbers must have at least one item"
        raise ExpressionError(msg, path)
    numbers: list[float] = []
    for i, item in enumerate(raw):
        number = leaf_to_number(item)
        if number is None:
            msg = f"array items must be numbers, booleans or null, got {item!r} at index {i}"
            raise ExpressionError(msg, path)
        numbers.append(number)
    return Literal(tuple(numbers))


def parse_expression(raw: RawExpression, path: str = "value") -> Expression:
    """Parse a raw expression value.

    Args:
        raw: The author-facing value (from JSON/TOML or Python literals).
        path: Where the value sits in the definition, used in error messages.

    Returns:
        The parsed expression tree.

    Raises:
        ExpressionError: If the value is not a well-formed expression.

    """
    number = leaf_to_number(raw)
    if number is not None:
        return Literal((number,))
    if isinstance(raw, str):
        if raw == INPUT_KEYWORD:
            return InputValue()
        msg = f"the only string allowed as an expression is {INPUT_KEYWORD!r}, got {raw!r}"
        raise ExpressionError(msg, path)
    if isinstance(raw, Sequence):
        return _parse_array(raw, path)
    if not isinstance(raw, Mapping):
        msg = f"not a legal expression: {raw!r}"
        raise ExpressionError(msg, path)

    markers = [key for key in raw if key in MARKERS]
    if not markers:
        msg = f"no recognized expression key among {sorted(raw)!r}"
        raise ExpressionError(msg, path)
    if len(markers) > 1:
        msg = f"expression has more than one form marker: {sorted(markers)!r}"
        raise ExpressionError(msg, path)

    marker = markers[0]
    allowed, build = _FORMS[marker]
    unexpected = set(raw) - allowed - {marker}
    if unexpected:
        msg = f"unexpected keys for '{marker}' expression: {sorted(unexpected)!r}"
        raise ExpressionError(msg, path)
    return build(raw, path)

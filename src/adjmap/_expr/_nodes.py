"""The expression language as an explicit tagged union.

Authors write expressions as JSON-like values (see `parse_expression`). Once
parsed, every expression is exactly one of the frozen dataclasses below and
all dispatch over them is an exhaustive ``match`` ending in `assert_never`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import assert_never

from adjmap._combine import CombinerType
from adjmap._str_enum_with_doc import StrEnumWithDoc


class Capability(StrEnumWithDoc):
    """Classes of context access an expression may need."""

    EDGE_CONSTANT = "edge-constant", "Reads constants off the edges being evaluated"
    PARENT_VALUE = "parent-value", "Reads computed values of the edges' refs"
    ROOT_VALUE = "root-value", "Reads the root node's values"
    RESULT_VALUE = "result-value", "Reads already computed values of the same node"
    INPUT = "input", "Reads the input array supplied by the caller"
    TAG_HAS = "tag-has", "Tests tag membership"
    TAG_CONSTANT = "tag-constant", "Reads constants declared on tags"


class BinaryOperator(StrEnumWithDoc):
    ADD = "+", "a plus b"
    SUBTRACT = "-", "a minus b"
    MULTIPLY = "*", "a times b"
    DIVIDE = "/", "a divided by b"
    AND = "&&", "true if both a and b are true"
    OR = "||", "true if either a or b is true"


class UnaryOperator(StrEnumWithDoc):
    NOT = "!", "true if a is false"
    ABS = "abs", "absolute value"
    NEGATE = "negate", "minus a"
    LOG = "log", "natural logarithm"
    LOG10 = "log10", "base 10 logarithm"
    EXP = "exp", "e to the power a"
    SQRT = "sqrt", "square root"
    ROUND = "round", "nearest integer"
    FLOOR = "floor", "largest integer not above a"
    CEIL = "ceil", "smallest integer not below a"


class Comparator(StrEnumWithDoc):
    EQUAL = "=="
    NOT_EQUAL = "!="
    LESS = "<"
    GREATER = ">"
    LESS_EQUAL = "<="
    GREATER_EQUAL = ">="


class TagScope(StrEnumWithDoc):
    ALL = "all", "The node's own tags plus extended ones"
    SELF = "self", "Only tags set directly on the node"
    EXTENDED = "extended", "Only tags inherited from refs"


class LengthOfMode(StrEnumWithDoc):
    REFS = "refs", "One slot per ref"
    EDGES = "edges", "One slot per edge"
    INPUT = "input", "One slot per input value"


@dataclass(frozen=True, slots=True)
class Literal:
    """A fixed array of numbers (a scalar is a one-element array)."""

    values: tuple[float, ...]


@dataclass(frozen=True, slots=True)
class InputValue:
    """The caller-supplied input array."""


@dataclass(frozen=True, slots=True)
class EdgeConstant:
    name: str


@dataclass(frozen=True, slots=True)
class ParentValue:
    property: str


@dataclass(frozen=True, slots=True)
class RootValue:
    property: str


@dataclass(frozen=True, slots=True)
class ResultValue:
    property: str


@dataclass(frozen=True, slots=True)
class Combine:
    combiner: CombinerType
    value: Expression


@dataclass(frozen=True, slots=True)
class ColorLiteral:
    text: str
    packed: float


@dataclass(frozen=True, slots=True)
class ColorRGB:
    red: Expression
    green: Expression
    blue: Expression
    alpha: Expression | None = None


@dataclass(frozen=True, slots=True)
class Gradient:
    progress: Expression
    start: Expression
    end: Expression


@dataclass(frozen=True, slots=True)
class Arithmetic:
    operator: BinaryOperator
    a: Expression
    b: Expression


@dataclass(frozen=True, slots=True)
class Unary:
    operator: UnaryOperator
    a: Expression


@dataclass(frozen=True, slots=True)
class Compare:
    comparator: Comparator
    a: Expression
    b: Expression


@dataclass(frozen=True, slots=True)
class If:
    condition: Expression
    then: Expression
    otherwise: Expression


@dataclass(frozen=True, slots=True)
class Filter:
    condition: Expression
    value: Expression
    default: Expression | None = None


@dataclass(frozen=True, slots=True)
class Clip:
    value: Expression
    low: Expression | None = None
    high: Expression | None = None


@dataclass(frozen=True, slots=True)
class RangeNormalize:
    """Map ``low..high`` onto ``0..1``."""

    value: Expression
    low: Expression
    high: Expression


@dataclass(frozen=True, slots=True)
class PercentDenormalize:
    """Map ``0..1`` onto ``low..high``."""

    value: Expression
    low: Expression
    high: Expression


@dataclass(frozen=True, slots=True)
class Collect:
    children: tuple[Expression, ...]


@dataclass(frozen=True, slots=True)
class LengthOf:
    mode: LengthOfMode
    value: Expression


@dataclass(frozen=True, slots=True)
class HasTag:
    tag: str
    which: TagScope = TagScope.ALL


@dataclass(frozen=True, slots=True)
class TagConstant:
    name: str
    which: TagScope = TagScope.ALL
    default: Expression | None = None


@dataclass(frozen=True, slots=True)
class Let:
    name: str
    value: Expression
    block: Expression


@dataclass(frozen=True, slots=True)
class Variable:
    name: str


@dataclass(frozen=True, slots=True)
class Log:
    value: Expression
    label: str = ""


type Expression = (
    Literal
    | InputValue
    | EdgeConstant
    | ParentValue
    | RootValue
    | ResultValue
    | Combine
    | ColorLiteral
    | ColorRGB
    | Gradient
    | Arithmetic
    | Unary
    | Compare
    | If
    | Filter
    | Clip
    | RangeNormalize
    | PercentDenormalize
    | Collect
    | LengthOf
    | HasTag
    | TagConstant
    | Let
    | Variable
    | Log
)


def children(expr: Expression) -> tuple[Expression, ...]:  # noqa: C901, PLR0911
    """Return the direct sub-expressions of `expr`, in evaluation order."""
    match expr:
        case Literal() | InputValue() | EdgeConstant() | ParentValue() | RootValue() | ResultValue():
            return ()
        case ColorLiteral() | HasTag() | Variable():
            return ()
        case Combine(value=value) | LengthOf(value=value) | Log(value=value):
            return (value,)
        case ColorRGB(red=red, green=green, blue=blue, alpha=alpha):
            return tuple(e for e in (red, green, blue, alpha) if e is not None)
        case Gradient(progress=progress, start=start, end=end):
            return (progress, start, end)
        case Arithmetic(a=a, b=b) | Compare(a=a, b=b):
            return (a, b)
        case Unary(a=a):
            return (a,)
        case If(condition=condition, then=then, otherwise=otherwise):
            return (condition, then, otherwise)
        case Filter(condition=condition, value=value, default=default):
            return tuple(e for e in (condition, value, default) if e is not None)
        case Clip(value=value, low=low, high=high):
            return tuple(e for e in (value, low, high) if e is not None)
        case RangeNormalize(value=value, low=low, high=high) | PercentDenormalize(value=value, low=low, high=high):
            return (value, low, high)
        case Collect(children=items):
            return items
        case TagConstant(default=default):
            return (default,) if default is not None else ()
        case Let(value=value, block=block):
            return (value, block)
        case _:
            assert_never(expr)


def walk(expr: Expression) -> list[Expression]:
    """Return `expr` and all of its descendants, parents before children."""
    result: list[Expression] = []
    stack = [expr]
    while stack:
        current = stack.pop()
        result.append(current)
        stack.extend(reversed(children(current)))
    return result


def required_capability(expr: Expression) -> Capability | None:  # noqa: PLR0911
    """Return the context capability `expr` itself needs, if any."""
    match expr:
        case EdgeConstant():
            return Capability.EDGE_CONSTANT
        case ParentValue():
            return Capability.PARENT_VALUE
        case RootValue():
            return Capability.ROOT_VALUE
        case ResultValue():
            return Capability.RESULT_VALUE
        case InputValue():
            return Capability.INPUT
        case HasTag():
            return Capability.TAG_HAS
        case TagConstant():
            return Capability.TAG_CONSTANT
        case LengthOf(mode=LengthOfMode.EDGES):
            return Capability.EDGE_CONSTANT
        case LengthOf(mode=LengthOfMode.REFS):
            return Capability.PARENT_VALUE
        case LengthOf(mode=LengthOfMode.INPUT):
            return Capability.INPUT
        case _:
            return None


def extract_dependencies(expr: Expression) -> tuple[str, ...]:
    """Collect every property name read through a result reference.

    Names are returned once each, in the order first encountered.
    """
    seen: dict[str, None] = {}
    for node in walk(expr):
        if isinstance(node, ResultValue):
            seen.setdefault(node.property, None)
    return tuple(seen)


def rewrite_properties(expr: Expression, old: str, new: str) -> Expression:  # noqa: C901, PLR0911
    """Return a copy of `expr` with property references to `old` renamed `new`.

    Only ref, root and result references are rewritten. The input tree is
    never modified; leaves that need no change are shared with the result.
    """

    def sub(child: Expression | None) -> Expression | None:
        return None if child is None else rewrite_properties(child, old, new)

    match expr:
        case ParentValue(property=name) | RootValue(property=name) | ResultValue(property=name):
            return replace(expr, property=new) if name == old else expr
        case Literal() | InputValue() | EdgeConstant() | ColorLiteral() | HasTag() | Variable():
            return expr
        case Combine() | LengthOf() | Log():
            return replace(expr, value=rewrite_properties(expr.value, old, new))
        case ColorRGB():
            return replace(expr, red=sub(expr.red), green=sub(expr.green), blue=sub(expr.blue), alpha=sub(expr.alpha))
        case Gradient():
            return replace(expr, progress=sub(expr.progress), start=sub(expr.start), end=sub(expr.end))
        case Arithmetic() | Compare():
            return replace(expr, a=sub(expr.a), b=sub(expr.b))
        case Unary():
            return replace(expr, a=sub(expr.a))
        case If():
            return replace(expr, condition=sub(expr.condition), then=sub(expr.then), otherwise=sub(expr.otherwise))
        case Filter():
            return replace(expr, condition=sub(expr.condition), value=sub(expr.value), default=sub(expr.default))
        case Clip():
            return replace(expr, value=sub(expr.value), low=sub(expr.low), high=sub(expr.high))
        case RangeNormalize() | PercentDenormalize():
            return replace(expr, value=sub(expr.value), low=sub(expr.low), high=sub(expr.high))
        case Collect():
            return replace(expr, children=tuple(rewrite_properties(c, old, new) for c in expr.children))
        case TagConstant():
            return replace(expr, default=sub(expr.default))
        case Let():
            return replace(expr, value=sub(expr.value), block=sub(expr.block))
        case _:
            assert_never(expr)


def reads_input(expr: Expression) -> bool:
    """Whether `expr` reads the input array anywhere in its tree."""
    return any(required_capability(node) is Capability.INPUT for node in walk(expr))

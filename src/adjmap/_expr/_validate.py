"""Static validation of parsed expressions against where they are used."""

from __future__ import annotations

from dataclasses import dataclass, field

from adjmap._constants import SYNTHETIC_CONSTANTS
from adjmap._errors import ExpressionError

from ._nodes import (
    Capability,
    EdgeConstant,
    Expression,
    HasTag,
    Let,
    ParentValue,
    ResultValue,
    RootValue,
    Variable,
    children,
    required_capability,
)


@dataclass(frozen=True, slots=True)
class ValidationContext:
    """What an expression may legally reference where it is used.

    Attributes:
        properties: Every property name of the map.
        constants: Edge constants declared for the owning property.
        dependencies: Property names a result reference may read. None means
            any property (used where every value is already final).
        tags: Every declared tag name.
        disallowed: Capability classes this context does not provide.
        owner: Human readable description of the expression's owner.

    """

    properties: frozenset[str]
    constants: frozenset[str] = frozenset()
    dependencies: frozenset[str] | None = None
    tags: frozenset[str] = frozenset()
    disallowed: frozenset[Capability] = field(default_factory=frozenset)
    owner: str = "expression"


def _check_node(expr: Expression, ctx: ValidationContext, path: str) -> None:  # noqa: C901
    capability = required_capability(expr)
    if capability is not None and capability in ctx.disallowed:
        msg = f"{capability.value} access is not available in {ctx.owner}"
        raise ExpressionError(msg, path)

    match expr:
        case EdgeConstant(name=name):
            if name not in ctx.constants and name not in SYNTHETIC_CONSTANTS:
                msg = f"constant '{name}' is not declared in the constants of {ctx.owner}"
                raise ExpressionError(msg, path)
        case ParentValue(property=name) | RootValue(property=name):
            if name not in ctx.properties:
                msg = f"'{name}' is not a defined property"
                raise ExpressionError(msg, path)
        case ResultValue(property=name):
            if name not in ctx.properties:
                msg = f"'{name}' is not a defined property"
                raise ExpressionError(msg, path)
            if ctx.dependencies is not None and name not in ctx.dependencies:
                msg = f"'{name}' is used in a result reference but is not declared in the dependencies of {ctx.owner}"
                raise ExpressionError(msg, path)
        case HasTag(tag=tag):
            if tag not in ctx.tags:
                msg = f"'{tag}' is not a defined tag"
                raise ExpressionError(msg, path)
        case _:
            pass


def _validate(expr: Expression, ctx: ValidationContext, path: str, bound: tuple[str, ...]) -> None:
    _check_node(expr, ctx, path)
    match expr:
        case Let(name=name, value=value, block=block):
            if name in bound:
                msg = f"let '{name}' shadows an enclosing let of the same name"
                raise ExpressionError(msg, path)
            _validate(value, ctx, f"{path}.value", bound)
            _validate(block, ctx, f"{path}.block", (*bound, name))
            return
        case Variable(name=name):
            if name not in bound:
                msg = f"variable '{name}' is not bound by an enclosing let"
                raise ExpressionError(msg, path)
            return
        case _:
            pass
    for i, child in enumerate(children(expr)):
        _validate(child, ctx, f"{path}[{i}]", bound)


def validate_expression(expr: Expression, ctx: ValidationContext, path: str = "value") -> None:
    """Check that `expr` is legal in `ctx`.

    Operators, combiners and comparators are already restricted to known
    values by the parser; this pass checks everything that depends on the
    surrounding definition: references, declared dependencies, capability
    classes and let/variable scoping.

    Raises:
        ExpressionError: On the first violation found.

    """
    _validate(expr, ctx, path, ())

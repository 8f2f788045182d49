"""Read-only inputs an expression is evaluated against."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import assert_never

from ._nodes import TagScope

_EMPTY: Mapping[str, float] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class TagMembership:
    """Which tags a node has, precomputed once per node.

    Attributes:
        own: Tags set directly on the node.
        all: Own tags plus tags inherited from refs.

    """

    own: frozenset[str] = frozenset()
    all: frozenset[str] = frozenset()

    @property
    def extended(self) -> frozenset[str]:
        return self.all - self.own

    def scope(self, which: TagScope) -> frozenset[str]:
        match which:
            case TagScope.ALL:
                return self.all
            case TagScope.SELF:
                return self.own
            case TagScope.EXTENDED:
                return self.extended
            case _:
                assert_never(which)

    def union(self, other: TagMembership) -> TagMembership:
        return TagMembership(own=self.own | other.own, all=self.all | other.all)


NO_TAGS = TagMembership()


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    """Everything an expression can read while it is evaluated.

    `edges` and `refs` are parallel: ``refs[i]`` holds the computed values of
    the node that ``edges[i]`` points at. Nothing here is ever mutated by the
    evaluator; `let` derives a new context with `bind`.

    Attributes:
        edges: Constants of each edge being evaluated, already merged with
            the property's declared defaults.
        refs: Computed values of each edge's ref node.
        root: Current values of the root node.
        partial: Values of the node computed so far (result references).
        input: Input array, when the caller supplies one.
        variables: Values bound by enclosing `let` expressions.
        tags: Tag membership of the node being evaluated.
        tag_constants: Declared tag constants, in tag declaration order.

    """

    edges: Sequence[Mapping[str, float]] = ()
    refs: Sequence[Mapping[str, float]] = ()
    root: Mapping[str, float] = _EMPTY
    partial: Mapping[str, float] = _EMPTY
    input: tuple[float, ...] | None = None
    variables: Mapping[str, tuple[float, ...]] = field(default_factory=lambda: MappingProxyType({}))
    tags: TagMembership = NO_TAGS
    tag_constants: Mapping[str, Mapping[str, float]] = field(default_factory=lambda: MappingProxyType({}))

    def bind(self, name: str, values: Sequence[float]) -> EvaluationContext:
        return replace(self, variables=MappingProxyType({**self.variables, name: tuple(values)}))

"""Canonical, immutable description of a map.

These are the structures the definition processor produces and the graph
engine consumes. They are never mutated after construction, so several
`AdjacencyMap` instances can share one `MapDefinition`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from ._combine import DEFAULT_COMBINER, CombinerType
from ._constants import IMPLIED_CONSTANT, ROOT_ID, bool_to_number
from ._str_enum_with_doc import StrEnumWithDoc

if TYPE_CHECKING:
    from ._expr import Expression

NodeID = str
PropertyName = str

NODE_DISPLAY_FIELDS = ("radius", "color", "opacity", "strokeWidth", "strokeColor", "strokeOpacity")
EDGE_DISPLAY_FIELDS = ("width", "color", "opacity", "distinct")
EDGE_COMBINER_DISPLAY_FIELDS = ("width", "color", "opacity")


class CalculateWhen(StrEnumWithDoc):
    """When a property is evaluated rather than inherited from root."""

    EDGES = "edges", "Only on nodes with at least one edge of the property's type"
    ALWAYS = "always", "On every node, even without edges of the property's type"


@dataclass(frozen=True, slots=True)
class PropertyDefinition:
    """A named numeric attribute every node has a value for.

    Attributes:
        name: The property (and edge type) name.
        value: Expression computing the per-edge values.
        combine: Reducer turning the per-edge values into the node's value.
        dependencies: Properties whose already computed values `value` may
            read through result references.
        implies: Property types automatically added as edges alongside an
            authored edge of this type.
        constants: Defaults for edge constants of this type.
        hide: Whether text dumps omit this property unless asked not to.
        display: Edge display overrides (width/color/opacity/distinct).

    """

    name: PropertyName
    value: Expression
    combine: CombinerType = DEFAULT_COMBINER
    dependencies: tuple[PropertyName, ...] = ()
    implies: tuple[PropertyName, ...] = ()
    constants: dict[str, float] = field(default_factory=dict)
    hide: bool = False
    description: str = ""
    display_name: str = ""
    usage: str = ""
    calculate_when: CalculateWhen = CalculateWhen.EDGES
    extend_tags: bool = False
    display: dict[str, Expression] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.display_name or self.name


@dataclass(frozen=True, slots=True)
class EdgeValue:
    """An authored edge. A missing `ref` means the implicit root."""

    type: PropertyName
    ref: NodeID | None = None
    constants: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ExpandedEdgeValue:
    """An edge as the engine sees it, authored or implied.

    Attributes:
        source: The node the edge belongs to.
        ref: The node the edge points at, ROOT_ID for the root.
        type: The property type of the edge.
        constants: Only the constants written on the edge itself.
        implied: True if the edge was synthesized from an `implies` rule.

    """

    source: NodeID
    ref: NodeID
    type: PropertyName
    constants: dict[str, float] = field(default_factory=dict)
    implied: bool = False

    def with_defaults(self, defaults: dict[str, float]) -> dict[str, float]:
        """Constants as evaluated: declared defaults, then the edge's own."""
        return {**defaults, **self.constants, IMPLIED_CONSTANT: bool_to_number(self.implied)}


@dataclass(frozen=True, slots=True)
class TagDefinition:
    name: str
    display_name: str = ""
    description: str = ""
    color: str | None = None
    constants: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NodeDefinition:
    """An authored node.

    Attributes:
        values: Explicit overrides that bypass computation entirely.
        edges: Authored edges, in authored order.
        tags: Tags set directly on the node.
        display: Node display overrides.

    """

    description: str = ""
    display_name: str = ""
    values: dict[PropertyName, float] = field(default_factory=dict)
    edges: tuple[EdgeValue, ...] = ()
    tags: tuple[str, ...] = ()
    display: dict[str, Expression] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ScenarioDefinition:
    """A named overlay of value overrides.

    `nodes` already includes everything inherited through `extends`. The
    root's overrides are stored under ROOT_ID.
    """

    name: str
    description: str = ""
    extends: str | None = None
    nodes: dict[NodeID, dict[PropertyName, Expression]] = field(default_factory=dict)

    @property
    def touches_root(self) -> bool:
        return ROOT_ID in self.nodes

    def overrides(self, node_id: NodeID) -> dict[PropertyName, Expression]:
        return self.nodes.get(node_id, {})

    def with_override(self, node_id: NodeID, prop: PropertyName, value: Expression) -> ScenarioDefinition:
        """Return a copy with `prop` of `node_id` overridden by `value`."""
        nodes = dict(self.nodes)
        nodes[node_id] = {**nodes.get(node_id, {}), prop: value}
        return replace(self, nodes=nodes)

    def without_override(self, node_id: NodeID, prop: PropertyName) -> ScenarioDefinition:
        """Return a copy without the override of `prop` on `node_id`.

        A node left with no overrides is dropped from the overlay entirely.
        """
        nodes = dict(self.nodes)
        remaining = {name: value for name, value in nodes.get(node_id, {}).items() if name != prop}
        if remaining:
            nodes[node_id] = remaining
        else:
            nodes.pop(node_id, None)
        return replace(self, nodes=nodes)


@dataclass(frozen=True, slots=True)
class MapDisplay:
    """Display expressions, fully merged from libraries and the map."""

    node: dict[str, Expression] = field(default_factory=dict)
    edge: dict[str, Expression] = field(default_factory=dict)
    edge_combiner: dict[str, Expression] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MapDefinition:
    """A fully resolved map: libraries merged, syntax normalized.

    Attributes:
        libraries: Libraries merged into this map, in merge order.
        properties: Property definitions, in merge order.
        root: Explicit default values of the root node.
        nodes: Authored nodes by id.
        scenarios: Scenario overlays by name.
        tags: Tag definitions, in declaration order.
        display: Display defaults.

    """

    version: int = 1
    description: str = ""
    libraries: tuple[str, ...] = ()
    properties: dict[PropertyName, PropertyDefinition] = field(default_factory=dict)
    root: dict[PropertyName, float] = field(default_factory=dict)
    nodes: dict[NodeID, NodeDefinition] = field(default_factory=dict)
    scenarios: dict[str, ScenarioDefinition] = field(default_factory=dict)
    tags: dict[str, TagDefinition] = field(default_factory=dict)
    display: MapDisplay = field(default_factory=MapDisplay)

"""Graph engine: validates a `MapDefinition` and computes node values.

An `AdjacencyMap` owns one immutable `MapDefinition` plus the name of the
active scenario. Everything derived from them is computed on first access and
kept in explicit cache fields:

- expanded edges and tag membership per node (never invalidated, they do not
  depend on the scenario);
- computed values and render edges per node;
- root values.

`_invalidate_for_transition` is the only place that drops cached state when
the active scenario changes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from types import MappingProxyType

from ._combine import combine
from ._constants import NULL_SENTINEL, RESERVED_EDGE_FIELDS, ROOT_DISPLAY_NAME, ROOT_ID
from ._errors import MapDefinitionError
from ._expr import (
    Capability,
    EvaluationContext,
    Expression,
    Literal,
    TagMembership,
    ValidationContext,
    evaluate,
    reads_input,
    validate_expression,
)
from ._graph import CycleError, DependencyGraph, topological_sort
from ._models import (
    CalculateWhen,
    ExpandedEdgeValue,
    MapDefinition,
    NodeDefinition,
    NodeID,
    PropertyName,
    ScenarioDefinition,
)
from ._render import EdgeGroup, NodeRender, RenderEdge, derive_render_edges, render_node

logger = logging.getLogger(__name__)

DEFAULT_SCENARIO = ""
"""The unnamed scenario: no overlay at all."""

PROPERTY_VALUE_DISALLOWED = frozenset({Capability.INPUT})
EDGE_DISPLAY_DISALLOWED = frozenset({Capability.INPUT})
EDGE_COMBINER_DISALLOWED = frozenset(
    {Capability.EDGE_CONSTANT, Capability.PARENT_VALUE, Capability.TAG_HAS, Capability.TAG_CONSTANT},
)
NODE_DISPLAY_DISALLOWED = frozenset({Capability.EDGE_CONSTANT, Capability.PARENT_VALUE, Capability.INPUT})
SCENARIO_DISALLOWED = frozenset({Capability.EDGE_CONSTANT, Capability.PARENT_VALUE})

_EMPTY_SCENARIO = ScenarioDefinition(name=DEFAULT_SCENARIO)


def format_number(value: float) -> str:
    if value == NULL_SENTINEL:
        return "null"
    return f"{value:.6g}"


class AdjacencyMapNode:
    """Read-only view of one node (or the root) of an `AdjacencyMap`."""

    def __init__(self, adjacency_map: AdjacencyMap, node_id: NodeID, definition: NodeDefinition) -> None:
        self.map = adjacency_map
        self.id = node_id
        self.definition = definition

    def __repr__(self) -> str:
        return f"AdjacencyMapNode({self.id!r})"

    @property
    def is_root(self) -> bool:
        return self.id == ROOT_ID

    @property
    def description(self) -> str:
        return self.definition.description

    @property
    def display_name(self) -> str:
        if self.definition.display_name:
            return self.definition.display_name
        return ROOT_DISPLAY_NAME if self.is_root else self.id

    @property
    def values(self) -> Mapping[PropertyName, float]:
        """Computed values under the active scenario."""
        if self.is_root:
            return self.map.root_values
        return MappingProxyType(self.map._values(self.id))  # noqa: SLF001

    @property
    def edges(self) -> tuple[ExpandedEdgeValue, ...]:
        """Authored edges followed by implied ones."""
        return self.map._expanded_edges(self.id)  # noqa: SLF001

    @property
    def render_edges(self) -> tuple[RenderEdge, ...]:
        if self.is_root:
            return ()
        return self.map._render_edges(self.id)  # noqa: SLF001

    @property
    def parents(self) -> list[NodeID]:
        """Distinct refs of this node's edges, in edge order, without the root."""
        return [ref for ref in dict.fromkeys(edge.ref for edge in self.edges) if ref != ROOT_ID]

    @property
    def children(self) -> list[NodeID]:
        """Nodes with at least one edge pointing at this node, in declaration order."""
        referencing = self.map._node_graph.successors(self.id)  # noqa: SLF001
        return [node_id for node_id in self.map.node_ids if node_id in referencing]

    @property
    def tags(self) -> TagMembership:
        """Tag membership merged over every property."""
        membership = TagMembership(own=frozenset(self.definition.tags), all=frozenset(self.definition.tags))
        for per_property in self.map._tags(self.id).values():  # noqa: SLF001
            membership = membership.union(per_property)
        return membership

    def render(self) -> NodeRender:
        """Evaluate the node display expressions under the active scenario."""
        display = {**self.map.definition.display.node, **self.definition.display}
        ctx = EvaluationContext(
            root=self.map.root_values,
            partial=self.values,
            tags=self.tags,
            tag_constants=self.map._tag_constants,  # noqa: SLF001
        )
        return render_node(display, ctx)

    def format_values(self, *, include_hidden: bool = False) -> str:
        """Human readable dump of this node's values."""
        return self.map.format_values(self.display_name, self.values, include_hidden=include_hidden)


class AdjacencyMap:
    """A validated map with lazily computed, scenario dependent values.

    Args:
        definition: The canonical definition, usually from `process_definition`.
        scenario_name: The initially active scenario ("" for none).

    Raises:
        MapDefinitionError: If the definition does not validate as a whole.

    """

    def __init__(self, definition: MapDefinition, scenario_name: str = DEFAULT_SCENARIO) -> None:
        self.definition = definition
        self._scenario_name = DEFAULT_SCENARIO
        self._tag_constants = MappingProxyType(
            {name: MappingProxyType(dict(tag.constants)) for name, tag in definition.tags.items()},
        )

        self._property_order = self._validate()
        self._node_graph = DependencyGraph.from_edges(
            ((edge.ref or ROOT_ID, node_id) for node_id, node in definition.nodes.items() for edge in node.edges),
            nodes=[ROOT_ID, *definition.nodes],
        )
        try:
            node_order = self._node_graph.topological_order()
        except CycleError as e:
            msg = f"Edges between nodes form a cycle among {sorted(map(str, e.remaining))!r}"
            raise MapDefinitionError(msg) from e
        self._node_position = {node_id: i for i, node_id in enumerate(node_order)}
        logger.debug("Property evaluation order: %s", self._property_order)

        self._nodes: dict[NodeID, AdjacencyMapNode] = {}
        self._edge_cache: dict[NodeID, tuple[ExpandedEdgeValue, ...]] = {}
        self._tag_cache: dict[NodeID, dict[PropertyName, TagMembership]] = {}
        self._value_cache: dict[NodeID, dict[PropertyName, float]] = {}
        self._render_cache: dict[NodeID, tuple[RenderEdge, ...]] = {}
        self._root_values: Mapping[PropertyName, float] | None = None

        if scenario_name != DEFAULT_SCENARIO:
            self.scenario_name = scenario_name

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(self) -> list[PropertyName]:
        """Validate the whole definition and return the property order."""
        definition = self.definition
        properties = frozenset(definition.properties)
        tags = frozenset(definition.tags)

        order = self._validate_properties()

        for name in definition.root:
            if name not in properties:
                msg = f"root: '{name}' is not a defined property"
                raise MapDefinitionError(msg)

        display = definition.display
        for key, expr in display.node.items():
            self._check(expr, path=f"display.node.{key}", owner="node display", disallowed=NODE_DISPLAY_DISALLOWED)
        for key, expr in display.edge_combiner.items():
            self._check(
                expr,
                path=f"display.edgeCombiner.{key}",
                owner="edge combiner display",
                disallowed=EDGE_COMBINER_DISALLOWED,
            )

        for node_id, node in definition.nodes.items():
            self._validate_node(node_id, node, properties, tags)

        self._validate_scenarios(properties)
        return order

    def _check(
        self,
        expr: Expression,
        *,
        path: str,
        owner: str,
        disallowed: frozenset[Capability],
        constants: Iterable[str] = (),
        dependencies: Iterable[str] | None = None,
    ) -> None:
        ctx = ValidationContext(
            properties=frozenset(self.definition.properties),
            constants=frozenset(constants),
            dependencies=frozenset(dependencies) if dependencies is not None else None,
            tags=frozenset(self.definition.tags),
            disallowed=disallowed,
            owner=owner,
        )
        validate_expression(expr, ctx, path)

    def _validate_properties(self) -> list[PropertyName]:
        properties = self.definition.properties
        for name, prop in properties.items():
            path = f"properties.{name}"
            for dependency in prop.dependencies:
                if dependency not in properties:
                    msg = f"{path}.dependencies: '{dependency}' is not a defined property"
                    raise MapDefinitionError(msg)
            for implied in prop.implies:
                if implied not in properties:
                    msg = f"{path}.implies: '{implied}' is not a defined property"
                    raise MapDefinitionError(msg)
            reserved = sorted(set(prop.constants) & RESERVED_EDGE_FIELDS)
            if reserved:
                msg = f"{path}.constants: {reserved!r} are reserved edge field names"
                raise MapDefinitionError(msg)

            self._check(
                prop.value,
                path=f"{path}.value",
                owner=f"property '{name}'",
                disallowed=PROPERTY_VALUE_DISALLOWED,
                constants=prop.constants,
                dependencies=prop.dependencies,
            )
            # Edges of this type evaluate the map edge display overlaid by the
            # property's own, against this property's constants only.
            for key, expr in {**self.definition.display.edge, **prop.display}.items():
                self._check(
                    expr,
                    path=f"{path}.display.{key}" if key in prop.display else f"display.edge.{key}",
                    owner=f"edge display of '{name}'",
                    disallowed=EDGE_DISPLAY_DISALLOWED,
                    constants=prop.constants,
                )

        try:
            # property -> its dependencies, so dependents come out first
            order = topological_sort({name: prop.dependencies for name, prop in properties.items()})
        except CycleError as e:
            msg = f"Property dependencies form a cycle among {sorted(map(str, e.remaining))!r}"
            raise MapDefinitionError(msg) from e
        order.reverse()
        return order

    def _validate_node(
        self,
        node_id: NodeID,
        node: NodeDefinition,
        properties: frozenset[PropertyName],
        tags: frozenset[str],
    ) -> None:
        path = f"nodes.{node_id}"
        if node_id == ROOT_ID:
            msg = "Node ids may not be empty: the empty id is reserved for the root"
            raise MapDefinitionError(msg)
        for name in node.values:
            if name not in properties:
                msg = f"{path}.values: '{name}' is not a defined property"
                raise MapDefinitionError(msg)
        for tag in node.tags:
            if tag not in tags:
                msg = f"{path}.tags: '{tag}' is not a defined tag"
                raise MapDefinitionError(msg)
        for i, edge in enumerate(node.edges):
            if edge.type not in properties:
                msg = f"{path}.edges[{i}]: edge type '{edge.type}' is not a defined property"
                raise MapDefinitionError(msg)
            if edge.ref is not None and edge.ref not in self.definition.nodes:
                msg = f"{path}.edges[{i}]: ref '{edge.ref}' is not a defined node"
                raise MapDefinitionError(msg)
            reserved = sorted(set(edge.constants) & RESERVED_EDGE_FIELDS)
            if reserved:
                msg = f"{path}.edges[{i}]: {reserved!r} are reserved edge field names"
                raise MapDefinitionError(msg)
        for key, expr in node.display.items():
            self._check(
                expr,
                path=f"{path}.display.{key}",
                owner=f"node display of '{node_id}'",
                disallowed=NODE_DISPLAY_DISALLOWED,
            )

    def _validate_scenarios(self, properties: frozenset[PropertyName]) -> None:
        for name, scenario in self.definition.scenarios.items():
            if name == DEFAULT_SCENARIO:
                msg = "The default scenario (empty name) may not be declared explicitly"
                raise MapDefinitionError(msg)
            for node_id, overrides in scenario.nodes.items():
                if node_id != ROOT_ID and node_id not in self.definition.nodes:
                    msg = f"scenarios.{name}: '{node_id}' is not a defined node"
                    raise MapDefinitionError(msg)
                for prop, expr in overrides.items():
                    if prop not in properties:
                        msg = f"scenarios.{name}.{node_id or 'root'}: '{prop}' is not a defined property"
                        raise MapDefinitionError(msg)
                    self._check(
                        expr,
                        path=f"scenarios.{name}.{node_id or 'root'}.{prop}",
                        owner=f"scenario '{name}'",
                        disallowed=SCENARIO_DISALLOWED,
                    )

    # =========================================================================
    # Scenario
    # =========================================================================

    @property
    def scenario_name(self) -> str:
        return self._scenario_name

    @scenario_name.setter
    def scenario_name(self, name: str) -> None:
        if name != DEFAULT_SCENARIO and name not in self.definition.scenarios:
            msg = f"Unknown scenario: {name!r}"
            raise MapDefinitionError(msg)
        if name == self._scenario_name:
            return
        previous = self.scenario
        self._scenario_name = name
        self._invalidate_for_transition(previous, self.scenario)

    @property
    def scenario(self) -> ScenarioDefinition:
        """The active overlay (empty for the default scenario)."""
        return self.definition.scenarios.get(self._scenario_name, _EMPTY_SCENARIO)

    @property
    def scenario_names(self) -> list[str]:
        """Declared scenarios. The default scenario "" is always valid too."""
        return list(self.definition.scenarios)

    def _invalidate_for_transition(self, previous: ScenarioDefinition, current: ScenarioDefinition) -> None:
        """Drop every cache the scenario change could affect.

        Values and render edges are always dropped, since a changed upstream
        node changes what downstream nodes read. Root values are dropped only
        if either scenario overrides the root.
        """
        root_touched = previous.touches_root or current.touches_root
        logger.debug(
            "Scenario %r -> %r: dropping %d cached nodes%s",
            previous.name,
            current.name,
            len(self._value_cache),
            " and root values" if root_touched else "",
        )
        self._value_cache.clear()
        self._render_cache.clear()
        if root_touched:
            self._root_values = None

    def invalidate_caches(self) -> None:
        """Drop every cached derived value, scenario independent ones included."""
        logger.debug("Dropping all caches")
        self._edge_cache.clear()
        self._tag_cache.clear()
        self._value_cache.clear()
        self._render_cache.clear()
        self._root_values = None

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def property_names(self) -> list[PropertyName]:
        """Property names, every property after the ones it depends on."""
        return list(self._property_order)

    @property
    def node_ids(self) -> list[NodeID]:
        return list(self.definition.nodes)

    def node(self, node_id: NodeID) -> AdjacencyMapNode:
        if node_id not in self._nodes:
            if node_id == ROOT_ID:
                definition = NodeDefinition(description="Default values of every property")
            elif node_id in self.definition.nodes:
                definition = self.definition.nodes[node_id]
            else:
                msg = f"Unknown node: {node_id!r}"
                raise KeyError(msg)
            self._nodes[node_id] = AdjacencyMapNode(self, node_id, definition)
        return self._nodes[node_id]

    @property
    def root(self) -> AdjacencyMapNode:
        return self.node(ROOT_ID)

    @property
    def nodes(self) -> list[AdjacencyMapNode]:
        return [self.node(node_id) for node_id in self.definition.nodes]

    @property
    def edges(self) -> list[ExpandedEdgeValue]:
        """Expanded edges of every node, in node declaration order."""
        return [edge for node_id in self.definition.nodes for edge in self._expanded_edges(node_id)]

    @property
    def root_values(self) -> Mapping[PropertyName, float]:
        """Zero for every property, overlaid by root defaults, then the scenario."""
        if self._root_values is None:
            values = dict.fromkeys(self.definition.properties, 0.0)
            values.update(self.definition.root)
            for prop, expr in self.scenario.overrides(ROOT_ID).items():
                values[prop] = self._apply_override(prop, expr, values[prop], values, values)
            self._root_values = MappingProxyType(values)
        return self._root_values

    def summary_values(self) -> dict[PropertyName, float]:
        """Every node's value of each property, reduced by that property's combiner."""
        nodes = self.nodes
        return {
            name: combine(self.definition.properties[name].combine, [node.values[name] for node in nodes])
            for name in self._property_order
        }

    def format_values(
        self,
        title: str,
        values: Mapping[PropertyName, float],
        *,
        include_hidden: bool = False,
    ) -> str:
        """Render `values` as one ``label: value`` line per property."""
        lines = [title]
        for name in self._property_order:
            prop = self.definition.properties[name]
            if prop.hide and not include_hidden:
                continue
            lines.append(f"  {prop.label}: {format_number(values[name])}")
        return "\n".join(lines)

    def format_summary(self, *, include_hidden: bool = False) -> str:
        return self.format_values("Summary", self.summary_values(), include_hidden=include_hidden)

    # =========================================================================
    # Derivation
    # =========================================================================

    def _ensure(self, node_id: NodeID, cache: Mapping[NodeID, object], compute: Callable[[NodeID], None]) -> None:
        """Compute `node_id` and every uncached node it depends on, refs first."""
        if node_id in cache:
            return
        pending = [n for n in self._node_graph.ancestors(node_id) if n != ROOT_ID and n not in cache]
        pending.sort(key=self._node_position.__getitem__)
        for ancestor in [*pending, node_id]:
            compute(ancestor)

    def _expanded_edges(self, node_id: NodeID) -> tuple[ExpandedEdgeValue, ...]:
        """Authored edges in order, then implied edges grouped by ref.

        For each ref, every type named by the `implies` of an authored edge
        type is added once, unless an edge of that type to that ref was
        authored. Implied edges never imply further edges.
        """
        if node_id in self._edge_cache:
            return self._edge_cache[node_id]
        if node_id == ROOT_ID:
            return ()
        properties = self.definition.properties
        authored = [
            ExpandedEdgeValue(source=node_id, ref=edge.ref or ROOT_ID, type=edge.type, constants=dict(edge.constants))
            for edge in self.definition.nodes[node_id].edges
        ]

        types_by_ref: dict[NodeID, dict[PropertyName, None]] = {}
        for edge in authored:
            types_by_ref.setdefault(edge.ref, {})[edge.type] = None

        implied: list[ExpandedEdgeValue] = []
        for ref, types in types_by_ref.items():
            added: dict[PropertyName, None] = {}
            for edge_type in types:
                for implied_type in properties[edge_type].implies:
                    if implied_type not in types and implied_type not in added:
                        added[implied_type] = None
            implied.extend(
                ExpandedEdgeValue(
                    source=node_id,
                    ref=ref,
                    type=implied_type,
                    constants=dict(properties[implied_type].constants),
                    implied=True,
                )
                for implied_type in added
            )

        edges = (*authored, *implied)
        self._edge_cache[node_id] = edges
        return edges

    def _tags(self, node_id: NodeID) -> dict[PropertyName, TagMembership]:
        if node_id == ROOT_ID:
            return dict.fromkeys(self.definition.properties, TagMembership())
        self._ensure(node_id, self._tag_cache, self._compute_tags)
        return self._tag_cache[node_id]

    def _compute_tags(self, node_id: NodeID) -> None:
        own = frozenset(self.definition.nodes[node_id].tags)
        result: dict[PropertyName, TagMembership] = {}
        for name, prop in self.definition.properties.items():
            tags = own
            if prop.extend_tags:
                for edge in self._expanded_edges(node_id):
                    if edge.type == name and edge.ref != ROOT_ID:
                        tags |= self._tag_cache[edge.ref][name].all
            result[name] = TagMembership(own=own, all=tags)
        self._tag_cache[node_id] = result

    def _ref_values(self, ref: NodeID) -> Mapping[PropertyName, float]:
        if ref == ROOT_ID:
            return self.root_values
        return MappingProxyType(self._value_cache[ref])

    def _values(self, node_id: NodeID) -> dict[PropertyName, float]:
        self._ensure(node_id, self._value_cache, self._compute_values)
        return self._value_cache[node_id]

    def _apply_override(
        self,
        prop: PropertyName,
        expr: Expression,
        base: float | None,
        partial: Mapping[PropertyName, float],
        root: Mapping[PropertyName, float],
        tags: TagMembership | None = None,
    ) -> float:
        """Value of a scenario override; `base` is only needed if it reads ``input``.

        A plain number is used as is. An expression goes through the
        property's combiner.
        """
        if isinstance(expr, Literal) and len(expr.values) == 1:
            return expr.values[0]
        ctx = EvaluationContext(
            root=MappingProxyType(dict(root)),
            partial=MappingProxyType(dict(partial)),
            input=(base,) if base is not None else None,
            tags=tags if tags is not None else TagMembership(),
            tag_constants=self._tag_constants,
        )
        return combine(self.definition.properties[prop].combine, evaluate(expr, ctx))

    def _base_value(
        self,
        name: PropertyName,
        edges: Sequence[ExpandedEdgeValue],
        values: Mapping[PropertyName, float],
        tags: TagMembership,
    ) -> float:
        """The property expression combined over the node's edges of its type."""
        prop = self.definition.properties[name]
        root = self.root_values
        typed = [edge for edge in edges if edge.type == name]
        if not typed and prop.calculate_when is CalculateWhen.EDGES:
            return root[name]
        ctx = EvaluationContext(
            edges=[MappingProxyType(edge.with_defaults(prop.constants)) for edge in typed],
            refs=[self._ref_values(edge.ref) for edge in typed],
            root=root,
            partial=MappingProxyType(dict(values)),
            tags=tags,
            tag_constants=self._tag_constants,
        )
        return combine(prop.combine, evaluate(prop.value, ctx))

    def _compute_values(self, node_id: NodeID) -> None:
        """Compute every property of `node_id`; its refs must already be cached.

        Per property, in dependency order: an explicit node value wins, then a
        scenario override, then the property expression combined over the
        node's edges of that type. A node without such edges inherits the root
        value unless the property is calculated always. The property
        expression is skipped under an override that does not read the
        would-be value as ``input``.
        """
        node = self.definition.nodes[node_id]
        overrides = self.scenario.overrides(node_id)
        root = self.root_values
        edges = self._expanded_edges(node_id)
        tags = self._tags(node_id)
        values: dict[PropertyName, float] = {}

        for name in self._property_order:
            if name in node.values:
                values[name] = node.values[name]
                continue

            override = overrides.get(name)
            if override is None:
                values[name] = self._base_value(name, edges, values, tags[name])
                continue
            base = self._base_value(name, edges, values, tags[name]) if reads_input(override) else None
            values[name] = self._apply_override(name, override, base, values, root, tags[name])

        logger.debug("Computed values of %r: %s", node_id, values)
        self._value_cache[node_id] = values

    def _render_edges(self, node_id: NodeID) -> tuple[RenderEdge, ...]:
        if node_id in self._render_cache:
            return self._render_cache[node_id]
        values = MappingProxyType(dict(self._values(node_id)))
        root = self.root_values
        tags = self._tags(node_id)
        display = self.definition.display

        grouped: dict[tuple[NodeID, PropertyName], list[ExpandedEdgeValue]] = {}
        for edge in self._expanded_edges(node_id):
            grouped.setdefault((edge.ref, edge.type), []).append(edge)

        groups: list[EdgeGroup] = []
        for (ref, edge_type), typed in grouped.items():
            prop = self.definition.properties[edge_type]
            ref_values = self._ref_values(ref)
            ctx = EvaluationContext(
                edges=[MappingProxyType(edge.with_defaults(prop.constants)) for edge in typed],
                refs=[ref_values] * len(typed),
                root=root,
                partial=values,
                tags=tags[edge_type],
                tag_constants=self._tag_constants,
            )
            groups.append(
                EdgeGroup(
                    ref=ref,
                    type=edge_type,
                    edges=tuple(typed),
                    display={**display.edge, **prop.display},
                    context=ctx,
                ),
            )

        combiner_ctx = EvaluationContext(root=root, partial=values, tag_constants=self._tag_constants)
        render_edges = derive_render_edges(node_id, groups, display.edge_combiner, combiner_ctx)
        self._render_cache[node_id] = render_edges
        return render_edges

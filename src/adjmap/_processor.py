"""Definition processor: raw author-facing definition -> `MapDefinition`.

Processing order:
1. Resolve the library import closure (``core`` always comes first).
2. Merge library properties, root defaults, tags and display, in import
   order, then the map's own entries (later entries win by name).
3. Normalize every node's edge syntax into one canonical `EdgeValue` list,
   folding inline constants into numbers.
4. Parse expressions, rewrite the ``"."`` self placeholder and attach each
   property's dependencies (extracted unless declared).
5. Normalize scenarios, resolving ``extends`` chains.

Cross-reference validation of the result is the graph engine's job.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from ._combine import DEFAULT_COMBINER, CombinerType
from ._constants import RESERVED_EDGE_FIELDS, ROOT_ID, SELF_PROPERTY
from ._errors import MapDefinitionError
from ._expr import Expression, extract_dependencies, leaf_to_number, parse_expression, rewrite_properties
from ._graph import CycleError, topological_sort
from ._library import CORE_LIBRARY_NAME, DEFAULT_LIBRARIES, LibrarySet
from ._models import (
    EDGE_COMBINER_DISPLAY_FIELDS,
    EDGE_DISPLAY_FIELDS,
    NODE_DISPLAY_FIELDS,
    CalculateWhen,
    EdgeValue,
    MapDefinition,
    MapDisplay,
    NodeDefinition,
    PropertyDefinition,
    ScenarioDefinition,
    TagDefinition,
)
from ._raw import (
    RawDisplay,
    RawImpliesExclude,
    RawLibrary,
    RawMapDefinition,
    RawNodeDefinition,
    RawPropertyDefinition,
    RawScenario,
)

logger = logging.getLogger(__name__)

WILDCARD = "*"


# =============================================================================
# Libraries
# =============================================================================


def resolve_imports(imports: list[str], libraries: LibrarySet) -> list[str]:
    """Return the library names to merge, dependencies before dependents.

    ``core`` is always first. Libraries reached more than once (diamond
    imports) are merged once, at their first position.

    Raises:
        MapDefinitionError: If a library is unknown or imports form a cycle.

    """
    order: list[str] = []
    visiting: list[str] = []

    def visit(name: str) -> None:
        if name in order:
            return
        if name in visiting:
            chain = " -> ".join([*visiting, name])
            msg = f"Library imports form a cycle: {chain}"
            raise MapDefinitionError(msg)
        if name not in libraries:
            msg = f"Unknown library: {name!r}"
            raise MapDefinitionError(msg)
        visiting.append(name)
        for dependency in libraries[name].imports:
            visit(dependency)
        visiting.pop()
        order.append(name)

    for name in [CORE_LIBRARY_NAME, *imports]:
        visit(name)
    return order


def _merge_display(target: dict[str, dict[str, Any]], display: RawDisplay) -> None:
    target["node"].update(display.node)
    target["edge"].update(display.edge)
    target["edge_combiner"].update(display.edge_combiner)


# =============================================================================
# Leaves and expressions
# =============================================================================


def _fold_number(value: object, path: str) -> float:
    number = leaf_to_number(value)
    if number is None:
        msg = f"{path}: expected a number, boolean or null, got {value!r}"
        raise MapDefinitionError(msg)
    return number


def _fold_numbers(values: Mapping[str, Any], path: str) -> dict[str, float]:
    return {name: _fold_number(value, f"{path}.{name}") for name, value in values.items()}


def _parse(raw: Any, path: str, owner: str | None = None) -> Expression:
    expr = parse_expression(raw, path)
    if owner is not None:
        expr = rewrite_properties(expr, SELF_PROPERTY, owner)
    return expr


def _parse_display(raw: Mapping[str, Any], fields: tuple[str, ...], path: str, owner: str | None = None) -> dict[str, Expression]:
    result: dict[str, Expression] = {}
    for key, value in raw.items():
        if key not in fields:
            msg = f"{path}: unknown display setting {key!r} (expected one of {', '.join(fields)})"
            raise MapDefinitionError(msg)
        result[key] = _parse(value, f"{path}.{key}", owner)
    return result


# =============================================================================
# Properties
# =============================================================================


def _resolve_implies(name: str, implies: object, all_names: list[str]) -> tuple[str, ...]:
    others = [other for other in all_names if other != name]
    if implies is None:
        return ()
    if implies == WILDCARD:
        return tuple(others)
    if isinstance(implies, RawImpliesExclude):
        excluded = set(implies.exclude)
        unknown = excluded - set(all_names)
        if unknown:
            msg = f"properties.{name}.implies excludes unknown properties: {sorted(unknown)!r}"
            raise MapDefinitionError(msg)
        return tuple(other for other in others if other not in excluded)
    names = list(dict.fromkeys(implies))  # type: ignore[call-overload]
    unknown = [implied for implied in names if implied not in all_names]
    if unknown:
        msg = f"properties.{name}.implies names unknown properties: {unknown!r}"
        raise MapDefinitionError(msg)
    return tuple(implied for implied in names if implied != name)


def _process_property(name: str, raw: RawPropertyDefinition, all_names: list[str]) -> PropertyDefinition:
    path = f"properties.{name}"
    if not name or name == SELF_PROPERTY:
        msg = f"Illegal property name: {name!r}"
        raise MapDefinitionError(msg)

    value = _parse(raw.value, f"{path}.value", name)

    try:
        combine = CombinerType.parse(raw.combine, "combiner") if raw.combine is not None else DEFAULT_COMBINER
    except ValueError as e:
        msg = f"{path}.combine: {e}"
        raise MapDefinitionError(msg) from None

    constants = _fold_numbers(raw.constants, f"{path}.constants")
    reserved = sorted(set(constants) & RESERVED_EDGE_FIELDS)
    if reserved:
        msg = f"{path}.constants: {reserved!r} are reserved edge field names"
        raise MapDefinitionError(msg)

    if raw.dependencies is not None:
        dependencies = tuple(dict.fromkeys(name if dep == SELF_PROPERTY else dep for dep in raw.dependencies))
    else:
        dependencies = extract_dependencies(value)

    return PropertyDefinition(
        name=name,
        value=value,
        combine=combine,
        dependencies=dependencies,
        implies=_resolve_implies(name, raw.implies, all_names),
        constants=constants,
        hide=raw.hide,
        description=raw.description,
        display_name=raw.display_name,
        usage=raw.usage,
        calculate_when=CalculateWhen(raw.calculate_when),
        extend_tags=raw.extend_tags,
        display=_parse_display(raw.display, EDGE_DISPLAY_FIELDS, f"{path}.display", name),
    )


# =============================================================================
# Edges
# =============================================================================


def _edge(raw: Any, path: str, *, type_: str | None = None, ref: str | None = None) -> EdgeValue:
    """Build one edge from an edge mapping plus keys implied by its position."""
    if not isinstance(raw, Mapping):
        msg = f"{path}: an edge must be a mapping, got {raw!r}"
        raise MapDefinitionError(msg)
    edge_type = raw.get("type", type_)
    edge_ref = raw.get("ref", ref)
    if type_ is not None and edge_type != type_:
        msg = f"{path}: edge type {edge_type!r} conflicts with its position under {type_!r}"
        raise MapDefinitionError(msg)
    if ref is not None and edge_ref != ref:
        msg = f"{path}: edge ref {edge_ref!r} conflicts with its position under {ref!r}"
        raise MapDefinitionError(msg)
    if not isinstance(edge_type, str) or not edge_type:
        msg = f"{path}: edge has no type"
        raise MapDefinitionError(msg)
    if edge_ref is not None and not isinstance(edge_ref, str):
        msg = f"{path}: edge ref must be a string, got {edge_ref!r}"
        raise MapDefinitionError(msg)

    constants: dict[str, float] = {}
    for key, value in raw.items():
        if key in ("type", "ref"):
            continue
        if key in RESERVED_EDGE_FIELDS:
            msg = f"{path}: {key!r} is a reserved edge field name"
            raise MapDefinitionError(msg)
        constants[key] = _fold_number(value, f"{path}.{key}")
    return EdgeValue(type=edge_type, ref=edge_ref or None, constants=constants)


def _edges_under(raw: Any, path: str, *, type_: str | None = None, ref: str | None = None) -> list[EdgeValue]:
    """Edges below a first-level key: one edge mapping or a list of them."""
    if isinstance(raw, list):
        return [_edge(item, f"{path}[{i}]", type_=type_, ref=ref) for i, item in enumerate(raw)]
    return [_edge(raw, path, type_=type_, ref=ref)]


def normalize_edges(
    raw: list[dict[str, Any]] | dict[str, Any] | None,
    path: str,
    property_names: Mapping[str, object],
    node_ids: Mapping[str, object],
) -> tuple[EdgeValue, ...]:
    """Normalize the three accepted edge syntaxes into one edge list.

    Accepted forms:
    - a list of edge mappings, each with ``type`` and optional ``ref``;
    - a mapping keyed by target node id, then by property type (or a list
      of edge mappings carrying ``type``);
    - a mapping keyed by property type, then by target node id (or a list
      of edge mappings carrying ``ref``).

    A first-level key is read as a property type if it names a property and
    not a node, as a target if it names a node (or is the root's empty id).
    """
    if raw is None:
        return ()
    if isinstance(raw, list):
        return tuple(_edge(item, f"{path}[{i}]") for i, item in enumerate(raw))

    edges: list[EdgeValue] = []
    for key, value in raw.items():
        key_path = f"{path}.{key}"
        is_type = key in property_names
        is_target = key in node_ids or key == ROOT_ID
        if is_type and is_target:
            msg = f"{key_path}: {key!r} is both a property and a node id, use the list edge syntax"
            raise MapDefinitionError(msg)
        if not is_type and not is_target:
            msg = f"{key_path}: {key!r} is neither a property nor a node id"
            raise MapDefinitionError(msg)

        if isinstance(value, Mapping) and "type" not in value and "ref" not in value:
            # Second level is keyed as well.
            for inner_key, inner in value.items():
                inner_path = f"{key_path}.{inner_key}"
                if is_type:
                    edges.extend(_edges_under(inner, inner_path, type_=key, ref=inner_key))
                else:
                    edges.extend(_edges_under(inner, inner_path, type_=inner_key, ref=key))
        elif is_type:
            edges.extend(_edges_under(value, key_path, type_=key))
        else:
            edges.extend(_edges_under(value, key_path, ref=key))
    return tuple(edges)


def _process_node(
    node_id: str,
    raw: RawNodeDefinition,
    properties: Mapping[str, object],
    node_ids: Mapping[str, object],
) -> NodeDefinition:
    path = f"nodes.{node_id}"
    return NodeDefinition(
        description=raw.description,
        display_name=raw.display_name,
        values=_fold_numbers(raw.values, f"{path}.values"),
        edges=normalize_edges(raw.edges, f"{path}.edges", properties, node_ids),
        tags=tuple(dict.fromkeys(raw.tags)),
        display=_parse_display(raw.display, NODE_DISPLAY_FIELDS, f"{path}.display"),
    )


# =============================================================================
# Scenarios
# =============================================================================


def _scenario_overrides(name: str, raw: RawScenario) -> dict[str, dict[str, Expression]]:
    path = f"scenarios.{name}"
    overrides: dict[str, dict[str, Expression]] = {}
    for node_id, values in raw.nodes.items():
        overrides[node_id] = {
            prop: _parse(value, f"{path}.nodes.{node_id}.{prop}", prop) for prop, value in values.items()
        }
    if raw.root:
        root = overrides.setdefault(ROOT_ID, {})
        root.update({prop: _parse(value, f"{path}.root.{prop}", prop) for prop, value in raw.root.items()})
    return overrides


def process_scenarios(raw_scenarios: Mapping[str, RawScenario]) -> dict[str, ScenarioDefinition]:
    """Normalize scenarios and flatten ``extends`` chains.

    Raises:
        MapDefinitionError: If a scenario extends an unknown scenario or the
            extends relation has a cycle.

    """
    own = {name: _scenario_overrides(name, raw) for name, raw in raw_scenarios.items()}

    parents: dict[str, list[str]] = {}
    for name, raw in raw_scenarios.items():
        if raw.extends is not None and raw.extends not in raw_scenarios:
            msg = f"scenarios.{name}.extends: unknown scenario {raw.extends!r}"
            raise MapDefinitionError(msg)
        parents[name] = [raw.extends] if raw.extends is not None else []

    try:
        # parent -> children, so parents come out first
        order = topological_sort({name: [c for c, p in parents.items() if name in p] for name in raw_scenarios})
    except CycleError as e:
        msg = f"Scenario extends form a cycle among {sorted(e.remaining)!r}"
        raise MapDefinitionError(msg) from e

    result: dict[str, ScenarioDefinition] = {}
    for name in order:
        raw = raw_scenarios[name]
        merged: dict[str, dict[str, Expression]] = {}
        if raw.extends is not None:
            for node_id, values in result[raw.extends].nodes.items():
                merged[node_id] = dict(values)
        for node_id, values in own[name].items():
            merged.setdefault(node_id, {}).update(values)
        result[name] = ScenarioDefinition(name=name, description=raw.description, extends=raw.extends, nodes=merged)
    return {name: result[name] for name in raw_scenarios}


# =============================================================================
# Entry point
# =============================================================================


def process_definition(
    raw: RawMapDefinition | Mapping[str, Any],
    libraries: LibrarySet = DEFAULT_LIBRARIES,
) -> MapDefinition:
    """Produce the canonical `MapDefinition` for a raw definition.

    Args:
        raw: The author-facing definition, as a mapping or already validated.
        libraries: The importable libraries. Must contain ``core``.

    Raises:
        MapDefinitionError: If the definition is malformed.

    """
    if raw is None:
        msg = "No definition provided"
        raise MapDefinitionError(msg)
    try:
        definition = raw if isinstance(raw, RawMapDefinition) else RawMapDefinition.model_validate(raw)
    except ValidationError as e:
        msg = f"Invalid map definition: {e}"
        raise MapDefinitionError(msg) from e

    library_names = resolve_imports(definition.imports, libraries)
    logger.debug("Merging libraries in order: %s", library_names)

    sources: list[RawLibrary | RawMapDefinition] = [libraries[name] for name in library_names]
    sources.append(definition)

    raw_properties: dict[str, RawPropertyDefinition] = {}
    raw_root: dict[str, Any] = {}
    tags: dict[str, TagDefinition] = {}
    display: dict[str, dict[str, Any]] = {"node": {}, "edge": {}, "edge_combiner": {}}
    for source in sources:
        raw_properties.update(source.properties)
        raw_root.update(source.root)
        for tag_name, tag in source.tags.items():
            tags[tag_name] = TagDefinition(
                name=tag_name,
                display_name=tag.display_name,
                description=tag.description,
                color=tag.color,
                constants=dict(tag.constants),
            )
        _merge_display(display, source.display)

    names = list(raw_properties)
    properties = {name: _process_property(name, prop, names) for name, prop in raw_properties.items()}
    nodes = {
        node_id: _process_node(node_id, node, properties, definition.nodes)
        for node_id, node in definition.nodes.items()
    }
    map_display = MapDisplay(
        node=_parse_display(display["node"], NODE_DISPLAY_FIELDS, "display.node"),
        edge=_parse_display(display["edge"], EDGE_DISPLAY_FIELDS, "display.edge"),
        edge_combiner=_parse_display(display["edge_combiner"], EDGE_COMBINER_DISPLAY_FIELDS, "display.edgeCombiner"),
    )
    scenarios = process_scenarios(definition.scenarios)

    logger.debug(
        "Processed definition: %d properties, %d nodes, %d scenarios",
        len(properties),
        len(nodes),
        len(scenarios),
    )

    return MapDefinition(
        version=definition.version,
        description=definition.description,
        libraries=tuple(library_names),
        properties=properties,
        root=_fold_numbers(raw_root, "root"),
        nodes=nodes,
        scenarios=scenarios,
        tags=tags,
        display=map_display,
    )

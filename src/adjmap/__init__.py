"""Numeric values computed over a directed acyclic graph of nodes."""

__all__ = [
    "DEFAULT_LIBRARIES",
    "FALSE_NUMBER",
    "NULL_SENTINEL",
    "ROOT_ID",
    "TRUE_NUMBER",
    "AdjacencyMap",
    "AdjacencyMapNode",
    "CalculateWhen",
    "Color",
    "CombinerType",
    "DependencyGraph",
    "EdgeValue",
    "EvaluationContext",
    "EvaluationError",
    "ExpandedEdgeValue",
    "Expression",
    "ExpressionError",
    "MapDefinition",
    "MapDefinitionError",
    "NodeDefinition",
    "NodeRender",
    "PropertyDefinition",
    "RenderEdge",
    "ScenarioDefinition",
    "TagDefinition",
    "TagMembership",
    "ValidationContext",
    "combine",
    "evaluate",
    "export_values_to_toml",
    "library_set",
    "load_map",
    "load_raw_definition",
    "pack_color",
    "parse_color",
    "parse_expression",
    "process_definition",
    "topological_sort",
    "unpack_color",
    "validate_expression",
]

from ._color import Color, pack_color, parse_color, unpack_color
from ._combine import CombinerType, combine
from ._constants import FALSE_NUMBER, NULL_SENTINEL, ROOT_ID, TRUE_NUMBER
from ._errors import EvaluationError, ExpressionError, MapDefinitionError
from ._expr import (
    EvaluationContext,
    Expression,
    TagMembership,
    ValidationContext,
    evaluate,
    parse_expression,
    validate_expression,
)
from ._graph import DependencyGraph, topological_sort
from ._io import export_values_to_toml, load_map, load_raw_definition
from ._library import DEFAULT_LIBRARIES, library_set
from ._map import AdjacencyMap, AdjacencyMapNode
from ._models import (
    CalculateWhen,
    EdgeValue,
    ExpandedEdgeValue,
    MapDefinition,
    NodeDefinition,
    PropertyDefinition,
    ScenarioDefinition,
    TagDefinition,
)
from ._processor import process_definition
from ._render import NodeRender, RenderEdge

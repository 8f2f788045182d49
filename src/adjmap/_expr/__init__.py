"""The expression language used by property values and display settings.

Key pieces:
- Expression: tagged union of every expression form (see `_nodes`)
- parse_expression: raw JSON-like value -> Expression
- validate_expression / ValidationContext: static checks for where it is used
- evaluate / EvaluationContext: pure evaluation to an array of numbers
- extract_dependencies / rewrite_properties: tree queries and rewrites
"""

from ._context import NO_TAGS, EvaluationContext, TagMembership
from ._evaluate import evaluate
from ._nodes import (
    BinaryOperator,
    Capability,
    Comparator,
    Expression,
    LengthOfMode,
    Literal,
    TagScope,
    UnaryOperator,
    extract_dependencies,
    reads_input,
    rewrite_properties,
    walk,
)
from ._parse import INPUT_KEYWORD, MARKERS, leaf_to_number, parse_expression
from ._validate import ValidationContext, validate_expression

__all__ = [
    "INPUT_KEYWORD",
    "MARKERS",
    "NO_TAGS",
    "BinaryOperator",
    "Capability",
    "Comparator",
    "EvaluationContext",
    "Expression",
    "LengthOfMode",
    "Literal",
    "TagMembership",
    "TagScope",
    "UnaryOperator",
    "ValidationContext",
    "evaluate",
    "extract_dependencies",
    "leaf_to_number",
    "parse_expression",
    "reads_input",
    "rewrite_properties",
    "validate_expression",
    "walk",
]

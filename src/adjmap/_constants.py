"""Shared constants for the numeric value conventions of a map.

Expressions only ever produce numbers, so booleans and "no value" are encoded
as reserved numbers. Any number other than FALSE_NUMBER counts as true; use
`is_true` rather than comparing against TRUE_NUMBER.
"""

ROOT_ID = ""
"""Id of the synthetic root node. Authored node ids may never be empty."""

ROOT_DISPLAY_NAME = "(root)"

TRUE_NUMBER = 1.0
FALSE_NUMBER = 0.0

# Very negative but exactly representable, so it survives float round trips.
NULL_SENTINEL = float(-(2**53 - 1) + 7)

SELF_PROPERTY = "."
"""Placeholder property name that resolves to the owning property."""

IMPLIED_CONSTANT = "implied"

RESERVED_EDGE_FIELDS = frozenset({"ref", "type", "source", IMPLIED_CONSTANT})
"""Edge field names that may never be declared as constants."""

SYNTHETIC_CONSTANTS = frozenset({IMPLIED_CONSTANT})
"""Edge constants every expression may read without declaring them."""

def is_false(value: float) -> bool:
    return value == FALSE_NUMBER


def is_true(value: float) -> bool:
    return not is_false(value)


def bool_to_number(value: bool) -> float:  # noqa: FBT001
    return TRUE_NUMBER if value else FALSE_NUMBER

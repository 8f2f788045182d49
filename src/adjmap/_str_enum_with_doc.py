"""String enums whose members carry their own documentation."""

from enum import StrEnum
from typing import Self


class StrEnumWithDoc(StrEnum):
    """Base class for string enums with a docstring per member.

    Members are declared as ``NAME = "value", "what it means"``. The second
    element is optional and ends up in the member's ``__doc__``.
    """

    def __new__(cls, value: str, doc: str = "") -> Self:
        """Create a new enum member with a docstring."""
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.__doc__ = doc
        return obj

    @classmethod
    def parse(cls, value: object, what: str) -> Self:
        """Look up a member by value, raising a readable error if unknown.

        Args:
            value: The raw value from a definition.
            what: Human readable name of the thing being parsed, used in the
                error message (e.g. ``"combiner"``).

        Raises:
            ValueError: If ``value`` is not the value of any member.

        """
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        choices = ", ".join(repr(member.value) for member in cls)
        msg = f"Unknown {what}: {value!r} (expected one of {choices})"
        raise ValueError(msg)

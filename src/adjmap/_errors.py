"""Exceptions raised while building or evaluating a map."""


class MapDefinitionError(ValueError):
    """A map definition failed to process or validate.

    Raised synchronously from the definition processor and from the
    `AdjacencyMap` constructor. A map that raised this is never usable.
    """


class ExpressionError(MapDefinitionError):
    """An expression is malformed or not legal where it is used."""

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class EvaluationError(ValueError):
    """An expression could not be evaluated against its context."""

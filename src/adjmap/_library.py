"""Importable libraries of property definitions and display defaults.

A library set is an explicit mapping passed to the definition processor, so
callers (and tests) decide which libraries are importable. The ``core``
library is always imported first and carries the base display settings.
"""

from collections.abc import Mapping
from types import MappingProxyType

from pydantic import ValidationError

from ._errors import MapDefinitionError
from ._raw import RawDisplay, RawLibrary

CORE_LIBRARY_NAME = "core"

type LibrarySet = Mapping[str, RawLibrary]

BASE_NODE_DISPLAY = {
    "radius": 6,
    "color": {"color": "#333"},
    "opacity": 1.0,
    "strokeWidth": 0,
    "strokeColor": {"color": "#333"},
    "strokeOpacity": 1.0,
}

# None of these return one value per edge, so edges of the same type from the
# same source to the same ref collapse into one rendered edge. Override with
# {"lengthOf": "edges", "value": ...} to keep them apart.
BASE_EDGE_DISPLAY = {
    "width": 1.5,
    "color": {"color": "#555"},
    "opacity": 0.4,
    "distinct": False,
}

BASE_EDGE_COMBINER_DISPLAY = {
    "width": {"combine": "sum", "value": "input"},
    "color": {"color": "#555"},
    "opacity": 0.4,
}

CORE_LIBRARY = RawLibrary(
    description="Base display settings every map starts from.",
    display=RawDisplay(
        node=BASE_NODE_DISPLAY,
        edge=BASE_EDGE_DISPLAY,
        edge_combiner=BASE_EDGE_COMBINER_DISPLAY,
    ),
)

DEFAULT_LIBRARIES: LibrarySet = MappingProxyType({CORE_LIBRARY_NAME: CORE_LIBRARY})


def library_set(*extra: Mapping[str, RawLibrary | Mapping[str, object]]) -> LibrarySet:
    """Build a library set: the core library plus the given libraries.

    Libraries may be given as `RawLibrary` instances or as raw mappings,
    which are validated. Later arguments win on name collisions; ``core``
    itself may be replaced.

    Raises:
        MapDefinitionError: A raw library does not validate.
    """
    result: dict[str, RawLibrary] = {CORE_LIBRARY_NAME: CORE_LIBRARY}
    for libraries in extra:
        for name, library in libraries.items():
            if isinstance(library, RawLibrary):
                result[name] = library
                continue
            try:
                result[name] = RawLibrary.model_validate(library)
            except ValidationError as e:
                msg = f"Invalid library {name!r}: {e}"
                raise MapDefinitionError(msg) from e
    return MappingProxyType(result)

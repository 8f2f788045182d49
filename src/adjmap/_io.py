from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w

from ._errors import MapDefinitionError
from ._library import DEFAULT_LIBRARIES, LibrarySet
from ._processor import process_definition

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._map import AdjacencyMap
    from ._models import MapDefinition

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".json", ".toml")


def load_raw_definition(path: Path | str) -> dict[str, Any]:
    """Read a raw map definition from a ``.json`` or ``.toml`` file.

    Raises:
        MapDefinitionError: If the file type is unsupported, or the file
            cannot be read or does not parse.

    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        msg = f"Unsupported map file type {suffix!r} for {path} (expected one of {', '.join(SUPPORTED_SUFFIXES)})"
        raise MapDefinitionError(msg)

    try:
        if suffix == ".json":
            with path.open(encoding="utf-8") as f:
                data = json.load(f)
        else:
            with path.open("rb") as f:
                data = tomllib.load(f)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        msg = f"Invalid {suffix[1:].upper()} in {path}: {e}"
        raise MapDefinitionError(msg) from e
    except (OSError, UnicodeDecodeError) as e:
        msg = f"Could not read map file {path}: {e}"
        raise MapDefinitionError(msg) from e

    if not isinstance(data, dict):
        msg = f"{path}: a map definition must be an object at the top level"
        raise MapDefinitionError(msg)

    logger.debug("Loaded raw definition from %s", path)
    return data


def load_map(path: Path | str, libraries: LibrarySet = DEFAULT_LIBRARIES) -> MapDefinition:
    """Load and process a map definition file."""
    return process_definition(load_raw_definition(path), libraries)


def values_to_dict(adjacency_map: AdjacencyMap, *, include_hidden: bool = False) -> dict[str, Any]:
    """Computed values as ``{"root": {...}, "nodes": {node_id: {...}}}``.

    The root is kept apart from the nodes so no authored id can shadow it.
    Hidden properties are skipped unless `include_hidden` is set.
    """
    names = [
        name
        for name in adjacency_map.property_names
        if include_hidden or not adjacency_map.definition.properties[name].hide
    ]
    def pick(values: Mapping[str, float]) -> dict[str, float]:
        return {name: values[name] for name in names}

    return {
        "root": pick(adjacency_map.root_values),
        "nodes": {node.id: pick(node.values) for node in adjacency_map.nodes},
    }


def export_values_to_toml(
    adjacency_map: AdjacencyMap,
    output_path: Path | str,
    *,
    include_hidden: bool = False,
) -> None:
    """Write computed values to a TOML file: a ``root`` table and one ``nodes`` table per node."""
    toml_data: dict[str, Any] = {}
    if adjacency_map.scenario_name:
        toml_data["scenario"] = adjacency_map.scenario_name
    toml_data.update(values_to_dict(adjacency_map, include_hidden=include_hidden))

    output_path = Path(output_path)
    with output_path.open("wb") as f:
        tomli_w.dump(toml_data, f)

    logger.debug("Exported values to %s", output_path)

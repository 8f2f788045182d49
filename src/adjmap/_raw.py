"""Schema of the author-facing (raw) definition.

Raw definitions arrive as plain JSON/TOML data with camelCase keys. These
pydantic models check their shape; expression-valued fields stay as raw
values here and are parsed by the definition processor.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RawModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)


class RawImpliesExclude(RawModel):
    """Every other property except the ones listed."""

    exclude: list[str]


type RawImplies = Literal["*"] | list[str] | RawImpliesExclude


class RawPropertyDefinition(RawModel):
    value: Any
    description: str = ""
    display_name: str = ""
    usage: str = ""
    combine: str | None = None
    dependencies: list[str] | None = None
    implies: RawImplies | None = None
    constants: dict[str, Any] = Field(default_factory=dict)
    hide: bool = False
    calculate_when: Literal["edges", "always"] = "edges"
    extend_tags: bool = False
    display: dict[str, Any] = Field(default_factory=dict)


class RawTagDefinition(RawModel):
    display_name: str = ""
    description: str = ""
    color: str | None = None
    constants: dict[str, float] = Field(default_factory=dict)


class RawDisplay(RawModel):
    node: dict[str, Any] = Field(default_factory=dict)
    edge: dict[str, Any] = Field(default_factory=dict)
    edge_combiner: dict[str, Any] = Field(default_factory=dict)


class RawNodeDefinition(RawModel):
    description: str = ""
    display_name: str = ""
    values: dict[str, Any] = Field(default_factory=dict)
    edges: list[dict[str, Any]] | dict[str, Any] | None = None
    tags: list[str] = Field(default_factory=list)
    display: dict[str, Any] = Field(default_factory=dict)


class RawScenario(RawModel):
    description: str = ""
    extends: str | None = None
    nodes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    root: dict[str, Any] = Field(default_factory=dict)


class RawLibrary(RawModel):
    """A reusable bundle of properties, root defaults, tags and display."""

    description: str = ""
    imports: list[str] = Field(default_factory=list)
    properties: dict[str, RawPropertyDefinition] = Field(default_factory=dict)
    root: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, RawTagDefinition] = Field(default_factory=dict)
    display: RawDisplay = Field(default_factory=RawDisplay)


class RawMapDefinition(RawModel):
    version: int
    description: str = ""
    library: str | list[str] | None = None
    properties: dict[str, RawPropertyDefinition] = Field(default_factory=dict)
    root: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, RawTagDefinition] = Field(default_factory=dict)
    display: RawDisplay = Field(default_factory=RawDisplay)
    nodes: dict[str, RawNodeDefinition]
    scenarios: dict[str, RawScenario] = Field(default_factory=dict)

    @property
    def imports(self) -> list[str]:
        if self.library is None:
            return []
        if isinstance(self.library, str):
            return [self.library]
        return list(self.library)

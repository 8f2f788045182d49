"""Rendering attributes derived from computed values.

Nothing here draws anything: these functions turn display expressions into
plain numbers (widths, packed colors, opacities, bump offsets) that a
renderer can consume.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, replace

from ._color import BLACK, Color, pack_color, unpack_color
from ._constants import is_true
from ._expr import EvaluationContext, Expression, evaluate
from ._models import EDGE_COMBINER_DISPLAY_FIELDS, EDGE_DISPLAY_FIELDS, ExpandedEdgeValue, NodeID, PropertyName

BUMP_SPACING = 0.05
"""Preferred distance between the bumps of edges sharing a target."""

_EDGE_FALLBACK = {"width": 1.0, "color": pack_color(BLACK), "opacity": 1.0, "distinct": 0.0}
_NODE_FALLBACK = {
    "radius": 6.0,
    "color": pack_color(BLACK),
    "opacity": 1.0,
    "strokeWidth": 0.0,
    "strokeColor": pack_color(BLACK),
    "strokeOpacity": 1.0,
}


@dataclass(frozen=True, slots=True)
class RenderEdge:
    """One drawable edge from `source` to `parent`.

    Attributes:
        width: Stroke width. Never zero: zero-width edges are not rendered.
        color: Packed ``0xRRGGBBAA`` color.
        opacity: Stroke opacity.
        bump: Position in ``[0, 1]`` used to spread edges sharing a target;
            0.5 is the center line.
        edges: The expanded edges this rendered edge stands for.

    """

    source: NodeID
    parent: NodeID
    width: float
    color: float
    opacity: float
    bump: float = 0.5
    edges: tuple[ExpandedEdgeValue, ...] = ()

    @property
    def rgba(self) -> Color:
        return unpack_color(self.color)


@dataclass(frozen=True, slots=True)
class NodeRender:
    """Display attributes of one node; colors are packed numbers."""

    radius: float
    color: float
    opacity: float
    stroke_width: float
    stroke_color: float
    stroke_opacity: float

    @property
    def fill(self) -> Color:
        return unpack_color(self.color)

    @property
    def stroke(self) -> Color:
        return unpack_color(self.stroke_color)


@dataclass(frozen=True, slots=True)
class EdgeGroup:
    """Edges of one property type from one source to one ref.

    Attributes:
        display: Edge display expressions for this property type.
        context: Context the display expressions are evaluated in; its edges
            and refs are parallel to `edges`.

    """

    ref: NodeID
    type: PropertyName
    edges: tuple[ExpandedEdgeValue, ...]
    display: Mapping[str, Expression]
    context: EvaluationContext


@dataclass(frozen=True, slots=True)
class _Entry:
    width: float
    color: float
    opacity: float
    edges: tuple[ExpandedEdgeValue, ...]


def _display_values(
    display: Mapping[str, Expression],
    fields: Sequence[str],
    fallback: Mapping[str, float],
    ctx: EvaluationContext,
) -> dict[str, list[float]]:
    return {name: evaluate(display[name], ctx) if name in display else [fallback[name]] for name in fields}


def bump_positions(count: int) -> list[float]:
    """Spread `count` edges around 0.5.

    Edges are `BUMP_SPACING` apart unless that would overflow a 1.0-wide
    spread, in which case they are spaced evenly across ``[0, 1]``.

    Example:
        >>> bump_positions(3)
        [0.45, 0.5, 0.55]

    """
    if count <= 1:
        return [0.5] * count
    spacing = BUMP_SPACING
    if (count - 1) * spacing > 1:
        spacing = 1 / (count - 1)
    offset = (count - 1) / 2
    return [round(0.5 + (i - offset) * spacing, 12) for i in range(count)]


def _group_entries(group: EdgeGroup) -> Iterator[tuple[_Entry, bool]]:
    values = _display_values(group.display, EDGE_DISPLAY_FIELDS, _EDGE_FALLBACK, group.context)
    count = max(len(v) for v in values.values())
    # One value per edge keeps edges apart; anything else stands for them all.
    per_edge = count == len(group.edges)

    def at(name: str, i: int) -> float:
        array = values[name]
        return array[i % len(array)]

    for i in range(count):
        entry = _Entry(
            width=at("width", i),
            color=at("color", i),
            opacity=at("opacity", i),
            edges=(group.edges[i],) if per_edge else group.edges,
        )
        yield entry, is_true(at("distinct", i))


def _merge_entries(entries: Sequence[_Entry], display: Mapping[str, Expression], ctx: EvaluationContext) -> _Entry:
    merged: dict[str, float] = {}
    for name in EDGE_COMBINER_DISPLAY_FIELDS:
        inputs = tuple(getattr(entry, name) for entry in entries)
        if name in display:
            merged[name] = evaluate(display[name], replace(ctx, input=inputs))[0]
        else:
            merged[name] = _EDGE_FALLBACK[name]
    edges = tuple(edge for entry in entries for edge in entry.edges)
    return _Entry(width=merged["width"], color=merged["color"], opacity=merged["opacity"], edges=edges)


def derive_render_edges(
    source: NodeID,
    groups: Sequence[EdgeGroup],
    combiner_display: Mapping[str, Expression],
    combiner_context: EvaluationContext,
) -> tuple[RenderEdge, ...]:
    """Turn a node's edge groups into drawable edges.

    For each ref (in first-seen order), distinct entries are drawn as they
    are, while all non-distinct entries of every type are merged into one
    edge by the edge-combiner display expressions, which read the merged
    entries' widths, colors and opacities as ``input``. The merged edge comes
    first. Edges with a width of zero or less are dropped before bumps are
    assigned.
    """
    by_ref: dict[NodeID, list[EdgeGroup]] = {}
    for group in groups:
        by_ref.setdefault(group.ref, []).append(group)

    result: list[RenderEdge] = []
    for ref, ref_groups in by_ref.items():
        distinct: list[_Entry] = []
        mergeable: list[_Entry] = []
        for group in ref_groups:
            for entry, is_distinct in _group_entries(group):
                (distinct if is_distinct else mergeable).append(entry)

        drawn = distinct
        if mergeable:
            drawn = [_merge_entries(mergeable, combiner_display, combiner_context), *distinct]
        drawn = [entry for entry in drawn if entry.width > 0]

        for entry, bump in zip(drawn, bump_positions(len(drawn)), strict=True):
            result.append(
                RenderEdge(
                    source=source,
                    parent=ref,
                    width=entry.width,
                    color=entry.color,
                    opacity=entry.opacity,
                    bump=bump,
                    edges=entry.edges,
                ),
            )
    return tuple(result)


def render_node(display: Mapping[str, Expression], ctx: EvaluationContext) -> NodeRender:
    """Evaluate node display expressions; each attribute takes the first value."""
    values = _display_values(display, tuple(_NODE_FALLBACK), _NODE_FALLBACK, ctx)
    return NodeRender(
        radius=values["radius"][0],
        color=values["color"][0],
        opacity=values["opacity"][0],
        stroke_width=values["strokeWidth"][0],
        stroke_color=values["strokeColor"][0],
        stroke_opacity=values["strokeOpacity"][0],
    )

"""Tests for parsing raw expression values."""

import pytest

from adjmap import NULL_SENTINEL, TRUE_NUMBER, ExpressionError, parse_expression
from adjmap._combine import CombinerType
from adjmap._expr import extract_dependencies, rewrite_properties, walk
from adjmap._expr._nodes import (
    Arithmetic,
    BinaryOperator,
    Clip,
    Collect,
    ColorLiteral,
    Combine,
    Compare,
    Comparator,
    EdgeConstant,
    HasTag,
    If,
    InputValue,
    LengthOf,
    LengthOfMode,
    Let,
    Literal,
    ParentValue,
    ResultValue,
    RootValue,
    TagConstant,
    TagScope,
    Unary,
    UnaryOperator,
    Variable,
)


class TestLeaves:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (3, (3.0,)),
            (2.5, (2.5,)),
            (True, (TRUE_NUMBER,)),
            (False, (0.0,)),
            (None, (NULL_SENTINEL,)),
            ([1, True, None], (1.0, TRUE_NUMBER, NULL_SENTINEL)),
        ],
    )
    def test_leaf_values(self, raw: object, expected: tuple[float, ...]) -> None:
        assert parse_expression(raw) == Literal(expected)

    def test_input_keyword(self) -> None:
        assert parse_expression("input") == InputValue()

    def test_other_strings_rejected(self) -> None:
        with pytest.raises(ExpressionError, match="only string allowed"):
            parse_expression("cost")

    def test_empty_array_rejected(self) -> None:
        with pytest.raises(ExpressionError, match="at least one item"):
            parse_expression([])

    def test_nested_array_rejected(self) -> None:
        with pytest.raises(ExpressionError, match="array items must be numbers"):
            parse_expression([1, [2]])


class TestStructuredForms:
    def test_references(self) -> None:
        assert parse_expression({"constant": "weight"}) == EdgeConstant("weight")
        assert parse_expression({"ref": "cost"}) == ParentValue("cost")
        assert parse_expression({"root": "cost"}) == RootValue("cost")
        assert parse_expression({"result": "cost"}) == ResultValue("cost")

    def test_nested_arithmetic(self) -> None:
        expr = parse_expression({"operator": "*", "a": {"ref": "cost"}, "b": {"constant": "weight"}})
        assert expr == Arithmetic(BinaryOperator.MULTIPLY, ParentValue("cost"), EdgeConstant("weight"))

    def test_unary_operator(self) -> None:
        assert parse_expression({"operator": "abs", "a": -2}) == Unary(UnaryOperator.ABS, Literal((-2.0,)))

    def test_unary_operator_rejects_b(self) -> None:
        with pytest.raises(ExpressionError, match="does not take 'b'"):
            parse_expression({"operator": "!", "a": 1, "b": 2})

    def test_combine(self) -> None:
        assert parse_expression({"combine": "sum", "value": "input"}) == Combine(CombinerType.SUM, InputValue())

    def test_compare_and_if(self) -> None:
        expr = parse_expression({"if": {"compare": ">", "a": "input", "b": 1}, "then": 1, "else": 0})
        assert expr == If(
            Compare(Comparator.GREATER, InputValue(), Literal((1.0,))),
            Literal((1.0,)),
            Literal((0.0,)),
        )

    def test_color(self) -> None:
        expr = parse_expression({"color": "#ff0000"})
        assert isinstance(expr, ColorLiteral)
        assert expr.packed == float(0xFF0000FF)

    def test_clip_needs_a_bound(self) -> None:
        assert parse_expression({"clip": 5, "high": 1}) == Clip(Literal((5.0,)), None, Literal((1.0,)))
        with pytest.raises(ExpressionError, match="at least one of 'low' or 'high'"):
            parse_expression({"clip": 5})

    def test_collect_needs_children(self) -> None:
        assert parse_expression({"collect": [1, 2]}) == Collect((Literal((1.0,)), Literal((2.0,))))
        with pytest.raises(ExpressionError, match="at least one child"):
            parse_expression({"collect": []})

    def test_length_of(self) -> None:
        assert parse_expression({"lengthOf": "edges", "value": 1}) == LengthOf(LengthOfMode.EDGES, Literal((1.0,)))

    def test_tags(self) -> None:
        assert parse_expression({"has": "critical"}) == HasTag("critical", TagScope.ALL)
        assert parse_expression({"has": "critical", "which": "self"}) == HasTag("critical", TagScope.SELF)
        assert parse_expression({"tagConstant": "weight", "default": 1}) == TagConstant(
            "weight",
            TagScope.ALL,
            Literal((1.0,)),
        )

    def test_let(self) -> None:
        expr = parse_expression({"let": "x", "value": 2, "block": {"variable": "x"}})
        assert expr == Let("x", Literal((2.0,)), Variable("x"))


class TestRejections:
    def test_no_marker(self) -> None:
        with pytest.raises(ExpressionError, match="no recognized expression key"):
            parse_expression({"a": 1})

    def test_two_markers(self) -> None:
        with pytest.raises(ExpressionError, match="more than one form marker"):
            parse_expression({"ref": "cost", "root": "cost"})

    def test_unexpected_key(self) -> None:
        with pytest.raises(ExpressionError, match="unexpected keys for 'ref'"):
            parse_expression({"ref": "cost", "value": 1})

    @pytest.mark.parametrize(
        ("raw", "message"),
        [
            ({"operator": "%", "a": 1, "b": 2}, "Unknown operator"),
            ({"combine": "median", "value": 1}, "Unknown combiner"),
            ({"compare": "=~", "a": 1, "b": 2}, "Unknown comparator"),
            ({"has": "x", "which": "others"}, "Unknown tag scope"),
            ({"color": "no-such-color"}, "Unknown color"),
        ],
    )
    def test_unknown_names(self, raw: dict[str, object], message: str) -> None:
        with pytest.raises(ExpressionError, match=message):
            parse_expression(raw)

    def test_error_carries_path(self) -> None:
        with pytest.raises(ExpressionError) as excinfo:
            parse_expression({"operator": "+", "a": 1, "b": {"ref": 3}}, "properties.cost.value")
        assert excinfo.value.path == "properties.cost.value.b"
        assert str(excinfo.value).startswith("properties.cost.value.b: ")


class TestTreeQueries:
    def test_extract_dependencies_in_order(self) -> None:
        expr = parse_expression(
            {
                "operator": "+",
                "a": {"result": "risk"},
                "b": {"operator": "*", "a": {"result": "cost"}, "b": {"result": "risk"}},
            },
        )
        assert extract_dependencies(expr) == ("risk", "cost")

    def test_extract_ignores_other_references(self) -> None:
        expr = parse_expression({"operator": "+", "a": {"ref": "risk"}, "b": {"root": "cost"}})
        assert extract_dependencies(expr) == ()

    def test_walk_visits_parents_first(self) -> None:
        expr = parse_expression({"clip": {"ref": "a"}, "low": 0})
        assert walk(expr) == [expr, ParentValue("a"), Literal((0.0,))]

    def test_rewrite_is_immutable(self) -> None:
        template = parse_expression({"operator": "+", "a": {"ref": "."}, "b": {"root": "."}})
        rewritten = rewrite_properties(template, ".", "cost")
        assert rewritten == Arithmetic(BinaryOperator.ADD, ParentValue("cost"), RootValue("cost"))
        assert template == Arithmetic(BinaryOperator.ADD, ParentValue("."), RootValue("."))

"""Tests for template resolution, condition evaluation and structured operators."""

import logging

import pytest

from flowengine.graph.errors import ConditionEvaluationFault
from flowengine.graph.expressions import (
    apply_operator,
    evaluate_condition,
    evaluate_expression,
    lookup_path,
    resolve_template,
)

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TestResolveTemplate:
    def test_replaces_dotted_paths(self):
        bindings = {"user": {"name": "Ada", "tags": ["x", "y"]}}
        assert resolve_template("Hi {{user.name}}!", bindings) == "Hi Ada!"
        assert resolve_template("{{ user.tags.1 }}", bindings) == "y"

    def test_missing_and_null_become_empty(self):
        assert resolve_template("[{{missing.path}}]", {}) == "[]"
        assert resolve_template("[{{value}}]", {"value": None}) == "[]"

    def test_non_string_values_are_json_encoded(self):
        bindings = {"data": {"a": 1}, "count": 3, "flag": True}
        assert resolve_template("{{data}}", bindings) == '{"a": 1}'
        assert resolve_template("n={{count}}", bindings) == "n=3"
        assert resolve_template("{{flag}}", bindings) == "true"

    def test_unparseable_placeholder_left_verbatim(self):
        assert resolve_template("{{a + b}}", {"a": 1}) == "{{a + b}}"

    def test_recurses_into_containers(self):
        bindings = {"q": "cats"}
        value = {"query": "{{q}}", "list": ["{{q}}", 2], "tuple": ("{{q}}",)}
        assert resolve_template(value, bindings) == {
            "query": "cats",
            "list": ["cats", 2],
            "tuple": ("cats",),
        }

    def test_other_values_pass_through(self):
        assert resolve_template(42, {}) == 42
        assert resolve_template(None, {}) is None

    def test_does_not_mutate_input(self):
        value = {"a": "{{x}}"}
        resolve_template(value, {"x": "1"})
        assert value == {"a": "{{x}}"}

    @pytest.mark.parametrize(
        "value",
        [
            "Hello {{user.name}}, you have {{count}} items",
            "{{user}}",
            "[{{missing.deep.path}}]",
            "{{a + b}} and {{count}}",
            {"outer": {"inner": ["{{user.name}}", "{{missing}}", 7]}},
            ["{{count}}", ("{{user.tags.0}}",), None],
        ],
    )
    def test_resolving_twice_changes_nothing(self, value):
        bindings = {"user": {"name": "Ada", "tags": ["x"]}, "count": 3}
        once = resolve_template(value, bindings)
        assert resolve_template(once, bindings) == once


def test_lookup_path_out_of_range_index():
    assert lookup_path({"items": [1]}, "items.5", default="d") == "d"
    assert lookup_path({"s": "text"}, "s.0") is None


# ---------------------------------------------------------------------------
# Free-form conditions
# ---------------------------------------------------------------------------


class TestEvaluateCondition:
    def test_python_expression(self):
        assert evaluate_condition("data['score'] > 5", {"score": 7}) is True
        assert evaluate_condition("data.score > 5", {"score": 2}) is False

    def test_javascript_operators(self):
        assert evaluate_condition("data.status === 'ok' && !data.retry", {"status": "ok"})
        assert not evaluate_condition("data.status !== 'ok' || false", {"status": "ok"})

    def test_function_declaration(self):
        expression = """
        function evaluateCondition(input, ctx) {
            // only approve large orders
            return input.total >= ctx.threshold;
        }
        """
        assert evaluate_condition(expression, {"total": 100}, {"threshold": 50}) is True
        assert evaluate_condition(expression, {"total": 10}, {"threshold": 50}) is False

    def test_arrow_function(self):
        assert evaluate_condition("(d) => d.length > 2", [1, 2, 3]) is True

    def test_variables_and_helpers(self):
        assert evaluate_condition("vars.mode == 'fast'", None, {"mode": "fast"})
        assert evaluate_condition("contains(data, 'urgent')", "This is urgent")
        assert evaluate_condition("isEmpty(data)", "   ")
        assert evaluate_condition("isNull(data)", None)

    def test_extra_names(self):
        assert evaluate_condition(
            "nodes.classify == 'spam'", None, extra_names={"nodes": {"classify": "spam"}}
        )

    def test_oversized_allocation_resolves_false(self):
        faults: list[ConditionEvaluationFault] = []
        result = evaluate_condition("len([0] * 10**8) > 0", {}, {}, on_fault=faults.append)
        assert result is False
        assert len(faults) == 1

    def test_failure_resolves_false_and_reports_fault(self, caplog):
        faults: list[ConditionEvaluationFault] = []
        with caplog.at_level(logging.WARNING):
            result = evaluate_condition(
                "data.score >", {"score": 1}, node_id="check", on_fault=faults.append
            )
        assert result is False
        assert len(faults) == 1
        assert faults[0].node_id == "check"
        assert faults[0].fatal is False
        assert "could not be evaluated" in caplog.text

    def test_unknown_name_is_a_fault(self):
        faults: list[ConditionEvaluationFault] = []
        assert evaluate_condition("nope > 1", 1, on_fault=faults.append) is False
        assert faults

    def test_disallowed_call_is_a_fault(self):
        assert evaluate_condition("__import__('os')", None) is False
        assert evaluate_condition("open('/etc/passwd')", None) is False


def test_evaluate_expression_returns_value():
    names = {"params": {"a": 1, "b": 2}}
    assert evaluate_expression("params['a'] + params['b']", None, extra_names=names) == 3


def test_evaluate_expression_rejects_empty():
    with pytest.raises(ValueError):
        evaluate_expression("  ", None)


# ---------------------------------------------------------------------------
# Structured operators
# ---------------------------------------------------------------------------


class TestApplyOperator:
    @pytest.mark.parametrize(
        "operator,left,right,expected",
        [
            ("equals", "yes", "yes", True),
            ("equals", "1", 1, True),
            ("equals", "true", True, True),
            ("==", "a", "b", False),
            ("notEquals", "a", "b", True),
            ("contains", "hello world", "world", True),
            ("contains", ["a", "b"], "b", True),
            ("notContains", "hello", "bye", True),
            ("greaterThan", "10", 9, True),
            ("lessThan", 3, "2", False),
            (">=", 5, 5, True),
            ("lessThanOrEquals", 4, 5, True),
        ],
    )
    def test_operators(self, operator, left, right, expected):
        assert apply_operator(operator, left, right) is expected

    @pytest.mark.parametrize(
        "operator,left,right,expected",
        [
            ("equals", "1", 1, False),
            ("equals", "true", True, False),
            ("equals", 1, 1.0, True),
            ("equals", "approved", "approved", True),
            ("equals", 1, True, False),
            ("notEquals", "1", 1, True),
        ],
    )
    def test_strict_equality(self, operator, left, right, expected):
        assert apply_operator(operator, left, right, strict=True) is expected

    def test_unknown_operator_raises(self):
        with pytest.raises(ValueError):
            apply_operator("between", 1, 2)

    def test_unorderable_values_raise(self):
        with pytest.raises(TypeError):
            apply_operator("greaterThan", {"a": 1}, [1])

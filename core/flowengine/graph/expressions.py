"""
Template resolution and condition evaluation.

Templates use ``{{path.to.value}}`` placeholders looked up by dotted path in
a bindings mapping. Conditions are boolean expressions evaluated by
``safe_eval`` against a restricted context: the current data, the run
variables and a few pure helper predicates. Nothing here performs I/O or
mutates its inputs.
"""

import json
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from flowengine.graph.errors import ConditionEvaluationFault
from flowengine.graph.safe_eval import safe_eval, translate_js

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{(.*?)\}\}")
_PATH_PATTERN = re.compile(r"^[A-Za-z_$][\w$-]*(\.[\w$-]+)*$")

_MISSING = object()


def lookup_path(bindings: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Follow a dotted path through nested mappings and sequences."""
    current: Any = bindings
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            return default
        if current is _MISSING:
            return default
    return current


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, ensure_ascii=False)


def resolve_template(value: Any, bindings: Mapping[str, Any]) -> Any:
    """
    Replace ``{{a.b.c}}`` placeholders in ``value`` using ``bindings``.

    - Strings: each placeholder whose path parses is replaced by the looked-up
      value; missing or null leaves become ``''``; non-string values are
      JSON-encoded. A placeholder whose path does not parse is left verbatim.
    - Lists/tuples/dicts: resolved recursively (dict keys are kept).
    - Anything else is returned unchanged.
    """
    if isinstance(value, str):

        def replace(match: re.Match[str]) -> str:
            path = match.group(1).strip()
            if not _PATH_PATTERN.match(path):
                return match.group(0)
            return _stringify(lookup_path(bindings, path))

        return PLACEHOLDER_PATTERN.sub(replace, value)

    if isinstance(value, dict):
        return {key: resolve_template(item, bindings) for key, item in value.items()}

    if isinstance(value, list):
        return [resolve_template(item, bindings) for item in value]

    if isinstance(value, tuple):
        return tuple(resolve_template(item, bindings) for item in value)

    return value


# ---------------------------------------------------------------------------
# Helper predicates exposed to conditions and function bodies
# ---------------------------------------------------------------------------


def is_null(value: Any) -> bool:
    return value is None


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, Mapping | Sequence):
        return len(value) == 0
    return False


def contains(container: Any, item: Any) -> bool:
    if container is None:
        return False
    if isinstance(container, str):
        return str(item) in container
    if isinstance(container, Mapping | Sequence):
        return item in container
    return str(item) in str(container)


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if value is None or value == "":
        return 0.0
    return float(value)


HELPERS = {
    "isNull": is_null,
    "isEmpty": is_empty,
    "contains": contains,
    "len": len,
    "str": str,
    "String": _stringify,
    "int": int,
    "float": float,
    "Number": _to_number,
    "bool": bool,
    "Boolean": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
}

_LITERALS = {"true": True, "false": False, "null": None, "undefined": None}


def evaluate_condition(
    expression: str,
    data: Any,
    variables: Mapping[str, Any] | None = None,
    node_id: str | None = None,
    extra_names: Mapping[str, Any] | None = None,
    on_fault: Callable[[ConditionEvaluationFault], None] | None = None,
) -> bool:
    """
    Evaluate a boolean condition against ``data`` and run ``variables``.

    The expression sees ``data``, ``vars`` (also as ``context`` for conditions
    written against the editor's ``(data, context)`` signature) and the helper
    predicates. Any failure is logged as a ConditionEvaluationFault and the
    condition resolves to ``False``; this function never raises. ``on_fault``
    receives the fault so callers can record it.
    """
    try:
        return bool(evaluate_expression(expression, data, variables, extra_names))
    except Exception as e:
        fault = ConditionEvaluationFault(
            f"Condition '{expression}' could not be evaluated: {e}", node_id=node_id
        )
        logger.warning(str(fault), extra={"event": "condition_fault", "node_id": node_id})
        if on_fault is not None:
            on_fault(fault)
        return False


def evaluate_expression(
    expression: str,
    data: Any,
    variables: Mapping[str, Any] | None = None,
    extra_names: Mapping[str, Any] | None = None,
) -> Any:
    """Evaluate an expression in the restricted context. Raises on failure."""
    if not expression or not expression.strip():
        raise ValueError("expression is empty")

    source, params = translate_js(expression)
    frozen_vars = dict(variables or {})
    names: dict[str, Any] = {
        **_LITERALS,
        "data": data,
        "input": data,
        "vars": frozen_vars,
        "variables": frozen_vars,
        "context": {"variables": frozen_vars, **frozen_vars},
        **(extra_names or {}),
    }
    # Bind a function declaration's own parameter names positionally:
    # first parameter is the data, second the variables context.
    for name, value in zip(params, (names["data"], names["context"]), strict=False):
        names[name] = value

    return safe_eval(source, names, HELPERS)


# ---------------------------------------------------------------------------
# Structured (operator based) conditions
# ---------------------------------------------------------------------------


def _loose_equals(left: Any, right: Any) -> bool:
    if left == right:
        return True
    if isinstance(left, str) == isinstance(right, str):
        return False
    # One side is a string: compare after coercing the other the way the
    # editor's comparisons did ("1" == 1, "true" == True)
    other = right if isinstance(left, str) else left
    text = left if isinstance(left, str) else right
    if isinstance(other, bool):
        return text.strip().lower() == ("true" if other else "false")
    if isinstance(other, int | float):
        try:
            return float(text) == float(other)
        except ValueError:
            return False
    return text == _stringify(other)


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, int | float) and isinstance(right, int | float):
        return left == right
    return type(left) is type(right) and left == right


def _numeric_pair(left: Any, right: Any) -> tuple[Any, Any]:
    try:
        return _to_number(left), _to_number(right)
    except (TypeError, ValueError):
        return left, right


OPERATOR_ALIASES = {
    "equals": "equals",
    "==": "equals",
    "===": "equals",
    "notEquals": "notEquals",
    "not_equals": "notEquals",
    "!=": "notEquals",
    "!==": "notEquals",
    "contains": "contains",
    "notContains": "notContains",
    "not_contains": "notContains",
    "greaterThan": "greaterThan",
    "greater_than": "greaterThan",
    ">": "greaterThan",
    "lessThan": "lessThan",
    "less_than": "lessThan",
    "<": "lessThan",
    "greaterThanOrEquals": "greaterThanOrEquals",
    "greater_than_or_equals": "greaterThanOrEquals",
    ">=": "greaterThanOrEquals",
    "lessThanOrEquals": "lessThanOrEquals",
    "less_than_or_equals": "lessThanOrEquals",
    "<=": "lessThanOrEquals",
}


def apply_operator(operator: str, left: Any, right: Any, strict: bool = False) -> bool:
    """
    Compare two values with a named operator.

    With ``strict`` the equality operators do not coerce between types.

    Raises:
        ValueError: unsupported operator
        TypeError: values cannot be ordered
    """
    canonical = OPERATOR_ALIASES.get(operator)
    if canonical is None:
        raise ValueError(f"Unsupported operator: {operator}")

    equals = _strict_equals if strict else _loose_equals
    if canonical == "equals":
        return equals(left, right)
    if canonical == "notEquals":
        return not equals(left, right)
    if canonical == "contains":
        return contains(left, right) or _stringify(right) in _stringify(left)
    if canonical == "notContains":
        return not (contains(left, right) or _stringify(right) in _stringify(left))

    left_n, right_n = _numeric_pair(left, right)
    if canonical == "greaterThan":
        return left_n > right_n
    if canonical == "lessThan":
        return left_n < right_n
    if canonical == "greaterThanOrEquals":
        return left_n >= right_n
    return left_n <= right_n

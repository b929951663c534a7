"""
Safe expression evaluation for node-authored conditions and function bodies.

Expressions are parsed with ``ast`` and walked against a whitelist. There is
no ``eval``/``exec``: names resolve only from the supplied mapping, calls
only reach the supplied helper functions or a small table of string/list
methods, and dotted access only reads keys out of mappings.

Graphs exported by the desktop editor contain JavaScript-flavoured snippets
(``a === b && !c``, ``function evaluateCondition(data, context) { return
...; }``). ``translate_js`` rewrites that subset into the Python subset
accepted here.
"""

import ast
import operator
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

_MAX_DEPTH = 100
_MAX_EXPONENT = 1000
_MAX_INT_BITS = 100_000
_MAX_SEQUENCE_LENGTH = 10_000

_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_CMP_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


def _mapping_only(fn: Callable[..., Any]) -> Callable[..., Any]:
    def wrapper(obj: Any, *args: Any) -> Any:
        if not isinstance(obj, Mapping):
            raise ValueError("method is only available on objects")
        return fn(obj, *args)

    return wrapper


def _str_only(fn: Callable[..., Any]) -> Callable[..., Any]:
    def wrapper(obj: Any, *args: Any) -> Any:
        if not isinstance(obj, str):
            raise ValueError("method is only available on strings")
        return fn(obj, *args)

    return wrapper


# Methods callable as ``value.name(...)``. JavaScript spellings map to the
# same behaviour as their Python counterparts.
_METHODS: dict[str, Callable[..., Any]] = {
    "includes": lambda obj, item: item in obj,
    "startsWith": _str_only(lambda s, p: s.startswith(p)),
    "startswith": _str_only(lambda s, p: s.startswith(p)),
    "endsWith": _str_only(lambda s, p: s.endswith(p)),
    "endswith": _str_only(lambda s, p: s.endswith(p)),
    "toLowerCase": _str_only(str.lower),
    "lower": _str_only(str.lower),
    "toUpperCase": _str_only(str.upper),
    "upper": _str_only(str.upper),
    "trim": _str_only(str.strip),
    "strip": _str_only(str.strip),
    "get": _mapping_only(lambda m, key, default=None: m.get(key, default)),
    "keys": _mapping_only(lambda m: list(m.keys())),
    "values": _mapping_only(lambda m: list(m.values())),
    "items": _mapping_only(lambda m: [list(item) for item in m.items()]),
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_operand_size(op: ast.operator, left: Any, right: Any) -> None:
    """Reject arithmetic whose result would be unreasonably large."""
    if isinstance(op, ast.Pow) and isinstance(right, int | float):
        if abs(right) > _MAX_EXPONENT:
            raise ValueError("exponent too large")
        if _is_int(left) and _is_int(right) and right > 0:
            if abs(left).bit_length() * right > _MAX_INT_BITS:
                raise ValueError("result too large")

    if isinstance(op, ast.Mult):
        if _is_int(left) and _is_int(right):
            if left.bit_length() + right.bit_length() > _MAX_INT_BITS:
                raise ValueError("result too large")
            return
        for seq, count in ((left, right), (right, left)):
            if isinstance(seq, str | list | tuple) and isinstance(count, int):
                if len(seq) * max(count, 0) > _MAX_SEQUENCE_LENGTH:
                    raise ValueError("repeated sequence too long")


class _Evaluator:
    def __init__(self, names: Mapping[str, Any], functions: Mapping[str, Callable[..., Any]]):
        self.names = names
        self.functions = functions

    def eval(self, node: ast.AST, depth: int = 0) -> Any:
        if depth > _MAX_DEPTH:
            raise ValueError("expression too deeply nested")
        d = depth + 1

        if isinstance(node, ast.Expression):
            return self.eval(node.body, d)

        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id.startswith("__"):
                raise ValueError(f"name '{node.id}' is not allowed")
            if node.id in self.names:
                return self.names[node.id]
            raise NameError(f"name '{node.id}' is not defined")

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result: Any = True
                for value in node.values:
                    result = self.eval(value, d)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self.eval(value, d)
                if result:
                    return result
            return result

        if isinstance(node, ast.UnaryOp):
            operand = self.eval(node.operand, d)
            if isinstance(node.op, ast.Not):
                return not operand
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return +operand
            raise ValueError("unsupported unary operator")

        if isinstance(node, ast.BinOp):
            op = _BIN_OPS.get(type(node.op))
            if op is None:
                raise ValueError("unsupported binary operator")
            left = self.eval(node.left, d)
            right = self.eval(node.right, d)
            _check_operand_size(node.op, left, right)
            return op(left, right)

        if isinstance(node, ast.Compare):
            left = self.eval(node.left, d)
            for op_node, comparator in zip(node.ops, node.comparators, strict=True):
                op = _CMP_OPS.get(type(op_node))
                if op is None:
                    raise ValueError("unsupported comparison")
                right = self.eval(comparator, d)
                if not op(left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            if self.eval(node.test, d):
                return self.eval(node.body, d)
            return self.eval(node.orelse, d)

        if isinstance(node, ast.Attribute):
            return self._read_key(self.eval(node.value, d), node.attr)

        if isinstance(node, ast.Subscript):
            target = self.eval(node.value, d)
            index = self.eval(node.slice, d)
            if not isinstance(target, Mapping | Sequence):
                raise ValueError("subscript targets must be sequences or mappings")
            if isinstance(target, Mapping):
                return target.get(index)
            return target[index]

        if isinstance(node, ast.Call):
            return self._call(node, d)

        if isinstance(node, ast.List):
            return [self.eval(elt, d) for elt in node.elts]

        if isinstance(node, ast.Tuple):
            return tuple(self.eval(elt, d) for elt in node.elts)

        if isinstance(node, ast.Dict):
            if any(k is None for k in node.keys):
                raise ValueError("dict unpacking is not allowed")
            return {
                self.eval(k, d): self.eval(v, d)
                for k, v in zip(node.keys, node.values, strict=True)  # type: ignore[arg-type]
            }

        raise ValueError(f"unsupported expression: {type(node).__name__}")

    def _read_key(self, target: Any, attr: str) -> Any:
        if attr.startswith("_"):
            raise ValueError(f"attribute '{attr}' is not allowed")
        if isinstance(target, Mapping):
            return target.get(attr)
        if attr == "length" and isinstance(target, Sequence):
            return len(target)
        raise ValueError(f"cannot read '{attr}' from {type(target).__name__}")

    def _call(self, node: ast.Call, depth: int) -> Any:
        if any(kw.arg is None for kw in node.keywords):
            raise ValueError("keyword unpacking is not allowed")
        if any(isinstance(arg, ast.Starred) for arg in node.args):
            raise ValueError("argument unpacking is not allowed")
        args = [self.eval(arg, depth) for arg in node.args]
        kwargs = {kw.arg: self.eval(kw.value, depth) for kw in node.keywords}

        if isinstance(node.func, ast.Name):
            func = self.functions.get(node.func.id)
            if func is None:
                raise ValueError(f"function '{node.func.id}' is not allowed")
            return func(*args, **kwargs)

        if isinstance(node.func, ast.Attribute):
            method = _METHODS.get(node.func.attr)
            if method is None:
                raise ValueError(f"method '{node.func.attr}' is not allowed")
            return method(self.eval(node.func.value, depth), *args, **kwargs)

        raise ValueError("only named functions may be called")


def safe_eval(
    expr: str,
    names: Mapping[str, Any] | None = None,
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> Any:
    """
    Evaluate ``expr`` against ``names`` using the whitelisted subset.

    Raises:
        SyntaxError: expression does not parse
        NameError: expression references an unknown name
        ValueError: expression uses a construct outside the whitelist
        Exception: whatever a helper function or operator raises
    """
    tree = ast.parse(expr.strip(), mode="eval")
    return _Evaluator(names or {}, functions or {}).eval(tree)


# ---------------------------------------------------------------------------
# JavaScript subset translation
# ---------------------------------------------------------------------------

_STRING_OR_TOKEN = re.compile(
    r"""("(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')"""
    r"|(===|!==|&&|\|\||!(?!=)|\btrue\b|\bfalse\b|\bnull\b|\bundefined\b)"
)

_TOKEN_MAP = {
    "===": "==",
    "!==": "!=",
    "&&": " and ",
    "||": " or ",
    "!": " not ",
    "true": "True",
    "false": "False",
    "null": "None",
    "undefined": "None",
}

_FUNCTION_RE = re.compile(r"^\s*function\b[^(]*\(([^)]*)\)\s*\{(.*)\}\s*$", re.DOTALL)
_ARROW_RE = re.compile(r"^\s*\(?([\w\s,]*)\)?\s*=>\s*(.*)$", re.DOTALL)
_RETURN_RE = re.compile(r"\breturn\s+(.+?)\s*;?\s*$", re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"^\s*//.*$", re.MULTILINE)


def _translate_operators(expr: str) -> str:
    def replace(match: re.Match[str]) -> str:
        if match.group(1) is not None:
            return match.group(1)
        return _TOKEN_MAP[match.group(2)]

    return _STRING_OR_TOKEN.sub(replace, expr).strip()


def translate_js(source: str) -> tuple[str, list[str]]:
    """
    Rewrite a JavaScript condition/function snippet into a Python expression.

    Accepts a bare expression, an arrow function, or a ``function`` declaration
    whose body ends in a single ``return``. Returns the expression and the
    declared parameter names (empty for bare expressions).
    """
    params: list[str] = []
    body = source.strip()

    match = _FUNCTION_RE.match(body)
    if match:
        params = [p.strip() for p in match.group(1).split(",") if p.strip()]
        inner = _LINE_COMMENT_RE.sub("", match.group(2)).strip()
        returned = _RETURN_RE.search(inner)
        if returned is None:
            raise ValueError("function body has no return expression")
        body = returned.group(1)
    else:
        arrow = _ARROW_RE.match(body)
        if arrow and "=>" in body:
            params = [p.strip() for p in arrow.group(1).split(",") if p.strip()]
            body = arrow.group(2).strip()
            if body.startswith("{") and body.endswith("}"):
                returned = _RETURN_RE.search(_LINE_COMMENT_RE.sub("", body[1:-1]).strip())
                if returned is None:
                    raise ValueError("function body has no return expression")
                body = returned.group(1)

    return _translate_operators(body.rstrip(";")), params

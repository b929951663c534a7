"""
Node Protocol - The typed steps of a workflow graph.

Every node has a kind and one canonical config model for that kind:

- start / end: no config; start emits the run's initial input, end marks
  the final output
- agent: call a named agent through the agent service
- tool: call a named tool through the tool service with templated params
- condition: evaluate a boolean that the router uses to pick a branch
- function: run a registered callable or a restricted expression body
- ai: send a templated prompt straight to an LLM provider
- input / output: pass their input through unchanged

Graphs saved by the desktop editor store config in several legacy places
(``aiConfig.params.agentId``, flat ``agentId``/``toolId``,
``conditionConfig``, ``functionConfig.code``). Those shapes are accepted
only here, at parse time, and normalized into the canonical models.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class NodeKind(StrEnum):
    """The tagged type of a node."""

    START = "start"
    END = "end"
    AGENT = "agent"
    TOOL = "tool"
    CONDITION = "condition"
    FUNCTION = "function"
    AI = "ai"
    INPUT = "input"
    OUTPUT = "output"


class AgentConfig(BaseModel):
    agent_id: str | None = None
    prompt_template: str | None = Field(
        default=None,
        description="Optional template for the user message; defaults to the node input",
    )


class ToolConfig(BaseModel):
    tool_id: str | None = None
    params: dict[str, Any] = Field(
        default_factory=dict,
        description="Templated params. A value of '{input}' receives the node input.",
    )


class ConditionConfig(BaseModel):
    """Either a free-form ``expression`` or a structured operator comparison."""

    expression: str | None = None
    operator: str | None = None
    left_operand: str | None = Field(
        default=None,
        description="Key in the input (or dotted path in the run context); empty = the input",
    )
    right_operand: Any = None
    strict: bool = Field(
        default=False,
        description='Equality without type coercion ("1" does not equal 1)',
    )

    @property
    def is_structured(self) -> bool:
        return bool(self.operator)


class FunctionParam(BaseModel):
    name: str
    type: str = "any"
    value: Any = None


class FunctionConfig(BaseModel):
    code: str = ""
    function: str | None = Field(
        default=None, description="Name of a callable registered in the FunctionRegistry"
    )
    input_params: list[FunctionParam] = Field(default_factory=list)
    output_params: list[FunctionParam] = Field(default_factory=list)


class AIConfig(BaseModel):
    model: str | None = None
    prompt: str = ""
    system: str = ""
    temperature: float = 0.7
    max_tokens: int = 1000


class EmptyConfig(BaseModel):
    model_config = {"extra": "allow"}


NodeConfig = AgentConfig | ToolConfig | ConditionConfig | FunctionConfig | AIConfig | EmptyConfig

CONFIG_MODELS: dict[NodeKind, type[BaseModel]] = {
    NodeKind.AGENT: AgentConfig,
    NodeKind.TOOL: ToolConfig,
    NodeKind.CONDITION: ConditionConfig,
    NodeKind.FUNCTION: FunctionConfig,
    NodeKind.AI: AIConfig,
}


# ---------------------------------------------------------------------------
# Legacy shape normalization
# ---------------------------------------------------------------------------


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _ai_params(raw: dict[str, Any]) -> dict[str, Any]:
    ai_config = raw.get("aiConfig") or {}
    params = ai_config.get("params") if isinstance(ai_config, dict) else None
    return params if isinstance(params, dict) else {}


def _normalize_params(items: Any) -> list[dict[str, Any]]:
    params = []
    for item in items or []:
        if isinstance(item, str):
            params.append({"name": item})
        elif isinstance(item, dict) and item.get("name"):
            params.append(item)
    return params


def _agent_config(raw: dict[str, Any], cfg: dict[str, Any]) -> dict[str, Any]:
    return {
        "agent_id": _first(
            cfg.get("agent_id"),
            cfg.get("agentId"),
            raw.get("agentId"),
            _ai_params(raw).get("agentId"),
        ),
        "prompt_template": _first(
            cfg.get("prompt_template"), cfg.get("promptTemplate"), raw.get("promptTemplate")
        ),
    }


def _tool_config(raw: dict[str, Any], cfg: dict[str, Any]) -> dict[str, Any]:
    legacy_params = {k: v for k, v in _ai_params(raw).items() if k not in ("toolId", "agentId")}
    params = cfg.get("params")
    return {
        "tool_id": _first(
            cfg.get("tool_id"), cfg.get("toolId"), raw.get("toolId"), _ai_params(raw).get("toolId")
        ),
        "params": params if isinstance(params, dict) else legacy_params,
    }


def _condition_config(raw: dict[str, Any], cfg: dict[str, Any]) -> dict[str, Any]:
    if cfg.get("expression") or cfg.get("operator"):
        return {
            "expression": cfg.get("expression"),
            "operator": cfg.get("operator"),
            "left_operand": _first(cfg.get("left_operand"), cfg.get("leftOperand")),
            "right_operand": _first(cfg.get("right_operand"), cfg.get("rightOperand")),
            "strict": bool(cfg.get("strict", False)),
        }

    function_config = raw.get("functionConfig") or {}
    code = function_config.get("code") if isinstance(function_config, dict) else None
    expression = _first(raw.get("expression"), code)
    if expression:
        return {"expression": expression}

    legacy = _first(raw.get("conditionConfig"), _ai_params(raw).get("condition"))
    if isinstance(legacy, str):
        # Bare string condition: input must be exactly that string
        return {"operator": "equals", "right_operand": legacy, "strict": True}
    if isinstance(legacy, dict):
        if legacy.get("operator") and "leftOperand" in legacy:
            return {
                "operator": legacy["operator"],
                "left_operand": legacy.get("leftOperand") or None,
                "right_operand": legacy.get("rightOperand"),
            }
        if legacy.get("operator") and "value" in legacy:
            return {
                "operator": legacy["operator"],
                "right_operand": legacy["value"],
                "strict": True,
            }
        if legacy.get("expression"):
            return {"expression": legacy["expression"]}
    return {}


def _function_config(raw: dict[str, Any], cfg: dict[str, Any]) -> dict[str, Any]:
    legacy = raw.get("functionConfig") or {}
    if not isinstance(legacy, dict):
        legacy = {}
    return {
        "code": _first(cfg.get("code"), legacy.get("code")) or "",
        "function": _first(cfg.get("function"), cfg.get("function_name"), legacy.get("function")),
        "input_params": _normalize_params(
            _first(cfg.get("input_params"), cfg.get("inputParams"), legacy.get("inputParams"))
        ),
        "output_params": _normalize_params(
            _first(cfg.get("output_params"), cfg.get("outputParams"), legacy.get("outputParams"))
        ),
    }


def _ai_config(raw: dict[str, Any], cfg: dict[str, Any]) -> dict[str, Any]:
    legacy = raw.get("aiConfig") or {}
    if not isinstance(legacy, dict):
        legacy = {}
    merged = {**legacy, **cfg}
    result: dict[str, Any] = {
        "model": merged.get("model"),
        "prompt": _first(merged.get("prompt"), "") or "",
        "system": _first(merged.get("system"), merged.get("instructions"), "") or "",
    }
    if merged.get("temperature") is not None:
        result["temperature"] = merged["temperature"]
    max_tokens = _first(merged.get("max_tokens"), merged.get("maxTokens"))
    if max_tokens is not None:
        result["max_tokens"] = max_tokens
    return result


_NORMALIZERS = {
    NodeKind.AGENT: _agent_config,
    NodeKind.TOOL: _tool_config,
    NodeKind.CONDITION: _condition_config,
    NodeKind.FUNCTION: _function_config,
    NodeKind.AI: _ai_config,
}


class NodeSpec(BaseModel):
    """
    Specification for a node in the graph.

    Examples:
        NodeSpec(id="summarize", kind=NodeKind.AGENT, name="Summarize",
                 config=AgentConfig(agent_id="writer"))

        # Legacy editor shape is accepted and normalized
        NodeSpec.model_validate({
            "id": "t1", "type": "tool", "label": "Search",
            "aiConfig": {"params": {"toolId": "web-search", "query": "{input}"}},
        })
    """

    id: str
    kind: NodeKind
    name: str = ""
    description: str = ""
    config: NodeConfig = Field(default_factory=EmptyConfig)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        raw = dict(data)
        kind_value = raw.get("kind", raw.get("type"))
        try:
            kind = NodeKind(kind_value)
        except ValueError:
            # Let field validation report the bad kind
            return {**raw, "kind": kind_value}

        cfg = raw.get("config")
        if isinstance(cfg, BaseModel):
            cfg = cfg.model_dump()
        cfg = dict(cfg or {})

        normalizer = _NORMALIZERS.get(kind)
        model = CONFIG_MODELS.get(kind, EmptyConfig)
        config = model.model_validate(normalizer(raw, cfg) if normalizer else cfg)

        return {
            "id": raw.get("id"),
            "kind": kind,
            "name": raw.get("name") or raw.get("label") or raw.get("id") or "",
            "description": raw.get("description") or "",
            "config": config,
        }

"""Tests for NodeSpec parsing: canonical configs and legacy editor shapes."""

import pytest
from pydantic import ValidationError

from flowengine.graph.node import (
    AgentConfig,
    AIConfig,
    ConditionConfig,
    EmptyConfig,
    FunctionConfig,
    NodeKind,
    NodeSpec,
    ToolConfig,
)


class TestCanonicalShape:
    def test_agent_node(self):
        node = NodeSpec(id="a", kind=NodeKind.AGENT, config=AgentConfig(agent_id="writer"))
        assert isinstance(node.config, AgentConfig)
        assert node.config.agent_id == "writer"
        assert node.name == "a"

    def test_start_node_has_empty_config(self):
        node = NodeSpec.model_validate({"id": "s", "kind": "start"})
        assert isinstance(node.config, EmptyConfig)

    def test_type_alias_and_label(self):
        node = NodeSpec.model_validate({"id": "e", "type": "end", "label": "Finish"})
        assert node.kind == NodeKind.END
        assert node.name == "Finish"

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            NodeSpec.model_validate({"id": "x", "kind": "teleport"})


class TestLegacyShapes:
    def test_agent_id_in_ai_config_params(self):
        node = NodeSpec.model_validate(
            {"id": "a", "type": "agent", "aiConfig": {"params": {"agentId": "helper"}}}
        )
        assert node.config == AgentConfig(agent_id="helper")

    def test_flat_agent_id(self):
        node = NodeSpec.model_validate({"id": "a", "type": "agent", "agentId": "flat"})
        assert node.config.agent_id == "flat"

    def test_config_wins_over_legacy(self):
        node = NodeSpec.model_validate(
            {
                "id": "a",
                "type": "agent",
                "agentId": "legacy",
                "config": {"agentId": "current"},
            }
        )
        assert node.config.agent_id == "current"

    def test_tool_params_from_ai_config(self):
        node = NodeSpec.model_validate(
            {
                "id": "t",
                "type": "tool",
                "aiConfig": {"params": {"toolId": "search", "query": "{input}", "limit": 3}},
            }
        )
        assert isinstance(node.config, ToolConfig)
        assert node.config.tool_id == "search"
        assert node.config.params == {"query": "{input}", "limit": 3}

    def test_condition_from_function_code(self):
        node = NodeSpec.model_validate(
            {"id": "c", "type": "condition", "functionConfig": {"code": "data > 1"}}
        )
        assert node.config == ConditionConfig(expression="data > 1")

    def test_condition_structured_legacy(self):
        node = NodeSpec.model_validate(
            {
                "id": "c",
                "type": "condition",
                "conditionConfig": {
                    "operator": "greaterThan",
                    "leftOperand": "score",
                    "rightOperand": 5,
                },
            }
        )
        assert node.config.is_structured
        assert node.config.left_operand == "score"
        assert node.config.right_operand == 5
        assert not node.config.strict

    def test_condition_bare_string(self):
        node = NodeSpec.model_validate(
            {"id": "c", "type": "condition", "conditionConfig": "approved"}
        )
        assert node.config.operator == "equals"
        assert node.config.right_operand == "approved"
        assert node.config.strict

    def test_condition_operator_value_is_strict(self):
        node = NodeSpec.model_validate(
            {
                "id": "c",
                "type": "condition",
                "conditionConfig": {"operator": "equals", "value": 1},
            }
        )
        assert node.config.strict
        assert node.config.right_operand == 1
        assert NodeSpec.model_validate(node.model_dump()).config.strict

    def test_condition_without_anything(self):
        node = NodeSpec.model_validate({"id": "c", "type": "condition"})
        assert node.config.expression is None
        assert not node.config.is_structured

    def test_function_params(self):
        node = NodeSpec.model_validate(
            {
                "id": "f",
                "type": "function",
                "functionConfig": {
                    "code": "a + b",
                    "inputParams": ["a", {"name": "b", "value": 2}],
                    "outputParams": [{"name": "total"}],
                },
            }
        )
        assert isinstance(node.config, FunctionConfig)
        assert [p.name for p in node.config.input_params] == ["a", "b"]
        assert node.config.input_params[1].value == 2
        assert node.config.output_params[0].name == "total"

    def test_ai_config_merge(self):
        node = NodeSpec.model_validate(
            {
                "id": "ai",
                "type": "ai",
                "aiConfig": {"prompt": "Summarize {{input}}", "maxTokens": 200},
                "config": {"temperature": 0.1},
            }
        )
        assert isinstance(node.config, AIConfig)
        assert node.config.prompt == "Summarize {{input}}"
        assert node.config.max_tokens == 200
        assert node.config.temperature == 0.1
        assert node.config.model is None

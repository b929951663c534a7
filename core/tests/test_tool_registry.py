"""Tests for the in-process ToolRegistry and FunctionRegistry."""

import asyncio

import pytest

from flowengine.graph.errors import ServiceError
from flowengine.runner.functions import FunctionRegistry
from flowengine.runner.tools import ToolInfo, ToolParameter, ToolRegistry


class TestToolRegistry:
    def test_register_function_derives_parameters(self):
        registry = ToolRegistry(timeout=1.0)

        def lookup(city: str, days: int = 3, detailed: bool = False):
            """Weather forecast for a city."""
            return city

        info = registry.register_function(lookup)

        assert info.id == "lookup"
        assert info.description == "Weather forecast for a city."
        assert [(p.name, p.type, p.required) for p in info.parameters] == [
            ("city", "string", True),
            ("days", "integer", False),
            ("detailed", "boolean", False),
        ]
        assert info.required_parameters == ["city"]
        assert registry.has_tool("lookup")
        assert registry.get_registered_names() == ["lookup"]

    @pytest.mark.asyncio
    async def test_execute_sync_and_async_tools(self):
        registry = ToolRegistry(timeout=1.0)

        async def shout(text: str) -> str:
            return text.upper()

        registry.register_function(shout)
        registry.register(ToolInfo(id="count"), lambda data: len(data))

        assert await registry.execute_tool("shout", {"text": "hi", "ignored": 1}) == "HI"
        assert await registry.execute_tool("count", {"a": 1, "b": 2}) == 2

    @pytest.mark.asyncio
    async def test_kwargs_function_receives_everything(self):
        registry = ToolRegistry(timeout=1.0)

        def collect(**kwargs):
            return kwargs

        registry.register_function(collect, tool_id="collect")

        assert await registry.execute_tool("collect", {"a": 1, "input": "x"}) == {
            "a": 1,
            "input": "x",
        }

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        registry = ToolRegistry(timeout=1.0)
        with pytest.raises(ServiceError) as exc_info:
            await registry.execute_tool("missing", {})
        assert exc_info.value.status_code == 404
        assert await registry.get_tool("missing") is None

    @pytest.mark.asyncio
    async def test_missing_required_parameters(self):
        registry = ToolRegistry(timeout=1.0)
        registry.register(
            ToolInfo(id="t", parameters=[ToolParameter(name="query"), ToolParameter(name="page")]),
            lambda data: data,
        )

        with pytest.raises(ServiceError) as exc_info:
            await registry.execute_tool("t", {"query": "", "other": 1})

        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {"missing": ["query", "page"]}

    @pytest.mark.asyncio
    async def test_timeout(self):
        registry = ToolRegistry(timeout=0.05)

        async def slow():
            await asyncio.sleep(5)

        registry.register_function(slow)

        with pytest.raises(ServiceError) as exc_info:
            await registry.execute_tool("slow", {})
        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_executor_exception_is_wrapped(self):
        registry = ToolRegistry(timeout=1.0)

        def fail(data):
            raise KeyError("field")

        registry.register(ToolInfo(id="fail"), fail)

        with pytest.raises(ServiceError, match="Tool 'fail' failed"):
            await registry.execute_tool("fail", {})

    def test_replace_and_unregister(self):
        registry = ToolRegistry(timeout=1.0)
        registry.register(ToolInfo(id="t"), lambda data: 1)
        registry.register(ToolInfo(id="t", name="Second"), lambda data: 2)

        assert registry.get_registered_names() == ["t"]
        assert registry.unregister("t") is True
        assert registry.unregister("t") is False


class TestToolInfoFromDict:
    def test_list_parameters(self):
        info = ToolInfo.from_dict(
            {
                "id": "t",
                "parameters": [
                    {"name": "q", "type": "string", "required": True},
                    {"name": "n", "type": "number", "defaultValue": 10},
                    {"type": "string"},
                ],
            }
        )
        assert info.name == "t"
        assert [p.name for p in info.parameters] == ["q", "n"]
        assert info.parameters[1].default == 10
        assert info.required_parameters == ["q"]


class TestFunctionRegistry:
    @pytest.mark.asyncio
    async def test_decorator_and_call(self):
        functions = FunctionRegistry()

        @functions.function()
        def add(params, context):
            return params["a"] + params["b"]

        @functions.function("greet")
        async def say_hello(params, context):
            return f"hello {context['input']}"

        assert functions.names() == ["add", "greet"]
        assert await functions.call("add", {"a": 1, "b": 2}, {}) == 3
        assert await functions.call("greet", {}, {"input": "ada"}) == "hello ada"

    @pytest.mark.asyncio
    async def test_missing_function(self):
        with pytest.raises(KeyError):
            await FunctionRegistry().call("nope", {}, {})

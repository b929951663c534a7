"""Collaborators the engine calls out to: agents, tools and host functions."""

from flowengine.runner.agents import AgentInfo, AgentResponse, AgentService, HttpAgentService
from flowengine.runner.functions import FunctionRegistry
from flowengine.runner.tools import (
    HttpToolService,
    ToolInfo,
    ToolParameter,
    ToolRegistry,
    ToolService,
)

__all__ = [
    "AgentInfo",
    "AgentResponse",
    "AgentService",
    "FunctionRegistry",
    "HttpAgentService",
    "HttpToolService",
    "ToolInfo",
    "ToolParameter",
    "ToolRegistry",
    "ToolService",
]

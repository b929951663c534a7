"""Agent invocation service: look up agents and generate text with them."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from flowengine.graph.errors import ServiceError
from flowengine.runner.http import ApiClient

logger = logging.getLogger(__name__)


@dataclass
class AgentInfo:
    """An agent as described by the agent service."""

    id: str
    name: str = ""
    description: str = ""
    instructions: str = ""
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2000
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentInfo":
        model_config = data.get("modelConfig") or {}
        if not isinstance(model_config, dict):
            model_config = {}
        known = {"id", "name", "description", "instructions", "model", "modelConfig"}
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or "",
            description=data.get("description") or "",
            instructions=data.get("instructions") or "",
            model=data.get("model") or model_config.get("model"),
            temperature=float(model_config.get("temperature", data.get("temperature", 0.7))),
            max_tokens=int(model_config.get("maxTokens", data.get("max_tokens", 2000))),
            metadata={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class AgentResponse:
    """Result of an agent generation."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


class AgentService(ABC):
    """
    Abstract agent invocation service.

    Implementations raise ServiceError for failures that cross the service
    boundary; the Agent node executor turns them into run faults.
    """

    @abstractmethod
    async def get_agent(self, agent_id: str) -> AgentInfo | None:
        """Return the agent, or None if it does not exist."""
        pass

    @abstractmethod
    async def generate(
        self,
        agent_id: str,
        messages: list[dict[str, Any]],
        options: dict[str, Any] | None = None,
    ) -> AgentResponse:
        """
        Generate a reply from an agent.

        Args:
            agent_id: Agent to invoke
            messages: Conversation [{role: "user"|"assistant", content: str}]
            options: Generation options (temperature, maxTokens, ...)
        """
        pass


class HttpAgentService(ApiClient, AgentService):
    """
    AgentService backed by the agent-serving REST API.

    Endpoints:
        GET  /api/agents/{id}
        POST /api/agents/{id}/generate   {"messages": [...], "options": {...}}
    """

    async def get_agent(self, agent_id: str) -> AgentInfo | None:
        response = await self._request("GET", f"/api/agents/{quote(agent_id, safe='')}")
        if response.status_code == 404:
            return None
        data = self._decode(response)
        if not isinstance(data, dict):
            raise ServiceError(f"Unexpected agent payload for '{agent_id}'")
        data.setdefault("id", agent_id)
        return AgentInfo.from_dict(data)

    async def generate(
        self,
        agent_id: str,
        messages: list[dict[str, Any]],
        options: dict[str, Any] | None = None,
    ) -> AgentResponse:
        if not messages:
            raise ServiceError("Messages array cannot be empty", status_code=400)

        response = await self._request(
            "POST",
            f"/api/agents/{quote(agent_id, safe='')}/generate",
            json={"messages": messages, "options": options or {}},
        )
        data = self._decode(response)
        if isinstance(data, str):
            return AgentResponse(text=data)
        if not isinstance(data, dict):
            raise ServiceError(f"Unexpected generate payload from agent '{agent_id}'")
        text = data.get("text")
        return AgentResponse(
            text=text if isinstance(text, str) else "",
            metadata=data.get("metadata") or {},
        )

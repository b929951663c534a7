"""Tool invocation service: in-process registry and REST-backed client."""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from flowengine.config import get_tool_timeout
from flowengine.graph.errors import ServiceError
from flowengine.runner.http import ApiClient

logger = logging.getLogger(__name__)


@dataclass
class ToolParameter:
    """One declared tool parameter."""

    name: str
    type: str = "string"
    description: str = ""
    required: bool = True
    default: Any = None


@dataclass
class ToolInfo:
    """A tool as described by the tool service."""

    id: str
    name: str = ""
    description: str = ""
    parameters: list[ToolParameter] = field(default_factory=list)

    @property
    def required_parameters(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolInfo":
        params = []
        raw_params = data.get("parameters") or []
        if isinstance(raw_params, dict):
            # JSON-schema style {"properties": {...}, "required": [...]}
            required = set(raw_params.get("required") or [])
            for name, schema in (raw_params.get("properties") or {}).items():
                schema = schema if isinstance(schema, dict) else {}
                params.append(
                    ToolParameter(
                        name=name,
                        type=schema.get("type", "string"),
                        description=schema.get("description", ""),
                        required=name in required,
                    )
                )
        else:
            for item in raw_params:
                if isinstance(item, dict) and item.get("name"):
                    params.append(
                        ToolParameter(
                            name=item["name"],
                            type=item.get("type", "string"),
                            description=item.get("description", ""),
                            required=bool(item.get("required", False)),
                            default=item.get("defaultValue", item.get("default")),
                        )
                    )
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or str(data.get("id", "")),
            description=data.get("description") or "",
            parameters=params,
        )


class ToolService(ABC):
    """
    Abstract tool invocation service.

    Implementations raise ServiceError for failures that cross the service
    boundary; the Tool node executor turns them into ToolExecutionFault.
    """

    @abstractmethod
    async def get_tool(self, tool_id: str) -> ToolInfo | None:
        """Return the tool, or None if it does not exist."""
        pass

    @abstractmethod
    async def execute_tool(self, tool_id: str, data: dict[str, Any]) -> Any:
        """Run a tool with ``data`` as its parameters and return its result."""
        pass


@dataclass
class RegisteredTool:
    """A tool with its executor function."""

    info: ToolInfo
    executor: Callable[[dict[str, Any]], Any]


_PY_TO_JSON_TYPE = {
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


class ToolRegistry(ToolService):
    """
    In-process ToolService.

    Executors receive the params dict. Sync executors run in a worker thread
    so that the per-tool timeout also applies to them.
    """

    def __init__(self, timeout: float | None = None):
        self._tools: dict[str, RegisteredTool] = {}
        self.timeout = timeout if timeout is not None else get_tool_timeout()

    def register(
        self,
        info: ToolInfo,
        executor: Callable[[dict[str, Any]], Any],
    ) -> None:
        """
        Register a single tool with its executor.

        Registering an id twice replaces the earlier tool.
        """
        if info.id in self._tools:
            logger.info(f"Replacing registered tool '{info.id}'")
        self._tools[info.id] = RegisteredTool(info=info, executor=executor)

    def register_function(
        self,
        func: Callable,
        tool_id: str | None = None,
        name: str | None = None,
        description: str | None = None,
    ) -> ToolInfo:
        """
        Register a function as a tool, deriving parameters from its signature.

        Args:
            func: Function (sync or async) called with the tool params as kwargs
            tool_id: Tool id (defaults to the function name)
            name: Display name (defaults to the id)
            description: Tool description (defaults to the docstring)
        """
        resolved_id = tool_id or func.__name__
        sig = inspect.signature(func)
        params = []
        accepts_kwargs = False

        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls"):
                continue
            if param.kind == inspect.Parameter.VAR_KEYWORD:
                accepts_kwargs = True
                continue
            if param.kind == inspect.Parameter.VAR_POSITIONAL:
                continue

            param_type = "string"
            if param.annotation != inspect.Parameter.empty:
                param_type = _PY_TO_JSON_TYPE.get(param.annotation, "string")

            required = param.default == inspect.Parameter.empty
            params.append(
                ToolParameter(
                    name=param_name,
                    type=param_type,
                    required=required,
                    default=None if required else param.default,
                )
            )

        info = ToolInfo(
            id=resolved_id,
            name=name or resolved_id,
            description=description or inspect.getdoc(func) or f"Execute {resolved_id}",
            parameters=params,
        )
        accepted = {p.name for p in params}

        def executor(inputs: dict[str, Any]) -> Any:
            if accepts_kwargs:
                return func(**inputs)
            return func(**{k: v for k, v in inputs.items() if k in accepted})

        self.register(info, executor)
        return info

    def unregister(self, tool_id: str) -> bool:
        return self._tools.pop(tool_id, None) is not None

    def has_tool(self, tool_id: str) -> bool:
        return tool_id in self._tools

    def get_registered_names(self) -> list[str]:
        return list(self._tools.keys())

    async def get_tool(self, tool_id: str) -> ToolInfo | None:
        registered = self._tools.get(tool_id)
        return registered.info if registered else None

    async def execute_tool(self, tool_id: str, data: dict[str, Any]) -> Any:
        registered = self._tools.get(tool_id)
        if registered is None:
            raise ServiceError(f"Tool '{tool_id}' not found", status_code=404)

        missing = [p for p in registered.info.required_parameters if data.get(p) in (None, "")]
        if missing:
            raise ServiceError(
                f"Tool '{tool_id}' is missing required parameters: {', '.join(missing)}",
                status_code=400,
                details={"missing": missing},
            )

        logger.debug(f"Executing tool '{tool_id}' with params {list(data.keys())}")
        try:
            return await asyncio.wait_for(self._invoke(registered, data), timeout=self.timeout)
        except TimeoutError as e:
            raise ServiceError(
                f"Tool '{tool_id}' timed out after {self.timeout}s", status_code=504
            ) from e
        except ServiceError:
            raise
        except Exception as e:
            raise ServiceError(f"Tool '{tool_id}' failed: {e}") from e

    @staticmethod
    async def _invoke(registered: RegisteredTool, data: dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(registered.executor):
            return await registered.executor(data)
        result = await asyncio.to_thread(registered.executor, dict(data))
        if inspect.isawaitable(result):
            return await result
        return result


class HttpToolService(ApiClient, ToolService):
    """
    ToolService backed by the agent-serving REST API.

    Endpoints:
        GET  /api/tools/{id}
        POST /api/tools/{id}/execute   {"data": {...}}
    """

    async def get_tool(self, tool_id: str) -> ToolInfo | None:
        response = await self._request("GET", f"/api/tools/{quote(tool_id, safe='')}")
        if response.status_code == 404:
            return None
        data = self._decode(response)
        if not isinstance(data, dict):
            raise ServiceError(f"Unexpected tool payload for '{tool_id}'")
        data.setdefault("id", tool_id)
        return ToolInfo.from_dict(data)

    async def execute_tool(self, tool_id: str, data: dict[str, Any]) -> Any:
        response = await self._request(
            "POST",
            f"/api/tools/{quote(tool_id, safe='')}/execute",
            json={"data": data},
        )
        return self._decode(response)

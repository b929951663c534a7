"""Shared flowengine configuration.

Reads ~/.flowengine/configuration.json so that the CLI, the executor and
any host embedding the engine agree on the same defaults.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MAX_NODE_EXECUTIONS = 100
DEFAULT_AGENT_TIMEOUT = 30.0
DEFAULT_TOOL_TIMEOUT = 30.0
DEFAULT_PAUSE_POLL_INTERVAL = 0.2
DEFAULT_API_BASE_URL = "http://localhost:4112"
DEFAULT_LLM_MODEL = "gpt-4o-mini"

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

FLOWENGINE_CONFIG_FILE = Path.home() / ".flowengine" / "configuration.json"


def get_flowengine_config() -> dict[str, Any]:
    """Load configuration from ~/.flowengine/configuration.json."""
    if not FLOWENGINE_CONFIG_FILE.exists():
        return {}
    try:
        with open(FLOWENGINE_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _engine_section() -> dict[str, Any]:
    return get_flowengine_config().get("engine", {})


def get_max_node_executions() -> int:
    return int(_engine_section().get("max_node_executions", DEFAULT_MAX_NODE_EXECUTIONS))


def get_agent_timeout() -> float:
    return float(_engine_section().get("agent_timeout", DEFAULT_AGENT_TIMEOUT))


def get_tool_timeout() -> float:
    return float(_engine_section().get("tool_timeout", DEFAULT_TOOL_TIMEOUT))


def get_pause_poll_interval() -> float:
    return float(_engine_section().get("pause_poll_interval", DEFAULT_PAUSE_POLL_INTERVAL))


def get_api_base_url() -> str:
    """Return the agent-serving API URL (FLOWENGINE_API_URL wins over the file)."""
    env_url = os.environ.get("FLOWENGINE_API_URL")
    if env_url:
        return env_url
    return get_flowengine_config().get("api", {}).get("base_url", DEFAULT_API_BASE_URL)


def get_llm_model() -> str:
    """Return the model string used by AI nodes that do not name one."""
    llm = get_flowengine_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return llm.get("model", DEFAULT_LLM_MODEL)


def get_api_key() -> str | None:
    """Return the LLM API key from the environment variable named in configuration."""
    llm = get_flowengine_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


# ---------------------------------------------------------------------------
# EngineConfig – handed to WorkflowExecutor
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Engine limits and endpoints loaded from ~/.flowengine/configuration.json."""

    max_node_executions: int = field(default_factory=get_max_node_executions)
    agent_timeout: float = field(default_factory=get_agent_timeout)
    tool_timeout: float = field(default_factory=get_tool_timeout)
    pause_poll_interval: float = field(default_factory=get_pause_poll_interval)
    api_base_url: str = field(default_factory=get_api_base_url)
    llm_model: str = field(default_factory=get_llm_model)
    api_key: str | None = field(default_factory=get_api_key)

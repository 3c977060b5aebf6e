"""Configuration helpers for agentdesk projects."""

from __future__ import annotations

import importlib
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import yaml


class ConfigError(RuntimeError):
    """Raised when configuration files are invalid or credentials are missing."""


@dataclass(frozen=True)
class AgentDefinition:
    """Immutable description of one agent."""

    id: str
    name: str
    role: str
    description: str = ""
    capabilities: tuple[str, ...] = ()
    model_preference: Optional[str] = None
    max_concurrent_tasks: int = 1

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AgentDefinition":
        missing = [key for key in ("id", "name", "role") if key not in data]
        if missing:
            raise ConfigError(f"Agent is missing required keys: {', '.join(missing)}")
        max_tasks = int(data.get("max_concurrent_tasks", 1))
        if max_tasks != 1:
            raise ConfigError(
                f"Agent '{data['id']}' sets max_concurrent_tasks={max_tasks}; only 1 is supported"
            )
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            role=str(data["role"]),
            description=str(data.get("description", "")),
            capabilities=tuple(str(tag) for tag in data.get("capabilities", [])),
            model_preference=data.get("model_preference"),
            max_concurrent_tasks=max_tasks,
        )


@dataclass
class AgentSpec:
    """Agent definition plus the tools it is wired with."""

    definition: AgentDefinition
    tools: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AgentSpec":
        return cls(
            definition=AgentDefinition.from_mapping(data),
            tools=[str(name) for name in data.get("tools", [])],
        )


@dataclass
class ModelConfig:
    """Connection and pricing settings for one completion model."""

    id: str
    provider: str
    model: str
    api_key_env: str = "ANTHROPIC_API_KEY"
    max_tokens: int = 4096
    temperature: float = 0.7
    cost_per_input_token: float = 0.0
    cost_per_output_token: float = 0.0
    host: Optional[str] = None
    timeout: float = 120.0
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, key: str, data: Mapping[str, Any]) -> "ModelConfig":
        missing = [name for name in ("provider", "model") if name not in data]
        if missing:
            raise ConfigError(f"Model '{key}' is missing required keys: {', '.join(missing)}")
        return cls(
            id=str(data.get("id", key)),
            provider=str(data["provider"]),
            model=str(data["model"]),
            api_key_env=str(data.get("api_key_env", "ANTHROPIC_API_KEY")),
            max_tokens=int(data.get("max_tokens", 4096)),
            temperature=float(data.get("temperature", 0.7)),
            cost_per_input_token=float(data.get("cost_per_input_token", 0.0)),
            cost_per_output_token=float(data.get("cost_per_output_token", 0.0)),
            host=data.get("host"),
            timeout=float(data.get("timeout", 120.0)),
            params=dict(data.get("params", {})),
        )


@dataclass
class ModelsSpec:
    """Known models and which one agents use by default."""

    primary: str
    fallback: Optional[str]
    models: Dict[str, ModelConfig]

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ModelsSpec":
        if not data:
            return default_models()
        models = {
            key: ModelConfig.from_mapping(key, info)
            for key, info in (data.get("models") or {}).items()
        }
        if not models:
            raise ConfigError("At least one model must be defined under models.models")
        primary = str(data.get("primary") or next(iter(models)))
        if primary not in models:
            raise ConfigError(f"Primary model '{primary}' is not defined")
        fallback = data.get("fallback")
        if fallback is not None and fallback not in models:
            raise ConfigError(f"Fallback model '{fallback}' is not defined")
        return cls(primary=primary, fallback=fallback, models=models)

    def resolve(self, key: Optional[str]) -> ModelConfig:
        if key is None:
            return self.models[self.primary]
        try:
            return self.models[key]
        except KeyError as exc:
            raise ConfigError(f"Unknown model '{key}' referenced by agent") from exc


@dataclass
class ToolSpec:
    """Configuration for a custom tool instance."""

    name: str
    type: str
    args: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "ToolSpec":
        if "type" not in data:
            raise ConfigError(f"Tool '{name}' requires a type path")
        return cls(name=name, type=str(data["type"]), args=dict(data.get("args", {})))


@dataclass
class CoordinatorSpec:
    """Runtime parameters for the coordinator and the resolution loop."""

    poll_interval: float = 5.0
    poll_batch: int = 10
    max_iterations: int = 10

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "CoordinatorSpec":
        if not data:
            return cls()
        spec = cls(
            poll_interval=float(data.get("poll_interval", 5.0)),
            poll_batch=int(data.get("poll_batch", 10)),
            max_iterations=int(data.get("max_iterations", 10)),
        )
        if spec.poll_interval <= 0 or spec.poll_batch <= 0 or spec.max_iterations <= 0:
            raise ConfigError("coordinator settings must be positive")
        return spec


@dataclass
class ProjectConfig:
    """Representation of the YAML configuration."""

    name: str
    description: Optional[str]
    models: ModelsSpec
    agents: List[AgentSpec]
    tool_specs: Dict[str, ToolSpec]
    coordinator: CoordinatorSpec
    tasks: List[Dict[str, Any]]
    file_path: Optional[pathlib.Path] = None

    @classmethod
    def from_file(cls, path: str | pathlib.Path) -> "ProjectConfig":
        p = pathlib.Path(path)
        data = yaml.safe_load(p.read_text())
        if not isinstance(data, MutableMapping):
            raise ConfigError("Configuration root must be a mapping")
        return cls.from_mapping(data, p)

    @classmethod
    def from_yaml(cls, content: str) -> "ProjectConfig":
        data = yaml.safe_load(content)
        if data is None:
            data = {}
        if not isinstance(data, MutableMapping):
            raise ConfigError("Configuration root must be a mapping")
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: MutableMapping, path: Optional[pathlib.Path] = None) -> "ProjectConfig":
        raw_agents = data.get("agents")
        agents = [AgentSpec.from_mapping(item) for item in raw_agents] if raw_agents else default_agents()
        seen: set[str] = set()
        for spec in agents:
            if spec.definition.id in seen:
                raise ConfigError(f"Agent id '{spec.definition.id}' is defined twice")
            seen.add(spec.definition.id)
        models = ModelsSpec.from_mapping(data.get("models"))
        for spec in agents:
            models.resolve(spec.definition.model_preference)
        tool_specs = {
            name: ToolSpec.from_mapping(name, info)
            for name, info in (data.get("tools") or {}).items()
        }
        tasks = [dict(item) for item in data.get("tasks") or []]
        return cls(
            name=data.get("name", path.stem if path else "Untitled"),
            description=data.get("description"),
            models=models,
            agents=agents,
            tool_specs=tool_specs,
            coordinator=CoordinatorSpec.from_mapping(data.get("coordinator")),
            tasks=tasks,
            file_path=path,
        )

    def get_agent(self, agent_id: str) -> AgentSpec:
        for spec in self.agents:
            if spec.definition.id == agent_id:
                return spec
        raise ConfigError(f"Unknown agent '{agent_id}'")


def default_agents() -> List[AgentSpec]:
    return [
        AgentSpec(
            definition=AgentDefinition(
                id="coordinator",
                name="Coordinator",
                role="Task Router & Coordinator",
                description="Routes tasks to specialized agents, manages priorities, and oversees workflow",
                capabilities=("routing", "planning", "coordination", "prioritization"),
            ),
        ),
        AgentSpec(
            definition=AgentDefinition(
                id="general",
                name="General Assistant",
                role="General Purpose Agent",
                description="Handles miscellaneous tasks, research, and analysis",
                capabilities=("research", "analysis", "writing", "summarization", "general"),
            ),
        ),
    ]


def default_models() -> ModelsSpec:
    return ModelsSpec(
        primary="claude-sonnet",
        fallback="claude-haiku",
        models={
            "claude-sonnet": ModelConfig(
                id="claude-sonnet",
                provider="anthropic",
                model="claude-sonnet-4-20250514",
                cost_per_input_token=0.000003,
                cost_per_output_token=0.000015,
            ),
            "claude-haiku": ModelConfig(
                id="claude-haiku",
                provider="anthropic",
                model="claude-3-5-haiku-20241022",
                cost_per_input_token=0.0000008,
                cost_per_output_token=0.000004,
            ),
        },
    )


def import_string(path: str) -> Any:
    """Return attribute from module specified by path "module:qualname"."""

    if ":" not in path:
        raise ConfigError(f"Import path '{path}' must use module:qualname format")
    module_path, attr = path.split(":", 1)
    module = importlib.import_module(module_path)
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ConfigError(f"Module '{module_path}' has no attribute '{attr}'") from exc


def instantiate_from_path(path: str, *args: Any, **kwargs: Any) -> Any:
    """Import and instantiate a class given its dotted path."""

    cls = import_string(path)
    return cls(*args, **kwargs)

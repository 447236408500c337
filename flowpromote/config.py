from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigError

DEFAULT_CONFIG_PATH = "flowpromote.yaml"
CONFIG_ENV_VAR = "FLOWPROMOTE_CONFIG"
API_KEY_ENV_VAR = "N8N_API_KEY"


class Environment(str, Enum):
    """Deployment environments a workflow can live in."""

    DEV = "dev"
    PROD = "prod"
    # Legacy third environment, only usable when a suffix is configured for it.
    STAGING = "staging"


class RemoteConfig(BaseModel):
    """Connection settings for the workflow service."""

    base_url: str = "http://localhost:5678"
    api_key: Optional[str] = None
    api_key_header: str = "X-N8N-API-KEY"
    api_prefix: str = "/api/v1"

    model_config = ConfigDict(frozen=True)

    def resolve_api_key(self) -> Optional[str]:
        """Return the API key, preferring the config value over the environment."""
        return self.api_key or os.getenv(API_KEY_ENV_VAR)


class Settings(BaseModel):
    """Operational switches."""

    backup_before_deploy: bool = True
    backup_before_import: bool = False
    max_backups_to_keep: int = Field(default=10, ge=1)
    active_policy: Literal["strip", "force_inactive"] = "strip"

    model_config = ConfigDict(frozen=True)


class EnvironmentSettings(BaseModel):
    """Suffix table used to derive display names from base names."""

    suffixes: Dict[Environment, str] = Field(
        default_factory=lambda: {Environment.DEV: "-dev", Environment.PROD: "-prod"}
    )
    on_unmatched_suffix: Literal["unknown", "default_dev"] = "unknown"

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_suffixes(self) -> EnvironmentSettings:
        items = list(self.suffixes.items())
        for env, suffix in items:
            if not suffix:
                raise ValueError(f"suffix for '{env.value}' must be non-empty")
            for other_env, other in items:
                if other_env != env and suffix.endswith(other):
                    raise ValueError(
                        f"suffix '{suffix}' ({env.value}) ends with '{other}' "
                        f"({other_env.value}); suffixes must not overlap"
                    )
        return self


class PathSettings(BaseModel):
    """Filesystem locations for exported files, backups and summaries."""

    workflows_dir: Path = Path("workflows")
    backups_dir: Path = Path("backups")
    logs_dir: Path = Path("logs")

    model_config = ConfigDict(frozen=True)


class CredentialRef(BaseModel):
    """Reference to a credential stored in the workflow service."""

    id: str
    name: str

    model_config = ConfigDict(frozen=True)


class ManagedWorkflowConfig(BaseModel):
    """One business-level workflow governed by this tool."""

    base_name: str
    description: str = ""
    environments: List[Environment] = Field(
        default_factory=lambda: [Environment.DEV, Environment.PROD]
    )
    variables: Dict[Environment, Dict[str, Any]] = Field(default_factory=dict)
    credentials: Dict[Environment, Dict[str, CredentialRef]] = Field(
        default_factory=dict
    )

    model_config = ConfigDict(frozen=True)


class FlowPromoteConfig(BaseModel):
    """Top-level configuration model."""

    remote: RemoteConfig = RemoteConfig()
    settings: Settings = Settings()
    environments: EnvironmentSettings = EnvironmentSettings()
    paths: PathSettings = PathSettings()
    managed_workflows: List[ManagedWorkflowConfig] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _unique_base_names(self) -> FlowPromoteConfig:
        seen: set[str] = set()
        for workflow in self.managed_workflows:
            if workflow.base_name in seen:
                raise ValueError(f"duplicate managed workflow: {workflow.base_name}")
            seen.add(workflow.base_name)
        return self

    def find_managed(self, base_name: str) -> Optional[ManagedWorkflowConfig]:
        """Return the managed workflow entry for ``base_name`` if configured."""
        for workflow in self.managed_workflows:
            if workflow.base_name == base_name:
                return workflow
        return None


def build_config(data: dict[str, Any]) -> FlowPromoteConfig:
    """Validate raw configuration data, raising :class:`ConfigError` on failure."""
    try:
        return FlowPromoteConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_config(path: Optional[str | Path] = None) -> FlowPromoteConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FLOWPROMOTE_CONFIG env
            variable or 'flowpromote.yaml' in the current directory.
    """

    config_path = Path(path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))
    if not config_path.exists():
        if path is not None:
            raise ConfigError(f"Config file not found: {config_path}")
        return FlowPromoteConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Could not parse {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")
    return build_config(data)

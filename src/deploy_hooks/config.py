"""Configuration models for the deploy hooks service.

The configuration is a TOML file passed on the command line. It is parsed
once at startup into a frozen :class:`DeployConfig`; there is no reload.
Environment variables prefixed ``DEPLOY_HOOKS_`` fill in values the file
leaves out (``DEPLOY_HOOKS_WEBHOOKS__LISTEN_PORT=8080``).
"""

from __future__ import annotations

import tomllib
from ipaddress import IPv4Address
from pathlib import Path
from typing import Dict, FrozenSet, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .commands import Action
from .errors import ConfigError
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("config.toml")
DEFAULT_DATA_DIR = Path("/app/data")
DEFAULT_LISTEN_PORT = 4050


class WebhookConfig(BaseModel):
    """Settings for the HTTP webhook listener."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pipe: Path = Field(..., description="Command pipe the server writes to")
    listen_addr: IPv4Address = Field(default=IPv4Address("0.0.0.0"))
    listen_port: int = Field(default=DEFAULT_LISTEN_PORT, ge=1, le=65535)
    dispatch_timeout_seconds: float = Field(default=1.0, gt=0.0, le=60.0)


class DispatchConfig(BaseModel):
    """Settings for the dispatcher that executes deploy scripts."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pipe: Path = Field(..., description="Command pipe the dispatcher reads")
    scripts_dir: Path = Field(..., description="Root of <project>/<action> scripts")
    script_timeout_seconds: Optional[float] = Field(default=None, gt=0.0)
    history_file: Path = Field(default=Path("history.jsonl"))


class LoggingConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"
    file: Optional[Path] = None

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class ClientConfig(BaseModel):
    """A webhook caller: its shared secret, project and permitted actions."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    secret: str = Field(..., min_length=1)
    project: str = Field(..., min_length=1)
    permissions: FrozenSet[Action]

    @field_validator("project")
    @classmethod
    def _plain_project_name(cls, value: str) -> str:
        # The project name becomes a directory under scripts_dir.
        if "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError("project must be a plain directory name")
        return value

    def can(self, action: Action) -> bool:
        return action in self.permissions


class DeployConfig(BaseSettings):
    """Top-level configuration loaded from ``config.toml``."""

    model_config = SettingsConfigDict(
        env_prefix="DEPLOY_HOOKS_",
        env_nested_delimiter="__",
        frozen=True,
        extra="forbid",
    )

    data_dir: Path = DEFAULT_DATA_DIR
    webhooks: WebhookConfig
    dispatch: DispatchConfig
    logging: LoggingConfig = LoggingConfig()
    clients: Dict[str, ClientConfig] = {}

    @property
    def history_path(self) -> Path:
        history_file = self.dispatch.history_file
        if history_file.is_absolute():
            return history_file
        return self.data_dir / history_file

    @property
    def projects(self) -> FrozenSet[str]:
        return frozenset(client.project for client in self.clients.values())


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"]) or "<root>"
        problems.append(f"{location}: {err['msg']}")
    return "; ".join(problems)


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> DeployConfig:
    """Load and validate the TOML configuration file.

    Args:
        path: Path to the configuration file

    Returns:
        The immutable configuration

    Raises:
        ConfigError: If the file is missing, is not valid TOML or does not
            match the configuration schema
    """
    config_path = Path(path)
    logger.info("loading config", path=str(config_path))

    try:
        with config_path.open("rb") as fh:
            raw = tomllib.load(fh)
    except FileNotFoundError:
        raise ConfigError(
            f"configuration file not found: {config_path}",
            error_code="CONFIG_NOT_FOUND",
            details={"path": str(config_path)},
        ) from None
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"malformed TOML in {config_path}: {exc}",
            details={"path": str(config_path)},
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"unable to read configuration file {config_path}: {exc.strerror or exc}",
            details={"path": str(config_path)},
        ) from exc

    try:
        config = DeployConfig(**raw)
    except ValidationError as exc:
        raise ConfigError(
            f"invalid configuration in {config_path}: {_format_validation_error(exc)}",
            details={"path": str(config_path), "errors": exc.error_count()},
        ) from exc

    logger.info(
        "config loaded",
        path=str(config_path),
        clients=len(config.clients),
        projects=sorted(config.projects),
    )
    return config

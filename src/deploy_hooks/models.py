from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .commands import Action


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"
    NOT_STARTED = "not_started"


class ErrorBody(BaseModel):
    error_code: str
    message: Optional[str] = None
    request_id: Optional[str] = None
    retryable: bool = False


class DeployResponse(BaseModel):
    """Result of a ``POST /deploy`` request."""

    dispatched: bool
    project: str
    command: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    clients: int


class DeploymentRecord(BaseModel):
    """One execution of a deploy script, as persisted in the history file."""

    project: str
    action: Action
    status: RunStatus
    returncode: Optional[int] = None
    started_at: datetime
    duration_ms: float = Field(default=0.0, ge=0.0)
    error: Optional[str] = None


class DeploymentList(BaseModel):
    project: str
    deployments: list[DeploymentRecord]

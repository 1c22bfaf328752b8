"""
Pydantic models for Notewright API requests and responses.
This module defines the request and response schemas used by the runs API.
"""

from enum import Enum
from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from notewright.core.progress import StepEntry
from notewright.core.schema import ToolResultPart


class RunStatus(str, Enum):
    """Lifecycle of an import run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class RunRequest(BaseModel):
    """Start an import run."""

    instruction: str = Field("", description="What the agent should do with the material")
    attachments: List[str] = Field(
        default_factory=list, description="Vault paths of the files to upload and import"
    )
    max_turns: Optional[int] = Field(None, gt=0, description="Override of MAX_TURNS")


class RunResponse(BaseModel):
    """Identifier and status of a run."""

    run_id: str
    status: RunStatus


class RunDetail(RunResponse):
    """Full state of a run as seen by the caller."""

    steps: List[StepEntry] = Field(default_factory=list)
    messages: List[str] = Field(default_factory=list)
    results: List[ToolResultPart] = Field(default_factory=list)
    error: Optional[str] = None

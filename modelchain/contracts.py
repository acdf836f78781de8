"""Core data contracts for modelchain workflows."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class MediaType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"


class StepKind(str, Enum):
    INPUT = "input"
    OUTPUT = "output"
    HOSTED_MODEL = "hosted_model"
    MARKETPLACE_MODEL = "marketplace_model"
    GENERIC_HTTP = "generic_http"


HIDDEN_STEP_KINDS = frozenset({StepKind.INPUT, StepKind.OUTPUT})


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


# ----------------------------------------------------------------------
# Data flowing between steps
class FileInput(BaseModel):
    """A file reference carried alongside step text."""

    url: str
    media_type: MediaType
    name: str = ""
    mime_type: Optional[str] = None


class StepOutput(BaseModel):
    """Unit of data passed from one step to the next.

    ``error`` is set by executors that convert a provider failure into a
    tagged output instead of raising; the controller treats it as a failed step.
    """

    text: str = ""
    files: List[FileInput] = Field(default_factory=list)
    error: Optional[str] = None

    def files_of(self, media_type: MediaType) -> List[FileInput]:
        return [f for f in self.files if f.media_type == media_type]


# ----------------------------------------------------------------------
# Step definitions
class CustomParam(BaseModel):
    """Static name/value pair a step contributes to the substitution table."""

    name: str
    value: str = ""


class KeyValue(BaseModel):
    key: str
    value: str = ""


class ResultField(BaseModel):
    """Field extracted from a generic HTTP response.

    ``key`` is a dotted path, list items are addressed as ``items[0]``.
    """

    key: str
    type: Literal["text", "url", "image", "video", "audio", "document"] = "text"


class _StepBase(BaseModel):
    id: str
    name: str = ""
    order: int = 0
    input_media_type: MediaType = MediaType.TEXT
    output_media_type: MediaType = MediaType.TEXT
    custom_params: List[CustomParam] = Field(default_factory=list)
    file_bindings: List[str] = Field(default_factory=list)

    @property
    def is_visible(self) -> bool:
        return StepKind(self.kind) not in HIDDEN_STEP_KINDS

    @property
    def model_id(self) -> Optional[str]:
        return getattr(self, "model", None)


class InputStep(_StepBase):
    kind: Literal["input"] = "input"
    accept_types: List[MediaType] = Field(default_factory=lambda: [MediaType.TEXT])


class OutputStep(_StepBase):
    kind: Literal["output"] = "output"


class HostedModelStep(_StepBase):
    kind: Literal["hosted_model"] = "hosted_model"
    model: Optional[str] = None
    prompt: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)


class MarketplaceStep(_StepBase):
    kind: Literal["marketplace_model"] = "marketplace_model"
    model: Optional[str] = None
    prompt: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    endpoint: Optional[str] = None
    endpoint_params: List[KeyValue] = Field(default_factory=list)


class GenericHttpStep(_StepBase):
    kind: Literal["generic_http"] = "generic_http"
    url: str = ""
    method: str = "POST"
    headers: List[KeyValue] = Field(default_factory=list)
    query_params: List[KeyValue] = Field(default_factory=list)
    result_fields: List[ResultField] = Field(default_factory=list)
    price: int = 0


StepDefinition = Annotated[
    Union[InputStep, OutputStep, HostedModelStep, MarketplaceStep, GenericHttpStep],
    Field(discriminator="kind"),
]


class Edge(BaseModel):
    """Data dependency ``source -> target``; does not affect execution order."""

    source: str
    target: str


class Workflow(BaseModel):
    """Stored workflow graph. Steps are kept sorted by declared ``order``."""

    id: str
    name: str = ""
    creator_id: Optional[str] = None
    steps: List[StepDefinition] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    declared_price: int = 0
    is_public: bool = True
    total_uses: int = 0

    @model_validator(mode="after")
    def _sort_steps(self) -> "Workflow":
        self.steps = sorted(self.steps, key=lambda s: s.order)
        return self

    @property
    def visible_steps(self) -> List[StepDefinition]:
        return [s for s in self.steps if s.is_visible]


# ----------------------------------------------------------------------
# Execution input and results
class StepInputOverride(BaseModel):
    text: str = ""
    files: List[FileInput] = Field(default_factory=list)


class ExecutionInput(BaseModel):
    """Caller supplied payload for one execution."""

    text: str = ""
    files: List[FileInput] = Field(default_factory=list)
    step_inputs: Dict[str, StepInputOverride] = Field(default_factory=dict)
    params: Dict[str, Any] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.text and not self.files and not self.step_inputs

    def as_step_output(self) -> StepOutput:
        return StepOutput(text=self.text, files=list(self.files))


class StepResult(BaseModel):
    step_id: str
    step_name: str
    kind: StepKind
    output: str
    output_media_type: MediaType
    duration_ms: int = 0
    error: Optional[str] = None


class ExecutionRecord(BaseModel):
    """Persisted state of one execution."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    user_id: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    inputs: Dict[str, Any] = Field(default_factory=dict)
    step_results: List[StepResult] = Field(default_factory=list)
    final_output: Optional[str] = None
    error_message: Optional[str] = None
    credits_used: int = 0
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None


# ----------------------------------------------------------------------
# Progress events
class StepSummary(BaseModel):
    step_id: str
    step_name: str
    kind: StepKind
    output_media_type: MediaType
    model: Optional[str] = None
    model_name: Optional[str] = None
    index: int


class _Event(BaseModel):
    def to_sse(self) -> str:
        """Render the event as a server-sent-event frame."""
        data = self.model_dump(mode="json", exclude={"event"})
        return f"event: {self.event}\ndata: {json.dumps(data)}\n\n"


class WorkflowStart(_Event):
    event: Literal["workflow_start"] = "workflow_start"
    execution_id: str
    total_steps: int
    steps: List[StepSummary] = Field(default_factory=list)


class StepStart(_Event):
    event: Literal["step_start"] = "step_start"
    step_id: str
    step_name: str
    kind: StepKind
    output_media_type: MediaType
    model: Optional[str] = None
    model_name: Optional[str] = None
    index: int
    total_steps: int


class StepComplete(_Event):
    event: Literal["step_complete"] = "step_complete"
    step_id: str
    step_name: str
    output: str
    duration_ms: int
    index: int
    total_steps: int


class StepError(_Event):
    event: Literal["step_error"] = "step_error"
    step_id: str
    step_name: str
    output: str
    error: str
    index: int
    total_steps: int


class WorkflowComplete(_Event):
    event: Literal["workflow_complete"] = "workflow_complete"
    execution_id: str
    status: ExecutionStatus
    final_cost: int = 0


ProgressEvent = Annotated[
    Union[WorkflowStart, StepStart, StepComplete, StepError, WorkflowComplete],
    Field(discriminator="event"),
]

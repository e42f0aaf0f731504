import time
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

IMPORT_SUFFIX = "/import"
EXPORT_SUFFIX = "/store"


class Step(BaseModel):
    """One named robot invocation inside an assembly."""

    model_config = ConfigDict(frozen=True)

    name: str
    robot: str
    options: Dict[str, Any] = Field(default_factory=dict)
    # None means "not given"; an empty tuple is an explicit "no inputs"
    use: Optional[Tuple[str, ...]] = None

    @property
    def is_import(self) -> bool:
        return self.robot.endswith(IMPORT_SUFFIX)

    @property
    def is_export(self) -> bool:
        return self.robot.endswith(EXPORT_SUFFIX)

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"robot": self.robot, **self.options}
        if self.use is not None:
            params["use"] = list(self.use)
        return params


class JobSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    steps: Tuple[Step, ...] = ()
    fields: Dict[str, Any] = Field(default_factory=dict)
    template_id: Optional[str] = None
    notify_url: Optional[str] = None

    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]

    def with_fields(self, **fields: Any) -> "JobSpec":
        return self.model_copy(update={"fields": {**self.fields, **fields}})

    def to_params(self) -> Dict[str, Any]:
        """Assembly parameters in the shape the API expects (minus auth)."""
        params: Dict[str, Any] = {}
        if self.steps:
            params["steps"] = {step.name: step.to_params() for step in self.steps}
        if self.template_id:
            params["template_id"] = self.template_id
        if self.notify_url:
            params["notify_url"] = self.notify_url
        if self.fields:
            params["fields"] = self.fields
        return params


class AssemblyStatus(str, Enum):
    UPLOADING = "ASSEMBLY_UPLOADING"
    EXECUTING = "ASSEMBLY_EXECUTING"
    REPLAYING = "ASSEMBLY_REPLAYING"
    COMPLETED = "ASSEMBLY_COMPLETED"
    ABORTED = "REQUEST_ABORTED"
    CANCELED = "ASSEMBLY_CANCELED"


FINISHED_STATUSES = {AssemblyStatus.COMPLETED, AssemblyStatus.ABORTED, AssemblyStatus.CANCELED}


class ResultDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    name: str
    size: Optional[int] = None
    mime_type: Optional[str] = Field(default=None, alias="mime")
    meta: Dict[str, Any] = Field(default_factory=dict)


class AssemblyError(BaseModel):
    code: str
    message: Optional[str] = None


class JobHandle(BaseModel):
    assembly_id: str
    assembly_url: Optional[str] = None
    ok: Optional[str] = None
    notify_url: Optional[str] = None
    notify_status: Optional[str] = None
    results: Dict[str, List[ResultDescriptor]] = Field(default_factory=dict)
    fields: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[AssemblyError] = None
    body: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_body(cls, body: Dict[str, Any]) -> "JobHandle":
        error = None
        if body.get("error"):
            error = AssemblyError(code=body["error"], message=body.get("message") or body.get("reason"))
        return cls(
            assembly_id=body.get("assembly_id", ""),
            assembly_url=body.get("assembly_ssl_url") or body.get("assembly_url"),
            ok=body.get("ok"),
            notify_url=body.get("notify_url") or None,
            notify_status=body.get("notify_status"),
            results=body.get("results") or {},
            fields=body.get("fields") or {},
            error=error,
            body=body,
        )

    @property
    def status(self) -> Optional[AssemblyStatus]:
        try:
            return AssemblyStatus(self.ok)
        except ValueError:
            return None

    @property
    def completed(self) -> bool:
        return self.status == AssemblyStatus.COMPLETED

    @property
    def finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def terminal(self) -> bool:
        return self.finished or self.error is not None


class AssemblyEnvelope(BaseModel):
    """The parts of a finished assembly that reconciliation reads."""

    assembly_id: Optional[Any] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    results: Dict[str, List[ResultDescriptor]] = Field(default_factory=dict)

    @field_validator("fields", "results", mode="before")
    @classmethod
    def _missing_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class UploadedFileRef(BaseModel):
    """A file sitting in one of our storages."""

    id: str
    storage: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_data(self) -> Dict[str, Any]:
        return self.model_dump()


class CorrelationPayload(BaseModel):
    """Echoed back by the service in ``fields.attacher``."""

    record_class: str
    record_id: str
    field: str
    cached_file: Dict[str, Any]


# Only cached files are processed (TranscodeService.process_attachment), so
# STORED and ABANDONED never lead back to PROCESSING.
class AttachmentState(str, Enum):
    CACHED = "CACHED"
    PROCESSING = "PROCESSING"
    STORED = "STORED"
    ABANDONED = "ABANDONED"


class OutcomeKind(str, Enum):
    STORED = "stored"
    STALE = "stale"
    ORPHANED = "orphaned"


class Outcome(BaseModel):
    kind: OutcomeKind
    record_class: str
    record_id: str
    field: str
    stored: Optional[Any] = None
    discarded: List[UploadedFileRef] = Field(default_factory=list)

    @property
    def state(self) -> AttachmentState:
        if self.kind == OutcomeKind.STORED:
            return AttachmentState.STORED
        return AttachmentState.ABANDONED


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


class Task(BaseModel):
    id: str
    kind: Literal["process", "delete"]
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: TaskStatus = TaskStatus.PENDING
    error: Optional[str] = None
    created_at: float = Field(default_factory=time.time)


class Record(BaseModel):
    id: str
    record_class: str
    data: Dict[str, Any] = Field(default_factory=dict)
    attachments: Dict[str, Any] = Field(default_factory=dict)
    version: int = 0

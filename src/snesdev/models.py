"""
Data model for bootstrap runs.

Catalog entries, step outcomes and reports are frozen dataclasses; the
user-facing request and the persisted run state are Pydantic models so
they get validation and tolerant parsing for free.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from snesdev.config import get_config
from snesdev.errors import InvalidRequestError

__all__ = [
    "StepStatus",
    "RunStatus",
    "StepDefinition",
    "StepOutcome",
    "StepRecord",
    "RunRequest",
    "RunState",
    "RunReport",
    "parse_request",
    "utc_now_iso",
]

STATE_SCHEMA_VERSION = 1


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


class StepStatus(str, Enum):
    """Status values for a single step within a run."""
    PENDING = "pending"
    SKIPPED = "skipped"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Status values for a whole bootstrap run."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"


@dataclass(frozen=True)
class StepDefinition:
    """One catalog entry: what to call and with which parameters."""
    name: str
    description: str
    required: bool
    operation_ref: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", _frozen(self.parameters))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "required": self.required,
            "operation_ref": self.operation_ref,
            "parameters": dict(self.parameters),
        }


@dataclass(frozen=True)
class StepOutcome:
    """Normalized result of one collaborator invocation."""
    success: bool
    error_message: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _frozen(self.metadata))

    @classmethod
    def ok(cls, metadata: Optional[Mapping[str, Any]] = None) -> "StepOutcome":
        return cls(success=True, metadata=metadata or {})

    @classmethod
    def failed(
        cls, error_message: str, metadata: Optional[Mapping[str, Any]] = None
    ) -> "StepOutcome":
        return cls(success=False, error_message=error_message, metadata=metadata or {})

    @classmethod
    def from_result(cls, result: Any) -> "StepOutcome":
        """
        Build an outcome from a collaborator's return value.

        Accepts a StepOutcome or a mapping following the collaborator
        contract ``{success: bool, error?: str, metadata?: dict}``.

        Raises:
            TypeError: if the value follows neither shape
        """
        if isinstance(result, StepOutcome):
            return result
        if not isinstance(result, Mapping) or "success" not in result:
            raise TypeError(
                f"Operation returned {type(result).__name__}, expected a mapping "
                "with a 'success' key"
            )
        if not isinstance(result["success"], bool):
            raise TypeError(
                f"Operation 'success' must be a bool, got {type(result['success']).__name__}"
            )
        metadata = result.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            raise TypeError("Operation metadata must be a mapping")
        if result["success"]:
            return cls.ok(metadata)
        return cls.failed(str(result.get("error") or "Unknown error occurred"), metadata)


@dataclass(frozen=True)
class StepRecord:
    """History entry for one step of a run."""
    name: str
    description: str
    required: bool
    status: StepStatus = StepStatus.PENDING
    error_message: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    note: Optional[str] = None
    duration_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _frozen(self.metadata))

    @property
    def is_done(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "required": self.required,
            "status": self.status.value,
            "error_message": self.error_message,
            "metadata": dict(self.metadata),
            "note": self.note,
            "duration_seconds": self.duration_seconds,
        }


class RunRequest(BaseModel):
    """
    User-declared configuration for one bootstrap run.

    Unset fields fall back to the configured defaults (see
    :mod:`snesdev.config`). The model is frozen once constructed.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    project_name: str = Field(
        default_factory=lambda: get_config().default_project_name,
        validate_default=True,
        description="Starter project name",
    )
    install_prefix: Path = Field(
        default_factory=lambda: get_config().get_install_prefix(),
        validate_default=True,
        description="SDK install prefix",
    )
    sdk_version: str = Field(
        default_factory=lambda: get_config().default_sdk_version,
        description="SDK version pin",
    )
    offline_mode: bool = Field(False, description="Install from a local archive")
    offline_sdk_path: Optional[Path] = Field(None, description="Local SDK archive")
    force_reinstall: bool = Field(False, description="Re-run every step")
    resume_from_failure: bool = Field(False, description="Continue a failed run")
    skip_ide: bool = Field(False, description="Skip VS Code integration")
    skip_ci: bool = Field(False, description="Skip CI integration")
    create_starter_project: bool = Field(True, description="Scaffold a starter project")
    non_interactive: bool = Field(False, description="Never prompt from collaborators")
    step_overrides: Mapping[str, Mapping[str, Any]] = Field(
        default_factory=dict,
        validate_default=True,
        description="Extra parameters per step name (read-only)",
    )

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("project_name must not be empty")
        return v

    @field_validator("install_prefix")
    @classmethod
    def resolve_prefix(cls, v: Path) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("step_overrides")
    @classmethod
    def freeze_overrides(
        cls, v: Mapping[str, Mapping[str, Any]]
    ) -> Mapping[str, Mapping[str, Any]]:
        return _frozen({step: _frozen(params) for step, params in v.items()})

    @field_serializer("step_overrides")
    def dump_overrides(self, v: Mapping[str, Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
        return {step: dict(params) for step, params in v.items()}

    @field_validator("offline_sdk_path")
    @classmethod
    def expand_sdk_path(cls, v: Optional[Path]) -> Optional[Path]:
        return Path(v).expanduser() if v is not None else None

    @model_validator(mode="after")
    def check_offline_pair(self) -> "RunRequest":
        if self.offline_mode and self.offline_sdk_path is None:
            raise ValueError("offline_sdk_path is required when offline_mode is enabled")
        if self.offline_sdk_path is not None and not self.offline_mode:
            raise ValueError("offline_mode must be enabled when offline_sdk_path is set")
        return self

    @classmethod
    def from_file(cls, path: Path, **overrides: Any) -> "RunRequest":
        """
        Load a request from a YAML or JSON file.

        Keyword overrides win over the file's values; None overrides are
        ignored so that unset CLI options do not clobber the file.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise InvalidRequestError(f"Cannot read request file {path}: {e}") from e

        try:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(text) or {}
            else:
                data = json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise InvalidRequestError(f"Cannot parse request file {path}: {e}") from e

        if not isinstance(data, dict):
            raise InvalidRequestError(
                f"Request file must contain an object/dict, got {type(data).__name__}"
            )
        data.update(overrides)
        return parse_request(data)


def parse_request(data: Mapping[str, Any]) -> RunRequest:
    """Validate request fields, dropping None values so defaults apply."""
    fields = {k: v for k, v in data.items() if v is not None}
    try:
        return RunRequest(**fields)
    except ValidationError as e:
        raise InvalidRequestError(str(e)) from e


class RunState(BaseModel):
    """
    Persisted progress of a run against one install target.

    Parsing is tolerant: unknown keys are ignored, missing keys are
    defaulted, and the keys written by the first bootstrap releases
    (``completedSteps``, ``environmentFile``, ``timestamp``) are accepted.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    schema_version: int = Field(
        default=STATE_SCHEMA_VERSION,
        validation_alias=AliasChoices("schemaVersion", "schema_version"),
        serialization_alias="schemaVersion",
    )
    install_prefix: str = Field(
        default="",
        validation_alias=AliasChoices("installPrefix", "install_prefix"),
        serialization_alias="installPrefix",
    )
    project_name: str = Field(
        default="",
        validation_alias=AliasChoices("projectName", "project_name"),
        serialization_alias="projectName",
    )
    completed_step_names: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "completedStepNames", "completedSteps", "completed_step_names"
        ),
        serialization_alias="completedStepNames",
    )
    environment_file_path: str = Field(
        default="",
        validation_alias=AliasChoices(
            "environmentFilePath", "environmentFile", "environment_file_path"
        ),
        serialization_alias="environmentFilePath",
    )
    last_updated: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("lastUpdated", "timestamp", "last_updated"),
        serialization_alias="lastUpdated",
    )

    @field_validator("completed_step_names")
    @classmethod
    def dedupe(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))

    @field_validator("environment_file_path", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def is_completed(self, step_name: str) -> bool:
        return step_name in self.completed_step_names

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the on-disk (camelCase) record."""
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class RunReport:
    """Final, immutable summary of a run."""
    success: bool
    status: RunStatus
    project_name: str
    install_prefix: str
    steps: Tuple[StepRecord, ...]
    completed_count: int
    total_count: int
    environment_file: str = ""
    project_path: Optional[str] = None
    next_steps: Tuple[str, ...] = ()
    troubleshooting: Tuple[str, ...] = ()
    failure_message: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def required_failures(self) -> List[StepRecord]:
        return [s for s in self.steps if s.required and s.status == StepStatus.FAILED]

    @property
    def optional_failures(self) -> List[StepRecord]:
        return [s for s in self.steps if not s.required and s.status == StepStatus.FAILED]

    def step(self, name: str) -> Optional[StepRecord]:
        for record in self.steps:
            if record.name == name:
                return record
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "project_name": self.project_name,
            "install_prefix": self.install_prefix,
            "project_path": self.project_path,
            "environment_file": self.environment_file,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
            "steps": [s.to_dict() for s in self.steps],
            "next_steps": list(self.next_steps),
            "troubleshooting": list(self.troubleshooting),
            "failure_message": self.failure_message,
            "elapsed_seconds": self.elapsed_seconds,
        }

# model.py
from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, List, Optional, Tuple, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator

from .shells import is_valid_shell


class TriggerKind(str, Enum):
    """Event kinds that can activate a pipeline."""
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    WORKFLOW_DISPATCH = "workflow_dispatch"


JOB_ID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def _stringify_env(value: Any) -> Any:
    # YAML hands us ints/bools for things like `DEBUG: 1`; env values are strings.
    if not isinstance(value, dict):
        return value
    out = {}
    for k, v in value.items():
        if isinstance(v, bool):
            out[k] = "true" if v else "false"
        elif v is None:
            out[k] = ""
        elif isinstance(v, (int, float)):
            out[k] = str(v)
        else:
            out[k] = v
    return out


StrMap = Annotated[Dict[str, str], BeforeValidator(_stringify_env)]


class _Spec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


# ---------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------

class RunDefaults(_Spec):
    shell: Optional[str] = None
    working_directory: Optional[str] = Field(default=None, alias="working-directory")

    @field_validator("shell")
    @classmethod
    def _check_shell(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_shell(v):
            raise ValueError(f"unknown shell {v!r} (custom shells must contain '{{0}}')")
        return v


class Defaults(_Spec):
    run: RunDefaults = Field(default_factory=RunDefaults)


# ---------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------

class StepSpec(_Spec):
    """
    One action within a job.

    Exactly one of `uses` (named external action + `with` parameters) or
    `run` (inline command text) is set.
    """
    name: Optional[str] = None
    uses: Optional[str] = None
    with_: StrMap = Field(default_factory=dict, alias="with")
    run: Optional[str] = None
    shell: Optional[str] = None
    working_directory: Optional[str] = Field(default=None, alias="working-directory")
    env: StrMap = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_variant(self) -> "StepSpec":
        if (self.uses is None) == (self.run is None):
            raise ValueError("step must define exactly one of 'uses' or 'run'")
        if self.uses is not None:
            if not self.uses.strip():
                raise ValueError("'uses' must not be empty")
            if self.shell is not None or self.working_directory is not None:
                raise ValueError("'shell' and 'working-directory' are only valid on 'run' steps")
        else:
            if self.with_:
                raise ValueError("'with' is only valid on 'uses' steps")
            if self.shell is not None and not is_valid_shell(self.shell):
                raise ValueError(
                    f"unknown shell {self.shell!r} (custom shells must contain '{{0}}')"
                )
        return self

    @property
    def is_action(self) -> bool:
        return self.uses is not None

    @property
    def command_lines(self) -> List[str]:
        return (self.run or "").splitlines()

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.uses:
            return self.uses
        first = next((line.strip() for line in self.command_lines if line.strip()), "")
        return f"Run {first}" if first else "Run"


# ---------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------

class ContainerSpec(_Spec):
    image: str = Field(min_length=1)
    env: StrMap = Field(default_factory=dict)
    options: Optional[str] = None


def _container_shorthand(value: Any) -> Any:
    if isinstance(value, str):
        return {"image": value}
    return value


class JobSpec(_Spec):
    """A named unit of work bound to one execution environment."""
    name: Optional[str] = None
    runs_on: Optional[Union[str, List[str]]] = Field(default=None, alias="runs-on")
    container: Annotated[Optional[ContainerSpec], BeforeValidator(_container_shorthand)] = None
    env: StrMap = Field(default_factory=dict)
    defaults: Defaults = Field(default_factory=Defaults)
    steps: List[StepSpec] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _reject_needs(cls, data: Any) -> Any:
        if isinstance(data, dict) and "needs" in data:
            raise ValueError("'needs' is not supported: jobs run independently of each other")
        return data

    @model_validator(mode="after")
    def _check_target(self) -> "JobSpec":
        if not self.labels and self.container is None:
            raise ValueError("job must declare 'runs-on' and/or 'container'")
        return self

    @property
    def labels(self) -> Tuple[str, ...]:
        if self.runs_on is None:
            return ()
        if isinstance(self.runs_on, str):
            return (self.runs_on,) if self.runs_on.strip() else ()
        return tuple(label for label in self.runs_on if label.strip())


# ---------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------

def _normalize_triggers(value: Any) -> Any:
    """
    `on:` may be a single kind, a list of kinds, or a mapping whose keys are
    kinds. Mapping values must be empty: only the kind is matched.
    """
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        for kind, cfg in value.items():
            if cfg not in (None, {}, []):
                raise ValueError(f"trigger {kind!r}: filters are not supported")
        return list(value.keys())
    return value


class PipelineSpec(_Spec):
    """Parsed, validated workflow. Read-only once loaded."""
    name: Optional[str] = None
    triggers: Annotated[FrozenSet[TriggerKind], BeforeValidator(_normalize_triggers)] = Field(
        alias="on", min_length=1
    )
    env: StrMap = Field(default_factory=dict)
    defaults: Defaults = Field(default_factory=Defaults)
    jobs: Dict[str, JobSpec] = Field(min_length=1)

    @field_validator("jobs")
    @classmethod
    def _check_job_ids(cls, jobs: Dict[str, JobSpec]) -> Dict[str, JobSpec]:
        for job_id in jobs:
            if not JOB_ID_RE.match(job_id):
                raise ValueError(
                    f"invalid job id {job_id!r}: use letters, digits, '-' or '_' "
                    "and start with a letter or '_'"
                )
        return jobs

    def job_names(self) -> List[str]:
        return list(self.jobs.keys())

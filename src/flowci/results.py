# results.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

# Keep captured output bounded; only the tail is interesting on failure.
OUTPUT_TAIL = 4000


class JobStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Verdict(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class StepOutcome:
    """Result of one step."""
    index: int
    name: str
    success: bool
    exit_code: Optional[int] = None
    output: str = ""
    error: Optional[str] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "success": self.success,
            "exit_code": self.exit_code,
            "output": self.output,
            "error": self.error,
            "duration": round(self.duration, 3),
        }


@dataclass(frozen=True)
class JobResult:
    """
    Terminal status of one job.

    `failed_step` is set only for FAILED jobs; `outcomes` then holds every
    step up to and including the failing one.
    """
    name: str
    status: JobStatus
    outcomes: Tuple[StepOutcome, ...] = ()
    failed_step: Optional[int] = None

    @classmethod
    def succeeded(cls, name: str, outcomes: Sequence[StepOutcome]) -> "JobResult":
        return cls(name=name, status=JobStatus.SUCCESS, outcomes=tuple(outcomes))

    @classmethod
    def failed(cls, name: str, index: int, outcomes: Sequence[StepOutcome]) -> "JobResult":
        return cls(name=name, status=JobStatus.FAILED, outcomes=tuple(outcomes), failed_step=index)

    @classmethod
    def cancelled(cls, name: str, outcomes: Sequence[StepOutcome] = ()) -> "JobResult":
        return cls(name=name, status=JobStatus.CANCELLED, outcomes=tuple(outcomes))

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.SUCCESS

    @property
    def failure(self) -> Optional[StepOutcome]:
        if self.failed_step is None or not self.outcomes:
            return None
        return self.outcomes[-1]

    def describe(self) -> str:
        if self.status is JobStatus.FAILED:
            return f"failed at step {self.failed_step}"
        return self.status.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "failed_step": self.failed_step,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass(frozen=True)
class PipelineResult:
    jobs: Mapping[str, JobResult]
    overall: Verdict
    name: Optional[str] = None
    event: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.overall is Verdict.SUCCESS

    def failed_jobs(self) -> List[JobResult]:
        return [r for r in self.jobs.values() if not r.ok]

    def shape(self) -> Dict[str, Tuple[str, Optional[int], int]]:
        """Per-job (status, failed_step, outcome count); stable across identical runs."""
        return {
            name: (r.status.value, r.failed_step, len(r.outcomes))
            for name, r in self.jobs.items()
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "event": self.event,
            "overall": self.overall.value,
            "jobs": {name: r.to_dict() for name, r in self.jobs.items()},
        }


# ----------------------------------------------------------------------
# Aggregation
# ----------------------------------------------------------------------

def aggregate(
    results: Mapping[str, JobResult],
    *,
    name: Optional[str] = None,
    event: Optional[str] = None,
) -> PipelineResult:
    """Overall Success iff every job succeeded. No job compensates for another."""
    overall = Verdict.SUCCESS if all(r.ok for r in results.values()) else Verdict.FAILURE
    return PipelineResult(
        jobs=MappingProxyType(dict(results)),
        overall=overall,
        name=name,
        event=event,
    )


def tail(text: Optional[str], limit: int = OUTPUT_TAIL) -> str:
    if not text:
        return ""
    return text[-limit:]


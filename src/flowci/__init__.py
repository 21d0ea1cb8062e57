from .engine import Engine, evaluate
from .errors import ProvisioningError, StepFailure, StructuralError
from .loader import load_pipeline, parse_pipeline, pipeline_from_mapping
from .model import JobSpec, PipelineSpec, StepSpec, TriggerKind
from .results import JobResult, JobStatus, PipelineResult, StepOutcome, Verdict

__version__ = "0.1.0"

__all__ = [
    "Engine",
    "evaluate",
    "load_pipeline",
    "parse_pipeline",
    "pipeline_from_mapping",
    "PipelineSpec",
    "JobSpec",
    "StepSpec",
    "TriggerKind",
    "JobResult",
    "JobStatus",
    "PipelineResult",
    "StepOutcome",
    "Verdict",
    "StructuralError",
    "ProvisioningError",
    "StepFailure",
]

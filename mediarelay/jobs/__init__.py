"""Job lifecycle: models, registry and execution controller."""

from .models import CancelResult, Job, JobLookup, JobLookupState, JobRequest
from .registry import JobRegistry
from .stages import JobStage

__all__ = [
    "CancelResult",
    "Job",
    "JobLookup",
    "JobLookupState",
    "JobRegistry",
    "JobRequest",
    "JobStage",
]

"""Job execution: sequential step runner and queue worker."""

from .executor import StepExecutor
from .worker import AutomationWorker, JobProgress

__all__ = [
    "AutomationWorker",
    "JobProgress",
    "StepExecutor",
]

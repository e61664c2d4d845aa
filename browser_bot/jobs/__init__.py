from browser_bot.jobs.events import LoggingQueueListener, QueueListener
from browser_bot.jobs.job import Job, JobState, compute_backoff
from browser_bot.jobs.queue import AutomationQueue

__all__ = [
    "AutomationQueue",
    "Job",
    "JobState",
    "LoggingQueueListener",
    "QueueListener",
    "compute_backoff",
]

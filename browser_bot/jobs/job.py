"""Job record and retry arithmetic."""

import json
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from browser_bot.config import JOB_ATTEMPTS, JOB_BACKOFF_DELAY_MS


def now_ms() -> int:
    return int(time.time() * 1000)


def compute_backoff(attempts_made: int, base_delay_ms: int = JOB_BACKOFF_DELAY_MS) -> int:
    """
    Exponential retry delay after the ``attempts_made``-th failed attempt.

    1 -> base, 2 -> 2*base, 3 -> 4*base, ...
    """
    if attempts_made < 1:
        return 0
    return base_delay_ms * 2 ** (attempts_made - 1)


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    """One unit of queued work: run an execution's action script."""

    id: str
    data: dict
    max_attempts: int = JOB_ATTEMPTS
    backoff_delay_ms: int = JOB_BACKOFF_DELAY_MS
    attempts_made: int = 0
    progress: int = 0
    timestamp: int = field(default_factory=now_ms)
    processed_on: Optional[int] = None
    finished_on: Optional[int] = None
    failed_reason: Optional[str] = None
    stalled_count: int = 0
    return_value: Any = None
    state: JobState = JobState.WAITING

    @property
    def execution_id(self) -> Optional[str]:
        return self.data.get("executionId")

    @property
    def attempts_left(self) -> int:
        return max(0, self.max_attempts - self.attempts_made)

    @property
    def wait_time_ms(self) -> Optional[int]:
        if self.processed_on is None:
            return None
        return self.processed_on - self.timestamp

    @property
    def process_time_ms(self) -> Optional[int]:
        if self.processed_on is None or self.finished_on is None:
            return None
        return self.finished_on - self.processed_on

    def to_hash(self) -> dict[str, str]:
        """Flatten to a Redis hash mapping (None fields are omitted)."""
        mapping = {
            "data": json.dumps(self.data),
            "max_attempts": str(self.max_attempts),
            "backoff_delay_ms": str(self.backoff_delay_ms),
            "attempts_made": str(self.attempts_made),
            "progress": str(self.progress),
            "timestamp": str(self.timestamp),
            "stalled_count": str(self.stalled_count),
            "state": self.state.value,
        }
        if self.processed_on is not None:
            mapping["processed_on"] = str(self.processed_on)
        if self.finished_on is not None:
            mapping["finished_on"] = str(self.finished_on)
        if self.failed_reason is not None:
            mapping["failed_reason"] = self.failed_reason
        if self.return_value is not None:
            mapping["return_value"] = json.dumps(self.return_value)
        return mapping

    @classmethod
    def from_hash(cls, job_id: str, mapping: dict[str, str]) -> "Job":
        def _int(key: str) -> Optional[int]:
            raw = mapping.get(key)
            return int(raw) if raw not in (None, "") else None

        return_value = mapping.get("return_value")
        return cls(
            id=str(job_id),
            data=json.loads(mapping.get("data") or "{}"),
            max_attempts=_int("max_attempts") or JOB_ATTEMPTS,
            backoff_delay_ms=_int("backoff_delay_ms") or JOB_BACKOFF_DELAY_MS,
            attempts_made=_int("attempts_made") or 0,
            progress=_int("progress") or 0,
            timestamp=_int("timestamp") or now_ms(),
            processed_on=_int("processed_on"),
            finished_on=_int("finished_on"),
            failed_reason=mapping.get("failed_reason"),
            stalled_count=_int("stalled_count") or 0,
            return_value=json.loads(return_value) if return_value else None,
            state=JobState(mapping.get("state", JobState.WAITING.value)),
        )

    def to_dict(self) -> dict:
        result = asdict(self)
        result["state"] = self.state.value
        return result

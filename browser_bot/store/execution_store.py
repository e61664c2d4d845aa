"""Execution records: one per submitted automation, updated by id."""

import asyncio
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from browser_bot.config import DATA_DIR

logger = logging.getLogger(__name__)


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# Python attribute -> external JSON key
_FIELD_KEYS = {
    "id": "id",
    "prompt": "prompt",
    "workflow_id": "workflowId",
    "status": "status",
    "steps": "steps",
    "results": "results",
    "screenshot": "screenshot",
    "video_url": "videoUrl",
    "error_log": "errorLog",
    "start_time": "startTime",
    "end_time": "endTime",
}
_KEY_FIELDS = {v: k for k, v in _FIELD_KEYS.items()}


@dataclass
class Execution:
    """Audit record of one automation run."""

    id: str
    prompt: str
    workflow_id: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    steps: list[dict] = field(default_factory=list)
    results: list[dict] = field(default_factory=list)
    screenshot: Optional[str] = None
    video_url: Optional[str] = None
    error_log: Optional[str] = None
    start_time: str = field(default_factory=_now_iso)
    end_time: Optional[str] = None

    def to_dict(self) -> dict:
        result = {}
        for attr, key in _FIELD_KEYS.items():
            value = getattr(self, attr)
            result[key] = value.value if isinstance(value, Enum) else value
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "Execution":
        kwargs = {_KEY_FIELDS[k]: v for k, v in data.items() if k in _KEY_FIELDS}
        kwargs["status"] = ExecutionStatus(kwargs.get("status", ExecutionStatus.RUNNING.value))
        return cls(**kwargs)


def _serialize(value: Any) -> Any:
    """Convert step results, actions and timestamps to JSON-ready values."""
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


class ExecutionStore(ABC):
    """Persistence for Execution records. Writes are overwrite-by-id."""

    @abstractmethod
    async def create_execution(
        self,
        prompt: str,
        steps: Optional[list] = None,
        workflow_id: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> Execution:
        ...

    @abstractmethod
    async def update_execution(self, execution_id: str, **fields: Any) -> Optional[Execution]:
        ...

    @abstractmethod
    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        ...

    @abstractmethod
    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Execution]:
        ...

    @abstractmethod
    async def get_execution_stats(self, workflow_id: Optional[str] = None) -> dict:
        ...


class FileExecutionStore(ExecutionStore):
    """
    JSON-file backed store (``<data dir>/executions.json``).

    Good for a single host; every call reads and rewrites the whole file under
    an asyncio lock, and writes go through a temp file + ``os.replace``.
    """

    def __init__(self, data_dir: Union[str, Path] = DATA_DIR, filename: str = "executions.json"):
        self.path = Path(data_dir) / filename
        self._lock = asyncio.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._write([])
            logger.info(f"File-based execution store initialized at {self.path}")

    def _read(self) -> list[dict]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            logger.error(f"Failed to read executions from {self.path}: {e}")
            return []

    def _write(self, records: list[dict]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
        os.replace(tmp, self.path)

    async def create_execution(self, prompt, steps=None, workflow_id=None, execution_id=None):
        execution = Execution(
            id=execution_id or str(uuid.uuid4()),
            prompt=prompt,
            workflow_id=workflow_id,
            steps=_serialize(list(steps or [])),
        )
        async with self._lock:
            records = self._read()
            records.append(execution.to_dict())
            self._write(records)
        logger.info(f"Execution created: {execution.id}")
        return execution

    async def update_execution(self, execution_id, **fields):
        """
        Merge ``fields`` into the record with ``execution_id``.

        Safe to repeat (retried jobs write the same id again). ``steps`` is
        immutable once set, and a finished record never returns to running.

        Returns:
            The updated Execution, or None if no record has this id.
        """
        unknown = set(fields) - set(_FIELD_KEYS) - {"id"}
        if unknown:
            raise ValueError(f"Unknown execution fields: {sorted(unknown)}")

        async with self._lock:
            records = self._read()
            index = next((i for i, r in enumerate(records) if r.get("id") == execution_id), None)
            if index is None:
                logger.warning(f"Execution not found, update skipped: {execution_id}")
                return None

            current = records[index]
            for attr, value in fields.items():
                if attr == "id":
                    continue
                key = _FIELD_KEYS[attr]
                value = _serialize(value)
                if attr == "steps" and current.get("steps"):
                    if value != current["steps"]:
                        logger.debug(f"Ignoring steps change on execution {execution_id}")
                    continue
                if (
                    attr == "status"
                    and value == ExecutionStatus.RUNNING.value
                    and current.get("status") != ExecutionStatus.RUNNING.value
                ):
                    logger.debug(f"Ignoring return to running on execution {execution_id}")
                    continue
                current[key] = value

            records[index] = current
            self._write(records)
        return Execution.from_dict(current)

    async def get_execution(self, execution_id):
        async with self._lock:
            records = self._read()
        for record in records:
            if record.get("id") == execution_id:
                return Execution.from_dict(record)
        return None

    async def list_executions(self, workflow_id=None, status=None, limit=50, offset=0):
        """Newest first, optionally filtered by workflow and status."""
        async with self._lock:
            records = self._read()
        if workflow_id:
            records = [r for r in records if r.get("workflowId") == workflow_id]
        if status:
            status = status.value if isinstance(status, ExecutionStatus) else status
            records = [r for r in records if r.get("status") == status]
        records.sort(key=lambda r: r.get("startTime") or "", reverse=True)
        return [Execution.from_dict(r) for r in records[offset:offset + limit]]

    async def get_execution_stats(self, workflow_id=None):
        async with self._lock:
            records = self._read()
        if workflow_id:
            records = [r for r in records if r.get("workflowId") == workflow_id]
        total = len(records)
        successful = sum(1 for r in records if r.get("status") == ExecutionStatus.SUCCESS.value)
        failed = sum(1 for r in records if r.get("status") == ExecutionStatus.FAILED.value)
        running = sum(1 for r in records if r.get("status") == ExecutionStatus.RUNNING.value)
        return {
            "total": total,
            "successful": successful,
            "failed": failed,
            "running": running,
            "success_rate": round(successful / total * 100, 2) if total else 0.0,
        }

from __future__ import annotations

import json
import secrets
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class JobType(str, Enum):
    coordinator = "coordinator"
    post_processor = "post_processor"


class JobStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


def new_job_id() -> str:
    """12-char URL-safe random identifier."""
    return secrets.token_urlsafe(9)


class Job(BaseModel):
    """A queued unit of work, persisted as a flat string hash."""

    id: str = Field(default_factory=new_job_id)
    type: JobType
    status: JobStatus = JobStatus.pending
    created_at: int = Field(..., description="Epoch milliseconds")
    started_at: int | None = None
    completed_at: int | None = None
    payload: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    error: str | None = None

    def to_hash(self) -> dict[str, str]:
        data = {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "createdAt": str(self.created_at),
        }
        if self.started_at is not None:
            data["startedAt"] = str(self.started_at)
        if self.completed_at is not None:
            data["completedAt"] = str(self.completed_at)
        if self.payload is not None:
            data["payload"] = json.dumps(self.payload)
        if self.result is not None:
            data["result"] = json.dumps(self.result)
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> Job:
        def _int(key: str) -> int | None:
            value = data.get(key)
            return int(value) if value else None

        def _json(key: str) -> dict[str, Any] | None:
            value = data.get(key)
            return json.loads(value) if value else None

        return cls(
            id=data["id"],
            type=JobType(data["type"]),
            status=JobStatus(data["status"]),
            created_at=int(data["createdAt"]),
            started_at=_int("startedAt"),
            completed_at=_int("completedAt"),
            payload=_json("payload"),
            result=_json("result"),
            error=data.get("error") or None,
        )


# --- API responses ---


class EnqueueResponse(BaseModel):
    success: bool = True
    job_id: str
    message: str


class ProcessResponse(BaseModel):
    success: bool
    job_id: str | None = None
    job_type: JobType | None = None
    message: str
    result: dict[str, Any] | None = None
    error: str | None = None


class JobStatusResponse(BaseModel):
    job_id: str
    type: JobType
    status: JobStatus
    queue_position: int | None = None
    created_at: int
    started_at: int | None = None
    completed_at: int | None = None
    result: dict[str, Any] | None = None
    error: str | None = None

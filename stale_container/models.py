"""Data models for evaluations and background jobs."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from enum import Enum
import json
import uuid


class JobStatus(Enum):
    PENDING = "pending"


@dataclass
class EvaluationError:
    """Failure captured while processing a job."""

    message: str
    kind: str = "InternalError"
    # Status served by the evaluation endpoint for this failure
    status: int = 500

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "kind": self.kind, "status": self.status}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EvaluationError':
        return cls(
            message=data.get("message", ""),
            kind=data.get("kind", "InternalError"),
            status=int(data.get("status", 500)),
        )


@dataclass
class Evaluation:
    """Outcome of checking one image against one constraint."""

    image: str
    constraint: str
    tag_prefix: str = ""
    current_version: str = ""
    next_version: str = ""
    stale: bool = False
    error: Optional[EvaluationError] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "image": self.image,
            "constraint": self.constraint,
            "tagPrefix": self.tag_prefix,
            "current_version": self.current_version,
            "next_version": self.next_version,
            "stale": self.stale,
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Evaluation':
        error = data.get("error")
        return cls(
            image=data["image"],
            constraint=data["constraint"],
            tag_prefix=data.get("tagPrefix") or "",
            current_version=data.get("current_version", ""),
            next_version=data.get("next_version", ""),
            stale=bool(data.get("stale", False)),
            error=EvaluationError.from_dict(error) if error else None,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> 'Evaluation':
        return cls.from_dict(json.loads(raw))


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Job:
    """Request to fetch an image's tags and evaluate it in the background."""

    image: str
    constraint: str
    tag_prefix: str = ""
    id: str = field(default_factory=new_job_id)

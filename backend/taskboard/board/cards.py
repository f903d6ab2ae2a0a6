from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

from taskboard.schemas.task import TaskStatus


@dataclass(frozen=True)
class TaskCard:
    """Immutable view of one task as the board engine sees it.

    The server builds cards from ORM rows before an authoritative recompute;
    the client builds them from API payloads for its optimistic snapshot.
    """

    id: int
    status: TaskStatus
    position: int
    title: str = ""
    description: Optional[str] = None
    assigned_to_id: Optional[int] = None
    labels: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TaskCard":
        return cls(
            id=payload["id"],
            status=TaskStatus(payload["status"]),
            position=payload["position"],
            title=payload.get("title", ""),
            description=payload.get("description"),
            assigned_to_id=payload.get("assigned_to_id"),
            labels=tuple(payload.get("labels") or ()),
        )

    @classmethod
    def from_model(cls, task: Any) -> "TaskCard":
        return cls(
            id=task.id,
            status=TaskStatus(task.status),
            position=task.position,
            title=task.title,
            description=task.description,
            assigned_to_id=task.assigned_to_id,
            labels=tuple(task.labels or ()),
        )

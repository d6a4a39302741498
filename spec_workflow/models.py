"""Data models for the spec workflow.

This module contains the core data structures used throughout the
workflow: the per-stage confirmation record, the task tree projected from
``tasks.md`` and the result of a batch completion.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

REQUIREMENTS = "requirements"
DESIGN = "design"
TASKS = "tasks"
COMPLETED = "completed"

STAGES: Tuple[str, ...] = (REQUIREMENTS, DESIGN, TASKS)
ALL_STAGES: Tuple[str, ...] = STAGES + (COMPLETED,)

REASON_NOT_FOUND = "not-found"
REASON_HAS_UNCOMPLETED_SUBTASKS = "has-uncompleted-subtasks"
REASON_INTERNAL_MUTATION_FAILURE = "internal-mutation-failure"

BATCH_TASK_ID = "*"

TASK_ID_PATTERN = re.compile(r"^\d+(\.\d+)*$")


def is_valid_task_id(task_id: str) -> bool:
    """Check a task id against the dotted numeral format."""
    return bool(task_id) and TASK_ID_PATTERN.match(task_id) is not None


def task_id_segments(task_id: str) -> Tuple[int, ...]:
    """Numeric segments of a dotted id, used as a sort key."""
    return tuple(int(part) for part in task_id.split("."))


def task_id_depth(task_id: str) -> int:
    return task_id.count(".")


def _stage_flags(data: Optional[Dict[str, Any]] = None) -> Dict[str, bool]:
    data = data or {}
    return {stage: bool(data.get(stage, False)) for stage in STAGES}


@dataclass(slots=True)
class StageRecord:
    """Confirmed and skipped flags for each document stage."""

    confirmed: Dict[str, bool] = field(default_factory=_stage_flags)
    skipped: Dict[str, bool] = field(default_factory=_stage_flags)

    def is_confirmed(self, stage: str) -> bool:
        return self.confirmed.get(stage, False)

    def is_skipped(self, stage: str) -> bool:
        return self.skipped.get(stage, False)

    def is_passed(self, stage: str) -> bool:
        """A stage is passed once it has been confirmed or skipped."""
        return self.is_confirmed(stage) or self.is_skipped(stage)

    def with_confirmed(self, stage: str) -> "StageRecord":
        """Return a copy with ``stage`` confirmed."""
        confirmed = dict(self.confirmed)
        confirmed[stage] = True
        return StageRecord(confirmed=confirmed, skipped=dict(self.skipped))

    def with_skipped(self, stage: str) -> "StageRecord":
        """Return a copy with ``stage`` skipped."""
        skipped = dict(self.skipped)
        skipped[stage] = True
        return StageRecord(confirmed=dict(self.confirmed), skipped=skipped)

    def to_dict(self) -> Dict[str, Dict[str, bool]]:
        """Convert to dictionary representation."""
        return {
            "confirmed": dict(self.confirmed),
            "skipped": dict(self.skipped),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StageRecord":
        """Create from dictionary representation.

        Older confirmation files stored only the confirmed flags at the top
        level; those are read as the confirmed map with nothing skipped.
        """
        if not data:
            return cls()
        if "confirmed" not in data and "skipped" not in data:
            return cls(confirmed=_stage_flags(data), skipped=_stage_flags())
        return cls(
            confirmed=_stage_flags(data.get("confirmed")),
            skipped=_stage_flags(data.get("skipped")),
        )


@dataclass(slots=True)
class Task:
    """A checklist item from ``tasks.md`` and its subtasks."""

    task_id: str
    title: str
    completed: bool = False
    children: List["Task"] = field(default_factory=list)
    synthetic: bool = False
    line_index: Optional[int] = None

    @property
    def depth(self) -> int:
        return task_id_depth(self.task_id)

    @property
    def parent_id(self) -> Optional[str]:
        """Id of the root this task hangs under, ``None`` for roots."""
        if "." not in self.task_id:
            return None
        return self.task_id.split(".", 1)[0]

    def has_children(self) -> bool:
        return bool(self.children)

    def incomplete_children(self) -> List["Task"]:
        return [child for child in self.children if not child.completed]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "task_id": self.task_id,
            "title": self.title,
            "completed": self.completed,
            "synthetic": self.synthetic,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(slots=True)
class Rejection:
    """Why a task id in a batch could not be completed."""

    task_id: str
    reason: str
    message: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"task_id": self.task_id, "reason": self.reason, "message": self.message}


@dataclass(slots=True)
class BatchResult:
    """Outcome of completing one or more task ids in a single pass."""

    success: bool
    updated_text: str
    completed: List[str] = field(default_factory=list)
    already_completed: List[str] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)
    auto_completed: List[str] = field(default_factory=list)
    next_task: Optional[Task] = None

    @property
    def changed(self) -> bool:
        """True when at least one checkbox was flipped."""
        return self.success and bool(self.completed or self.auto_completed)

    def rejection_reasons(self) -> Dict[str, str]:
        return {item.task_id: item.reason for item in self.rejected}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "completed": list(self.completed),
            "already_completed": list(self.already_completed),
            "auto_completed": list(self.auto_completed),
            "rejected": [item.to_dict() for item in self.rejected],
            "changed": self.changed,
            "next_task": self.next_task.to_dict() if self.next_task else None,
        }

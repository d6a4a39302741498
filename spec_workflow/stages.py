"""Stage transitions for the requirements -> design -> tasks workflow."""

from __future__ import annotations

from typing import Dict, Tuple

from .models import ALL_STAGES, COMPLETED, DESIGN, REQUIREMENTS, STAGES, TASKS, StageRecord

_STAGE_NAMES = {
    REQUIREMENTS: "Requirements Document",
    DESIGN: "Design Document",
    TASKS: "Task List",
    COMPLETED: "Completed",
}

_STAGE_FILES = {
    REQUIREMENTS: "requirements.md",
    DESIGN: "design.md",
    TASKS: "tasks.md",
}


def _require_stage(stage: str) -> None:
    if stage not in STAGES:
        raise ValueError(f"Unknown stage '{stage}'. Expected one of: {', '.join(STAGES)}")


def current_stage(record: StageRecord) -> str:
    """Return the first stage that is neither confirmed nor skipped."""
    for stage in STAGES:
        if not record.is_passed(stage):
            return stage
    return COMPLETED


def next_stage(stage: str) -> str:
    """Stage following ``stage``; ``completed`` is terminal."""
    index = ALL_STAGES.index(stage)
    return ALL_STAGES[min(index + 1, len(ALL_STAGES) - 1)]


def stage_name(stage: str) -> str:
    return _STAGE_NAMES.get(stage, stage)


def stage_file_name(stage: str) -> str:
    return _STAGE_FILES.get(stage, "")


def confirm_stage(record: StageRecord, stage: str) -> Tuple[StageRecord, bool]:
    """Confirm ``stage``.

    Returns the new record and whether anything changed. Confirming a stage
    that is already confirmed or skipped leaves the record as it is.
    """
    _require_stage(stage)
    if record.is_passed(stage):
        return record, False
    return record.with_confirmed(stage), True


def skip_stage(record: StageRecord, stage: str) -> Tuple[StageRecord, bool]:
    """Skip ``stage``; a no-op for stages that are already passed."""
    _require_stage(stage)
    if record.is_passed(stage):
        return record, False
    return record.with_skipped(stage), True


def stage_progress(record: StageRecord) -> Dict[str, int]:
    """Percent progress per stage plus an ``overall`` figure.

    A skipped task list does not count as progress; only a confirmed one
    does.
    """
    progress = {
        REQUIREMENTS: 100 if record.is_passed(REQUIREMENTS) else 0,
        DESIGN: 100 if record.is_passed(DESIGN) else 0,
        TASKS: 100 if record.is_confirmed(TASKS) else 0,
    }
    progress["overall"] = round(sum(progress[stage] for stage in STAGES) / len(STAGES))
    return progress

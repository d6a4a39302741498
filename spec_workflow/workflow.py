"""Workflow management for a single feature.

This module provides the workflow orchestration behind the MCP tool: it
reads and writes the feature documents and stage record, walks the
requirements -> design -> tasks sequence, and completes tasks in
``tasks.md``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .completion import TaskIds, complete_batch, normalize_task_ids
from .config import WorkflowSettings
from .models import (
    COMPLETED,
    DESIGN,
    REASON_HAS_UNCOMPLETED_SUBTASKS,
    REASON_NOT_FOUND,
    REQUIREMENTS,
    STAGES,
    TASKS,
    BatchResult,
    StageRecord,
)
from .stages import (
    confirm_stage,
    current_stage,
    next_stage,
    skip_stage,
    stage_file_name,
    stage_name,
    stage_progress,
)
from .storage import DocumentStore, FileDocumentStore, FileStageStore, StageStore
from .task_parser import (
    format_task_for_full_display,
    format_task_list_overview,
    get_first_uncompleted_task,
    parse_tasks,
    task_summary,
)
from .templates import (
    design_template,
    feature_name_from_requirements,
    requirements_template,
    skipped_template,
    tasks_template,
)
from .workflow_logging import (
    log_batch_completed,
    log_batch_rejected,
    log_document_generated,
    log_error_with_context,
    log_operation,
    log_performance,
    log_stage_transition,
)

logger = logging.getLogger("spec_workflow.workflow")

_STAGE_TIPS = {
    REQUIREMENTS: "Fill in requirements.md, then confirm it (or skip it) to move on to the design",
    DESIGN: "Fill in design.md, then confirm it (or skip it) to move on to the task list",
    TASKS: "Break the design into numbered tasks in tasks.md, then confirm the task list",
    COMPLETED: "All documents are done. Work through tasks.md with complete_task",
}


class WorkflowManager:
    """Drive one feature directory through the document workflow."""

    def __init__(
        self,
        path: Union[Path, str],
        *,
        documents: Optional[DocumentStore] = None,
        stages: Optional[StageStore] = None,
        settings: Optional[WorkflowSettings] = None,
    ):
        self.settings = settings or WorkflowSettings()
        self.path = Path(path).expanduser().resolve()
        self.documents = documents if documents is not None else FileDocumentStore(self.path)
        self.stages = stages if stages is not None else FileStageStore(self.settings.confirmations_file)
        self.syntax = self.settings.syntax

    @property
    def key(self) -> str:
        return str(self.path)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def is_initialized(self) -> bool:
        return self.documents.exists(stage_file_name(REQUIREMENTS))

    def load_record(self) -> StageRecord:
        return self.stages.read(self.key)

    def current_stage(self) -> str:
        return current_stage(self.load_record())

    def feature_name(self) -> str:
        if not self.is_initialized():
            return "Unnamed Feature"
        return feature_name_from_requirements(self.documents.read(stage_file_name(REQUIREMENTS)))

    def _not_initialized(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": "Feature is not initialized",
            "message": f"No requirements.md found in {self.path}",
            "next_suggested_step": "init",
            "workflow_tip": "Start with init, passing featureName and introduction",
        }

    def _ensure_document(self, stage: str) -> Optional[str]:
        """Write the template for ``stage`` if its document is missing."""
        file_name = stage_file_name(stage)
        if not file_name or self.documents.exists(file_name):
            return None
        feature_name = self.feature_name()
        if stage == TASKS:
            content = tasks_template(feature_name)
        elif stage == DESIGN:
            content = design_template(feature_name)
        else:
            return None
        self.documents.write(file_name, content)
        log_document_generated(file_name, path=self.key, stage=stage)
        logger.info(f"Generated {file_name} for '{feature_name}'")
        return file_name

    def _task_guidance(self) -> Dict[str, Any]:
        file_name = stage_file_name(TASKS)
        if not self.documents.exists(file_name):
            return {}
        text = self.documents.read(file_name)
        forest = parse_tasks(text, self.syntax)
        next_task = get_first_uncompleted_task(forest)
        return {
            "tasks": task_summary(forest),
            "task_overview": format_task_list_overview(forest),
            "next_task": next_task.to_dict() if next_task else None,
            "next_task_content": format_task_for_full_display(next_task, text, self.syntax) if next_task else None,
        }

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """Report the current stage and which documents exist."""
        if not self.is_initialized():
            return self._not_initialized()
        stage = self.current_stage()
        return {
            "success": True,
            "stage": stage,
            "documents": {item: self.documents.exists(stage_file_name(item)) for item in STAGES},
            "message": f"Current stage: {stage_name(stage)}",
            "next_suggested_step": "check",
            "workflow_tip": "Available operations: check, confirm, skip" + (", complete_task" if stage == COMPLETED else ""),
        }

    @log_performance("init")
    def init(self, feature_name: str, introduction: str) -> Dict[str, Any]:
        """Create requirements.md for a new feature."""
        try:
            if not feature_name or not feature_name.strip():
                raise ValueError("featureName cannot be empty")
            if not introduction or not introduction.strip():
                raise ValueError("introduction cannot be empty")

            file_name = stage_file_name(REQUIREMENTS)
            if self.documents.exists(file_name):
                return {
                    "success": True,
                    "generated": False,
                    "stage": self.current_stage(),
                    "file_name": file_name,
                    "message": "Requirements document already exists",
                    "next_suggested_step": "check",
                    "workflow_tip": _STAGE_TIPS[self.current_stage()],
                }

            with log_operation("init", path=self.key, feature_name=feature_name):
                self.documents.write(file_name, requirements_template(feature_name.strip(), introduction))
                log_document_generated(file_name, path=self.key, stage=REQUIREMENTS)

            return {
                "success": True,
                "generated": True,
                "stage": REQUIREMENTS,
                "feature_name": feature_name.strip(),
                "file_name": file_name,
                "message": f"Initialized '{feature_name.strip()}' and created {file_name}",
                "next_suggested_step": "check",
                "workflow_tip": _STAGE_TIPS[REQUIREMENTS],
            }
        except Exception as e:
            log_error_with_context(e, {"operation": "init", "path": self.key})
            return {
                "success": False,
                "error": f"Failed to initialize feature: {e}",
                "message": f"Error: {e}",
                "next_suggested_step": "init",
            }

    def check(self) -> Dict[str, Any]:
        """Report progress of the current stage, generating its document if missing."""
        if not self.is_initialized():
            return self._not_initialized()
        try:
            record = self.load_record()
            stage = current_stage(record)
            generated = self._ensure_document(stage) if stage in STAGES else None
            response: Dict[str, Any] = {
                "success": True,
                "stage": stage,
                "stage_name": stage_name(stage),
                "progress": stage_progress(record),
                "document": stage_file_name(stage) or None,
                "generated": generated,
                "message": f"Current stage: {stage_name(stage)}",
                "next_suggested_step": "complete_task" if stage == COMPLETED else "confirm",
                "workflow_tip": _STAGE_TIPS[stage],
            }
            if stage in (TASKS, COMPLETED):
                response.update(self._task_guidance())
            return response
        except Exception as e:
            log_error_with_context(e, {"operation": "check", "path": self.key})
            return {"success": False, "error": f"Failed to check workflow: {e}", "message": f"Error: {e}"}

    def _transition(self, action: str, stage: Optional[str]) -> Dict[str, Any]:
        if not self.is_initialized():
            return self._not_initialized()
        try:
            record = self.load_record()
            active = current_stage(record)
            target = stage or active

            if target == COMPLETED:
                return {
                    "success": True,
                    "changed": False,
                    "stage": COMPLETED,
                    "message": "All stages have already been passed",
                    "next_suggested_step": "complete_task",
                    "workflow_tip": _STAGE_TIPS[COMPLETED],
                }
            if target not in STAGES:
                raise ValueError(f"Unknown stage '{target}'")
            if record.is_passed(target):
                return {
                    "success": True,
                    "changed": False,
                    "stage": active,
                    "message": f"{stage_name(target)} was already passed",
                    "next_suggested_step": "check",
                    "workflow_tip": _STAGE_TIPS[active],
                }
            if target != active:
                return {
                    "success": False,
                    "error": f"Cannot {action} {stage_name(target)} before {stage_name(active)}",
                    "stage": active,
                    "message": f"Finish {stage_name(active)} first",
                    "next_suggested_step": "check",
                }

            file_name = stage_file_name(target)
            if action == "confirm":
                problem = self._confirmation_problem(target)
                if problem:
                    return {
                        "success": False,
                        "error": problem,
                        "stage": active,
                        "message": f"Cannot confirm {stage_name(target)}: {problem}",
                        "next_suggested_step": "check",
                    }
                record, _ = confirm_stage(record, target)
            else:
                if not self.documents.exists(file_name):
                    self.documents.write(file_name, skipped_template(self.feature_name(), stage_name(target)))
                record, _ = skip_stage(record, target)

            with log_operation(action, path=self.key, stage=target):
                self.stages.write(self.key, record)
                log_stage_transition("confirmed" if action == "confirm" else "skipped", target, path=self.key)

            new_stage = current_stage(record)
            generated = self._ensure_document(next_stage(target))
            response: Dict[str, Any] = {
                "success": True,
                "changed": True,
                "stage": new_stage,
                "previous_stage": target,
                "generated": generated,
                "progress": stage_progress(record),
                "message": f"{stage_name(target)} {'confirmed' if action == 'confirm' else 'skipped'}",
                "next_suggested_step": "complete_task" if new_stage == COMPLETED else "check",
                "workflow_tip": _STAGE_TIPS[new_stage],
            }
            if new_stage == COMPLETED:
                response.update(self._task_guidance())
            return response
        except Exception as e:
            log_error_with_context(e, {"operation": action, "path": self.key, "stage": stage})
            return {
                "success": False,
                "error": f"Failed to {action} stage: {e}",
                "message": f"Error: {e}",
                "next_suggested_step": "check",
            }

    def _confirmation_problem(self, stage: str) -> Optional[str]:
        file_name = stage_file_name(stage)
        if not self.documents.exists(file_name):
            return f"{file_name} does not exist"
        if stage == TASKS and not parse_tasks(self.documents.read(file_name), self.syntax):
            return f"{file_name} does not contain any numbered tasks"
        return None

    def confirm(self, stage: Optional[str] = None) -> Dict[str, Any]:
        """Confirm the given (default: current) stage."""
        return self._transition("confirm", stage)

    def skip(self, stage: Optional[str] = None) -> Dict[str, Any]:
        """Skip the given (default: current) stage."""
        return self._transition("skip", stage)

    def complete_task(self, task_ids: TaskIds) -> Dict[str, Any]:
        """Complete one or more tasks in tasks.md as a single batch."""
        requested = normalize_task_ids(task_ids or [])
        if not requested:
            return {
                "success": False,
                "error": "Missing required parameters",
                "message": "Completing tasks requires a taskNumber",
                "next_suggested_step": "check",
            }
        file_name = stage_file_name(TASKS)
        if not self.documents.exists(file_name):
            return {
                "success": False,
                "error": f"{file_name} does not exist",
                "message": "Write the tasks document before completing tasks",
                "next_suggested_step": "check",
            }

        try:
            document = self.documents.read(file_name)
            result = complete_batch(document, requested, syntax=self.syntax)
            if result.changed:
                self.documents.write(file_name, result.updated_text)
            return self._batch_response(result, requested)
        except Exception as e:
            log_error_with_context(e, {"operation": "complete_task", "path": self.key, "task_ids": requested})
            return {
                "success": False,
                "error": f"Failed to complete tasks: {e}",
                "message": f"Error: {e}",
                "next_suggested_step": "check",
            }

    def _batch_response(self, result: BatchResult, requested: List[str]) -> Dict[str, Any]:
        response = result.to_dict()
        if not result.success:
            log_batch_rejected(result.rejection_reasons(), path=self.key, requested=requested)
            response.update(
                {
                    "error": "; ".join(_describe_rejection(item.reason, item.task_id, item.message) for item in result.rejected),
                    "message": "No tasks were changed",
                    "next_suggested_step": "check",
                }
            )
            return response

        if result.changed:
            log_batch_completed(result.completed, result.auto_completed, path=self.key)
        next_task = result.next_task
        done = result.completed + result.auto_completed
        if done:
            message = "Completed tasks: " + ", ".join(done)
        else:
            message = "Tasks already completed: " + ", ".join(result.already_completed)
        response.update(
            {
                "message": message,
                "next_task_content": (
                    format_task_for_full_display(next_task, result.updated_text, self.syntax) if next_task else None
                ),
                "all_completed": next_task is None,
                "next_suggested_step": "complete_task" if next_task else "check",
                "workflow_tip": (
                    f"Next: task {next_task.task_id} - {next_task.title}" if next_task else "Every task is complete"
                ),
            }
        )
        return response


def _describe_rejection(reason: str, task_id: str, message: str) -> str:
    if reason == REASON_NOT_FOUND:
        return f"Task {task_id} does not exist"
    if reason == REASON_HAS_UNCOMPLETED_SUBTASKS:
        return f"{message}. Complete those subtasks first"
    return f"The task list could not be updated ({message}); no changes were written"

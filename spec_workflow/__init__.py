"""Spec workflow - requirements, design and task list stages for a feature."""

from .completion import BatchCompletionEngine, TaskIdMatcher, complete_batch
from .config import DEFAULT_SYNTAX, TaskSyntax, WorkflowSettings
from .models import BatchResult, Rejection, StageRecord, Task
from .stages import confirm_stage, current_stage, skip_stage
from .storage import FileDocumentStore, FileStageStore, MemoryDocumentStore, MemoryStageStore
from .task_parser import get_first_uncompleted_task, parse_tasks
from .workflow import WorkflowManager

__all__ = [
    "BatchCompletionEngine",
    "BatchResult",
    "DEFAULT_SYNTAX",
    "FileDocumentStore",
    "FileStageStore",
    "MemoryDocumentStore",
    "MemoryStageStore",
    "Rejection",
    "StageRecord",
    "Task",
    "TaskIdMatcher",
    "TaskSyntax",
    "WorkflowManager",
    "WorkflowSettings",
    "complete_batch",
    "confirm_stage",
    "current_stage",
    "get_first_uncompleted_task",
    "parse_tasks",
    "skip_stage",
]

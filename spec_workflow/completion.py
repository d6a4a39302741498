"""Batch completion of checklist tasks in ``tasks.md``.

Completion is a pure ``text -> text`` transformation. Every id in a batch is
checked against the parse of the incoming document first; if any id is
missing or still has open subtasks nothing is written at all. Otherwise the
ids are applied deepest first, reparsing after every flip so that a parent
whose last open subtask was just checked is checked in the same pass.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .config import DEFAULT_SYNTAX, TaskSyntax
from .models import (
    BATCH_TASK_ID,
    REASON_HAS_UNCOMPLETED_SUBTASKS,
    REASON_INTERNAL_MUTATION_FAILURE,
    REASON_NOT_FOUND,
    BatchResult,
    Rejection,
    Task,
    is_valid_task_id,
    task_id_depth,
    task_id_segments,
)
from .task_parser import TaskLineScanner, find_task, get_first_uncompleted_task, parse_tasks
from .workflow_logging import log_batch_rolled_back, log_performance

logger = logging.getLogger("spec_workflow.completion")

TaskIds = Union[str, Iterable[str]]


class MutationFailure(RuntimeError):
    """A located task line could not be flipped, or the reparse disagrees."""

    def __init__(self, task_id: str, message: str):
        super().__init__(f"Task {task_id}: {message}")
        self.task_id = task_id


class TaskIdMatcher:
    """Boundary-aware matching of a task id against a checklist line.

    ``1`` matches ``- [ ] 1. Title`` but neither ``- [ ] 11. Title`` nor
    ``- [ ] 1.1 Title``. The accepted delimiters come from the
    ``TaskSyntax`` the matcher is built with.
    """

    def __init__(self, syntax: Optional[TaskSyntax] = None):
        self.scanner = TaskLineScanner(syntax)

    @property
    def syntax(self) -> TaskSyntax:
        return self.scanner.syntax

    def matches(self, line: str, task_id: str) -> bool:
        token = self.scanner.scan_line(line)
        return token is not None and token.task_id == task_id

    def find_line(self, lines: Sequence[str], task_id: str, *, unchecked_only: bool = True) -> Optional[int]:
        """Index of the first line carrying ``task_id``."""
        for index, line in enumerate(lines):
            token = self.scanner.scan_line(line)
            if token is None or token.task_id != task_id:
                continue
            if unchecked_only and token.completed:
                continue
            return index
        return None


def normalize_task_ids(task_ids: TaskIds) -> List[str]:
    """Accept one id or many; drop blanks and repeats, keep first-seen order."""
    if isinstance(task_ids, str):
        task_ids = [task_ids]
    normalized: List[str] = []
    for task_id in task_ids:
        task_id = str(task_id).strip()
        if task_id and task_id not in normalized:
            normalized.append(task_id)
    return normalized


def completion_order(task_ids: Iterable[str]) -> List[str]:
    """Deepest ids first, then ascending dotted order."""
    return sorted(task_ids, key=lambda task_id: (-task_id_depth(task_id), task_id_segments(task_id)))


class BatchCompletionEngine:
    """Apply completions for one or more task ids atomically."""

    def __init__(self, syntax: Optional[TaskSyntax] = None):
        self.syntax = syntax or DEFAULT_SYNTAX
        self.matcher = TaskIdMatcher(self.syntax)

    def complete(self, document: str, task_ids: TaskIds) -> BatchResult:
        requested = normalize_task_ids(task_ids)
        forest = parse_tasks(document, self.syntax)
        eligible, already_completed, rejected = self.classify(forest, requested)

        if rejected:
            logger.info(
                f"Rejected batch {requested}: "
                + ", ".join(f"{item.task_id} ({item.reason})" for item in rejected)
            )
            return BatchResult(
                success=False,
                updated_text=document,
                already_completed=already_completed,
                rejected=rejected,
            )

        if not eligible:
            return BatchResult(
                success=True,
                updated_text=document,
                already_completed=already_completed,
                next_task=get_first_uncompleted_task(forest),
            )

        try:
            text, completed, auto_completed = self._apply(document, completion_order(eligible))
        except MutationFailure as e:
            logger.error(f"Rolled back batch {requested}: {e}")
            log_batch_rolled_back(e.task_id, str(e), requested=requested)
            return BatchResult(
                success=False,
                updated_text=document,
                already_completed=already_completed,
                rejected=[Rejection(BATCH_TASK_ID, REASON_INTERNAL_MUTATION_FAILURE, str(e))],
            )

        return BatchResult(
            success=True,
            updated_text=text,
            completed=completed,
            already_completed=already_completed,
            auto_completed=auto_completed,
            next_task=get_first_uncompleted_task(parse_tasks(text, self.syntax)),
        )

    def classify(self, forest: Sequence[Task], requested: Sequence[str]) -> Tuple[List[str], List[str], List[Rejection]]:
        """Split requested ids into eligible, already completed and rejected.

        Open subtasks only block a parent when they are not part of the same
        batch, since the batch completes them first.
        """
        in_batch = set(requested)
        eligible: List[str] = []
        already_completed: List[str] = []
        rejected: List[Rejection] = []

        for task_id in requested:
            task = find_task(forest, task_id) if is_valid_task_id(task_id) else None
            if task is None:
                rejected.append(Rejection(task_id, REASON_NOT_FOUND, f"Task {task_id} does not exist"))
                continue
            if task.completed:
                already_completed.append(task_id)
                continue
            blocking = [child for child in task.incomplete_children() if child.task_id not in in_batch]
            if blocking:
                rejected.append(
                    Rejection(
                        task_id,
                        REASON_HAS_UNCOMPLETED_SUBTASKS,
                        f"Task {task_id} has uncompleted subtasks: "
                        + ", ".join(child.task_id for child in blocking),
                    )
                )
                continue
            eligible.append(task_id)
        return eligible, already_completed, rejected

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _apply(self, document: str, ordered: Sequence[str]) -> Tuple[str, List[str], List[str]]:
        text = document
        requested = set(ordered)
        completed: List[str] = []
        auto_completed: List[str] = []

        for task_id in ordered:
            task = find_task(parse_tasks(text, self.syntax), task_id)
            if task is None:
                raise MutationFailure(task_id, "disappeared from the task list during the batch")
            if task.completed:
                # Checked earlier in this pass when its last subtask was completed.
                completed.append(task_id)
                continue
            if task.line_index is None:
                raise MutationFailure(task_id, "has no checkbox line to update")

            text = self._flip_line(text, task.line_index, task_id)
            completed.append(task_id)

            text, parent_id = self._complete_parent(text, task_id)
            if parent_id is not None and parent_id not in requested:
                auto_completed.append(parent_id)

            self._verify(text, task_id)

        return text, completed, auto_completed

    def _flip_line(self, text: str, line_index: int, task_id: str) -> str:
        lines = text.split("\n")
        if line_index >= len(lines):
            raise MutationFailure(task_id, f"line {line_index + 1} is past the end of the document")
        line = lines[line_index]
        token = self.matcher.scanner.scan_line(line)
        if token is None or token.task_id != task_id:
            raise MutationFailure(task_id, f"line {line_index + 1} does not carry this task")
        unchecked = self.syntax.unchecked_glyph
        column = token.glyph_column
        if line[column:column + len(unchecked)] != unchecked:
            raise MutationFailure(task_id, f"line {line_index + 1} has no unchecked box to flip")
        lines[line_index] = line[:column] + self.syntax.checked_glyph + line[column + len(unchecked):]
        return "\n".join(lines)

    def _complete_parent(self, text: str, task_id: str) -> Tuple[str, Optional[str]]:
        """Check the parent's own line once all of its subtasks are checked."""
        if "." not in task_id:
            return text, None
        parent_id = task_id.split(".", 1)[0]
        parent = find_task(parse_tasks(text, self.syntax), parent_id)
        if parent is None:
            raise MutationFailure(task_id, f"parent {parent_id} vanished after reparse")
        if parent.synthetic or parent.line_index is None:
            return text, None
        if not all(child.completed for child in parent.children):
            return text, None

        token = self.matcher.scanner.scan_line(text.split("\n")[parent.line_index])
        if token is not None and token.completed:
            return text, None
        return self._flip_line(text, parent.line_index, parent_id), parent_id

    def _verify(self, text: str, task_id: str) -> None:
        task = find_task(parse_tasks(text, self.syntax), task_id)
        if task is None or not task.completed:
            raise MutationFailure(task_id, "is not completed after reparsing the updated text")


@log_performance("complete_batch")
def complete_batch(document: str, task_ids: TaskIds, *, syntax: Optional[TaskSyntax] = None) -> BatchResult:
    """Complete one or many task ids in ``document``.

    All-or-nothing: on any rejection the returned ``updated_text`` is the
    unchanged ``document``.
    """
    return BatchCompletionEngine(syntax).complete(document, task_ids)

"""Task hierarchy parsing for ``tasks.md``.

Parsing runs in two phases. The scan phase walks the document line by line
and decides which lines are tasks: a line is a task when it carries a
checkbox glyph with a dotted numeral id next to it. The assemble phase then
builds the two-level tree from those ids, synthesizing parent groups that
are referenced by a subtask but never written out.

The document is the only store. A parse is a throwaway projection of the
text and is recomputed whenever the text changes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .config import DEFAULT_SYNTAX, TaskSyntax
from .models import Task, is_valid_task_id, task_id_segments

logger = logging.getLogger("spec_workflow.task_parser")

_DIGITS = "0123456789"

_SPEC_MARKER_OPEN = re.compile(r"<!--\s*SPEC-MARKER")
_COMMENT_CLOSE = "-->"
_TEMPLATE_OPEN = "<template-tasks>"
_TEMPLATE_CLOSE = "</template-tasks>"

_HEADING_TITLE = re.compile(r"^#+\s*(\d+)\.\s*(.+)$")
_BOLD_TITLE = re.compile(r"^(\d+)\.\s*\*\*(.+?)\*\*$")


@dataclass(slots=True)
class LineToken:
    """Checkbox and id found on a single line."""

    task_id: str
    completed: bool
    glyph: str
    glyph_column: int
    description: str


@dataclass(slots=True)
class ScannedTask:
    """A task line recovered by the scan phase."""

    task_id: str
    title: str
    completed: bool
    line_index: int
    glyph_column: int


class TaskLineScanner:
    """Recognize a checklist task line without a full markdown grammar.

    The id is looked for right after the glyph first (``- [ ] 1.2 Title``)
    and right before it second (``1.2. - [ ] Title``). Either way the id has
    to be a whole token, bounded by the delimiters of the ``TaskSyntax``.
    """

    def __init__(self, syntax: Optional[TaskSyntax] = None):
        self.syntax = syntax or DEFAULT_SYNTAX

    def find_glyph(self, line: str) -> Optional[Tuple[int, str]]:
        """Leftmost checkbox glyph on the line as ``(column, glyph)``."""
        found: Optional[Tuple[int, str]] = None
        for glyph in self.syntax.glyphs:
            column = line.find(glyph)
            if column != -1 and (found is None or column < found[0]):
                found = (column, glyph)
        return found

    def has_glyph(self, line: str) -> bool:
        return self.find_glyph(line) is not None

    def scan_line(self, line: str) -> Optional[LineToken]:
        """Return the task token on ``line`` or ``None`` if it is not a task."""
        found = self.find_glyph(line)
        if found is None:
            return None
        column, glyph = found
        completed = glyph != self.syntax.unchecked_glyph
        after = column + len(glyph)

        token = self._read_id_after(line, after)
        if token is not None:
            task_id, end = token
            return LineToken(task_id, completed, glyph, column, self._description_after_id(line[end:]))

        task_id = self._read_id_before(line, column)
        if task_id is not None:
            return LineToken(task_id, completed, glyph, column, self._description_after_glyph(line[after:]))
        return None

    # ------------------------------------------------------------------
    # Token reading
    # ------------------------------------------------------------------

    def _read_dotted(self, line: str, start: int) -> int:
        """End index of the dotted numeral that starts at ``start``."""
        end = start
        while end < len(line) and line[end] in _DIGITS:
            end += 1
        if end == start:
            return start
        while end + 1 < len(line) and line[end] == "." and line[end + 1] in _DIGITS:
            end += 1
            while end < len(line) and line[end] in _DIGITS:
                end += 1
        return end

    def _read_id_after(self, line: str, start: int) -> Optional[Tuple[str, int]]:
        pos = start
        while pos < len(line) and self.syntax.is_leading_delimiter(line[pos]):
            pos += 1
        end = self._read_dotted(line, pos)
        if end == pos:
            return None
        if end < len(line) and not self.syntax.is_trailing_delimiter(line[end]):
            return None
        return line[pos:end], end

    def _read_id_before(self, line: str, column: int) -> Optional[str]:
        end = column
        while end > 0 and (
            self.syntax.is_leading_delimiter(line[end - 1]) or self.syntax.is_trailing_delimiter(line[end - 1])
        ):
            end -= 1
        start = end
        while start > 0 and (line[start - 1] in _DIGITS or line[start - 1] == "."):
            start -= 1
        while start < end and line[start] == ".":
            start += 1
        task_id = line[start:end]
        if not is_valid_task_id(task_id):
            return None
        if start > 0 and not self.syntax.is_leading_delimiter(line[start - 1]):
            return None
        return task_id

    def _description_after_id(self, rest: str) -> str:
        rest = rest.lstrip(self.syntax.trailing_delimiters + " \t")
        return rest.lstrip(self.syntax.list_markers + " \t").strip()

    def _description_after_glyph(self, rest: str) -> str:
        return rest.lstrip(self.syntax.list_markers + " \t").strip()


def _template_block_end(line: str) -> Optional[str]:
    """Closing marker of a template block opened (and left open) on ``line``."""
    if _TEMPLATE_OPEN in line:
        tail = line.split(_TEMPLATE_OPEN, 1)[1]
        return None if _TEMPLATE_CLOSE in tail else _TEMPLATE_CLOSE
    match = _SPEC_MARKER_OPEN.search(line)
    if match:
        tail = line[match.end():]
        return None if _COMMENT_CLOSE in tail else _COMMENT_CLOSE
    return None


def _opens_template_block(line: str) -> bool:
    return _TEMPLATE_OPEN in line or _SPEC_MARKER_OPEN.search(line) is not None


def scan_tasks(text: str, syntax: Optional[TaskSyntax] = None) -> List[ScannedTask]:
    """Phase 1: collect task lines in document order."""
    scanner = TaskLineScanner(syntax)
    lines = text.split("\n")
    scanned: List[ScannedTask] = []
    closing: Optional[str] = None
    skip_next = False

    for index, line in enumerate(lines):
        if skip_next:
            skip_next = False
            continue
        if closing is not None:
            if closing in line:
                closing = None
            continue
        if _opens_template_block(line):
            closing = _template_block_end(line)
            continue

        token = scanner.scan_line(line)
        if token is None:
            continue

        title = token.description
        if not title and index + 1 < len(lines):
            candidate = lines[index + 1].strip()
            if candidate and not scanner.has_glyph(candidate) and not candidate.startswith("#"):
                title = candidate
                skip_next = True
        if not title:
            logger.debug("Ignoring task line %d without a description", index + 1)
            continue

        scanned.append(
            ScannedTask(
                task_id=token.task_id,
                title=title,
                completed=token.completed,
                line_index=index,
                glyph_column=token.glyph_column,
            )
        )
    return scanned


def find_group_title(lines: Sequence[str], task_id: str) -> Optional[str]:
    """Look up a title for a task group that has no checkbox line of its own."""
    for line in lines:
        match = _HEADING_TITLE.match(line.strip())
        if match and match.group(1) == task_id:
            return match.group(2).strip()
    for line in lines:
        match = _BOLD_TITLE.match(line.strip())
        if match and match.group(1) == task_id:
            return match.group(2).strip()
    return None


def assemble_tasks(scanned: Sequence[ScannedTask], lines: Sequence[str]) -> List[Task]:
    """Phase 2: build the ordered forest from scanned task lines."""
    roots: List[Task] = []
    by_id: Dict[str, Task] = {}

    for item in scanned:
        if "." in item.task_id:
            continue
        root = Task(item.task_id, item.title, item.completed, line_index=item.line_index)
        roots.append(root)
        # Duplicates stay in the forest; subtasks go to the first one.
        by_id.setdefault(item.task_id, root)

    for item in scanned:
        if "." not in item.task_id:
            continue
        parent_id = item.task_id.split(".", 1)[0]
        parent = by_id.get(parent_id)
        if parent is None:
            title = find_group_title(lines, parent_id) or f"Task Group {parent_id}"
            parent = Task(parent_id, title, False, synthetic=True)
            by_id[parent_id] = parent
            roots.append(parent)
        parent.children.append(Task(item.task_id, item.title, item.completed, line_index=item.line_index))

    for root in roots:
        if root.children:
            root.children.sort(key=lambda child: task_id_segments(child.task_id))
            root.completed = all(child.completed for child in root.children)

    roots.sort(key=lambda root: int(root.task_id))
    return roots


def parse_tasks(text: str, syntax: Optional[TaskSyntax] = None) -> List[Task]:
    """Parse ``tasks.md`` content into an ordered forest of root tasks.

    Never raises: text that cannot be made sense of yields an empty list.
    """
    if not text or not text.strip():
        return []
    try:
        scanned = scan_tasks(text, syntax)
        return assemble_tasks(scanned, text.split("\n"))
    except Exception as e:
        logger.warning(f"Failed to parse task list, treating it as empty: {e}", exc_info=True)
        return []


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------


def iter_tasks(forest: Sequence[Task]) -> Iterator[Task]:
    """Depth-first walk over every node, parents before their children."""
    for task in forest:
        yield task
        yield from iter_tasks(task.children)


def find_task(forest: Sequence[Task], task_id: str) -> Optional[Task]:
    """First node with ``task_id`` in depth-first order."""
    for task in iter_tasks(forest):
        if task.task_id == task_id:
            return task
    return None


def get_first_uncompleted_task(forest: Sequence[Task]) -> Optional[Task]:
    """Smallest actionable unit of work, or ``None`` when everything is done.

    Subtasks always come before their parent, so a parent is only returned
    once none of its children are left open.
    """
    for task in forest:
        if task.children:
            for child in task.children:
                if not child.completed:
                    return child
            if not task.completed:
                return task
        elif not task.completed:
            return task
    return None


def task_summary(forest: Sequence[Task]) -> Dict[str, object]:
    """Counts over actionable tasks (leaves), for progress reporting."""
    leaves = [task for task in iter_tasks(forest) if not task.children]
    completed = sum(1 for task in leaves if task.completed)
    return {
        "total": len(leaves),
        "completed": completed,
        "remaining": len(leaves) - completed,
        "all_completed": bool(leaves) and completed == len(leaves),
    }


# ----------------------------------------------------------------------
# Display helpers
# ----------------------------------------------------------------------


def _checkbox(completed: bool) -> str:
    return "[x]" if completed else "[ ]"


def format_task_for_display(task: Task) -> str:
    display = f"Task {task.task_id}: {task.title}"
    if task.children:
        display += "\n\nSubtasks:"
        for child in task.children:
            display += f"\n  - {_checkbox(child.completed)} {child.task_id}. {child.title}"
    return display


def _indent_width(line: str) -> int:
    return len(line) - len(line.lstrip())


def format_task_for_full_display(task: Task, text: str, syntax: Optional[TaskSyntax] = None) -> str:
    """The task's own line plus everything nested under it in the document."""
    lines = text.split("\n")
    if task.line_index is None or task.line_index >= len(lines):
        return format_task_for_display(task)

    scanner = TaskLineScanner(syntax)
    first = lines[task.line_index]
    indent = _indent_width(first)
    captured = [first]
    for line in lines[task.line_index + 1:]:
        if not line.strip():
            captured.append(line)
            continue
        if line.lstrip().startswith("#"):
            break
        width = _indent_width(line)
        token = scanner.scan_line(line)
        if token is not None and width <= indent:
            # Subtasks written flush with their parent still belong to it.
            if _belongs_to(token, task):
                captured.append(line)
                continue
            break
        if width > indent:
            captured.append(line)
            continue
        break
    return "\n".join(captured).rstrip()


def _belongs_to(token: LineToken, task: Task) -> bool:
    if "." in task.task_id or "." not in token.task_id:
        return False
    return token.task_id.split(".", 1)[0] == task.task_id


def format_task_list_overview(forest: Sequence[Task]) -> str:
    if not forest:
        return "No tasks found."
    return "\n".join(f"- {_checkbox(task.completed)} {task.task_id}. {task.title}" for task in forest)

"""Configuration for the spec workflow.

Settings are plain dataclasses passed explicitly into the parser, the
completion engine and the workflow manager. Nothing here is a global.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple, Union


@dataclass(frozen=True, slots=True)
class TaskSyntax:
    """Characters that make up a checklist task line.

    The delimiter sets decide where a task id token may start and end.
    ``1`` followed by ``.1`` is never a complete token, regardless of the
    trailing set, because a dot followed by a digit continues the id.
    """

    unchecked_glyph: str = "[ ]"
    checked_glyphs: Tuple[str, ...] = ("[x]", "[X]")
    list_markers: str = "-*+"
    leading_delimiters: str = "("
    trailing_delimiters: str = ".:)"

    @property
    def glyphs(self) -> Tuple[str, ...]:
        return (self.unchecked_glyph,) + tuple(self.checked_glyphs)

    @property
    def checked_glyph(self) -> str:
        return self.checked_glyphs[0]

    def is_leading_delimiter(self, char: str) -> bool:
        """True when ``char`` may precede an id token."""
        return char.isspace() or char in self.list_markers or char in self.leading_delimiters

    def is_trailing_delimiter(self, char: str) -> bool:
        """True when ``char`` may follow an id token."""
        return char.isspace() or char in self.trailing_delimiters


DEFAULT_SYNTAX = TaskSyntax()

DEFAULT_CONFIRMATIONS_FILE = ".workflow-confirmations.json"


@dataclass(slots=True)
class WorkflowSettings:
    """Runtime settings for the workflow service and the MCP server."""

    project_root: Optional[Path] = None
    log_level: Union[str, int] = logging.INFO
    log_file: Optional[Path] = None
    confirmations_file: str = DEFAULT_CONFIRMATIONS_FILE
    syntax: TaskSyntax = field(default_factory=TaskSyntax)

    PROJECT_ROOT_ENV = "SPEC_WORKFLOW_PROJECT_ROOT"
    LOG_LEVEL_ENV = "SPEC_WORKFLOW_LOG_LEVEL"
    LOG_FILE_ENV = "SPEC_WORKFLOW_LOG_FILE"
    CONFIRMATIONS_FILE_ENV = "SPEC_WORKFLOW_CONFIRMATIONS_FILE"

    @classmethod
    def from_env(cls) -> "WorkflowSettings":
        """Build settings from ``SPEC_WORKFLOW_*`` environment variables."""
        root = os.getenv(cls.PROJECT_ROOT_ENV)
        log_file = os.getenv(cls.LOG_FILE_ENV)
        level = os.getenv(cls.LOG_LEVEL_ENV)
        return cls(
            project_root=Path(root).expanduser().resolve() if root else None,
            log_level=level.upper() if level else logging.INFO,
            log_file=Path(log_file).expanduser() if log_file else None,
            confirmations_file=os.getenv(cls.CONFIRMATIONS_FILE_ENV) or DEFAULT_CONFIRMATIONS_FILE,
        )

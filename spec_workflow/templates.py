"""Markdown templates for the requirements, design and tasks documents."""

from __future__ import annotations

import re
import textwrap
from datetime import datetime, timezone
from typing import Optional

_TITLE_PATTERN = re.compile(r"^#\s+(?:Requirements Document|Design Document|Tasks)(?::|\s+-)\s*(?P<name>.+?)\s*$")


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def requirements_template(feature_name: str, introduction: str) -> str:
    """Render a requirements document."""
    body = textwrap.dedent(
        """
        ## Requirements

        ### Requirement 1

        **User Story:** As a [role], I want [feature], so that [benefit]

        #### Acceptance Criteria

        1. WHEN [event] THEN [system] SHALL [response]
        2. IF [precondition] THEN [system] SHALL [response]
        """
    ).strip()
    return (
        f"# Requirements Document: {feature_name}\n\n"
        f"**Created**: {_today()}\n\n"
        "## Introduction\n\n"
        f"{introduction.strip()}\n\n"
        + body
        + "\n"
    )


def design_template(feature_name: str) -> str:
    """Render a design document."""
    body = textwrap.dedent(
        """
        ## Overview

        Summarize the approach and how it satisfies the requirements.

        ## Architecture

        Describe the components and how data flows between them.

        ## Components and Interfaces

        ## Data Models

        ## Error Handling

        ## Testing Strategy
        """
    ).strip()
    return f"# Design Document: {feature_name}\n\n" + body + "\n"


def tasks_template(feature_name: str) -> str:
    """Render a task list.

    The example checklist sits inside ``<template-tasks>`` so it never shows
    up as real work until it is replaced.
    """
    example = textwrap.dedent(
        """
        <template-tasks>
        - [ ] 1. Set up the project structure
          - [ ] 1.1 Create the module layout
          - [ ] 1.2 Add the test harness
        - [ ] 2. Implement the core behaviour
          - [ ] 2.1 Write failing tests for requirement 1
          - [ ] 2.2 Make the tests pass
        </template-tasks>
        """
    ).strip()
    return (
        f"# Tasks: {feature_name}\n\n"
        "Number every task (`1.`, `1.1`, ...). A parent task is checked\n"
        "automatically once all of its subtasks are checked.\n\n"
        "## Task List\n\n"
        + example
        + "\n"
    )


def skipped_template(feature_name: str, stage_name: str) -> str:
    """Placeholder written when a stage is skipped without a document."""
    return (
        f"# {stage_name}: {feature_name}\n\n"
        f"> This stage was skipped on {_today()}.\n"
    )


def feature_name_from_requirements(text: Optional[str], default: str = "Unnamed Feature") -> str:
    """Recover the feature name from the title line of a requirements document."""
    if not text:
        return default
    for line in text.splitlines():
        match = _TITLE_PATTERN.match(line.strip())
        if match:
            return match.group("name")
    return default

"""MCP server exposing the spec workflow tool."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from mcp.server.fastmcp import FastMCP

from spec_workflow import WorkflowManager, WorkflowSettings
from spec_workflow.workflow_logging import log_error_with_context, setup_logging

mcp = FastMCP("spec-workflow")


ACTION_TYPES = ("init", "check", "skip", "confirm", "complete_task")

WORKFLOW_GUIDE = """Spec Workflow

1. init - create requirements.md (needs featureName and introduction)
2. check - see the current stage; missing documents are generated from templates
3. confirm / skip - pass the current stage (requirements -> design -> tasks)
4. complete_task - check off one task number or a list of them in tasks.md

A parent task is checked automatically once all of its subtasks are checked.
A batch is all-or-nothing: if any task number is unknown or still has open
subtasks, tasks.md is left untouched.
"""


def _resolve_path(path: str, settings: WorkflowSettings) -> Path:
    if not path or not path.strip():
        raise ValueError("A feature directory path is required.")
    candidate = Path(path).expanduser()
    if not candidate.is_absolute() and settings.project_root:
        candidate = settings.project_root / candidate
    return candidate.resolve()


def _error(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message, "message": f"Error: {message}"}


def _dispatch(manager: WorkflowManager, action: Dict[str, Any]) -> Dict[str, Any]:
    action_type = action.get("type")
    if action_type == "init":
        feature_name = action.get("featureName")
        introduction = action.get("introduction")
        if not feature_name or not introduction:
            return _error("Initialization requires featureName and introduction parameters")
        return manager.init(feature_name, introduction)
    if action_type == "check":
        return manager.check()
    if action_type == "skip":
        return manager.skip(action.get("stage"))
    if action_type == "confirm":
        return manager.confirm(action.get("stage"))
    if action_type == "complete_task":
        task_number: Union[str, List[str], None] = action.get("taskNumber")
        if not task_number:
            return _error("Completing tasks requires the taskNumber parameter")
        return manager.complete_task(task_number)
    return _error(f"Unknown operation type: {action_type}. Expected one of: {', '.join(ACTION_TYPES)}")


@mcp.tool()
def specs_workflow(path: str, action: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Drive a feature through requirements -> design -> tasks and complete its tasks.

    `path` is the feature directory. Without an action the current status is
    returned. `action.type` is one of init, check, skip, confirm,
    complete_task; init takes `featureName` and `introduction`, complete_task
    takes `taskNumber` as one task number ("1.2") or a list of them."""

    settings = WorkflowSettings.from_env()
    try:
        manager = WorkflowManager(_resolve_path(path, settings), settings=settings)
    except ValueError as e:
        return _error(str(e))

    if not action:
        return manager.status()
    if not isinstance(action, dict):
        return _error("action must be an object with a 'type' field")
    try:
        return _dispatch(manager, action)
    except Exception as e:
        log_error_with_context(e, {"operation": "specs_workflow", "path": path, "action": action.get("type")})
        return _error(f"Failed to run {action.get('type')}: {e}")


@mcp.resource("spec-workflow://guide")
def workflow_guide() -> str:
    """Short guide to the workflow stages and actions."""

    return WORKFLOW_GUIDE


def main() -> None:
    settings = WorkflowSettings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()

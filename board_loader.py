"""
Board loader for Flowbot.

Loads and validates YAML board files that seed a chat session with
workflows, so a session does not have to start from an empty board.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import ValidationError

import flowbot_config
from workflow_engine import derive_status, new_id
from workflow_models import Step, Workflow, WorkflowState, utcnow


def _as_utc(value: Any, field_name: str) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise ValueError(f"'{field_name}' must be an ISO timestamp, got {value!r}")
    if not isinstance(value, datetime):
        raise ValueError(f"'{field_name}' must be a timestamp")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def step_from_dict(data: Any, make_id: Callable[[], str] = new_id) -> Step:
    """
    Create a Step from a YAML entry.

    A bare string is shorthand for a pending step with that title.
    """
    if isinstance(data, str):
        data = {'title': data}
    if not isinstance(data, dict):
        raise ValueError("Each step must be a string or a dictionary")

    title = data.get('title')
    if not isinstance(title, str) or not title.strip():
        raise ValueError("Each step must have a non-empty 'title'")

    try:
        return Step(
            id=str(data.get('id') or make_id()),
            title=title.strip(),
            owner=data.get('owner'),
            status=data.get('status', 'pending'),
        )
    except ValidationError as e:
        raise ValueError(f"Invalid step {title!r}: {e.errors()[0]['msg']}")


def workflow_from_dict(data: Any, make_id: Callable[[], str] = new_id) -> Workflow:
    """
    Create a Workflow from a YAML entry.

    The workflow status is always derived from its steps; a 'status' key
    in the file is ignored.

    Raises:
        ValueError: If required fields are missing or invalid
    """
    if not isinstance(data, dict):
        raise ValueError("Each workflow must be a dictionary")

    name = data.get('name')
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Each workflow must have a non-empty 'name'")

    steps_data = data.get('steps') or []
    if not isinstance(steps_data, list):
        raise ValueError(f"'steps' of workflow {name!r} must be a list")
    steps = tuple(step_from_dict(item, make_id) for item in steps_data)

    tags_data = data.get('tags') or []
    if isinstance(tags_data, str):
        tags_data = [tags_data]
    if not isinstance(tags_data, list):
        raise ValueError(f"'tags' of workflow {name!r} must be a list")
    tags = frozenset(str(tag).strip().lower() for tag in tags_data if str(tag).strip())

    created_at = _as_utc(data.get('created_at'), 'created_at') or utcnow()
    updated_at = _as_utc(data.get('updated_at'), 'updated_at') or created_at

    return Workflow(
        id=str(data.get('id') or make_id()),
        name=name.strip(),
        description=str(data.get('description', '')),
        owner=str(data.get('owner') or flowbot_config.DEFAULT_OWNER),
        status=derive_status(steps),
        steps=steps,
        tags=tags,
        created_at=created_at,
        updated_at=updated_at,
    )


def board_from_dict(data: Dict[str, Any], make_id: Callable[[], str] = new_id) -> WorkflowState:
    """
    Create a WorkflowState from a dictionary (loaded from YAML).

    Args:
        data: Dictionary with a 'workflows' list and an optional
            'selected' workflow name
        make_id: Identifier factory for entries without an 'id'

    Returns:
        WorkflowState instance

    Raises:
        ValueError: If the board is malformed
    """
    workflows_data = data.get('workflows') or []
    if not isinstance(workflows_data, list):
        raise ValueError("'workflows' must be a list")

    workflows = tuple(workflow_from_dict(item, make_id) for item in workflows_data)

    selected_id = None
    selected = data.get('selected')
    if selected is not None:
        matches = [wf for wf in workflows if wf.name.casefold() == str(selected).casefold()]
        if not matches:
            raise ValueError(f"'selected' workflow not found on the board: {selected}")
        selected_id = matches[0].id

    try:
        return WorkflowState(workflows=workflows, selected_workflow_id=selected_id)
    except ValidationError as e:
        raise ValueError(f"Invalid board: {e.errors()[0]['msg']}")


def load_board(file_path: str) -> WorkflowState:
    """
    Load a board from a YAML file.

    Args:
        file_path: Path to YAML board file

    Returns:
        WorkflowState instance

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If board is invalid
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"Board file not found: {file_path}")

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if data is None:
        return WorkflowState()
    if not isinstance(data, dict):
        raise ValueError("Board file must contain a YAML dictionary")

    return board_from_dict(data)


def dump_board(state: WorkflowState) -> Dict[str, Any]:
    """Plain dictionary form of a board, loadable by board_from_dict."""
    data: Dict[str, Any] = {
        'workflows': [
            {
                'id': wf.id,
                'name': wf.name,
                'description': wf.description,
                'owner': wf.owner,
                'status': wf.status,
                'tags': sorted(wf.tags),
                'created_at': wf.created_at.isoformat(),
                'updated_at': wf.updated_at.isoformat(),
                'steps': [step.model_dump(exclude_none=True) for step in wf.steps],
            }
            for wf in state.workflows
        ]
    }
    if state.selected is not None:
        data['selected'] = state.selected.name
    return data


def validate_board(state: WorkflowState) -> List[str]:
    """
    Validate a board and return a list of warnings (not errors).

    Args:
        state: Board to validate

    Returns:
        List of warning messages (empty if no warnings)
    """
    warnings = []

    names = [wf.name.casefold() for wf in state.workflows]
    for wf in state.workflows:
        folded = wf.name.casefold()
        # Exact lookups of a duplicated name are always ambiguous
        if names.count(folded) > 1:
            warnings.append(f"Duplicate workflow name: {wf.name}")
        if not wf.steps:
            warnings.append(f"Workflow has no steps: {wf.name}")
        in_progress = [step for step in wf.steps if step.status == 'in-progress']
        if len(in_progress) > 1:
            warnings.append(f"Workflow has {len(in_progress)} steps in progress: {wf.name}")

    if state.workflows and state.selected_workflow_id is None:
        warnings.append("No selected workflow - commands must always name one")

    return list(dict.fromkeys(warnings))

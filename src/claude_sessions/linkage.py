"""Relationships between sessions, agent logs and todo snapshots.

No record stores a handle to another file. Ownership is recomputed on every
call from directory listings and filename conventions:

- an agent log ``agent-{agentId}.jsonl`` belongs to the session named by the
  ``sessionId`` field of its first record;
- a todo file ``{sessionId}.json`` belongs to a session, and
  ``{sessionId}-agent-{agentId}.json`` to one of its agents.

Malformed auxiliary files are treated as absent, never as errors.
"""

import json
import logging
import re
from pathlib import Path

from .config import get_projects_path, get_todos_path
from .core import AgentTodos, OrphanAgent, SessionTodos, TodoItem
from .records import BACKUP_DIR, TODO_SUFFIX, agent_file_name
from .store import list_agent_ids, list_session_ids, read_first_record, retire

logger = logging.getLogger(__name__)

_TODO_FILE_PATTERN = re.compile(r"^([0-9a-f-]+?)(?:-agent-([0-9a-f-]+))?\.json$")


def _session_todo_name(session_id: str) -> str:
    return f"{session_id}{TODO_SUFFIX}"


def _agent_todo_name(session_id: str, agent_id: str) -> str:
    return f"{session_id}-agent-{agent_id}{TODO_SUFFIX}"


def _agent_claims(project_dir: Path) -> list[tuple[str, str]]:
    """Return (agent_id, claimed session id) for every readable agent log."""
    claims = []
    for agent_id in list_agent_ids(project_dir):
        first = read_first_record(project_dir / agent_file_name(agent_id))
        if first is None:
            continue
        session_id = first.get("sessionId")
        if isinstance(session_id, str) and session_id:
            claims.append((agent_id, session_id))
    return claims


def find_linked_agents(project_dir: Path, session_id: str) -> list[str]:
    """Return the ids of agent logs whose first record names ``session_id``."""
    return [agent_id for agent_id, claimed in _agent_claims(project_dir) if claimed == session_id]


def find_orphan_agents(project_dir: Path) -> list[OrphanAgent]:
    """Return agent logs that point at a session file missing from the project."""
    session_ids = set(list_session_ids(project_dir))
    return [
        OrphanAgent(agent_id=agent_id, session_id=claimed)
        for agent_id, claimed in _agent_claims(project_dir)
        if claimed not in session_ids
    ]


def retire_orphan_agents(project_dir: Path) -> list[str]:
    """Move orphaned agent logs into the project's backup directory."""
    retired = []
    for orphan in find_orphan_agents(project_dir):
        retire(
            project_dir / agent_file_name(orphan.agent_id),
            project_dir / BACKUP_DIR,
            missing_ok=True,
        )
        retired.append(orphan.agent_id)
    if retired:
        logger.info("Retired %d orphan agent(s) in %s", len(retired), project_dir.name)
    return retired


def _read_todos(path: Path) -> list[TodoItem] | None:
    """Parse a todo file; None if it does not exist, [] if it is unusable."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        logger.debug("Ignoring unreadable todo file %s: %s", path, e)
        return []

    if not isinstance(data, list):
        return []

    items = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        items.append(TodoItem(
            content=str(entry.get("content", "")),
            status=str(entry.get("status", "pending")),
            active_form=entry.get("activeForm"),
        ))
    return items


def find_linked_todos(session_id: str, agent_ids: list[str]) -> SessionTodos:
    """Collect the todo snapshots of a session and of each of its agents."""
    todos_dir = get_todos_path()
    result = SessionTodos(session_id=session_id)
    if not todos_dir.is_dir():
        return result

    result.session_todos = _read_todos(todos_dir / _session_todo_name(session_id)) or []

    for agent_id in agent_ids:
        todos = _read_todos(todos_dir / _agent_todo_name(session_id, agent_id))
        if todos is not None:
            result.agent_todos.append(AgentTodos(agent_id=agent_id, todos=todos))

    return result


def session_has_todos(session_id: str, agent_ids: list[str]) -> bool:
    return find_linked_todos(session_id, agent_ids).has_todos


def retire_linked_todos(session_id: str, agent_ids: list[str]) -> int:
    """Move a session's todo files (its own and its agents') into ``todos/.bak``."""
    todos_dir = get_todos_path()
    if not todos_dir.is_dir():
        return 0

    names = [_session_todo_name(session_id)]
    names.extend(_agent_todo_name(session_id, agent_id) for agent_id in agent_ids)

    count = 0
    for name in names:
        path = todos_dir / name
        if not path.is_file():
            continue
        retire(path, todos_dir / BACKUP_DIR, missing_ok=True)
        count += 1
    return count


def _all_session_ids() -> set[str]:
    projects_dir = get_projects_path()
    session_ids: set[str] = set()
    if not projects_dir.is_dir():
        return session_ids

    for project_dir in projects_dir.iterdir():
        if not project_dir.is_dir() or project_dir.name.startswith("."):
            continue
        session_ids.update(list_session_ids(project_dir))
    return session_ids


def find_orphan_todos() -> list[str]:
    """Return todo filenames whose session id exists in no project."""
    todos_dir = get_todos_path()
    if not todos_dir.is_dir() or not get_projects_path().is_dir():
        return []

    valid = _all_session_ids()
    orphans = []
    for path in sorted(todos_dir.iterdir()):
        if not path.is_file():
            continue
        match = _TODO_FILE_PATTERN.match(path.name)
        if match and match.group(1) not in valid:
            orphans.append(path.name)
    return orphans


def retire_orphan_todos() -> int:
    todos_dir = get_todos_path()
    orphans = find_orphan_todos()
    for name in orphans:
        retire(todos_dir / name, todos_dir / BACKUP_DIR, missing_ok=True)
    if orphans:
        logger.info("Retired %d orphan todo file(s)", len(orphans))
    return len(orphans)

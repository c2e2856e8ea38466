"""Path resolution for the assistant's data directories."""

import os
from pathlib import Path


def get_claude_home() -> Path:
    """Return the root of the assistant's data directory (``~/.claude``)."""
    env = os.environ.get("CLAUDE_SESSIONS_HOME")
    if env:
        return Path(env)

    return Path.home() / ".claude"


def get_projects_path() -> Path:
    """Return the directory holding one subdirectory per project."""
    env = os.environ.get("CLAUDE_SESSIONS_PROJECTS_PATH")
    if env:
        return Path(env)

    return get_claude_home() / "projects"


def get_todos_path() -> Path:
    """Return the directory holding todo-list snapshots."""
    env = os.environ.get("CLAUDE_SESSIONS_TODOS_PATH")
    if env:
        return Path(env)

    return get_claude_home() / "todos"

"""Core data models for claude-sessions."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Project:
    """A directory grouping the sessions of one working directory."""

    name: str  # encoded folder name, e.g. "-Users-alice-dev-app"
    display_name: str  # e.g. "/Users/alice/dev/app"
    path: str
    session_count: int


@dataclass
class SessionMeta:
    """Summary of one session log."""

    id: str
    project_name: str
    title: str
    message_count: int  # user/assistant records only
    created_at: Optional[str] = None  # raw ISO-8601 from the first record
    updated_at: Optional[str] = None


@dataclass
class FileChange:
    path: str
    action: str  # "created" | "modified"
    timestamp: Optional[str] = None
    message_uuid: Optional[str] = None


@dataclass
class SessionFilesSummary:
    session_id: str
    project_name: str
    files: list[FileChange] = field(default_factory=list)
    total_changes: int = 0


@dataclass
class TodoItem:
    content: str
    status: str  # "pending" | "in_progress" | "completed"
    active_form: Optional[str] = None


@dataclass
class AgentTodos:
    agent_id: str
    todos: list[TodoItem] = field(default_factory=list)


@dataclass
class SessionTodos:
    """Todo snapshots owned by a session and its agents."""

    session_id: str
    session_todos: list[TodoItem] = field(default_factory=list)
    agent_todos: list[AgentTodos] = field(default_factory=list)

    @property
    def has_todos(self) -> bool:
        return bool(self.session_todos) or any(a.todos for a in self.agent_todos)


@dataclass
class OrphanAgent:
    """An agent log whose parent session file no longer exists."""

    agent_id: str
    session_id: str


@dataclass
class SplitResult:
    new_session_id: str
    new_session_path: str
    moved_message_count: int


@dataclass
class DeleteResult:
    backup_path: Optional[str]  # None when an empty file was removed outright
    deleted_agents: int = 0
    deleted_todos: int = 0


@dataclass
class MoveResult:
    new_path: str
    moved_agents: int = 0


@dataclass
class ScrubCandidate:
    """A session holding records that credential scrubbing would remove."""

    session: SessionMeta
    invalid_message_count: int
    becomes_empty: bool


@dataclass
class ProjectCleanupPreview:
    project: str
    empty_sessions: list[SessionMeta] = field(default_factory=list)
    invalid_sessions: list[ScrubCandidate] = field(default_factory=list)
    orphan_agents: list[OrphanAgent] = field(default_factory=list)


@dataclass
class CleanupPreview:
    projects: list[ProjectCleanupPreview] = field(default_factory=list)
    orphan_todos: list[str] = field(default_factory=list)


@dataclass
class ClearResult:
    deleted_count: int = 0
    removed_message_count: int = 0
    deleted_orphan_agents: int = 0
    deleted_orphan_todos: int = 0
    skipped_with_todos: list[str] = field(default_factory=list)

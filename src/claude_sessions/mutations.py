"""Operations that rewrite session logs and retire their linked artifacts.

Records form a forest through ``parentUuid``. The stored graph is untrusted
(records may branch, and nothing guarantees it is acyclic), so every
removal re-points children explicitly instead of assuming a linear chain.

Each mutation loads and validates everything it needs before the first
write. There is no locking: the assistant may append to a log while we
rewrite it, and the backup-before-destroy policy is the only safety net.
"""

import logging
import os
import re
import uuid
from pathlib import Path
from typing import Iterable, Optional

from .config import get_projects_path
from .core import (
    CleanupPreview,
    ClearResult,
    DeleteResult,
    MoveResult,
    ProjectCleanupPreview,
    ScrubCandidate,
    SplitResult,
)
from .errors import (
    EmptySessionError,
    InvalidSplitPointError,
    InvalidTargetError,
    NoUserMessageError,
    NotFoundError,
    SessionError,
    StorageError,
)
from .linkage import (
    find_linked_agents,
    find_orphan_agents,
    find_orphan_todos,
    retire_linked_todos,
    retire_orphan_agents,
    retire_orphan_todos,
    session_has_todos,
)
from .records import (
    BACKUP_DIR,
    CUSTOM_TITLE,
    SESSION_SUFFIX,
    USER,
    Record,
    agent_file_name,
    extract_text,
    is_conversational,
    record_identity,
)
from .store import (
    list_agent_ids,
    list_session_ids,
    load,
    project_path,
    read_first_record,
    retire,
    rewrite,
    session_path,
)
from .summary import list_projects, summarize_records

logger = logging.getLogger(__name__)

INVALID_API_KEY_MARKER = "Invalid API key"

_TITLE_PREFIX_PATTERN = re.compile(r"^[^\n]+\n\n")


# ── Chain repair ─────────────────────────────────────────────────


def splice_out(records: list[Record], identities: Iterable[str]) -> list[Record]:
    """Remove records by identity and re-point their children.

    A child of a removed record inherits the nearest surviving ancestor,
    walking up through consecutive removed records; children of a removed
    root become roots. Returns the surviving records in their original order.
    """
    removed_ids = set(identities)
    removed_parent: dict[str, Optional[str]] = {}
    for record in records:
        identity = record_identity(record)
        if identity in removed_ids and identity not in removed_parent:
            removed_parent[identity] = record.get("parentUuid")

    def _surviving_ancestor(parent: Optional[str]) -> Optional[str]:
        visited = set()
        while parent in removed_parent:
            if parent in visited:
                # cycle made only of removed records
                return None
            visited.add(parent)
            parent = removed_parent[parent]
        return parent

    survivors = []
    for record in records:
        if record_identity(record) in removed_ids:
            continue
        parent = record.get("parentUuid")
        if parent in removed_parent:
            record["parentUuid"] = _surviving_ancestor(parent)
        survivors.append(record)
    return survivors


def delete_message(project: str, session_id: str, target_id: str) -> None:
    """Remove one record (matched by ``uuid`` or ``messageId``) and repair the chain."""
    path = session_path(project, session_id)
    records = load(path)

    target = next(
        (r for r in records if r.get("uuid") == target_id or r.get("messageId") == target_id),
        None,
    )
    if target is None:
        raise NotFoundError(f"Message not found: {target_id}")

    identity = record_identity(target)
    parent = target.get("parentUuid")
    for record in records:
        if record is not target and record.get("parentUuid") == identity:
            record["parentUuid"] = parent

    rewrite(path, [r for r in records if r is not target])
    logger.info("Deleted message %s from session %s", target_id, session_id)


# ── Titles ───────────────────────────────────────────────────────


def _retitle(text: str, new_title: str) -> str:
    return f"{new_title}\n\n{_TITLE_PREFIX_PATTERN.sub('', text, count=1)}"


def rename_session(project: str, session_id: str, new_title: str) -> None:
    """Prefix the first user message with ``new_title`` and a blank line.

    The log format has no title field, so the title lives in the first text
    block that is not an editor-context tag. A title added by an earlier
    rename (a first line followed by a blank line) is replaced.
    """
    path = session_path(project, session_id)
    records = load(path)
    if not records:
        raise EmptySessionError(f"Session is empty: {session_id}")

    first_user = next((r for r in records if r.get("type") == USER), None)
    if first_user is None:
        raise NoUserMessageError(f"No user message in session: {session_id}")

    message = first_user.setdefault("message", {})
    if not isinstance(message, dict):
        raise InvalidTargetError(f"User message has no editable content: {session_id}")

    content = message.get("content")
    if isinstance(content, str) and not content.strip().startswith("<ide_"):
        message["content"] = _retitle(content, new_title)
    else:
        if isinstance(content, str):
            content = [{"type": "text", "text": content}]
        elif not isinstance(content, list):
            content = []
        block = next(
            (
                b for b in content
                if isinstance(b, dict)
                and b.get("type") == "text"
                and not (b.get("text") or "").strip().startswith("<ide_")
            ),
            None,
        )
        if block is not None:
            block["text"] = _retitle(block.get("text") or "", new_title)
        else:
            content.insert(0, {"type": "text", "text": f"{new_title}\n\n"})
        message["content"] = content

    rewrite(path, records)
    logger.info("Renamed session %s to %r", session_id, new_title)


def update_custom_title(project: str, session_id: str, record_uuid: str, new_title: str) -> None:
    """Set ``customTitle`` on an existing custom-title record."""
    path = session_path(project, session_id)
    records = load(path)

    target = next((r for r in records if r.get("uuid") == record_uuid), None)
    if target is None:
        raise NotFoundError(f"Message not found: {record_uuid}")
    if target.get("type") != CUSTOM_TITLE:
        raise InvalidTargetError(f"Message {record_uuid} is not a {CUSTOM_TITLE} record")

    target["customTitle"] = new_title
    rewrite(path, records)


# ── Split ────────────────────────────────────────────────────────


def split_session(project: str, session_id: str, split_at_id: str) -> SplitResult:
    """Move the records from ``split_at_id`` onward into a new session.

    The first moved record becomes a root. Agent logs of the original
    session follow the split when any moved record carries their agent id.
    """
    project_dir = project_path(project)
    path = session_path(project, session_id)
    records = load(path)

    split_index = next(
        (i for i, r in enumerate(records) if r.get("uuid") == split_at_id),
        None,
    )
    if split_index is None:
        raise NotFoundError(f"Message not found: {split_at_id}")
    if split_index == 0:
        raise InvalidSplitPointError("Cannot split at the first message")

    new_session_id = str(uuid.uuid4())
    head = records[:split_index]
    tail = [dict(r, sessionId=new_session_id) for r in records[split_index:]]
    tail[0]["parentUuid"] = None

    moved_agent_ids = {r.get("agentId") for r in records[split_index:] if r.get("agentId")}
    agent_rewrites: list[tuple[Path, list[Record]]] = []
    for agent_id in list_agent_ids(project_dir):
        if agent_id not in moved_agent_ids:
            continue
        agent_path = project_dir / agent_file_name(agent_id)
        first = read_first_record(agent_path)
        if first is None or first.get("sessionId") != session_id:
            continue
        try:
            agent_records = [dict(r, sessionId=new_session_id) for r in load(agent_path)]
        except SessionError as e:
            logger.warning("Leaving unreadable agent log %s in place: %s", agent_path, e)
            continue
        agent_rewrites.append((agent_path, agent_records))

    new_path = project_dir / f"{new_session_id}{SESSION_SUFFIX}"
    # New file first: a failure after this point duplicates records, never loses them.
    rewrite(new_path, tail)
    rewrite(path, head)
    for agent_path, agent_records in agent_rewrites:
        rewrite(agent_path, agent_records)

    logger.info(
        "Split session %s at %s: %d record(s) moved to %s, %d agent log(s) relinked",
        session_id, split_at_id, len(tail), new_session_id, len(agent_rewrites),
    )
    return SplitResult(
        new_session_id=new_session_id,
        new_session_path=str(new_path),
        moved_message_count=len(tail),
    )


# ── Delete / move ────────────────────────────────────────────────


def delete_session(project: str, session_id: str) -> DeleteResult:
    """Retire a session with its agent logs and todo snapshots.

    The session goes to ``projects/.bak/{project}_{session}.jsonl``, agent
    logs to ``{project}/.bak/`` and todos to ``todos/.bak/``. An empty
    session file is removed without a backup.
    """
    project_dir = project_path(project)
    path = session_path(project, session_id)

    # Must run before anything moves: it reads the directory as it is now.
    linked_agents = find_linked_agents(project_dir, session_id)

    # Agents and todos first, the session file last.
    for agent_id in linked_agents:
        retire(project_dir / agent_file_name(agent_id), project_dir / BACKUP_DIR, missing_ok=True)

    deleted_todos = retire_linked_todos(session_id, linked_agents)

    backup_path = retire(
        path,
        get_projects_path() / BACKUP_DIR,
        backup_name=f"{project}_{session_id}{SESSION_SUFFIX}",
    )

    logger.info(
        "Deleted session %s (%d agent(s), %d todo file(s))",
        session_id, len(linked_agents), deleted_todos,
    )
    return DeleteResult(
        backup_path=str(backup_path) if backup_path else None,
        deleted_agents=len(linked_agents),
        deleted_todos=deleted_todos,
    )


def move_session(source_project: str, session_id: str, target_project: str) -> MoveResult:
    """Move a session and its agent logs into another project directory."""
    if source_project == target_project:
        raise InvalidTargetError("Source and target projects are the same")

    source_dir = project_path(source_project)
    target_dir = project_path(target_project)
    path = session_path(source_project, session_id)

    new_path = target_dir / path.name
    if new_path.exists():
        raise InvalidTargetError(f"Session {session_id} already exists in {target_project}")

    linked_agents = find_linked_agents(source_dir, session_id)
    for agent_id in linked_agents:
        if (target_dir / agent_file_name(agent_id)).exists():
            raise InvalidTargetError(f"Agent log {agent_id} already exists in {target_project}")

    try:
        os.replace(path, new_path)
        for agent_id in linked_agents:
            name = agent_file_name(agent_id)
            os.replace(source_dir / name, target_dir / name)
    except OSError as e:
        raise StorageError(f"Failed to move session {session_id}: {e}") from e

    logger.info("Moved session %s from %s to %s", session_id, source_project, target_project)
    return MoveResult(new_path=str(new_path), moved_agents=len(linked_agents))


# ── Cleanup ──────────────────────────────────────────────────────


def _is_invalid_message(record: Record) -> bool:
    return INVALID_API_KEY_MARKER in extract_text(record)


def _scrub_plan(records: list[Record]) -> tuple[list[str], int]:
    """Return (identities to scrub, conversational records left afterwards)."""
    invalid_ids = {
        record_identity(r) for r in records
        if record_identity(r) and _is_invalid_message(r)
    }
    remaining = sum(
        1 for r in records
        if record_identity(r) not in invalid_ids and is_conversational(r)
    )
    return sorted(invalid_ids), remaining


def _target_projects(project: Optional[str]) -> list[str]:
    if project is not None:
        project_path(project)
        return [project]
    return [p.name for p in list_projects()]


def _load_sessions(project: str) -> list[tuple[str, list[Record]]]:
    project_dir = project_path(project)
    sessions = []
    for session_id in list_session_ids(project_dir):
        path = project_dir / f"{session_id}{SESSION_SUFFIX}"
        try:
            sessions.append((session_id, load(path)))
        except SessionError as e:
            logger.warning("Skipping unreadable session %s: %s", path, e)
    return sessions


def preview_cleanup(project: Optional[str] = None) -> CleanupPreview:
    """Report what ``clear_sessions`` would act on, without touching disk."""
    preview = CleanupPreview()
    for name in _target_projects(project):
        project_preview = ProjectCleanupPreview(project=name)
        for session_id, records in _load_sessions(name):
            meta = summarize_records(session_id, name, records)
            if meta.message_count == 0:
                project_preview.empty_sessions.append(meta)
            invalid_ids, remaining = _scrub_plan(records)
            if invalid_ids:
                project_preview.invalid_sessions.append(ScrubCandidate(
                    session=meta,
                    invalid_message_count=len(invalid_ids),
                    becomes_empty=remaining == 0,
                ))
        project_preview.orphan_agents = find_orphan_agents(project_path(name))
        preview.projects.append(project_preview)

    preview.orphan_todos = find_orphan_todos()
    return preview


def clear_sessions(
    project: Optional[str] = None,
    clear_empty: bool = True,
    clear_invalid: bool = True,
    clear_orphan_agents: bool = False,
    clear_orphan_todos: bool = False,
    skip_with_todos: bool = False,
) -> ClearResult:
    """Prune sessions in one project, or in all projects when ``project`` is None.

    Independent passes, each gated by its own flag:
    - clear_invalid: remove "Invalid API key" records and mark sessions that
      end up with no conversation;
    - clear_empty: mark sessions with no user/assistant records;
    - clear_orphan_agents: retire agent logs whose session is gone;
    - clear_orphan_todos: retire todo files whose session is gone.
    Marked sessions are deleted with ``delete_session``.
    """
    result = ClearResult()
    marked: list[tuple[str, str]] = []

    for name in _target_projects(project):
        project_dir = project_path(name)
        for session_id, records in _load_sessions(name):
            mark = False

            if clear_invalid:
                invalid_ids, remaining = _scrub_plan(records)
                if invalid_ids:
                    survivors = splice_out(records, invalid_ids)
                    rewrite(project_dir / f"{session_id}{SESSION_SUFFIX}", survivors)
                    result.removed_message_count += len(records) - len(survivors)
                    records = survivors
                    mark = remaining == 0

            if clear_empty and not any(is_conversational(r) for r in records):
                mark = True

            if mark:
                marked.append((name, session_id))

    for name, session_id in marked:
        if skip_with_todos:
            agents = find_linked_agents(project_path(name), session_id)
            if session_has_todos(session_id, agents):
                result.skipped_with_todos.append(session_id)
                continue
        delete_session(name, session_id)
        result.deleted_count += 1

    if clear_orphan_agents:
        for name in _target_projects(project):
            result.deleted_orphan_agents += len(retire_orphan_agents(project_path(name)))

    if clear_orphan_todos:
        result.deleted_orphan_todos = retire_orphan_todos()

    logger.info(
        "Cleanup removed %d message(s) and deleted %d session(s)",
        result.removed_message_count, result.deleted_count,
    )
    return result

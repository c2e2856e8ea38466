"""Read-only listings and summaries derived from raw session records.

Reads data from the ~/.claude/projects/ directory structure. Each project
directory holds per-session ``{uuid}.jsonl`` files and per-agent
``agent-{id}.jsonl`` files; agent logs are never listed as sessions.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

from .config import get_projects_path
from .core import FileChange, Project, SessionFilesSummary, SessionMeta
from .errors import SessionError
from .records import (
    ASSISTANT,
    FILE_HISTORY_SNAPSHOT,
    SESSION_SUFFIX,
    USER,
    Record,
    extract_text,
    is_conversational,
)
from .store import list_session_ids, load, project_path, session_path

logger = logging.getLogger(__name__)

# Listing reads are independent; cap how many files are open at once.
LISTING_CONCURRENCY = 10

TITLE_MAX_LENGTH = 100

_IDE_TAG_PATTERN = re.compile(r"<ide_[^>]*>[\s\S]*?</ide_[^>]*>")

WRITE_TOOLS = frozenset({"Write"})
EDIT_TOOLS = frozenset({"Edit", "MultiEdit"})


def decode_project_name(name: str) -> str:
    """Derive a display path from an encoded project folder name.

    -Users-alice-dev-app -> /Users/alice/dev/app
    -Users-alice--config -> /Users/alice/.config
    """
    return name.replace("--", "/.").replace("-", "/")


def extract_title(text: str) -> str:
    """Build a short title from the text of the first user message."""
    cleaned = _IDE_TAG_PATTERN.sub("", text or "").strip()
    if not cleaned:
        return "Untitled"

    if "\n\n" in cleaned:
        cleaned = cleaned.split("\n\n", 1)[0]
    elif "\n" in cleaned:
        cleaned = cleaned.split("\n", 1)[0]

    if len(cleaned) > TITLE_MAX_LENGTH:
        return cleaned[:TITLE_MAX_LENGTH] + "..."
    return cleaned or "Untitled"


def list_projects() -> list[Project]:
    """Return every project directory with its session count."""
    base = get_projects_path()
    if not base.is_dir():
        return []

    project_dirs = sorted(
        d for d in base.iterdir() if d.is_dir() and not d.name.startswith(".")
    )

    def _describe(project_dir: Path) -> Project:
        return Project(
            name=project_dir.name,
            display_name=decode_project_name(project_dir.name),
            path=str(project_dir),
            session_count=len(list_session_ids(project_dir)),
        )

    with ThreadPoolExecutor(max_workers=LISTING_CONCURRENCY) as executor:
        return list(executor.map(_describe, project_dirs))


def summarize_records(session_id: str, project: str, records: list[Record]) -> SessionMeta:
    """Derive title, message count and timestamps from a session's records."""
    conversation = [r for r in records if is_conversational(r)]

    first_user = next((r for r in records if r.get("type") == USER), None)
    if first_user is not None:
        title = extract_title(extract_text(first_user))
    else:
        title = f"Session {session_id[:8]}"

    return SessionMeta(
        id=session_id,
        project_name=project,
        title=title,
        message_count=len(conversation),
        created_at=conversation[0].get("timestamp") if conversation else None,
        updated_at=conversation[-1].get("timestamp") if conversation else None,
    )


def _sort_key(meta: SessionMeta) -> tuple[bool, datetime]:
    updated = _parse_iso(meta.updated_at)
    if updated is None:
        return (False, _epoch())
    return (True, updated)


def list_sessions(project: str) -> list[SessionMeta]:
    """Return session summaries for a project, most recently updated first.

    Sessions without any timestamp sort last. A session whose log cannot be
    parsed is logged and left out.
    """
    project_dir = project_path(project)
    session_ids = list_session_ids(project_dir)

    def _summarize(session_id: str) -> SessionMeta | None:
        path = project_dir / f"{session_id}{SESSION_SUFFIX}"
        try:
            records = load(path)
        except SessionError as e:
            logger.warning("Skipping unreadable session %s: %s", path, e)
            return None
        return summarize_records(session_id, project, records)

    with ThreadPoolExecutor(max_workers=LISTING_CONCURRENCY) as executor:
        sessions = [s for s in executor.map(_summarize, session_ids) if s is not None]

    sessions.sort(key=_sort_key, reverse=True)
    return sessions


def read_session(project: str, session_id: str) -> list[Record]:
    """Return every record of a session, in file order."""
    return load(session_path(project, session_id))


def get_session_files(project: str, session_id: str) -> SessionFilesSummary:
    """List files a session touched, from snapshots and write/edit tool calls.

    Each path is reported once, at its first occurrence in the log.
    """
    records = read_session(project, session_id)
    changes: list[FileChange] = []
    seen: set[str] = set()

    def _add(path: str, action: str, timestamp, message_uuid) -> None:
        if path in seen:
            return
        seen.add(path)
        changes.append(FileChange(
            path=path,
            action=action,
            timestamp=timestamp,
            message_uuid=message_uuid,
        ))

    for record in records:
        record_type = record.get("type")

        if record_type == FILE_HISTORY_SNAPSHOT:
            snapshot = record.get("snapshot")
            if not isinstance(snapshot, dict):
                continue
            backups = snapshot.get("trackedFileBackups")
            if isinstance(backups, dict):
                for file_path in backups:
                    _add(
                        file_path,
                        "modified",
                        snapshot.get("timestamp"),
                        record.get("messageId") or record.get("uuid"),
                    )

        elif record_type == ASSISTANT:
            message = record.get("message")
            content = message.get("content") if isinstance(message, dict) else None
            if not isinstance(content, list):
                continue
            for block in content:
                if not isinstance(block, dict) or block.get("type") != "tool_use":
                    continue
                tool_name = block.get("name")
                if tool_name not in WRITE_TOOLS and tool_name not in EDIT_TOOLS:
                    continue
                tool_input = block.get("input")
                file_path = tool_input.get("file_path") if isinstance(tool_input, dict) else None
                if not file_path:
                    continue
                action = "created" if tool_name in WRITE_TOOLS else "modified"
                _add(file_path, action, record.get("timestamp"), record.get("uuid"))

    return SessionFilesSummary(
        session_id=session_id,
        project_name=project,
        files=changes,
        total_changes=len(changes),
    )


def _parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string; naive values are taken as UTC."""
    if not value:
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _epoch() -> datetime:
    """Return a datetime at epoch for sorting fallback."""
    return datetime(1970, 1, 1, tzinfo=timezone.utc)

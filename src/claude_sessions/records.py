"""Record model for session log lines.

A session log is newline-delimited JSON, one record per line. Records are
kept as plain dicts so that fields this package does not know about survive
a read-modify-write cycle untouched.

Record kinds we care about:
- "user" / "assistant": conversational records. ``message.content`` is either
  a string or a list of typed blocks (text, tool_use, tool_result, ...).
- "file-history-snapshot": tracked file backups. Keyed by ``messageId``
  rather than ``uuid``.
- "custom-title": carries a ``customTitle`` set by the assistant.

Records link to each other through ``parentUuid``; ``None`` marks a root.
"""

from typing import Any, Optional

Record = dict[str, Any]

USER = "user"
ASSISTANT = "assistant"
FILE_HISTORY_SNAPSHOT = "file-history-snapshot"
CUSTOM_TITLE = "custom-title"

CONVERSATION_TYPES = frozenset({USER, ASSISTANT})

AGENT_PREFIX = "agent-"
SESSION_SUFFIX = ".jsonl"
TODO_SUFFIX = ".json"
BACKUP_DIR = ".bak"


def record_identity(record: Record) -> Optional[str]:
    """Return the id other records use to name this one as parent."""
    return record.get("uuid") or record.get("messageId")


def is_conversational(record: Record) -> bool:
    return record.get("type") in CONVERSATION_TYPES


def extract_text(record: Record) -> str:
    """Extract the plain text of a record's message (text blocks only)."""
    message = record.get("message")
    if not isinstance(message, dict):
        return ""

    content = message.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""

    parts = []
    for block in content:
        if isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text") or "")
    return "".join(parts)


def agent_file_name(agent_id: str) -> str:
    return f"{AGENT_PREFIX}{agent_id}{SESSION_SUFFIX}"


def agent_id_from_file(file_name: str) -> str:
    """``agent-1a2b.jsonl`` -> ``1a2b``"""
    return file_name[len(AGENT_PREFIX):-len(SESSION_SUFFIX)]


def is_agent_file(file_name: str) -> bool:
    return file_name.startswith(AGENT_PREFIX) and file_name.endswith(SESSION_SUFFIX)


def is_session_file(file_name: str) -> bool:
    return file_name.endswith(SESSION_SUFFIX) and not file_name.startswith(AGENT_PREFIX)

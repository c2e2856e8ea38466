"""Shared test fixtures for claude-sessions."""

import json

import pytest

PROJECT = "-Users-testuser-dev-myapp"
SESSION_ID = "11111111-1111-4111-8111-111111111111"
LINKED_AGENT = "a1b2c3d4"  # referenced by records after the split point
IDLE_AGENT = "e5f6a7b8"  # linked to the session, referenced by no record
ORPHAN_AGENT = "deadbeef"
MISSING_SESSION_ID = "99999999-9999-4999-8999-999999999999"


def _write_jsonl(path, records):
    path.write_text("".join(json.dumps(r) + "\n" for r in records), encoding="utf-8")


@pytest.fixture
def write_jsonl():
    """Write a list of records as a JSONL file."""
    return _write_jsonl


@pytest.fixture
def claude_home(tmp_path, monkeypatch):
    """Point the config at an empty synthetic ~/.claude directory."""
    home = tmp_path / ".claude"
    (home / "projects").mkdir(parents=True)
    (home / "todos").mkdir(parents=True)
    monkeypatch.setenv("CLAUDE_SESSIONS_HOME", str(home))
    monkeypatch.delenv("CLAUDE_SESSIONS_PROJECTS_PATH", raising=False)
    monkeypatch.delenv("CLAUDE_SESSIONS_TODOS_PATH", raising=False)
    return home


@pytest.fixture
def project_dir(claude_home):
    path = claude_home / "projects" / PROJECT
    path.mkdir()
    return path


def _sample_records():
    """A realistic session: text, tool calls, a snapshot and an agent-triggering reply."""
    return [
        # 1. User prompt behind an editor-context tag
        {
            "type": "user",
            "uuid": "u1",
            "parentUuid": None,
            "sessionId": SESSION_ID,
            "message": {"role": "user", "content": [
                {"type": "text", "text": "<ide_opened_file>The user opened /src/auth.ts</ide_opened_file>"},
                {"type": "text", "text": "Help me refactor the auth module\nIt has grown too large."},
            ]},
            "timestamp": "2025-01-20T10:00:00Z",
            "cwd": "/Users/testuser/dev/myapp",
        },
        # 2. Assistant text + Read
        {
            "type": "assistant",
            "uuid": "a1",
            "parentUuid": "u1",
            "sessionId": SESSION_ID,
            "message": {"role": "assistant", "content": [
                {"type": "text", "text": "Let me read the current code."},
                {"type": "tool_use", "id": "toolu_001", "name": "Read", "input": {"file_path": "/src/auth.ts"}},
            ]},
            "timestamp": "2025-01-20T10:00:30Z",
        },
        # 3. File history snapshot, keyed by messageId
        {
            "type": "file-history-snapshot",
            "messageId": "snap-1",
            "snapshot": {
                "messageId": "snap-1",
                "trackedFileBackups": {
                    "/src/auth.ts": {"backupFileName": "abc@v1", "version": 1},
                    "/src/db.ts": {"backupFileName": "def@v1", "version": 1},
                },
                "timestamp": "2025-01-20T10:00:31Z",
            },
            "isSnapshotUpdate": False,
        },
        # 4. Tool result
        {
            "type": "user",
            "uuid": "u2",
            "parentUuid": "a1",
            "sessionId": SESSION_ID,
            "message": {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "toolu_001", "content": "export function authenticate() {}"},
            ]},
            "timestamp": "2025-01-20T10:00:32Z",
        },
        # 5. Edit + Write
        {
            "type": "assistant",
            "uuid": "a2",
            "parentUuid": "u2",
            "sessionId": SESSION_ID,
            "message": {"role": "assistant", "content": [
                {"type": "tool_use", "id": "toolu_002", "name": "Edit", "input": {"file_path": "/src/auth.ts"}},
                {"type": "tool_use", "id": "toolu_003", "name": "Write", "input": {"file_path": "/src/auth/token.ts"}},
            ]},
            "timestamp": "2025-01-20T10:01:00Z",
        },
        # 6. User follow-up
        {
            "type": "user",
            "uuid": "u3",
            "parentUuid": "a2",
            "sessionId": SESSION_ID,
            "message": {"role": "user", "content": "Looks good, now split it into separate files"},
            "timestamp": "2025-01-20T10:05:00Z",
        },
        # 7. Assistant reply that spawned a subagent
        {
            "type": "assistant",
            "uuid": "a3",
            "parentUuid": "u3",
            "sessionId": SESSION_ID,
            "agentId": LINKED_AGENT,
            "message": {"role": "assistant", "content": [
                {"type": "tool_use", "id": "toolu_004", "name": "Write", "input": {"file_path": "/src/auth/index.ts"}},
            ]},
            "timestamp": "2025-01-20T10:05:30Z",
        },
    ]


@pytest.fixture
def sample_records():
    return _sample_records()


@pytest.fixture
def sample_project(claude_home, project_dir):
    """A project with one session, two linked agents, one orphan agent and todos.

    Returns the session file path.
    """
    session_file = project_dir / f"{SESSION_ID}.jsonl"
    _write_jsonl(session_file, _sample_records())

    for agent_id in (LINKED_AGENT, IDLE_AGENT):
        _write_jsonl(project_dir / f"agent-{agent_id}.jsonl", [
            {"type": "user", "uuid": f"{agent_id}-1", "parentUuid": None, "sessionId": SESSION_ID,
             "agentId": agent_id, "message": {"role": "user", "content": "Subtask"}},
            {"type": "assistant", "uuid": f"{agent_id}-2", "parentUuid": f"{agent_id}-1", "sessionId": SESSION_ID,
             "agentId": agent_id, "message": {"role": "assistant", "content": "Done"}},
        ])
    _write_jsonl(project_dir / f"agent-{ORPHAN_AGENT}.jsonl", [
        {"type": "user", "uuid": "o-1", "parentUuid": None, "sessionId": MISSING_SESSION_ID,
         "agentId": ORPHAN_AGENT, "message": {"role": "user", "content": "Lost"}},
    ])

    todos = claude_home / "todos"
    (todos / f"{SESSION_ID}.json").write_text(json.dumps([
        {"content": "Split auth module", "status": "in_progress", "activeForm": "Splitting auth module"},
        {"content": "Write tests", "status": "pending"},
    ]), encoding="utf-8")
    (todos / f"{SESSION_ID}-agent-{LINKED_AGENT}.json").write_text(json.dumps([
        {"content": "Move token helpers", "status": "completed"},
    ]), encoding="utf-8")
    (todos / f"{MISSING_SESSION_ID}.json").write_text("[]", encoding="utf-8")

    return session_file


def read_jsonl(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


@pytest.fixture
def read_records():
    """Read back a JSONL file as a list of dicts."""
    return read_jsonl

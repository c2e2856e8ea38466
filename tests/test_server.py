"""Tests for the FastAPI server."""

import pytest
from httpx import ASGITransport, AsyncClient

from claude_sessions import __version__
from claude_sessions.server import app

from conftest import LINKED_AGENT, PROJECT, SESSION_ID


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_index_serves_frontend():
    async with _client() as client:
        resp = await client.get("/")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]


@pytest.mark.asyncio
async def test_version():
    async with _client() as client:
        resp = await client.get("/api/version")
        assert resp.json() == {"version": __version__}


@pytest.mark.asyncio
async def test_get_projects(sample_project):
    async with _client() as client:
        resp = await client.get("/api/projects")
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["projects"][0]["name"] == PROJECT
        assert data["projects"][0]["session_count"] == 1


@pytest.mark.asyncio
async def test_get_sessions(sample_project):
    async with _client() as client:
        resp = await client.get("/api/sessions", params={"project": PROJECT})
        assert resp.status_code == 200
        sessions = resp.json()["sessions"]
        assert len(sessions) == 1
        assert sessions[0]["id"] == SESSION_ID
        assert sessions[0]["title"] == "Help me refactor the auth module"


@pytest.mark.asyncio
async def test_unknown_project_is_404(claude_home):
    async with _client() as client:
        resp = await client.get("/api/sessions", params={"project": "-nope"})
        assert resp.status_code == 404
        data = resp.json()
        assert data["success"] is False
        assert "-nope" in data["error"]


@pytest.mark.asyncio
async def test_get_session(sample_project, sample_records):
    async with _client() as client:
        resp = await client.get("/api/session", params={"project": PROJECT, "id": SESSION_ID})
        assert resp.status_code == 200
        data = resp.json()
        assert data["session_id"] == SESSION_ID
        assert data["records"] == sample_records


@pytest.mark.asyncio
async def test_malformed_session_is_422(project_dir):
    (project_dir / f"{SESSION_ID}.jsonl").write_text("{broken\n", encoding="utf-8")
    async with _client() as client:
        resp = await client.get("/api/session", params={"project": PROJECT, "id": SESSION_ID})
        assert resp.status_code == 422
        assert resp.json()["success"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [b"\xff\xfe\n", b"null\n"])
async def test_undecodable_or_non_object_session_is_422(project_dir, content):
    (project_dir / f"{SESSION_ID}.jsonl").write_bytes(content)
    async with _client() as client:
        resp = await client.get("/api/session", params={"project": PROJECT, "id": SESSION_ID})
        assert resp.status_code == 422
        assert resp.json()["success"] is False

        resp = await client.get("/api/sessions", params={"project": PROJECT})
        assert resp.status_code == 200
        assert resp.json()["sessions"] == []


@pytest.mark.asyncio
async def test_delete_message(sample_project, read_records):
    async with _client() as client:
        resp = await client.delete(
            "/api/message", params={"project": PROJECT, "session": SESSION_ID, "uuid": "u2"}
        )
        assert resp.json() == {"success": True}
    records = read_records(sample_project)
    assert next(r for r in records if r.get("uuid") == "a2")["parentUuid"] == "a1"


@pytest.mark.asyncio
async def test_delete_unknown_message_is_404(sample_project):
    async with _client() as client:
        resp = await client.delete(
            "/api/message", params={"project": PROJECT, "session": SESSION_ID, "uuid": "nope"}
        )
        assert resp.status_code == 404


@pytest.mark.asyncio
async def test_patch_custom_title(project_dir, write_jsonl, read_records):
    path = project_dir / f"{SESSION_ID}.jsonl"
    write_jsonl(path, [{"type": "custom-title", "uuid": "t", "customTitle": "Old"}])
    async with _client() as client:
        resp = await client.patch(
            "/api/message",
            params={"project": PROJECT, "session": SESSION_ID, "uuid": "t"},
            json={"custom_title": "New"},
        )
        assert resp.status_code == 200
    assert read_records(path)[0]["customTitle"] == "New"


@pytest.mark.asyncio
async def test_rename(sample_project):
    async with _client() as client:
        resp = await client.post(
            "/api/session/rename", json={"project": PROJECT, "id": SESSION_ID, "title": "Auth work"}
        )
        assert resp.json()["success"] is True
        resp = await client.get("/api/sessions", params={"project": PROJECT})
        assert resp.json()["sessions"][0]["title"] == "Auth work"


@pytest.mark.asyncio
async def test_split(sample_project):
    async with _client() as client:
        resp = await client.post(
            "/api/session/split",
            json={"project": PROJECT, "session_id": SESSION_ID, "message_uuid": "u3"},
        )
        data = resp.json()
        assert data["success"] is True
        assert data["moved_message_count"] == 2
        assert (sample_project.parent / f"{data['new_session_id']}.jsonl").exists()


@pytest.mark.asyncio
async def test_split_at_first_record_is_400(sample_project):
    async with _client() as client:
        resp = await client.post(
            "/api/session/split",
            json={"project": PROJECT, "session_id": SESSION_ID, "message_uuid": "u1"},
        )
        assert resp.status_code == 400
        assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_delete_session(sample_project):
    async with _client() as client:
        resp = await client.delete("/api/session", params={"project": PROJECT, "id": SESSION_ID})
        data = resp.json()
        assert data["success"] is True
        assert data["deleted_agents"] == 2
        assert data["backup_path"].endswith(f"{PROJECT}_{SESSION_ID}.jsonl")
    assert not sample_project.exists()


@pytest.mark.asyncio
async def test_move_session(sample_project, claude_home):
    (claude_home / "projects" / "-Users-testuser-dev-other").mkdir()
    async with _client() as client:
        resp = await client.post(
            "/api/session/move",
            json={"source_project": PROJECT, "session_id": SESSION_ID, "target_project": "-Users-testuser-dev-other"},
        )
        assert resp.json()["moved_agents"] == 2


@pytest.mark.asyncio
async def test_session_files(sample_project):
    async with _client() as client:
        resp = await client.get("/api/session/files", params={"project": PROJECT, "id": SESSION_ID})
        data = resp.json()
        assert data["total_changes"] == 4
        assert {f["path"] for f in data["files"]} >= {"/src/auth.ts", "/src/auth/index.ts"}


@pytest.mark.asyncio
async def test_session_todos(sample_project):
    async with _client() as client:
        resp = await client.get("/api/session/todos", params={"project": PROJECT, "id": SESSION_ID})
        data = resp.json()
        assert data["has_todos"] is True
        assert len(data["session_todos"]) == 2
        assert data["agent_todos"][0]["agent_id"] == LINKED_AGENT


@pytest.mark.asyncio
async def test_cleanup_preview_and_run(sample_project):
    (sample_project.parent / "empty.jsonl").write_text("", encoding="utf-8")
    async with _client() as client:
        resp = await client.get("/api/cleanup", params={"project": PROJECT})
        preview = resp.json()
        assert preview["projects"][0]["empty_sessions"][0]["id"] == "empty"

        resp = await client.post("/api/cleanup", json={"project": PROJECT, "clear_orphan_agents": True})
        data = resp.json()
        assert data["deleted_count"] == 1
        assert data["deleted_orphan_agents"] == 1
    assert not (sample_project.parent / "empty.jsonl").exists()


@pytest.mark.asyncio
async def test_file_exists(tmp_path):
    present = tmp_path / "present.txt"
    present.write_text("x", encoding="utf-8")
    async with _client() as client:
        resp = await client.get("/api/file-exists", params={"path": str(present)})
        assert resp.json() == {"exists": True}
        resp = await client.get("/api/file-exists", params={"path": str(tmp_path / "absent.txt")})
        assert resp.json() == {"exists": False}

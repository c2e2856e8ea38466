"""FastAPI web server for claude-sessions."""

import dataclasses
import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from . import __version__
from .errors import (
    EmptySessionError,
    InvalidSplitPointError,
    InvalidTargetError,
    MalformedRecordError,
    NoUserMessageError,
    NotFoundError,
    SessionError,
)
from .linkage import find_linked_agents, find_linked_todos
from .mutations import (
    clear_sessions,
    delete_message,
    delete_session,
    move_session,
    preview_cleanup,
    rename_session,
    split_session,
    update_custom_title,
)
from .store import project_path
from .summary import get_session_files, list_projects, list_sessions, read_session

logger = logging.getLogger(__name__)

app = FastAPI(title="claude-sessions", version=__version__)

_STATUS_BY_ERROR = {
    NotFoundError: 404,
    EmptySessionError: 400,
    NoUserMessageError: 400,
    InvalidSplitPointError: 400,
    InvalidTargetError: 400,
    MalformedRecordError: 422,
}


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    """Turn engine failures into the ``{"success": false, "error": ...}`` envelope."""
    status_code = _STATUS_BY_ERROR.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"success": False, "error": str(exc)})


def _ok(**payload) -> dict:
    return {"success": True, **payload}


def _to_dict(obj) -> dict:
    """Convert a result dataclass to a JSON-serializable dict."""
    return dataclasses.asdict(obj)


# ── Request bodies ───────────────────────────────────────────────


class RenameRequest(BaseModel):
    project: str
    id: str
    title: str


class SplitRequest(BaseModel):
    project: str
    session_id: str
    message_uuid: str


class MoveRequest(BaseModel):
    source_project: str
    session_id: str
    target_project: str


class CustomTitleRequest(BaseModel):
    custom_title: str


class CleanupRequest(BaseModel):
    project: Optional[str] = None
    clear_empty: bool = True
    clear_invalid: bool = True
    clear_orphan_agents: bool = False
    clear_orphan_todos: bool = False
    skip_with_todos: bool = False


# ── Routes ───────────────────────────────────────────────────────


@app.get("/")
async def index():
    """Serve the frontend."""
    html_path = Path(__file__).parent / "static" / "index.html"
    if not html_path.exists():
        raise HTTPException(status_code=404, detail="Frontend not found")
    return HTMLResponse(html_path.read_text(encoding="utf-8"))


@app.get("/api/version")
async def get_version():
    return {"version": __version__}


@app.get("/api/projects")
async def get_projects():
    """Return every project with its session count."""
    return _ok(projects=[_to_dict(p) for p in list_projects()])


@app.get("/api/sessions")
async def get_sessions(project: str = Query(..., description="Project folder name")):
    """Return session summaries for a project, newest first."""
    return _ok(sessions=[_to_dict(s) for s in list_sessions(project)])


@app.get("/api/session")
async def get_session(
    project: str = Query(..., description="Project folder name"),
    session_id: str = Query(..., alias="id", description="Session id"),
):
    """Return every record of a session."""
    return _ok(session_id=session_id, records=read_session(project, session_id))


@app.delete("/api/session")
async def remove_session(project: str = Query(...), session_id: str = Query(..., alias="id")):
    """Retire a session and its linked agent logs and todos."""
    return _ok(**_to_dict(delete_session(project, session_id)))


@app.post("/api/session/rename")
async def rename(body: RenameRequest):
    rename_session(body.project, body.id, body.title)
    return _ok()


@app.post("/api/session/split")
async def split(body: SplitRequest):
    result = split_session(body.project, body.session_id, body.message_uuid)
    return _ok(**_to_dict(result))


@app.post("/api/session/move")
async def move(body: MoveRequest):
    result = move_session(body.source_project, body.session_id, body.target_project)
    return _ok(**_to_dict(result))


@app.get("/api/session/files")
async def session_files(project: str = Query(...), session_id: str = Query(..., alias="id")):
    """Return files created or modified during a session."""
    return _ok(**_to_dict(get_session_files(project, session_id)))


@app.get("/api/session/todos")
async def session_todos(project: str = Query(...), session_id: str = Query(..., alias="id")):
    """Return the todo snapshots of a session and its agents."""
    agents = find_linked_agents(project_path(project), session_id)
    todos = find_linked_todos(session_id, agents)
    return _ok(has_todos=todos.has_todos, **_to_dict(todos))


@app.delete("/api/message")
async def remove_message(
    project: str = Query(...),
    session: str = Query(...),
    uuid: str = Query(..., description="uuid or messageId of the record"),
):
    delete_message(project, session, uuid)
    return _ok()


@app.patch("/api/message")
async def patch_message(
    body: CustomTitleRequest,
    project: str = Query(...),
    session: str = Query(...),
    uuid: str = Query(...),
):
    update_custom_title(project, session, uuid, body.custom_title)
    return _ok()


@app.get("/api/cleanup")
async def get_cleanup_preview(project: Optional[str] = Query(None, description="Limit to one project")):
    """Dry run of the cleanup: what would be scrubbed, deleted or retired."""
    return _ok(**_to_dict(preview_cleanup(project)))


@app.post("/api/cleanup")
async def run_cleanup(body: CleanupRequest):
    result = clear_sessions(
        project=body.project,
        clear_empty=body.clear_empty,
        clear_invalid=body.clear_invalid,
        clear_orphan_agents=body.clear_orphan_agents,
        clear_orphan_todos=body.clear_orphan_todos,
        skip_with_todos=body.skip_with_todos,
    )
    return _ok(**_to_dict(result))


@app.get("/api/file-exists")
async def file_exists(path: str = Query(..., description="Absolute file path")):
    return {"exists": Path(path).exists()}

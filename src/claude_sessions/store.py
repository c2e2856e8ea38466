"""Read/write primitives for session log files.

Every higher-level operation is built from ``load``, ``rewrite`` and
``retire`` plus directory listing. Nothing is cached: each call goes back
to disk, because the assistant appends to these files between our calls.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from .config import get_projects_path
from .errors import MalformedRecordError, NotFoundError, StorageError
from .records import (
    SESSION_SUFFIX,
    Record,
    agent_id_from_file,
    is_agent_file,
    is_session_file,
)

logger = logging.getLogger(__name__)


def project_path(project: str) -> Path:
    """Return the directory of a project, raising if it does not exist."""
    path = get_projects_path() / project
    if not path.is_dir():
        raise NotFoundError(f"Project not found: {project}")
    return path


def session_path(project: str, session_id: str) -> Path:
    """Return the log file of a session, raising if it does not exist."""
    path = project_path(project) / f"{session_id}{SESSION_SUFFIX}"
    if not path.is_file():
        raise NotFoundError(f"Session not found: {session_id}")
    return path


def list_session_ids(project_dir: Path) -> list[str]:
    """Return the ids of ordinary (non-agent) sessions in a project directory."""
    try:
        names = sorted(os.listdir(project_dir))
    except OSError as e:
        raise StorageError(f"Failed to list {project_dir}: {e}") from e
    return [name[:-len(SESSION_SUFFIX)] for name in names if is_session_file(name)]


def list_agent_ids(project_dir: Path) -> list[str]:
    """Return the ids of agent logs in a project directory."""
    try:
        names = sorted(os.listdir(project_dir))
    except OSError as e:
        raise StorageError(f"Failed to list {project_dir}: {e}") from e
    return [agent_id_from_file(name) for name in names if is_agent_file(name)]


def load(path: Path) -> list[Record]:
    """Parse every non-blank line of a log file.

    Fails on the first malformed line instead of skipping it: chain repair
    depends on every record being present. A line that does not decode as
    UTF-8, or that holds JSON other than an object, counts as malformed.
    """
    try:
        data = path.read_bytes()
    except FileNotFoundError as e:
        raise NotFoundError(f"File not found: {path}") from e
    except OSError as e:
        raise StorageError(f"Failed to read {path}: {e}") from e

    records = []
    for line_num, raw_line in enumerate(data.split(b"\n"), 1):
        try:
            line = raw_line.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise MalformedRecordError(path, line_num, str(e)) from e
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            raise MalformedRecordError(path, line_num, str(e)) from e
        if not isinstance(record, dict):
            raise MalformedRecordError(path, line_num, "not a JSON object")
        records.append(record)

    return records


def dumps(records: list[Record]) -> str:
    """Serialize records to JSONL text (compact, one per line, final newline)."""
    return "".join(
        json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n"
        for record in records
    )


def rewrite(path: Path, records: list[Record]) -> None:
    """Replace the whole file with ``records``.

    The content goes to a temporary file next to ``path`` which is then
    renamed over it, so readers see either the old or the new file. An
    existing file keeps its permission bits.
    """
    content = dumps(records)
    try:
        fd, temp_path = tempfile.mkstemp(
            prefix=f".{path.name}.",
            suffix=".tmp",
            dir=path.parent,
        )
    except OSError as e:
        raise StorageError(f"Failed to write {path}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        if path.exists():
            # mkstemp creates 0600
            shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    except OSError as e:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise StorageError(f"Failed to write {path}: {e}") from e


def retire(
    path: Path,
    backup_dir: Path,
    backup_name: Optional[str] = None,
    missing_ok: bool = False,
) -> Optional[Path]:
    """Move a file into ``backup_dir`` instead of deleting it.

    A file with no content is removed outright since there is nothing to
    recover. Returns the backup path, or None when nothing was backed up.
    """
    try:
        empty = not path.read_bytes().strip()
    except FileNotFoundError as e:
        if missing_ok:
            return None
        raise NotFoundError(f"File not found: {path}") from e
    except OSError as e:
        raise StorageError(f"Failed to read {path}: {e}") from e

    try:
        if empty:
            path.unlink()
            logger.info("Removed empty file %s", path)
            return None

        backup_dir.mkdir(parents=True, exist_ok=True)
        backup_path = backup_dir / (backup_name or path.name)
        os.replace(path, backup_path)
    except OSError as e:
        raise StorageError(f"Failed to retire {path}: {e}") from e

    logger.info("Moved %s to %s", path, backup_path)
    return backup_path


def read_first_record(path: Path) -> Optional[Record]:
    """Best-effort read of a log's first line; None when missing or unparseable."""
    try:
        with path.open(encoding="utf-8") as f:
            first_line = f.readline().strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Could not read %s: %s", path, e)
        return None

    if not first_line:
        return None
    try:
        record = json.loads(first_line)
    except json.JSONDecodeError as e:
        logger.debug("Bad JSON on first line of %s: %s", path, e)
        return None
    return record if isinstance(record, dict) else None

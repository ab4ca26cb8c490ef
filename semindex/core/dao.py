"""
Data access for the project registry, file index and pattern store.
Every write is a single statement, so each row update is atomic on its own.
"""

import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np

from .db import get_db
from .schema import IndexedFile, Pattern, Project
from ..util.logging import logger
from ..vector.codec import deserialize_vector, serialize_vector


def _parse_ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        root_path=row["root_path"],
        created_at=_parse_ts(row["created_at"]),
    )


def _row_vector(row: sqlite3.Row) -> Optional[np.ndarray]:
    blob = row["embedding"]
    if not blob:
        return None
    try:
        return deserialize_vector(blob)
    except ValueError as e:
        # Read as vectorless so the indexer re-embeds it and search skips it
        logger.warning(f"Corrupt embedding for '{row['path']}' in project '{row['project_id']}': {e}")
        return None


def _row_to_indexed_file(row: sqlite3.Row) -> IndexedFile:
    vector = _row_vector(row)
    return IndexedFile(
        project_id=row["project_id"],
        path=row["path"],
        file_type=row["file_type"],
        size_bytes=row["size_bytes"],
        content_hash=row["content_hash"],
        preview=row["content_preview"] or "",
        vector=vector,
        model_version=row["model_version"] if vector is not None else None,
        indexed_at=_parse_ts(row["indexed_at"]),
    )


def _row_to_pattern(row: sqlite3.Row) -> Pattern:
    return Pattern(
        id=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        problem=row["problem"],
        solution=row["solution"],
        implementation=row["implementation"],
        metrics=json.loads(row["metrics"]) if row["metrics"] else None,
        problem_vector=deserialize_vector(row["problem_embedding"]),
        model_version=row["model_version"],
        created_at=_parse_ts(row["created_at"]),
    )


# Project registry

def register_project(project_id: str, root_path: str, name: Optional[str] = None) -> Project:
    """Create or update a project registration."""
    created_at = datetime.now()
    with get_db() as conn:
        conn.execute(
            """INSERT INTO projects (id, name, root_path, created_at) VALUES (?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET name = excluded.name, root_path = excluded.root_path""",
            (project_id, name or project_id, str(root_path), created_at.isoformat())
        )
        conn.commit()
    return get_project(project_id)


def get_project(project_id: str) -> Optional[Project]:
    if not project_id or not project_id.strip():
        return None

    with get_db() as conn:
        row = conn.execute(
            "SELECT id, name, root_path, created_at FROM projects WHERE id = ?",
            (project_id.strip(),)
        ).fetchone()
    return _row_to_project(row) if row else None


def list_projects() -> List[Project]:
    with get_db() as conn:
        rows = conn.execute("SELECT id, name, root_path, created_at FROM projects ORDER BY id").fetchall()
    return [_row_to_project(row) for row in rows]


def delete_project(project_id: str) -> bool:
    """Delete a project. Its file index rows and patterns go with it."""
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        conn.commit()
        deleted = cursor.rowcount > 0

    if deleted:
        logger.log_index_operation("project_deleted", project_id)
    return deleted


# File index store

_FILE_COLUMNS = ("project_id, path, file_type, size_bytes, content_hash, content_preview, "
                 "embedding, model_version, indexed_at")


def get_indexed_file(project_id: str, path: str) -> Optional[IndexedFile]:
    with get_db() as conn:
        row = conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM file_index WHERE project_id = ? AND path = ?",
            (project_id, path)
        ).fetchone()
    return _row_to_indexed_file(row) if row else None


def get_indexed_files(project_id: str) -> List[IndexedFile]:
    """All index rows for a project, in path order."""
    with get_db() as conn:
        rows = conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM file_index WHERE project_id = ? ORDER BY path",
            (project_id,)
        ).fetchall()
    return [_row_to_indexed_file(row) for row in rows]


def upsert_indexed_file(record: IndexedFile) -> None:
    """Insert or replace the index row for ``(project_id, path)``.

    Hash, preview, vector, model version and timestamp change together in
    one statement.
    """
    embedding = serialize_vector(record.vector) if record.vector is not None else None
    indexed_at = record.indexed_at or datetime.now()

    try:
        with get_db() as conn:
            conn.execute(
                f"""INSERT INTO file_index ({_FILE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(project_id, path) DO UPDATE SET
                        file_type = excluded.file_type,
                        size_bytes = excluded.size_bytes,
                        content_hash = excluded.content_hash,
                        content_preview = excluded.content_preview,
                        embedding = excluded.embedding,
                        model_version = excluded.model_version,
                        indexed_at = excluded.indexed_at""",
                (record.project_id, record.path, record.file_type, record.size_bytes,
                 record.content_hash, record.preview, embedding, record.model_version,
                 indexed_at.isoformat())
            )
            conn.commit()
    except sqlite3.Error as e:
        logger.error(f"Failed to upsert index row '{record.path}' for project '{record.project_id}': {e}")
        raise


def delete_indexed_file(project_id: str, path: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM file_index WHERE project_id = ? AND path = ?",
            (project_id, path)
        )
        conn.commit()
        return cursor.rowcount > 0


# Pattern store

_PATTERN_COLUMNS = ("id, project_id, name, problem, solution, implementation, metrics, "
                    "problem_embedding, model_version, created_at")


def create_pattern(project_id: str, name: str, problem: str, solution: str,
                   problem_vector: np.ndarray, model_version: str,
                   implementation: Optional[str] = None,
                   metrics: Optional[Dict[str, Any]] = None) -> Pattern:
    """Insert a pattern. The problem vector is required up front."""
    if problem_vector is None:
        raise ValueError("problem_vector is required")

    created_at = datetime.now()
    try:
        with get_db() as conn:
            cursor = conn.execute(
                """INSERT INTO patterns (project_id, name, problem, solution, implementation, metrics,
                                         problem_embedding, model_version, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (project_id, name, problem, solution, implementation,
                 json.dumps(metrics) if metrics else None,
                 serialize_vector(problem_vector), model_version, created_at.isoformat())
            )
            conn.commit()
            pattern_id = cursor.lastrowid
    except sqlite3.Error as e:
        logger.error(f"Failed to create pattern '{name}' for project '{project_id}': {e}")
        raise

    return get_pattern(pattern_id)


def get_pattern(pattern_id: int) -> Optional[Pattern]:
    with get_db() as conn:
        row = conn.execute(
            f"SELECT {_PATTERN_COLUMNS} FROM patterns WHERE id = ?",
            (pattern_id,)
        ).fetchone()
    return _row_to_pattern(row) if row else None


def get_patterns(project_id: Optional[str] = None) -> List[Pattern]:
    """All patterns, newest first, optionally for a single project."""
    query = f"SELECT {_PATTERN_COLUMNS} FROM patterns"
    params = ()
    if project_id:
        query += " WHERE project_id = ?"
        params = (project_id,)
    query += " ORDER BY created_at DESC, id DESC"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_pattern(row) for row in rows]

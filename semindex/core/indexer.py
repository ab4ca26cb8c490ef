"""
Indexing coordinator.
Walks a project's text files, hashes raw bytes, embeds only what changed and
upserts the file index one row at a time.
"""

import hashlib
import os
import sqlite3
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

import numpy as np

from . import dao
from .config import (INDEX_BATCH_SIZE, MAX_REPORTED_ERRORS, PREVIEW_CHARS,
                     SKIP_DIRS, TEXT_EXTENSIONS)
from .db import init_db
from .errors import ModelUnavailable, PerFileIndexError, ProjectNotFound
from .schema import IndexedFile, Project
from ..api.schemas import IndexFileRequest, IndexFilesRequest
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider

INDEXED = "indexed"
SKIPPED = "skipped"
ERROR = "error"


@dataclass
class IndexReport:
    """Aggregate result of an index_project run."""
    total_files: int = 0
    indexed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    error_count: int = 0
    cancelled: bool = False
    max_errors: int = field(default=MAX_REPORTED_ERRORS, repr=False)

    def add_error(self, error: PerFileIndexError) -> None:
        self.error_count += 1
        if len(self.errors) < self.max_errors:
            self.errors.append(str(error))

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("max_errors")
        return data


@dataclass
class IndexOutcome:
    """Result of indexing one file."""
    path: str
    status: str  # indexed|skipped|error
    reason: Optional[str] = None


@dataclass
class IndexStatus:
    indexed: bool
    file_count: int  # rows with a vector usable by the current model
    total_indexed: int
    stale_count: int  # rows with no vector or a vector from another model
    last_indexed: Optional[datetime]


@dataclass
class _PendingFile:
    path: str
    file_type: str
    size_bytes: int
    content_hash: str
    content: str


def content_hash(raw: bytes) -> str:
    """Content fingerprint of raw file bytes."""
    return hashlib.md5(raw).hexdigest()


def is_text_file(path) -> bool:
    return Path(path).suffix.lower() in TEXT_EXTENSIONS


def is_excluded(relative_path: str) -> bool:
    """True when any component is hidden or a skipped build/VCS directory."""
    parts = Path(relative_path).parts
    for i, part in enumerate(parts):
        if part.startswith('.'):
            return True
        if i < len(parts) - 1 and part in SKIP_DIRS:
            return True
    return False


def is_excluded_dir(relative_path: str) -> bool:
    """True when a directory is hidden, a skipped directory, or inside one."""
    return any(part.startswith('.') or part in SKIP_DIRS for part in Path(relative_path).parts)


def find_text_files(directory: Path, root: Optional[Path] = None) -> List[Path]:
    """Recursively list text files under ``directory`` in a stable order.

    Hidden entries and SKIP_DIRS are not descended into. Unreadable
    directories are skipped, and so are symlinks resolving outside ``root``
    (``directory`` itself when not given).
    """
    root = Path(root or directory).resolve()
    files = []
    for current, dirnames, filenames in os.walk(directory):
        dirnames[:] = sorted(
            d for d in dirnames if d not in SKIP_DIRS and not d.startswith('.')
        )
        for filename in sorted(filenames):
            if filename.startswith('.'):
                continue
            if not is_text_file(filename):
                continue
            path = Path(current) / filename
            if not path.resolve().is_relative_to(root):
                logger.warning(f"Skipping '{path}': symlink target is outside the project root")
                continue
            files.append(path)
    return files


class FileIndexer:
    """Keeps a project's file index in step with its files on disk."""

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        project_lookup: Optional[Callable[[str], Optional[Project]]] = None,
        batch_size: int = INDEX_BATCH_SIZE,
        preview_chars: int = PREVIEW_CHARS,
        max_reported_errors: int = MAX_REPORTED_ERRORS,
    ):
        self.provider = embedding_provider
        self.project_lookup = project_lookup or dao.get_project
        self.batch_size = max(1, batch_size)
        self.preview_chars = preview_chars
        self.max_reported_errors = max_reported_errors
        init_db()

    def _resolve_project(self, project_id: str) -> Project:
        project = self.project_lookup(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    @staticmethod
    def _resolve_path(root: Path, relative_path: str) -> Tuple[Path, str]:
        """Absolute path plus the canonical relative key, confined to root."""
        target = (root / relative_path).resolve()
        try:
            relative = target.relative_to(root)
        except ValueError:
            raise PerFileIndexError(relative_path, "path is outside the project root")
        return target, relative.as_posix()

    def _discover(self, root: Path, paths: Optional[Iterable[str]]) -> Tuple[List[Path], List[PerFileIndexError]]:
        if not paths:
            return find_text_files(root), []

        found: List[Path] = []
        errors: List[PerFileIndexError] = []
        for relative_path in paths:
            try:
                target, key = self._resolve_path(root, relative_path)
            except PerFileIndexError as e:
                errors.append(e)
                continue

            if target.is_dir():
                if is_excluded_dir(key):
                    errors.append(PerFileIndexError(relative_path, "path is excluded from indexing"))
                else:
                    found.extend(find_text_files(target, root))
            elif target.is_file():
                if is_text_file(target) and not is_excluded(key):
                    found.append(target)
            else:
                errors.append(PerFileIndexError(relative_path, "path not found"))

        # Overlapping paths must not index a file twice
        unique = list(dict.fromkeys(found))
        return unique, errors

    def _is_current(self, existing: Optional[IndexedFile], digest: str) -> bool:
        return (
            existing is not None
            and existing.content_hash == digest
            and existing.vector is not None
            and existing.model_version == self.provider.model_version
        )

    def _stored_row(self, project_id: str, relative_path: str) -> Optional[IndexedFile]:
        try:
            return dao.get_indexed_file(project_id, relative_path)
        except sqlite3.Error as e:
            # An unreadable row is re-embedded and overwritten
            logger.warning(f"Stored index row for '{relative_path}' is unreadable, reindexing: {e}")
            return None

    def _prepare(self, project_id: str, relative_path: str, absolute_path: Path,
                 force: bool) -> Optional[_PendingFile]:
        """Read and hash a file. None means the stored row is already current."""
        try:
            raw = absolute_path.read_bytes()
        except OSError as e:
            raise PerFileIndexError(relative_path, e.strerror or str(e)) from e

        digest = content_hash(raw)
        if not force and self._is_current(self._stored_row(project_id, relative_path), digest):
            return None

        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PerFileIndexError(relative_path, f"not valid UTF-8 ({e.reason})") from e

        return _PendingFile(
            path=relative_path,
            file_type=absolute_path.suffix.lower(),
            size_bytes=len(raw),
            content_hash=digest,
            content=content,
        )

    def _write(self, project_id: str, item: _PendingFile, vector: np.ndarray) -> None:
        dao.upsert_indexed_file(IndexedFile(
            project_id=project_id,
            path=item.path,
            file_type=item.file_type,
            size_bytes=item.size_bytes,
            content_hash=item.content_hash,
            preview=item.content[:self.preview_chars],
            vector=vector,
            model_version=self.provider.model_version,
            indexed_at=datetime.now(),
        ))

    def _flush(self, project_id: str, pending: List[_PendingFile], report: IndexReport) -> None:
        """Embed and write one batch. Failures are recorded per file."""
        vectors = None
        try:
            vectors = self.provider.embed_texts([item.content for item in pending])
            if len(vectors) != len(pending):
                raise ValueError(f"provider returned {len(vectors)} vectors for {len(pending)} texts")
        except ModelUnavailable:
            raise
        except Exception as e:
            logger.warning(f"Batch embedding of {len(pending)} files failed, retrying one by one: {e}")
            vectors = None

        for i, item in enumerate(pending):
            try:
                vector = vectors[i] if vectors is not None else self.provider.embed_text(item.content)
                self._write(project_id, item, vector)
                report.indexed += 1
            except ModelUnavailable:
                raise
            except Exception as e:
                report.add_error(PerFileIndexError(item.path, str(e)))

    def index_project(self, project_id: str, paths: Optional[List[str]] = None,
                      force_reindex: bool = False,
                      cancel_event: Optional[threading.Event] = None) -> IndexReport:
        """Index every text file of a project, or only ``paths`` within it.

        Unchanged files are skipped without touching the model. A file that
        fails is reported and the run continues. ModelUnavailable aborts the
        run; rows written before it stay written. Setting ``cancel_event``
        stops the run before the next file.
        """
        request = IndexFilesRequest(project_id=project_id, paths=paths, force_reindex=force_reindex)
        project = self._resolve_project(request.project_id)
        root = Path(project.root_path).resolve()

        # Fail fast before walking anything if the model cannot load
        self.provider.preload()

        files, discovery_errors = self._discover(root, request.paths)
        report = IndexReport(total_files=len(files), max_errors=self.max_reported_errors)
        for error in discovery_errors:
            report.add_error(error)

        logger.log_index_operation("project_started", project.id, {
            "files": len(files),
            "force": request.force_reindex,
        }, status="started")

        pending: List[_PendingFile] = []
        for absolute_path in files:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                break

            relative_path = absolute_path.relative_to(root).as_posix()
            try:
                item = self._prepare(project.id, relative_path, absolute_path, request.force_reindex)
            except PerFileIndexError as e:
                report.add_error(e)
                continue
            except ModelUnavailable:
                raise
            except Exception as e:
                report.add_error(PerFileIndexError(relative_path, str(e)))
                continue

            if item is None:
                report.skipped += 1
                continue

            pending.append(item)
            if len(pending) >= self.batch_size:
                self._flush(project.id, pending, report)
                pending = []

        if pending:
            self._flush(project.id, pending, report)

        logger.log_index_operation("project_completed", project.id, {
            "total_files": report.total_files,
            "indexed": report.indexed,
            "skipped": report.skipped,
            "errors": report.error_count,
            "cancelled": report.cancelled,
        }, status="cancelled" if report.cancelled else "success")
        return report

    def index_file(self, project_id: str, relative_path: str, force: bool = False) -> IndexOutcome:
        """Index a single file. File-level problems come back as an error outcome."""
        request = IndexFileRequest(project_id=project_id, path=relative_path, force=force)
        project = self._resolve_project(request.project_id)
        root = Path(project.root_path).resolve()

        try:
            absolute_path, key = self._resolve_path(root, request.path)
        except PerFileIndexError as e:
            return IndexOutcome(path=request.path, status=ERROR, reason=e.reason)

        if not absolute_path.is_file():
            return IndexOutcome(path=key, status=ERROR, reason=f"File not found: {key}")
        if not is_text_file(absolute_path):
            return IndexOutcome(path=key, status=SKIPPED, reason="Not a text file")
        if is_excluded(key):
            return IndexOutcome(path=key, status=SKIPPED, reason="Excluded path")

        try:
            item = self._prepare(project.id, key, absolute_path, request.force)
            if item is None:
                return IndexOutcome(path=key, status=SKIPPED, reason="File unchanged")

            vector = self.provider.embed_text(item.content)
            self._write(project.id, item, vector)
        except ModelUnavailable:
            raise
        except Exception as e:
            logger.log_index_operation("file", project.id, {"path": key, "error": str(e)[:200]}, status="failed")
            return IndexOutcome(path=key, status=ERROR, reason=str(e))

        logger.log_index_operation("file", project.id, {"path": key})
        return IndexOutcome(path=key, status=INDEXED)

    def index_file_after_write(self, project_id: str, relative_path: str) -> Optional[IndexOutcome]:
        """Incremental hook for the write path. Never raises."""
        try:
            return self.index_file(project_id, relative_path)
        except Exception as e:
            # Indexing is best effort and must not fail the write that triggered it
            logger.warning(f"Index after write failed for '{relative_path}' in project '{project_id}': {e}")
            return None

    def remove_file(self, project_id: str, relative_path: str) -> bool:
        """Drop a file's index row. Returns False if there was none."""
        project = self._resolve_project(project_id)
        root = Path(project.root_path).resolve()
        try:
            _, key = self._resolve_path(root, relative_path)
        except PerFileIndexError:
            return False

        removed = dao.delete_indexed_file(project.id, key)
        if removed:
            logger.log_index_operation("file_removed", project.id, {"path": key})
        return removed

    def get_index_status(self, project_id: str) -> IndexStatus:
        project = self._resolve_project(project_id)
        rows = dao.get_indexed_files(project.id)
        usable = [
            row for row in rows
            if row.vector is not None and row.model_version == self.provider.model_version
        ]
        last_indexed = max((row.indexed_at for row in rows), default=None)

        return IndexStatus(
            indexed=len(usable) > 0,
            file_count=len(usable),
            total_indexed=len(rows),
            stale_count=len(rows) - len(usable),
            last_indexed=last_indexed,
        )

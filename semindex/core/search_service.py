"""
Retrieval engine for project files.
Embeds the query once and ranks every indexed file of the project by cosine
similarity. Linear scan, no approximate index.
"""

from dataclasses import dataclass, asdict
from typing import Callable, List, Optional

from . import dao
from .config import RESULT_PREVIEW_CHARS, SEARCH_DEFAULT_LIMIT, SEARCH_DEFAULT_MIN_RELEVANCE
from .db import init_db
from .errors import NoIndexedContent, ProjectNotFound
from .schema import IndexedFile, Project
from ..api.schemas import SearchFilesRequest
from ..util.logging import logger
from ..vector.codec import find_similar
from ..vector.embeddings import IEmbeddingProvider
from ..vector.types import SearchCandidate


@dataclass
class FileMatch:
    path: str
    relevance: float
    preview: str

    def to_dict(self) -> dict:
        return asdict(self)


def _matches_file_types(path: str, file_types: Optional[List[str]]) -> bool:
    if not file_types:
        return True
    lowered = path.lower()
    return any(lowered.endswith(ext.lower()) for ext in file_types)


class SearchService:
    """Semantic search over one project's file index."""

    def __init__(self, embedding_provider: IEmbeddingProvider,
                 project_lookup: Optional[Callable[[str], Optional[Project]]] = None):
        self.provider = embedding_provider
        self.project_lookup = project_lookup or dao.get_project
        init_db()

    def _eligible_rows(self, project_id: str, file_types: Optional[List[str]]) -> List[IndexedFile]:
        rows = [row for row in dao.get_indexed_files(project_id) if row.vector is not None]

        current = self.provider.model_version
        stale = [row for row in rows if row.model_version != current]
        if stale:
            # Vectors from another model live in a different space
            logger.warning(
                f"Ignoring {len(stale)} index rows of project '{project_id}' embedded by another model; "
                f"reindex to include them"
            )

        return [
            row for row in rows
            if row.model_version == current and _matches_file_types(row.path, file_types)
        ]

    def search_files(self, project_id: str, query: str, file_types: Optional[List[str]] = None,
                     limit: int = SEARCH_DEFAULT_LIMIT,
                     min_relevance: float = SEARCH_DEFAULT_MIN_RELEVANCE) -> List[FileMatch]:
        """Rank a project's indexed files against a natural-language query.

        Raises:
            ProjectNotFound: the project is not registered.
            NoIndexedContent: no file of the project (after the file type
                filter) has a usable vector. A query that simply matches
                nothing returns an empty list instead.
        """
        request = SearchFilesRequest(
            project_id=project_id,
            query=query,
            file_types=file_types,
            limit=limit,
            min_relevance=min_relevance,
        )

        project = self.project_lookup(request.project_id)
        if project is None:
            raise ProjectNotFound(request.project_id)

        rows = self._eligible_rows(project.id, request.file_types)
        if not rows:
            raise NoIndexedContent(project.id, "No indexed files found. Run index_project first.")

        query_vector = self.provider.embed_text(request.query)
        ranked = find_similar(
            query_vector,
            [SearchCandidate(id=row.path, vector=row.vector) for row in rows],
            limit=request.limit,
            min_similarity=request.min_relevance,
        )

        by_path = {row.path: row for row in rows}
        results = [
            FileMatch(
                path=match.id,
                relevance=match.score,
                preview=by_path[match.id].preview[:RESULT_PREVIEW_CHARS],
            )
            for match in ranked
        ]

        logger.log_search(f"project:{project.id}", request.query, len(rows), len(results))
        return results

"""
Cross-project pattern store.
Problem/solution records embedded at creation and suggested to other
projects by similarity of their problem statements.
"""

from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Optional

from . import dao
from .config import PATTERN_DEFAULT_LIMIT, PATTERN_DEFAULT_MIN_CONFIDENCE, RESULT_PREVIEW_CHARS
from .db import init_db
from .errors import NoIndexedContent, PatternNotFound, ProjectNotFound
from .schema import Pattern, Project
from ..api.schemas import ListPatternsRequest, RecordPatternRequest, SuggestPatternsRequest
from ..util.logging import logger
from ..vector.codec import find_similar
from ..vector.embeddings import IEmbeddingProvider
from ..vector.types import SearchCandidate


@dataclass
class PatternSuggestion:
    pattern_id: int
    name: str
    source_project: str
    confidence: float
    problem_summary: str
    solution_summary: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PatternListing:
    total: int
    patterns: List[Pattern]


def summarize(text: Optional[str], max_chars: int = RESULT_PREVIEW_CHARS) -> str:
    if not text:
        return ""
    return text[:max_chars] + "..." if len(text) > max_chars else text


class PatternService:
    """Records patterns and suggests them across projects."""

    def __init__(self, embedding_provider: IEmbeddingProvider,
                 project_lookup: Optional[Callable[[str], Optional[Project]]] = None):
        self.provider = embedding_provider
        self.project_lookup = project_lookup or dao.get_project
        init_db()

    def record_pattern(self, project_id: str, name: str, problem: str, solution: str,
                       implementation: Optional[str] = None,
                       metrics: Optional[Dict[str, Any]] = None) -> Pattern:
        """Embed the problem statement and store the pattern.

        Nothing is written if embedding fails, so every stored pattern has a
        problem vector.
        """
        request = RecordPatternRequest(
            project_id=project_id,
            name=name,
            problem=problem,
            solution=solution,
            implementation=implementation,
            metrics=metrics,
        )

        if self.project_lookup(request.project_id) is None:
            raise ProjectNotFound(request.project_id)

        problem_vector = self.provider.embed_text(request.problem)

        pattern = dao.create_pattern(
            project_id=request.project_id,
            name=request.name,
            problem=request.problem,
            solution=request.solution,
            implementation=request.implementation or None,
            metrics=request.metrics.model_dump(exclude_none=True) if request.metrics else None,
            problem_vector=problem_vector,
            model_version=self.provider.model_version,
        )

        logger.log_pattern_operation("recorded", {
            "pattern_id": pattern.id,
            "project_id": pattern.project_id,
            "name": pattern.name,
            "problem": pattern.problem,
        })
        return pattern

    def suggest_patterns(self, problem_text: str, exclude_project_id: Optional[str] = None,
                         limit: int = PATTERN_DEFAULT_LIMIT,
                         min_confidence: float = PATTERN_DEFAULT_MIN_CONFIDENCE,
                         include_current_project: bool = False) -> List[PatternSuggestion]:
        """Find recorded patterns whose problem resembles ``problem_text``.

        Patterns from ``exclude_project_id`` are left out unless
        ``include_current_project`` is set.

        Raises:
            NoIndexedContent: no pattern is eligible for ranking.
        """
        request = SuggestPatternsRequest(
            problem=problem_text,
            exclude_project_id=exclude_project_id,
            limit=limit,
            min_confidence=min_confidence,
            include_current_project=include_current_project,
        )

        current = self.provider.model_version
        patterns = dao.get_patterns()
        candidates = [p for p in patterns if p.model_version == current]
        if len(candidates) < len(patterns):
            logger.warning(
                f"Ignoring {len(patterns) - len(candidates)} patterns embedded by another model"
            )

        if request.exclude_project_id and not request.include_current_project:
            candidates = [p for p in candidates if p.project_id != request.exclude_project_id]

        if not candidates:
            raise NoIndexedContent("patterns", "No patterns found in knowledge base")

        problem_vector = self.provider.embed_text(request.problem)
        ranked = find_similar(
            problem_vector,
            [SearchCandidate(id=p.id, vector=p.problem_vector) for p in candidates],
            limit=request.limit,
            min_similarity=request.min_confidence,
        )

        by_id = {p.id: p for p in candidates}
        suggestions = []
        for match in ranked:
            pattern = by_id[match.id]
            suggestions.append(PatternSuggestion(
                pattern_id=pattern.id,
                name=pattern.name,
                source_project=pattern.project_id,
                confidence=match.score,
                problem_summary=summarize(pattern.problem),
                solution_summary=summarize(pattern.solution),
            ))

        logger.log_search("patterns", request.problem, len(candidates), len(suggestions))
        return suggestions

    def list_patterns(self, project_id: Optional[str] = None, limit: int = 20) -> PatternListing:
        """Newest patterns first, optionally for one project."""
        request = ListPatternsRequest(project_id=project_id, limit=limit)
        patterns = dao.get_patterns(request.project_id)
        return PatternListing(total=len(patterns), patterns=patterns[:request.limit])

    def get_pattern(self, pattern_id: int) -> Pattern:
        pattern = dao.get_pattern(pattern_id)
        if pattern is None:
            raise PatternNotFound(pattern_id)
        return pattern

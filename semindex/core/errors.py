"""
Error taxonomy for indexing and retrieval.
"""

from typing import Optional


class SemIndexError(Exception):
    """Base class for all semindex errors."""


class ModelUnavailable(SemIndexError):
    """The embedding backend could not be initialized.

    Retryable once an operator has fixed the environment (weights, cache
    directory, missing packages). Raised by every embed call until then.
    """

    def __init__(self, model_name: str, reason: str = ""):
        self.model_name = model_name
        self.reason = reason
        message = f"Embedding model '{model_name}' is unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ProjectNotFound(SemIndexError):
    """Caller referenced a project the registry does not know."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project '{project_id}' not found")


class NoIndexedContent(SemIndexError):
    """There is nothing to rank against.

    Distinct from a query that ran and matched nothing, which is an empty
    result list.
    """

    def __init__(self, scope: str, message: Optional[str] = None):
        self.scope = scope
        super().__init__(message or f"No indexed content for '{scope}'")


class PerFileIndexError(SemIndexError):
    """A single file could not be read, embedded or written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class DimensionMismatch(SemIndexError):
    """Two vectors of different length were compared."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Embedding dimensions don't match: {left} vs {right}")


class PatternNotFound(SemIndexError):
    def __init__(self, pattern_id: int):
        self.pattern_id = pattern_id
        super().__init__(f"Pattern {pattern_id} not found")

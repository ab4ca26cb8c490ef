"""
Request models for the caller-facing operations.
Validation happens before any model or database work.
"""

from pydantic import BaseModel, ConfigDict, field_validator, Field
from typing import Optional, List, Dict, Any


def _not_blank(v: str, name: str) -> str:
    if not v or not v.strip():
        raise ValueError(f'{name} cannot be empty')
    return v


class SearchFilesRequest(BaseModel):
    project_id: str
    query: str
    file_types: Optional[List[str]] = None
    limit: int = Field(default=10, ge=1, le=1000)
    min_relevance: float = Field(default=0.3, ge=-1.0, le=1.0)

    @field_validator('project_id')
    @classmethod
    def project_must_not_be_empty(cls, v):
        return _not_blank(v, 'project_id')

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        return _not_blank(v, 'query')

    @field_validator('file_types')
    @classmethod
    def normalize_file_types(cls, v):
        if not v:
            return None
        # Accept "ts" as well as ".ts"
        return [ext if ext.startswith('.') else f'.{ext}' for ext in v if ext.strip()]


class IndexFilesRequest(BaseModel):
    project_id: str
    paths: Optional[List[str]] = None
    force_reindex: bool = False

    @field_validator('project_id')
    @classmethod
    def project_must_not_be_empty(cls, v):
        return _not_blank(v, 'project_id')


class IndexFileRequest(BaseModel):
    project_id: str
    path: str
    force: bool = False

    @field_validator('project_id')
    @classmethod
    def project_must_not_be_empty(cls, v):
        return _not_blank(v, 'project_id')

    @field_validator('path')
    @classmethod
    def path_must_not_be_empty(cls, v):
        return _not_blank(v, 'path')


class SuggestPatternsRequest(BaseModel):
    problem: str
    exclude_project_id: Optional[str] = None
    limit: int = Field(default=5, ge=1, le=100)
    min_confidence: float = Field(default=0.5, ge=-1.0, le=1.0)
    include_current_project: bool = False

    @field_validator('problem')
    @classmethod
    def problem_must_not_be_empty(cls, v):
        return _not_blank(v, 'problem')


class PatternMetrics(BaseModel):
    model_config = ConfigDict(extra="allow")

    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    improvement: Optional[str] = None


class RecordPatternRequest(BaseModel):
    project_id: str
    name: str
    problem: str
    solution: str
    implementation: Optional[str] = None
    metrics: Optional[PatternMetrics] = None

    @field_validator('project_id')
    @classmethod
    def project_must_not_be_empty(cls, v):
        return _not_blank(v, 'project_id')

    @field_validator('name')
    @classmethod
    def name_must_not_be_empty(cls, v):
        return _not_blank(v, 'name').strip()

    @field_validator('problem')
    @classmethod
    def problem_must_not_be_empty(cls, v):
        return _not_blank(v, 'problem')

    @field_validator('solution')
    @classmethod
    def solution_must_not_be_empty(cls, v):
        return _not_blank(v, 'solution')


class ListPatternsRequest(BaseModel):
    project_id: Optional[str] = None
    limit: int = Field(default=20, ge=1, le=1000)

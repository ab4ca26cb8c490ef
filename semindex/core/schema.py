"""
Row shapes for the project registry, file index and pattern store.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import numpy as np


@dataclass
class Project:
    id: str
    name: str
    root_path: str
    created_at: datetime


@dataclass
class IndexedFile:
    project_id: str
    path: str
    file_type: str
    size_bytes: int
    content_hash: str
    preview: str
    vector: Optional[np.ndarray]  # None until the first successful embedding
    model_version: Optional[str]
    indexed_at: datetime


@dataclass
class Pattern:
    id: int
    project_id: str
    name: str
    problem: str
    solution: str
    implementation: Optional[str]
    metrics: Optional[Dict[str, Any]]
    problem_vector: np.ndarray
    model_version: str
    created_at: datetime

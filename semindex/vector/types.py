"""
Vector ranking types. Ephemeral, never persisted.
"""

from typing import Dict, Union
import numpy as np
from dataclasses import dataclass, field


@dataclass
class SearchCandidate:
    """A row projected down to what ranking needs."""

    id: Union[str, int]
    """Identifier of the row (file path or pattern id)"""

    vector: np.ndarray
    """The stored embedding of the row"""


@dataclass
class QueryResult:
    """Represents a ranked match."""

    id: Union[str, int]
    """Identifier for the matching candidate"""

    score: float
    """Cosine similarity of the match, in [-1, 1]"""

    metadata: Dict[str, object] = field(default_factory=dict)
    """Metadata associated with the matched candidate"""

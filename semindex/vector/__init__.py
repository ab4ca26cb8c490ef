"""
Vector layer: embedding providers, codec and ranking types.
"""

from .types import SearchCandidate, QueryResult
from .codec import serialize_vector, deserialize_vector, cosine_similarity, find_similar
from .embeddings import (
    IEmbeddingProvider,
    DeterministicHashEmbedding,
    SentenceTransformerEmbedding,
    truncate_for_embedding,
)

__all__ = [
    'SearchCandidate',
    'QueryResult',
    'serialize_vector',
    'deserialize_vector',
    'cosine_similarity',
    'find_similar',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'truncate_for_embedding',
]

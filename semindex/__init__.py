"""
semindex - local semantic indexing and retrieval.
Advisory vector layer over SQLite canonical rows.
"""

__version__ = "1.0.0"

"""
Runtime configuration for the semantic index.
Everything comes from environment variables; nothing is read from disk.
"""

import os
from pathlib import Path

# Database path configuration (read at call time, see get_db_path)
DEFAULT_DB_PATH = "./data/semindex.db"

# Embedding configuration
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "sentence_transformers")  # sentence_transformers|hash
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-MiniLM-L6-v2")
EMBED_MODEL_CACHE_DIR = os.getenv("EMBED_MODEL_CACHE_DIR")  # None -> sentence-transformers default
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))
MAX_EMBED_CHARS = int(os.getenv("MAX_EMBED_CHARS", "8000"))  # model has a 512 token window
EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "32"))

# Indexing configuration
INDEX_BATCH_SIZE = int(os.getenv("INDEX_BATCH_SIZE", "16"))
PREVIEW_CHARS = int(os.getenv("PREVIEW_CHARS", "1000"))
MAX_REPORTED_ERRORS = int(os.getenv("MAX_REPORTED_ERRORS", "10"))

# Retrieval defaults
SEARCH_DEFAULT_LIMIT = 10
SEARCH_DEFAULT_MIN_RELEVANCE = 0.3
PATTERN_DEFAULT_LIMIT = 5
PATTERN_DEFAULT_MIN_CONFIDENCE = 0.5
RESULT_PREVIEW_CHARS = 200

# Discovery
TEXT_EXTENSIONS = frozenset([
    '.ts', '.tsx', '.js', '.jsx', '.json', '.md', '.txt',
    '.html', '.css', '.scss', '.less', '.yaml', '.yml',
    '.xml', '.sql', '.sh', '.bash', '.ps1', '.py', '.rb',
    '.java', '.kt', '.go', '.rs', '.c', '.cpp', '.h',
    '.cs', '.fs', '.vue', '.svelte', '.astro', '.toml',
])

SKIP_DIRS = frozenset([
    'node_modules', '.git', 'dist', 'build', 'out',
    '.next', '.nuxt', 'coverage', '.cache', '__pycache__',
    'vendor', 'target', 'bin', 'obj', '.idea', '.vscode',
])


def get_db_path() -> str:
    """Database location. Read on every call so tests can point it elsewhere."""
    return os.getenv("SEMINDEX_DB_PATH", DEFAULT_DB_PATH)


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_embed_provider_name() -> str:
    return os.getenv("EMBED_PROVIDER", EMBED_PROVIDER).lower()


def get_embedding_provider():
    """Build the configured embedding provider.

    This is a factory: the application calls it once at start-up and hands
    the result to the indexer, search and pattern services.
    """
    provider_name = get_embed_provider_name()

    if provider_name == "hash":
        from ..vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(dimension=EMBED_DIM)
    elif provider_name in ("sentence_transformers", "st", "local"):
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(
            model_name=os.getenv("EMBED_MODEL_NAME", EMBED_MODEL_NAME),
            cache_dir=os.getenv("EMBED_MODEL_CACHE_DIR", EMBED_MODEL_CACHE_DIR),
        )
    else:
        raise ValueError(f"Unknown EMBED_PROVIDER: {provider_name}")


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if get_embed_provider_name() not in ("sentence_transformers", "st", "local", "hash"):
        issues.append(f"Invalid EMBED_PROVIDER: {get_embed_provider_name()}")

    if EMBED_DIM < 1:
        issues.append("EMBED_DIM must be >= 1")

    if MAX_EMBED_CHARS < 1:
        issues.append("MAX_EMBED_CHARS must be >= 1")

    if INDEX_BATCH_SIZE < 1:
        issues.append("INDEX_BATCH_SIZE must be >= 1")

    if EMBED_BATCH_SIZE < 1:
        issues.append("EMBED_BATCH_SIZE must be >= 1")

    if PREVIEW_CHARS < RESULT_PREVIEW_CHARS:
        issues.append(f"PREVIEW_CHARS must be >= {RESULT_PREVIEW_CHARS}")

    return issues

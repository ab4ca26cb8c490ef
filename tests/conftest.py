"""
Shared fixtures: a throwaway database per test and offline embedding providers.
"""

import pytest

from semindex.core import dao
from semindex.core.db import init_db
from semindex.vector.embeddings import DeterministicHashEmbedding


class CountingEmbedding(DeterministicHashEmbedding):
    """Hash embedding that counts how many texts it was asked to embed."""

    def __init__(self, dimension: int = 384, fail_on: str = None):
        super().__init__(dimension=dimension)
        self.embedded_texts = []
        self.fail_on = fail_on

    @property
    def calls(self):
        return len(self.embedded_texts)

    def _check(self, text):
        if self.fail_on and self.fail_on in text:
            raise RuntimeError(f"cannot embed text containing '{self.fail_on}'")

    def embed_text(self, text):
        self._check(text)
        self.embedded_texts.append(text)
        return super().embed_text(text)

    def embed_texts(self, texts):
        for text in texts:
            self._check(text)
        return [self.embed_text(text) for text in texts]


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point the store at a fresh SQLite file for every test."""
    db_path = tmp_path / "db" / "semindex.db"
    monkeypatch.setenv("SEMINDEX_DB_PATH", str(db_path))
    init_db()
    yield db_path


@pytest.fixture
def provider():
    return CountingEmbedding()


@pytest.fixture
def make_project(tmp_path):
    """Create a project directory with the given files and register it."""

    def _make(project_id, files):
        root = tmp_path / "projects" / project_id
        root.mkdir(parents=True, exist_ok=True)
        for relative_path, content in files.items():
            target = root / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding="utf-8")
        dao.register_project(project_id, str(root))
        return root

    return _make

"""
Indexing coordinator: discovery, hash gating, partial failure, incremental
entry points and status.
"""

import os
import threading
from unittest.mock import MagicMock

import numpy as np
import pytest
from pydantic import ValidationError

from semindex.core import dao
from semindex.core.db import get_db
from semindex.core.errors import ModelUnavailable, ProjectNotFound
from semindex.core.indexer import FileIndexer, content_hash, find_text_files, is_excluded
from semindex.vector.embeddings import DeterministicHashEmbedding

from conftest import CountingEmbedding


DEMO_FILES = {
    "a.ts": "parses tokens",
    "b.ts": "renders a button",
}


@pytest.fixture
def demo(make_project):
    return make_project("demo", DEMO_FILES)


def test_index_project_indexes_every_text_file(demo, provider):
    report = FileIndexer(provider).index_project("demo")

    assert report.total_files == 2
    assert report.indexed == 2
    assert report.skipped == 0
    assert report.errors == []
    assert provider.calls == 2

    row = dao.get_indexed_file("demo", "a.ts")
    assert row.content_hash == content_hash(b"parses tokens")
    assert row.preview == "parses tokens"
    assert row.file_type == ".ts"
    assert row.size_bytes == len(b"parses tokens")
    assert row.model_version == provider.model_version
    assert np.linalg.norm(row.vector) == pytest.approx(1.0, abs=1e-5)


def test_unchanged_files_are_skipped_without_embedding(demo, provider):
    indexer = FileIndexer(provider)
    indexer.index_project("demo")
    before = dao.get_indexed_file("demo", "a.ts")
    provider.embedded_texts.clear()

    report = indexer.index_project("demo")

    assert report.indexed == 0
    assert report.skipped == 2
    assert provider.calls == 0
    assert dao.get_indexed_file("demo", "a.ts").indexed_at == before.indexed_at


def test_changed_file_is_embedded_exactly_once(demo, provider):
    indexer = FileIndexer(provider)
    indexer.index_project("demo")
    before = dao.get_indexed_file("demo", "a.ts")
    provider.embedded_texts.clear()

    (demo / "a.ts").write_text("parses tokens and comments", encoding="utf-8")
    report = indexer.index_project("demo")

    assert report.indexed == 1
    assert report.skipped == 1
    assert provider.embedded_texts == ["parses tokens and comments"]

    after = dao.get_indexed_file("demo", "a.ts")
    assert after.content_hash != before.content_hash
    assert after.indexed_at > before.indexed_at
    assert after.preview == "parses tokens and comments"


def test_force_reindex_embeds_unchanged_files(demo, provider):
    indexer = FileIndexer(provider)
    indexer.index_project("demo")
    provider.embedded_texts.clear()

    report = indexer.index_project("demo", force_reindex=True)

    assert report.indexed == 2
    assert report.skipped == 0
    assert provider.calls == 2


def test_corrupt_stored_vector_is_reembedded(demo, provider):
    indexer = FileIndexer(provider)
    indexer.index_project("demo")
    with get_db() as conn:
        conn.execute("UPDATE file_index SET embedding = X'000000' WHERE path = 'a.ts'")
        conn.commit()
    provider.embedded_texts.clear()

    report = indexer.index_project("demo")

    assert report.errors == []
    assert report.indexed == 1
    assert report.skipped == 1
    assert provider.embedded_texts == ["parses tokens"]
    assert len(dao.get_indexed_file("demo", "a.ts").vector) == 384


def test_rows_from_another_model_are_reembedded(demo, provider):
    FileIndexer(DeterministicHashEmbedding(dimension=64)).index_project("demo")

    report = FileIndexer(provider).index_project("demo")

    assert report.indexed == 2
    assert dao.get_indexed_file("demo", "a.ts").model_version == provider.model_version
    assert len(dao.get_indexed_file("demo", "a.ts").vector) == 384


def test_discovery_skips_hidden_build_and_non_text_files(make_project, provider):
    make_project("web", {
        "src/app.ts": "app",
        "src/.secret.ts": "hidden file",
        ".github/workflow.yml": "hidden dir",
        "node_modules/lib/index.js": "dependency",
        "dist/bundle.js": "build output",
        "__pycache__/mod.py": "cache",
        "logo.png": b"\x89PNG",
        "README.md": "readme",
    })

    FileIndexer(provider).index_project("web")

    assert [row.path for row in dao.get_indexed_files("web")] == ["README.md", "src/app.ts"]


def test_find_text_files_is_sorted(tmp_path):
    for name in ["c.py", "a.py", "b/z.md", "b/y.md"]:
        target = tmp_path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("x")

    found = [p.relative_to(tmp_path).as_posix() for p in find_text_files(tmp_path)]
    assert found == ["a.py", "c.py", "b/y.md", "b/z.md"]


def test_is_excluded():
    assert is_excluded(".env.ts")
    assert is_excluded("src/.hidden/a.ts")
    assert is_excluded("node_modules/x/a.js")
    assert not is_excluded("src/build.ts")
    assert not is_excluded("src/app.ts")


def test_index_subset_of_paths(make_project, provider):
    make_project("mono", {
        "pkg/a/one.ts": "one",
        "pkg/b/two.ts": "two",
        "top.md": "top",
    })

    report = FileIndexer(provider).index_project("mono", paths=["pkg/a", "top.md", "pkg/a/one.ts"])

    assert report.total_files == 2
    assert report.indexed == 2
    assert [row.path for row in dao.get_indexed_files("mono")] == ["pkg/a/one.ts", "top.md"]


def test_excluded_directories_in_paths_are_rejected(make_project, provider):
    make_project("web", {
        "node_modules/lib/index.js": "dependency",
        ".git/hooks/pre.sh": "hook",
        "src/app.ts": "app",
    })

    report = FileIndexer(provider).index_project("web", paths=["node_modules", ".git", "node_modules/lib", "src"])

    assert [row.path for row in dao.get_indexed_files("web")] == ["src/app.ts"]
    assert report.indexed == 1
    assert report.error_count == 3
    assert all("excluded" in error for error in report.errors)


def test_symlinks_leaving_the_root_are_skipped(make_project, provider, tmp_path):
    root = make_project("linked", {"a.ts": "inside"})
    outside = tmp_path / "outside.ts"
    outside.write_text("secret")
    os.symlink(outside, root / "leak.ts")
    os.symlink(root / "a.ts", root / "alias.ts")

    report = FileIndexer(provider).index_project("linked")

    assert report.total_files == 2
    assert [row.path for row in dao.get_indexed_files("linked")] == ["a.ts", "alias.ts"]


def test_missing_and_escaping_paths_are_reported(demo, provider):
    report = FileIndexer(provider).index_project("demo", paths=["nope", "../outside", "a.ts"])

    assert report.indexed == 1
    assert report.error_count == 2
    assert any("path not found" in error for error in report.errors)
    assert any("outside the project root" in error for error in report.errors)


def test_one_bad_file_does_not_abort_the_batch(make_project):
    make_project("mixed", {
        "good1.ts": "fine content",
        "bad.ts": "boom goes the embedder",
        "binary.txt": b"\xff\xfe\x00invalid",
        "good2.ts": "also fine",
    })
    provider = CountingEmbedding(fail_on="boom")

    report = FileIndexer(provider, batch_size=8).index_project("mixed")

    assert report.total_files == 4
    assert report.indexed == 2
    assert report.error_count == 2
    assert any(error.startswith("bad.ts:") for error in report.errors)
    assert any(error.startswith("binary.txt:") and "UTF-8" in error for error in report.errors)
    assert sorted(row.path for row in dao.get_indexed_files("mixed")) == ["good1.ts", "good2.ts"]


def test_reported_errors_are_bounded(make_project):
    make_project("noisy", {f"f{i:02d}.ts": f"boom {i}" for i in range(15)})

    report = FileIndexer(CountingEmbedding(fail_on="boom"), max_reported_errors=10).index_project("noisy")

    assert report.error_count == 15
    assert len(report.errors) == 10
    assert "max_errors" not in report.to_dict()


def test_files_are_embedded_in_batches(make_project, provider):
    make_project("batched", {f"f{i}.ts": f"file {i}" for i in range(5)})
    provider.embed_texts = MagicMock(side_effect=provider.embed_texts)

    report = FileIndexer(provider, batch_size=2).index_project("batched")

    assert report.indexed == 5
    assert [len(call.args[0]) for call in provider.embed_texts.call_args_list] == [2, 2, 1]


def test_model_unavailable_aborts_index_project(demo):
    provider = MagicMock()
    provider.preload.side_effect = ModelUnavailable("all-MiniLM-L6-v2", "no weights")

    with pytest.raises(ModelUnavailable):
        FileIndexer(provider).index_project("demo")
    assert dao.get_indexed_files("demo") == []


def test_unknown_project(provider):
    indexer = FileIndexer(provider)
    with pytest.raises(ProjectNotFound):
        indexer.index_project("ghost")
    with pytest.raises(ProjectNotFound):
        indexer.index_file("ghost", "a.ts")
    with pytest.raises(ProjectNotFound):
        indexer.get_index_status("ghost")


def test_invalid_request_is_rejected(provider):
    with pytest.raises(ValidationError):
        FileIndexer(provider).index_project("   ")


def test_cancel_event_stops_before_next_file(make_project, provider):
    make_project("big", {f"f{i}.ts": f"file {i}" for i in range(5)})
    cancel = threading.Event()
    cancel.set()

    report = FileIndexer(provider).index_project("big", cancel_event=cancel)

    assert report.cancelled is True
    assert report.indexed == 0
    assert dao.get_indexed_files("big") == []


def test_index_file_outcomes(demo, provider):
    (demo / "image.png").write_bytes(b"\x89PNG")
    indexer = FileIndexer(provider)

    outcome = indexer.index_file("demo", "a.ts")
    assert (outcome.status, outcome.path) == ("indexed", "a.ts")

    outcome = indexer.index_file("demo", "a.ts")
    assert (outcome.status, outcome.reason) == ("skipped", "File unchanged")

    outcome = indexer.index_file("demo", "a.ts", force=True)
    assert outcome.status == "indexed"

    outcome = indexer.index_file("demo", "image.png")
    assert (outcome.status, outcome.reason) == ("skipped", "Not a text file")

    outcome = indexer.index_file("demo", "missing.ts")
    assert outcome.status == "error"
    assert "File not found" in outcome.reason

    outcome = indexer.index_file("demo", "../escape.ts")
    assert outcome.status == "error"


def test_index_file_reports_embedding_failure(make_project):
    make_project("fragile", {"a.ts": "boom"})

    outcome = FileIndexer(CountingEmbedding(fail_on="boom")).index_file("fragile", "a.ts")

    assert outcome.status == "error"
    assert "boom" in outcome.reason
    assert dao.get_indexed_file("fragile", "a.ts") is None


def test_index_file_after_write_never_raises(demo, provider):
    indexer = FileIndexer(provider)

    assert indexer.index_file_after_write("demo", "a.ts").status == "indexed"
    assert indexer.index_file_after_write("ghost", "a.ts") is None
    assert indexer.index_file_after_write("demo", "") is None

    broken = MagicMock()
    broken.model_version = "st:all-MiniLM-L6-v2"
    broken.embed_text.side_effect = ModelUnavailable("all-MiniLM-L6-v2")
    assert FileIndexer(broken).index_file_after_write("demo", "b.ts") is None


def test_remove_file(demo, provider):
    indexer = FileIndexer(provider)
    indexer.index_project("demo")

    assert indexer.remove_file("demo", "a.ts") is True
    assert indexer.remove_file("demo", "a.ts") is False
    assert [row.path for row in dao.get_indexed_files("demo")] == ["b.ts"]


def test_index_status(demo, provider):
    indexer = FileIndexer(provider)

    status = indexer.get_index_status("demo")
    assert status.indexed is False
    assert status.file_count == 0
    assert status.last_indexed is None

    indexer.index_project("demo")
    status = indexer.get_index_status("demo")
    assert status.indexed is True
    assert status.file_count == 2
    assert status.total_indexed == 2
    assert status.stale_count == 0
    assert status.last_indexed == max(row.indexed_at for row in dao.get_indexed_files("demo"))

    other_model = FileIndexer(DeterministicHashEmbedding(dimension=64))
    status = other_model.get_index_status("demo")
    assert status.file_count == 0
    assert status.stale_count == 2

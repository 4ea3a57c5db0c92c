"""
Tests for the localvec command line interface.
The tokenizer and embeddings model are replaced with the shared test doubles.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import CharTokenizer, FakeEmbeddings
from localvec.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def fake_models():
    """Avoid downloading a tokenizer or embeddings model."""
    embeddings = FakeEmbeddings()
    with patch("localvec.tokenizers.get_default_tokenizer", return_value=CharTokenizer()), \
         patch("localvec.embeddings.SentenceTransformersEmbeddings", return_value=embeddings), \
         patch("localvec.cli.configure_logging"):
        yield embeddings


@pytest.fixture
def index_dir(tmp_path: Path) -> Path:
    path = tmp_path / "index"
    result = runner.invoke(app, ["create", str(path)])
    assert result.exit_code == 0, result.output
    return path


@pytest.fixture
def notes(tmp_path: Path) -> Path:
    path = tmp_path / "notes.txt"
    path.write_text("apples and apricots\n\nbananas", encoding="utf-8")
    return path


class TestIndexCommands:
    def test_create(self, index_dir: Path):
        assert (index_dir / "index.json").is_file()
        assert (index_dir / "catalog.json").is_file()

    def test_create_with_indexed_keys(self, tmp_path: Path):
        path = tmp_path / "keyed"
        result = runner.invoke(app, ["create", str(path), "--indexed-key", "category", "--indexed-key", "lang"])
        assert result.exit_code == 0
        data = json.loads((path / "index.json").read_text())
        assert data["metadata_config"] == {"indexed": ["category", "lang"]}

    def test_create_existing_fails(self, index_dir: Path):
        result = runner.invoke(app, ["create", str(index_dir)])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_create_delete_if_exists(self, index_dir: Path):
        result = runner.invoke(app, ["create", str(index_dir), "--delete-if-exists"])
        assert result.exit_code == 0

    def test_delete(self, index_dir: Path):
        result = runner.invoke(app, ["delete", str(index_dir)])
        assert result.exit_code == 0
        assert not index_dir.exists()

    def test_stats_missing_index(self, tmp_path: Path):
        result = runner.invoke(app, ["stats", str(tmp_path / "missing")])
        assert result.exit_code == 1
        assert "does not exist" in result.output


class TestDocumentCommands:
    def test_add_and_stats(self, index_dir: Path, notes: Path):
        result = runner.invoke(app, ["add", str(index_dir), "--file", str(notes)])
        assert result.exit_code == 0, result.output
        assert f"Added {notes}" in result.output

        result = runner.invoke(app, ["stats", str(index_dir)])
        stats = json.loads(result.output)
        assert stats["documents"] == 1
        assert stats["chunks"] >= 1

    def test_add_from_list(self, index_dir: Path, notes: Path, tmp_path: Path):
        other = tmp_path / "other.md"
        other.write_text("# Title\n\nBody", encoding="utf-8")
        listing = tmp_path / "files.txt"
        listing.write_text(f"{notes}\n\n{other}\n", encoding="utf-8")

        result = runner.invoke(app, ["add", str(index_dir), "--list", str(listing)])

        assert result.exit_code == 0, result.output
        assert json.loads(runner.invoke(app, ["stats", str(index_dir)]).output)["documents"] == 2

    def test_add_requires_input(self, index_dir: Path):
        result = runner.invoke(app, ["add", str(index_dir)])
        assert result.exit_code == 2

    def test_add_missing_file(self, index_dir: Path, tmp_path: Path):
        result = runner.invoke(app, ["add", str(index_dir), "--file", str(tmp_path / "nope.txt")])
        assert result.exit_code == 1

    def test_remove(self, index_dir: Path, notes: Path):
        runner.invoke(app, ["add", str(index_dir), "--file", str(notes)])

        result = runner.invoke(app, ["remove", str(index_dir), "--uri", str(notes)])

        assert result.exit_code == 0
        assert json.loads(runner.invoke(app, ["stats", str(index_dir)]).output)["documents"] == 0


class TestQueryCommand:
    @pytest.fixture
    def filled(self, index_dir: Path, notes: Path) -> Path:
        result = runner.invoke(app, ["add", str(index_dir), "--file", str(notes)])
        assert result.exit_code == 0, result.output
        return index_dir

    def test_sections(self, filled: Path, notes: Path):
        result = runner.invoke(app, ["query", str(filled), "apricot"])
        assert result.exit_code == 0, result.output
        docs = json.loads(result.output)
        assert docs[0]["uri"] == str(notes)
        # The whole document fits in the default token budget.
        assert docs[0]["sections"][0]["text"] == "apples and apricots\n\nbananas"

    def test_chunks(self, filled: Path):
        result = runner.invoke(app, ["query", str(filled), "apricot", "--format", "chunks"])
        chunks = json.loads(result.output)[0]["chunks"]
        assert chunks[0]["metadata"]["startPos"] == 0

    def test_filter(self, filled: Path):
        result = runner.invoke(app, ["query", str(filled), "apricot", "--filter", '{"documentId": "nope"}'])
        assert result.exit_code == 0
        assert json.loads(result.output) == []

    def test_unknown_format(self, filled: Path):
        result = runner.invoke(app, ["query", str(filled), "apricot", "--format", "xml"])
        assert result.exit_code == 2

    def test_undefined_scores_written_as_null(self, filled: Path):
        # A query without letters embeds to a zero vector, so every similarity is NaN.
        result = runner.invoke(app, ["query", str(filled), "123", "--format", "chunks"])

        assert result.exit_code == 0, result.output
        assert "NaN" not in result.output
        docs = json.loads(result.output)
        assert docs[0]["score"] is None
        assert all(c["score"] is None for c in docs[0]["chunks"])

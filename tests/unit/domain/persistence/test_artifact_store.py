"""Tests for artifact stores and export filenames."""

from pathlib import Path

import pytest

from ebookwf.domain.errors import PersistenceFailure
from ebookwf.domain.persistence import FileArtifactStore, InMemoryArtifactStore, export_filename


class TestExportFilename:
    def test_spaces_become_underscores(self):
        assert export_filename("The Focused Mind") == "The_Focused_Mind.pdf"

    def test_punctuation_dropped(self):
        assert export_filename("Focus: A Guide (2nd ed.)!") == "Focus_A_Guide_2nd_ed.pdf"

    @pytest.mark.parametrize("title", ["", None, "!!!", "   "])
    def test_fallback(self, title):
        assert export_filename(title) == "ebook.pdf"

    def test_markdown_extension(self):
        assert export_filename("The Focused Mind", "md") == "The_Focused_Mind.md"
        assert export_filename("", "md") == "ebook.md"


class TestFileArtifactStore:
    def test_put_and_get(self, sessions_root: Path):
        store = FileArtifactStore(sessions_root)
        reference = store.put("inst-1", 2, "Book.pdf", b"%PDF-data")
        assert reference.endswith("inst-1/exports/v2-Book.pdf")
        assert store.get(reference) == b"%PDF-data"

    def test_versions_do_not_overwrite(self, sessions_root: Path):
        store = FileArtifactStore(sessions_root)
        first = store.put("inst-1", 1, "Book.pdf", b"one")
        second = store.put("inst-1", 2, "Book.pdf", b"two")
        assert store.get(first) == b"one"
        assert store.get(second) == b"two"

    def test_get_missing_raises(self, sessions_root: Path):
        with pytest.raises(PersistenceFailure):
            FileArtifactStore(sessions_root).get(str(sessions_root / "missing.pdf"))


class TestInMemoryArtifactStore:
    def test_put_and_get(self):
        store = InMemoryArtifactStore()
        reference = store.put("inst-1", 1, "Book.pdf", b"data")
        assert reference == "memory://inst-1/v1/Book.pdf"
        assert store.get(reference) == b"data"

    def test_unknown_reference(self):
        with pytest.raises(PersistenceFailure, match="Unknown artifact"):
            InMemoryArtifactStore().get("memory://x")

"""Tests for Markdown rendering."""

from datetime import date

import pytest

from ebookwf.application.export import MarkdownExporter, heading_anchor

from tests.conftest import make_document

GENERATED_ON = date(2024, 3, 23)


class TestHeadingAnchor:
    @pytest.mark.parametrize(
        "heading, anchor",
        [
            ("Introduction", "introduction"),
            ("Chapter 1: Foundations", "chapter-1-foundations"),
            ("What's Next?", "whats-next"),
        ],
    )
    def test_anchor(self, heading, anchor):
        assert heading_anchor(heading) == anchor


class TestMarkdownExporter:
    def test_title_block(self):
        text = MarkdownExporter().render(make_document(), generated_on=GENERATED_ON)
        assert text.startswith(
            "# The Focused Mind\n\n*Generated with eBook Workflow Engine*  \n*March 23, 2024*\n\n"
        )

    def test_table_of_contents_links_every_section(self):
        text = MarkdownExporter().render(make_document(), generated_on=GENERATED_ON)
        assert (
            "## Table of Contents\n\n"
            "1. [Introduction](#introduction)\n"
            "2. [Chapter 1: Foundations](#chapter-1-foundations)\n"
            "3. [Chapter 2: Mindset](#chapter-2-mindset)\n"
            "4. [Conclusion](#conclusion)\n\n"
        ) in text

    def test_sections_in_reading_order(self):
        text = MarkdownExporter().render(make_document(), generated_on=GENERATED_ON)
        positions = [
            text.index(f"\n## {heading}\n")
            for heading in ("Introduction", "Chapter 1: Foundations", "Chapter 2: Mindset", "Conclusion")
        ]
        assert positions == sorted(positions)
        assert text.endswith("## Conclusion\n\nPractice focus daily.\n")

    def test_paragraphs_and_subheadings(self):
        text = MarkdownExporter().render(make_document(), generated_on=GENERATED_ON)
        assert (
            "## Chapter 1: Foundations\n\n"
            "Attention is limited.\n\n"
            "### Key ideas:\n\n"
            "Focus on one thing at a time.\n\n"
        ) in text
        assert "### Why do we drift?\n\nBecause novelty is rewarding." in text
        assert "## Introduction\n\nThis book is about attention.\n\nRead it slowly.\n\n" in text

    def test_cover_note_optional(self):
        text = MarkdownExporter(cover_note=None).render(make_document(), generated_on=GENERATED_ON)
        assert "Generated with" not in text
        assert text.startswith("# The Focused Mind\n\n*March 23, 2024*\n\n")

    def test_deterministic(self):
        exporter = MarkdownExporter()
        first = exporter.export(make_document(), generated_on=GENERATED_ON)
        second = exporter.export(make_document(), generated_on=GENERATED_ON)
        assert first == second

    def test_export_is_utf8(self):
        data = MarkdownExporter().export(make_document(title="Café Focus"), generated_on=GENERATED_ON)
        assert data.decode("utf-8").startswith("# Café Focus\n")

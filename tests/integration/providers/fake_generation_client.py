"""Fake generation client that returns configurable deterministic responses.

Used to drive the engine without making network calls.
"""

import json
import re
from typing import Any, Callable

from ebookwf.domain.errors import GenerationError
from ebookwf.domain.models.generation import GenerationParams
from ebookwf.domain.providers.generation_client import GenerationClient


# Type for response generators
ResponseGenerator = Callable[[str, str, GenerationParams], str]

_CHAPTER_HEADER = re.compile(r"This is chapter (\d+): '(.+?)'\.")
_REVISION_HEADER = re.compile(r"ORIGINAL CHAPTER (\d+): (.+)")


class FakeGenerationClient(GenerationClient):
    """Configurable fake client for testing.

    The step a prompt belongs to is detected from the prompt text. Responses
    can be overridden per step kind ("title", "toc", "chapter",
    "introduction", "conclusion", "review", "chapter_revision",
    "sections_revision") and failures injected per kind, per chapter title
    ("chapter:<title>") or per revised chapter title ("revision:<title>").

    Usage:
        client = FakeGenerationClient(chapter_titles=["Foundations", "Mindset"])
        client.errors["chapter:Mindset"] = GenerationError("timeout")
    """

    DEFAULT_TITLE = "The Focused Mind"
    DEFAULT_INTRODUCTION = "Why does focus matter?\n\nThis book explains how attention works."
    DEFAULT_CONCLUSION = "Focus is a skill.\n\nPractice it daily and it compounds."
    DEFAULT_REVIEW = "- Introduction: tighten the opening hook.\n- Chapter 1: add an example."
    DEFAULT_REVISED_SECTIONS = {
        "title": "The Focused Mind, Revised",
        "introduction": "Attention is scarce.\n\nThis book shows how to win it back.",
        "conclusion": "Guard your attention.\n\nSmall daily practice compounds.",
    }

    def __init__(
        self,
        chapter_titles: list[str] | None = None,
        *,
        responses: dict[str, str] | None = None,
        generator: ResponseGenerator | None = None,
    ):
        self.chapter_titles = chapter_titles or ["Foundations", "Mindset"]
        self.responses = dict(responses or {})
        self.generator = generator
        self.errors: dict[str, Exception] = {}

        # Track calls for assertions
        self.call_history: list[tuple[str, str, GenerationParams]] = []

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": "fake",
            "description": "Fake client returning configurable responses (testing)",
            "requires_config": False,
            "config_keys": [],
            "default_timeout": None,
        }

    def validate(self) -> None:
        pass

    def generate(self, prompt: str, model: str, params: GenerationParams) -> str:
        self.call_history.append((prompt, model, params))

        if self.generator is not None:
            return self.generator(prompt, model, params)

        kind = self.detect_kind(prompt)
        chapter = _CHAPTER_HEADER.search(prompt)
        revision = _REVISION_HEADER.search(prompt) if kind == "chapter_revision" else None
        if revision:
            key = f"revision:{revision.group(2)}"
            if key in self.errors:
                raise self.errors[key]
            if key in self.responses:
                return self.responses[key]
        elif chapter:
            key = f"chapter:{chapter.group(2)}"
            if key in self.errors:
                raise self.errors[key]
            if key in self.responses:
                return self.responses[key]

        if kind in self.errors:
            raise self.errors[kind]
        if kind in self.responses:
            return self.responses[kind]

        if kind == "title":
            return f'"{self.DEFAULT_TITLE}"'
        if kind == "toc":
            return self.toc_response(self.chapter_titles)
        if kind == "chapter":
            number, title = chapter.group(1), chapter.group(2)
            return (
                f"{title} opens with a simple idea.\n\n"
                "What does it mean in practice?\n\n"
                f"Chapter {number} closes by tying the idea back to daily habits."
            )
        if kind == "introduction":
            return self.DEFAULT_INTRODUCTION
        if kind == "conclusion":
            return self.DEFAULT_CONCLUSION
        if kind == "review":
            return self.DEFAULT_REVIEW
        if kind == "chapter_revision":
            return f"{revision.group(2)}, revised: one idea at a time, with a worked example."
        if kind == "sections_revision":
            return "```json\n" + json.dumps(self.DEFAULT_REVISED_SECTIONS) + "\n```"
        raise GenerationError(f"Unrecognized prompt: {prompt[:80]}")

    @staticmethod
    def toc_response(titles: list[str]) -> str:
        chapters = [{"title": t, "dataPoints": [f"{t} point A", f"{t} point B"]} for t in titles]
        return "Here is the outline:\n```json\n" + json.dumps({"chapters": chapters}, indent=2) + "\n```"

    @staticmethod
    def detect_kind(prompt: str) -> str | None:
        # Revision prompts embed earlier outputs, so they are matched first
        if "You are revising Chapter" in prompt:
            return "chapter_revision"
        if "Please revise these specific sections" in prompt:
            return "sections_revision"
        if "viral eBook title" in prompt:
            return "title"
        if "Develop a detailed table of contents" in prompt:
            return "toc"
        if "Compose a comprehensive chapter" in prompt:
            return "chapter"
        if "Craft an engaging introduction" in prompt:
            return "introduction"
        if "Develop a compelling conclusion" in prompt:
            return "conclusion"
        if "professional editor reviewing" in prompt:
            return "review"
        return None

    def calls_for(self, kind: str) -> list[str]:
        """Prompts sent for one step kind, in call order."""
        return [p for p, _, _ in self.call_history if self.detect_kind(p) == kind]

    def chapter_calls(self) -> list[str]:
        """Titles of the chapters generated, in call order."""
        titles = []
        for prompt in self.calls_for("chapter"):
            match = _CHAPTER_HEADER.search(prompt)
            titles.append(match.group(2))
        return titles

    def revision_calls(self) -> list[str]:
        """Titles of the chapters revised, in call order."""
        return [_REVISION_HEADER.search(p).group(2) for p in self.calls_for("chapter_revision")]

    def reset_history(self) -> None:
        self.call_history.clear()

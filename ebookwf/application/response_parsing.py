"""Parsing of raw generated text into step outputs."""

import json
import logging
import re

from pydantic import ValidationError

from ebookwf.domain.models.content import TableOfContents

logger = logging.getLogger(__name__)

# Tried in order: ```json fence, bare ``` fence
_FENCE_PATTERNS = (
    re.compile(r"```json\s*([\s\S]*?)\s*```"),
    re.compile(r"```\s*([\s\S]*?)\s*```"),
)
_BRACES_PATTERN = re.compile(r"(\{[\s\S]*\})")

_TITLE_PREFIX = re.compile(r"^(?:#+\s*)?(?:\*\*)?title\s*:\s*", re.IGNORECASE)
_TITLE_QUOTES = "\"'`*“”‘’"


def extract_json_block(text: str) -> str:
    """Return the JSON payload embedded in ``text``.

    Models wrap JSON in code fences or surround it with prose. When no
    pattern matches the stripped text is returned unchanged.
    """
    for pattern in _FENCE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    stripped = text.strip()
    if stripped.startswith(("[", "{")):
        return stripped
    match = _BRACES_PATTERN.search(stripped)
    if match:
        return match.group(1)
    return stripped


def parse_table_of_contents(text: str) -> TableOfContents:
    """Parse generated text into a TableOfContents.

    Accepts ``{"chapters": [...]}`` or a bare list of chapter objects.
    Chapters given as plain strings become outlines without data points.

    Raises:
        ValueError: If no valid table of contents can be read
    """
    payload = extract_json_block(text)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.debug(f"TOC payload is not JSON: {payload[:200]!r}")
        raise ValueError(f"table of contents is not valid JSON ({e.msg})") from e

    if isinstance(data, list):
        data = {"chapters": data}
    if not isinstance(data, dict) or not isinstance(data.get("chapters"), list):
        raise ValueError("table of contents JSON must contain a 'chapters' list")

    chapters = [{"title": c} if isinstance(c, str) else c for c in data["chapters"]]
    try:
        return TableOfContents.model_validate({"chapters": chapters})
    except ValidationError as e:
        raise ValueError(f"table of contents has invalid chapters: {e.error_count()} error(s)") from e


REVISED_SECTIONS = ("title", "introduction", "conclusion")


def parse_revised_sections(text: str) -> dict[str, str]:
    """Read the revised title, introduction and conclusion from generated JSON.

    Sections missing from the payload or left blank are omitted from the
    result.

    Raises:
        ValueError: If the text holds no JSON object
    """
    payload = extract_json_block(text)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"revised sections are not valid JSON ({e.msg})") from e
    if not isinstance(data, dict):
        raise ValueError("revised sections JSON must be an object")

    return {
        name: data[name].strip()
        for name in REVISED_SECTIONS
        if isinstance(data.get(name), str) and data[name].strip()
    }


def clean_title(text: str) -> str:
    """Reduce generated title text to a single bare title line."""
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if not lines:
        return ""
    title = _TITLE_PREFIX.sub("", lines[0])
    return title.strip(_TITLE_QUOTES + " ")


def clean_text(text: str) -> str:
    return text.strip()

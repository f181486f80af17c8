"""Document content models: table of contents, chapters, assembled document, versions."""

from datetime import datetime, timezone
from typing import Any
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ChapterOutline(BaseModel):
    """One table-of-contents entry."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    # Generated TOC JSON uses camelCase keys
    data_points: list[str] = Field(default_factory=list, alias="dataPoints")

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        return v.strip()


class TableOfContents(BaseModel):
    """Ordered chapter outlines."""

    chapters: list[ChapterOutline] = Field(default_factory=list)

    def titles(self) -> list[str]:
        return [c.title for c in self.chapters]


class Chapter(BaseModel):
    """A chapter of the document.

    ``content`` is None until the chapter is generated or edited.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    content: str | None = None
    index: int
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("index")
    @classmethod
    def _index_ge_0(cls, v: int) -> int:
        if v < 0:
            raise ValueError("index must be >= 0")
        return v

    @property
    def display_title(self) -> str:
        return f"Chapter {self.index + 1}: {self.title}"

    @property
    def has_content(self) -> bool:
        return self.content is not None and bool(self.content.strip())


class DocumentModel(BaseModel):
    """Assembled document, the input to pagination.

    Constructible only when every chapter has content and the introduction
    and conclusion are non-empty.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    introduction: str
    table_of_contents: TableOfContents
    chapters: list[Chapter]
    conclusion: str

    @model_validator(mode="after")
    def _check_complete(self) -> "DocumentModel":
        if not self.title.strip():
            raise ValueError("title must be non-empty")
        if not self.introduction.strip():
            raise ValueError("introduction must be non-empty")
        if not self.conclusion.strip():
            raise ValueError("conclusion must be non-empty")
        for chapter in self.chapters:
            if chapter.content is None:
                raise ValueError(f"chapter {chapter.index} has no content")
        indices = [c.index for c in self.chapters]
        if indices != list(range(len(self.chapters))):
            raise ValueError(f"chapter indices must be 0..N-1 in order, got {indices}")
        return self


class Version(BaseModel):
    """An exported artifact of a workflow instance."""

    version_number: int
    artifact_reference: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    page_count: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("version_number")
    @classmethod
    def _version_ge_1(cls, v: int) -> int:
        if v < 1:
            raise ValueError("version_number must be >= 1")
        return v

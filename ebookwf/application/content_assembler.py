"""Builds the DocumentModel from a workflow instance's step outputs."""

import logging

from ebookwf.domain.errors import IncompleteDocument
from ebookwf.domain.models.content import Chapter, DocumentModel
from ebookwf.domain.models.workflow_state import WorkflowInstance

logger = logging.getLogger(__name__)


class ContentAssembler:
    """Pure, deterministic assembly of a document.

    Reads the instance and never mutates it, so calling ``assemble`` twice on
    the same instance gives equal documents.
    """

    def missing_fields(self, instance: WorkflowInstance) -> list[str]:
        """List every reason the instance cannot be assembled (empty if it can)."""
        missing: list[str] = []

        if not (instance.title and instance.title.strip()):
            missing.append("title")

        toc = instance.table_of_contents
        if toc is None or not toc.chapters:
            missing.append("table of contents")

        if not (instance.introduction and instance.introduction.strip()):
            missing.append("introduction")
        if not (instance.conclusion and instance.conclusion.strip()):
            missing.append("conclusion")

        if toc is not None and toc.chapters and len(instance.chapters) != len(toc.chapters):
            missing.append(
                f"chapters ({len(instance.chapters)} of {len(toc.chapters)} present)"
            )

        for chapter in instance.chapters:
            if not chapter.has_content:
                missing.append(f"content for chapter {chapter.index + 1} ({chapter.title})")

        return missing

    def assemble(self, instance: WorkflowInstance) -> DocumentModel:
        """
        Build the document model.

        Raises:
            IncompleteDocument: Naming every missing field
        """
        missing = self.missing_fields(instance)
        if missing:
            logger.debug(f"Assembly of {instance.instance_id} blocked: {missing}")
            raise IncompleteDocument(missing)

        return DocumentModel(
            title=instance.title.strip(),
            introduction=instance.introduction,
            table_of_contents=instance.table_of_contents.model_copy(deep=True),
            chapters=[Chapter.model_validate(c.model_dump()) for c in instance.chapters],
            conclusion=instance.conclusion,
        )

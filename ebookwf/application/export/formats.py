from enum import Enum


class ExportFormat(str, Enum):
    """Supported export formats. The value doubles as the file extension."""

    PDF = "pdf"
    MARKDOWN = "md"

    @property
    def extension(self) -> str:
        return self.value

"""Domain errors raised by the link service and the export pipeline.

Route handlers translate these into HTTP responses; nothing below the HTTP
layer knows about status codes.
"""

__all__ = ["LinkServiceError", "LinkNotFoundError", "LinkConflictError", "ExportError"]


class LinkServiceError(Exception):
    """Base class for link service failures."""


class LinkNotFoundError(LinkServiceError):
    def __init__(self, key: str, field: str = "id") -> None:
        self.key = key
        self.field = field
        super().__init__("Url not found")


class LinkConflictError(LinkServiceError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Name '{name}' is already in use")


class ExportError(LinkServiceError):
    """The export pipeline failed at the database, encoding or upload stage."""

class DocumentNotFoundError(Exception):
    """Raised when a document addressed by id does not exist."""


class DuplicateInsertError(Exception):
    """Raised when a write violates a unique index."""


class DocumentValidationError(Exception):
    """Raised when a document fails its model's schema on write."""

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []

"""
Exception hierarchy for the search core.
Only failures that reach the caller are raised with these types;
non-fatal degradations are logged and swallowed where they occur.
"""


class SearchCoreError(Exception):
    """Base class for every error raised by the search core."""


class CollaboratorError(SearchCoreError):
    """An embedding generator or vector store call failed."""


class CollaboratorTimeoutError(CollaboratorError):
    """A collaborator call exceeded its deadline."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:.1f}s")


class EmbeddingFailedError(CollaboratorError):
    """The query could not be embedded. Fatal for the whole search call."""

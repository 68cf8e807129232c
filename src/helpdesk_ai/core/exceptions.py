"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Each exception carries a ``status_code`` so that a route layer can map
client errors (duplicates, missing articles, bad input) to 4xx and
everything else to 5xx without inspecting messages.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serializable error payload."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    status_code = 422


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    status_code = 502

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for LLM API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class VectorStoreException(ExternalServiceException):
    """Exception for vector store failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Vector Store", message, details)


class BackendUnavailableError(ExternalServiceException):
    """Raised only when a caller forces the managed search backend and it is down."""

    status_code = 503

    def __init__(self, message: str = "managed search backend is unavailable", details: Optional[dict] = None):
        super().__init__("Search Backend", message, details)


# ========== Embedding Errors ==========

class EmptyInputError(ValidationException):
    """Blank text handed to the vectorizer."""

    def __init__(self, message: str = "cannot embed empty text", details: Optional[dict] = None):
        super().__init__(message, details)


class DimensionMismatchError(DomainException):
    """Two vectors of unequal length were compared."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(
            f"vector dimensions differ: {left} != {right}",
            {"left": left, "right": right}
        )


class ArticleNotFoundError(ResourceNotFoundException):
    """Embedding requested for an article that does not exist."""

    def __init__(self, article_id: str, details: Optional[dict] = None):
        super().__init__("Article", article_id, details)


# ========== Persistence Conflicts ==========

class DuplicateSuggestionError(DomainException):
    """A suggestion already exists for the ticket."""

    status_code = 409

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__(
            f"Suggestion for ticket '{ticket_id}' already exists",
            {"ticket_id": ticket_id}
        )


class ConcurrencyConflictError(RepositoryException):
    """A write was based on a stale version of the record."""

    status_code = 409

    def __init__(self, resource_type: str, resource_id: str, expected_version: int):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.expected_version = expected_version
        super().__init__(
            f"{resource_type} '{resource_id}' was modified concurrently",
            {"resource_id": resource_id, "expected_version": expected_version}
        )

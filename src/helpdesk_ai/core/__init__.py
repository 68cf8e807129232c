"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system: the exception taxonomy and the outbound
ports (audit log, notifications) every bounded context writes to.
"""

from helpdesk_ai.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    LLMException,
    VectorStoreException,
    BackendUnavailableError,
    EmptyInputError,
    DimensionMismatchError,
    ArticleNotFoundError,
    DuplicateSuggestionError,
    ConcurrencyConflictError,
)
from helpdesk_ai.core.ports import IAuditLog, INotifier

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "LLMException",
    "VectorStoreException",
    "BackendUnavailableError",
    "EmptyInputError",
    "DimensionMismatchError",
    "ArticleNotFoundError",
    "DuplicateSuggestionError",
    "ConcurrencyConflictError",
    # Ports
    "IAuditLog",
    "INotifier",
]

"""
Custom exceptions for Match Herald.

This module defines the exception hierarchy used to tell expected upstream
conditions (a player or match that does not exist) apart from transient
failures and local persistence problems.
"""

from typing import Any


class MatchHeraldError(Exception):
    """Base exception for Match Herald errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code or "MATCH_HERALD_ERROR"
        self.context = context or {}


class OriginAPIError(MatchHeraldError):
    """Exception for match data provider errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, code or "ORIGIN_API_ERROR", context)
        self.status_code = status_code


class NotFoundError(OriginAPIError):
    """The requested account, standing or match does not exist upstream."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, 404, "NOT_FOUND", context)


class TransientOriginError(OriginAPIError):
    """Network, timeout or 5xx failure that may succeed on the next cycle."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, status_code, "ORIGIN_TRANSIENT_ERROR", context)


class OriginRateLimitError(TransientOriginError):
    """The provider answered 429."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, 429, context)
        self.code = "ORIGIN_RATE_LIMIT_ERROR"
        self.retry_after = retry_after


class OriginAuthenticationError(OriginAPIError):
    """The provider rejected the configured API key."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, 401, "ORIGIN_AUTHENTICATION_ERROR", context)


class PersistenceError(MatchHeraldError):
    """Exception for binding or state store failures."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "PERSISTENCE_ERROR", context)
        self.operation = operation


class ConfigurationError(MatchHeraldError):
    """Exception for configuration related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", context)

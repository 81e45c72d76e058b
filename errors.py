"""Error types shared by the API client, chat pipeline and HTTP routes."""

from typing import Any, Optional


class AnalyticsError(Exception):
    """Base error rendered as ``{"error": ..., "details": ...}`` by the API."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class UnknownEndpointError(AnalyticsError):
    status_code = 400


class EndpointValidationError(AnalyticsError):
    status_code = 400


class BitsCrunchAPIError(AnalyticsError):
    """Upstream analytics API failure; keeps the upstream status code."""

    status_code = 502


class LLMUnavailableError(AnalyticsError):
    status_code = 500


class InvalidPromptTypeError(AnalyticsError):
    status_code = 400


class ReportUnavailableError(AnalyticsError):
    status_code = 404

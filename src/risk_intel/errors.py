"""Error handling for risk-intel.

This module provides the error taxonomy shared by every service: a base
``IntelError`` carrying a category and HTTP status code, plus the concrete
errors raised for invalid input, missing configuration, unresolvable IPs and
failing upstream providers.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


class ErrorCategory(str, Enum):
    """Error categories for classification."""
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    RESOLUTION = "resolution"
    UPSTREAM = "upstream"
    NETWORK = "network"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INTERNAL_ERROR = "internal_error"


class IntelError(Exception):
    """Base exception class for risk-intel errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL_ERROR,
        http_status_code: int = 500,
        debug_info: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.error_id = str(uuid.uuid4())
        self.message = message
        self.category = category
        self.http_status_code = http_status_code
        self.debug_info = debug_info or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "error": True,
            "error_id": self.error_id,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.debug_info:
            data["details"] = self.debug_info
        return data

    def to_http_response(self) -> JSONResponse:
        """Convert to HTTP response."""
        return JSONResponse(status_code=self.http_status_code, content=self.to_dict())


class ValidationError(IntelError):
    """Malformed caller input."""

    def __init__(self, message: str = "Validation failed", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            http_status_code=400,
            **kwargs
        )


class ConfigurationError(IntelError):
    """Missing or inconsistent configuration."""

    def __init__(self, message: str = "Configuration error", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            http_status_code=500,
            **kwargs
        )


class ResolutionError(IntelError):
    """Raised when no geolocation provider could resolve an IP."""

    def __init__(self, message: str = "Unable to resolve IP insight", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.RESOLUTION,
            http_status_code=502,
            **kwargs
        )


class UpstreamError(IntelError):
    """A single upstream provider failed or returned an unusable payload."""

    def __init__(self, message: str = "Upstream provider failed", provider: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.UPSTREAM,
            http_status_code=503,
            **kwargs
        )
        self.provider = provider


class ServiceUnavailableError(IntelError):
    """A service is switched off by configuration."""

    def __init__(self, message: str = "Service unavailable", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.SERVICE_UNAVAILABLE,
            http_status_code=503,
            **kwargs
        )


class HttpRequestError(IntelError):
    """Transport failure or non-success status from an outbound request."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        **kwargs
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.NETWORK,
            http_status_code=502,
            **kwargs
        )
        self.status_code = status_code
        self.retryable = retryable

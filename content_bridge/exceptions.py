"""Error taxonomy shared by the translation engine and the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ContentBridgeError(Exception):
    """Base error with an HTTP status, a machine-readable code and optional details."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the error the way the API returns it."""
        payload: Dict[str, Any] = {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ContentBridgeError):
    """Bad or absent input to a request."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class ConfigurationError(ContentBridgeError):
    """Translation provider credentials are missing."""

    status_code = 400
    default_code = "PROVIDER_NOT_CONFIGURED"


class NotFoundError(ContentBridgeError):
    """Requested job or item does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", **kwargs: Any) -> None:
        super().__init__(f"{resource} not found", **kwargs)


class ProviderError(ContentBridgeError):
    """Any provider-side failure not covered by a narrower class."""

    status_code = 500
    default_code = "TRANSLATION_ERROR"


class AuthenticationError(ProviderError):
    """Provider rejected the configured credentials."""

    status_code = 401
    default_code = "INVALID_API_KEY"


class RateLimitError(ProviderError):
    """Provider throttled the request."""

    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"


class MalformedRequestError(ProviderError):
    """Provider rejected the shape of the request."""

    status_code = 400
    default_code = "INVALID_REQUEST"

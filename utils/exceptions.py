"""
Custom Exceptions
Error taxonomy for the visa requirements cache
"""
from typing import Any, Dict, Optional


class VisaCacheError(Exception):
    """Base error for the service"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(VisaCacheError):
    """Missing or invalid configuration"""
    pass


class KeyValidationError(VisaCacheError):
    """Missing or malformed request key field. Raised before any store access."""

    def __init__(self, message: str, field: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.field = field


class GenerationError(VisaCacheError):
    """Provider call failed or returned an unusable structure"""

    def __init__(
        self,
        message: str,
        provider: str = None,
        key: Optional[Dict[str, str]] = None,
        preview: str = None,
        **kwargs,
    ):
        super().__init__(message, kwargs)
        self.provider = provider
        self.key = key
        self.preview = preview


class StoreError(VisaCacheError):
    """Record store read/write failed"""

    def __init__(self, message: str, operation: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.operation = operation


class MirrorError(VisaCacheError):
    """Mirror store write failed. Always logged, never escalated."""
    pass


_PASSTHROUGH_ATTRS = (
    "status",
    "status_code",
    "code",
    "field",
    "provider",
    "key",
    "preview",
    "operation",
    "request_id",
)


def serialize_error(err: BaseException) -> Dict[str, Any]:
    """Render any exception as a JSON-safe dict for logs and summaries."""
    out: Dict[str, Any] = {
        "name": type(err).__name__,
        "message": getattr(err, "message", None) or str(err) or type(err).__name__,
    }

    for attr in _PASSTHROUGH_ATTRS:
        value = getattr(err, attr, None)
        if value is None or value == "":
            continue
        if isinstance(value, (str, int, float, bool)):
            out[attr] = value
        elif isinstance(value, dict):
            out[attr] = {str(k): str(v) for k, v in value.items()}
        else:
            out[attr] = str(value)

    details = getattr(err, "details", None)
    if isinstance(details, dict) and details:
        out["details"] = {str(k): str(v) for k, v in details.items()}

    # httpx / SDK errors carry the response
    response = getattr(err, "response", None)
    http_status = getattr(response, "status_code", None)
    if isinstance(http_status, int):
        out["http_status"] = http_status

    cause = err.__cause__
    if cause is not None and cause is not err:
        out["cause"] = f"{type(cause).__name__}: {cause}"

    return out

"""Core contracts and shared types."""

from .contracts import (
    COMPOSITE_ID_QUALIFIER,
    CONTENT_FIELDS,
    KEY_FIELDS,
    MANDATORY_CONTENT_FIELDS,
    ContentPayload,
    ContentRecord,
    GeneratedContent,
    LookupResult,
    Provider,
    RecordStatus,
    RepopulateFailure,
    RepopulateSummary,
    RequestKey,
)

__all__ = [
    "COMPOSITE_ID_QUALIFIER",
    "CONTENT_FIELDS",
    "KEY_FIELDS",
    "MANDATORY_CONTENT_FIELDS",
    "ContentPayload",
    "ContentRecord",
    "GeneratedContent",
    "LookupResult",
    "Provider",
    "RecordStatus",
    "RepopulateFailure",
    "RepopulateSummary",
    "RequestKey",
]

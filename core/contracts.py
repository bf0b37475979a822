"""Canonical data contracts for the visa requirements cache."""

from __future__ import annotations

import string
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from utils.exceptions import KeyValidationError


KEY_FIELDS: Tuple[str, ...] = (
    "resident_country",
    "nationality",
    "destination",
    "visa_category",
    "visa_type",
)

COMPOSITE_ID_QUALIFIER = "visa_cache"

_ID_SAFE_CHARS = frozenset(string.ascii_letters + string.digits)


def _encode_id_part(value: str) -> str:
    """
    Reversible, URL-safe rendering of one key field.

    Letters and digits pass through and a space becomes "-". Every other
    character, including "-", "_" and "~", becomes "~XX" per UTF-8 byte, so
    distinct fields never share an encoding and "_" stays a pure separator.
    """
    out = []
    for ch in value:
        if ch in _ID_SAFE_CHARS:
            out.append(ch)
        elif ch == " ":
            out.append("-")
        else:
            out.append("".join(f"~{byte:02X}" for byte in ch.encode("utf-8")))
    return "".join(out)


class RecordStatus(str, Enum):
    """Lifecycle status of a content record."""

    QUEUED = "queued"
    PROCESSING = "processing"
    REFRESHING = "refreshing"
    READY = "ready"
    ERROR = "error"


class Provider(str, Enum):
    """Selectable content generation providers."""

    OPENAI = "openai"
    GEMINI = "gemini"


class RequestKey(BaseModel):
    """Five-field composite identifying one cacheable content record."""

    model_config = ConfigDict(frozen=True)

    resident_country: str
    nationality: str
    destination: str
    visa_category: str
    visa_type: str

    @field_validator(*KEY_FIELDS, mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("value is required")
        return value

    @classmethod
    def parse(cls, data: Optional[Mapping[str, Any]]) -> "RequestKey":
        """Build a key from loose input, naming the first missing or malformed field."""
        data = data or {}
        for name in KEY_FIELDS:
            value = data.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise KeyValidationError(f"Missing field: {name}", field=name)
            if not isinstance(value, str):
                raise KeyValidationError(f"Invalid field: {name}", field=name)
        return cls(**{name: data[name] for name in KEY_FIELDS})

    @property
    def composite_id(self) -> str:
        """Mirror document id and idempotency token."""
        parts = [_encode_id_part(getattr(self, name)) for name in KEY_FIELDS]
        return "_".join(parts + [COMPOSITE_ID_QUALIFIER])

    def as_tuple(self) -> Tuple[str, ...]:
        return tuple(getattr(self, name) for name in KEY_FIELDS)

    def as_dict(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in KEY_FIELDS}

    def __str__(self) -> str:
        return "|".join(self.as_tuple())


class ContentPayload(BaseModel):
    """Structured record produced by a content generator."""

    model_config = ConfigDict(extra="ignore")

    eligibility_and_documents: Optional[StrictStr] = None
    embassy_contact: Optional[StrictStr] = None
    embassy_link: Optional[StrictStr] = None
    processing_times: Optional[StrictStr] = None
    visa_description: Optional[StrictStr] = None
    visa_details: Optional[StrictStr] = None
    how_to_apply_sticker: Optional[StrictStr] = None
    medical_requirements: Optional[StrictStr] = None
    how_to_apply_evisa: Optional[StrictStr] = None
    how_to_apply_voa: Optional[StrictStr] = None
    how_to_apply_eta: Optional[StrictStr] = None
    link_eta: Optional[StrictStr] = None
    link_evisa: Optional[StrictStr] = None
    visa_extension_info: Optional[StrictStr] = None
    link_visa_form: Optional[StrictStr] = None
    link_start_application: Optional[StrictStr] = None


CONTENT_FIELDS: Tuple[str, ...] = tuple(ContentPayload.model_fields)

# Attributes every generated record must carry; the rest may legitimately be null.
MANDATORY_CONTENT_FIELDS: Tuple[str, ...] = (
    "eligibility_and_documents",
    "embassy_contact",
    "processing_times",
    "visa_description",
    "visa_details",
    "medical_requirements",
    "visa_extension_info",
)


class GeneratedContent(BaseModel):
    """Validated generator output plus the raw provider response."""

    provider: str
    payload: ContentPayload
    raw_json: Any = None


class ContentRecord(BaseModel):
    """One row of the record store."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[Any] = None
    resident_country: str
    nationality: str
    destination: str
    visa_category: str
    visa_type: str

    eligibility_and_documents: Optional[str] = None
    embassy_contact: Optional[str] = None
    embassy_link: Optional[str] = None
    processing_times: Optional[str] = None
    visa_description: Optional[str] = None
    visa_details: Optional[str] = None
    how_to_apply_sticker: Optional[str] = None
    medical_requirements: Optional[str] = None
    how_to_apply_evisa: Optional[str] = None
    how_to_apply_voa: Optional[str] = None
    how_to_apply_eta: Optional[str] = None
    link_eta: Optional[str] = None
    link_evisa: Optional[str] = None
    visa_extension_info: Optional[str] = None
    link_visa_form: Optional[str] = None
    link_start_application: Optional[str] = None

    status: Optional[RecordStatus] = None
    source: Optional[str] = None
    raw_json: Any = None
    last_updated: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> RequestKey:
        return RequestKey(**{name: getattr(self, name) for name in KEY_FIELDS})

    def missing_fields(self) -> List[str]:
        """Mandatory generated attributes that are null or blank."""
        missing = []
        for name in MANDATORY_CONTENT_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                missing.append(name)
        return missing

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def content(self) -> Dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in CONTENT_FIELDS}


class LookupResult(BaseModel):
    """Outcome of a single coordinator lookup."""

    status: RecordStatus
    key: RequestKey
    record: Optional[ContentRecord] = None
    job_launched: bool = False

    @property
    def is_inline(self) -> bool:
        return self.status == RecordStatus.READY and self.record is not None

    def response_body(self) -> Dict[str, Any]:
        """Inline content when ready, key echo plus status otherwise."""
        if self.is_inline:
            body = self.record.model_dump(mode="json", exclude={"raw_json"})
            return {**body, "source": "cache"}
        return {"status": self.status.value, **self.key.as_dict()}


class RepopulateFailure(BaseModel):
    """One failed job in a repopulation run."""

    key: Dict[str, str]
    error: Dict[str, Any]


class RepopulateSummary(BaseModel):
    """Aggregate result of one bulk repopulation run."""

    ok: bool = True
    days: int
    provider: str
    requested: int = 0
    refreshed: int = 0
    failed: int = 0
    errors: List[RepopulateFailure] = Field(default_factory=list)
    message: Optional[str] = None

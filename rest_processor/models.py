"""Internal data models for rest-processor.

All models use Pydantic v2. Request and Response mirror the envelope the
surrounding test framework hands to and expects back from a test processor.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Framework Envelope
# =============================================================================


class Request(BaseModel):
    """One test step as supplied by the framework.

    The endpoint is expected to be fully resolved; any remaining ${...}
    placeholder makes the step fail without a network call.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    endpoint: str = Field(description="Target URL")
    test_block: str = Field(description="Raw tagged text describing the HTTP call")


class Response(BaseModel):
    """Normalized result of one test step.

    A Response with neither a status code nor a body means the step failed
    before or during dispatch. The cause is only available in the logs.
    """

    model_config = ConfigDict(extra="forbid")

    body: str | None = Field(default=None, description="Response entity as text")
    status_code: int | None = Field(default=None, description="HTTP status code")
    response_headers: str | None = Field(
        default=None, description="Rendered dump of every returned header"
    )

    @property
    def is_empty(self) -> bool:
        return self.status_code is None and self.body is None

    def to_dict(self) -> dict[str, Any]:
        """Render with the field names used by the framework's result records."""
        return {
            "response": self.body,
            "responseCode": self.status_code,
            "responseHeaders": self.response_headers,
        }


# =============================================================================
# Parsed Test Block
# =============================================================================


class MediaType(str, Enum):
    """Content types a test block may request for the outgoing call."""

    JSON = "application/json"
    XML = "application/xml"
    OCTET_STREAM = "application/octet-stream"
    TEXT_XML = "text/xml"
    MULTIPART_FORM_DATA = "multipart/form-data"

    @classmethod
    def lookup(cls, value: str) -> MediaType | None:
        """Case-insensitive match against the known values, None if unknown."""
        wanted = value.strip().lower()
        for member in cls:
            if member.value == wanted:
                return member
        return None


class Header(BaseModel):
    """One request header as authored in the test block."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    value: str

    def as_tuple(self) -> tuple[str, str]:
        return (self.name, self.value)


class Section(BaseModel):
    """Result of scanning a test block for one <tag>...</tag> pair."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    present: bool = Field(description="Whether the opening tag occurs in the block")
    content: str | None = Field(default=None, description="Trimmed text between the tags")


class ParsedTestBlock(BaseModel):
    """Typed view of a test block.

    Headers keep their authored order and may repeat a name.
    """

    model_config = ConfigDict(extra="forbid")

    operation: str = Field(description="HTTP verb token as written (trimmed)")
    body: str | None = Field(default=None, description="Request entity, verbatim")
    headers: list[Header] = Field(default_factory=list, description="Ordered request headers")
    media_type: MediaType | None = Field(default=None, description="Recognized content type")


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class ProcessorConfig(BaseModel):
    """Settings applied to every call made by the processor."""

    model_config = ConfigDict(extra="forbid")

    insecure_tls: bool = Field(
        default=True,
        description="Skip certificate and hostname verification (test environments only)",
    )
    timeout: float | None = Field(
        default=None, gt=0, description="Per-request timeout in seconds; None waits forever"
    )
    follow_redirects: bool = Field(default=True, description="Follow 3xx responses")


class RuntimeConfig(BaseModel):
    """Top-level runtime configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    properties: dict[str, str] = Field(
        default_factory=dict,
        description="Values the caller may use to expand ${name} in endpoints",
    )

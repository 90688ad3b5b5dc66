"""
Document Ingestion — Pydantic Request/Response Schemas

Covers:
  - POST /api/v1/ingest        (multipart ``file`` or JSON {content, fileName})
  - POST /api/v1/ingest/batch  (multipart ``files``)
  - The uniform error envelope shared by every route

Response field names are camelCase on the wire (``chunksCount``,
``fileName``) to match what existing clients of the ingest endpoint read.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from knowledge_factory.processing.classifier import Classification
from knowledge_factory.services.ingestion import BatchIngestionReport, IngestionResult


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   Optional[str] = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str           = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: Optional[str]     = Field(None, description="Trace ID for log correlation")


class IngestErrors:
    """Factories for the ingest route's request errors."""

    @staticmethod
    def missing_file() -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_FILE",
            message="Missing file",
            details=[
                ErrorDetail(
                    field="file",
                    message="The 'file' multipart field is required.",
                    code="MISSING_FILE",
                )
            ],
        )

    @staticmethod
    def invalid_payload(message: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="INVALID_REQUEST",
            message="Invalid ingestion payload.",
            details=[ErrorDetail(field=None, message=message, code="INVALID_REQUEST")],
        )

    @staticmethod
    def unsupported_content_type(content_type: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="UNSUPPORTED_CONTENT_TYPE",
            message=f"Content-Type '{content_type}' is not supported.",
            details=[
                ErrorDetail(
                    field=None,
                    message="Send multipart/form-data with a 'file' field, or JSON {content, fileName}.",
                    code="UNSUPPORTED_CONTENT_TYPE",
                )
            ],
        )

    @staticmethod
    def file_too_large(size_bytes: int, limit_bytes: int) -> ErrorResponse:
        return ErrorResponse(
            error_code="FILE_TOO_LARGE",
            message=f"Uploaded file exceeds the {limit_bytes // (1024 * 1024)} MB limit.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"Received {size_bytes:,} bytes; limit is {limit_bytes:,} bytes.",
                    code="FILE_TOO_LARGE",
                )
            ],
        )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class IngestTextRequest(BaseModel):
    """JSON body for ingesting already-extracted text."""
    model_config = ConfigDict(populate_by_name=True)

    content:   str = Field(..., description="Raw document text")
    file_name: str = Field(..., alias="fileName", min_length=1, max_length=255)

    @field_validator("file_name")
    @classmethod
    def _strip_file_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("fileName must not be blank")
        return v


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ClassificationOut(BaseModel):
    type:     str
    tags:     list[str]
    summary:  str
    priority: int = Field(..., ge=1, le=5)

    @classmethod
    def from_classification(cls, c: Classification) -> "ClassificationOut":
        return cls(type=c.type, tags=list(c.tags), summary=c.summary, priority=c.priority)


class IngestionResponse(BaseModel):
    """Outcome of one document's ingestion."""
    model_config = ConfigDict(populate_by_name=True)

    success:        bool
    file_name:      str                         = Field(..., alias="fileName")
    classification: Optional[ClassificationOut] = None
    chunks_count:   Optional[int]               = Field(None, alias="chunksCount")
    error:          Optional[str]               = None

    @classmethod
    def from_result(cls, result: IngestionResult) -> "IngestionResponse":
        return cls(
            success=result.success,
            file_name=result.file_name,
            classification=(
                ClassificationOut.from_classification(result.classification)
                if result.classification is not None
                else None
            ),
            chunks_count=result.chunks_count,
            error=result.error,
        )


class IngestionFailureResponse(BaseModel):
    """500 body when the pipeline rejected the document."""
    model_config = ConfigDict(populate_by_name=True)

    success:   bool = False
    error:     str
    file_name: str  = Field(..., alias="fileName")


class BatchIngestionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    results:      list[IngestionResponse]
    succeeded:    int
    failed:       int
    total_chunks: int = Field(..., alias="totalChunks")

    @classmethod
    def from_report(cls, report: BatchIngestionReport) -> "BatchIngestionResponse":
        return cls(
            results=[IngestionResponse.from_result(r) for r in report.results],
            succeeded=report.succeeded,
            failed=report.failed,
            total_chunks=report.total_chunks,
        )

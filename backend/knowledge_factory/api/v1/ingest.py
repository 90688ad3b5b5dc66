"""
Document Ingestion API Router
POST /api/v1/ingest
POST /api/v1/ingest/batch

Ingestion is synchronous: the response is sent once the document has been
extracted, classified, chunked, embedded and stored (or has failed).

POST /ingest accepts either
  - multipart/form-data with a ``file`` field, or
  - application/json  {"content": "...", "fileName": "notes.md"}

Status codes:
  200  document stored; body = IngestionResponse
  400  missing file, malformed JSON, unsupported Content-Type
  413  upload larger than settings.max_upload_bytes
  500  pipeline rejected the document; body = {"success": false, "error": ...}

POST /ingest/batch always answers 200 with a per-file report; one bad file
does not fail the others.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, File, Request, UploadFile, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile as StarletteUploadFile

from knowledge_factory.api.dependencies import Ingestion
from knowledge_factory.core.config import settings
from knowledge_factory.schemas.documents import (
    BatchIngestionResponse,
    ErrorResponse,
    IngestErrors,
    IngestionFailureResponse,
    IngestionResponse,
    IngestTextRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/ingest",
    tags=["Document Ingestion"],
)


def _error(status_code: int, body: ErrorResponse, request: Request) -> JSONResponse:
    body.request_id = request.headers.get("X-Request-ID")
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# POST /ingest
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=IngestionResponse,
    summary="Ingest a single document",
    description=(
        "Accepts a PDF, DOCX or any UTF-8 text file as multipart 'file', "
        "or raw text as JSON {content, fileName}."
    ),
    responses={
        200: {"model": IngestionResponse, "description": "Document chunked, embedded and stored"},
        400: {"model": ErrorResponse, "description": "Missing file or invalid payload"},
        413: {"model": ErrorResponse, "description": "File exceeds the upload limit"},
        500: {"model": IngestionFailureResponse, "description": "Pipeline failure"},
    },
)
async def ingest_document(request: Request, service: Ingestion) -> JSONResponse:
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, StarletteUploadFile):
            return _error(status.HTTP_400_BAD_REQUEST, IngestErrors.missing_file(), request)
        data = await upload.read()
        file_name = upload.filename or "upload"

        if len(data) > settings.max_upload_bytes:
            return _error(
                status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                IngestErrors.file_too_large(len(data), settings.max_upload_bytes),
                request,
            )

    elif content_type.startswith("application/json"):
        try:
            payload = IngestTextRequest.model_validate(await request.json())
        except ValueError as exc:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            return _error(status.HTTP_400_BAD_REQUEST, IngestErrors.invalid_payload(str(exc)), request)
        data, file_name = payload.content, payload.file_name

    else:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            IngestErrors.unsupported_content_type(content_type or "none"),
            request,
        )

    result = await service.ingest_document(data, file_name)

    if not result.success:
        body = IngestionFailureResponse(error=result.error or "Ingestion failed", file_name=file_name)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json", by_alias=True),
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=IngestionResponse.from_result(result).model_dump(mode="json", by_alias=True),
    )


# ---------------------------------------------------------------------------
# POST /ingest/batch
# ---------------------------------------------------------------------------

@router.post(
    "/batch",
    response_model=BatchIngestionResponse,
    summary="Ingest several documents, one after another",
    responses={
        200: {"model": BatchIngestionResponse, "description": "Per-file outcomes"},
    },
)
async def ingest_batch(
    service: Ingestion,
    files:   list[UploadFile] = File(..., description="Documents to ingest"),
) -> JSONResponse:
    pairs: list[tuple[str, bytes]] = []
    for upload in files:
        pairs.append((upload.filename or "upload", await upload.read()))

    logger.info("Batch ingest request | files=%d", len(pairs))
    report = await service.ingest_batch(pairs)

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=BatchIngestionResponse.from_report(report).model_dump(mode="json", by_alias=True),
    )

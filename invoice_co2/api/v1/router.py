import logging
import time
import uuid
from datetime import date
from pathlib import Path

from dateutil import parser as dateutil_parser
from fastapi import APIRouter, Depends, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from invoice_co2.api.v1.schemas import (
    InvoiceDetail,
    InvoiceDetailResponse,
    InvoiceListResponse,
    InvoiceRecord,
    InvoiceSummary,
    MessageResponse,
    UploadResponse,
)
from invoice_co2.core.config import get_settings
from invoice_co2.core.security import require_uploader, verify_api_key
from invoice_co2.services.models import InvoiceOverrides, UploadedFile
from invoice_co2.services.pipeline import InvoicePipeline, PipelineError
from invoice_co2.services.repository import BaseInvoiceRepository
from invoice_co2.services.storage import UploadStore
from invoice_co2.services.text_extractor import (
    FileTooLargeError,
    UploadValidationError,
    validate_upload,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", dependencies=[Depends(verify_api_key)])


def _parse_invoice_date(raw: str | None) -> date | None:
    if raw is None or not raw.strip():
        return None
    value = raw.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return dateutil_parser.parse(value, dayfirst=True).date()
    except (ValueError, OverflowError) as exc:
        raise HTTPException(
            status_code=400, detail=f"Invalid invoiceDate: {value}"
        ) from exc


def _repository(request: Request) -> BaseInvoiceRepository:
    return request.app.state.repository  # type: ignore[no-any-return]


def _get_owned(request: Request, invoice_id: str, user_id: str) -> InvoiceRecord:
    record = _repository(request).get_for_user(invoice_id, user_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return record


@router.post("/upload", status_code=201)
async def upload_invoice(
    file: UploadFile,
    request: Request,
    user_id: str = Depends(require_uploader),
    invoiceDate: str | None = Form(default=None),
    invoiceNumber: str | None = Form(default=None),
    provider: str | None = Form(default=None),
) -> JSONResponse:
    request_id = str(uuid.uuid4())
    start = time.monotonic()
    status_code = 500
    file_size_bytes: int | None = None
    outcome: str | None = None
    extraction_path: str | None = None

    try:
        settings = get_settings()
        file_bytes = await file.read()
        file_size_bytes = len(file_bytes)
        try:
            validate_upload(file.content_type, file_bytes, settings.max_file_size_mb)
        except FileTooLargeError as e:
            status_code = 413
            raise HTTPException(status_code=413, detail=str(e)) from e
        except UploadValidationError as e:
            status_code = 400
            raise HTTPException(status_code=400, detail=str(e)) from e

        try:
            overrides = InvoiceOverrides(
                invoice_date=_parse_invoice_date(invoiceDate),
                invoice_number=invoiceNumber,
                provider=provider,
            )
        except HTTPException:
            status_code = 400
            raise

        upload = UploadedFile(
            content=file_bytes,
            content_type=file.content_type or "",
            filename=file.filename or "invoice",
        )
        pipeline: InvoicePipeline = request.app.state.pipeline
        try:
            record = await run_in_threadpool(pipeline.ingest, upload, user_id, overrides)
        except PipelineError as e:
            status_code = e.status_code
            outcome = "failed"
            raise HTTPException(status_code=e.status_code, detail=e.message) from e

        outcome = "simulated" if record.emissionsSimulated else "success"
        extraction_path = record.extractionMethod
        status_code = 201
        body = UploadResponse(
            invoice=InvoiceSummary.from_record(record),
            analysis=record.aiAnalysis,
        )
        return JSONResponse(
            body.model_dump(mode="json"),
            status_code=201,
            headers={"X-Request-Id": request_id},
        )
    finally:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "upload complete",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": str(request.url.path),
                "status_code": status_code,
                "file_size_bytes": file_size_bytes,
                "outcome": outcome,
                "extraction_path": extraction_path,
                "duration_ms": duration_ms,
            },
        )


@router.get("")
async def list_invoices(
    request: Request, user_id: str = Depends(require_uploader)
) -> InvoiceListResponse:
    records = _repository(request).list_for_user(user_id)
    return InvoiceListResponse(
        count=len(records),
        data=[InvoiceSummary.from_record(r) for r in records],
    )


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: str, request: Request, user_id: str = Depends(require_uploader)
) -> InvoiceDetailResponse:
    record = _get_owned(request, invoice_id, user_id)
    return InvoiceDetailResponse(data=InvoiceDetail.from_record(record))


@router.get("/{invoice_id}/download")
async def download_invoice(
    invoice_id: str, request: Request, user_id: str = Depends(require_uploader)
) -> FileResponse:
    record = _get_owned(request, invoice_id, user_id)
    store: UploadStore = request.app.state.store
    path = Path(record.filePath)
    if not store.exists(path):
        raise HTTPException(status_code=404, detail="Invoice file not found")
    return FileResponse(path, filename=record.originalName, media_type=record.fileType)


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: str, request: Request, user_id: str = Depends(require_uploader)
) -> MessageResponse:
    record = _get_owned(request, invoice_id, user_id)
    store: UploadStore = request.app.state.store
    store.delete(Path(record.filePath))
    _repository(request).delete(invoice_id)
    return MessageResponse(success=True, message="Invoice deleted successfully")

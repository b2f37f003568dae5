import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path

from invoice_co2.api.v1.schemas import InvoiceRecord
from invoice_co2.core.config import Settings
from invoice_co2.services.calculator import EmissionsCalculator
from invoice_co2.services.emission_factors import DEFAULT_EMISSION_FACTORS, EmissionFactors
from invoice_co2.services.llm_client import OpenAICompletionClient
from invoice_co2.services.metadata_extractor import MetadataExtractor
from invoice_co2.services.mock_fallback import generate_mock
from invoice_co2.services.models import (
    EmissionResult,
    InvoiceMetadata,
    InvoiceOverrides,
    UploadedFile,
)
from invoice_co2.services.repository import BaseInvoiceRepository
from invoice_co2.services.storage import UploadStore
from invoice_co2.services.text_extractor import (
    ExtractionResult,
    TextExtractionError,
    TextExtractor,
)

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def resolve_normalized_type(identified_types: list[str]) -> str:
    if "energy" in identified_types and "gas" in identified_types:
        return "energygas"
    if "energy" in identified_types and "water" in identified_types:
        return "energywater"
    if identified_types:
        return identified_types[0]
    return "other"


def breakdown_to_dict(breakdown: Mapping[str, float] | None) -> dict[str, float]:
    if not breakdown:
        return {}
    return {str(key): float(value) for key, value in breakdown.items()}


class InvoicePipeline:
    """Runs one upload end to end: store, extract, calculate, persist.

    Either a complete record is saved or the stored upload is removed.
    """

    def __init__(
        self,
        *,
        store: UploadStore,
        extractor: TextExtractor,
        metadata: MetadataExtractor,
        calculator: EmissionsCalculator,
        repository: BaseInvoiceRepository,
        factors: EmissionFactors = DEFAULT_EMISSION_FACTORS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._metadata = metadata
        self._calculator = calculator
        self._repository = repository
        self._factors = factors
        self._clock = clock or (lambda: datetime.now(UTC))

    def ingest(
        self,
        upload: UploadedFile,
        uploader_id: str,
        overrides: InvoiceOverrides | None = None,
    ) -> InvoiceRecord:
        if not uploader_id:
            raise PipelineError(401, "Authentication required. Please log in.")
        overrides = overrides or InvoiceOverrides()

        path = self._store.save(upload.content, upload.filename)
        logger.info(
            "Stored upload",
            extra={"file_name": path.name, "file_size_bytes": upload.size},
        )

        try:
            extraction = self._extractor.extract(upload)
        except TextExtractionError as exc:
            self._store.delete(path)
            raise PipelineError(422, str(exc)) from exc

        try:
            metadata = self._metadata.extract_metadata(extraction.text)
            normalized_type = resolve_normalized_type(list(metadata.identified_types))
            emissions = self._calculate(extraction.text, normalized_type)
            record = self._assemble(
                upload, path, uploader_id, extraction, metadata,
                normalized_type, emissions, overrides,
            )
            invoice_id = self._repository.save(record)
        except Exception as exc:
            logger.exception("Invoice processing failed, removing upload")
            self._store.delete(path)
            raise PipelineError(500, "Failed to process invoice") from exc

        logger.info(
            "Invoice processed",
            extra={
                "invoice_id": invoice_id,
                "invoice_type": normalized_type,
                "co2_kg": emissions.emissions,
                "simulated": emissions.simulated,
            },
        )
        return record.model_copy(update={"id": invoice_id})

    def _calculate(self, text: str, normalized_type: str) -> EmissionResult:
        try:
            return self._calculator.calculate(text, normalized_type)
        except Exception as exc:
            logger.error(
                "Emissions calculation failed, using mock data",
                exc_info=True,
                extra={"invoice_type": normalized_type},
            )
            result = generate_mock(normalized_type, self._factors)
            result.analysis = f"WARNING: OpenAI API error ({exc})\n\n{result.analysis}"
            return result

    def _assemble(
        self,
        upload: UploadedFile,
        path: Path,
        uploader_id: str,
        extraction: ExtractionResult,
        metadata: InvoiceMetadata,
        normalized_type: str,
        emissions: EmissionResult,
        overrides: InvoiceOverrides,
    ) -> InvoiceRecord:
        return InvoiceRecord(
            fileName=path.name,
            originalName=upload.filename,
            filePath=str(path),
            fileType=upload.content_type,
            fileSize=upload.size,
            invoiceDate=overrides.invoice_date or metadata.invoice_date,
            invoiceNumber=(overrides.invoice_number or "").strip()
            or metadata.invoice_number,
            provider=(overrides.provider or "").strip() or metadata.provider,
            primaryType=metadata.primary_type,
            identifiedTypes=list(metadata.identified_types),
            type=normalized_type,
            emissionTypes=list(emissions.emission_types)
            or list(metadata.identified_types),
            emissionBreakdown=breakdown_to_dict(emissions.emission_breakdown),
            co2Emissions=emissions.emissions,
            emissionsSimulated=emissions.simulated,
            aiAnalysis=emissions.analysis,
            consumption=emissions.consumption,
            consumptionUnit=emissions.consumption_unit,
            emissionFactor=emissions.emission_factor,
            extractionMethod=extraction.path,
            rawText=extraction.text,
            userId=uploader_id,
            createdAt=self._clock(),
        )


def build_pipeline(
    settings: Settings,
    repository: BaseInvoiceRepository,
    store: UploadStore,
    factors: EmissionFactors = DEFAULT_EMISSION_FACTORS,
) -> InvoicePipeline:
    """Build an InvoicePipeline with the OpenAI-backed collaborators."""
    client = OpenAICompletionClient(
        api_key=settings.openai_api_key,
        timeout_seconds=settings.openai_timeout_seconds,
        base_url=settings.openai_base_url,
        key_pattern=settings.openai_api_key_pattern,
    )
    return InvoicePipeline(
        store=store,
        extractor=TextExtractor(
            min_chars_per_page=settings.min_text_chars_per_page,
            ocr_lang=settings.ocr_lang,
        ),
        metadata=MetadataExtractor(client, settings.extraction_model),
        calculator=EmissionsCalculator(
            client,
            extraction_model=settings.extraction_model,
            analysis_model=settings.analysis_model,
            factors=factors,
        ),
        repository=repository,
        factors=factors,
    )

import logging
import re
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any, cast

from invoice_co2.services.llm_client import CompletionClient, parse_json_object
from invoice_co2.services.models import UTILITY_TYPES, InvoiceMetadata, UtilityType

logger = logging.getLogger(__name__)

UNKNOWN_PROVIDER = "Unknown Provider"

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_SYSTEM_PROMPT = (
    "You are an AI assistant specialized in extracting metadata from utility "
    "invoices. Your task is to identify invoice details and utility types with "
    "high precision. Return ONLY a valid JSON object with the requested fields."
)

_USER_PROMPT = """Extract the following information from this utility invoice:

INVOICE TEXT:
{text}

Return a JSON object with EXACTLY these fields:
{{
  "invoiceDate": "YYYY-MM-DD",
  "invoiceNumber": "ABC123",
  "provider": "Company Name",
  "identifiedTypes": ["energy", "water", "gas"],
  "primaryType": "energy"
}}

Guidelines:
1. Convert the invoice date to YYYY-MM-DD format
2. Electricity, power or kWh usage is classified as "energy"
3. Anything mentioning H2O is "water"; natural gas is "gas"
4. identifiedTypes lists ALL utility types present, using only: energy, water, gas, other
5. primaryType is the main utility type and must be one of: energy, water, gas, other
6. If a value cannot be determined, use an empty string"""


def normalize_type_label(label: str) -> str:
    lowered = label.strip().lower()
    if "electric" in lowered or "power" in lowered or lowered == "kwh":
        return "energy"
    if "h2o" in lowered:
        return "water"
    if "natural" in lowered:
        return "gas"
    return lowered


def normalize_identified_types(raw: Any) -> list[UtilityType]:
    """Map synonyms, keep known utility types, drop duplicates, keep order."""
    if not isinstance(raw, list):
        return []
    result: list[UtilityType] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        label = normalize_type_label(item)
        if label in UTILITY_TYPES and label not in result:
            result.append(cast(UtilityType, label))
    return result


def auto_invoice_number(now: datetime) -> str:
    return f"AUTO-{int(now.timestamp() * 1000)}"


def default_metadata(now: datetime) -> InvoiceMetadata:
    return InvoiceMetadata(
        invoice_date=now.date(),
        invoice_number=auto_invoice_number(now),
        provider=UNKNOWN_PROVIDER,
        identified_types=["other"],
        primary_type="other",
    )


def _coerce_text(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, int | float | str):
        return str(value).strip()
    return ""


def _coerce_date(value: Any, today: date) -> date:
    if isinstance(value, str) and _ISO_DATE.match(value.strip()):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    return today


def normalize_metadata(data: dict[str, Any], now: datetime) -> InvoiceMetadata:
    primary = _coerce_text(data.get("primaryType")).lower()
    primary_type = cast(UtilityType, primary if primary in UTILITY_TYPES else "other")

    identified = normalize_identified_types(data.get("identifiedTypes"))
    if not identified:
        identified = [primary_type]

    return InvoiceMetadata(
        invoice_date=_coerce_date(data.get("invoiceDate"), now.date()),
        invoice_number=_coerce_text(data.get("invoiceNumber"))
        or auto_invoice_number(now),
        provider=_coerce_text(data.get("provider")) or UNKNOWN_PROVIDER,
        identified_types=identified,
        primary_type=primary_type,
    )


class MetadataExtractor:
    """Extracts invoice date, number, provider and utility types.

    Never raises: any failure degrades to `default_metadata`.
    """

    def __init__(
        self,
        client: CompletionClient,
        model: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._clock = clock or (lambda: datetime.now(UTC))

    def extract_metadata(self, text: str) -> InvoiceMetadata:
        now = self._clock()
        try:
            raw = self._client.complete(
                model=self._model,
                system_prompt=_SYSTEM_PROMPT,
                user_prompt=_USER_PROMPT.format(text=text),
                max_tokens=500,
                temperature=0.0,
                json_mode=True,
            )
        except Exception:
            logger.warning("Metadata extraction call failed, using defaults", exc_info=True)
            return default_metadata(now)

        data = parse_json_object(raw)
        if data is None:
            logger.warning("Metadata response was not a JSON object, using defaults")
            return default_metadata(now)

        metadata = normalize_metadata(data, now)
        logger.info(
            "Extracted invoice metadata",
            extra={
                "invoice_number": metadata.invoice_number,
                "provider": metadata.provider,
                "identified_types": metadata.identified_types,
                "primary_type": metadata.primary_type,
            },
        )
        return metadata

import io
import json
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

from PIL import Image

from invoice_co2.services.llm_client import CompletionClient

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
FIXED_AUTO_NUMBER = f"AUTO-{int(FIXED_NOW.timestamp() * 1000)}"


def make_pdf_bytes(text: str = "test") -> bytes:
    """Create a minimal valid single-page PDF with the given ASCII text."""
    content = f"BT /F1 12 Tf 50 700 Td ({text}) Tj ET\n".encode()

    obj1 = b"1 0 obj\n<</Type /Catalog /Pages 2 0 R>>\nendobj\n"
    obj2 = b"2 0 obj\n<</Type /Pages /Kids [3 0 R] /Count 1>>\nendobj\n"
    obj3 = (
        b"3 0 obj\n<</Type /Page /Parent 2 0 R /MediaBox [0 0 612 792]"
        b" /Contents 4 0 R /Resources <</Font <</F1 5 0 R>>>>>>\nendobj\n"
    )
    obj4 = (
        f"4 0 obj\n<</Length {len(content)}>>\nstream\n".encode()
        + content
        + b"endstream\nendobj\n"
    )
    obj5 = b"5 0 obj\n<</Type /Font /Subtype /Type1 /BaseFont /Helvetica>>\nendobj\n"

    header = b"%PDF-1.4\n"
    objects = [obj1, obj2, obj3, obj4, obj5]
    body = b""
    offsets: list[int] = []
    for obj in objects:
        offsets.append(len(header) + len(body))
        body += obj

    xref_offset = len(header) + len(body)
    xref = "xref\n0 6\n0000000000 65535 f \n"
    for off in offsets:
        xref += f"{off:010d} 00000 n \n"
    trailer = f"trailer\n<</Size 6 /Root 1 0 R>>\nstartxref\n{xref_offset}\n%%EOF\n"

    return header + body + xref.encode() + trailer.encode()


def make_png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (32, 16), color="white").save(buffer, format="PNG")
    return buffer.getvalue()


def make_client(*replies: str | Exception) -> MagicMock:
    """A completion client answering successive calls with `replies`.

    Exception instances are raised instead of returned.
    """
    client = MagicMock(spec=CompletionClient)
    client.complete.side_effect = list(replies)
    return client


def metadata_reply(**overrides: Any) -> str:
    payload: dict[str, Any] = {
        "invoiceDate": "2024-03-31",
        "invoiceNumber": "INV-2024-031",
        "provider": "Stadtwerke Kiel",
        "identifiedTypes": ["energy"],
        "primaryType": "energy",
    }
    payload.update(overrides)
    return json.dumps(payload)


def consumption_reply(readings: dict[str, tuple[Any, str]], **extra: Any) -> str:
    payload: dict[str, Any] = {
        "detectedTypes": list(readings),
        "consumptionData": {
            t: {"value": value, "unit": unit} for t, (value, unit) in readings.items()
        },
        "provider": "Stadtwerke Kiel",
        "invoiceDate": "2024-03-31",
    }
    payload.update(extra)
    return json.dumps(payload)

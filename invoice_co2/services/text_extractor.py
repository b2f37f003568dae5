import io
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Literal

import numpy as np
import pdfplumber
from PIL import Image

from invoice_co2.services.models import UploadedFile

logger = logging.getLogger(__name__)

_PDF_MAGIC = b"%PDF"
_PDF_CONTENT_TYPE = "application/pdf"
_MIN_TEXT_CHARS_PER_PAGE = 50

PDF_HINT = "The PDF may be damaged, encrypted, or contain only images without text."
OCR_HINT = (
    "The image may be low quality or blurry. "
    "Try uploading a clearer image or a PDF instead."
)


class UploadValidationError(Exception):
    pass


class UnsupportedFileTypeError(UploadValidationError):
    pass


class EmptyFileError(UploadValidationError):
    pass


class FileTooLargeError(UploadValidationError):
    pass


class InvalidMagicBytesError(UploadValidationError):
    pass


class TextExtractionError(Exception):
    pass


def is_supported_content_type(content_type: str | None) -> bool:
    return content_type == _PDF_CONTENT_TYPE or bool(
        content_type and content_type.startswith("image/")
    )


def validate_upload(
    content_type: str | None,
    file_bytes: bytes,
    max_size_mb: int,
) -> None:
    if not is_supported_content_type(content_type):
        raise UnsupportedFileTypeError("Only PDF and image files are allowed")
    if not file_bytes:
        raise EmptyFileError("No file uploaded")
    if len(file_bytes) > max_size_mb * 1024 * 1024:
        raise FileTooLargeError(f"File exceeds maximum size of {max_size_mb} MB")
    if content_type == _PDF_CONTENT_TYPE and file_bytes[:4] != _PDF_MAGIC:
        raise InvalidMagicBytesError("File does not appear to be a PDF")


def _is_text_based(
    text: str,
    page_count: int,
    min_chars_per_page: int = _MIN_TEXT_CHARS_PER_PAGE,
) -> bool:
    return (len(text) / page_count) >= min_chars_per_page if page_count > 0 else False


def _load_engine(lang: str) -> Any:
    from paddleocr import PaddleOCR  # type: ignore[import-untyped]

    return PaddleOCR(
        lang=lang,
        use_doc_orientation_classify=False,
        use_doc_unwarping=False,
        use_textline_orientation=True,
    )


def _lines_from_result(result: Iterable[Any] | None) -> list[str]:
    lines: list[str] = []
    for page in result or []:
        lines.extend(str(t) for t in (page.get("rec_texts") or []))
    return lines


class OCRWorker:
    """A PaddleOCR engine scoped to one request.

    Use as a context manager: the engine is released on exit even when
    recognition raises.
    """

    def __init__(self, lang: str = "en") -> None:
        self._lang = lang
        self._engine: Any = None

    def __enter__(self) -> "OCRWorker":
        self._engine = _load_engine(self._lang)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._engine is None

    def recognize(self, image: Image.Image) -> str:
        if self._engine is None:
            raise RuntimeError("OCR worker is not running")
        array = np.array(image.convert("RGB"))
        return " ".join(_lines_from_result(self._engine.predict(array)))

    def close(self) -> None:
        self._engine = None


class PlumberExtractor:
    def extract_text_and_page_count(self, file_bytes: bytes) -> tuple[str, int]:
        if not file_bytes:
            raise ValueError("file_bytes must not be empty")
        with pdfplumber.open(io.BytesIO(file_bytes)) as pdf:
            text = "\n\n".join(page.extract_text() or "" for page in pdf.pages)
            page_count = len(pdf.pages)
        return text, page_count

    def extract_text(self, file_bytes: bytes) -> str:
        return self.extract_text_and_page_count(file_bytes)[0]


class ImageOCRExtractor:
    def __init__(self, lang: str = "en") -> None:
        self._lang = lang

    def extract_text(self, file_bytes: bytes) -> str:
        with Image.open(io.BytesIO(file_bytes)) as image:
            with OCRWorker(self._lang) as worker:
                return worker.recognize(image)

    def extract_pdf_pages(self, file_bytes: bytes) -> str:
        from pdf2image import convert_from_bytes

        pages = convert_from_bytes(file_bytes)
        with OCRWorker(self._lang) as worker:
            return "\n\n".join(worker.recognize(page) for page in pages)


@dataclass
class ExtractionResult:
    text: str
    path: Literal["text", "ocr"]


class TextExtractor:
    """Turns an uploaded PDF or image into plain text.

    PDFs are read from their text layer. When a PDF carries fewer than
    `min_chars_per_page` characters per page on average its pages are
    rasterised and sent through OCR instead; 0 disables that. If OCR of
    such a PDF fails the sparse text layer is returned as is.
    """

    def __init__(
        self,
        min_chars_per_page: int = _MIN_TEXT_CHARS_PER_PAGE,
        ocr_lang: str = "en",
    ) -> None:
        self._plumber = PlumberExtractor()
        self._ocr = ImageOCRExtractor(ocr_lang)
        self._min_chars = min_chars_per_page

    def extract(self, file: UploadedFile) -> ExtractionResult:
        if file.content_type == _PDF_CONTENT_TYPE:
            return self._extract_pdf(file.content)
        if file.content_type.startswith("image/"):
            return self._extract_image(file.content)
        raise TextExtractionError(f"Unsupported file type: {file.content_type}")

    def _extract_pdf(self, file_bytes: bytes) -> ExtractionResult:
        try:
            text, page_count = self._plumber.extract_text_and_page_count(file_bytes)
        except Exception as exc:
            logger.warning("PDF text extraction failed", exc_info=True)
            raise TextExtractionError(
                f"Failed to extract text from PDF: {exc}. {PDF_HINT}"
            ) from exc

        if self._min_chars <= 0 or _is_text_based(text, page_count, self._min_chars):
            return ExtractionResult(text=text, path="text")

        logger.info(
            "PDF text layer below threshold, falling back to OCR",
            extra={"page_count": page_count, "text_chars": len(text)},
        )
        try:
            return ExtractionResult(
                text=self._ocr.extract_pdf_pages(file_bytes), path="ocr"
            )
        except Exception:
            logger.warning(
                "OCR of scanned PDF failed, keeping the text layer", exc_info=True
            )
            return ExtractionResult(text=text, path="text")

    def _extract_image(self, file_bytes: bytes) -> ExtractionResult:
        try:
            text = self._ocr.extract_text(file_bytes)
        except Exception as exc:
            logger.warning("Image OCR failed", exc_info=True)
            raise TextExtractionError(
                f"OCR processing failed: {exc}. {OCR_HINT}"
            ) from exc
        return ExtractionResult(text=text, path="ocr")

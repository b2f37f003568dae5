from collections.abc import AsyncGenerator, Callable, Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from invoice_co2.core.config import get_settings
from invoice_co2.main import app
from invoice_co2.services.calculator import EmissionsCalculator
from invoice_co2.services.metadata_extractor import MetadataExtractor
from invoice_co2.services.pipeline import InvoicePipeline
from invoice_co2.services.repository import InMemoryInvoiceRepository
from invoice_co2.services.storage import UploadStore
from invoice_co2.services.text_extractor import ExtractionResult, TextExtractor
from tests.utils import FIXED_NOW

TEST_USER_ID = "user-42"

INVOICE_TEXT = (
    "Stadtwerke Kiel\nInvoice No. INV-2024-031\nDate: 31.03.2024\n"
    "Electricity consumption: 450 kWh\n"
)


@pytest.fixture
def mock_settings(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("API_KEY", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store(tmp_path: Path) -> UploadStore:
    return UploadStore(tmp_path / "uploads")


@pytest.fixture
def repository() -> InMemoryInvoiceRepository:
    return InMemoryInvoiceRepository()


@pytest.fixture
def text_extractor() -> MagicMock:
    extractor = MagicMock(spec=TextExtractor)
    extractor.extract.return_value = ExtractionResult(text=INVOICE_TEXT, path="text")
    return extractor


@pytest.fixture
def make_pipeline(
    store: UploadStore,
    repository: InMemoryInvoiceRepository,
    text_extractor: MagicMock,
) -> Callable[[MagicMock], InvoicePipeline]:
    """Build a pipeline whose model calls are answered by `client`."""

    def _make(client: MagicMock) -> InvoicePipeline:
        return InvoicePipeline(
            store=store,
            extractor=text_extractor,
            metadata=MetadataExtractor(client, "gpt-4o", clock=lambda: FIXED_NOW),
            calculator=EmissionsCalculator(
                client, extraction_model="gpt-4o", analysis_model="gpt-3.5-turbo"
            ),
            repository=repository,
            clock=lambda: FIXED_NOW,
        )

    return _make


@pytest.fixture
async def client(
    mock_settings: None,
    store: UploadStore,
    repository: InMemoryInvoiceRepository,
) -> AsyncGenerator[AsyncClient, None]:
    app.state.pipeline = MagicMock(spec=InvoicePipeline)
    app.state.repository = repository
    app.state.store = store
    app.state.pipeline_ready = True
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.state.pipeline_ready = False

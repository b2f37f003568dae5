import re
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

from invoice_co2.api.v1.schemas import InvoiceRecord
from invoice_co2.services.repository import InMemoryInvoiceRepository
from invoice_co2.services.storage import UploadStore, stored_file_name

NOW = datetime(2024, 5, 1, tzinfo=UTC)


def _record(user_id: str = "user-42", created: datetime = NOW) -> InvoiceRecord:
    return InvoiceRecord(
        fileName="invoice-1-2.pdf",
        originalName="march.pdf",
        filePath="/tmp/invoice-1-2.pdf",
        fileType="application/pdf",
        fileSize=10,
        invoiceDate=date(2024, 3, 31),
        invoiceNumber="INV-1",
        provider="Stadtwerke Kiel",
        primaryType="energy",
        identifiedTypes=["energy"],
        type="energy",
        extractionMethod="text",
        userId=user_id,
        createdAt=created,
    )


# --- UploadStore ---


@pytest.mark.parametrize(
    ("original", "suffix"), [("march.pdf", ".pdf"), ("Scan.JPG", ".jpg"), ("noext", "")]
)
def test_stored_file_name_keeps_extension(original: str, suffix: str) -> None:
    name = stored_file_name(original)
    assert re.fullmatch(rf"invoice-\d+-\d+{re.escape(suffix)}", name)


def test_save_writes_under_root(tmp_path: Path) -> None:
    store = UploadStore(tmp_path / "uploads")
    path = store.save(b"content", "march.pdf")
    assert path.parent == tmp_path / "uploads"
    assert path.read_bytes() == b"content"
    assert store.exists(path)


def test_save_never_reuses_client_name(tmp_path: Path) -> None:
    store = UploadStore(tmp_path)
    first = store.save(b"a", "../../etc/passwd.pdf")
    assert first.parent == tmp_path
    assert "passwd" not in first.name


def test_delete_removes_file(tmp_path: Path) -> None:
    store = UploadStore(tmp_path)
    path = store.save(b"a", "a.pdf")
    store.delete(path)
    assert not store.exists(path)


def test_delete_missing_file_is_not_an_error(tmp_path: Path) -> None:
    UploadStore(tmp_path).delete(tmp_path / "gone.pdf")


# --- InMemoryInvoiceRepository ---


def test_save_assigns_id() -> None:
    repository = InMemoryInvoiceRepository()
    invoice_id = repository.save(_record())
    stored = repository.get_for_user(invoice_id, "user-42")
    assert stored is not None
    assert stored.id == invoice_id


def test_save_keeps_existing_id() -> None:
    repository = InMemoryInvoiceRepository()
    assert repository.save(_record().model_copy(update={"id": "fixed"})) == "fixed"


def test_get_for_other_user_returns_none() -> None:
    repository = InMemoryInvoiceRepository()
    invoice_id = repository.save(_record())
    assert repository.get_for_user(invoice_id, "intruder") is None


def test_list_is_newest_first_and_scoped_to_user() -> None:
    repository = InMemoryInvoiceRepository()
    older = repository.save(_record(created=NOW - timedelta(hours=1)))
    newer = repository.save(_record(created=NOW))
    repository.save(_record(user_id="someone-else"))

    assert [r.id for r in repository.list_for_user("user-42")] == [newer, older]


def test_delete_removes_record_and_ignores_unknown_ids() -> None:
    repository = InMemoryInvoiceRepository()
    invoice_id = repository.save(_record())
    repository.delete(invoice_id)
    repository.delete("unknown")
    assert repository.list_for_user("user-42") == []

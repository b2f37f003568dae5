import threading
import uuid
from abc import ABC, abstractmethod

from invoice_co2.api.v1.schemas import InvoiceRecord


class BaseInvoiceRepository(ABC):
    """Persistence contract for invoice records."""

    @abstractmethod
    def save(self, record: InvoiceRecord) -> str:
        """Store the record and return its id."""

    @abstractmethod
    def get_for_user(self, invoice_id: str, user_id: str) -> InvoiceRecord | None:
        """Return the record if it exists and belongs to the user."""

    @abstractmethod
    def list_for_user(self, user_id: str) -> list[InvoiceRecord]:
        """Return the user's records, newest first."""

    @abstractmethod
    def delete(self, invoice_id: str) -> None:
        """Delete a record; unknown ids are ignored."""


class InMemoryInvoiceRepository(BaseInvoiceRepository):
    def __init__(self) -> None:
        self._records: dict[str, InvoiceRecord] = {}
        self._lock = threading.Lock()

    def save(self, record: InvoiceRecord) -> str:
        invoice_id = record.id or uuid.uuid4().hex
        with self._lock:
            self._records[invoice_id] = record.model_copy(update={"id": invoice_id})
        return invoice_id

    def get_for_user(self, invoice_id: str, user_id: str) -> InvoiceRecord | None:
        with self._lock:
            record = self._records.get(invoice_id)
        if record is None or record.userId != user_id:
            return None
        return record

    def list_for_user(self, user_id: str) -> list[InvoiceRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.userId == user_id]
        return sorted(records, key=lambda r: r.createdAt, reverse=True)

    def delete(self, invoice_id: str) -> None:
        with self._lock:
            self._records.pop(invoice_id, None)

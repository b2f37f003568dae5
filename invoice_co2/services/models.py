from dataclasses import dataclass, field
from datetime import date
from typing import Literal, TypeAlias

UtilityType: TypeAlias = Literal["energy", "water", "gas", "other"]

UTILITY_TYPES: tuple[UtilityType, ...] = ("energy", "water", "gas", "other")


@dataclass(frozen=True)
class UploadedFile:
    """An accepted upload; lives only for the duration of one pipeline run."""

    content: bytes
    content_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class InvoiceMetadata:
    invoice_date: date
    invoice_number: str
    provider: str
    identified_types: list[UtilityType]
    primary_type: UtilityType


@dataclass(frozen=True)
class Consumption:
    value: float | None
    unit: str


@dataclass
class ConsumptionData:
    """Per-type readings in the order the model reported them.

    `provider` and `invoice_date` are extracted independently of
    InvoiceMetadata and are kept for audit only.
    """

    detected_types: list[str]
    readings: dict[str, Consumption] = field(default_factory=dict)
    provider: str | None = None
    invoice_date: str | None = None


@dataclass
class EmissionResult:
    emissions: float
    emission_breakdown: dict[str, float]
    emission_types: list[str]
    analysis: str
    consumption: str = ""
    consumption_unit: str = ""
    emission_factor: str = ""
    simulated: bool = False


@dataclass(frozen=True)
class InvoiceOverrides:
    """Caller-supplied values that win over extracted ones when non-empty."""

    invoice_date: date | None = None
    invoice_number: str | None = None
    provider: str | None = None

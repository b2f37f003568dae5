from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class InvoiceRecord(BaseModel):
    id: str | None = None
    fileName: str
    originalName: str
    filePath: str
    fileType: str
    fileSize: int
    invoiceDate: date
    invoiceNumber: str
    provider: str
    primaryType: Literal["energy", "water", "gas", "other"]
    identifiedTypes: list[Literal["energy", "water", "gas", "other"]]
    # Merged bucket such as "energygas", not limited to the utility enum.
    type: str
    emissionTypes: list[str] = Field(default_factory=list)
    emissionBreakdown: dict[str, float] = Field(default_factory=dict)
    co2Emissions: float = 0.0
    emissionsUnit: str = "kg"
    emissionsSimulated: bool = False
    aiAnalysis: str = ""
    consumption: str = ""
    consumptionUnit: str = ""
    emissionFactor: str = ""
    extractionMethod: Literal["text", "ocr"]
    rawText: str = ""
    userId: str
    createdAt: datetime


class InvoiceSummary(BaseModel):
    id: str
    fileName: str
    originalName: str
    invoiceDate: date
    invoiceNumber: str
    provider: str
    type: str
    emissionTypes: list[str]
    emissionBreakdown: dict[str, float]
    co2Emissions: float
    emissionsUnit: str
    emissionsSimulated: bool
    consumption: str
    consumptionUnit: str
    emissionFactor: str
    uploadDate: datetime

    @classmethod
    def from_record(cls, record: InvoiceRecord) -> "InvoiceSummary":
        return cls(
            id=record.id or "",
            fileName=record.fileName,
            originalName=record.originalName,
            invoiceDate=record.invoiceDate,
            invoiceNumber=record.invoiceNumber,
            provider=record.provider,
            type=record.type,
            emissionTypes=record.emissionTypes or [record.type],
            emissionBreakdown=record.emissionBreakdown,
            co2Emissions=record.co2Emissions,
            emissionsUnit=record.emissionsUnit,
            emissionsSimulated=record.emissionsSimulated,
            consumption=record.consumption,
            consumptionUnit=record.consumptionUnit,
            emissionFactor=record.emissionFactor,
            uploadDate=record.createdAt,
        )


class InvoiceDetail(InvoiceSummary):
    aiAnalysis: str

    @classmethod
    def from_record(cls, record: InvoiceRecord) -> "InvoiceDetail":
        summary = InvoiceSummary.from_record(record)
        return cls(**summary.model_dump(), aiAnalysis=record.aiAnalysis)


class UploadResponse(BaseModel):
    success: bool = True
    message: str = "Invoice uploaded and processed successfully"
    invoice: InvoiceSummary
    analysis: str


class InvoiceListResponse(BaseModel):
    success: bool = True
    count: int
    data: list[InvoiceSummary]


class InvoiceDetailResponse(BaseModel):
    success: bool = True
    data: InvoiceDetail


class MessageResponse(BaseModel):
    success: bool
    message: str

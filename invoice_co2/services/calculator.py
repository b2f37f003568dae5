import json
import logging
import math
import re
from typing import Any

from invoice_co2.services.emission_factors import (
    DEFAULT_EMISSION_FACTORS,
    EmissionFactors,
    component_types,
    default_unit,
    describe_factor,
    format_quantity,
)
from invoice_co2.services.llm_client import CompletionClient, parse_json_object
from invoice_co2.services.metadata_extractor import normalize_identified_types
from invoice_co2.services.models import Consumption, ConsumptionData, EmissionResult

logger = logging.getLogger(__name__)

# Quantity assumed when a type is detected but no usable reading was found.
PLACEHOLDER_QUANTITY = 100

_LEADING_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")

_EXTRACTION_SYSTEM_PROMPT = (
    "You are a specialized utility invoice data extractor. Your only task is to "
    "identify utility types (energy/electricity, gas, water) and extract their "
    "consumption values from invoices. Return ONLY a valid JSON object with this data."
)

_EXTRACTION_USER_PROMPT = """Extract the consumption data from this utility invoice. \
Only focus on energy, gas, and water consumption, nothing else.

INVOICE TEXT:
{text}

Return a JSON object with the following structure:
{{
  "detectedTypes": ["energy", "gas", "water"],
  "consumptionData": {{
    "energy": {{"value": 450, "unit": "kWh"}},
    "gas": {{"value": 120, "unit": "m³"}},
    "water": {{"value": 15, "unit": "m³"}}
  }},
  "provider": "Company Name",
  "invoiceDate": "YYYY-MM-DD"
}}

Include only the types actually present on the invoice."""

_ANALYSIS_SYSTEM_PROMPT = (
    "You are a CO2 emissions calculator presenting analysis results. You will be "
    "given the exact consumption data and emission factors that have already been "
    "calculated. Your job is to format this into a clear, readable report."
)

_ANALYSIS_USER_PROMPT = """Generate a formatted CO2 emissions analysis report using these EXACT values:

CONSUMPTION DATA:
{consumption}

DETECTED TYPES:
{detected_types}

EMISSION FACTORS:
{factors}

CALCULATED EMISSIONS:
{breakdown}

TOTAL EMISSIONS:
{total} kg CO₂

Format the report with clearly labeled sections for each utility type, including:
1. Consumption
2. Emission Factor
3. Calculation
4. Total Emissions

Do not recalculate anything. The numbers shown must exactly match the data provided."""


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    number: float | None = None
    if isinstance(value, int | float):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value.strip().replace(",", ""))
        if match:
            number = float(match.group(0))
    if number is None or not math.isfinite(number):
        return None
    return number


def parse_consumption(data: dict[str, Any] | None, normalized_type: str) -> ConsumptionData:
    if data is None:
        return ConsumptionData(detected_types=component_types(normalized_type))

    detected: list[str] = list(normalize_identified_types(data.get("detectedTypes")))
    if not detected:
        detected = component_types(normalized_type)

    readings: dict[str, Consumption] = {}
    raw_readings = data.get("consumptionData")
    if isinstance(raw_readings, dict):
        for key, entry in raw_readings.items():
            if not isinstance(key, str) or not isinstance(entry, dict):
                continue
            utility_type = normalize_identified_types([key])
            if not utility_type:
                continue
            unit = entry.get("unit")
            readings[utility_type[0]] = Consumption(
                value=_to_number(entry.get("value")),
                unit=unit.strip() if isinstance(unit, str) and unit.strip()
                else default_unit(utility_type[0]),
            )

    provider = data.get("provider")
    invoice_date = data.get("invoiceDate")
    return ConsumptionData(
        detected_types=detected,
        readings=readings,
        provider=provider if isinstance(provider, str) else None,
        invoice_date=invoice_date if isinstance(invoice_date, str) else None,
    )


def compute_emissions(
    consumption: ConsumptionData,
    factors: EmissionFactors = DEFAULT_EMISSION_FACTORS,
) -> tuple[dict[str, float], float]:
    """Apply the fixed factors to each detected reading.

    Returns the per-type breakdown and the total, both rounded to 3 decimals.
    A detection without any usable value never yields a zero total.
    """
    breakdown: dict[str, float] = {}
    for utility_type in consumption.detected_types:
        reading = consumption.readings.get(utility_type)
        if reading is None or not reading.value:
            continue
        breakdown[utility_type] = round(reading.value * factors.for_type(utility_type), 3)

    total = round(sum(breakdown.values()), 3)

    if total == 0 and consumption.detected_types:
        first = consumption.detected_types[0]
        breakdown[first] = round(factors.for_type(first) * PLACEHOLDER_QUANTITY, 3)
        total = round(sum(breakdown.values()), 3)
    return breakdown, total


class EmissionsCalculator:
    """Extracts consumption with the model and computes CO₂ locally.

    The model only reads figures off the invoice and formats the final
    report; every number in the result comes from `compute_emissions`.
    Errors are not caught here.
    """

    def __init__(
        self,
        client: CompletionClient,
        extraction_model: str,
        analysis_model: str,
        factors: EmissionFactors = DEFAULT_EMISSION_FACTORS,
    ) -> None:
        self._client = client
        self._extraction_model = extraction_model
        self._analysis_model = analysis_model
        self._factors = factors

    def calculate(self, text: str, normalized_type: str) -> EmissionResult:
        self._client.check_credentials()

        consumption = self.extract_consumption(text, normalized_type)
        breakdown, total = compute_emissions(consumption, self._factors)
        logger.info(
            "Calculated emissions",
            extra={"total_kg": total, "breakdown": breakdown},
        )

        analysis = self._generate_analysis(consumption, breakdown, total)
        consumption_value, unit, factor = self._primary_scalars(consumption)
        return EmissionResult(
            emissions=total,
            emission_breakdown=breakdown,
            emission_types=list(consumption.detected_types),
            analysis=analysis,
            consumption=consumption_value,
            consumption_unit=unit,
            emission_factor=factor,
        )

    def extract_consumption(self, text: str, normalized_type: str) -> ConsumptionData:
        raw = self._client.complete(
            model=self._extraction_model,
            system_prompt=_EXTRACTION_SYSTEM_PROMPT,
            user_prompt=_EXTRACTION_USER_PROMPT.format(text=text),
            max_tokens=800,
            temperature=0.0,
            json_mode=True,
        )
        data = parse_json_object(raw)
        if data is None:
            logger.warning("Consumption response was not a JSON object")
        return parse_consumption(data, normalized_type)

    def _generate_analysis(
        self,
        consumption: ConsumptionData,
        breakdown: dict[str, float],
        total: float,
    ) -> str:
        readings = {
            t: {"value": r.value, "unit": r.unit} for t, r in consumption.readings.items()
        }
        prompt = _ANALYSIS_USER_PROMPT.format(
            consumption=json.dumps(readings, indent=2, ensure_ascii=False),
            detected_types=json.dumps(consumption.detected_types, indent=2),
            factors=json.dumps(self._factors.as_dict(), indent=2),
            breakdown=json.dumps(breakdown, indent=2),
            total=total,
        )
        return self._client.complete(
            model=self._analysis_model,
            system_prompt=_ANALYSIS_SYSTEM_PROMPT,
            user_prompt=prompt,
            max_tokens=1000,
            temperature=0.0,
        )

    def _primary_scalars(self, consumption: ConsumptionData) -> tuple[str, str, str]:
        if not consumption.detected_types:
            return "", "", ""
        primary = consumption.detected_types[0]
        reading = consumption.readings.get(primary)
        if reading is None:
            return "", "", ""
        value = format_quantity(reading.value) if reading.value is not None else ""
        return (
            value,
            reading.unit,
            describe_factor(self._factors.for_type(primary), reading.unit),
        )

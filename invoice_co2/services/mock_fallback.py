"""Deterministic stand-in emissions used when the calculator is unavailable."""

from invoice_co2.services.emission_factors import (
    DEFAULT_EMISSION_FACTORS,
    EmissionFactors,
    default_unit,
    describe_factor,
    format_quantity,
)
from invoice_co2.services.models import EmissionResult

REFERENCE_CONSUMPTION: dict[str, float] = {
    "energy": 450,
    "water": 15,
    "gas": 120,
    "other": 100,
}

_NOTE = (
    "*Note: This is simulated data generated because the AI analysis service "
    "is currently unavailable.*"
)


def mock_types(normalized_type: str) -> list[str]:
    if "energy" in normalized_type and "gas" in normalized_type:
        return ["energy", "gas"]
    if "energy" in normalized_type and "water" in normalized_type:
        return ["energy", "water"]
    if normalized_type in ("energy", "water", "gas"):
        return [normalized_type]
    return ["other"]


def _section(utility_type: str, emissions: float, factors: EmissionFactors) -> str:
    title = utility_type.capitalize()
    quantity = format_quantity(REFERENCE_CONSUMPTION[utility_type])
    unit = default_unit(utility_type)
    factor = describe_factor(factors.for_type(utility_type), unit)
    return (
        f"### {title} Consumption\n{quantity} {unit}\n\n"
        f"### {title} Emission Factor\n{factor}\n\n"
        f"### {title} Calculation\n"
        f"{quantity} {unit} × {factor} = {format_quantity(emissions)} kg CO₂\n"
    )


def generate_mock(
    normalized_type: str,
    factors: EmissionFactors = DEFAULT_EMISSION_FACTORS,
) -> EmissionResult:
    types = mock_types(normalized_type)
    breakdown = {
        t: round(REFERENCE_CONSUMPTION[t] * factors.for_type(t), 3) for t in types
    }
    total = round(sum(breakdown.values()), 3)

    sections = "\n".join(_section(t, breakdown[t], factors) for t in types)
    analysis = (
        "## CO2 Emissions Analysis (MOCK DATA)\n\n"
        f"{sections}\n"
        f"### Total Emissions\n{format_quantity(total)} kg CO₂\n\n"
        f"{_NOTE}\n"
    )

    primary = types[0]
    unit = default_unit(primary)
    return EmissionResult(
        emissions=total,
        emission_breakdown=breakdown,
        emission_types=types,
        analysis=analysis,
        consumption=format_quantity(REFERENCE_CONSUMPTION[primary]),
        consumption_unit=unit,
        emission_factor=describe_factor(factors.for_type(primary), unit),
        simulated=True,
    )

from dataclasses import dataclass

from invoice_co2.services.models import UTILITY_TYPES


@dataclass(frozen=True)
class EmissionFactors:
    """kg CO₂ per unit of consumption.

    Shared by the calculator and the mock generator so real and simulated
    figures stay comparable.
    """

    energy: float = 0.233  # kWh
    gas: float = 2.0  # m³
    water: float = 0.344  # m³
    default: float = 0.5  # any other unit

    def for_type(self, utility_type: str) -> float:
        return {
            "energy": self.energy,
            "gas": self.gas,
            "water": self.water,
        }.get(utility_type, self.default)

    def as_dict(self) -> dict[str, float]:
        return {"energy": self.energy, "gas": self.gas, "water": self.water}


_DEFAULT_UNITS = {"energy": "kWh", "gas": "m³", "water": "m³"}


def default_unit(utility_type: str) -> str:
    return _DEFAULT_UNITS.get(utility_type, "units")


def describe_factor(factor: float, unit: str) -> str:
    """Render a factor the way it is stored on the invoice, e.g. '0.233 kg CO₂/kWh'.

    The generic "units" is written in the singular: '0.5 kg CO₂/unit'.
    """
    per = "unit" if unit == "units" else unit
    return f"{factor} kg CO₂/{per}"


def format_quantity(value: float) -> str:
    """450.0 -> '450', 104.85 -> '104.85'."""
    return f"{value:.3f}".rstrip("0").rstrip(".")


def component_types(normalized_type: str) -> list[str]:
    """Split a merged type such as 'energygas' into its utility types."""
    found = [t for t in UTILITY_TYPES if t != "other" and t in normalized_type]
    return found or ["other"]


DEFAULT_EMISSION_FACTORS = EmissionFactors()

"""Metric descriptors exported for the Sonnenbatterie."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, NamedTuple, Tuple

GAUGE = "gauge"
COUNTER = "counter"


@dataclass(frozen=True)
class MetricDescriptor:
    """Name, help text and label schema of one exported measurement."""

    name: str
    documentation: str
    labelnames: Tuple[str, ...] = ()
    kind: str = GAUGE

    def sample(self, value: float, *labelvalues: str) -> "Sample":
        if len(labelvalues) != len(self.labelnames):
            raise ValueError(
                f"{self.name} expects {len(self.labelnames)} label value(s), got {len(labelvalues)}"
            )
        return Sample(self, float(value), tuple(labelvalues))


class Sample(NamedTuple):
    descriptor: MetricDescriptor
    value: float
    labelvalues: Tuple[str, ...]


@dataclass(frozen=True)
class DescriptorSet:
    """The fixed catalog of exported measurements.

    Built once at startup by :func:`build_descriptors` and shared read-only by
    every scrape.
    """

    grid_voltage: MetricDescriptor
    grid_frequency: MetricDescriptor
    charge_percent: MetricDescriptor
    usable_charge_percent: MetricDescriptor
    consumption_power: MetricDescriptor
    consumption_energy: MetricDescriptor
    production_power: MetricDescriptor
    production_energy: MetricDescriptor
    last_fully_charged: MetricDescriptor
    full_charge_capacity: MetricDescriptor
    remaining_charge_capacity: MetricDescriptor

    def __iter__(self) -> Iterator[MetricDescriptor]:
        yield self.grid_voltage
        yield self.grid_frequency
        yield self.charge_percent
        yield self.usable_charge_percent
        yield self.consumption_power
        yield self.consumption_energy
        yield self.production_power
        yield self.production_energy
        yield self.last_fully_charged
        yield self.full_charge_capacity
        yield self.remaining_charge_capacity

    def status_descriptors(self) -> Tuple[MetricDescriptor, ...]:
        """Descriptors fed by the unauthenticated status endpoint."""
        return (
            self.grid_voltage,
            self.grid_frequency,
            self.charge_percent,
            self.usable_charge_percent,
            self.consumption_power,
            self.production_power,
            self.remaining_charge_capacity,
        )


def build_descriptors() -> DescriptorSet:
    phase = ("phase",)
    return DescriptorSet(
        grid_voltage=MetricDescriptor(
            "solar_battery_grid_voltage",
            "Solar battery Grid (AC) voltage",
            phase,
        ),
        grid_frequency=MetricDescriptor(
            "solar_battery_grid_frequency",
            "Solar battery Grid (AC) frequency in Hz",
        ),
        charge_percent=MetricDescriptor(
            "solar_battery_charge_percent",
            "Solar battery charge in percent",
        ),
        usable_charge_percent=MetricDescriptor(
            "solar_battery_usable_charge_percent",
            "Solar battery usable charge in percent",
        ),
        consumption_power=MetricDescriptor(
            "solar_battery_consumption_power",
            "Solar battery consumption power in watts",
            phase,
        ),
        consumption_energy=MetricDescriptor(
            "solar_battery_consumption_energy_total",
            "Total consumption measured in kWh",
            kind=COUNTER,
        ),
        production_power=MetricDescriptor(
            "solar_battery_production_power",
            "Solar battery production power in watts",
            phase,
        ),
        production_energy=MetricDescriptor(
            "solar_battery_production_energy_total",
            "Total production measured in kWh",
            kind=COUNTER,
        ),
        last_fully_charged=MetricDescriptor(
            "solar_battery_last_fully_charged_unix_timestamp",
            "Timestamp of last full charge",
        ),
        full_charge_capacity=MetricDescriptor(
            "solar_battery_full_charge_capacity",
            "Full charge capacity in watt hours",
        ),
        remaining_charge_capacity=MetricDescriptor(
            "solar_battery_remaining_charge_capacity",
            "Remaining charge capacity in watt hours",
        ),
    )


__all__ = [
    "COUNTER",
    "GAUGE",
    "DescriptorSet",
    "MetricDescriptor",
    "Sample",
    "build_descriptors",
]

"""Tests for the metric descriptor catalog."""

import dataclasses

import pytest

from sonnenbatterie_exporter.metrics import COUNTER, GAUGE, MetricDescriptor, build_descriptors


class TestDescriptorSet:
    def test_catalog_has_eleven_unique_descriptors(self):
        descriptors = list(build_descriptors())

        assert len(descriptors) == 11
        assert len({d.name for d in descriptors}) == 11

    def test_energy_totals_are_counters(self):
        kinds = {d.name: d.kind for d in build_descriptors()}

        assert kinds.pop("solar_battery_consumption_energy_total") == COUNTER
        assert kinds.pop("solar_battery_production_energy_total") == COUNTER
        assert set(kinds.values()) == {GAUGE}

    def test_phase_labels(self):
        labelled = {d.name for d in build_descriptors() if d.labelnames}

        assert labelled == {
            "solar_battery_grid_voltage",
            "solar_battery_consumption_power",
            "solar_battery_production_power",
        }
        assert build_descriptors().grid_voltage.labelnames == ("phase",)

    def test_status_descriptors_subset(self):
        descriptors = build_descriptors()
        status = descriptors.status_descriptors()

        assert len(status) == 7
        assert descriptors.last_fully_charged not in status
        assert descriptors.consumption_energy not in status

    def test_descriptors_are_immutable(self):
        descriptors = build_descriptors()
        with pytest.raises(dataclasses.FrozenInstanceError):
            descriptors.grid_voltage = descriptors.grid_frequency  # type: ignore[misc]
        with pytest.raises(dataclasses.FrozenInstanceError):
            descriptors.grid_voltage.name = "other"  # type: ignore[misc]


class TestSample:
    def test_sample_converts_value_to_float(self):
        descriptor = MetricDescriptor("x", "help", ("phase",))
        sample = descriptor.sample(5, "L1")

        assert sample.value == 5.0
        assert isinstance(sample.value, float)
        assert sample.labelvalues == ("L1",)
        assert sample.descriptor is descriptor

    def test_missing_label_value_rejected(self):
        with pytest.raises(ValueError):
            MetricDescriptor("x", "help", ("phase",)).sample(1.0)

    def test_extra_label_value_rejected(self):
        with pytest.raises(ValueError):
            MetricDescriptor("x", "help").sample(1.0, "L1")

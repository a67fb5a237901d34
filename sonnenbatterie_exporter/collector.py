"""Prometheus collector turning Sonnenbatterie API payloads into samples."""

from __future__ import annotations

import contextvars
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from .clients import SonnenbatterieClient, SonnenbatterieError
from .metrics import COUNTER, DescriptorSet, MetricDescriptor, Sample, build_descriptors
from .models import LatestDataRecord, PowerMeterRecord, StatusRecord

LOGGER = logging.getLogger("sonnenbatterie_exporter.collector")

DEFAULT_TIMEOUT = 15.0

# Status reports aggregate figures, the power meter reports per phase.
AGGREGATE_PHASE = ""


def _family(descriptor: MetricDescriptor) -> Metric:
    if descriptor.kind == COUNTER:
        return CounterMetricFamily(
            descriptor.name, descriptor.documentation, labels=descriptor.labelnames
        )
    return GaugeMetricFamily(descriptor.name, descriptor.documentation, labels=descriptor.labelnames)


def to_metric_families(samples: Iterable[Sample]) -> List[Metric]:
    """Group samples into one metric family per descriptor, in emission order."""
    families: Dict[MetricDescriptor, Metric] = {}
    for sample in samples:
        family = families.get(sample.descriptor)
        if family is None:
            family = families[sample.descriptor] = _family(sample.descriptor)
        family.add_metric(list(sample.labelvalues), sample.value)
    return list(families.values())


class SonnenbatterieCollector:
    """Custom collector fetching fresh device state on every scrape.

    The status endpoint is always queried. The power meter and latest data
    endpoints need an API token and are skipped when the client has none.
    Every fetch is abandoned once its own timeout passes, and a failing
    fetch only drops that step's samples from the scrape.
    """

    def __init__(
        self,
        client: SonnenbatterieClient,
        descriptors: Optional[DescriptorSet] = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._descriptors = descriptors or build_descriptors()
        self._timeout = timeout
        self._clock = clock

    @property
    def descriptors(self) -> DescriptorSet:
        return self._descriptors

    def describe(self) -> List[Metric]:
        return [_family(descriptor) for descriptor in self._descriptors.status_descriptors()]

    def collect(self) -> Iterable[Metric]:
        return to_metric_families(self.scrape())

    def scrape(self) -> List[Sample]:
        """Run one scrape cycle and return the samples of the steps that succeeded."""
        samples = self._step("status", self._client.get_status, self._status_samples)
        if self._client.has_token():
            samples += self._step(
                "power meter", self._client.get_power_meter, self._power_meter_samples
            )
            samples += self._step(
                "latest data", self._client.get_latest_data, self._latest_data_samples
            )
        return samples

    # ------------------------------------------------------------------
    def _step(
        self,
        name: str,
        fetch: Callable[[float], Any],
        to_samples: Callable[[Any], List[Sample]],
    ) -> List[Sample]:
        start = time.monotonic()
        # The fetch runs on its own thread so a device that keeps the
        # connection trickling cannot hold the scrape past the deadline.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"sonnenbatterie-{name}")
        try:
            future = executor.submit(contextvars.copy_context().run, fetch, self._timeout)
            return to_samples(future.result(timeout=self._timeout))
        except FutureTimeoutError:
            LOGGER.error("failed to get %s: no answer within %ss", name, self._timeout)
        except SonnenbatterieError as exc:
            LOGGER.error("failed to get %s: %s", name, exc)
        except Exception as exc:
            LOGGER.exception("unexpected error collecting %s: %s", name, exc)
        finally:
            executor.shutdown(wait=False)
            LOGGER.debug("%s step finished in %.3fs", name, time.monotonic() - start)
        return []

    def _status_samples(self, status: StatusRecord) -> List[Sample]:
        d = self._descriptors
        return [
            d.grid_voltage.sample(status.uac, AGGREGATE_PHASE),
            d.grid_frequency.sample(status.fac),
            d.charge_percent.sample(status.rsoc),
            d.usable_charge_percent.sample(status.usoc),
            d.consumption_power.sample(status.consumption_w, AGGREGATE_PHASE),
            d.production_power.sample(status.production_w, AGGREGATE_PHASE),
            d.remaining_charge_capacity.sample(status.remaining_capacity_wh),
        ]

    def _power_meter_samples(
        self, records: Tuple[PowerMeterRecord, PowerMeterRecord]
    ) -> List[Sample]:
        production, consumption = records
        d = self._descriptors
        return [
            d.grid_voltage.sample(consumption.v_l1_n, "L1"),
            d.grid_voltage.sample(consumption.v_l2_n, "L2"),
            d.grid_voltage.sample(consumption.v_l3_n, "L3"),
            d.grid_voltage.sample(consumption.v_l1_l2, "L1-L2"),
            d.grid_voltage.sample(consumption.v_l2_l3, "L2-L3"),
            d.grid_voltage.sample(consumption.v_l3_l1, "L3-L1"),
            d.consumption_power.sample(consumption.w_l1, "L1"),
            d.consumption_power.sample(consumption.w_l2, "L2"),
            d.consumption_power.sample(consumption.w_l3, "L3"),
            d.consumption_energy.sample(consumption.kwh_imported),
            d.production_power.sample(production.w_l1, "L1"),
            d.production_power.sample(production.w_l2, "L2"),
            d.production_power.sample(production.w_l3, "L3"),
            d.production_energy.sample(production.kwh_imported),
        ]

    def _latest_data_samples(self, latest: LatestDataRecord) -> List[Sample]:
        # Wall clock at fetch time, not the device's sample time.
        last_full_charge = self._clock() - latest.ic_status.seconds_since_full_charge
        d = self._descriptors
        return [
            d.last_fully_charged.sample(last_full_charge),
            d.full_charge_capacity.sample(latest.full_charge_capacity),
        ]


__all__ = ["DEFAULT_TIMEOUT", "SonnenbatterieCollector", "to_metric_families"]

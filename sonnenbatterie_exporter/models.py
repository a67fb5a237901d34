"""Typed records for the Sonnenbatterie JSON API payloads."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field


class _DeviceRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class StatusRecord(_DeviceRecord):
    """Payload of ``/api/v2/status``."""

    uac: float = Field(..., alias="Uac", description="Grid voltage in volts")
    fac: float = Field(..., alias="Fac", description="Grid frequency in Hz")
    rsoc: float = Field(..., alias="RSOC", description="Relative state of charge in percent")
    usoc: float = Field(..., alias="USOC", description="Usable state of charge in percent")
    consumption_w: float = Field(..., alias="Consumption_W")
    production_w: float = Field(..., alias="Production_W")
    remaining_capacity_wh: float = Field(..., alias="RemainingCapacity_Wh")


class PowerMeterRecord(_DeviceRecord):
    """One direction (production or consumption) of ``/api/v2/powermeter``."""

    direction: str
    v_l1_n: float
    v_l2_n: float
    v_l3_n: float
    v_l1_l2: float
    v_l2_l3: float
    v_l3_l1: float
    w_l1: float
    w_l2: float
    w_l3: float
    kwh_imported: float


class IcStatus(_DeviceRecord):
    seconds_since_full_charge: float = Field(..., alias="secondssincefullcharge")


class LatestDataRecord(_DeviceRecord):
    """Payload of ``/api/v2/latestdata``."""

    full_charge_capacity: float = Field(..., alias="FullChargeCapacity")
    ic_status: IcStatus


def parse_power_meter(payload: Any) -> Tuple[PowerMeterRecord, PowerMeterRecord]:
    """Split a power meter payload into ``(production, consumption)`` records.

    The device answers with a list of records (some firmware versions use an
    object keyed by meter index instead). Both directions must be present.

    Raises:
        ValueError: If the payload shape is wrong or a direction is missing.
    """

    if isinstance(payload, dict):
        entries: List[Any] = list(payload.values())
    elif isinstance(payload, list):
        entries = payload
    else:
        raise ValueError(f"unexpected power meter payload type {type(payload).__name__}")

    by_direction: Dict[str, PowerMeterRecord] = {}
    for entry in entries:
        record = PowerMeterRecord.model_validate(entry)
        by_direction.setdefault(record.direction.lower(), record)

    missing = [name for name in ("production", "consumption") if name not in by_direction]
    if missing:
        raise ValueError(f"power meter payload lacks direction(s): {', '.join(missing)}")
    return by_direction["production"], by_direction["consumption"]


__all__ = [
    "IcStatus",
    "LatestDataRecord",
    "PowerMeterRecord",
    "StatusRecord",
    "parse_power_meter",
]

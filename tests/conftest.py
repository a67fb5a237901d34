"""Shared test fixtures and configuration."""

from unittest.mock import Mock

import pytest

from sonnenbatterie_exporter.clients import SonnenbatterieClient
from sonnenbatterie_exporter.config import ExporterConfig
from sonnenbatterie_exporter.models import LatestDataRecord, StatusRecord, parse_power_meter

ENV_VARS = (
    "SONNENBATTERIE_URL",
    "SONNENBATTERIE_TOKEN",
    "SONNENBATTERIE_LISTEN_ADDRESS",
    "SONNENBATTERIE_METRICS_PATH",
    "SONNENBATTERIE_REQUEST_TIMEOUT",
    "SONNENBATTERIE_LOG_LEVEL",
    "SONNENBATTERIE_ENV_FILE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's own SONNENBATTERIE_* variables out of the tests."""
    for name in ENV_VARS:
        # setenv first so teardown also removes values loaded from env files
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def status_payload():
    return {
        "Uac": 230.0,
        "Fac": 50.0,
        "RSOC": 80,
        "USOC": 75,
        "Consumption_W": 500,
        "Production_W": 1200,
        "RemainingCapacity_Wh": 4000,
        "Timestamp": "2023-11-14 22:13:20",
        "OperatingMode": "2",
    }


@pytest.fixture
def power_meter_payload():
    return [
        {
            "direction": "production",
            "v_l1_n": 231.1,
            "v_l2_n": 231.2,
            "v_l3_n": 231.3,
            "v_l1_l2": 400.1,
            "v_l2_l3": 400.2,
            "v_l3_l1": 400.3,
            "w_l1": 100.0,
            "w_l2": 200.0,
            "w_l3": 300.0,
            "w_total": 600.0,
            "kwh_imported": 1234.5,
            "kwh_exported": 0.0,
        },
        {
            "direction": "consumption",
            "v_l1_n": 230.1,
            "v_l2_n": 230.2,
            "v_l3_n": 230.3,
            "v_l1_l2": 398.1,
            "v_l2_l3": 398.2,
            "v_l3_l1": 398.3,
            "w_l1": 10.0,
            "w_l2": 20.0,
            "w_l3": 30.0,
            "w_total": 60.0,
            "kwh_imported": 5678.9,
            "kwh_exported": 0.0,
        },
    ]


@pytest.fixture
def latest_data_payload():
    return {
        "FullChargeCapacity": 10000,
        "ic_status": {"secondssincefullcharge": 3600, "nrbatterymodules": 4},
    }


@pytest.fixture
def make_client(status_payload, power_meter_payload, latest_data_payload):
    """Build a mock device client.

    Pass an exception instance for ``status``, ``power_meter`` or
    ``latest_data`` to make that fetch fail.
    """

    def _make(has_token=False, status=None, power_meter=None, latest_data=None):
        client = Mock(spec=SonnenbatterieClient)
        client.base_url = "http://battery.local"
        client.has_token.return_value = has_token

        def configure(method, override, record):
            if isinstance(override, BaseException):
                method.side_effect = override
            else:
                method.return_value = override if override is not None else record

        configure(client.get_status, status, StatusRecord.model_validate(status_payload))
        configure(client.get_power_meter, power_meter, parse_power_meter(power_meter_payload))
        configure(
            client.get_latest_data,
            latest_data,
            LatestDataRecord.model_validate(latest_data_payload),
        )
        return client

    return _make


@pytest.fixture
def test_config():
    return ExporterConfig(
        url="http://battery.local",
        token="secret-token",
        listen_address=":9110",
        metrics_path="/metrics",
        request_timeout=15.0,
        log_level="INFO",
    )

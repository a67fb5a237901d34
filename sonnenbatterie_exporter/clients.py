"""HTTP client for the Sonnenbatterie local JSON API."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, Optional, Tuple
from urllib.parse import urlsplit

import requests
from requests import exceptions as requests_exceptions
from urllib3 import exceptions as urllib3_exceptions

from .models import LatestDataRecord, PowerMeterRecord, StatusRecord, parse_power_meter

LOGGER = logging.getLogger("sonnenbatterie_exporter.clients")

STATUS_PATH = "/api/v2/status"
POWER_METER_PATH = "/api/v2/powermeter"
LATEST_DATA_PATH = "/api/v2/latestdata"
TOKEN_HEADER = "Auth-Token"


class SonnenbatterieError(RuntimeError):
    """Base class for failures talking to the battery."""


class DeviceUnavailableError(SonnenbatterieError):
    """Raised when the battery cannot be reached or does not answer in time."""


class DeviceResponseError(SonnenbatterieError):
    """Raised when the battery answers with an error status or a malformed payload."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DeviceAuthenticationError(DeviceResponseError):
    """Raised when an authenticated endpoint is used without a valid token."""


_NETWORK_ERRORS = (
    requests_exceptions.ConnectionError,
    requests_exceptions.Timeout,
    urllib3_exceptions.HTTPError,
    ConnectionError,
    TimeoutError,
)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and every exception reachable through ``__cause__``/``__context__`` once."""
    pending = [exc]
    seen = set()
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        for linked in (current.__context__, current.__cause__):
            if linked is not None:
                pending.append(linked)


def _is_connection_error(exc: BaseException) -> bool:
    """Return ``True`` if a network failure caused ``exc``, however deeply it was wrapped."""
    return any(isinstance(link, _NETWORK_ERRORS) for link in _exception_chain(exc))


class SonnenbatterieClient:
    """Thin binding for the three API endpoints used by the exporter.

    ``/api/v2/status`` is public; ``/api/v2/powermeter`` and
    ``/api/v2/latestdata`` require the API token configured in the battery's
    web interface, sent in the ``Auth-Token`` header.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        parts = urlsplit(base_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"invalid sonnenbatterie url {base_url!r}")
        self._base_url = base_url.rstrip("/")
        self._token = token or None
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def has_token(self) -> bool:
        return self._token is not None

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    def get_status(self, timeout: float) -> StatusRecord:
        payload = self._get_json(STATUS_PATH, timeout, authenticated=False)
        return self._validate("status", lambda: StatusRecord.model_validate(payload))

    def get_power_meter(self, timeout: float) -> Tuple[PowerMeterRecord, PowerMeterRecord]:
        """Return the ``(production, consumption)`` power meter records."""
        payload = self._get_json(POWER_METER_PATH, timeout, authenticated=True)
        return self._validate("power meter", lambda: parse_power_meter(payload))

    def get_latest_data(self, timeout: float) -> LatestDataRecord:
        payload = self._get_json(LATEST_DATA_PATH, timeout, authenticated=True)
        return self._validate("latest data", lambda: LatestDataRecord.model_validate(payload))

    # ------------------------------------------------------------------
    def _get_json(self, path: str, timeout: float, *, authenticated: bool) -> Any:
        headers = {"Accept": "application/json"}
        if authenticated:
            if self._token is None:
                raise DeviceAuthenticationError(f"{path} requires an API token")
            headers[TOKEN_HEADER] = self._token

        url = f"{self._base_url}{path}"
        LOGGER.debug("GET %s (timeout=%ss)", url, timeout)
        try:
            response = self._session.get(url, headers=headers, timeout=timeout)
        except Exception as exc:
            if _is_connection_error(exc):
                raise DeviceUnavailableError(f"Unable to reach sonnenbatterie at {url}: {exc}") from exc
            raise

        if response.status_code in (401, 403):
            raise DeviceAuthenticationError(
                f"sonnenbatterie rejected the API token for {path}: {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 300:
            raise DeviceResponseError(
                f"sonnenbatterie request {path} failed: {response.status_code} {response.text.strip()}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise DeviceResponseError(f"sonnenbatterie returned invalid JSON for {path}") from exc

    @staticmethod
    def _validate(what: str, parse: Callable[[], Any]) -> Any:
        try:
            return parse()
        except ValueError as exc:
            raise DeviceResponseError(f"malformed {what} payload: {exc}") from exc


__all__ = [
    "DeviceAuthenticationError",
    "DeviceResponseError",
    "DeviceUnavailableError",
    "SonnenbatterieClient",
    "SonnenbatterieError",
]

"""Configuration helpers for the Sonnenbatterie exporter."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

DEFAULT_ENV_PATH = Path(__file__).resolve().parent / "sonnenbatterie.env"
DEFAULT_LISTEN_ADDRESS = ":9110"
DEFAULT_METRICS_PATH = "/metrics"
DEFAULT_REQUEST_TIMEOUT = 15.0

REDACTED = "***redacted***"

LOGGER = logging.getLogger("sonnenbatterie_exporter.config")


@dataclass
class ExporterConfig:
    """Configuration for the exporter process."""

    url: str
    token: Optional[str]
    listen_address: str
    metrics_path: str
    request_timeout: float
    log_level: str


_ENV_LINE = re.compile(r"^\s*(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?P<value>.*?)\s*$")


def read_env_file(path: Path) -> Dict[str, str]:
    """Parse ``KEY=VALUE`` lines from ``path``; blank lines and ``#`` comments are skipped."""

    values: Dict[str, str] = {}
    for number, raw_line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not raw_line.strip() or raw_line.lstrip().startswith("#"):
            continue
        match = _ENV_LINE.match(raw_line)
        if match is None:
            LOGGER.warning("%s:%d: ignoring line without KEY=VALUE", path, number)
            continue
        value = match.group("value")
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        values[match.group("key")] = value
    return values


def load_env_file(path: Path) -> Dict[str, str]:
    """Apply ``path`` to :mod:`os.environ` without overriding variables already set.

    Returns the variables that were actually applied.
    """

    applied: Dict[str, str] = {}
    for key, value in read_env_file(path).items():
        if key not in os.environ:
            os.environ[key] = applied[key] = value
    return applied


def load_environment(explicit: Optional[str] = None) -> Optional[Path]:
    """Load the first existing env file and return its path.

    An env file named explicitly (argument or ``SONNENBATTERIE_ENV_FILE``) must
    exist. Otherwise ``./.env`` and the packaged default are tried in turn.
    """

    named = explicit or os.environ.get("SONNENBATTERIE_ENV_FILE")
    if named:
        path = Path(named)
        if not path.is_file():
            raise RuntimeError(f"env file {named!r} does not exist")
        candidates = [path]
    else:
        candidates = [Path.cwd() / ".env", DEFAULT_ENV_PATH]

    for candidate in candidates:
        if candidate.is_file():
            applied = load_env_file(candidate)
            LOGGER.debug("loaded %d variable(s) from %s", len(applied), candidate)
            return candidate
    return None


def _timeout_from_env() -> float:
    raw = os.environ.get("SONNENBATTERIE_REQUEST_TIMEOUT", "").strip()
    if not raw:
        return DEFAULT_REQUEST_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"SONNENBATTERIE_REQUEST_TIMEOUT is not a number: {raw!r}") from None


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split ``host:port`` into its parts; an empty host binds all interfaces."""

    host, sep, port = address.rpartition(":")
    if not sep:
        raise RuntimeError(f"Invalid listen address {address!r}, expected [host]:port")
    try:
        port_number = int(port)
    except ValueError:
        raise RuntimeError(f"Invalid port in listen address {address!r}") from None
    if not 0 < port_number < 65536:
        raise RuntimeError(f"Port out of range in listen address {address!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, port_number


def build_config(
    *,
    url: Optional[str] = None,
    token: Optional[str] = None,
    listen_address: Optional[str] = None,
    metrics_path: Optional[str] = None,
    request_timeout: Optional[float] = None,
    log_level: Optional[str] = None,
) -> ExporterConfig:
    """Construct an :class:`ExporterConfig` from arguments and environment.

    Explicit arguments (usually command line flags) take precedence over the
    ``SONNENBATTERIE_*`` environment variables. An empty token is treated as
    unset so the environment value is used instead.
    """

    cfg = ExporterConfig(
        url=url or os.environ.get("SONNENBATTERIE_URL", ""),
        token=token or os.environ.get("SONNENBATTERIE_TOKEN") or None,
        listen_address=listen_address
        or os.environ.get("SONNENBATTERIE_LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS),
        metrics_path=metrics_path
        or os.environ.get("SONNENBATTERIE_METRICS_PATH", DEFAULT_METRICS_PATH),
        request_timeout=request_timeout
        if request_timeout is not None
        else _timeout_from_env(),
        log_level=log_level or os.environ.get("SONNENBATTERIE_LOG_LEVEL", "INFO"),
    )

    if not cfg.url:
        raise RuntimeError("no sonnenbatterie-url set (use --sonnenbatterie-url or SONNENBATTERIE_URL)")
    if cfg.request_timeout <= 0:
        raise RuntimeError("SONNENBATTERIE_REQUEST_TIMEOUT must be greater than zero")
    if not cfg.metrics_path.startswith("/") or cfg.metrics_path == "/":
        raise RuntimeError("metrics path must start with '/' and must not be '/'")
    parse_listen_address(cfg.listen_address)

    return cfg


def redact_config(cfg: ExporterConfig) -> dict:
    """Return a sanitized view of ``cfg`` suitable for JSON responses."""

    return {
        "url": cfg.url,
        "token": REDACTED if cfg.token else None,
        "listen_address": cfg.listen_address,
        "metrics_path": cfg.metrics_path,
        "request_timeout": cfg.request_timeout,
        "log_level": cfg.log_level,
    }

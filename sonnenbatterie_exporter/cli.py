"""Command line entry point for the Sonnenbatterie exporter."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import Metric

from .clients import SonnenbatterieClient
from .collector import SonnenbatterieCollector, to_metric_families
from .config import (
    DEFAULT_LISTEN_ADDRESS,
    DEFAULT_METRICS_PATH,
    ExporterConfig,
    build_config,
    configure_logging,
    load_environment,
    parse_listen_address,
)

LOGGER = logging.getLogger("sonnenbatterie_exporter.cli")


def _config_from_args(args: argparse.Namespace) -> ExporterConfig:
    load_environment(args.env_file)
    config = build_config(
        url=args.sonnenbatterie_url,
        token=args.sonnenbatterie_token,
        listen_address=getattr(args, "listen_address", None),
        metrics_path=getattr(args, "metrics_path", None),
        request_timeout=args.request_timeout,
        log_level=args.log_level,
    )
    configure_logging(config.log_level)
    return config


def _serve_command(args: argparse.Namespace) -> int:
    import uvicorn

    from .app import create_app

    config = _config_from_args(args)
    host, port = parse_listen_address(config.listen_address)
    LOGGER.info("Listening on %s:%d, metrics at %s", host, port, config.metrics_path)
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_level=config.log_level.lower(),
        access_log=False,
    )
    return 0


class _Snapshot:
    """Collector replaying metric families that were already scraped."""

    def __init__(self, families: List[Metric]) -> None:
        self._families = families

    def collect(self) -> List[Metric]:
        return self._families


def _scrape_command(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    client = SonnenbatterieClient(config.url, config.token)
    try:
        collector = SonnenbatterieCollector(client, timeout=config.request_timeout)
        samples = collector.scrape()
    finally:
        client.close()

    registry = CollectorRegistry()
    registry.register(_Snapshot(to_metric_families(samples)))
    sys.stdout.write(generate_latest(registry).decode("utf-8"))
    status_emitted = any(
        sample.descriptor in collector.descriptors.status_descriptors() for sample in samples
    )
    return 0 if status_emitted else 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--env-file", help="Path to .env file overriding defaults")
    parser.add_argument(
        "--sonnenbatterie-url",
        help="URL for the Sonnenbatterie storage battery (env SONNENBATTERIE_URL)",
    )
    parser.add_argument(
        "--sonnenbatterie-token",
        help="Token for the Sonnenbatterie API (env SONNENBATTERIE_TOKEN)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        help="Timeout in seconds for each device request (default 15)",
    )
    parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug"],
        help="Log level (env SONNENBATTERIE_LOG_LEVEL)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prometheus exporter for the Sonnenbatterie")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Serve the metrics endpoint over HTTP")
    _add_common_arguments(serve)
    serve.add_argument(
        "--listen-address",
        help=f"The address to listen on for HTTP requests (default {DEFAULT_LISTEN_ADDRESS})",
    )
    serve.add_argument(
        "--metrics-path",
        help=f"The path to mount the metrics endpoint (default {DEFAULT_METRICS_PATH})",
    )
    serve.set_defaults(func=_serve_command)

    scrape = subparsers.add_parser("scrape", help="Scrape the battery once and print the metrics")
    _add_common_arguments(scrape)
    scrape.set_defaults(func=_scrape_command)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except Exception as exc:  # pragma: no cover - CLI surface
        logging.getLogger("sonnenbatterie_exporter.cli").exception("Command failed: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

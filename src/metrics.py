"""
Prometheus metrics for the operator.

The only metric is a gauge of virtual machines currently in their polling
lifecycle. It is created per collector registry so tests can use a fresh one.
"""

import logging
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Gauge, start_http_server

logger = logging.getLogger(__name__)

SYNCING_VMS_METRIC = "virtual_machine_syncing_vms"
SYNCING_VMS_HELP = "Number of virtual machines currently syncing"


def create_syncing_gauge(registry: Optional[CollectorRegistry] = None) -> Gauge:
    """
    Create and register the syncing virtual machines gauge.

    Args:
        registry: Collector registry to register with (default: the global one)

    Returns:
        The registered Gauge
    """
    return Gauge(
        SYNCING_VMS_METRIC,
        SYNCING_VMS_HELP,
        registry=registry if registry is not None else REGISTRY,
    )


def start_metrics_server(
    port: int, registry: Optional[CollectorRegistry] = None
) -> None:
    """Expose the registry over HTTP on the given port."""
    start_http_server(port, registry=registry if registry is not None else REGISTRY)
    logger.info(f"Serving Prometheus metrics on port {port}")

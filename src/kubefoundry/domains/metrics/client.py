"""Prometheus metrics scraping for deployments."""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import httpx

from kubefoundry.config import get_config
from kubefoundry.domains.metrics.models import MetricsResponse, RawMetricValue
from kubefoundry.domains.providers.models import MetricDefinition, MetricsEndpointConfig

if TYPE_CHECKING:
    from kubefoundry.config import KubeFoundryConfig
    from kubefoundry.domains.providers.base import Provider

logger = logging.getLogger(__name__)

OFF_CLUSTER_MESSAGE = (
    "Metrics are only available when KubeFoundry is deployed inside the Kubernetes cluster."
)
METRIC_SUFFIXES = ("_sum", "_count", "_bucket", "_total")

_SAMPLE_PATTERN = re.compile(
    r"^(?P<name>[a-zA-Z_:][a-zA-Z0-9_:]*)(?:\{(?P<labels>.*)\})?\s+(?P<value>\S+)"
)
_LABEL_PATTERN = re.compile(r'([a-zA-Z_][a-zA-Z0-9_]*)="((?:[^"\\]|\\.)*)"')


def build_metrics_url(name: str, namespace: str, endpoint: MetricsEndpointConfig) -> str:
    """In-cluster URL of a deployment's metrics endpoint."""
    service = endpoint.service_name_pattern.replace("{name}", name)
    return f"http://{service}.{namespace}.svc.cluster.local:{endpoint.port}{endpoint.endpoint_path}"


def _unescape(value: str) -> str:
    return value.replace('\\"', '"').replace("\\n", "\n").replace("\\\\", "\\")


def parse_prometheus_text(text: str) -> list[RawMetricValue]:
    """Parse the Prometheus text exposition format.

    Comment lines and samples whose value is not a number are skipped.
    """
    samples = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _SAMPLE_PATTERN.match(line)
        if not match:
            continue
        try:
            value = float(match.group("value"))
        except ValueError:
            continue
        if math.isnan(value):
            continue
        labels = {
            key: _unescape(raw) for key, raw in _LABEL_PATTERN.findall(match.group("labels") or "")
        }
        samples.append(RawMetricValue(name=match.group("name"), value=value, labels=labels))
    return samples


def extract_key_metrics(
    samples: list[RawMetricValue], key_metrics: list[MetricDefinition] | set[str]
) -> list[RawMetricValue]:
    """Keep samples of the key metrics, including histogram and counter series."""
    names = {m.name if isinstance(m, MetricDefinition) else m for m in key_metrics}
    expanded = set(names)
    for name in names:
        expanded.update(f"{name}{suffix}" for suffix in METRIC_SUFFIXES)
    return [sample for sample in samples if sample.name in expanded]


def map_error_message(error: Exception) -> str:
    """Turn a scrape failure into advice for the caller."""
    message = str(error)
    lowered = message.lower()

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 404:
            return "Metrics endpoint not found. The deployment may not expose metrics."
        if status == 503:
            return "Service unavailable. The deployment is starting up."
        return f"HTTP {status} from metrics endpoint"
    if isinstance(error, httpx.TimeoutException):
        return "Request timed out. The deployment may be under heavy load or not responding."
    if any(
        marker in lowered
        for marker in (
            "name or service not known",
            "nodename nor servname",
            "getaddrinfo",
            "temporary failure in name resolution",
        )
    ):
        return (
            "Cannot resolve service DNS. KubeFoundry must be running in-cluster to fetch metrics."
        )
    if "refused" in lowered:
        return "Connection refused. The deployment may not be ready yet."
    if isinstance(error, httpx.TransportError):
        return "Cannot connect to metrics endpoint. KubeFoundry must be running in-cluster."
    return message


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MetricsClient:
    """Scrapes deployment metrics endpoints over HTTP.

    Usage:
        async with MetricsClient() as client:
            response = await client.fetch_metrics(provider, "my-model", "default")
    """

    def __init__(self, config: KubeFoundryConfig | None = None) -> None:
        self._config = config or get_config()
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._config.metrics_timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> MetricsClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def fetch_metrics(
        self,
        provider: Provider,
        name: str,
        namespace: str,
        deployment_config: Any = None,
        key_only: bool = True,
    ) -> MetricsResponse:
        """Scrape a deployment's metrics.

        Never raises for scrape failures; the response carries the reason.

        Args:
            provider: Provider the deployment belongs to.
            name: Deployment name.
            namespace: Deployment namespace.
            deployment_config: Validated config, when known. Lets providers
                with several serving paths pick the right endpoint.
            key_only: Keep only the provider's key metrics.
        """
        if not self._config.running_in_cluster:
            return MetricsResponse(
                available=False,
                error=OFF_CLUSTER_MESSAGE,
                timestamp=_now(),
                running_off_cluster=True,
            )

        endpoint = provider.get_metrics_config(deployment_config)
        if endpoint is None:
            return MetricsResponse(
                available=False,
                error=f"{provider.name} does not expose metrics",
                timestamp=_now(),
            )

        url = build_metrics_url(name, namespace, endpoint)
        client = await self._get_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch metrics from {url}: {e}")
            return MetricsResponse(available=False, error=map_error_message(e), timestamp=_now())

        samples = parse_prometheus_text(response.text)
        if key_only:
            samples = extract_key_metrics(samples, provider.get_key_metrics())
        logger.debug(f"Fetched {len(samples)} metric sample(s) for '{name}' from {url}")
        return MetricsResponse(available=True, timestamp=_now(), metrics=samples)

"""Tests for MetricsClient and Prometheus parsing."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from kubefoundry.config import KubeFoundryConfig
from kubefoundry.domains.metrics.client import (
    OFF_CLUSTER_MESSAGE,
    MetricsClient,
    build_metrics_url,
    extract_key_metrics,
    map_error_message,
    parse_prometheus_text,
)
from kubefoundry.domains.providers.dynamo import DynamoProvider
from kubefoundry.domains.providers.models import MetricsEndpointConfig

SAMPLE_METRICS = """\
# HELP vllm:num_requests_running Number of requests currently running on GPU.
# TYPE vllm:num_requests_running gauge
vllm:num_requests_running{model_name="Qwen/Qwen3-0.6B"} 3.0
vllm:num_requests_waiting{model_name="Qwen/Qwen3-0.6B"} 0.0
vllm:e2e_request_latency_seconds_bucket{le="0.5",model_name="Qwen/Qwen3-0.6B"} 12.0
vllm:e2e_request_latency_seconds_sum{model_name="Qwen/Qwen3-0.6B"} 4.2
process_cpu_seconds_total 51.3
vllm:gpu_cache_usage_perc NaN
broken_line not_a_number
"""


@pytest.fixture
def in_cluster() -> MagicMock:
    token_path = MagicMock()
    token_path.exists.return_value = True
    return token_path


def _response(status_code: int, text: str = "") -> httpx.Response:
    request = httpx.Request("GET", "http://qwen-frontend.default.svc.cluster.local:8000/metrics")
    return httpx.Response(status_code, text=text, request=request)


class TestParsing:
    """Test Prometheus text parsing."""

    def test_build_metrics_url(self) -> None:
        endpoint = MetricsEndpointConfig(port=8000, service_name_pattern="{name}-vllm")

        url = build_metrics_url("phi", "kaito-workspace", endpoint)

        assert url == "http://phi-vllm.kaito-workspace.svc.cluster.local:8000/metrics"

    def test_parse_skips_comments_and_invalid_values(self) -> None:
        samples = parse_prometheus_text(SAMPLE_METRICS)

        names = [s.name for s in samples]
        assert names == [
            "vllm:num_requests_running",
            "vllm:num_requests_waiting",
            "vllm:e2e_request_latency_seconds_bucket",
            "vllm:e2e_request_latency_seconds_sum",
            "process_cpu_seconds_total",
        ]
        assert samples[0].value == 3.0
        assert samples[0].labels == {"model_name": "Qwen/Qwen3-0.6B"}
        assert samples[2].labels["le"] == "0.5"

    def test_parse_escaped_label(self) -> None:
        samples = parse_prometheus_text('requests{path="/v1/\\"chat\\""} 1')

        assert samples[0].labels == {"path": '/v1/"chat"'}

    def test_extract_key_metrics_includes_series(self) -> None:
        samples = parse_prometheus_text(SAMPLE_METRICS)

        kept = extract_key_metrics(
            samples, {"vllm:num_requests_running", "vllm:e2e_request_latency_seconds"}
        )

        assert [s.name for s in kept] == [
            "vllm:num_requests_running",
            "vllm:e2e_request_latency_seconds_bucket",
            "vllm:e2e_request_latency_seconds_sum",
        ]


class TestErrorMessages:
    def test_not_found(self) -> None:
        error = httpx.HTTPStatusError("404", request=MagicMock(), response=_response(404))
        assert map_error_message(error) == (
            "Metrics endpoint not found. The deployment may not expose metrics."
        )

    def test_other_status(self) -> None:
        error = httpx.HTTPStatusError("500", request=MagicMock(), response=_response(500))
        assert map_error_message(error) == "HTTP 500 from metrics endpoint"

    def test_timeout(self) -> None:
        assert map_error_message(httpx.ReadTimeout("timed out")).startswith("Request timed out")

    def test_dns_failure(self) -> None:
        error = httpx.ConnectError("[Errno -2] Name or service not known")
        assert map_error_message(error).startswith("Cannot resolve service DNS")

    def test_connection_refused(self) -> None:
        error = httpx.ConnectError("[Errno 111] Connection refused")
        assert map_error_message(error) == (
            "Connection refused. The deployment may not be ready yet."
        )

    def test_other_transport_error(self) -> None:
        error = httpx.RemoteProtocolError("peer closed connection")
        assert map_error_message(error) == (
            "Cannot connect to metrics endpoint. KubeFoundry must be running in-cluster."
        )


class TestMetricsClient:
    """Test metrics scraping."""

    @pytest.mark.asyncio
    async def test_off_cluster(self) -> None:
        token_path = MagicMock()
        token_path.exists.return_value = False
        client = MetricsClient(KubeFoundryConfig())

        with (
            patch("kubefoundry.config.IN_CLUSTER_TOKEN_PATH", token_path),
            patch.object(client, "_get_client") as mock_get_client,
        ):
            response = await client.fetch_metrics(DynamoProvider(), "qwen", "default")

        assert response.available is False
        assert response.running_off_cluster is True
        assert response.error == OFF_CLUSTER_MESSAGE
        mock_get_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_key_metrics(self, in_cluster: MagicMock) -> None:
        client = MetricsClient(KubeFoundryConfig())

        with (
            patch("kubefoundry.config.IN_CLUSTER_TOKEN_PATH", in_cluster),
            patch.object(client, "_get_client") as mock_get_client,
        ):
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(return_value=_response(200, SAMPLE_METRICS))
            mock_get_client.return_value = mock_http

            response = await client.fetch_metrics(DynamoProvider(), "qwen", "default")

        assert response.available is True
        assert {m.name for m in response.metrics} == {
            "vllm:num_requests_running",
            "vllm:num_requests_waiting",
            "vllm:e2e_request_latency_seconds_bucket",
            "vllm:e2e_request_latency_seconds_sum",
        }
        mock_http.get.assert_called_once_with(
            "http://qwen-frontend.default.svc.cluster.local:8000/metrics"
        )

    @pytest.mark.asyncio
    async def test_fetch_all_metrics(self, in_cluster: MagicMock) -> None:
        client = MetricsClient(KubeFoundryConfig())

        with (
            patch("kubefoundry.config.IN_CLUSTER_TOKEN_PATH", in_cluster),
            patch.object(client, "_get_client") as mock_get_client,
        ):
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(return_value=_response(200, SAMPLE_METRICS))
            mock_get_client.return_value = mock_http

            response = await client.fetch_metrics(
                DynamoProvider(), "qwen", "default", key_only=False
            )

        assert len(response.metrics) == 5

    @pytest.mark.asyncio
    async def test_fetch_failure_never_raises(self, in_cluster: MagicMock) -> None:
        client = MetricsClient(KubeFoundryConfig())

        with (
            patch("kubefoundry.config.IN_CLUSTER_TOKEN_PATH", in_cluster),
            patch.object(client, "_get_client") as mock_get_client,
        ):
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(return_value=_response(503))
            mock_get_client.return_value = mock_http

            response = await client.fetch_metrics(DynamoProvider(), "qwen", "default")

        assert response.available is False
        assert response.error == "Service unavailable. The deployment is starting up."
        assert response.metrics == []

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        client = MetricsClient(KubeFoundryConfig())
        http_client = await client._get_client()

        await client.close()

        assert http_client.is_closed
        assert client._http_client is None

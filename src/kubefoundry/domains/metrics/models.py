"""Pydantic models for deployment metrics."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RawMetricValue(BaseModel):
    """One Prometheus sample."""

    name: str
    value: float
    labels: dict[str, str] = Field(default_factory=dict)


class MetricsResponse(BaseModel):
    """Result of scraping a deployment's metrics endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    available: bool = Field(..., description="Whether metrics were fetched")
    error: str | None = Field(None, description="Why metrics are unavailable")
    timestamp: str = Field(..., description="Scrape time (ISO 8601)")
    metrics: list[RawMetricValue] = Field(default_factory=list)
    running_off_cluster: bool | None = Field(
        None, description="Set when service DNS is unreachable from here"
    )

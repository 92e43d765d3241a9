"""Response formatting utilities for list and detail views."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kubefoundry.domains.deployments.models import DeploymentStatus


class Verbosity(str, Enum):
    """Response verbosity levels.

    - MINIMAL: Only essential fields (name, phase)
    - STANDARD: Key fields for list views
    - FULL: Everything, including pods and conditions
    """

    MINIMAL = "minimal"
    STANDARD = "standard"
    FULL = "full"

    @classmethod
    def from_str(cls, value: str | None) -> Verbosity:
        """Parse verbosity from string, defaulting to STANDARD."""
        if value is None:
            return cls.STANDARD
        try:
            return cls(value.lower())
        except ValueError:
            return cls.STANDARD


class PaginatedResponse:
    """Builder for paginated list responses."""

    @staticmethod
    def build(
        items: list[dict[str, Any]],
        total: int,
        offset: int = 0,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Build a paginated response with metadata.

        Args:
            items: The paginated items to return.
            total: Total count of items before pagination.
            offset: Starting offset used.
            limit: Limit used (None means all items).

        Returns:
            Response dict with items and pagination metadata.
        """
        return {
            "items": items,
            "total": total,
            "offset": offset,
            "limit": limit if limit is not None else total,
            "has_more": offset + len(items) < total,
        }


def paginate(
    items: list[Any],
    offset: int = 0,
    limit: int | None = None,
) -> tuple[list[Any], int]:
    """Apply pagination to a list of items.

    Args:
        items: Full list of items.
        offset: Starting offset (0-indexed).
        limit: Maximum items to return (None for all).

    Returns:
        Tuple of (paginated items, total count).
    """
    total = len(items)
    result = items[offset:]
    if limit is not None and limit > 0:
        result = result[:limit]
    return result, total


class ResponseBuilder:
    """Formats deployment status at different verbosity levels."""

    @staticmethod
    def deployment_item(
        status: DeploymentStatus, verbosity: Verbosity = Verbosity.STANDARD
    ) -> dict[str, Any]:
        """Format one deployment for list or detail responses."""
        if verbosity == Verbosity.MINIMAL:
            return {
                "name": status.name,
                "namespace": status.namespace,
                "phase": status.phase.value,
            }

        result: dict[str, Any] = {
            "name": status.name,
            "namespace": status.namespace,
            "provider": status.provider,
            "model_id": status.model_id,
            "engine": status.engine,
            "mode": status.mode.value,
            "phase": status.phase.value,
            "replicas": status.replicas.model_dump(),
            "created_at": status.created_at,
            "frontend_service": status.frontend_service,
        }

        if verbosity == Verbosity.FULL:
            result["served_model_name"] = status.served_model_name
            if status.prefill_replicas is not None:
                result["prefill_replicas"] = status.prefill_replicas.model_dump()
            if status.decode_replicas is not None:
                result["decode_replicas"] = status.decode_replicas.model_dump()
            result["conditions"] = [c.model_dump() for c in status.conditions]
            result["pods"] = [p.model_dump() for p in status.pods]

        return result

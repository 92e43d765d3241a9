"""Exception hierarchy for KubeFoundry operations."""

from __future__ import annotations


class KubeFoundryError(Exception):
    """Base exception for all KubeFoundry errors."""

    pass


class ValidationError(KubeFoundryError):
    """A deployment request failed validation.

    Always recoverable by the caller correcting its input. Carries every
    problem found, not only the first.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Validation error: {', '.join(self.errors)}")


class NotFoundError(KubeFoundryError):
    """A provider, catalog entry or cluster resource does not exist."""

    def __init__(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        hint: str | None = None,
    ) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        if namespace:
            message = f"{kind} '{name}' not found in namespace '{namespace}'"
        else:
            message = f"{kind} '{name}' not found"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)


class ResourceExistsError(KubeFoundryError):
    """Creating a resource conflicted with an existing one."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        if namespace:
            message = f"{kind} '{name}' already exists in namespace '{namespace}'"
        else:
            message = f"{kind} '{name}' already exists"
        super().__init__(message)


class ClusterError(KubeFoundryError):
    """Opaque failure reported by the Kubernetes API.

    The message is passed through as-is; mapping it to a response code is
    left to the caller.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class AuthenticationError(KubeFoundryError):
    """Could not authenticate against the Kubernetes API."""

    pass

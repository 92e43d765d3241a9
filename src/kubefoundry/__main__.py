"""Entry point for the KubeFoundry MCP server."""

import argparse
import logging
import sys
from typing import Any

from kubefoundry import __version__
from kubefoundry.config import AuthMode, KubeFoundryConfig, LogLevel, TransportMode
from kubefoundry.utils.errors import AuthenticationError

logger = logging.getLogger(__name__)

# argparse dest -> config field; flags left unset fall through to KUBEFOUNDRY_* env
_CONFIG_FLAGS = {
    "transport": "transport",
    "host": "host",
    "port": "port",
    "auth_mode": "auth_mode",
    "kubeconfig": "kubeconfig_path",
    "context": "kubeconfig_context",
    "namespace": "default_namespace",
    "default_provider": "default_provider",
    "kaito_version": "kaito_version",
    "log_level": "log_level",
}


def find_auth_error(exc: BaseException) -> AuthenticationError | None:
    """Return the AuthenticationError inside ``exc``, unwrapping task group errors."""
    if isinstance(exc, AuthenticationError):
        return exc
    for inner in getattr(exc, "exceptions", ()):
        found = find_auth_error(inner)
        if found is not None:
            return found
    return None


def setup_logging(level: LogLevel) -> None:
    """Log to stderr; stdout belongs to the stdio transport."""
    logging.basicConfig(
        level=level.value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="kubefoundry",
        description="MCP server for deploying LLMs on Kubernetes",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    server = parser.add_argument_group("server")
    server.add_argument(
        "--transport",
        choices=[mode.value for mode in TransportMode],
        help="Transport mode (default: stdio)",
    )
    server.add_argument("--host", help="Host to bind HTTP transports to (default: 127.0.0.1)")
    server.add_argument("--port", type=int, help="Port for HTTP transports (default: 8000)")
    server.add_argument(
        "--log-level",
        choices=[level.value for level in LogLevel],
        help="Logging level (default: INFO)",
    )

    cluster = parser.add_argument_group("cluster")
    cluster.add_argument(
        "--auth-mode",
        choices=[mode.value for mode in AuthMode],
        help="How to authenticate against the API server (default: auto)",
    )
    cluster.add_argument("--kubeconfig", help="Path to kubeconfig file")
    cluster.add_argument("--context", help="Kubeconfig context to use")

    deployments = parser.add_argument_group("deployments")
    deployments.add_argument(
        "--default-provider",
        choices=["dynamo", "kuberay", "kaito"],
        help="Provider used when a request names none (default: dynamo)",
    )
    deployments.add_argument(
        "--namespace",
        help="Namespace used when a request names none (default: kubefoundry-system)",
    )
    deployments.add_argument("--kaito-version", help="KAITO operator chart version to install")
    deployments.add_argument(
        "--read-only",
        action="store_true",
        help="Disable create_deployment and delete_deployment",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> KubeFoundryConfig:
    """Build config from flags, falling back to environment and defaults."""
    overrides: dict[str, Any] = {
        field: getattr(args, dest)
        for dest, field in _CONFIG_FLAGS.items()
        if getattr(args, dest) is not None
    }
    if args.read_only:
        overrides["read_only_mode"] = True
    return KubeFoundryConfig(**overrides)


def _auth_hint(config: KubeFoundryConfig) -> str:
    if config.auth_mode == AuthMode.TOKEN:
        return "Check KUBEFOUNDRY_API_SERVER and KUBEFOUNDRY_API_TOKEN."
    return "Your kubeconfig credentials may be expired; log in to the cluster again."


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    config = build_config(parse_args(argv))
    setup_logging(config.log_level)

    logger.info(
        f"Starting KubeFoundry MCP server v{__version__} "
        f"(default provider: {config.default_provider}, read-only: {config.read_only_mode})"
    )

    try:
        for warning in config.validate_auth_config():
            logger.warning(warning)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    from kubefoundry.server import create_server

    mcp = create_server(config)

    if config.transport == TransportMode.STDIO:
        logger.info("Running with stdio transport")
    else:
        logger.info(
            f"Running with {config.transport.value} transport on {config.host}:{config.port}"
        )

    try:
        mcp.run(transport=config.transport.value)  # type: ignore[arg-type]
    except BaseException as exc:  # anyio wraps lifespan failures in a BaseExceptionGroup
        auth_error = find_auth_error(exc)
        if auth_error is None:
            raise
        logger.error(f"Kubernetes authentication failed: {auth_error}. {_auth_hint(config)}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
OpenTelemetry Configuration

Loads tracing settings from environment variables.
"""

import os
from dataclasses import dataclass


@dataclass
class TracingConfig:
    """Configuration for pipeline tracing.

    Environment Variables:
        TRACING_ENABLED: Enable OpenTelemetry tracing (default: false)
        TRACING_SERVICE_NAME: Service name on exported spans (default: medichronicle)
        OTEL_COLLECTOR_ENDPOINT: OTLP/HTTP endpoint (optional, console if empty)
    """

    enabled: bool = False
    service_name: str = "medichronicle"
    collector_endpoint: str | None = None

    @classmethod
    def from_env(cls) -> "TracingConfig":
        """Load config from environment variables."""
        return cls(
            enabled=os.environ.get("TRACING_ENABLED", "false").lower() in ("true", "1", "yes"),
            service_name=os.environ.get("TRACING_SERVICE_NAME", "medichronicle"),
            collector_endpoint=os.environ.get("OTEL_COLLECTOR_ENDPOINT") or None,
        )


# Global config singleton
_config: TracingConfig | None = None


def get_config() -> TracingConfig:
    """Get the global tracing config (lazy-loaded from env)."""
    global _config
    if _config is None:
        _config = TracingConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset config (useful for testing)."""
    global _config
    _config = None

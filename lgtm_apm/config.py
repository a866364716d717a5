"""
Configuration management for LGTM APM.

Resolves options in order of precedence: explicit argument, environment
variable, hardcoded default. Supports YAML configuration with environment
variable expansion.
"""

import os
import re
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Optional, Dict, List, Any, Mapping

import yaml


DEFAULT_COLLECTOR_URL = "http://localhost:4318"
DEFAULT_SERVICE_NAME = "unknown-service"
DEFAULT_SERVICE_VERSION = "1.0.0"
DEFAULT_ENVIRONMENT = "development"
DEFAULT_ORG_ID = "tenant1"
DEFAULT_METRIC_EXPORT_INTERVAL_MILLIS = 10000

TENANT_HEADER = "X-Scope-OrgID"


def base_url(url: Optional[str]) -> str:
    """Strip one trailing slash; exporters append /v1/<signal>."""
    url = url or ""
    return url[:-1] if url.endswith("/") else url


def signal_endpoint(url: Optional[str], signal: str) -> str:
    """Resolve the OTLP/HTTP endpoint for one signal (traces, metrics, logs)."""
    base = base_url(url)
    suffix = f"/v1/{signal}"
    return base if base.endswith(suffix) else f"{base}{suffix}"


def parse_headers(raw: Optional[str]) -> Dict[str, str]:
    """
    Parse an OTLP headers string.

        "authorization=Bearer mytoken,env=prod"
    becomes
        {"authorization": "Bearer mytoken", "env": "prod"}
    """
    if not raw:
        return {}
    out: Dict[str, str] = {}
    for pair in (p.strip() for p in raw.split(",")):
        if "=" in pair:
            k, v = pair.split("=", 1)
            out[k.strip()] = v.strip()
    return out


def build_headers(org_id: Optional[str], additional: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Build OTLP headers (X-Scope-OrgID for Grafana multi-tenancy)."""
    headers = dict(additional or {})
    if org_id:
        headers[TENANT_HEADER] = org_id
    return headers


def default_environment(environ: Optional[Mapping[str, str]] = None) -> str:
    """Ambient deployment environment signal."""
    environ = os.environ if environ is None else environ
    return (
        environ.get("OTEL_DEPLOYMENT_ENVIRONMENT")
        or environ.get("ENVIRONMENT")
        or DEFAULT_ENVIRONMENT
    )


def _split_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class APMConfig:
    """Resolved bootstrap configuration."""

    collector_url: str = DEFAULT_COLLECTOR_URL
    service_name: str = DEFAULT_SERVICE_NAME
    service_version: str = DEFAULT_SERVICE_VERSION
    environment: str = DEFAULT_ENVIRONMENT

    # Tenant header and extra exporter headers
    org_id: Optional[str] = DEFAULT_ORG_ID
    additional_headers: Dict[str, str] = field(default_factory=dict)

    # Feature toggles
    enable_metrics: bool = True
    enable_logs: bool = False
    create_default_logger: bool = False

    # Extra resource attributes
    attributes: Dict[str, Any] = field(default_factory=dict)

    metric_export_interval_millis: int = DEFAULT_METRIC_EXPORT_INTERVAL_MILLIS

    # Instrumentation
    auto_instrument: bool = True
    disabled_instrumentations: List[str] = field(default_factory=list)
    instrumentors: List[Any] = field(default_factory=list)

    handle_sigterm: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "APMConfig":
        """
        Load config from environment variables.

        Keyword overrides that are not None take precedence over the
        environment; unknown keywords raise TypeError.
        """
        environ = os.environ if environ is None else environ
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown APM options: {', '.join(sorted(unknown))}")

        def pick(name: str, fallback: Any) -> Any:
            value = overrides.get(name)
            return fallback if value is None else value

        env_org_id = environ.get("OTEL_ORG_ID")
        return cls(
            collector_url=pick(
                "collector_url",
                environ.get("OTEL_EXPORTER_OTLP_ENDPOINT") or DEFAULT_COLLECTOR_URL,
            ),
            service_name=pick(
                "service_name",
                environ.get("OTEL_SERVICE_NAME") or DEFAULT_SERVICE_NAME,
            ),
            service_version=pick(
                "service_version",
                environ.get("OTEL_SERVICE_VERSION") or DEFAULT_SERVICE_VERSION,
            ),
            environment=pick("environment", default_environment(environ)),
            org_id=pick("org_id", DEFAULT_ORG_ID if env_org_id is None else env_org_id),
            additional_headers=pick(
                "additional_headers",
                parse_headers(environ.get("OTEL_EXPORTER_OTLP_HEADERS")),
            ),
            enable_metrics=pick(
                "enable_metrics",
                environ.get("OTEL_METRICS_ENABLED") != "false",
            ),
            enable_logs=overrides.get("enable_logs") is True,
            create_default_logger=overrides.get("create_default_logger") is True,
            attributes=pick("attributes", {}),
            metric_export_interval_millis=int(
                pick("metric_export_interval_millis", DEFAULT_METRIC_EXPORT_INTERVAL_MILLIS)
            ),
            auto_instrument=pick("auto_instrument", True),
            disabled_instrumentations=pick(
                "disabled_instrumentations",
                _split_list(environ.get("OTEL_PYTHON_DISABLED_INSTRUMENTATIONS")),
            ),
            instrumentors=list(pick("instrumentors", [])),
            handle_sigterm=pick("handle_sigterm", True),
        )

    @property
    def traces_endpoint(self) -> str:
        return signal_endpoint(self.collector_url, "traces")

    @property
    def metrics_endpoint(self) -> str:
        return signal_endpoint(self.collector_url, "metrics")

    @property
    def logs_endpoint(self) -> str:
        return signal_endpoint(self.collector_url, "logs")

    @property
    def headers(self) -> Dict[str, str]:
        return build_headers(self.org_id, self.additional_headers)


def expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values."""
    if isinstance(value, str):
        # Match ${VAR} or $VAR patterns
        pattern = r'\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)'

        def replace(match):
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    return value


def load_config(path: str | Path, **overrides) -> APMConfig:
    """Load configuration from YAML file."""
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    data = expand_env_vars(raw)
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    # Accept either a top-level `apm:` section or a flat mapping
    data = data.get("apm", data) or {}
    if not isinstance(data, dict):
        raise ValueError(f"`apm` section must be a mapping: {path}")

    options = {k: v for k, v in data.items() if v is not None}
    options.update({k: v for k, v in overrides.items() if v is not None})
    return APMConfig.from_env(**options)


def create_default_config() -> str:
    """Generate default configuration YAML."""
    return """# LGTM APM Configuration
# Values left out fall back to OTEL_* environment variables, then defaults.

apm:
  collector_url: http://localhost:4318
  service_name: my-service
  # service_version: 1.0.0
  # environment: ${ENVIRONMENT}

  # Grafana multi-tenancy (sent as X-Scope-OrgID)
  org_id: tenant1
  # additional_headers:
  #   authorization: Bearer ${OTLP_TOKEN}

  enable_metrics: true
  enable_logs: false
  create_default_logger: false

  # Extra resource attributes
  # attributes:
  #   team: platform

  # Skip specific auto-instrumentations (entry point names)
  # disabled_instrumentations:
  #   - urllib3
"""

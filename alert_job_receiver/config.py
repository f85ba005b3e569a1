"""Receiver configuration.

The configuration is built once at startup, from environment variables and
command-line overrides, and passed explicitly to the app and the handler.

Environment variables:
    CONFIGMAP_NAMESPACE: Namespace holding the job definitions ConfigMap
    JOB_DESTINATION_NAMESPACE: Namespace where Jobs are created
    RESPONSES_CONFIGMAP: Name of the job definitions ConfigMap
    LISTEN_ADDRESS: host:port to listen on (default ":9270")
    LOG_LEVEL: One of debug, info, warn, error (default "info")
    ABORT_ON_RENDER_ERROR: Stop instead of submitting a partial render
    KUBE_API_URL: Kubernetes API server URL (default: in-cluster)
    KUBE_TOKEN_PATH: Bearer token file (default: service account token)
    KUBE_CA_PATH: CA bundle for the API server (default: service account CA)
    KUBE_API_TIMEOUT: Timeout in seconds for Kubernetes API calls

Both namespaces default to the namespace of the receiver's own service
account when neither the flag nor the environment variable is set.
"""

import os
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from alert_job_receiver.errors import ConfigurationError

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
NAMESPACE_FILE = SERVICE_ACCOUNT_DIR / "namespace"
DEFAULT_RESPONSES_CONFIGMAP = "receiver-job-definitions"
DEFAULT_LISTEN_ADDRESS = ":9270"
LOG_LEVELS = ("debug", "info", "warn", "error")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def read_ambient_namespace(path: Path = NAMESPACE_FILE) -> str:
    """Read the namespace the receiver runs in from its service account mount.

    Raises:
        ConfigurationError: If the namespace file is missing or empty
    """
    try:
        namespace = Path(path).read_text().strip()
    except OSError as e:
        raise ConfigurationError(f"Current kubernetes namespace could not be found: {e}") from e
    if not namespace:
        raise ConfigurationError(f"Namespace file {path} is empty")
    return namespace


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split a ``host:port`` listen address. An empty host means all interfaces."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigurationError(f"Invalid listen address: {address!r}")
    return host.strip("[]") or "0.0.0.0", int(port)


class KubeConfig(BaseModel):
    """Kubernetes API access settings."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    api_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("KUBE_API_URL") or None,
        description="API server URL, None for in-cluster discovery",
    )
    token_path: Path = Field(
        default_factory=lambda: Path(os.getenv("KUBE_TOKEN_PATH", str(SERVICE_ACCOUNT_DIR / "token"))),
        description="Bearer token file, re-read on every request",
    )
    ca_path: Path = Field(
        default_factory=lambda: Path(os.getenv("KUBE_CA_PATH", str(SERVICE_ACCOUNT_DIR / "ca.crt"))),
        description="CA bundle used to verify the API server",
    )
    timeout: float = Field(
        default_factory=lambda: os.getenv("KUBE_API_TIMEOUT", "30"),
        gt=0,
        description="Timeout in seconds for each API call",
    )


class ReceiverConfig(BaseModel):
    """Runtime configuration of the webhook receiver."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    configmap_namespace: str = Field(description="Namespace where job definitions are stored")
    job_destination_namespace: str = Field(description="Namespace where jobs are created")
    responses_configmap: str = Field(
        default_factory=lambda: os.getenv("RESPONSES_CONFIGMAP", DEFAULT_RESPONSES_CONFIGMAP),
        description="ConfigMap containing YAML job definitions",
    )
    listen_address: str = Field(
        default_factory=lambda: os.getenv("LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS),
        description="Address to listen for webhooks",
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "info"),
        description="Minimum log severity",
    )
    abort_on_render_error: bool = Field(
        default_factory=lambda: _env_flag("ABORT_ON_RENDER_ERROR"),
        description="Fail the delivery when a job template fails to render",
    )
    kube: KubeConfig = Field(default_factory=KubeConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate the log level is one of the supported names."""
        level = v.strip().lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"There was a wrong log level defined: {v}")
        return level

    @field_validator("configmap_namespace", "job_destination_namespace", "responses_configmap")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("listen_address")
    @classmethod
    def validate_listen_address(cls, v: str) -> str:
        try:
            parse_listen_address(v)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e
        return v

    @property
    def bind(self) -> Tuple[str, int]:
        return parse_listen_address(self.listen_address)

    @classmethod
    def from_cli_args(
        cls,
        configmap_namespace: Optional[str] = None,
        job_destination_namespace: Optional[str] = None,
        responses_configmap: Optional[str] = None,
        listen_address: Optional[str] = None,
        log_level: Optional[str] = None,
        abort_on_render_error: Optional[bool] = None,
        kube_api_url: Optional[str] = None,
        kube_api_timeout: Optional[float] = None,
        namespace_file: Path = NAMESPACE_FILE,
    ) -> "ReceiverConfig":
        """Create ReceiverConfig from CLI arguments.

        Arguments left as None fall back to the environment, then to the
        defaults. The ambient namespace is only read when a namespace is not
        given any other way.

        Returns:
            ReceiverConfig instance

        Raises:
            ConfigurationError: If a namespace is needed but cannot be found
        """
        configmap_namespace = configmap_namespace or os.getenv("CONFIGMAP_NAMESPACE")
        job_destination_namespace = job_destination_namespace or os.getenv("JOB_DESTINATION_NAMESPACE")
        if not configmap_namespace or not job_destination_namespace:
            current_namespace = read_ambient_namespace(namespace_file)
            configmap_namespace = configmap_namespace or current_namespace
            job_destination_namespace = job_destination_namespace or current_namespace

        overrides = {
            "responses_configmap": responses_configmap,
            "listen_address": listen_address,
            "log_level": log_level,
            "abort_on_render_error": abort_on_render_error,
        }
        kube_overrides = {"api_url": kube_api_url, "timeout": kube_api_timeout}

        return cls(
            configmap_namespace=configmap_namespace,
            job_destination_namespace=job_destination_namespace,
            kube=KubeConfig(**{k: v for k, v in kube_overrides.items() if v is not None}),
            **{k: v for k, v in overrides.items() if v is not None},
        )

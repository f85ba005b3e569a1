"""Kubernetes API access for the receiver.

Two capabilities are needed: reading job definitions from a ConfigMap and
creating Jobs. They are expressed as the ``DefinitionStore`` and
``JobScheduler`` protocols so the handler can run against in-memory fakes;
``ConfigMapDefinitionStore`` and ``KubeJobScheduler`` implement them over a
shared ``KubeClient``.
"""

import os
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Generator, Optional, Protocol, Union

import anyio.to_thread
import httpx
from loguru import logger

from alert_job_receiver.config import KubeConfig
from alert_job_receiver.errors import (
    ConfigurationError,
    DefinitionStoreError,
    KubeApiError,
    SubmissionError,
)
from alert_job_receiver.models import Job


class DefinitionStore(Protocol):
    """Source of job definition templates."""

    async def fetch(self, namespace: str, name: str) -> Dict[str, str]:
        """Return the key -> template text mapping stored under namespace/name."""
        ...


class JobScheduler(Protocol):
    """Destination for rendered Jobs."""

    async def submit(self, job: Job, namespace: str) -> Dict[str, Any]:
        """Create the Job in namespace and return the created object."""
        ...


class ServiceAccountAuth(httpx.Auth):
    """Bearer token auth reading the token file on every request.

    Projected service account tokens are rotated by the kubelet, so the file
    must not be read once and cached.
    """

    def __init__(self, token_path: Union[str, Path]):
        self.token_path = Path(token_path)

    def read_token(self) -> str:
        return self.token_path.read_text().strip()

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self.read_token()}"
        yield request

    async def async_auth_flow(self, request: httpx.Request) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await anyio.to_thread.run_sync(self.read_token)
        request.headers["Authorization"] = f"Bearer {token}"
        yield request


def in_cluster_url() -> str:
    """Build the API server URL from the variables injected into every pod."""
    host = os.getenv("KUBERNETES_SERVICE_HOST")
    port = os.getenv("KUBERNETES_SERVICE_PORT", "443")
    if not host:
        raise ConfigurationError(
            "KUBERNETES_SERVICE_HOST is not set; not running in a cluster and no API URL given"
        )
    if ":" in host:
        host = f"[{host}]"
    return f"https://{host}:{port}"


class KubeClient:
    """Minimal async client for the Kubernetes REST API."""

    def __init__(self, http_client: httpx.AsyncClient):
        self._http = http_client

    @classmethod
    def from_config(cls, config: KubeConfig) -> "KubeClient":
        """Create a client from configuration, falling back to in-cluster access.

        Raises:
            ConfigurationError: If no API server can be located
        """
        base_url = config.api_url or in_cluster_url()
        auth = ServiceAccountAuth(config.token_path) if config.token_path.exists() else None
        verify: Union[bool, str] = str(config.ca_path) if config.ca_path.exists() else True
        if auth is None:
            logger.warning(f"Token file {config.token_path} not found, calling API server without credentials")

        http_client = httpx.AsyncClient(
            base_url=base_url,
            auth=auth,
            verify=verify,
            timeout=config.timeout,
            headers={"Accept": "application/json"},
        )
        logger.info(f"Kubernetes API server: {base_url}")
        return cls(http_client)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            KubeApiError: On transport failures and non-2xx responses
        """
        try:
            response = await self._http.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise KubeApiError(f"{method} {path} failed: {e}") from e
        except OSError as e:
            raise KubeApiError(f"{method} {path} failed, cannot read credentials: {e}") from e

        if response.is_error:
            raise _api_error(response)

        try:
            return response.json()
        except ValueError as e:
            raise KubeApiError(
                f"{method} {path} returned a non-JSON body", status_code=response.status_code
            ) from e

    async def get_config_map(self, namespace: str, name: str) -> Dict[str, Any]:
        return await self.request("GET", f"/api/v1/namespaces/{namespace}/configmaps/{name}")

    async def create_job(self, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", f"/apis/batch/v1/namespaces/{namespace}/jobs", json=body)


def _api_error(response: httpx.Response) -> KubeApiError:
    """Build an error from a failed response, preferring the API's Status message."""
    message = response.text.strip() or response.reason_phrase
    reason = ""
    try:
        status = response.json()
    except ValueError:
        status = None
    if isinstance(status, dict) and status.get("kind") == "Status":
        message = status.get("message") or message
        reason = status.get("reason") or ""
    return KubeApiError(message, status_code=response.status_code, reason=reason)


class ConfigMapDefinitionStore:
    """Reads job definitions from a ConfigMap's data."""

    def __init__(self, client: KubeClient):
        self._client = client

    async def fetch(self, namespace: str, name: str) -> Dict[str, str]:
        try:
            config_map = await self._client.get_config_map(namespace, name)
        except KubeApiError as e:
            raise DefinitionStoreError(f"Error while retrieving configMap {namespace}/{name}: {e}") from e
        return dict(config_map.get("data") or {})


class KubeJobScheduler:
    """Creates Jobs through the batch/v1 API."""

    def __init__(self, client: KubeClient):
        self._client = client

    async def submit(self, job: Job, namespace: str) -> Dict[str, Any]:
        try:
            return await self._client.create_job(namespace, job.to_manifest())
        except KubeApiError as e:
            raise SubmissionError(f"Error while creating job in {namespace}: {e}") from e

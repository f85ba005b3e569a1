from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from alert_job_receiver.app import create_app
from alert_job_receiver.config import ReceiverConfig
from alert_job_receiver.errors import DefinitionStoreError, SubmissionError
from alert_job_receiver.models import Job

RECEIVER_ENV = (
    "CONFIGMAP_NAMESPACE",
    "JOB_DESTINATION_NAMESPACE",
    "RESPONSES_CONFIGMAP",
    "LISTEN_ADDRESS",
    "LOG_LEVEL",
    "ABORT_ON_RENDER_ERROR",
    "KUBE_API_URL",
    "KUBE_TOKEN_PATH",
    "KUBE_CA_PATH",
    "KUBE_API_TIMEOUT",
    "KUBERNETES_SERVICE_HOST",
    "KUBERNETES_SERVICE_PORT",
)

JOB_TEMPLATE = """\
apiVersion: batch/v1
kind: Job
metadata:
  generateName: {{ .Values.job }}-
  labels:
    app: alert-responder
spec:
  parallelism: 1
  completions: 1
  ttlSecondsAfterFinished: 600
  template:
    spec:
      restartPolicy: Never
      containers:
        - name: responder
          image: busybox
          args: ["sh", "-c", "echo {{ .Values.job }}"]
"""


class FakeDefinitionStore:
    """In-memory job definitions, recording every fetch."""

    def __init__(self, definitions: Optional[Dict[str, str]] = None, error: Optional[Exception] = None):
        self.definitions = definitions or {}
        self.error = error
        self.calls: List[Tuple[str, str]] = []

    async def fetch(self, namespace: str, name: str) -> Dict[str, str]:
        self.calls.append((namespace, name))
        if self.error is not None:
            raise self.error
        return dict(self.definitions)


class FakeJobScheduler:
    """Records submitted jobs and answers like the API server."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.submitted: List[Tuple[Job, str]] = []

    async def submit(self, job: Job, namespace: str) -> Dict[str, Any]:
        self.submitted.append((job, namespace))
        if self.error is not None:
            raise self.error
        created = job.to_manifest()
        created["metadata"] = dict(created.get("metadata", {}))
        created["metadata"]["name"] = f"{job.metadata.generate_name or ''}x7k2p"
        created["metadata"]["namespace"] = namespace
        return created


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in RECEIVER_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> ReceiverConfig:
    return ReceiverConfig(
        configmap_namespace="monitoring",
        job_destination_namespace="responders",
        responses_configmap="receiver-job-definitions",
    )


@pytest.fixture
def store() -> FakeDefinitionStore:
    return FakeDefinitionStore({"disable_global_search": JOB_TEMPLATE, "restore_global_search": JOB_TEMPLATE})


@pytest.fixture
def scheduler() -> FakeJobScheduler:
    return FakeJobScheduler()


@pytest.fixture
def client(config, store, scheduler):
    with TestClient(create_app(config, store=store, scheduler=scheduler)) as test_client:
        yield test_client


@pytest.fixture
def failing_store() -> FakeDefinitionStore:
    return FakeDefinitionStore(error=DefinitionStoreError("configmaps \"receiver-job-definitions\" is forbidden"))


@pytest.fixture
def failing_scheduler() -> FakeJobScheduler:
    return FakeJobScheduler(error=SubmissionError("exceeded quota: compute-resources"))


def webhook_payload(
    status: str = "firing",
    common_labels: Optional[Dict[str, str]] = None,
    common_annotations: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Build a full Alertmanager v4 notification."""
    common_labels = common_labels if common_labels is not None else {
        "alertname": "SearchLatencyHigh",
        "job": "disable_global_search",
    }
    common_annotations = common_annotations if common_annotations is not None else {
        "firing_job": "disable_global_search",
        "resolved_job": "restore_global_search",
    }
    return {
        "version": "4",
        "groupKey": '{}:{alertname="SearchLatencyHigh"}',
        "truncatedAlerts": 0,
        "status": status,
        "receiver": "job-receiver",
        "groupLabels": {"alertname": common_labels.get("alertname", "")},
        "commonLabels": common_labels,
        "commonAnnotations": common_annotations,
        "externalURL": "http://alertmanager:9093",
        "alerts": [
            {
                "status": status,
                "labels": dict(common_labels, instance="search-0"),
                "annotations": dict(common_annotations, summary="p99 latency above 2s"),
                "startsAt": "2024-05-01T10:00:00Z",
                "endsAt": "0001-01-01T00:00:00Z",
                "generatorURL": "http://prometheus:9090/graph",
                "fingerprint": "c4ca4238a0b92382",
            }
        ],
    }

"""Pydantic models for the Alertmanager webhook payload and the batch/v1 Job."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    ValidationInfo,
    field_validator,
)


class _WebhookModel(BaseModel):
    """Alertmanager omits or nulls fields freely; both decode to the empty value."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("*", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return v


class Alert(_WebhookModel):
    """Individual alert within an Alertmanager notification.

    Timestamps are kept as the raw strings Alertmanager sent.
    """

    status: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    starts_at: str = Field(default="", alias="startsAt")
    ends_at: str = Field(default="", alias="endsAt")
    generator_url: str = Field(default="", alias="generatorURL")
    fingerprint: str = ""


class AlertmanagerWebhook(_WebhookModel):
    """Alertmanager webhook payload structure."""

    version: str = ""
    group_key: str = Field(default="", alias="groupKey")
    truncated_alerts: StrictInt = Field(default=0, ge=0, alias="truncatedAlerts")
    status: str = ""
    receiver: str = ""
    group_labels: Dict[str, str] = Field(default_factory=dict, alias="groupLabels")
    common_labels: Dict[str, str] = Field(default_factory=dict, alias="commonLabels")
    common_annotations: Dict[str, str] = Field(default_factory=dict, alias="commonAnnotations")
    external_url: str = Field(default="", alias="externalURL")
    alerts: List[Alert] = Field(default_factory=list)

    @property
    def alert_name(self) -> str:
        return self.common_labels.get("alertname", "")


class HandlerResult(BaseModel):
    """Outcome of a single webhook delivery."""

    status: Literal["submitted", "skipped"]
    job_key: Optional[str] = None
    job_name: Optional[str] = None


# batch/v1 Job. Only the fields the receiver cares about are typed; anything
# else in a definition is passed through to the API server as written.


class _KubeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ObjectMeta(_KubeModel):
    name: Optional[StrictStr] = None
    generate_name: Optional[StrictStr] = Field(default=None, alias="generateName")
    namespace: Optional[StrictStr] = None
    labels: Optional[Dict[str, StrictStr]] = None
    annotations: Optional[Dict[str, StrictStr]] = None


class EnvVar(_KubeModel):
    name: StrictStr
    value: Optional[StrictStr] = None


class Container(_KubeModel):
    name: Optional[StrictStr] = None
    image: Optional[StrictStr] = None
    command: Optional[List[StrictStr]] = None
    args: Optional[List[StrictStr]] = None
    env: Optional[List[EnvVar]] = None
    working_dir: Optional[StrictStr] = Field(default=None, alias="workingDir")
    image_pull_policy: Optional[StrictStr] = Field(default=None, alias="imagePullPolicy")


class PodSpec(_KubeModel):
    containers: List[Container] = Field(default_factory=list)
    restart_policy: Optional[StrictStr] = Field(default=None, alias="restartPolicy")
    service_account_name: Optional[StrictStr] = Field(default=None, alias="serviceAccountName")
    node_selector: Optional[Dict[str, StrictStr]] = Field(default=None, alias="nodeSelector")


class PodTemplateSpec(_KubeModel):
    metadata: Optional[ObjectMeta] = None
    spec: PodSpec = Field(default_factory=PodSpec)


class JobSpec(_KubeModel):
    parallelism: Optional[StrictInt] = None
    completions: Optional[StrictInt] = None
    backoff_limit: Optional[StrictInt] = Field(default=None, alias="backoffLimit")
    active_deadline_seconds: Optional[StrictInt] = Field(default=None, alias="activeDeadlineSeconds")
    ttl_seconds_after_finished: Optional[StrictInt] = Field(default=None, alias="ttlSecondsAfterFinished")
    template: PodTemplateSpec = Field(default_factory=PodTemplateSpec)


class Job(_KubeModel):
    """A batch/v1 Job ready to be submitted."""

    api_version: Literal["batch/v1"] = Field(default="batch/v1", alias="apiVersion")
    kind: Literal["Job"] = "Job"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: JobSpec = Field(default_factory=JobSpec)

    def to_manifest(self) -> Dict[str, Any]:
        """Serialize to the JSON body expected by the Kubernetes API."""
        return self.model_dump(by_alias=True, exclude_none=True)

"""Error taxonomy for the alert-to-job pipeline.

Every error carries the HTTP status and the short plain-text message that is
returned to Alertmanager. The underlying cause is only logged.
"""

from typing import Optional


class ReceiverError(Exception):
    """Base class for failures that end a webhook delivery."""

    status_code: int = 500
    public_message: str = "Webhook error"

    def __init__(self, detail: str, public_message: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if public_message is not None:
            self.public_message = public_message


class ConfigurationError(Exception):
    """Raised at startup when the receiver cannot be configured."""


class MalformedAlertError(ReceiverError):
    """The request body is not a decodable Alertmanager payload."""

    status_code = 400
    public_message = "Invalid request body"


class DefinitionStoreError(ReceiverError):
    """The job definitions ConfigMap could not be read."""

    public_message = "Webhook error during retrieving configMap with job definitions"


class TaskDefinitionNotFoundError(DefinitionStoreError):
    """The ConfigMap was read but holds no definition for the job key."""


class TemplateRenderError(ReceiverError):
    """A job definition template failed to render.

    ``partial`` holds whatever output was produced before the failure.
    """

    public_message = "Webhook error during rendering job definition"

    def __init__(self, detail: str, partial: str = ""):
        super().__init__(detail)
        self.partial = partial


class FormatConversionError(ReceiverError):
    """The rendered definition is not valid YAML."""

    public_message = "Webhook error during creating a job"


class SchemaMappingError(ReceiverError):
    """The rendered definition does not fit the batch/v1 Job shape."""

    public_message = "Webhook error creating a job"


class SubmissionError(ReceiverError):
    """The Kubernetes API refused or never received the Job."""

    public_message = "Webhook error during creating a job"


class KubeApiError(Exception):
    """A Kubernetes API call failed.

    ``status_code`` is None for transport failures.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, reason: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.reason = reason

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        if self.reason:
            return f"{self.status_code} {self.reason}: {self.message}"
        return f"{self.status_code}: {self.message}"

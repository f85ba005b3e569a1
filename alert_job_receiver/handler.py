"""Turns Alertmanager notifications into Kubernetes Jobs."""

import json
from typing import Optional

from loguru import logger

from alert_job_receiver import manifest, templates
from alert_job_receiver.config import ReceiverConfig
from alert_job_receiver.errors import MalformedAlertError, TaskDefinitionNotFoundError, TemplateRenderError
from alert_job_receiver.kube import DefinitionStore, JobScheduler
from alert_job_receiver.models import AlertmanagerWebhook, HandlerResult

FIRING_JOB_ANNOTATION = "firing_job"
RESOLVED_JOB_ANNOTATION = "resolved_job"


def decode_webhook(body: bytes) -> AlertmanagerWebhook:
    """Decode a webhook request body.

    Raises:
        MalformedAlertError: If the body is not valid JSON or has wrong field types
    """
    try:
        return AlertmanagerWebhook.model_validate_json(body)
    except ValueError as e:
        raise MalformedAlertError(f"Error during decoding message: {e}") from e


def select_job_key(message: AlertmanagerWebhook) -> Optional[str]:
    """Pick the job definition key for the notification's status.

    Only the group's common annotations are considered; annotations on
    individual alerts never select a job.

    Returns:
        The job key, or None when the transition has no configured job
    """
    firing_job_key = message.common_annotations.get(FIRING_JOB_ANNOTATION, "")
    resolved_job_key = message.common_annotations.get(RESOLVED_JOB_ANNOTATION, "")

    if firing_job_key and message.status == "firing":
        return firing_job_key
    if resolved_job_key and message.status == "resolved":
        return resolved_job_key
    return None


class AlertJobHandler:
    """Runs the fetch, render, decode and submit pipeline for one notification."""

    def __init__(self, config: ReceiverConfig, store: DefinitionStore, scheduler: JobScheduler):
        self.config = config
        self.store = store
        self.scheduler = scheduler

    async def handle(self, message: AlertmanagerWebhook) -> HandlerResult:
        """Process a decoded notification.

        Args:
            message: The Alertmanager webhook payload

        Returns:
            The outcome; ``skipped`` when no job is configured for the status

        Raises:
            ReceiverError: If any pipeline stage fails. Nothing is submitted.
        """
        logger.info(f"Alert received: {message.alert_name}[{message.status}]")
        for k, v in message.common_labels.items():
            logger.debug(f"Label: {k} = {v}")
        for k, v in message.common_annotations.items():
            logger.debug(f"Annotation: {k} = {v}")

        job_key = select_job_key(message)
        if job_key is None:
            logger.warning(
                f"Received alarm {message.alert_name}[{message.status}] without correct response "
                "configuration, omitting responses"
            )
            return HandlerResult(status="skipped")

        job_name = await self.create_response_job(message, job_key)
        return HandlerResult(status="submitted", job_key=job_key, job_name=job_name)

    async def create_response_job(self, message: AlertmanagerWebhook, job_key: str) -> Optional[str]:
        """Create the Job defined under job_key and return its generated name."""
        namespace = self.config.configmap_namespace
        configmap = self.config.responses_configmap
        destination = self.config.job_destination_namespace

        logger.debug(f"Retrieving configMap {namespace}/{configmap}...")
        try:
            definitions = await self.store.fetch(namespace, configmap)
        except Exception as e:
            logger.error(f"Error while retrieving configMap {namespace}/{configmap} for job {job_key}: {e}")
            raise
        logger.debug("ConfigMap is retrieved")

        job_definition = definitions.get(job_key)
        if job_definition is None:
            logger.error(f"ConfigMap {namespace}/{configmap} has no job definition {job_key!r}")
            raise TaskDefinitionNotFoundError(f"No job definition {job_key!r} in {namespace}/{configmap}")

        try:
            rendered = templates.render(job_definition, message.common_labels)
        except TemplateRenderError as e:
            logger.error(f"Error while rendering job definition {job_key}: {e}")
            if self.config.abort_on_render_error:
                raise
            logger.warning(f"Continuing with partially rendered job definition {job_key}")
            rendered = e.partial

        try:
            job = manifest.decode(rendered)
        except Exception as e:
            logger.error(f"Error while decoding job definition {job_key}: {e}")
            raise

        logger.info(f"Creating job {job_key} in {destination}...")
        try:
            result = await self.scheduler.submit(job, destination)
        except Exception as e:
            logger.error(f"Error while creating job {job_key} in {destination}: {e}")
            raise

        created_name = (result.get("metadata") or {}).get("name")
        logger.info(f"Created job {created_name or job_key} in {destination}")
        logger.debug(json.dumps(result, indent=4, default=str))
        return created_name

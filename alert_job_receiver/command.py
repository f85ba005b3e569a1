"""Alert Job Receiver CLI commands - entrypoint."""

import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
import uvicorn
import yaml
from pydantic import ValidationError

from alert_job_receiver import manifest, templates
from alert_job_receiver.app import create_app
from alert_job_receiver.config import ReceiverConfig
from alert_job_receiver.errors import ConfigurationError, ReceiverError

app = typer.Typer(help="Alert Job Receiver - create Kubernetes Jobs from Alertmanager notifications")


@app.callback()
def main() -> None:
    """Alert Job Receiver."""


@app.command()
def serve(
    configmap_namespace: Optional[str] = typer.Option(
        None,
        "--configmap-namespace",
        help="Kubernetes namespace where jobs are defined (default: current namespace)",
    ),
    job_destination_namespace: Optional[str] = typer.Option(
        None,
        "--job-destination-namespace",
        help="Kubernetes namespace where jobs will be created (default: current namespace)",
    ),
    responses_configmap: Optional[str] = typer.Option(
        None,
        "--responses-configmap",
        help="ConfigMap containing YAML job definitions (default: receiver-job-definitions)",
    ),
    listen_address: Optional[str] = typer.Option(
        None,
        "--listen-address",
        help="Address to listen for webhook (default: :9270)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Only log messages with the given severity or above. One of: [debug, info, warn, error]",
    ),
    abort_on_render_error: Optional[bool] = typer.Option(
        None,
        "--abort-on-render-error/--continue-on-render-error",
        help="Fail the delivery instead of submitting a partially rendered job",
    ),
    kube_api_url: Optional[str] = typer.Option(
        None,
        "--kube-api-url",
        help="Kubernetes API server URL (default: in-cluster)",
    ),
    kube_api_timeout: Optional[float] = typer.Option(
        None,
        "--kube-api-timeout",
        help="Timeout in seconds for Kubernetes API calls",
    ),
):
    """Run the webhook receiver.

    Alertmanager posts notifications to /alerts. A notification whose common
    annotations carry ``firing_job`` (status firing) or ``resolved_job``
    (status resolved) creates a Job from the definition stored under that key
    in the responses ConfigMap, rendered with the common labels as ``Values``.

    Examples:

      # In-cluster, everything in the receiver's own namespace
      alert-job-receiver serve

      # Jobs defined in one namespace, created in another
      alert-job-receiver serve --configmap-namespace monitoring --job-destination-namespace ops
    """
    try:
        config = ReceiverConfig.from_cli_args(
            configmap_namespace=configmap_namespace,
            job_destination_namespace=job_destination_namespace,
            responses_configmap=responses_configmap,
            listen_address=listen_address,
            log_level=log_level,
            abort_on_render_error=abort_on_render_error,
            kube_api_url=kube_api_url,
            kube_api_timeout=kube_api_timeout,
        )
    except (ConfigurationError, ValidationError) as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1)

    host, port = config.bind
    uvicorn.run(create_app(config), host=host, port=port, log_level=_uvicorn_level(config.log_level))


def _uvicorn_level(level: str) -> str:
    return "warning" if level == "warn" else level


@app.command()
def render(
    definitions: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="YAML file mapping job keys to templates (a ConfigMap manifest or its data)",
    ),
    job_key: str = typer.Argument(..., help="Job definition key to render"),
    label: Optional[List[str]] = typer.Option(
        None,
        "--label",
        "-l",
        help="Common label as name=value, repeatable",
    ),
):
    """Render a job definition locally and print the Job that would be submitted.

    Examples:

      alert-job-receiver render job-definitions.yaml disable_global_search \\
          -l alertname=HighLoad -l job=disable_global_search
    """
    values = {}
    for item in label or []:
        name, sep, value = item.partition("=")
        if not sep:
            typer.echo(f"Label must be name=value: {item}", err=True)
            raise typer.Exit(code=2)
        values[name] = value

    document = yaml.safe_load(definitions.read_text()) or {}
    collection = document.get("data", document) if isinstance(document, dict) else {}
    if job_key not in collection:
        typer.echo(f"No job definition {job_key!r} in {definitions}", err=True)
        raise typer.Exit(code=1)

    try:
        job = manifest.decode(templates.render(collection[job_key], values))
    except ReceiverError as e:
        typer.echo(e.detail, err=True)
        raise typer.Exit(code=1)

    json.dump(job.to_manifest(), sys.stdout, indent=2)
    sys.stdout.write("\n")


if __name__ == "__main__":
    app()

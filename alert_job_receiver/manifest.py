"""Conversion of rendered job definitions into Job objects."""

import datetime
from typing import Any

import yaml
from pydantic import ValidationError

from alert_job_receiver.errors import FormatConversionError, SchemaMappingError
from alert_job_receiver.models import Job


def to_json_tree(node: Any) -> Any:
    """Coerce a YAML tree into JSON-compatible types.

    Mapping keys become strings and YAML timestamps become ISO 8601 strings.
    """
    if isinstance(node, dict):
        return {_json_key(k): to_json_tree(v) for k, v in node.items()}
    if isinstance(node, list):
        return [to_json_tree(item) for item in node]
    if isinstance(node, (datetime.datetime, datetime.date)):
        return node.isoformat()
    return node


def _json_key(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    if key is None:
        return "null"
    return str(to_json_tree(key))


def parse_yaml(rendered: str) -> Any:
    """Parse rendered YAML text into a JSON-compatible tree."""
    try:
        data = yaml.safe_load(rendered)
    except yaml.YAMLError as e:
        raise FormatConversionError(f"Invalid YAML in job definition: {e}") from e
    return to_json_tree(data)


def decode(rendered: str) -> Job:
    """Decode a rendered job definition into a Job.

    Raises:
        FormatConversionError: If the text is not valid YAML
        SchemaMappingError: If the document does not fit the Job shape
    """
    tree = parse_yaml(rendered)
    if not isinstance(tree, dict):
        raise SchemaMappingError(
            f"Job definition must be a mapping, got {type(tree).__name__}"
        )
    try:
        return Job.model_validate(tree)
    except ValidationError as e:
        raise SchemaMappingError(f"Job definition does not match batch/v1 Job: {e}") from e

"""Rendering of job definition templates with alert label values."""

import re
from typing import Any, Mapping

from jinja2 import Environment, Undefined

from alert_job_receiver.errors import TemplateRenderError


class LabelEnvironment(Environment):
    """Environment where ``mapping.name`` looks up the key before attributes.

    Label names such as ``items`` or ``values`` must resolve to the label,
    not to the dict method of the same name.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, Mapping):
            try:
                return obj[attribute]
            except (KeyError, TypeError):
                pass
        return super().getattr(obj, attribute)


# Job definitions are YAML, not HTML: no autoescaping, keep the final newline.
_environment = LabelEnvironment(
    autoescape=False,
    keep_trailing_newline=True,
    undefined=Undefined,
)

_TAG = re.compile(r"{{.*?}}|{%.*?%}", re.DOTALL)
_STRING_LITERAL = re.compile(r"""('(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")""", re.DOTALL)
# A leading dot on a name, as in Go templates: ``{{ .Values.job }}``.
_DOTTED_NAME = re.compile(r"(?<![\w\)\]\.'\"])\.(?=[A-Za-z_])")


def _normalize_tag(tag: str) -> str:
    # odd indexes of the split are string literals and stay untouched
    parts = _STRING_LITERAL.split(tag)
    return "".join(part if i % 2 else _DOTTED_NAME.sub("", part) for i, part in enumerate(parts))


def normalize_references(template_text: str) -> str:
    """Rewrite Go-style ``.Values.x`` references inside tags to ``Values.x``."""
    return _TAG.sub(lambda m: _normalize_tag(m.group(0)), template_text)


def render(template_text: str, values: Mapping[str, str]) -> str:
    """Render a job definition template.

    Args:
        template_text: Raw template text from the job definitions ConfigMap
        values: Alert common labels, exposed to the template as ``Values``

    Returns:
        Rendered text

    Raises:
        TemplateRenderError: If the template cannot be parsed or evaluated.
            The error's ``partial`` attribute holds the output produced
            before the failure.
    """
    try:
        template = _environment.from_string(normalize_references(template_text))
    except Exception as e:
        raise TemplateRenderError(f"Failed to parse job definition template: {e}") from e

    chunks = []
    try:
        for chunk in template.generate(Values=dict(values)):
            chunks.append(chunk)
    except Exception as e:
        raise TemplateRenderError(
            f"Failed to render job definition template: {e}",
            partial="".join(chunks),
        ) from e
    return "".join(chunks)

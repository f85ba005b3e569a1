import pytest

from alert_job_receiver.errors import TemplateRenderError
from alert_job_receiver.templates import normalize_references, render


def test_render_without_placeholders_returns_text_unchanged():
    text = "apiVersion: batch/v1\nkind: Job\nmetadata:\n  generateName: plain-\n"
    assert render(text, {"job": "x"}) == text


def test_render_go_style_reference():
    assert render("{{ .Values.job }}", {"job": "x"}) == "x"


def test_render_jinja_style_reference():
    assert render("{{ Values.job }}", {"job": "x"}) == "x"


def test_render_undefined_label_is_empty():
    assert render("name: {{ .Values.missing }}", {"job": "x"}) == "name: "


def test_render_does_not_escape_html():
    assert render("{{ .Values.query }}", {"query": "a<b & 'c'"}) == "a<b & 'c'"


def test_render_conditionals_and_loops():
    template = (
        "{% if .Values.severity == 'critical' %}page{% else %}ticket{% endif %}"
        "{% for name in Values | sort %} {{ name }}{% endfor %}"
    )
    assert render(template, {"severity": "critical", "job": "x"}) == "page job severity"


def test_render_label_with_dash_by_subscript():
    assert render('{{ Values["app-name"] }}', {"app-name": "search"}) == "search"


def test_render_error_keeps_partial_output():
    with pytest.raises(TemplateRenderError) as excinfo:
        render("before {{ .Values.missing.field }} after", {})
    assert excinfo.value.partial == "before "


def test_render_syntax_error_has_empty_partial():
    with pytest.raises(TemplateRenderError) as excinfo:
        render("{{ .Values.job ", {"job": "x"})
    assert excinfo.value.partial == ""


@pytest.mark.parametrize(
    "source, expected",
    [
        ("{{ .Values.job }}", "{{ Values.job }}"),
        ("{{- .Values.job -}}", "{{- Values.job -}}"),
        ("{% if .Values.a %}.Values.b{% endif %}", "{% if Values.a %}.Values.b{% endif %}"),
        ("{{ 1.5 }}", "{{ 1.5 }}"),
        ("{{ Values.job }}", "{{ Values.job }}"),
        ("{{ '.x' }}", "{{ '.x' }}"),
    ],
)
def test_normalize_references(source, expected):
    assert normalize_references(source) == expected


@pytest.mark.parametrize("label", ["items", "values", "keys", "get", "copy", "pop", "update"])
def test_label_named_like_dict_method(label):
    assert render("{{ .Values.%s }}" % label, {label: "search"}) == "search"


def test_dict_methods_still_available_without_matching_label():
    assert render("{% for k, v in Values.items() %}{{ k }}={{ v }}{% endfor %}", {"job": "x"}) == "job=x"


@pytest.mark.parametrize(
    "template, expected",
    [
        ('{{ "see .Values" }}', "see .Values"),
        ("{{ 'cfg .Values.job' }}", "cfg .Values.job"),
        ('{{ .Values.file | replace(".cfg", "") }}', "search"),
        ('{{ .Values.job ~ " .x" }}', "x .x"),
    ],
)
def test_dots_inside_string_literals_are_kept(template, expected):
    assert render(template, {"job": "x", "file": "search.cfg"}) == expected

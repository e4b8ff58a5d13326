"""Tests for the template engine."""

import pytest

from helm_mirror.errors import RenderError
from helm_mirror.images.template import (
    Action,
    TemplateEngine,
    to_text,
    tokenize,
)

CONTEXT = {
    "Values": {
        "image": {"repository": "nginx", "tag": "1.19", "pullPolicy": ""},
        "enabled": True,
        "replicas": 3,
        "sidecar": {"enabled": False, "image": "busybox"},
        "images": ["a", "b"],
        "ports": {"http": 80, "admin": 9000},
        "version": 1.0,
    },
    "Chart": {"Name": "web", "Version": "0.1.0"},
    "Release": {"Name": "release-name", "Namespace": "default"},
}


@pytest.fixture
def engine():
    return TemplateEngine()


def render(engine, source):
    return engine.render(source, CONTEXT, "test.yaml")


class TestTokenize:
    """Tests for tokenize function."""

    def test_text_and_actions(self):
        tokens = list(tokenize("a{{ .X }}b"))
        assert tokens == ["a", Action(body=".X"), "b"]

    def test_trim_markers(self):
        """Dashes followed by a space mark trimming."""
        [action] = list(tokenize("{{- .X -}}"))
        assert action == Action(body=".X", trim_left=True, trim_right=True)

    def test_negative_number_is_not_trim(self):
        [action] = list(tokenize("{{-3}}"))
        assert action.body == "-3"
        assert not action.trim_left

    def test_line_numbers(self):
        actions = [t for t in tokenize("{{ .A }}\n\n{{ .B }}") if isinstance(t, Action)]
        assert [a.line for a in actions] == [1, 3]

    def test_unclosed_action(self):
        """The error names the template and line."""
        with pytest.raises(RenderError, match="chart.yaml:2"):
            list(tokenize("a\nb {{ .X", "chart.yaml"))


class TestFieldLookups:
    """Tests for field lookups."""

    def test_image_line(self, engine):
        source = 'image: "{{ .Values.image.repository }}:{{ .Values.image.tag }}"'
        assert render(engine, source) == 'image: "nginx:1.19"'

    def test_root_variable(self, engine):
        assert render(engine, "{{ $.Chart.Name }}") == "web"

    def test_missing_key_is_empty(self, engine):
        assert render(engine, "[{{ .Values.nope }}]") == "[]"

    def test_field_of_missing_value_fails(self, engine):
        """Walking past a missing key is an error, not an empty string."""
        with pytest.raises(RenderError, match="test.yaml:1: nil pointer"):
            render(engine, "{{ .Values.nope.deeper }}")

    def test_field_of_scalar_fails(self, engine):
        with pytest.raises(RenderError, match="can't evaluate field"):
            render(engine, "{{ .Values.replicas.count }}")

    def test_scalars_formatted(self, engine):
        assert render(engine, "{{ .Values.enabled }} {{ .Values.replicas }}") == "true 3"

    def test_whole_number_float(self, engine):
        """YAML floats such as 1.0 print like Go prints float64 values."""
        assert render(engine, "{{ .Values.version }}") == "1"

    def test_parenthesized_field(self, engine):
        assert render(engine, "{{ (.Values.image).tag }}") == "1.19"


class TestPipelines:
    """Tests for pipelines and functions."""

    def test_default_on_empty(self, engine):
        assert render(engine, '{{ .Values.image.pullPolicy | default "Always" }}') == (
            "Always"
        )

    def test_default_on_value(self, engine):
        assert render(engine, '{{ .Values.image.tag | default "latest" }}') == "1.19"

    def test_default_as_call(self, engine):
        assert render(engine, '{{ default "latest" .Values.missing }}') == "latest"

    def test_quote(self, engine):
        assert render(engine, "{{ .Values.image.tag | quote }}") == '"1.19"'

    def test_chained(self, engine):
        source = '{{ .Values.image.repository | upper | printf "%s-x" }}'
        assert render(engine, source) == "NGINX-x"

    def test_printf(self, engine):
        source = '{{ printf "%s:%s" .Values.image.repository .Values.image.tag }}'
        assert render(engine, source) == "nginx:1.19"

    def test_printf_percent_literal(self, engine):
        assert render(engine, '{{ printf "%d%%" 50 }}') == "50%"

    def test_printf_missing_argument(self, engine):
        assert render(engine, '{{ printf "%s-%s" "a" }}') == "a-%!s(MISSING)"

    def test_string_functions(self, engine):
        assert render(engine, '{{ trimSuffix ".19" .Values.image.tag }}') == "1"
        assert render(engine, '{{ replace "n" "N" .Values.image.repository }}') == (
            "NgiNx"
        )
        assert render(engine, '{{ "release-name-web" | trunc 7 }}') == "release"

    def test_parenthesized_pipeline(self, engine):
        source = '{{ default (printf "%s:latest" .Values.image.repository) .Values.a }}'
        assert render(engine, source) == "nginx:latest"

    def test_comparisons(self, engine):
        assert render(engine, "{{ eq .Values.replicas 3 }}") == "true"
        assert render(engine, '{{ ne .Chart.Name "web" }}') == "false"
        assert render(engine, "{{ gt .Values.replicas 1 }}") == "true"

    def test_and_or_short_circuit(self, engine):
        """The right side is not evaluated once the result is known."""
        assert render(engine, "[{{ and .Values.nope .Values.nope.deeper }}]") == "[]"
        assert render(engine, "{{ or .Chart.Name .Values.nope.deeper }}") == "web"

    def test_collections(self, engine):
        assert render(engine, "{{ len .Values.images }}") == "2"
        assert render(engine, "{{ index .Values.images 1 }}") == "b"
        assert render(engine, '{{ hasKey .Values.image "tag" }}') == "true"
        assert render(engine, '{{ join "," .Values.images }}') == "a,b"
        assert render(engine, '{{ (dict "a" 1).a }}') == "1"

    def test_to_yaml_nindent(self, engine):
        source = "ports:{{ .Values.ports | toYaml | nindent 2 }}"
        assert render(engine, source) == "ports:\n  admin: 9000\n  http: 80"

    def test_to_json(self, engine):
        assert render(engine, "{{ toJson .Values.images }}") == '["a","b"]'

    def test_unknown_function_fails(self, engine):
        with pytest.raises(RenderError, match='function "lookupSecret" not defined'):
            render(engine, "{{ lookupSecret .Values.image }}")

    def test_argument_to_non_function_fails(self, engine):
        with pytest.raises(RenderError, match="non-function"):
            render(engine, "{{ .Values.image .Values.enabled }}")

    def test_bad_function_arguments_fail(self, engine):
        with pytest.raises(RenderError, match="error calling trimSuffix"):
            render(engine, "{{ trimSuffix }}")


class TestVariables:
    """Tests for variable declaration and scoping."""

    def test_declaration_prints_nothing(self, engine):
        source = "[{{ $tag := .Values.image.tag }}]{{ $tag }}"
        assert render(engine, source) == "[]1.19"

    def test_assignment(self, engine):
        source = '{{ $x := "a" }}{{ if true }}{{ $x = "b" }}{{ end }}{{ $x }}'
        assert render(engine, source) == "b"

    def test_block_scope(self, engine):
        """Variables declared in a block are gone after its end."""
        with pytest.raises(RenderError, match="undefined variable"):
            render(engine, "{{ if true }}{{ $x := 1 }}{{ end }}{{ $x }}")

    def test_root_inside_with(self, engine):
        source = "{{ with .Values.image }}{{ .tag }}/{{ $.Chart.Name }}{{ end }}"
        assert render(engine, source) == "1.19/web"


class TestControlActions:
    """Tests for if, with, range, comments and trimming."""

    def test_if_else(self, engine):
        source = "{{ if .Values.enabled }}on{{ else }}off{{ end }}"
        assert render(engine, source) == "on"

    def test_false_branch_not_rendered(self, engine):
        """A disabled sidecar contributes no image line."""
        source = (
            "image: {{ .Values.image.repository }}\n"
            "{{- if .Values.sidecar.enabled }}\n"
            "image: {{ .Values.sidecar.image }}\n"
            "{{- end }}"
        )
        assert render(engine, source) == "image: nginx"

    def test_else_if_chain(self, engine):
        source = (
            "{{ if .Values.sidecar.enabled }}a"
            "{{ else if eq .Values.replicas 3 }}b"
            "{{ else }}c{{ end }}"
        )
        assert render(engine, source) == "b"

    def test_with_rebinds_dot(self, engine):
        source = "{{ with .Values.image }}{{ .repository }}{{ end }}"
        assert render(engine, source) == "nginx"

    def test_with_else(self, engine):
        source = "{{ with .Values.missing }}{{ . }}{{ else }}none{{ end }}"
        assert render(engine, source) == "none"

    def test_range_list(self, engine):
        source = "{{ range .Values.images }}- image: {{ . }}\n{{ end }}"
        assert render(engine, source) == "- image: a\n- image: b\n"

    def test_range_map_sorted(self, engine):
        source = (
            "{{ range $name, $port := .Values.ports }}"
            "{{ $name }}={{ $port }};"
            "{{ end }}"
        )
        assert render(engine, source) == "admin=9000;http=80;"

    def test_range_index_and_value(self, engine):
        source = "{{ range $i, $v := .Values.images }}{{ $i }}{{ $v }}{{ end }}"
        assert render(engine, source) == "0a1b"

    def test_range_else(self, engine):
        source = "{{ range .Values.missing }}x{{ else }}empty{{ end }}"
        assert render(engine, source) == "empty"

    def test_range_break_continue(self, engine):
        source = (
            "{{ range .Values.images }}"
            '{{ if eq . "a" }}{{ continue }}{{ end }}{{ . }}{{ break }}'
            "{{ end }}"
        )
        assert render(engine, source) == "b"

    def test_range_over_string_fails(self, engine):
        with pytest.raises(RenderError, match="range can't iterate"):
            render(engine, "{{ range .Chart.Name }}{{ end }}")

    def test_break_outside_range(self, engine):
        with pytest.raises(RenderError, match="outside"):
            render(engine, "{{ break }}")

    def test_comment(self, engine):
        assert render(engine, "a{{/* note */}}b") == "ab"

    def test_trimming(self, engine):
        source = "a  \n{{- .Chart.Name -}}\n  b"
        assert render(engine, source) == "awebb"

    @pytest.mark.parametrize(
        "source",
        [
            "{{ if true }}never closed",
            "{{ end }}",
            "{{ if true }}a{{ else }}b{{ else }}c{{ end }}",
            "{{ range .Values.images }}a{{ else if true }}b{{ end }}",
        ],
    )
    def test_malformed_blocks(self, engine, source):
        with pytest.raises(RenderError):
            render(engine, source)


class TestNamedTemplates:
    """Tests for define, include, template, block and tpl."""

    def test_define_renders_nothing(self, engine):
        source = '{{ define "x" }}image: hidden{{ end }}visible'
        assert render(engine, source) == "visible"

    def test_include(self, engine):
        source = (
            '{{- define "web.image" -}}'
            "{{ .Values.image.repository }}:{{ .Values.image.tag }}"
            "{{- end -}}"
            'image: {{ include "web.image" . | quote }}'
        )
        assert render(engine, source) == 'image: "nginx:1.19"'

    def test_include_across_templates(self, engine):
        """Definitions parsed from one template serve another."""
        engine.parse('{{ define "web.name" }}{{ .Chart.Name }}{{ end }}', "_helpers.tpl")
        assert render(engine, '{{ include "web.name" . }}') == "web"

    def test_include_binds_root(self, engine):
        engine.parse('{{ define "tag" }}{{ $.tag }}{{ end }}', "_helpers.tpl")
        assert render(engine, '{{ include "tag" .Values.image }}') == "1.19"

    def test_template_action(self, engine):
        source = '{{ define "x" }}[{{ . }}]{{ end }}{{ template "x" .Chart.Name }}'
        assert render(engine, source) == "[web]"

    def test_block(self, engine):
        assert render(engine, '{{ block "b" .Chart.Name }}<{{ . }}>{{ end }}') == "<web>"

    def test_unknown_template(self, engine):
        with pytest.raises(RenderError, match='no template "nope"'):
            render(engine, '{{ include "nope" . }}')

    def test_tpl(self, engine):
        values = dict(CONTEXT["Values"], ref="{{ .Chart.Name }}:1")
        context = dict(CONTEXT, Values=values)
        assert engine.render("{{ tpl .Values.ref . }}", context, "t.yaml") == "web:1"

    def test_recursive_include_stops(self, engine):
        source = (
            '{{ define "loop" }}{{ include "loop" . }}{{ end }}'
            '{{ include "loop" . }}'
        )
        with pytest.raises(RenderError, match="nested reference name: loop"):
            render(engine, source)


class TestRequired:
    """Tests for the required function."""

    def test_present(self, engine):
        source = '{{ required "tag needed" .Values.image.tag }}'
        assert render(engine, source) == "1.19"

    def test_missing_lenient(self, engine):
        """Missing required values render empty by default."""
        assert render(engine, '[{{ required "tag needed" .Values.x }}]') == "[]"

    def test_missing_strict(self):
        with pytest.raises(RenderError, match="tag needed"):
            render(TemplateEngine(strict=True), '{{ required "tag needed" .Values.x }}')


class TestToText:
    """Tests for to_text function."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, ""),
            (True, "true"),
            (False, "false"),
            (3, "3"),
            ("x", "x"),
            (1.0, "1"),
            (1.5, "1.5"),
            (["a", 1], "[a 1]"),
            ({"b": 2, "a": 1}, "map[a:1 b:2]"),
        ],
    )
    def test_formatting(self, value, expected):
        assert to_text(value) == expected

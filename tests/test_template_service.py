"""
TalentDesk Backend: Email Template Unit Tests
=============================================

What:  Placeholder discovery, rendering and the per-candidate values.
"""

from types import SimpleNamespace

from talentdesk.services.template_service import (
    candidate_variables,
    extract_variables,
    merge_variables,
    render_template,
    text_to_html,
)


def _candidate(full_name="Jane van Dam"):
    return SimpleNamespace(
        full_name=full_name,
        pipeline=SimpleNamespace(name="Backend Engineers"),
        stage=SimpleNamespace(name="Interview"),
    )


class TestVariables:
    def test_first_seen_order_without_repeats(self):
        assert extract_variables("Hi {{first_name}}", "{{stage_name}} for {{first_name}}") == [
            "first_name",
            "stage_name",
        ]

    def test_ignores_malformed_placeholders(self):
        assert extract_variables("{first_name} {{ spaced }} {{ok}}") == ["ok"]

    def test_merge_keeps_declared_first(self):
        merged = merge_variables(["company"], "Hello {{first_name}}", "{{company}} {{stage_name}}")
        assert merged == ["company", "first_name", "stage_name"]


class TestRender:
    def test_known_values_replaced(self):
        assert render_template("Hi {{first_name}}!", {"first_name": "Jane"}) == "Hi Jane!"

    def test_unknown_and_empty_values_stay_visible(self):
        rendered = render_template("{{first_name}} {{last_name}} {{salary}}", {"first_name": "Jane", "last_name": ""})
        assert rendered == "Jane {{last_name}} {{salary}}"


class TestCandidateVariables:
    def test_name_split(self):
        values = candidate_variables(_candidate(), "jane@acme.io")

        assert values["first_name"] == "Jane"
        assert values["last_name"] == "van Dam"
        assert values["email"] == "jane@acme.io"
        assert values["pipeline_name"] == "Backend Engineers"
        assert values["stage_name"] == "Interview"

    def test_camel_case_aliases(self):
        values = candidate_variables(_candidate(), "jane@acme.io")
        rendered = render_template("{{firstName}} / {{stageName}}", values)
        assert rendered == "Jane / Interview"

    def test_single_word_name(self):
        values = candidate_variables(_candidate("Cher"), "cher@acme.io")
        assert values["first_name"] == "Cher"
        assert values["last_name"] == ""


def test_text_to_html_escapes_and_breaks_lines():
    assert text_to_html("a < b\nc & d") == "a &lt; b<br>c &amp; d"

"""Unit tests for deskmacro.engine.params -- placeholder substitution."""

from __future__ import annotations

from deskmacro.engine.definition import MacroDefinition
from deskmacro.engine.params import missing_parameters, resolve_parameters, substitute_params


def _macro() -> MacroDefinition:
    return MacroDefinition.from_dict(
        {
            "parameters": [
                {"name": "email", "required": True},
                {"name": "company", "default": "Acme"},
                {"name": "region", "required": True, "default": "EU"},
            ],
            "steps": [{"action": "focus"}],
        }
    )


class TestSubstituteParams:
    def test_replaces_known_names(self):
        assert substitute_params("{{a}}-{{b}}", {"a": "1", "b": "2"}) == "1-2"

    def test_unknown_names_left_verbatim(self):
        assert substitute_params("Hi {{who}}", {}) == "Hi {{who}}"

    def test_none_passes_through(self):
        assert substitute_params(None, {"a": "1"}) is None

    def test_no_nested_expansion(self):
        assert substitute_params("{{a}}", {"a": "{{b}}", "b": "x"}) == "{{b}}"

    def test_whitespace_inside_braces_is_not_a_placeholder(self):
        assert substitute_params("{{ a }}", {"a": "1"}) == "{{ a }}"


class TestParameterResolution:
    def test_missing_required_without_default(self):
        assert missing_parameters(_macro(), {}) == ["email"]
        assert missing_parameters(_macro(), {"email": "x"}) == []

    def test_defaults_filled_in_copy(self):
        supplied = {"email": "x"}
        resolved = resolve_parameters(_macro(), supplied)
        assert resolved == {"email": "x", "company": "Acme", "region": "EU"}
        assert supplied == {"email": "x"}

    def test_supplied_value_beats_default(self):
        assert resolve_parameters(_macro(), {"company": "Globex"})["company"] == "Globex"

"""Tests for the form rule engine."""

import logging
from datetime import date

from src.core.forms.engine import FormRuleEngine
from src.core.forms.models import FieldType, FormDefinition, FormField, FormSection

from tests.conftest import rule


def _form(fields, rules, sections=None):
    """Single-section form unless explicit sections are given."""
    if sections is None:
        sections = [FormSection(id="main", title="Main", fields=fields, rules=rules)]
    return FormDefinition(title="Test", sections=sections)


class TestVisibility:
    """Show and hide rules."""

    def test_untargeted_field_is_visible(self, engine):
        """Should show a field that no rule targets."""
        form = _form([FormField(id="a", label="A")], [])
        assert engine.evaluate(form, {}).fields["a"].visible is True

    def test_show_rule_true(self, engine, pilot_form):
        """Should show the target while the show rule holds."""
        result = engine.evaluate(pilot_form, {"role": "pilot"})
        assert result.fields["pilotLicense"].visible is True

    def test_show_rule_false(self, engine, pilot_form):
        """Should hide the target while the show rule fails."""
        result = engine.evaluate(pilot_form, {"role": "hobbyist"})
        assert result.fields["pilotLicense"].visible is False

    def test_hide_rule(self, engine):
        """Should hide the target only while the hide rule holds."""
        form = _form(
            [FormField(id="kind", label="Kind"), FormField(id="notes", label="Notes")],
            [rule("kind", "is", "quick", "hide", "notes")],
        )
        assert engine.evaluate(form, {"kind": "quick"}).fields["notes"].visible is False
        assert engine.evaluate(form, {"kind": "full"}).fields["notes"].visible is True

    def test_any_true_hide_rule_hides(self, engine):
        """Should hide the target when one of two hide rules holds."""
        form = _form(
            [
                FormField(id="hasInsurance", label="Insured?"),
                FormField(id="weight", label="Weight (g)", type=FieldType.NUMBER),
                FormField(id="insurer", label="Insurer"),
            ],
            [
                rule("hasInsurance", "is", "no", "hide", "insurer"),
                rule("weight", "less_than", "250", "hide", "insurer"),
            ],
        )
        result = engine.evaluate(form, {"hasInsurance": "no", "weight": 900})
        assert result.fields["insurer"].visible is False

        neither = engine.evaluate(form, {"hasInsurance": "yes", "weight": 900})
        assert neither.fields["insurer"].visible is True

    def test_every_show_rule_must_hold(self, engine):
        """Should show the target only when all show rules hold."""
        form = _form(
            [FormField(id="a", label="A"), FormField(id="b", label="B"), FormField(id="c", label="C")],
            [
                rule("a", "is", "yes", "show", "c"),
                rule("b", "is", "yes", "show", "c"),
            ],
        )
        assert engine.evaluate(form, {"a": "yes", "b": "yes"}).fields["c"].visible is True
        assert engine.evaluate(form, {"a": "yes", "b": "no"}).fields["c"].visible is False

    def test_hide_wins_over_show(self, engine):
        """Should hide the target when a hide rule holds even if show holds."""
        form = _form(
            [FormField(id="a", label="A"), FormField(id="c", label="C")],
            [
                rule("a", "is_not_empty", None, "show", "c"),
                rule("a", "is", "x", "hide", "c"),
            ],
        )
        assert engine.evaluate(form, {"a": "x"}).fields["c"].visible is False
        assert engine.evaluate(form, {"a": "y"}).fields["c"].visible is True

    def test_hidden_section_hides_its_fields(self, engine):
        """Should hide every field of a hidden section."""
        sections = [
            FormSection(
                id="intro",
                title="Intro",
                fields=[FormField(id="hasDrone", label="Own a drone?")],
                rules=[rule("hasDrone", "is", "yes", "show", "fleet")],
            ),
            FormSection(
                id="fleet",
                title="Fleet",
                fields=[FormField(id="model", label="Model")],
            ),
        ]
        form = _form(None, None, sections=sections)

        hidden = engine.evaluate(form, {"hasDrone": "no"})
        assert hidden.sections["fleet"].visible is False
        assert hidden.fields["model"].visible is False

        shown = engine.evaluate(form, {"hasDrone": "yes"})
        assert shown.sections["fleet"].visible is True
        assert shown.fields["model"].visible is True
        assert shown.visible_field_ids() == ["hasDrone", "model"]

    def test_rules_target_across_sections(self, engine):
        """Should apply a rule authored in one section to a field in another."""
        sections = [
            FormSection(
                id="s1",
                title="One",
                fields=[FormField(id="x", label="X")],
            ),
            FormSection(
                id="s2",
                title="Two",
                fields=[FormField(id="y", label="Y")],
                rules=[rule("y", "is", "hide", "hide", "x")],
            ),
        ]
        form = _form(None, None, sections=sections)
        assert engine.evaluate(form, {"y": "hide"}).fields["x"].visible is False


class TestRequired:
    """Static flags and require rules."""

    def test_static_flag(self, engine):
        """Should use the static flag when no require rule targets the field."""
        form = _form([FormField(id="a", label="A", required=True)], [])
        assert engine.evaluate(form, {}).fields["a"].required is True

    def test_require_rule_controls_requiredness(self, engine, pilot_form):
        """Should require the field only while the require rule holds."""
        assert engine.evaluate(pilot_form, {"role": "pilot"}).fields["pilotLicense"].required is True
        assert engine.evaluate(pilot_form, {"role": "hobbyist"}).fields["pilotLicense"].required is False

    def test_require_rule_overrides_static_flag(self, engine):
        """Should let a failing require rule override a static required flag."""
        form = _form(
            [FormField(id="a", label="A"), FormField(id="b", label="B", required=True)],
            [rule("a", "is", "yes", "require", "b")],
        )
        assert engine.evaluate(form, {"a": "no"}).fields["b"].required is False

    def test_all_require_rules_must_hold(self, engine):
        """Should require the field only when every require rule holds."""
        form = _form(
            [FormField(id="a", label="A"), FormField(id="b", label="B"), FormField(id="c", label="C")],
            [
                rule("a", "is", "yes", "require", "c"),
                rule("b", "is", "yes", "require", "c"),
            ],
        )
        assert engine.evaluate(form, {"a": "yes", "b": "no"}).fields["c"].required is False
        assert engine.evaluate(form, {"a": "yes", "b": "yes"}).fields["c"].required is True

    def test_sections_are_never_required(self, engine, pilot_form):
        """Should report sections as not required."""
        assert engine.evaluate(pilot_form, {}).sections["about"].required is False

    def test_is_required_helper(self, engine, pilot_form):
        """Should answer requiredness for single fields, false for unknown ids."""
        assert engine.is_required(pilot_form, "role", {}) is True
        assert engine.is_required(pilot_form, "unknown", {}) is False


class TestJumpTo:
    """jump_to actions."""

    def _form(self):
        sections = [
            FormSection(
                id="start",
                title="Start",
                fields=[FormField(id="path", label="Path")],
                rules=[
                    rule("path", "is", "commercial", "jump_to", "commercial"),
                    rule("path", "is_not_empty", None, "jump_to", "summary"),
                    rule("path", "is", "nowhere", "jump_to", "missing"),
                ],
            ),
            FormSection(id="commercial", title="Commercial", fields=[FormField(id="c", label="C")]),
            FormSection(id="summary", title="Summary", fields=[FormField(id="s", label="S")]),
        ]
        return _form(None, None, sections=sections)

    def test_jump_on_changed_field(self, engine):
        """Should jump when a rule watching the changed field holds."""
        result = engine.evaluate(self._form(), {"path": "hobby"}, changed_field_id="path")
        assert result.jump_to_section_id == "summary"

    def test_last_true_rule_wins(self, engine):
        """Should use the last true jump rule."""
        result = engine.evaluate(self._form(), {"path": "commercial"}, changed_field_id="path")
        assert result.jump_to_section_id == "summary"

    def test_unknown_section_is_ignored(self):
        """Should ignore a jump to a section that does not exist."""
        sections = [
            FormSection(
                id="start",
                title="Start",
                fields=[FormField(id="path", label="Path")],
                rules=[rule("path", "is", "nowhere", "jump_to", "missing")],
            ),
        ]
        result = FormRuleEngine(max_passes=5).evaluate(_form(None, None, sections=sections), {"path": "nowhere"})
        assert result.jump_to_section_id is None

    def test_unrelated_change_does_not_jump(self, engine):
        """Should not fire actions for rules watching other fields."""
        result = engine.evaluate(self._form(), {"path": "hobby"}, changed_field_id="c")
        assert result.jump_to_section_id is None


class TestCalculate:
    """calculate actions and the cascade."""

    def _budget_form(self):
        return _form(
            [
                FormField(id="lineItem1", label="Item 1", type=FieldType.NUMBER),
                FormField(id="lineItem2", label="Item 2", type=FieldType.NUMBER),
                FormField(id="total", label="Total", type=FieldType.HIDDEN),
            ],
            [
                rule("lineItem1", "is_not_empty", None, "calculate", "total", "sum(lineItem1, lineItem2)"),
                rule("lineItem2", "is_not_empty", None, "calculate", "total", "sum(lineItem1, lineItem2)"),
            ],
        )

    def test_sum_treats_blank_as_zero(self, engine):
        """Should write the total with a blank line item counted as 0."""
        result = engine.evaluate(
            self._budget_form(), {"lineItem1": 100, "lineItem2": ""}, changed_field_id="lineItem1"
        )
        assert result.answers["total"] == 100
        assert result.converged is True

    def test_input_answers_are_not_mutated(self, engine):
        """Should leave the caller's answer map untouched."""
        answers = {"lineItem1": 5, "lineItem2": 7}
        result = engine.evaluate(self._budget_form(), answers)
        assert result.answers["total"] == 12
        assert "total" not in answers

    def test_cascade_feeds_dependent_rules(self, engine):
        """Should fire rules watching a calculated field on the next pass."""
        form = _form(
            [
                FormField(id="dob", label="Date of birth", type=FieldType.DATE),
                FormField(id="age", label="Age", type=FieldType.HIDDEN),
                FormField(id="band", label="Band", type=FieldType.HIDDEN),
            ],
            [
                rule("dob", "is_not_empty", None, "calculate", "age", "age(dob)"),
                rule("age", "less_than", "18", "calculate", "band", "junior"),
            ],
        )
        result = engine.evaluate(form, {"dob": "2010-01-01"}, changed_field_id="dob")
        assert result.answers["age"] == 16
        assert result.answers["band"] == "junior"
        assert result.passes == 3

    def test_unchanged_value_does_not_cascade(self, engine):
        """Should stop after one pass when the calculated value is unchanged."""
        result = engine.evaluate(
            self._budget_form(),
            {"lineItem1": 1, "lineItem2": 2, "total": 3},
            changed_field_id="lineItem1",
        )
        assert result.passes == 1
        assert result.converged is True

    def test_mutual_calculations_stop_at_cap(self, caplog):
        """Should stop at the pass cap and log a warning for cyclic calculations."""
        form = _form(
            [
                FormField(id="a", label="A", type=FieldType.NUMBER),
                FormField(id="b", label="B", type=FieldType.NUMBER),
                FormField(id="one", label="One", type=FieldType.HIDDEN),
            ],
            [
                rule("b", "is_not_empty", None, "calculate", "a", "sum(b, one)"),
                rule("a", "is_not_empty", None, "calculate", "b", "sum(a, one)"),
            ],
        )
        engine = FormRuleEngine(max_passes=4, today=lambda: date(2026, 6, 15))
        with caplog.at_level(logging.WARNING, logger="src.core.forms.engine"):
            result = engine.evaluate(form, {"a": 0, "one": 1}, changed_field_id="a")

        assert result.passes == 4
        assert result.converged is False
        assert "did not settle" in caplog.text

    def test_derivations_do_not_write_answers(self, engine, pilot_form):
        """Should not change answers for show/hide/require rules."""
        result = engine.evaluate(pilot_form, {"role": "pilot"})
        assert result.answers == {"role": "pilot"}
        assert result.passes == 1


class TestPilotScenario:
    """The licence field follows the role answer end to end."""

    def test_pilot_then_hobbyist(self, engine, pilot_form):
        """Should show and require the licence for pilots only."""
        pilot = engine.evaluate(pilot_form, {"role": "pilot"}, changed_field_id="role")
        assert pilot.fields["pilotLicense"].visible is True
        assert pilot.fields["pilotLicense"].required is True

        hobbyist = engine.evaluate(pilot_form, {"role": "hobbyist"}, changed_field_id="role")
        assert hobbyist.fields["pilotLicense"].visible is False
        assert hobbyist.fields["pilotLicense"].required is False

    def test_evaluation_is_deterministic(self, engine, pilot_form):
        """Should produce equal results for equal inputs."""
        answers = {"role": "pilot", "pilotLicense": "GB-123"}
        assert engine.evaluate(pilot_form, answers) == engine.evaluate(pilot_form, answers)

"""Decoders for the legacy builder payloads.

Three builders wrote forms in their own vocabularies before the unified
rule model existed:

* the opportunity application builder (flat ``fields`` with upper-case
  types and per-field ``conditions``),
* the event registration builder (``sections`` with camelCase
  ``conditionalRules``, or flat fields with ``conditionalLogic``),
* the Tally-style builder (sections whose fields carry ``conditional``).

Each payload is decoded once into a `FormDefinition`. Rules that have no
counterpart in the unified model, fields without an id and entries that
are not objects are skipped with a warning. Values the unified model
rejects (over-long ids, non-text titles) raise pydantic `ValidationError`,
a `ValueError`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from .models import (
    Action,
    ActionKind,
    Condition,
    ConditionalRule,
    FieldType,
    FormDefinition,
    FormField,
    FormSection,
    Operator,
)

logger = logging.getLogger(__name__)

DEFAULT_SECTION_ID = "default"

# Upper-case and lower-case type names used by the legacy builders
FIELD_TYPE_ALIASES: Dict[str, FieldType] = {
    "short_answer": FieldType.SHORT_TEXT,
    "text": FieldType.SHORT_TEXT,
    "password": FieldType.SHORT_TEXT,
    "long_answer": FieldType.LONG_TEXT,
    "textarea": FieldType.LONG_TEXT,
    "paragraph": FieldType.LONG_TEXT,
    "email": FieldType.EMAIL,
    "phone": FieldType.PHONE,
    "link": FieldType.LINK,
    "url": FieldType.LINK,
    "number": FieldType.NUMBER,
    "linear_scale": FieldType.NUMBER,
    "rating": FieldType.NUMBER,
    "date": FieldType.DATE,
    "time": FieldType.TIME,
    "dropdown": FieldType.SELECT,
    "select": FieldType.SELECT,
    "multiple_choice": FieldType.RADIO,
    "radio": FieldType.RADIO,
    "checkboxes": FieldType.CHECKBOX,
    "checkbox": FieldType.CHECKBOX,
    "multi_select": FieldType.MULTI_SELECT,
    "file_upload": FieldType.FILE,
    "file": FieldType.FILE,
    "hidden": FieldType.HIDDEN,
    "hidden_fields": FieldType.HIDDEN,
    "calculated_fields": FieldType.HIDDEN,
}

# Layout and embed blocks carry no answer
NON_INPUT_BLOCKS = {
    "new_page", "thank_you_page", "heading_1", "heading_2", "heading_3",
    "divider", "title", "label", "image", "video", "audio", "embed_anything",
    "conditional_logic", "recaptcha", "respondent_country", "signature", "ranking",
}

OPERATOR_ALIASES: Dict[str, Operator] = {
    "is": Operator.IS,
    "equals": Operator.IS,
    "is_not": Operator.IS_NOT,
    "not_equals": Operator.IS_NOT,
    "contains": Operator.CONTAINS,
    "not_contains": Operator.DOES_NOT_CONTAIN,
    "does_not_contain": Operator.DOES_NOT_CONTAIN,
    "is_empty": Operator.IS_EMPTY,
    "is_not_empty": Operator.IS_NOT_EMPTY,
    "greater_than": Operator.GREATER_THAN,
    "less_than": Operator.LESS_THAN,
}

ACTION_ALIASES: Dict[str, ActionKind] = {
    "show": ActionKind.SHOW,
    "show_field": ActionKind.SHOW,
    "show_blocks": ActionKind.SHOW,
    "hide": ActionKind.HIDE,
    "hide_field": ActionKind.HIDE,
    "hide_blocks": ActionKind.HIDE,
    "require": ActionKind.REQUIRE,
    "require_answer": ActionKind.REQUIRE,
    "make_required": ActionKind.REQUIRE,
    "jump_to": ActionKind.JUMP_TO,
    "jump_to_page": ActionKind.JUMP_TO,
    "calculate": ActionKind.CALCULATE,
}


def decode_string_list(raw: Any) -> List[str]:
    """Decode a loosely-typed list column into an ordered list of strings.

    Accepts a list, JSON array text, or comma-separated text. Blank items
    are dropped.
    """
    if raw is None:
        return []

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                return decode_string_list(parsed)
        return [part.strip() for part in text.split(",") if part.strip()]

    if isinstance(raw, (list, tuple)):
        items = []
        for item in raw:
            if item is None:
                continue
            text = str(item).strip()
            if text:
                items.append(text)
        return items

    return [str(raw)]


def _key(name: Any) -> str:
    return str(name or "").strip().lower().replace("-", "_").replace(" ", "_")


def map_field_type(name: Any) -> Optional[FieldType]:
    """Map a legacy type name to a FieldType. None for layout blocks."""
    key = _key(name)
    if key in NON_INPUT_BLOCKS:
        return None
    try:
        return FieldType(key)
    except ValueError:
        pass
    if key in FIELD_TYPE_ALIASES:
        return FIELD_TYPE_ALIASES[key]
    logger.warning(f"Unknown field type '{name}', treating as short text")
    return FieldType.SHORT_TEXT


def map_operator(name: Any) -> Optional[Operator]:
    return OPERATOR_ALIASES.get(_key(name))


def map_action(name: Any) -> Optional[ActionKind]:
    return ACTION_ALIASES.get(_key(name))


def _make_rule(
    rule_id: Optional[str],
    watched: Any,
    operator: Any,
    value: Any,
    action: Any,
    target: Any,
    action_value: Any = None,
) -> Optional[ConditionalRule]:
    """Build a unified rule, or None (with a warning) if it cannot map."""
    op = map_operator(operator)
    kind = map_action(action)
    if not watched or op is None or kind is None or not target:
        logger.warning(
            f"Skipping legacy rule {rule_id or ''}: "
            f"when={watched!r} operator={operator!r} action={action!r} target={target!r}"
        )
        return None

    return ConditionalRule(
        id=str(rule_id) if rule_id else None,
        when=Condition(
            field_id=str(watched),
            operator=op,
            value=None if value is None else str(value),
        ),
        then=Action(
            kind=kind,
            target=str(target),
            value=None if action_value is None else str(action_value),
        ),
    )


def _make_field(raw: Dict[str, Any], field_type: FieldType) -> Optional[FormField]:
    """Build a unified field, or None (with a warning) if it has no id."""
    field_id = str(raw.get("id") if raw.get("id") is not None else "").strip()
    if not field_id:
        logger.warning(f"Skipping legacy field without an id: label={raw.get('label')!r}")
        return None

    placeholder = raw.get("placeholder")
    return FormField(
        id=field_id,
        label=str(raw.get("label") or ""),
        type=field_type,
        required=bool(raw.get("required", False)),
        placeholder=str(placeholder) if placeholder else None,
        options=decode_string_list(raw.get("options")),
    )


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _blocks(items: Any, kind: str) -> List[Dict[str, Any]]:
    """Keep the dict entries of a legacy list, warning about the rest."""
    if items is None:
        return []
    if not isinstance(items, list):
        logger.warning(f"Ignoring legacy {kind} list of type {type(items).__name__}")
        return []
    blocks = []
    for item in items:
        if isinstance(item, dict):
            blocks.append(item)
        else:
            logger.warning(f"Skipping malformed legacy {kind}: {item!r}")
    return blocks


def _ordered(items: Any, kind: str) -> List[Dict[str, Any]]:
    """Sort by `order` when every item has one; otherwise keep list order."""
    items = _blocks(items, kind)
    if items and all(isinstance(i.get("order"), (int, float)) for i in items):
        return sorted(items, key=lambda i: i["order"])
    return items


def from_opportunity_form(payload: Dict[str, Any]) -> FormDefinition:
    """Decode an opportunity application form.

    Conditions hang off the field they affect; ``targetFieldId`` is the
    field being watched. Block-level targets (``targetBlock``,
    ``targetPage``) override the owning field.
    """
    fields: List[FormField] = []
    rules: List[ConditionalRule] = []

    for raw in _ordered(payload.get("fields"), "field"):
        field_type = map_field_type(raw.get("type"))
        if field_type is None:
            continue
        field = _make_field(raw, field_type)
        if field is None:
            continue
        fields.append(field)

        for condition in _blocks(raw.get("conditions"), "condition"):
            kind = map_action(condition.get("action"))
            if kind == ActionKind.JUMP_TO:
                target = condition.get("targetPage")
            else:
                target = condition.get("targetBlock") or field.id
            rule = _make_rule(
                condition.get("id"),
                condition.get("targetFieldId"),
                condition.get("operator"),
                condition.get("value"),
                condition.get("action"),
                target,
                condition.get("value") if kind == ActionKind.CALCULATE else None,
            )
            if rule is not None:
                rules.append(rule)

    section = FormSection(
        id=DEFAULT_SECTION_ID,
        title=payload.get("title") or "Application",
        fields=fields,
        rules=rules,
    )
    return FormDefinition(
        title=payload.get("title") or "Application Form",
        description=payload.get("description") or None,
        sections=[section],
        allow_submissions=bool(payload.get("allowSubmissions", True)),
    )


def _registration_section(raw: Dict[str, Any]) -> FormSection:
    fields: List[FormField] = []
    rules: List[ConditionalRule] = []

    for raw_field in _ordered(raw.get("fields"), "field"):
        field_type = map_field_type(raw_field.get("type"))
        if field_type is None:
            continue
        field = _make_field(raw_field, field_type)
        if field is None:
            continue
        fields.append(field)

        logic = _mapping(raw_field.get("conditionalLogic"))
        if logic.get("showWhen"):
            rule = _make_rule(
                None,
                logic.get("showWhen"),
                logic.get("operator"),
                logic.get("value"),
                logic.get("action") or "show",
                field.id,
            )
            if rule is not None:
                rules.append(rule)

    for raw_rule in _blocks(raw.get("conditionalRules"), "rule"):
        when = _mapping(raw_rule.get("when"))
        then = _mapping(raw_rule.get("then"))
        rule = _make_rule(
            raw_rule.get("id"),
            when.get("fieldId"),
            when.get("operator"),
            when.get("value"),
            then.get("action"),
            then.get("target"),
            then.get("value"),
        )
        if rule is not None:
            rules.append(rule)

    return FormSection(
        id=str(raw.get("id") or DEFAULT_SECTION_ID),
        title=raw.get("title") or "Registration Information",
        description=raw.get("description") or None,
        fields=fields,
        rules=rules,
    )


def from_registration_form(payload: Dict[str, Any]) -> FormDefinition:
    """Decode an event registration form.

    Accepts either ``sections`` or a bare ``fields`` list, which becomes a
    single default section.
    """
    raw_sections = payload.get("sections")
    if not raw_sections:
        raw_sections = [{
            "id": DEFAULT_SECTION_ID,
            "title": "Registration Information",
            "description": "Please fill out the following information",
            "fields": payload.get("fields", []),
            "conditionalRules": payload.get("conditionalRules", []),
        }]

    return FormDefinition(
        title=payload.get("title") or "Event Registration",
        description=payload.get("description") or None,
        sections=[_registration_section(s) for s in _ordered(raw_sections, "section")],
        allow_submissions=bool(payload.get("allowSubmissions", True)),
    )


def from_tally_form(payload: Dict[str, Any]) -> FormDefinition:
    """Decode a Tally-style form.

    A field's ``conditional {dependsOn, operator, value}`` means the field
    is shown only while the condition holds.
    """
    sections: List[FormSection] = []

    for index, raw in enumerate(_ordered(payload.get("sections"), "section")):
        fields: List[FormField] = []
        rules: List[ConditionalRule] = []

        for raw_field in _ordered(raw.get("fields"), "field"):
            field_type = map_field_type(raw_field.get("type"))
            if field_type is None:
                continue
            field = _make_field(raw_field, field_type)
            if field is None:
                continue
            fields.append(field)

            conditional = _mapping(raw_field.get("conditional"))
            if conditional.get("dependsOn"):
                rule = _make_rule(
                    None,
                    conditional.get("dependsOn"),
                    conditional.get("operator"),
                    conditional.get("value"),
                    "show",
                    field.id,
                )
                if rule is not None:
                    rules.append(rule)

        sections.append(
            FormSection(
                id=str(raw.get("id") or f"section-{index + 1}"),
                title=raw.get("title") or f"Section {index + 1}",
                description=raw.get("description") or None,
                fields=fields,
                rules=rules,
            )
        )

    settings = _mapping(payload.get("settings"))
    return FormDefinition(
        title=payload.get("title") or "Untitled Form",
        description=payload.get("description") or None,
        sections=sections,
        allow_submissions=bool(settings.get("allowSubmissions", payload.get("allowSubmissions", True))),
    )


ADAPTERS = {
    "opportunity": from_opportunity_form,
    "registration": from_registration_form,
    "tally": from_tally_form,
}


def get_adapter(source: str):
    """Get the decoder for a legacy source name."""
    return ADAPTERS.get(source)

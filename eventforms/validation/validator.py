"""Polymorphic validator - structural and cardinality checks per event type.

`validate` is a pure function of (document, rule set). It never raises on a
partially filled document and has no side effects, so it is safe to run on
every cache change.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from eventforms.models.common import EventStatus, Priority
from eventforms.models.document import EventDocument, EventMetadata
from eventforms.models.rules import SectionRule
from eventforms.models.validation import SectionSummary, ValidationResult, ValidationSummary
from eventforms.validation.rules import UNRESOLVED, ResolvedRules
from eventforms.validation.variants import EventVariant, SectionSchema, get_variant

_PRIORITIES = [p.value for p in Priority]


class _Findings:
    """Accumulates messages while a document is checked."""

    def __init__(self) -> None:
        self.field_errors: dict[str, str] = {}
        self.section_errors: dict[str, list[str]] = {}
        self.errors: dict[str, list[str]] = {}

    def field(self, path: str, message: str) -> None:
        # First message wins per path
        if path in self.field_errors:
            return
        self.field_errors[path] = message
        self.errors.setdefault(path, []).append(message)

    def section(self, section_id: str, message: str) -> None:
        self.section_errors.setdefault(section_id, []).append(message)
        self.errors.setdefault(f"sections.{section_id}", []).append(message)

    @property
    def empty(self) -> bool:
        return not self.errors


def validate(document: EventDocument, rules: ResolvedRules) -> ValidationResult:
    """Validate a document snapshot against the rule set of its type.

    Args:
        document: Snapshot to check (may be partially filled)
        rules: Rule set for the document's current type, or UNRESOLVED

    Returns:
        ValidationResult. An unrecognized type yields a single top-level
        error; an unresolved (or mismatched) rule set yields a pending
        result with no messages.
    """
    variant = get_variant(document.event_type)
    if variant is None:
        message = f"Unknown event type: {document.event_type or '(missing)'}"
        return ValidationResult(
            field_errors={"event_type": message},
            errors={"event_type": [message]},
        )

    # Never apply a rule set fetched for another type
    if rules is UNRESOLVED or rules.event_type != document.event_type:
        return ValidationResult(pending=True)

    findings = _Findings()
    _check_metadata(document.metadata, findings)
    _check_sections(document, variant, findings)
    for rule in rules.sections:
        _check_cardinality(document, variant, rule, findings)

    is_valid = findings.empty
    return ValidationResult(
        is_valid=is_valid,
        can_publish=is_valid and document.status == EventStatus.draft,
        field_errors=findings.field_errors,
        section_errors=findings.section_errors,
        errors=findings.errors,
    )


def validate_section(
    document: EventDocument, section_id: str, rules: ResolvedRules
) -> ValidationResult:
    """Validate a single section (entity fields plus its cardinality rule)."""
    full = validate(document, rules)
    if full.pending or "event_type" in full.errors:
        return full

    prefix = f"sections.{section_id}"
    field_errors = {
        path: message
        for path, message in full.field_errors.items()
        if path.startswith(prefix + ".")
    }
    section_errors = (
        {section_id: list(full.section_errors[section_id])}
        if section_id in full.section_errors
        else {}
    )
    errors = {
        path: list(messages)
        for path, messages in full.errors.items()
        if path == prefix or path.startswith(prefix + ".")
    }
    is_valid = not errors
    return ValidationResult(
        is_valid=is_valid,
        can_publish=is_valid,
        field_errors=field_errors,
        section_errors=section_errors,
        errors=errors,
    )


def validation_summary(document: EventDocument, result: ValidationResult) -> ValidationSummary:
    """Condense a validation result into per-section status for display."""
    summaries: dict[str, SectionSummary] = {}

    section_ids = list(result.section_errors)
    section_ids += [sid for sid in document.sections if sid not in result.section_errors]
    for section_id in section_ids:
        prefix = f"sections.{section_id}."
        messages = list(result.section_errors.get(section_id, []))
        messages += [
            message for path, message in result.field_errors.items() if path.startswith(prefix)
        ]
        summaries[section_id] = SectionSummary(
            valid=not messages, error_count=len(messages), errors=messages
        )

    return ValidationSummary(
        overall_valid=result.is_valid,
        can_publish=result.can_publish,
        pending=result.pending,
        total_errors=result.error_count,
        section_summaries=summaries,
    )


def cardinality_message(rule: SectionRule, schema: SectionSchema | None) -> str:
    """User-facing shortfall message, e.g. "At least 1 person is required (Persons Involved)"."""
    count = rule.minimum_entries
    if schema is not None:
        label = schema.singular if count == 1 else schema.plural
    else:
        label = rule.display_name.lower()
    verb = "is" if count == 1 else "are"
    return f"At least {count} {label} {verb} required ({rule.display_name})"


def _check_metadata(metadata: EventMetadata, findings: _Findings) -> None:
    if not isinstance(metadata.title, str) or not metadata.title.strip():
        findings.field("metadata.title", "Title is required")

    if metadata.priority not in _PRIORITIES:
        findings.field(
            "metadata.priority", f"Priority must be one of {', '.join(_PRIORITIES)}"
        )

    occurred_at = metadata.occurred_at
    if not isinstance(occurred_at, str) or not occurred_at.strip():
        findings.field("metadata.occurred_at", "Occurrence date/time is required")
    elif _parse_timestamp(occurred_at) is None:
        findings.field(
            "metadata.occurred_at", "Occurrence date/time must be a valid ISO-8601 timestamp"
        )


def _parse_timestamp(value: str) -> datetime | None:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _check_sections(document: EventDocument, variant: EventVariant, findings: _Findings) -> None:
    for section_id, entries in document.sections.items():
        schema = variant.sections.get(section_id)
        if schema is None:
            # Empty collections for foreign sections are harmless
            if entries:
                findings.section(
                    section_id,
                    f"Section {section_id} is not supported for {variant.display_name}",
                )
            continue

        for index, entry in enumerate(entries):
            _check_entity(schema, f"sections.{section_id}.{index}", entry, findings)


def _check_entity(schema: SectionSchema, base: str, entry: Any, findings: _Findings) -> None:
    if not isinstance(entry, Mapping):
        findings.field(base, f"Invalid {schema.singular} entry")
        return

    try:
        schema.entity_model.model_validate(dict(entry))
    except ValidationError as e:
        messages: dict[str, str] = getattr(schema.entity_model, "error_messages", {})
        for error in e.errors():
            loc = error.get("loc") or ()
            field = str(loc[0]) if loc else ""
            path = f"{base}.{field}" if field else base
            findings.field(path, messages.get(field, error.get("msg", "Invalid value")))


def _check_cardinality(
    document: EventDocument, variant: EventVariant, rule: SectionRule, findings: _Findings
) -> None:
    # Non-required sections are valid regardless of population
    if not rule.required:
        return
    if len(document.section(rule.section_id)) < rule.minimum_entries:
        findings.section(
            rule.section_id,
            cardinality_message(rule, variant.sections.get(rule.section_id)),
        )

"""Rule set resolution state and shape checking of fetched rule tables."""

from enum import Enum
from typing import Any, Literal

from pydantic import ValidationError

from eventforms.errors import RuleSetShapeError
from eventforms.models.rules import RuleSet
from eventforms.validation.variants import get_variant


class Resolution(Enum):
    """Marker for a rule set that has not been fetched yet."""

    UNRESOLVED = "unresolved"


UNRESOLVED = Resolution.UNRESOLVED

ResolvedRules = RuleSet | Literal[Resolution.UNRESOLVED]


def parse_rule_set(payload: Any, event_type: str) -> RuleSet:
    """Validate a raw rule table before trusting it.

    Args:
        payload: Raw rule table as returned by the remote store
        event_type: Type the table was requested for

    Returns:
        Parsed RuleSet

    Raises:
        RuleSetShapeError: Payload does not describe a usable rule set
    """
    if isinstance(payload, RuleSet):
        rule_set = payload
    else:
        try:
            rule_set = RuleSet.model_validate(payload)
        except ValidationError as e:
            raise RuleSetShapeError(
                f"Rule table for {event_type} is malformed: {e.error_count()} problem(s)"
            ) from e

    if rule_set.event_type != event_type:
        raise RuleSetShapeError(
            f"Rule table for {rule_set.event_type} returned when {event_type} was requested"
        )

    if not rule_set.sections:
        raise RuleSetShapeError(f"Rule table for {event_type} declares no sections")

    seen: set[str] = set()
    variant = get_variant(event_type)
    for rule in rule_set.sections:
        if rule.section_id in seen:
            raise RuleSetShapeError(
                f"Rule table for {event_type} declares section {rule.section_id} twice"
            )
        seen.add(rule.section_id)
        if variant is not None and not variant.recognizes(rule.section_id):
            raise RuleSetShapeError(
                f"Rule table for {event_type} references unknown section {rule.section_id}"
            )

    return rule_set

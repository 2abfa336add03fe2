"""Section rule provider - freshest fetched rule set per event type."""

import logging
from dataclasses import dataclass

from eventforms.errors import NotFoundError, RuleSetShapeError, TransportError
from eventforms.models.rules import RuleSet
from eventforms.remote.base import RemoteDocumentStore
from eventforms.validation.rules import UNRESOLVED, ResolvedRules, parse_rule_set

logger = logging.getLogger(__name__)


@dataclass
class _TypeState:
    rule_set: RuleSet | None = None
    generation: int = 0
    last_error: str | None = None


class SectionRuleProvider:
    """Resolves the declarative section rules for an event type.

    Rule sets are stored strictly per type, so a lookup for the current type
    can never return a set fetched under a previous type. A type that has not
    been fetched successfully resolves to UNRESOLVED.
    """

    def __init__(self, remote: RemoteDocumentStore) -> None:
        self._remote = remote
        self._by_type: dict[str, _TypeState] = {}

    def resolve(self, event_type: str) -> ResolvedRules:
        """Return the freshest fetched rule set for a type, or UNRESOLVED."""
        state = self._by_type.get(event_type)
        if state is None or state.rule_set is None:
            return UNRESOLVED
        return state.rule_set

    async def refresh(self, event_type: str) -> ResolvedRules:
        """Fetch, shape-check and store the rule set for a type.

        Failures never raise: the previous set for this type (if any) stays
        in place, and the failure is available from last_error().
        """
        state = self._by_type.setdefault(event_type, _TypeState())
        state.generation += 1
        generation = state.generation

        try:
            payload = await self._remote.fetch_section_rules(event_type)
            rule_set = parse_rule_set(payload, event_type)
        except (TransportError, NotFoundError, RuleSetShapeError) as e:
            if generation == state.generation:
                state.last_error = str(e)
            logger.warning(
                f"Section rules unavailable for {event_type}",
                extra={"structured": {"event_type": event_type, "error": type(e).__name__}},
            )
            return self.resolve(event_type)
        except Exception as e:
            if generation == state.generation:
                state.last_error = f"Failed to load section rules: {type(e).__name__}"
            logger.exception(
                f"Unexpected failure loading section rules for {event_type}",
                extra={"structured": {"event_type": event_type, "error": type(e).__name__}},
            )
            return self.resolve(event_type)

        # A newer refresh for this type was issued while this one was in flight
        if generation != state.generation:
            return self.resolve(event_type)

        state.rule_set = rule_set
        state.last_error = None
        logger.info(
            f"Section rules loaded for {event_type}",
            extra={"structured": {"event_type": event_type, "sections": len(rule_set.sections)}},
        )
        return rule_set

    def last_error(self, event_type: str) -> str | None:
        """Message of the last failed refresh for a type."""
        state = self._by_type.get(event_type)
        return state.last_error if state is not None else None

    def invalidate(self, event_type: str | None = None) -> None:
        """Forget fetched rule sets (one type, or all)."""
        if event_type is None:
            self._by_type.clear()
        else:
            self._by_type.pop(event_type, None)

from typing import FrozenSet, List

from pydantic import BaseModel, Field, field_validator

from carsearch.schemas.criteria import CRITERIA_FIELDS, ConversationIntent

DEFAULT_PRIMARY_FIELDS = frozenset({"body_type", "price_max", "brand"})


class ReadinessOptions(BaseModel):
    """
    Policy knobs for deciding when to stop asking and start searching.
    primary_fields: any one of these being set is enough to search.
    max_clarifying_turns: after this many question-only turns we search anyway.
    """

    primary_fields: FrozenSet[str] = Field(default=DEFAULT_PRIMARY_FIELDS)
    max_clarifying_turns: int = Field(3, ge=0)

    @field_validator("primary_fields")
    @classmethod
    def known_fields(cls, v):
        unknown = set(v) - set(CRITERIA_FIELDS)
        if unknown:
            raise ValueError(f"unknown primary fields: {sorted(unknown)}")
        if not v:
            raise ValueError("at least one primary field is required")
        return frozenset(v)


def is_ready(intent: ConversationIntent, options: ReadinessOptions, override: bool = False) -> bool:
    """
    Pure check, no I/O.
    `override` is the "just show me something" escape hatch decided by the caller.
    """
    if override:
        return True
    if any(intent.criteria.is_set(name) for name in options.primary_fields):
        return True
    # Clarification budget spent: fall back to a best-effort search
    return intent.clarifying_turns >= options.max_clarifying_turns


def missing_primary_fields(intent: ConversationIntent, options: ReadinessOptions) -> List[str]:
    # Stable order so the clarifying question is predictable
    return [name for name in CRITERIA_FIELDS if name in options.primary_fields and not intent.criteria.is_set(name)]

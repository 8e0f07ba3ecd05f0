from typing import Dict, List
import logging

from carsearch.schemas.criteria import (
    RANGE_PAIRS,
    CarSearchCriteria,
    ClearField,
    ConversationIntent,
    ExtractionResult,
    FieldDiff,
)

logger = logging.getLogger(__name__)


def merge_criteria(accumulated: CarSearchCriteria, extracted: ExtractionResult) -> CarSearchCriteria:
    """
    Applies one extraction to the accumulated criteria.

    Rules, per field and independently of every other field:
      - set   -> the new value replaces whatever was there
      - clear -> the field becomes unset
      - absent (not in extraction.changes) -> untouched

    A range pair written entirely by this extraction is swapped if inverted.
    A single bound written against an older opposite bound is stored as written;
    the query builder swaps it when emitting predicates.
    """
    data = accumulated.model_dump()

    for name, change in extracted.changes.items():
        if isinstance(change, ClearField):
            data[name] = None
        else:
            data[name] = change.value

    # Re-validate so values coming from the LLM get their proper types
    merged = CarSearchCriteria.model_validate(data)

    swaps = {}
    for floor, ceiling in RANGE_PAIRS:
        lo, hi = getattr(merged, floor), getattr(merged, ceiling)
        both_new = floor in extracted.changes and ceiling in extracted.changes
        if both_new and lo is not None and hi is not None and lo > hi:
            logger.info(f"Swapping inverted range {floor}={lo} / {ceiling}={hi}")
            swaps[floor], swaps[ceiling] = hi, lo

    if swaps:
        merged = merged.model_copy(update=swaps)
    return merged


def merge(accumulated: ConversationIntent, extracted: ExtractionResult) -> ConversationIntent:
    """Returns a new intent with merged criteria and version + 1. Never mutates its inputs."""
    return accumulated.model_copy(
        update={
            "criteria": merge_criteria(accumulated.criteria, extracted),
            "version": accumulated.version + 1,
        }
    )


def record_readiness(intent: ConversationIntent, searched: bool) -> ConversationIntent:
    """Counts consecutive turns that ended with a question instead of a search."""
    turns = 0 if searched else intent.clarifying_turns + 1
    return intent.model_copy(update={"clarifying_turns": turns})


def changed_fields(before: CarSearchCriteria, after: CarSearchCriteria) -> List[str]:
    return [name for name in CarSearchCriteria.model_fields if getattr(before, name) != getattr(after, name)]


def intent_diff(before: CarSearchCriteria, after: CarSearchCriteria) -> Dict[str, FieldDiff]:
    """Only the fields this turn changed, JSON-ready."""
    old = before.model_dump(mode="json")
    new = after.model_dump(mode="json")
    return {name: FieldDiff(old=old[name], new=new[name]) for name in changed_fields(before, after)}

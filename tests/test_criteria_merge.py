import uuid

import pytest

from carsearch.schemas.criteria import (
    CRITERIA_FIELDS,
    CarSearchCriteria,
    ClearField,
    ConversationIntent,
    ExtractionResult,
    SetField,
)
from carsearch.schemas.enums import BodyType, EngineType
from carsearch.services.criteria_merge import (
    changed_fields,
    intent_diff,
    merge,
    merge_criteria,
    record_readiness,
)
from carsearch.services.readiness import ReadinessOptions, is_ready

from conftest import extraction


def intent_with(**criteria) -> ConversationIntent:
    return ConversationIntent(chat_id=uuid.uuid4(), criteria=CarSearchCriteria(**criteria), version=3)


def test_scenario_a_set_primary_field_makes_intent_ready():
    intent = intent_with()

    merged = merge(intent, extraction(body_type="suv"))

    assert merged.criteria.body_type == BodyType.SUV
    assert merged.criteria.price_max is None
    assert is_ready(merged, ReadinessOptions())


def test_scenario_b_absent_field_is_untouched():
    intent = intent_with(price_max=3000000)

    merged = merge(intent, extraction(brand="Toyota"))

    assert merged.criteria.price_max == 3000000
    assert merged.criteria.brand == "Toyota"


def test_scenario_c_explicit_clear_unsets_field():
    intent = intent_with(price_max=3000000, brand="Kia")

    merged = merge(intent, ExtractionResult(changes={"price_max": ClearField()}))

    assert merged.criteria.price_max is None
    assert merged.criteria.brand == "Kia"


def test_set_replaces_previous_value():
    intent = intent_with(body_type=BodyType.SEDAN)

    merged = merge(intent, extraction(body_type="hatchback"))

    assert merged.criteria.body_type == BodyType.HATCHBACK


def test_merge_is_idempotent_on_criteria():
    intent = intent_with(price_max=3000000, seats=5)
    ext = ExtractionResult(changes={
        "brand": SetField(value="Mazda"),
        "seats": ClearField(),
        "engine_type": SetField(value=EngineType.HYBRID),
    })

    once = merge_criteria(intent.criteria, ext)
    twice = merge_criteria(once, ext)

    assert once == twice


def test_fields_outside_the_extraction_never_change():
    intent = intent_with(
        body_type=BodyType.SUV, price_min=1000000, price_max=3000000,
        brand="Toyota", year_min=2020, seats=7, engine_type=EngineType.DIESEL,
    )
    ext = extraction(brand="Kia")

    merged = merge_criteria(intent.criteria, ext)

    for name in CRITERIA_FIELDS:
        if name == "brand":
            continue
        assert getattr(merged, name) == getattr(intent.criteria, name), name


def test_merge_increments_version_and_does_not_mutate_input():
    intent = intent_with(price_max=3000000)

    merged = merge(intent, extraction(brand="Toyota"))

    assert merged.version == intent.version + 1
    assert intent.criteria.brand is None
    assert intent.version == 3


def test_empty_extraction_still_advances_version():
    intent = intent_with(price_max=3000000)

    merged = merge(intent, ExtractionResult())

    assert merged.criteria == intent.criteria
    assert merged.version == intent.version + 1


def test_inverted_pair_from_one_extraction_is_swapped():
    merged = merge_criteria(CarSearchCriteria(), extraction(price_min=3000000, price_max=2000000))

    assert merged.price_min == 2000000
    assert merged.price_max == 3000000


def test_single_bound_against_older_bound_is_stored_as_written():
    accumulated = CarSearchCriteria(price_max=2000000)

    merged = merge_criteria(accumulated, extraction(price_min=2500000))

    assert merged.price_min == 2500000
    assert merged.price_max == 2000000


def test_llm_values_are_coerced_to_field_types():
    merged = merge_criteria(CarSearchCriteria(), extraction(body_type="Crossover", year_min="2020"))

    assert merged.body_type == BodyType.SUV
    assert merged.year_min == 2020


@pytest.mark.parametrize("searched, expected", [(True, 0), (False, 3)])
def test_record_readiness_counts_clarifying_turns(searched, expected):
    intent = intent_with().model_copy(update={"clarifying_turns": 2})

    assert record_readiness(intent, searched).clarifying_turns == expected


def test_changed_fields_and_diff():
    before = CarSearchCriteria(price_max=3000000, brand="Kia")
    after = CarSearchCriteria(price_max=2500000, body_type=BodyType.SUV, brand="Kia")

    assert changed_fields(before, after) == ["body_type", "price_max"]

    diff = intent_diff(before, after)
    assert diff["body_type"].old is None
    assert diff["body_type"].new == "suv"
    assert diff["price_max"].old == 3000000
    assert diff["price_max"].new == 2500000
    assert "brand" not in diff

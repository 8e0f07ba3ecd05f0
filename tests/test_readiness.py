import uuid

import pytest
from pydantic import ValidationError

from carsearch.graphs.nodes.readiness import readiness_node, wants_anything
from carsearch.schemas.criteria import CarSearchCriteria, ConversationIntent, ExtractionResult
from carsearch.schemas.enums import BodyType, EngineType
from carsearch.services.readiness import ReadinessOptions, is_ready, missing_primary_fields


def intent_with(clarifying_turns=0, **criteria) -> ConversationIntent:
    return ConversationIntent(
        chat_id=uuid.uuid4(),
        criteria=CarSearchCriteria(**criteria),
        clarifying_turns=clarifying_turns,
    )


def test_empty_intent_is_not_ready():
    assert not is_ready(intent_with(), ReadinessOptions())


@pytest.mark.parametrize("criteria", [
    {"body_type": BodyType.SUV},
    {"price_max": 2000000},
    {"brand": "Toyota"},
])
def test_any_primary_field_is_enough(criteria):
    assert is_ready(intent_with(**criteria), ReadinessOptions())


def test_non_primary_fields_wait_for_clarification_budget():
    options = ReadinessOptions(max_clarifying_turns=2)

    assert not is_ready(intent_with(engine_type=EngineType.ELECTRIC, seats=5), options)
    assert not is_ready(intent_with(clarifying_turns=1, engine_type=EngineType.ELECTRIC), options)
    assert is_ready(intent_with(clarifying_turns=2, engine_type=EngineType.ELECTRIC), options)


def test_override_forces_readiness():
    assert is_ready(intent_with(), ReadinessOptions(), override=True)


def test_adding_a_primary_field_never_makes_a_ready_intent_unready():
    options = ReadinessOptions()
    intent = intent_with(body_type=BodyType.SEDAN)
    assert is_ready(intent, options)

    for extra in ({"price_max": 2500000}, {"brand": "Kia"}, {"seats": 5}):
        intent = intent.model_copy(update={"criteria": intent.criteria.model_copy(update=extra)})
        assert is_ready(intent, options)


def test_primary_fields_are_configurable():
    options = ReadinessOptions(primary_fields={"engine_type"})

    assert not is_ready(intent_with(body_type=BodyType.SUV), options)
    assert is_ready(intent_with(engine_type=EngineType.HYBRID), options)


def test_missing_fields_in_stable_order():
    options = ReadinessOptions()

    assert missing_primary_fields(intent_with(), options) == ["body_type", "price_max", "brand"]
    assert missing_primary_fields(intent_with(price_max=1), options) == ["body_type", "brand"]


@pytest.mark.parametrize("fields", [{"colour"}, set()])
def test_options_reject_bad_primary_fields(fields):
    with pytest.raises(ValidationError):
        ReadinessOptions(primary_fields=fields)


@pytest.mark.parametrize("text, expected", [
    ("Just show me what you have", True),
    ("Surprise me!", True),
    ("I need an SUV", False),
    ("Colour doesn't matter, I need 7 seats", False),
    ("Whatever, something cheap", False),
])
def test_show_anything_phrases(text, expected):
    assert wants_anything(text) is expected


def test_readiness_node_routes_and_flags_forced_search():
    merged = intent_with(seats=7)
    config = {"configurable": {"readiness_options": ReadinessOptions()}}

    asked = readiness_node({"merged": merged, "extraction": ExtractionResult(), "user_text": "seven seats"}, config)
    forced = readiness_node({"merged": merged, "extraction": ExtractionResult(), "user_text": "just show me"}, config)

    assert asked["next_step"] == "ask_clarification"
    assert asked["missing_fields"] == ["body_type", "price_max", "brand"]
    assert forced["next_step"] == "execute_search"
    assert forced["force_search"] is True


def test_readiness_node_honours_extraction_flag():
    merged = intent_with(body_type=BodyType.SUV)
    config = {"configurable": {}}

    result = readiness_node(
        {"merged": merged, "extraction": ExtractionResult(show_anything=True), "user_text": "ok"}, config
    )

    assert result["ready"] is True
    assert result["force_search"] is False

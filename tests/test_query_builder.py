import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from carsearch.core.errors import CarNotFound
from carsearch.schemas.criteria import CarSearchCriteria, ConversationIntent
from carsearch.schemas.enums import BodyType, EngineType, SortKey
from carsearch.schemas.search import Predicate, PredicateOp, SearchSpecification
from carsearch.services.query_builder import (
    MAX_PAGE_SIZE,
    MAX_RESULT_CAP,
    build_catalog_spec,
    build_search_spec,
    clamp_result_cap,
    compile_search_query,
)
from carsearch.tools.car_inventory import CarInventory


def intent_with(**criteria) -> ConversationIntent:
    return ConversationIntent(chat_id=uuid.uuid4(), criteria=CarSearchCriteria(**criteria))


@pytest.mark.parametrize("requested, expected", [(0, 1), (-5, 1), (1, 1), (5, 5), (10, 10), (11, 10), (500, 10)])
def test_result_cap_is_clamped(requested, expected):
    assert clamp_result_cap(requested) == expected
    assert build_search_spec(intent_with(), requested).limit == expected


def test_cap_ceiling_is_ten():
    assert MAX_RESULT_CAP == 10


def test_empty_intent_means_no_predicates():
    spec = build_search_spec(intent_with(), 5)

    assert spec.predicates == ()
    assert spec.sort == SortKey.PRICE_ASC


def test_one_predicate_per_set_field():
    spec = build_search_spec(
        intent_with(body_type=BodyType.SUV, price_max=3000000, brand="Toyota", year_min=2021),
        5,
    )

    assert spec.predicates == (
        Predicate(field="price", op=PredicateOp.LTE, value=3000000),
        Predicate(field="body_type", op=PredicateOp.EQ, value=BodyType.SUV),
        Predicate(field="brand", op=PredicateOp.IEQ, value="Toyota"),
        Predicate(field="year", op=PredicateOp.GTE, value=2021),
    )


def test_sort_is_not_a_predicate():
    spec = build_search_spec(intent_with(sort_by=SortKey.YEAR_DESC), 5)

    assert spec.predicates == ()
    assert spec.sort == SortKey.YEAR_DESC


def test_inverted_range_is_swapped_when_read():
    spec = build_search_spec(intent_with(price_min=3000000, price_max=2000000), 5)

    assert spec.predicates == (
        Predicate(field="price", op=PredicateOp.GTE, value=2000000),
        Predicate(field="price", op=PredicateOp.LTE, value=3000000),
    )


def test_builder_does_not_touch_the_intent():
    intent = intent_with(price_min=3000000, price_max=2000000)

    build_search_spec(intent, 5)

    assert intent.criteria.price_min == 3000000
    assert intent.version == 0


def test_compiled_sql_binds_every_value():
    spec = build_search_spec(
        intent_with(body_type=BodyType.SUV, brand="ToYoTa", engine_type=EngineType.HYBRID), 3
    )

    page_query, count_query, params = compile_search_query(spec)
    page_sql = str(page_query)

    assert "c.body_type = :p0" in page_sql
    assert "c.engine_type = :p1" in page_sql
    assert "LOWER(c.brand) = :p2" in page_sql
    assert "ORDER BY c.price ASC, c.id ASC" in page_sql
    assert "LIMIT :limit" in page_sql
    assert params == {"p0": "SUV", "p1": "HYBRID", "p2": "toyota"}
    assert "ToYoTa" not in page_sql

    count_sql = str(count_query)
    assert count_sql.startswith("SELECT COUNT(*) FROM cars c")
    assert "LIMIT" not in count_sql
    assert "ORDER BY" not in count_sql


def test_compile_without_predicates_has_no_where():
    page_query, count_query, params = compile_search_query(SearchSpecification(limit=5))

    assert "WHERE" not in str(page_query)
    assert params == {}


def test_compile_rejects_unknown_columns():
    spec = SearchSpecification(
        predicates=(Predicate(field="price; DROP TABLE cars", op=PredicateOp.EQ, value=1),),
        limit=5,
    )

    with pytest.raises(ValueError):
        compile_search_query(spec)


@pytest.mark.asyncio
async def test_inventory_maps_rows_to_summaries():
    row = {
        "id": uuid.uuid4(), "brand": "Kia", "model": "Sportage", "year": 2023, "price": 2900000,
        "body_type": "SUV", "engine_type": "PETROL", "power_hp": 150, "transmission": "AUTOMATIC",
        "drive": "AWD", "seats": 5, "fuel_consumption": 8.4, "image_url": None,
    }
    page_result = MagicMock()
    page_result.mappings.return_value.all.return_value = [row]
    count_result = MagicMock()
    count_result.scalar.return_value = 7

    session = AsyncMock()
    session.execute.side_effect = [page_result, count_result]
    session_factory = MagicMock()
    session_factory.return_value.__aenter__.return_value = session

    inventory = CarInventory(session_factory)
    result = await inventory.search(build_search_spec(intent_with(body_type=BodyType.SUV), 1))

    assert result.total_count == 7
    assert len(result.items) == 1
    assert result.items[0].body_type == BodyType.SUV
    assert session.execute.await_count == 2


def test_catalog_spec_uses_the_page_ceiling_not_the_chat_cap():
    criteria = CarSearchCriteria(body_type=BodyType.SUV, sort_by=SortKey.POWER_DESC)

    assert build_catalog_spec(criteria, 30).limit == 30
    assert build_catalog_spec(criteria, 500).limit == MAX_PAGE_SIZE
    assert build_catalog_spec(criteria, 0).limit == 1
    # Catalog pages are always cheapest first
    assert build_catalog_spec(criteria, 20).sort == SortKey.PRICE_ASC
    assert build_catalog_spec(criteria, 20).predicates == build_search_spec(
        ConversationIntent(chat_id=uuid.uuid4(), criteria=criteria), 5
    ).predicates


def test_catalog_query_pages_with_offset_and_detail_columns():
    spec = build_catalog_spec(CarSearchCriteria(), 20)

    page_query, _, _ = compile_search_query(spec, offset=40, detail=True)
    page_sql = str(page_query)

    assert "LIMIT :limit OFFSET :offset" in page_sql
    assert "c.description" in page_sql
    assert page_query.compile().params["offset"] == 40
    assert "c.description" not in str(compile_search_query(spec)[0])


def fake_session_factory(*results):
    session = AsyncMock()
    session.execute.side_effect = list(results)
    session_factory = MagicMock()
    session_factory.return_value.__aenter__.return_value = session
    return session_factory, session


def detail_row(**overrides):
    row = {
        "id": uuid.uuid4(), "brand": "Kia", "model": "Carnival", "year": 2023, "price": 4200000,
        "body_type": "MINIVAN", "engine_type": "DIESEL", "power_hp": 199, "transmission": "AUTOMATIC",
        "drive": "FWD", "seats": 8, "fuel_consumption": Decimal("7.5"), "image_url": None,
        "engine_volume": Decimal("2.2"), "description": "Spacious minivan",
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_inventory_page_maps_detail_rows():
    page_result = MagicMock()
    page_result.mappings.return_value.all.return_value = [detail_row()]
    count_result = MagicMock()
    count_result.scalar.return_value = 41
    session_factory, session = fake_session_factory(page_result, count_result)

    page = await CarInventory(session_factory).page(build_catalog_spec(CarSearchCriteria(), 20), 3)

    assert page.total == 41
    assert page.page == 3
    assert page.per_page == 20
    assert page.items[0].engine_volume == 2.2
    assert page.items[0].body_type == BodyType.MINIVAN
    page_query = session.execute.await_args_list[0].args[0]
    assert page_query.compile().params["offset"] == 40


@pytest.mark.asyncio
async def test_inventory_get_unknown_car_raises():
    result = MagicMock()
    result.mappings.return_value.first.return_value = None
    session_factory, _ = fake_session_factory(result)

    with pytest.raises(CarNotFound):
        await CarInventory(session_factory).get(uuid.uuid4())


@pytest.mark.asyncio
async def test_inventory_brands():
    result = MagicMock()
    result.scalars.return_value.all.return_value = ["Kia", "Toyota"]
    session_factory, _ = fake_session_factory(result)

    assert await CarInventory(session_factory).brands() == ["Kia", "Toyota"]

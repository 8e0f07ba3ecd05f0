from typing import Any, Dict, List, Tuple
from enum import Enum

from sqlalchemy import text
from sqlalchemy.sql.elements import TextClause

from carsearch.schemas.criteria import CarSearchCriteria, ConversationIntent
from carsearch.schemas.enums import SortKey
from carsearch.schemas.search import Predicate, PredicateOp, SearchSpecification

# Hard ceiling on rows handed to the reply model. No caller-supplied cap can raise it.
MAX_RESULT_CAP = 10

# Catalog pages are for people browsing, not for the reply model
MAX_PAGE_SIZE = 50

# Criteria field -> (cars column, operator). Order here is the predicate order.
FIELD_PREDICATES = (
    ("price_min", "price", PredicateOp.GTE),
    ("price_max", "price", PredicateOp.LTE),
    ("body_type", "body_type", PredicateOp.EQ),
    ("engine_type", "engine_type", PredicateOp.EQ),
    ("brand", "brand", PredicateOp.IEQ),
    ("year_min", "year", PredicateOp.GTE),
    ("year_max", "year", PredicateOp.LTE),
    ("seats", "seats", PredicateOp.EQ),
    ("transmission", "transmission", PredicateOp.EQ),
    ("drive", "drive", PredicateOp.EQ),
    ("power_min", "power_hp", PredicateOp.GTE),
    ("power_max", "power_hp", PredicateOp.LTE),
    ("fuel_consumption_max", "fuel_consumption", PredicateOp.LTE),
)

# Inverted pairs are swapped here, at read time
_RANGE_BOUNDS = {
    "price_min": ("price_min", "price_max"),
    "price_max": ("price_min", "price_max"),
    "year_min": ("year_min", "year_max"),
    "year_max": ("year_min", "year_max"),
    "power_min": ("power_min", "power_max"),
    "power_max": ("power_min", "power_max"),
}

SORT_SQL = {
    SortKey.PRICE_ASC: "c.price ASC, c.id ASC",
    SortKey.PRICE_DESC: "c.price DESC, c.id ASC",
    SortKey.YEAR_DESC: "c.year DESC, c.price ASC, c.id ASC",
    SortKey.POWER_DESC: "c.power_hp DESC, c.price ASC, c.id ASC",
}

_OP_SQL = {
    PredicateOp.EQ: "c.{col} = :{param}",
    PredicateOp.IEQ: "LOWER(c.{col}) = :{param}",
    PredicateOp.GTE: "c.{col} >= :{param}",
    PredicateOp.LTE: "c.{col} <= :{param}",
}

_ALLOWED_COLUMNS = {col for _, col, _ in FIELD_PREDICATES}

SUMMARY_COLUMNS = (
    "c.id, c.brand, c.model, c.year, c.price, c.body_type, c.engine_type,"
    " c.power_hp, c.transmission, c.drive, c.seats, c.fuel_consumption, c.image_url"
)
DETAIL_COLUMNS = SUMMARY_COLUMNS + ", c.engine_volume, c.description"


def clamp_result_cap(result_cap: int) -> int:
    return max(1, min(int(result_cap), MAX_RESULT_CAP))


def clamp_page_size(per_page: int) -> int:
    return max(1, min(int(per_page), MAX_PAGE_SIZE))


def _bound_value(criteria, name: str):
    """Reads a range bound, swapping the pair when floor > ceiling."""
    pair = _RANGE_BOUNDS.get(name)
    if not pair:
        return getattr(criteria, name)
    lo, hi = getattr(criteria, pair[0]), getattr(criteria, pair[1])
    if lo is not None and hi is not None and lo > hi:
        lo, hi = hi, lo
    return lo if name == pair[0] else hi


def build_search_spec(intent: ConversationIntent, result_cap: int) -> SearchSpecification:
    """
    Translates the accumulated intent into a search specification.
    - Every set field -> exactly one predicate. Unset fields -> nothing (not "IS NULL").
    - Range bounds are inclusive.
    - Read-only: the intent is not touched.
    """
    criteria = intent.criteria
    return SearchSpecification(
        predicates=_predicates(criteria),
        limit=clamp_result_cap(result_cap),
        sort=criteria.sort_by or SortKey.PRICE_ASC,
    )


def build_catalog_spec(criteria: CarSearchCriteria, per_page: int) -> SearchSpecification:
    """Same predicates as a chat search, for one catalog page (cheapest first)."""
    return SearchSpecification(
        predicates=_predicates(criteria),
        limit=clamp_page_size(per_page),
        sort=SortKey.PRICE_ASC,
    )


def _predicates(criteria: CarSearchCriteria) -> Tuple[Predicate, ...]:
    predicates = []
    for field_name, column, op in FIELD_PREDICATES:
        value = _bound_value(criteria, field_name)
        if value is None:
            continue
        predicates.append(Predicate(field=column, op=op, value=value))
    return tuple(predicates)


def _bind(value: Any, op: PredicateOp) -> Any:
    # The cars table stores enum NAMES ('SUV'), not the lowercase values
    if isinstance(value, Enum):
        return value.name
    if op == PredicateOp.IEQ and isinstance(value, str):
        return value.lower()
    return value


def compile_search_query(
    spec: SearchSpecification, offset: int = 0, detail: bool = False
) -> Tuple[TextClause, TextClause, Dict[str, Any]]:
    """
    Renders a SearchSpecification as parameterised SQL.
    Returns (page query with LIMIT/OFFSET bound, count query, predicate params). Column names only ever come
    from FIELD_PREDICATES, values are always bound. `detail` adds the catalog-only columns.
    """
    where_parts: List[str] = []
    params: Dict[str, Any] = {}

    for i, predicate in enumerate(spec.predicates):
        if predicate.field not in _ALLOWED_COLUMNS:
            raise ValueError(f"Column '{predicate.field}' is not searchable")
        param = f"p{i}"
        where_parts.append(_OP_SQL[predicate.op].format(col=predicate.field, param=param))
        params[param] = _bind(predicate.value, predicate.op)

    where_sql = ("WHERE " + " AND ".join(where_parts)) if where_parts else ""

    page_sql = "\n".join(part for part in [
        f"SELECT {DETAIL_COLUMNS if detail else SUMMARY_COLUMNS}",
        "FROM cars c",
        where_sql,
        f"ORDER BY {SORT_SQL[spec.sort]}",
        "LIMIT :limit OFFSET :offset",
    ] if part)
    count_sql = "\n".join(part for part in ["SELECT COUNT(*) FROM cars c", where_sql] if part)

    page_query = text(page_sql).bindparams(limit=spec.limit, offset=max(0, int(offset)))
    return page_query, text(count_sql), params

# carsearch/schemas/search.py
from enum import Enum
from typing import Any, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from carsearch.schemas.enums import BodyType, DriveType, EngineType, SortKey, Transmission


class PredicateOp(str, Enum):
    EQ = "eq"
    IEQ = "ieq"   # case-insensitive equality (brand)
    GTE = "gte"   # inclusive floor
    LTE = "lte"   # inclusive ceiling


class Predicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: PredicateOp
    value: Any


class SearchSpecification(BaseModel):
    """Built fresh for every search from the current intent. Never persisted."""

    model_config = ConfigDict(frozen=True)

    predicates: Tuple[Predicate, ...] = ()
    limit: int = Field(..., ge=1)
    sort: SortKey = SortKey.PRICE_ASC


class CarSummary(BaseModel):
    """Short card handed to the client and to the reply model."""

    id: UUID
    brand: str
    model: str
    year: int
    price: int
    body_type: BodyType
    engine_type: EngineType
    power_hp: int
    transmission: Transmission
    drive: DriveType
    seats: int
    fuel_consumption: Optional[float] = None
    image_url: Optional[str] = None


class SearchResult(BaseModel):
    items: List[CarSummary] = Field(default_factory=list)
    total_count: int = 0


class CarDetail(CarSummary):
    """Full catalog card."""

    engine_volume: Optional[float] = None
    description: Optional[str] = None


class CarPage(BaseModel):
    items: List[CarDetail] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import ValidationError

from carsearch.core.errors import CarNotFound
from carsearch.schemas.criteria import CarSearchCriteria
from carsearch.schemas.enums import BodyType, DriveType, EngineType, Transmission
from carsearch.schemas.search import CarDetail, CarPage
from carsearch.services.query_builder import build_catalog_spec
import logging

# Initialize Router and Logger
router = APIRouter()
logger = logging.getLogger(__name__)


# ==============================================================================
# 1. BROWSE CATALOG (GET)
# ==============================================================================
@router.get("/cars", response_model=CarPage)
async def search_cars(
    request: Request,
    price_min: Optional[int] = Query(None, ge=0),
    price_max: Optional[int] = Query(None, ge=0),
    body_type: Optional[BodyType] = None,
    engine_type: Optional[EngineType] = None,
    brand: Optional[str] = None,
    year_min: Optional[int] = None,
    year_max: Optional[int] = None,
    seats: Optional[int] = None,
    transmission: Optional[Transmission] = None,
    drive: Optional[DriveType] = None,
    power_min: Optional[int] = None,
    power_max: Optional[int] = None,
    fuel_consumption_max: Optional[float] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
):
    """
    Same filters the chat fills in, as query parameters. Cheapest first.
    per_page above the catalog ceiling is clamped, not rejected.
    """
    try:
        criteria = CarSearchCriteria(
            price_min=price_min, price_max=price_max, body_type=body_type, engine_type=engine_type,
            brand=brand, year_min=year_min, year_max=year_max, seats=seats,
            transmission=transmission, drive=drive, power_min=power_min, power_max=power_max,
            fuel_consumption_max=fuel_consumption_max,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=[err["msg"] for err in e.errors()])

    inventory = request.app.state.inventory
    return await inventory.page(build_catalog_spec(criteria, per_page), page)


# ==============================================================================
# 2. BRANDS (GET)
# ==============================================================================
# Declared before /cars/{car_id} so "brands" is not parsed as an id
@router.get("/cars/brands", response_model=List[str])
async def list_brands(request: Request):
    return await request.app.state.inventory.brands()


# ==============================================================================
# 3. ONE CAR (GET)
# ==============================================================================
@router.get("/cars/{car_id}", response_model=CarDetail)
async def get_car(car_id: UUID, request: Request):
    try:
        return await request.app.state.inventory.get(car_id)
    except CarNotFound:
        logger.info(f"Car {car_id} not found")
        raise HTTPException(status_code=404, detail="Car not found")

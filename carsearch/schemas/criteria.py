# carsearch/schemas/criteria.py
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID
import logging

from pydantic import BaseModel, ConfigDict, Field, field_validator

from carsearch.schemas.enums import BodyType, DriveType, EngineType, SortKey, Transmission

logger = logging.getLogger(__name__)


class CarSearchCriteria(BaseModel):
    """
    Structured car-buying preferences accumulated across a conversation.
    Every field is optional: None means "the user has not constrained this".
    """

    model_config = ConfigDict(extra="ignore")

    # --- 1. PRIMARY DISCRIMINATORS ---
    body_type: Optional[BodyType] = Field(
        None,
        description="Body style: sedan, suv, hatchback, wagon, minivan, coupe or pickup. 'Crossover' is suv."
    )
    price_max: Optional[int] = Field(
        None, ge=0,
        description="Price ceiling. If user says 'up to 3 million', put 3000000."
    )
    brand: Optional[str] = Field(
        None,
        description="Manufacturer name, e.g. 'Toyota', 'Kia'."
    )

    # --- 2. RANGES ---
    price_min: Optional[int] = Field(None, ge=0, description="Price floor.")
    year_min: Optional[int] = Field(None, ge=1990, le=2030, description="Oldest acceptable model year.")
    year_max: Optional[int] = Field(None, ge=1990, le=2030, description="Newest acceptable model year.")
    power_min: Optional[int] = Field(None, gt=0, description="Minimum engine power in hp.")
    power_max: Optional[int] = Field(None, gt=0, description="Maximum engine power in hp.")
    fuel_consumption_max: Optional[float] = Field(
        None, gt=0,
        description="Maximum fuel consumption in litres per 100 km."
    )

    # --- 3. EQUALITY FILTERS ---
    seats: Optional[int] = Field(None, ge=2, le=9, description="Exact number of seats.")
    transmission: Optional[Transmission] = Field(None, description="manual, automatic, robot or cvt.")
    drive: Optional[DriveType] = Field(None, description="fwd, rwd or awd.")
    engine_type: Optional[EngineType] = Field(None, description="Fuel type: petrol, diesel, hybrid or electric.")

    # --- 4. ORDERING (never a filter) ---
    sort_by: Optional[SortKey] = Field(
        None,
        description="Only if the user states a priority: price_asc, price_desc, year_desc ('newest first'), power_desc."
    )

    @field_validator("brand", mode="before")
    @classmethod
    def clean_brand(cls, v):
        if v is None:
            return v
        v = str(v).strip()
        if not v:
            raise ValueError("brand must not be blank")
        return v

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not None

    def set_fields(self) -> Dict[str, Any]:
        """JSON-ready mapping of only the fields that carry a value."""
        return {k: v for k, v in self.model_dump(mode="json").items() if v is not None}


CRITERIA_FIELDS = tuple(CarSearchCriteria.model_fields.keys())

# (floor, ceiling) pairs that are normalized by swapping when inverted
RANGE_PAIRS = (
    ("price_min", "price_max"),
    ("year_min", "year_max"),
    ("power_min", "power_max"),
)


# ==============================================================================
# EXTRACTION: absent / set / clear per field
# ==============================================================================
class SetField(BaseModel):
    op: Literal["set"] = "set"
    value: Any

    @field_validator("value")
    @classmethod
    def value_not_null(cls, v):
        if v is None:
            raise ValueError("a set operation needs a value; use ClearField to remove a constraint")
        return v


class ClearField(BaseModel):
    op: Literal["clear"] = "clear"


FieldChange = Annotated[Union[SetField, ClearField], Field(discriminator="op")]


class ExtractionResult(BaseModel):
    """
    One LLM call's reading of the latest user message.
    A field missing from `changes` was not mentioned and must stay as it is.
    """

    changes: Dict[str, FieldChange] = Field(default_factory=dict)
    show_anything: bool = False

    @field_validator("changes")
    @classmethod
    def known_fields_only(cls, v):
        unknown = set(v) - set(CRITERIA_FIELDS)
        if unknown:
            raise ValueError(f"unknown criteria fields: {sorted(unknown)}")
        return v

    @property
    def is_empty(self) -> bool:
        return not self.changes and not self.show_anything

    @classmethod
    def from_llm_payload(cls, payload: Any) -> "ExtractionResult":
        """
        Parses {"set": {...}, "clear": [...], "show_anything": bool}.
        Raises ValueError (or pydantic's ValidationError) when the payload is unusable.
        """
        if not isinstance(payload, dict):
            raise ValueError(f"extraction payload must be an object, got {type(payload).__name__}")

        raw_set = payload.get("set") or {}
        raw_clear = payload.get("clear") or []
        if not isinstance(raw_set, dict) or not isinstance(raw_clear, list):
            raise ValueError("'set' must be an object and 'clear' a list")

        # Drop what we don't know and what the model left empty
        to_set = {}
        for name, value in raw_set.items():
            if name not in CRITERIA_FIELDS:
                logger.warning(f"Extraction mentioned unknown field '{name}', ignoring it")
                continue
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            to_set[name] = value

        # Type-check values through the criteria schema itself
        validated = CarSearchCriteria.model_validate(to_set)

        changes: Dict[str, Any] = {name: SetField(value=getattr(validated, name)) for name in to_set}
        for name in raw_clear:
            if name not in CRITERIA_FIELDS:
                logger.warning(f"Extraction cleared unknown field '{name}', ignoring it")
                continue
            # An explicit value wins over a clear of the same field
            changes.setdefault(name, ClearField())

        return cls(changes=changes, show_anything=bool(payload.get("show_anything", False)))


# ==============================================================================
# ACCUMULATED INTENT
# ==============================================================================
class ConversationIntent(BaseModel):
    """
    The per-chat accumulated criteria. Readiness is derived from it on demand,
    never stored next to it.
    """

    chat_id: UUID
    criteria: CarSearchCriteria = Field(default_factory=CarSearchCriteria)
    version: int = Field(0, ge=0)
    clarifying_turns: int = Field(0, ge=0)

    def summary(self) -> Dict[str, Any]:
        """Compact view handed to the extraction model instead of the chat history."""
        return self.criteria.set_fields()


class FieldDiff(BaseModel):
    old: Any = None
    new: Any = None


class IntentResponse(BaseModel):
    chat_id: UUID
    version: int
    criteria: Dict[str, Any]
    ready: bool
    missing_fields: List[str]

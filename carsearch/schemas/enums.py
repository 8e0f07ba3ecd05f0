# carsearch/schemas/enums.py
from enum import Enum


class _LenientEnum(str, Enum):
    """
    Enum values are lowercase ("suv"), the inventory stores uppercase names ("SUV")
    and the LLM writes whatever it likes. Lookup accepts all of them.
    """

    @classmethod
    def _aliases(cls) -> dict:
        return {}

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        key = value.strip().lower().replace("_", " ").replace("-", " ")
        for member in cls:
            if member.value.replace("_", " ") == key:
                return member
        alias = cls._aliases().get(key)
        if alias:
            return cls(alias)
        return None


class BodyType(_LenientEnum):
    """Body style, matching the 'body_type' column of the cars table."""
    SEDAN = "sedan"
    SUV = "suv"
    HATCHBACK = "hatchback"
    WAGON = "wagon"
    MINIVAN = "minivan"
    COUPE = "coupe"
    PICKUP = "pickup"

    @classmethod
    def _aliases(cls) -> dict:
        return {
            "crossover": "suv",
            "jeep": "suv",
            "estate": "wagon",
            "station wagon": "wagon",
            "van": "minivan",
            "mpv": "minivan",
            "truck": "pickup",
            "pickup truck": "pickup",
            "hatch": "hatchback",
            "saloon": "sedan",
        }


class EngineType(_LenientEnum):
    """Fuel type."""
    PETROL = "petrol"
    DIESEL = "diesel"
    HYBRID = "hybrid"
    ELECTRIC = "electric"

    @classmethod
    def _aliases(cls) -> dict:
        return {"gas": "petrol", "gasoline": "petrol", "ev": "electric", "bev": "electric"}


class Transmission(_LenientEnum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    ROBOT = "robot"
    CVT = "cvt"

    @classmethod
    def _aliases(cls) -> dict:
        return {"auto": "automatic", "amt": "robot", "dct": "robot", "stick": "manual"}


class DriveType(_LenientEnum):
    FWD = "fwd"
    RWD = "rwd"
    AWD = "awd"

    @classmethod
    def _aliases(cls) -> dict:
        return {"4wd": "awd", "4x4": "awd", "all wheel": "awd", "front": "fwd", "rear": "rwd"}


class SortKey(_LenientEnum):
    """Result ordering. Not a filter: it never becomes a predicate."""
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    YEAR_DESC = "year_desc"
    POWER_DESC = "power_desc"

    @classmethod
    def _aliases(cls) -> dict:
        return {
            "cheapest": "price_asc",
            "most expensive": "price_desc",
            "newest": "year_desc",
            "newest first": "year_desc",
            "most powerful": "power_desc",
        }


class MessageRole(str, Enum):
    """Role values matching the 'role' column of the messages table."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

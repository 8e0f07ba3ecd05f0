from carsearch.schemas.criteria import CarSearchCriteria

MAX_TITLE_LENGTH = 60


def _format_price(value: int) -> str:
    if value >= 1_000_000:
        return f"{value / 1_000_000:g}M"
    if value >= 1_000:
        return f"{value / 1_000:g}K"
    return str(value)


def make_title(criteria: CarSearchCriteria, user_text: str) -> str:
    """
    Deterministic chat title, no LLM call.
    "Toyota SUV up to 3M" when criteria say enough, else the start of the first message.
    """
    parts = []
    if criteria.brand:
        parts.append(criteria.brand)
    if criteria.body_type:
        parts.append(criteria.body_type.value.upper() if criteria.body_type.value == "suv" else criteria.body_type.value)
    if criteria.engine_type:
        parts.append(criteria.engine_type.value)
    if criteria.price_max:
        parts.append(f"up to {_format_price(criteria.price_max)}")

    if parts:
        title = " ".join(parts)
        return title[0].upper() + title[1:]

    text = " ".join(user_text.split())
    if len(text) <= MAX_TITLE_LENGTH:
        return text or "New chat"
    cut = text[:MAX_TITLE_LENGTH].rsplit(" ", 1)[0]
    return cut + "..."

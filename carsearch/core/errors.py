from enum import Enum
from typing import Any, Dict


class ErrorKind(str, Enum):
    """Stable error identifiers sent to clients in 'error' events."""
    EXTRACTION_TIMEOUT = "ExtractionTimeout"
    EXTRACTION_MALFORMED = "ExtractionMalformed"
    SEARCH_UNAVAILABLE = "SearchUnavailable"
    COMPOSITION_FAILURE = "CompositionFailure"
    CONCURRENT_MERGE_CONFLICT = "ConcurrentMergeConflict"
    SESSION_ALREADY_ACTIVE = "SessionAlreadyActive"
    TURN_CANCELLED = "TurnCancelled"
    INTERNAL_ERROR = "InternalError"


class CarSearchError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL_ERROR
    # Whether resubmitting the same message is worth a try
    retryable: bool = False

    def __init__(self, message: str = ""):
        self.message = message or self.kind.value
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "retryable": self.retryable}


class ExtractionTimeout(CarSearchError):
    kind = ErrorKind.EXTRACTION_TIMEOUT
    retryable = True


class ExtractionMalformed(CarSearchError):
    kind = ErrorKind.EXTRACTION_MALFORMED


class SearchUnavailable(CarSearchError):
    kind = ErrorKind.SEARCH_UNAVAILABLE
    retryable = True


class CompositionFailure(CarSearchError):
    kind = ErrorKind.COMPOSITION_FAILURE
    retryable = True


class ConcurrentMergeConflict(CarSearchError):
    kind = ErrorKind.CONCURRENT_MERGE_CONFLICT
    retryable = True


class SessionAlreadyActive(CarSearchError):
    kind = ErrorKind.SESSION_ALREADY_ACTIVE
    retryable = True


class TurnCancelled(CarSearchError):
    kind = ErrorKind.TURN_CANCELLED


class ChatNotFound(LookupError):
    def __init__(self, chat_id):
        self.chat_id = chat_id
        super().__init__(f"Chat {chat_id} not found")


class CarNotFound(LookupError):
    def __init__(self, car_id):
        self.car_id = car_id
        super().__init__(f"Car {car_id} not found")

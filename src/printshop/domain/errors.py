"""Typed exceptions for the print-shop backend.

Every error carries a machine-readable ``code`` so the HTTP layer can map it
to a status without parsing messages. Not-found conditions are deliberately
absent: lookups return ``None`` and callers check the result shape.
"""


class PrintShopError(Exception):
    """Base class for all domain errors."""

    code: str = "PRINTSHOP_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class StorageUnavailableError(PrintShopError):
    """The backing store could not be reached during a write."""

    code = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Storage unavailable during {operation}")


class ValidationError(PrintShopError):
    """Input rejected before any write was attempted."""

    code = "VALIDATION_ERROR"


class WeightsValidationError(ValidationError):
    code = "INVALID_SCORING_WEIGHTS"


class RatingOutOfRangeError(ValidationError):
    code = "RATING_OUT_OF_RANGE"

    def __init__(self, rating: float):
        self.rating = rating
        super().__init__(f"Rating must be between 1 and 10 (got {rating})")


class MissingRejectionReasonError(ValidationError):
    code = "REJECTION_REASON_REQUIRED"

    def __init__(self):
        super().__init__("A rejection reason is required")


class QuoteItemMismatchError(ValidationError):
    code = "QUOTE_ITEM_MISMATCH"

    def __init__(self, quote_id: int, quote_item_id: int):
        self.quote_id = quote_id
        self.quote_item_id = quote_item_id
        super().__init__(f"Quote item {quote_item_id} does not belong to quote {quote_id}")


class QuoteNotSendableError(ValidationError):
    code = "QUOTE_NOT_SENDABLE"


class JobLockedError(ValidationError):
    """Delivered jobs accept only rating and courier-confirmation updates."""

    code = "JOB_LOCKED"

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is delivered; its status can no longer change")


class ConcurrentUpdateError(PrintShopError):
    """Another transaction changed the row between our read and our write."""

    code = "CONCURRENT_UPDATE"

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} was changed by another request; reload and retry")

"""
Domain exceptions.
Every error carries a machine-readable error_code for API mapping and logs.
"""


class FilingError(Exception):
    """Base class for all filing errors."""

    def __init__(self, message: str, error_code: str = "ERR_FILING"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class NotFoundError(FilingError):
    """Mutation target does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", "ERR_NOT_FOUND")


class InvalidTransitionError(FilingError):
    """Status change not present in the entity's transition table."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            f"{entity} cannot move from {current} to {target}", "ERR_INVALID_TRANSITION"
        )


class CorrectionValidationError(FilingError):
    """correctedFields is empty or names a field that did not change."""

    def __init__(self, message: str):
        super().__init__(message, "ERR_INVALID_CORRECTION")


class BatchStateError(FilingError):
    """Operation not allowed in the batch or item's current state."""

    def __init__(self, message: str):
        super().__init__(message, "ERR_BATCH_STATE")


class SearchUnavailableError(FilingError):
    """Full-text index not ready or not reachable."""

    def __init__(self, message: str = "search index unavailable"):
        super().__init__(message, "ERR_SEARCH_UNAVAILABLE")


class ItemNotRunnableError(BatchStateError):
    """Item was queued for analysis but is no longer in a state that allows it."""

    def __init__(self, item_id: str, status: str):
        self.item_id = item_id
        self.status = status
        super().__init__(f"item {item_id} is {status} and cannot be analysed again")

"""
Allowed status transitions for batches, items and export jobs,
plus the pure aggregation of item statuses into a batch status.
"""

from typing import Iterable, Union

from docfiling.errors import InvalidTransitionError
from docfiling.models.enums import BatchStatus, ExportStatus, ItemStatus


BATCH_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.UPLOADING: frozenset({BatchStatus.PROCESSING}),
    BatchStatus.PROCESSING: frozenset({
        BatchStatus.PROCESSING,
        BatchStatus.REVIEW,
        BatchStatus.PARTIAL,
    }),
    BatchStatus.REVIEW: frozenset({
        BatchStatus.REVIEW,
        BatchStatus.PROCESSING,
        BatchStatus.COMPLETED,
        BatchStatus.PARTIAL,
    }),
    BatchStatus.PARTIAL: frozenset({
        BatchStatus.PARTIAL,
        BatchStatus.PROCESSING,
        BatchStatus.COMPLETED,
    }),
    BatchStatus.COMPLETED: frozenset(),
}

ITEM_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.PENDING: frozenset({ItemStatus.PROCESSING}),
    ItemStatus.PROCESSING: frozenset({
        ItemStatus.READY_FOR_REVIEW,
        ItemStatus.ERROR,
        ItemStatus.PENDING,
    }),
    ItemStatus.READY_FOR_REVIEW: frozenset({
        ItemStatus.READY_FOR_REVIEW,
        ItemStatus.FILED,
        ItemStatus.ERROR,
    }),
    ItemStatus.ERROR: frozenset({ItemStatus.PENDING, ItemStatus.PROCESSING}),
    ItemStatus.FILED: frozenset(),
}

EXPORT_TRANSITIONS: dict[ExportStatus, frozenset[ExportStatus]] = {
    ExportStatus.PENDING: frozenset({ExportStatus.GENERATING, ExportStatus.ERROR}),
    ExportStatus.GENERATING: frozenset({ExportStatus.COMPLETED, ExportStatus.ERROR}),
    ExportStatus.COMPLETED: frozenset(),
    ExportStatus.ERROR: frozenset(),
}

_TABLES = {
    BatchStatus: ("batch", BATCH_TRANSITIONS),
    ItemStatus: ("item", ITEM_TRANSITIONS),
    ExportStatus: ("export", EXPORT_TRANSITIONS),
}

AnyStatus = Union[BatchStatus, ItemStatus, ExportStatus]


def can_transition(current: AnyStatus, target: AnyStatus) -> bool:
    """True when target is reachable from current in one step."""
    if type(current) is not type(target):
        return False
    _, table = _TABLES[type(current)]
    return target in table[current]


def ensure_transition(current: AnyStatus, target: AnyStatus) -> None:
    """Raise InvalidTransitionError if the move is not in the table."""
    if not can_transition(current, target):
        entity, _ = _TABLES.get(type(current), ("status", {}))
        raise InvalidTransitionError(entity, current.value, target.value)


def aggregate_batch_status(item_statuses: Iterable[ItemStatus]) -> BatchStatus:
    """
    Derive a batch status from its items.

    In-flight items keep the batch processing. Once nothing is in flight,
    a batch whose items are all filed or errored is completed (no errors)
    or partial (some errors). Otherwise items still await review.
    """
    statuses = list(item_statuses)
    if not statuses:
        return BatchStatus.REVIEW

    if any(s in (ItemStatus.PENDING, ItemStatus.PROCESSING) for s in statuses):
        return BatchStatus.PROCESSING

    errors = sum(1 for s in statuses if s == ItemStatus.ERROR)
    filed = sum(1 for s in statuses if s == ItemStatus.FILED)

    if filed + errors == len(statuses):
        return BatchStatus.PARTIAL if errors else BatchStatus.COMPLETED
    return BatchStatus.REVIEW

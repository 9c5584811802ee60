"""
Correction store and retrieval.

Corrections are append-only reviewer overrides of AI predictions. Capturing
one invalidates the cached classification for the same content. Retrieval
picks a small, prioritised set of past corrections to feed back to the
classifier as context.
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

import structlog

from docfiling.clock import utcnow
from docfiling.config import settings
from docfiling.errors import CorrectionValidationError, SearchUnavailableError
from docfiling.feedback.cache import ClassificationCache
from docfiling.models.enums import ConfusionField, CorrectableField
from docfiling.observability.metrics import (
    correction_search_failures_total,
    corrections_captured_total,
)
from docfiling.pipeline import rule_miner
from docfiling.pipeline.fingerprint import content_hash, normalize_filename
from docfiling.repositories.base import CorrectionRepository
from docfiling.schemas.classification import field_differs
from docfiling.schemas.feedback import (
    CaptureCorrectionRequest,
    ConfusionPair,
    ConsolidatedRules,
    CorrectionStats,
    CorrectionSummary,
    CurrentClassification,
    FilingCorrectionRecord,
    RelevantCorrection,
    TargetedCorrection,
)

logger = structlog.get_logger(__name__)

# Tier scores for relevant-correction retrieval
FILE_TYPE_SCORE = 1.0
CATEGORY_SCORE = 0.8
FILENAME_SCORE = 0.7

# Scores for targeted (confusion-pair) retrieval
_CONFUSION_SCORES = {
    ConfusionField.FILE_TYPE: 1.0,
    ConfusionField.CATEGORY: 0.9,
    ConfusionField.FOLDER: 0.8,
}

_CONFUSION_FIELDS = {
    ConfusionField.FILE_TYPE: CorrectableField.FILE_TYPE,
    ConfusionField.CATEGORY: CorrectableField.CATEGORY,
    ConfusionField.FOLDER: CorrectableField.TARGET_FOLDER,
}

_CONFUSION_LABELS = {
    ConfusionField.FILE_TYPE: "",
    ConfusionField.CATEGORY: "category ",
    ConfusionField.FOLDER: "folder ",
}

_LENDER_HINTS = ("bank", "lend", "capital")
_BORROWER_HINTS = ("develop", "properties", "homes")


def infer_client_type(client_name: Optional[str]) -> Optional[str]:
    """Lender/borrower guess from a client name, or None."""
    if not client_name:
        return None
    name = client_name.lower()
    if any(hint in name for hint in _LENDER_HINTS):
        return "lender"
    if any(hint in name for hint in _BORROWER_HINTS):
        return "borrower"
    return None


def _relevant(correction: FilingCorrectionRecord, reason: str, score: float) -> RelevantCorrection:
    return RelevantCorrection(
        id=correction.id,
        ai_prediction=correction.ai_prediction,
        user_correction=correction.user_correction,
        file_name=correction.file_name,
        match_reason=reason,
        relevance_score=score,
    )


def _summary(c: FilingCorrectionRecord) -> CorrectionSummary:
    return CorrectionSummary(
        id=c.id,
        file_name=c.file_name,
        ai_file_type=c.ai_prediction.file_type,
        user_file_type=c.user_correction.file_type,
        ai_category=c.ai_prediction.category,
        user_category=c.user_correction.category,
        ai_target_folder=c.ai_prediction.target_folder,
        user_target_folder=c.user_correction.target_folder,
        ai_checklist_suggestions=[s.item_name for s in c.ai_prediction.suggested_checklist_items or []],
        user_checklist_items=[i.item_name for i in c.user_correction.checklist_items or []],
        corrected_fields=c.corrected_fields,
        created_at=c.created_at,
    )


class CorrectionService:
    def __init__(
        self,
        repo: CorrectionRepository,
        cache: ClassificationCache,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.cache = cache
        self.clock = clock

    # ── Capture ──────────────────────────────────────────────

    async def capture(self, request: CaptureCorrectionRequest) -> FilingCorrectionRecord:
        """
        Persist one correction, then invalidate every cache entry for the
        same content hash. Raises CorrectionValidationError when
        corrected_fields is empty or names a field the reviewer kept.
        """
        if not request.corrected_fields:
            raise CorrectionValidationError("corrected_fields must name at least one field")
        unchanged = [
            f.value
            for f in request.corrected_fields
            if not field_differs(f, request.ai_prediction, request.user_correction)
        ]
        if unchanged:
            raise CorrectionValidationError(
                f"corrected_fields lists fields without a differing value: {', '.join(unchanged)}"
            )

        hashed = content_hash(request.content_summary or request.file_name)
        correction = FilingCorrectionRecord(
            id=str(uuid.uuid4()),
            source_item_id=request.source_item_id,
            file_name=request.file_name,
            file_name_normalized=normalize_filename(request.file_name),
            content_hash=hashed,
            content_summary=(request.content_summary or "")[: settings.CONTENT_SUMMARY_MAX_CHARS],
            client_type=request.client_type,
            ai_prediction=request.ai_prediction,
            user_correction=request.user_correction,
            corrected_fields=list(dict.fromkeys(request.corrected_fields)),
            correction_weight=1.0,
            corrected_by=request.corrected_by,
            document_keywords=request.document_keywords,
            ai_reasoning=request.ai_reasoning,
            created_at=self.clock(),
        )
        await self.repo.insert(correction)

        for field in correction.corrected_fields:
            corrections_captured_total.labels(field=field.value).inc()
        invalidated = await self.cache.invalidate_by_hash(hashed)

        logger.info(
            "correction_captured",
            correction_id=correction.id,
            source_item_id=correction.source_item_id,
            fields=[f.value for f in correction.corrected_fields],
            content_hash=hashed,
            cache_invalidated=invalidated,
        )
        return correction

    # ── Retrieval ────────────────────────────────────────────

    async def get_relevant_corrections(
        self,
        file_type: str,
        category: str,
        file_name: str,
        limit: Optional[int] = None,
    ) -> list[RelevantCorrection]:
        """
        Three tiers, newest first within each, at most two per tier:
        same predicted file type (1.0), same predicted category (0.8),
        similar filename (0.7). Later tiers only run while under limit and
        skip anything already chosen.
        """
        limit = limit or settings.RELEVANT_CORRECTIONS_LIMIT
        per_tier = settings.CORRECTIONS_PER_STRATEGY
        chosen: list[RelevantCorrection] = []
        seen: set[str] = set()

        def add(rows: list[FilingCorrectionRecord], reason: str, score: float) -> None:
            for row in rows:
                if row.id in seen:
                    continue
                seen.add(row.id)
                chosen.append(_relevant(row, reason, score))

        add(
            await self.repo.list_by_predicted(CorrectableField.FILE_TYPE, file_type, per_tier),
            f'Same AI-predicted file type "{file_type}" was corrected before',
            FILE_TYPE_SCORE,
        )

        if len(chosen) < limit:
            add(
                await self.repo.list_by_predicted(CorrectableField.CATEGORY, category, per_tier),
                f'Same AI-predicted category "{category}" was corrected before',
                CATEGORY_SCORE,
            )

        if len(chosen) < limit:
            try:
                similar = await self.repo.search_by_filename(normalize_filename(file_name), per_tier)
            except SearchUnavailableError as e:
                correction_search_failures_total.inc()
                logger.warning("correction_search_skipped", file_name=file_name, error=e.message)
                similar = []
            add(similar, "Similar filename pattern was corrected before", FILENAME_SCORE)

        chosen.sort(key=lambda c: c.relevance_score, reverse=True)
        return chosen[:limit]

    async def get_targeted_corrections(
        self,
        confused_between: list[ConfusionPair],
        current_classification: CurrentClassification,
        file_name: str,
        limit: Optional[int] = None,
    ) -> list[TargetedCorrection]:
        """
        For each (field, [A, B]) pair the classifier is torn on, find past
        corrections that settled exactly that confusion, in both directions.
        """
        limit = limit or settings.TARGETED_CORRECTIONS_LIMIT
        per_direction = settings.CORRECTIONS_PER_STRATEGY
        results: list[TargetedCorrection] = []
        seen: set[str] = set()

        for confusion in confused_between:
            if len(confusion.options) < 2:
                continue
            option_a, option_b = confusion.options[0], confusion.options[1]
            field = _CONFUSION_FIELDS[confusion.field]
            label = _CONFUSION_LABELS[confusion.field]
            score = _CONFUSION_SCORES[confusion.field]

            for predicted, corrected in ((option_a, option_b), (option_b, option_a)):
                rows = await self.repo.list_by_predicted(
                    field, predicted, per_direction, corrected_value=corrected
                )
                for row in rows:
                    if row.id in seen:
                        continue
                    seen.add(row.id)
                    results.append(
                        TargetedCorrection(
                            id=row.id,
                            ai_prediction=row.ai_prediction,
                            user_correction=row.user_correction,
                            file_name=row.file_name,
                            match_reason=f'AI thought {label}"{predicted}" but correct answer was "{corrected}"',
                            relevance_score=score,
                            confusion_resolved=f"{corrected} (not {predicted})",
                        )
                    )

        logger.debug(
            "targeted_corrections",
            file_name=file_name,
            current_file_type=current_classification.file_type,
            pairs=len(confused_between),
            found=len(results),
        )
        results.sort(key=lambda c: c.relevance_score, reverse=True)
        return results[:limit]

    # ── Aggregates ───────────────────────────────────────────

    async def get_consolidated_rules(
        self,
        file_type: Optional[str] = None,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ConsolidatedRules:
        corrections = await self.repo.list_all()
        return rule_miner.mine_rules(corrections, file_type=file_type, category=category, limit=limit)

    async def get_correction_stats(self, since: Optional[datetime] = None) -> CorrectionStats:
        return rule_miner.correction_stats(await self.repo.list_all(), since=since)

    # ── Maintenance ──────────────────────────────────────────

    async def list_corrections(self) -> list[CorrectionSummary]:
        return [_summary(c) for c in await self.repo.list_all()]

    async def delete_corrections_for_item(self, source_item_id: str) -> int:
        deleted = await self.repo.delete_for_item(source_item_id)
        logger.info("corrections_deleted_for_item", source_item_id=source_item_id, deleted=deleted)
        return deleted

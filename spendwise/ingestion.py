"""
Spendwise - Ingestion and Correction Services

PURPOSE: Server-side coordination of the capture and correction pipeline
SCOPE: Text/audio ingestion, per-item persistence results, category corrections
       and the training-data export
DEPENDENCIES: managers.py, parsers.py, transcriber.py, validators.py
"""

import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from .errors import InvalidInputError, ExpenseNotFoundError, PersistenceError
from .managers import ExpenseManager, CorrectionManager
from .parsers import ExtractionService
from .schemas import ParseResult, ParseResponse, SavedExpense, TrainingExample, CorrectionExport
from .transcriber import AudioStorage, TranscriptionService
from .validators import validate_parse_request, validate_audio_request, validate_correction_request

logger = logging.getLogger(__name__)


@dataclass
class PersistOutcome:
    """Result of persisting one extracted candidate."""
    index: int
    expense: Optional[SavedExpense] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class IngestionResult:
    """Parse envelope plus one outcome per candidate, in extraction order."""
    source: str
    raw_text: str
    month_context: str
    outcomes: List[PersistOutcome] = field(default_factory=list)

    @property
    def saved(self) -> List[SavedExpense]:
        return [outcome.expense for outcome in self.outcomes if outcome.ok]

    @property
    def failures(self) -> List[PersistOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_response(self) -> ParseResponse:
        return ParseResponse(
            source=self.source,
            raw_text=self.raw_text,
            expenses=self.saved,
            month_context=self.month_context,
        )


class IngestionService:
    """Drives transcription, extraction and persistence for one request.

    Inserts run one after another in extraction order. A failed insert does not
    roll back its siblings; it is reported in the outcome list instead.
    """

    def __init__(self, expense_manager: ExpenseManager, extraction_service: ExtractionService,
                 transcription_service: TranscriptionService, audio_storage: AudioStorage):
        self.expense_manager = expense_manager
        self.extraction_service = extraction_service
        self.transcription_service = transcription_service
        self.audio_storage = audio_storage

    async def ingest_text(self, text: Optional[str], user_id: Optional[str]) -> IngestionResult:
        """Parse typed text and persist every extracted expense."""
        is_valid, errors = validate_parse_request(text, user_id)
        if not is_valid:
            raise InvalidInputError(errors)

        parsed = await self.extraction_service.extract(text, user_id)
        return await self._persist(parsed, str(user_id), source='text')

    async def ingest_audio(self, audio: Optional[bytes], filename: Optional[str],
                           user_id: Optional[str]) -> IngestionResult:
        """Store a clip, transcribe it, then proceed as for text.

        TranscriptionError propagates; nothing is persisted in that case.
        """
        is_valid, errors = validate_audio_request(audio, user_id)
        if not is_valid:
            raise InvalidInputError(errors)

        clip = await self.audio_storage.save(audio, filename)
        text = await self.transcription_service.transcribe(clip.path)

        parsed = await self.extraction_service.extract(text, user_id)
        return await self._persist(parsed, str(user_id), source='voice', audio_path=clip.public_path)

    async def _persist(self, parsed: ParseResult, user_id: str, source: str,
                       audio_path: Optional[str] = None) -> IngestionResult:
        result = IngestionResult(
            source=source,
            raw_text=parsed.raw_text,
            month_context=parsed.month_context,
        )

        for index, candidate in enumerate(parsed.expenses):
            expense_data = candidate.model_dump()
            expense_data.update({
                'user_id': user_id,
                'source': source,
                'raw_text': parsed.raw_text,
                'audio_path': audio_path,
            })
            try:
                row = await self.expense_manager.create_expense(expense_data)
                saved = SavedExpense(
                    expense_id=row['expense_id'],
                    amount=row['amount'],
                    currency=row['currency'],
                    category=row['category'],
                    title=row['title'],
                    occurred_at=row['occurred_at'],
                    audio_url=row['audio_url'],
                )
                result.outcomes.append(PersistOutcome(index=index, expense=saved))
            except Exception as e:
                logger.error(f"Error saving candidate {index} for user {user_id}: {e}")
                result.outcomes.append(PersistOutcome(index=index, error=str(e)))

        logger.info(
            f"Ingested {source} input for user {user_id}: "
            f"{len(result.saved)} saved, {len(result.failures)} failed"
        )
        return result


class CorrectionService:
    """Applies user category fixes and records them as training data."""

    def __init__(self, expense_manager: ExpenseManager, correction_manager: CorrectionManager):
        self.expense_manager = expense_manager
        self.correction_manager = correction_manager

    async def apply_correction(self, expense_id: Optional[str], corrected_category: Optional[str],
                               original_text: Optional[str] = None,
                               predicted_category: Optional[str] = None) -> Dict[str, Any]:
        """Update the expense category, then append exactly one correction record."""
        is_valid, errors = validate_correction_request(expense_id, corrected_category)
        if not is_valid:
            raise InvalidInputError(errors)

        expense = await self.expense_manager.get_expense(expense_id)
        if not expense:
            raise ExpenseNotFoundError(expense_id)

        # The audit record must never exist for an unchanged expense
        if not await self.expense_manager.update_category(expense_id, corrected_category):
            raise ExpenseNotFoundError(expense_id)

        try:
            record = await self.correction_manager.add_correction(
                user_id=expense['user_id'],
                expense_id=expense_id,
                corrected_category=corrected_category,
                original_text=original_text,
                predicted_category=predicted_category,
            )
        except PersistenceError:
            logger.error(
                f"Expense {expense_id} moved to {corrected_category} but its correction record was not stored"
            )
            raise

        logger.info(
            f'[Correction] Stored for training: "{original_text}" -> {predicted_category} => {corrected_category}'
        )
        return record

    async def export_corrections(self) -> CorrectionExport:
        """All usable corrections, newest first, shaped for retraining."""
        rows = await self.correction_manager.get_all_with_expense()

        examples = []
        for row in rows:
            input_text = row.get('original_text') or row.get('description')
            correct_category = row.get('corrected_category')
            if not input_text or not correct_category:
                continue
            examples.append(TrainingExample(
                id=row['id'],
                input_text=input_text,
                predicted_category=row.get('predicted_category'),
                correct_category=correct_category,
                timestamp=row['created_at'],
            ))

        return CorrectionExport(total=len(examples), corrections=examples)

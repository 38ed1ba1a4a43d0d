"""
Spendwise - Error Types

PURPOSE: Failure taxonomy shared by the server pipeline and the client
SCOPE: Exceptions raised by ingestion, transcription, persistence and recording
DEPENDENCIES: None
"""

from typing import List, Optional


class SpendwiseError(Exception):
    """Base class for all application errors."""


class InvalidInputError(SpendwiseError):
    """Missing or malformed request fields; raised before any side effect."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class TranscriptionError(SpendwiseError):
    """Audio could not be turned into text. Fatal to the enclosing request."""


class ExtractionError(SpendwiseError):
    """The classification service was unreachable or returned unusable output."""


class PersistenceError(SpendwiseError):
    """The durable store rejected or failed a write."""


class ExpenseNotFoundError(SpendwiseError):
    """The referenced expense does not exist."""

    def __init__(self, expense_id: Optional[str]):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} not found")


class RecordingError(SpendwiseError):
    """The audio recorder could not be started."""

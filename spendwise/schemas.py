"""
Spendwise - Wire Schemas

PURPOSE: Typed request and response payloads for the HTTP API
SCOPE: Parse envelopes, saved expenses, correction and export payloads
DEPENDENCIES: pydantic
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ParsedExpense(BaseModel):
    """A validated extraction result, not yet persisted."""
    amount: float = Field(ge=0)
    currency: str
    category: str
    title: str
    occurred_at: str


class SavedExpense(ParsedExpense):
    """A persisted expense as returned to the client."""
    expense_id: str
    audio_url: Optional[str] = None


class ParseResult(BaseModel):
    """Output of the extraction engine for one piece of input text."""
    source: str = 'text'
    raw_text: str
    expenses: List[ParsedExpense]
    month_context: str = 'current'


class ParseResponse(BaseModel):
    """Envelope returned by the ingestion endpoints."""
    source: str
    raw_text: str
    expenses: List[SavedExpense]
    month_context: str


class ParseExpenseRequest(BaseModel):
    text: Optional[str] = None
    userId: Optional[str] = None


class CorrectionRequest(BaseModel):
    expense_id: Optional[str] = None
    corrected_category: Optional[str] = None
    original_text: Optional[str] = None
    predicted_category: Optional[str] = None


class TrainingExample(BaseModel):
    """One exported correction, shaped for retraining tooling."""
    id: str
    input_text: str
    predicted_category: Optional[str] = None
    correct_category: str
    timestamp: str


class CorrectionExport(BaseModel):
    total: int
    corrections: List[TrainingExample]

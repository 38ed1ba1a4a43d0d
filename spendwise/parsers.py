"""
Spendwise - Expense Extraction

PURPOSE: Turn free text into structured candidate expenses
SCOPE: LLM-backed extraction, strict payload decoding, and the regex fallback
DEPENDENCIES: httpx, pydantic, re, config.py, validators.py

The language model is asked for a JSON payload which is decoded into
``ExtractionPayload``. Any failure on that path (no API key, transport error,
non-JSON, wrong shape) routes the whole input to ``FallbackParser``, so callers
never see an extraction failure.
"""

import math
import re
import logging
from datetime import datetime
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, field_validator

from .config import AppConfig, config
from .errors import ExtractionError
from .schemas import ParsedExpense, ParseResult
from .validators import normalize_category

logger = logging.getLogger(__name__)


_SYSTEM_PROMPT = """You are an expense extraction assistant. Convert the user's message into JSON.

Today's date: {today}

Rules:
1. A message may describe several purchases. Return one entry per distinct purchase.
2. amount: the number spent, without currency symbols.
3. currency: ISO 4217 code. Use "{currency}" when no currency is mentioned.
4. category: exactly one of: {categories}. Use "{fallback}" when unsure.
5. title: a short description of what was bought, at most five words.
6. month_context: "current" unless the user clearly refers to a different month,
   in which case the month name (for example "September").

Respond with JSON only, no markdown:
{{"expenses": [{{"amount": <number>, "currency": "<code>", "category": "<category>", "title": "<text>"}}], "month_context": "current"}}
"""


class ExpenseParser:
    """Base class for expense parsing with common utilities."""

    @staticmethod
    def parse_amount(amount_str: str) -> Optional[float]:
        """Parse an amount written with either decimal or thousands separators."""
        if not amount_str:
            return None

        cleaned = re.sub(r'[€$£¥\s-]', '', amount_str)

        # 1.524,55 or 1,524.55: the last separator is the decimal one
        if '.' in cleaned and ',' in cleaned:
            if cleaned.rfind(',') > cleaned.rfind('.'):
                cleaned = cleaned.replace('.', '').replace(',', '.')
            else:
                cleaned = cleaned.replace(',', '')
        elif ',' in cleaned:
            # Thousands only when every group after a comma has three digits
            groups = cleaned.split(',')
            if all(len(group) == 3 and group.isdigit() for group in groups[1:]):
                cleaned = cleaned.replace(',', '')
            elif len(groups) == 2:
                cleaned = cleaned.replace(',', '.')
            else:
                cleaned = cleaned.replace(',', '')
        elif cleaned.count('.') > 1:
            cleaned = cleaned.replace('.', '')

        try:
            return float(cleaned)
        except ValueError:
            logger.warning(f"Could not parse amount: {amount_str}")
            return None

    @classmethod
    def extract_first_amount(cls, text: str) -> Optional[float]:
        """Return the first number found in the text, if any."""
        match = re.search(r'\d+(?:[.,]\d+)*', text or '')
        if not match:
            return None
        return cls.parse_amount(match.group(0))

    @staticmethod
    def strip_code_fences(raw: str) -> str:
        """Remove markdown code fences the model sometimes wraps JSON in."""
        raw = raw.strip()
        if raw.startswith('```'):
            raw = raw.split('\n', 1)[1] if '\n' in raw else raw[3:]
        if raw.endswith('```'):
            raw = raw[:-3]
        return raw.strip()

    @staticmethod
    def now_timestamp() -> str:
        return datetime.now().isoformat(timespec='seconds')


class CandidateExpense(BaseModel):
    """One expense as decoded from the model payload, normalized field by field."""
    amount: float = 0.0
    currency: str = config.DEFAULT_CURRENCY
    category: str = config.FALLBACK_CATEGORY
    title: str = config.DEFAULT_TITLE

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, value: Any) -> float:
        if isinstance(value, bool):
            return 0.0
        if isinstance(value, (int, float)):
            amount = float(value)
        elif isinstance(value, str):
            amount = ExpenseParser.extract_first_amount(value)
        else:
            amount = None

        if amount is None or not math.isfinite(amount):
            return 0.0
        return round(abs(amount), 2)

    @field_validator('currency', mode='before')
    @classmethod
    def coerce_currency(cls, value: Any) -> str:
        if isinstance(value, str) and re.fullmatch(r'[A-Za-z]{3}', value.strip()):
            return value.strip().upper()
        return config.DEFAULT_CURRENCY

    @field_validator('category', mode='before')
    @classmethod
    def coerce_category(cls, value: Any) -> str:
        return normalize_category(value)

    @field_validator('title', mode='before')
    @classmethod
    def coerce_title(cls, value: Any) -> str:
        if isinstance(value, (str, int, float)) and str(value).strip():
            return str(value).strip()[:80]
        return config.DEFAULT_TITLE


class ExtractionPayload(BaseModel):
    """The JSON shape the model is instructed to return."""
    expenses: List[CandidateExpense]
    month_context: str = 'current'

    @field_validator('month_context', mode='before')
    @classmethod
    def coerce_month_context(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return 'current'


class LLMExpenseParser(ExpenseParser):
    """Asks an OpenAI-compatible chat endpoint to structure the text."""

    def __init__(self, settings: AppConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.http_client = http_client

    def build_prompt(self) -> str:
        return _SYSTEM_PROMPT.format(
            today=datetime.now().strftime('%Y-%m-%d'),
            currency=self.settings.DEFAULT_CURRENCY,
            categories=', '.join(self.settings.CATEGORIES),
            fallback=self.settings.FALLBACK_CATEGORY,
        )

    async def parse(self, text: str) -> ExtractionPayload:
        """Call the model and decode its payload. Raises on any failure."""
        if not self.settings.OPENAI_API_KEY:
            raise ExtractionError("No API key configured for the classification service")

        url = f"{self.settings.OPENAI_BASE_URL.rstrip('/')}/chat/completions"
        headers = {'Authorization': f"Bearer {self.settings.OPENAI_API_KEY}"}
        body = {
            'model': self.settings.LLM_MODEL,
            'temperature': 0,
            'response_format': {'type': 'json_object'},
            'messages': [
                {'role': 'system', 'content': self.build_prompt()},
                {'role': 'user', 'content': text},
            ],
        }

        if self.http_client is not None:
            response = await self.http_client.post(url, json=body, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.settings.REQUEST_TIMEOUT) as client:
                response = await client.post(url, json=body, headers=headers)
        response.raise_for_status()

        content = response.json()['choices'][0]['message']['content']
        payload = ExtractionPayload.model_validate_json(self.strip_code_fences(content))
        logger.info(f"Model extracted {len(payload.expenses)} expense(s), month_context={payload.month_context}")
        return payload


class FallbackParser(ExpenseParser):
    """Deterministic single-expense parser used when the model path fails."""

    def __init__(self, settings: AppConfig):
        self.settings = settings

    def parse(self, text: str) -> ParseResult:
        """Build a one-item result from the first number in the text. Never raises."""
        raw_text = text if isinstance(text, str) else ''
        amount = self.extract_first_amount(raw_text)
        title = raw_text.strip()[:self.settings.FALLBACK_TITLE_LENGTH].strip()

        expense = ParsedExpense(
            amount=round(abs(amount), 2) if amount is not None and math.isfinite(amount) else 0.0,
            currency=self.settings.DEFAULT_CURRENCY,
            category=self.settings.FALLBACK_CATEGORY,
            title=title or self.settings.UNKNOWN_TITLE,
            occurred_at=self.now_timestamp(),
        )
        return ParseResult(raw_text=raw_text, expenses=[expense], month_context='current')


class ExtractionService:
    """Main service for turning free text into a validated parse result."""

    def __init__(self, settings: Optional[AppConfig] = None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or config
        self.llm_parser = LLMExpenseParser(self.settings, http_client)
        self.fallback_parser = FallbackParser(self.settings)

    async def extract(self, text: str, user_id: Optional[str] = None) -> ParseResult:
        """Extract candidate expenses. ``user_id`` is reserved for personalization."""
        try:
            payload = await self.llm_parser.parse(text)
        except Exception as e:
            logger.warning(f"Extraction failed, using fallback parser: {e}")
            return self.fallback_parser.parse(text)

        return self._build_result(text, payload)

    def _build_result(self, text: str, payload: ExtractionPayload) -> ParseResult:
        occurred_at = ExpenseParser.now_timestamp()
        expenses = [
            ParsedExpense(occurred_at=occurred_at, **candidate.model_dump())
            for candidate in payload.expenses
        ]

        if not expenses:
            expenses = [ParsedExpense(
                amount=0.0,
                currency=self.settings.DEFAULT_CURRENCY,
                category=self.settings.FALLBACK_CATEGORY,
                title=self.settings.UNKNOWN_TITLE,
                occurred_at=occurred_at,
            )]

        return ParseResult(raw_text=text, expenses=expenses, month_context=payload.month_context)

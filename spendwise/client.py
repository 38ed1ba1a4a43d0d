"""
Spendwise - API Client

PURPOSE: Async wrapper the client side uses to talk to the HTTP API
SCOPE: Text/audio ingestion, corrections and expense listing
DEPENDENCIES: httpx, aiofiles
"""

import os
import logging
from typing import Any, Dict, Optional

import aiofiles
import httpx

from .config import AppConfig, config

logger = logging.getLogger(__name__)


class ExpenseApiClient:
    """Thin async client for the Spendwise endpoints.

    Non-2xx responses raise ``httpx.HTTPStatusError``; callers decide how to
    surface them.
    """

    def __init__(self, settings: Optional[AppConfig] = None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or config
        self._client = http_client or httpx.AsyncClient(
            base_url=self.settings.API_BASE_URL,
            timeout=self.settings.API_TIMEOUT,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def parse_expense(self, text: str, user_id: str) -> Dict[str, Any]:
        response = await self._client.post('/parse-expense', json={'text': text, 'userId': user_id})
        response.raise_for_status()
        return response.json()

    async def send_audio(self, audio_path: str, user_id: str) -> Dict[str, Any]:
        async with aiofiles.open(audio_path, mode='rb') as f:
            audio_bytes = await f.read()

        filename = os.path.basename(audio_path) or 'recording.m4a'
        response = await self._client.post(
            '/parse-audio',
            files={'audio': (filename, audio_bytes, 'audio/m4a')},
            data={'userId': user_id},
        )
        response.raise_for_status()
        return response.json()

    async def correct_expense(self, expense_id: str, corrected_category: str,
                              original_text: Optional[str] = None,
                              predicted_category: Optional[str] = None) -> Dict[str, Any]:
        response = await self._client.post('/correct-expense', json={
            'expense_id': expense_id,
            'corrected_category': corrected_category,
            'original_text': original_text,
            'predicted_category': predicted_category,
        })
        response.raise_for_status()
        return response.json()

    async def get_expenses(self, user_id: str, category: Optional[str] = None) -> Dict[str, Any]:
        params = {'user_id': user_id}
        if category:
            params['category'] = category
        response = await self._client.get('/expenses', params=params)
        response.raise_for_status()
        return response.json()

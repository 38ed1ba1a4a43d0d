"""
Spendwise - Client Session

PURPOSE: Application-level state container for one signed-in user
SCOPE: Wires the API client, aggregation store, correction popup and
       recording coordinator together; tears them down on logout
DEPENDENCIES: httpx, client.py, store.py, popup.py, recorder.py
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .client import ExpenseApiClient
from .config import AppConfig, config
from .errors import RecordingError
from .popup import CorrectionPopup
from .recorder import RecordingCoordinator
from .store import AggregationStore

logger = logging.getLogger(__name__)

TEXT_ERROR_MESSAGE = "Failed to process expense. Please try again."
AUDIO_ERROR_MESSAGE = "Failed to process audio. Please try again."


class ExpenseSession:
    """Owns all client state for one user.

    Logging out replaces the store and popup with fresh instances rather than
    clearing them in place. Responses that arrive after a logout are dropped.
    """

    def __init__(self, user_id: str, api: ExpenseApiClient, recorder,
                 settings: Optional[AppConfig] = None):
        self.settings = settings or config
        self.user_id = user_id
        self.api = api
        self.recording = RecordingCoordinator(recorder)
        self.loading = False
        self.error_message: Optional[str] = None
        self._generation = 0
        self._build_state()

    def _build_state(self) -> None:
        self.store = AggregationStore(self.settings.NEW_USER_THRESHOLD)
        self.popup = CorrectionPopup(
            self.api.correct_expense,
            self.store,
            added_delay=self.settings.ADDED_DISMISS_SECONDS,
            thanks_delay=self.settings.THANKS_DISMISS_SECONDS,
        )

    @property
    def active(self) -> bool:
        return self.user_id is not None

    async def load_expenses(self) -> bool:
        """Rebuild the aggregates from the server's full expense list."""
        if not self.active:
            return False
        generation = self._generation
        try:
            data = await self.api.get_expenses(self.user_id)
        except httpx.HTTPError as e:
            logger.error(f"Failed to load expenses: {e}")
            return False

        if generation != self._generation:
            return False
        self.store.recompute(data.get('expenses') or [])
        return True

    async def submit_text(self, text: str) -> bool:
        if not self.active or self.loading or not text or not text.strip():
            return False
        return await self._ingest(self.api.parse_expense, text, TEXT_ERROR_MESSAGE)

    async def start_recording(self) -> bool:
        if not self.active or self.loading:
            return False
        try:
            return await self.recording.press()
        except RecordingError as e:
            self.error_message = str(e)
            return False

    async def finish_recording(self) -> bool:
        """Stop the recorder and upload the clip, if one was captured."""
        audio_path = await self.recording.release()
        if not audio_path or not self.active:
            return False
        if self.loading:
            logger.warning(f"Discarding clip {audio_path}; another expense is still being processed")
            return False
        return await self._ingest(self.api.send_audio, audio_path, AUDIO_ERROR_MESSAGE)

    def logout(self) -> None:
        self._generation += 1
        self.popup.close()
        self.user_id = None
        self.loading = False
        self.error_message = None
        self._build_state()

    async def _ingest(self, send, payload: str, error_message: str) -> bool:
        generation = self._generation
        self.loading = True
        self.error_message = None
        try:
            response = await send(payload, self.user_id)
        except httpx.HTTPStatusError as e:
            logger.error(f"Ingestion failed with status {e.response.status_code}")
            if generation == self._generation:
                self.error_message = error_message
                self._apply_partial(e.response)
            return False
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"Ingestion request failed: {e}")
            if generation == self._generation:
                self.error_message = error_message
            return False
        finally:
            if generation == self._generation:
                self.loading = False

        if generation != self._generation:
            logger.info("Discarding ingestion response that arrived after logout")
            return False
        self._on_parsed(response)
        return True

    def _on_parsed(self, response: Dict[str, Any]) -> None:
        expenses = response.get('expenses') or []
        self.store.apply_batch(expenses)
        self.popup.show_added(expenses, response.get('raw_text') or '', response.get('month_context') or 'current')

    def _apply_partial(self, response: httpx.Response) -> None:
        """Expenses the server saved before a batch failure still count."""
        try:
            body = response.json()
        except ValueError:
            return
        saved = body.get('expenses') if isinstance(body, dict) else None
        if saved:
            self.store.apply_batch(saved)

"""
Spendwise - Recording Coordination

PURPOSE: Press-and-hold voice capture without start/stop races
SCOPE: Guarding stop requests against a recorder that has not started
DEPENDENCIES: asyncio

The guard flag is set as soon as a start is requested, not when it resolves.
A release that arrives while the start is still pending cancels that start
instead of stopping a recorder that never came up.
"""

import asyncio
import logging
from typing import Optional, Set

from .errors import RecordingError

logger = logging.getLogger(__name__)


class RecordingCoordinator:
    """Wraps an audio recorder exposing ``async start()`` and ``async stop() -> path``."""

    def __init__(self, recorder):
        self.recorder = recorder
        self.recording_requested = False
        self.is_recording = False
        self._start_task: Optional[asyncio.Future] = None
        self._released: Set[asyncio.Future] = set()

    async def press(self) -> bool:
        """Start recording. Returns True once the recorder is running."""
        if self.recording_requested:
            return False

        self.recording_requested = True
        task = asyncio.ensure_future(self.recorder.start())
        self._start_task = task
        try:
            await task
        except asyncio.CancelledError:
            if task in self._released:
                self._released.discard(task)
                logger.info("Recording released before it started; start cancelled")
                return False
            # The caller was cancelled, not the start itself
            self._forget(task)
            raise
        except Exception as e:
            self._forget(task)
            logger.error(f"Recording start error: {e}")
            raise RecordingError("Could not start recording. Please check microphone permissions.") from e

        # A release that landed after the start resolved has already stopped it
        if self._start_task is not task:
            return False
        self._start_task = None
        self.is_recording = True
        return True

    async def release(self) -> Optional[str]:
        """Stop recording and return the clip path, or None if nothing was recording."""
        if not self.recording_requested:
            return None

        self.recording_requested = False
        task, self._start_task = self._start_task, None
        if task is not None:
            if not task.done():
                self._released.add(task)
                task.cancel()
                return None
            if task.cancelled() or task.exception() is not None:
                return None

        self.is_recording = False
        return await self.recorder.stop()

    def _forget(self, task: asyncio.Future) -> None:
        """Clear the guard, unless a newer press already owns it."""
        if self._start_task is task:
            self._start_task = None
            self.recording_requested = False

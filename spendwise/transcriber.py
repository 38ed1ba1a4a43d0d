"""
Spendwise - Audio Storage and Transcription

PURPOSE: Persist uploaded voice clips and turn them into text
SCOPE: Collision-resistant clip naming, async file writes, speech-to-text calls
DEPENDENCIES: aiofiles, httpx, config.py
"""

import os
import time
import random
import logging
from dataclasses import dataclass
from typing import Optional

import aiofiles
import httpx

from .config import AppConfig, config
from .errors import TranscriptionError

logger = logging.getLogger(__name__)


@dataclass
class StoredClip:
    """A voice clip written to the upload directory."""
    filename: str
    path: str
    public_path: str


class AudioStorage:
    """Writes uploaded clips to disk under timestamp-plus-random names."""

    def __init__(self, upload_dir: str, url_prefix: str = '/audio'):
        self.upload_dir = upload_dir
        self.url_prefix = url_prefix.rstrip('/')

    def generate_filename(self, original_filename: Optional[str]) -> str:
        ext = os.path.splitext(original_filename or '')[1] or '.m4a'
        unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}"
        return f"audio-{unique_suffix}{ext}"

    async def save(self, data: bytes, original_filename: Optional[str] = None) -> StoredClip:
        """Write the clip and return where it lives."""
        os.makedirs(self.upload_dir, exist_ok=True)
        filename = self.generate_filename(original_filename)
        path = os.path.join(self.upload_dir, filename)

        async with aiofiles.open(path, mode='wb') as f:
            await f.write(data)

        logger.info(f"Stored audio clip {filename} ({len(data)} bytes)")
        return StoredClip(filename=filename, path=path, public_path=f"{self.url_prefix}/{filename}")


class TranscriptionService:
    """Thin wrapper over an OpenAI-compatible speech-to-text endpoint."""

    def __init__(self, settings: Optional[AppConfig] = None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or config
        self.http_client = http_client

    async def transcribe(self, file_path: str) -> str:
        """Return the text spoken in the clip. Raises TranscriptionError on any failure."""
        if not os.path.exists(file_path):
            raise TranscriptionError(f"File not found: {file_path}")

        if self.settings.MOCK_TRANSCRIPTION:
            logger.info(f"Using mock transcription for {os.path.basename(file_path)}")
            return self.settings.MOCK_TRANSCRIPTION

        if not self.settings.OPENAI_API_KEY:
            raise TranscriptionError("No API key configured for the transcription service")

        async with aiofiles.open(file_path, mode='rb') as f:
            audio_bytes = await f.read()

        try:
            text = await self._request_transcription(os.path.basename(file_path), audio_bytes)
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Transcription request failed: {e}")
            raise TranscriptionError(f"Transcription service failed: {e}") from e

        text = (text or '').strip()
        if not text:
            raise TranscriptionError("Transcription returned no text")

        logger.info(f"Transcribed {os.path.basename(file_path)}: {text!r}")
        return text

    async def _request_transcription(self, filename: str, audio_bytes: bytes) -> str:
        url = f"{self.settings.OPENAI_BASE_URL.rstrip('/')}/audio/transcriptions"
        headers = {'Authorization': f"Bearer {self.settings.OPENAI_API_KEY}"}
        files = {'file': (filename, audio_bytes)}
        data = {
            'model': self.settings.TRANSCRIPTION_MODEL,
            'language': self.settings.TRANSCRIPTION_LANGUAGE,
        }

        if self.http_client is not None:
            response = await self.http_client.post(url, headers=headers, files=files, data=data)
        else:
            async with httpx.AsyncClient(timeout=self.settings.REQUEST_TIMEOUT) as client:
                response = await client.post(url, headers=headers, files=files, data=data)
        response.raise_for_status()
        return response.json()['text']

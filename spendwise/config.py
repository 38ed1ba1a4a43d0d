"""
Spendwise - Configuration and Constants

PURPOSE: Central configuration management for the application
SCOPE: Application settings, category taxonomy, and environment variables
DEPENDENCIES: python-dotenv (foundational module)
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class AppConfig:
    """Application configuration constants."""
    DB_FILE: str = None
    UPLOAD_DIR: str = None
    AUDIO_URL_PREFIX: str = '/audio'

    # External services (OpenAI-compatible endpoints)
    OPENAI_API_KEY: str = None
    OPENAI_BASE_URL: str = None
    LLM_MODEL: str = None
    TRANSCRIPTION_MODEL: str = 'whisper-1'
    TRANSCRIPTION_LANGUAGE: str = 'en'
    MOCK_TRANSCRIPTION: Optional[str] = None
    REQUEST_TIMEOUT: float = 30.0

    # Extraction
    CATEGORIES: List[str] = None
    DEFAULT_CURRENCY: str = 'USD'
    FALLBACK_CATEGORY: str = 'Misc'
    DEFAULT_TITLE: str = 'Expense'
    UNKNOWN_TITLE: str = 'Unknown expense'
    FALLBACK_TITLE_LENGTH: int = 40

    # Client
    API_BASE_URL: str = None
    API_TIMEOUT: float = 10.0
    ADDED_DISMISS_SECONDS: float = 3.5
    THANKS_DISMISS_SECONDS: float = 1.8
    NEW_USER_THRESHOLD: int = 5

    def __post_init__(self):
        if self.DB_FILE is None:
            self.DB_FILE = os.getenv('SPENDWISE_DB_FILE', 'expenses.db')
        if self.UPLOAD_DIR is None:
            self.UPLOAD_DIR = os.getenv('SPENDWISE_UPLOAD_DIR', os.path.join('uploads', 'audio'))
        if self.OPENAI_API_KEY is None:
            self.OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
        if self.OPENAI_BASE_URL is None:
            self.OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1')
        if self.LLM_MODEL is None:
            self.LLM_MODEL = os.getenv('SPENDWISE_LLM_MODEL', 'gpt-4o-mini')
        if self.MOCK_TRANSCRIPTION is None:
            self.MOCK_TRANSCRIPTION = os.getenv('SPENDWISE_MOCK_TRANSCRIPTION') or None
        if self.API_BASE_URL is None:
            self.API_BASE_URL = os.getenv('SPENDWISE_API_URL', 'http://localhost:3000')
        if self.CATEGORIES is None:
            self.CATEGORIES = [
                'Food', 'Transport', 'Shopping', 'Bills', 'Entertainment',
                'Health', 'Education', 'Travel', 'Misc'
            ]


# Global configuration instance
config = AppConfig()

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

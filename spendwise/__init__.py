"""
Spendwise Package

PURPOSE: Package initialization for the Spendwise expense logger
SCOPE: Module imports and package configuration
"""

__version__ = "1.0.0"
__author__ = "Spendwise Team"
__description__ = "Natural-language and voice expense logging with category corrections"

# Package imports for easier access
from .config import config, AppConfig
from .database import DatabaseManager
from .managers import ExpenseManager, CorrectionManager
from .parsers import ExtractionService, FallbackParser, LLMExpenseParser
from .transcriber import AudioStorage, TranscriptionService
from .ingestion import IngestionService, CorrectionService
from .store import AggregationStore
from .popup import CorrectionPopup, PopupMode
from .recorder import RecordingCoordinator
from .session import ExpenseSession

__all__ = [
    "config",
    "AppConfig",
    "DatabaseManager",
    "ExpenseManager",
    "CorrectionManager",
    "ExtractionService",
    "FallbackParser",
    "LLMExpenseParser",
    "AudioStorage",
    "TranscriptionService",
    "IngestionService",
    "CorrectionService",
    "AggregationStore",
    "CorrectionPopup",
    "PopupMode",
    "RecordingCoordinator",
    "ExpenseSession",
]

"""
Spendwise - Main FastAPI Application

PURPOSE: FastAPI routes, endpoints, and application setup
SCOPE: HTTP API layer and request/response handling
DEPENDENCIES: FastAPI, all server-side modules
"""

import os
import logging
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, UploadFile, File, Form, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import AppConfig, config
from .database import DatabaseManager
from .errors import InvalidInputError, ExpenseNotFoundError, TranscriptionError
from .ingestion import IngestionService, CorrectionService, IngestionResult
from .managers import ExpenseManager, CorrectionManager
from .parsers import ExtractionService
from .schemas import ParseExpenseRequest, CorrectionRequest
from .transcriber import AudioStorage, TranscriptionService

logger = logging.getLogger(__name__)


def _ingestion_response(result: IngestionResult) -> JSONResponse:
    """200 with the envelope, or 500 listing what was saved and what failed."""
    body = result.to_response().model_dump()
    if result.ok:
        return JSONResponse(content=body)

    body['error'] = "Failed to save some expenses"
    body['failed'] = [{'index': f.index, 'error': f.error} for f in result.failures]
    return JSONResponse(status_code=500, content=body)


def create_app(settings: Optional[AppConfig] = None) -> FastAPI:
    """Build the application and its service instances."""
    settings = settings or config

    app = FastAPI(title="Spendwise")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    # Clips are written on first upload; the directory may not exist yet
    app.mount(settings.AUDIO_URL_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="audio")

    # Initialize service instances
    db_manager = DatabaseManager(settings.DB_FILE)
    expense_manager = ExpenseManager(settings.DB_FILE)
    correction_manager = CorrectionManager(settings.DB_FILE)
    ingestion_service = IngestionService(
        expense_manager,
        ExtractionService(settings),
        TranscriptionService(settings),
        AudioStorage(settings.UPLOAD_DIR, settings.AUDIO_URL_PREFIX),
    )
    correction_service = CorrectionService(expense_manager, correction_manager)

    app.state.settings = settings
    app.state.ingestion_service = ingestion_service
    app.state.correction_service = correction_service

    @app.on_event("startup")
    async def startup_event():
        """Initialize the application on startup."""
        await db_manager.initialize_database()
        logger.info("Database initialized successfully.")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Invalid input"})

    # ========================================================================
    # INGESTION ENDPOINTS
    # ========================================================================

    @app.post("/parse-expense")
    async def parse_expense(payload: ParseExpenseRequest):
        """Parse typed text into expenses and save them."""
        try:
            result = await ingestion_service.ingest_text(payload.text, payload.userId)
        except InvalidInputError as e:
            raise HTTPException(status_code=400, detail=e.errors)
        except Exception as e:
            logger.error(f"Parse error: {e}")
            raise HTTPException(status_code=500, detail="Failed to parse expense")

        return _ingestion_response(result)

    @app.post("/parse-audio")
    async def parse_audio(audio: Optional[UploadFile] = File(None), userId: Optional[str] = Form(None)):
        """Transcribe an uploaded clip, parse it into expenses and save them."""
        audio_bytes = await audio.read() if audio is not None else None
        filename = audio.filename if audio is not None else None

        try:
            result = await ingestion_service.ingest_audio(audio_bytes, filename, userId)
        except InvalidInputError as e:
            raise HTTPException(status_code=400, detail=e.errors)
        except TranscriptionError as e:
            logger.error(f"Transcription failed for user {userId}: {e}")
            raise HTTPException(status_code=500, detail="Failed to process audio")
        except Exception as e:
            logger.error(f"Audio processing error: {e}")
            raise HTTPException(status_code=500, detail="Failed to process audio")

        return _ingestion_response(result)

    # ========================================================================
    # CORRECTION ENDPOINTS
    # ========================================================================

    @app.post("/correct-expense")
    async def correct_expense(payload: CorrectionRequest):
        """Fix the category of an expense and record the correction."""
        try:
            await correction_service.apply_correction(
                payload.expense_id,
                payload.corrected_category,
                original_text=payload.original_text,
                predicted_category=payload.predicted_category,
            )
        except InvalidInputError as e:
            raise HTTPException(status_code=400, detail=e.errors)
        except ExpenseNotFoundError:
            raise HTTPException(status_code=404, detail="Expense not found")
        except Exception as e:
            logger.error(f"Error correcting expense {payload.expense_id}: {e}")
            raise HTTPException(status_code=500, detail="Internal server error")

        return {"success": True}

    @app.get("/corrections")
    async def get_corrections():
        """Export all corrections for model training."""
        export = await correction_service.export_corrections()
        return export.model_dump()

    # ========================================================================
    # EXPENSE ENDPOINTS
    # ========================================================================

    @app.get("/expenses")
    async def get_expenses(user_id: Optional[str] = Query(None), category: Optional[str] = Query(None)):
        """Get a user's expenses, newest first, optionally for one category."""
        if not user_id:
            raise HTTPException(status_code=400, detail="Missing user_id")

        rows = await expense_manager.get_user_expenses(user_id, category)
        expenses = [{
            'expense_id': row['expense_id'],
            'title': row['title'],
            'amount': row['amount'],
            'currency': row['currency'],
            'category': row['category'],
            'occurred_at': row['occurred_at'],
            'audio_url': row['audio_url'],
        } for row in rows]

        return {
            "category": category or "All Expenses",
            "total": round(sum(row['amount'] for row in rows), 2),
            "expenses": expenses,
        }

    # ========================================================================
    # UTILITY ENDPOINTS
    # ========================================================================

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring."""
        return {"status": "healthy", "timestamp": datetime.now().isoformat()}

    return app


app = create_app()


def main() -> None:
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3000")))


if __name__ == "__main__":
    main()

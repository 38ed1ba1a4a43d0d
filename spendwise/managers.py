"""
Spendwise - Data Managers

PURPOSE: Data access layer for expenses and user corrections
SCOPE: Inserts, filtered reads, category updates and the correction log
DEPENDENCIES: aiosqlite, uuid, datetime
"""

import sqlite3
import uuid
import aiosqlite
import logging
from datetime import datetime
from typing import List, Dict, Any, Optional

from .config import config
from .errors import PersistenceError

logger = logging.getLogger(__name__)


class ExpenseManager:
    """Handles expense persistence and simple filtered retrieval."""

    def __init__(self, db_file: str):
        self.db_file = db_file

    async def create_expense(self, expense_data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one expense and return it with its assigned id."""
        values = self._prepare_expense_values(expense_data)
        values['id'] = str(uuid.uuid4())

        try:
            async with aiosqlite.connect(self.db_file) as conn:
                await conn.execute('''
                    INSERT INTO expenses (id, user_id, amount, currency, category, description,
                                          source, raw_text, audio_path, occurred_at,
                                          created_on, modified_on)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (
                    values['id'], values['user_id'], values['amount'], values['currency'],
                    values['category'], values['description'], values['source'],
                    values['raw_text'], values['audio_path'], values['occurred_at'],
                    values['created_on'], values['modified_on']
                ))
                await conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to insert expense for user {values['user_id']}: {e}")
            raise PersistenceError(f"Could not save expense: {e}") from e

        logger.info(f"Saved expense {values['id']} for user {values['user_id']}")
        return self._sanitize_expense_data(values)

    async def get_expense(self, expense_id: str) -> Optional[Dict[str, Any]]:
        """Get a single expense by ID."""
        async with aiosqlite.connect(self.db_file) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute('SELECT * FROM expenses WHERE id = ?', (expense_id,))
            row = await cursor.fetchone()
            return self._sanitize_expense_data(dict(row)) if row else None

    async def get_user_expenses(self, user_id: str, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get a user's expenses, newest first, optionally for one category."""
        sql = 'SELECT * FROM expenses WHERE user_id = ?'
        params: list = [user_id]
        if category:
            sql += ' AND category = ?'
            params.append(category)
        sql += ' ORDER BY occurred_at DESC, created_on DESC'

        async with aiosqlite.connect(self.db_file) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(sql, params)
            return [self._sanitize_expense_data(dict(row)) for row in await cursor.fetchall()]

    async def update_category(self, expense_id: str, category: str) -> bool:
        """Set the category of one expense. Returns False if it does not exist."""
        try:
            async with aiosqlite.connect(self.db_file) as conn:
                cursor = await conn.execute(
                    'UPDATE expenses SET category = ?, modified_on = ? WHERE id = ?',
                    (category, self._get_current_timestamp(), expense_id)
                )
                await conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Failed to update category of expense {expense_id}: {e}")
            raise PersistenceError(f"Could not update expense {expense_id}: {e}") from e

    def _get_current_timestamp(self) -> str:
        """Get current timestamp as ISO string."""
        return datetime.now().isoformat()

    def _prepare_expense_values(self, expense_data: dict) -> dict:
        """Prepare expense values for insertion."""
        current_time = self._get_current_timestamp()
        return {
            'user_id': str(expense_data['user_id']),
            'amount': round(float(expense_data.get('amount', 0.0)), 2),
            'currency': str(expense_data.get('currency') or config.DEFAULT_CURRENCY),
            'category': str(expense_data.get('category') or config.FALLBACK_CATEGORY),
            'description': str(expense_data.get('title') or expense_data.get('description') or ''),
            'source': str(expense_data.get('source', 'text')),
            'raw_text': expense_data.get('raw_text'),
            'audio_path': expense_data.get('audio_path'),
            'occurred_at': str(expense_data.get('occurred_at') or current_time),
            'created_on': current_time,
            'modified_on': current_time,
        }

    def _sanitize_expense_data(self, row_data: Dict[str, Any]) -> Dict[str, Any]:
        """Shape a database row into the expense dict handed to callers."""
        return {
            'expense_id': str(row_data.get('id', '')),
            'user_id': str(row_data.get('user_id', '')),
            'amount': float(row_data.get('amount') or 0.0),
            'currency': str(row_data.get('currency') or config.DEFAULT_CURRENCY),
            'category': str(row_data.get('category') or config.FALLBACK_CATEGORY),
            'title': str(row_data.get('description') or ''),
            'occurred_at': str(row_data.get('occurred_at', '')),
            'source': str(row_data.get('source') or 'text'),
            'raw_text': row_data.get('raw_text'),
            'audio_url': row_data.get('audio_path'),
        }


class CorrectionManager:
    """Handles the append-only log of user category corrections."""

    def __init__(self, db_file: str):
        self.db_file = db_file

    async def add_correction(self, user_id: str, expense_id: str, corrected_category: str,
                             original_text: Optional[str] = None,
                             predicted_category: Optional[str] = None) -> Dict[str, Any]:
        """Append one correction record."""
        record = {
            'id': str(uuid.uuid4()),
            'user_id': user_id,
            'expense_id': expense_id,
            'original_text': original_text,
            'predicted_category': predicted_category,
            'corrected_category': corrected_category,
            'created_at': datetime.now().isoformat(),
        }
        try:
            async with aiosqlite.connect(self.db_file) as conn:
                await conn.execute('''
                    INSERT INTO user_corrections
                    (id, user_id, expense_id, original_text, predicted_category,
                     corrected_category, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                ''', (
                    record['id'], record['user_id'], record['expense_id'],
                    record['original_text'], record['predicted_category'],
                    record['corrected_category'], record['created_at']
                ))
                await conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to store correction for expense {expense_id}: {e}")
            raise PersistenceError(f"Could not store correction: {e}") from e

        return record

    async def get_corrections_for_expense(self, expense_id: str) -> List[Dict[str, Any]]:
        """Get the correction history of one expense, oldest first."""
        async with aiosqlite.connect(self.db_file) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute('''
                SELECT id, user_id, expense_id, original_text, predicted_category,
                       corrected_category, created_at
                FROM user_corrections
                WHERE expense_id = ?
                ORDER BY created_at ASC, rowid ASC
            ''', (expense_id,))
            return [dict(row) for row in await cursor.fetchall()]

    async def get_all_with_expense(self) -> List[Dict[str, Any]]:
        """Get every correction joined with its expense description, newest first."""
        async with aiosqlite.connect(self.db_file) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute('''
                SELECT uc.id, uc.original_text, uc.predicted_category,
                       uc.corrected_category, uc.created_at, e.description
                FROM user_corrections uc
                LEFT JOIN expenses e ON uc.expense_id = e.id
                ORDER BY uc.created_at DESC, uc.rowid DESC
            ''')
            return [dict(row) for row in await cursor.fetchall()]

"""
Spendwise - Database Management

PURPOSE: Database schema and connection management
SCOPE: SQLite table creation for expenses and user corrections
DEPENDENCIES: aiosqlite
"""

import aiosqlite
import logging

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Creates the tables the managers read and write."""

    def __init__(self, db_file: str):
        self.db_file = db_file

    async def initialize_database(self) -> None:
        """Initialize SQLite database with the expense and correction tables."""
        async with aiosqlite.connect(self.db_file) as conn:
            await self._create_expenses_table(conn)
            await self._create_corrections_table(conn)
            await self._create_indexes(conn)
            await conn.commit()
        logger.info(f"Database ready at {self.db_file}")

    async def _create_expenses_table(self, conn: aiosqlite.Connection) -> None:
        """Create the main expenses table."""
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                amount REAL NOT NULL DEFAULT 0.0 CHECK (amount >= 0),
                currency TEXT NOT NULL DEFAULT 'USD',
                category TEXT NOT NULL DEFAULT 'Misc',
                description TEXT NOT NULL DEFAULT '',
                source TEXT NOT NULL DEFAULT 'text',
                raw_text TEXT,
                audio_path TEXT,
                occurred_at TEXT NOT NULL,
                created_on TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                modified_on TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

    async def _create_corrections_table(self, conn: aiosqlite.Connection) -> None:
        """Create the append-only correction log used as training data."""
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS user_corrections (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                expense_id TEXT,
                original_text TEXT,
                predicted_category TEXT,
                corrected_category TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (expense_id) REFERENCES expenses(id) ON DELETE SET NULL
            )
        ''')

    async def _create_indexes(self, conn: aiosqlite.Connection) -> None:
        await conn.execute(
            'CREATE INDEX IF NOT EXISTS idx_expenses_user_date ON expenses(user_id, occurred_at)'
        )
        await conn.execute(
            'CREATE INDEX IF NOT EXISTS idx_expenses_user_category ON expenses(user_id, category)'
        )
        await conn.execute(
            'CREATE INDEX IF NOT EXISTS idx_corrections_expense ON user_corrections(expense_id)'
        )

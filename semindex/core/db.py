"""
SQLite table store for projects, the file index and patterns.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator
from .config import get_db_path, ensure_db_directory


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    ensure_db_directory()
    conn = sqlite3.connect(get_db_path())
    conn.row_factory = sqlite3.Row
    # Needed per connection for ON DELETE CASCADE
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize the database with required tables."""
    with get_db() as conn:
        cursor = conn.cursor()

        # Project registry: resolves an id to a filesystem root
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                root_path TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS file_index (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id TEXT NOT NULL,
                path TEXT NOT NULL,
                file_type TEXT,
                size_bytes INTEGER,
                content_hash TEXT,
                content_preview TEXT,  -- first PREVIEW_CHARS characters
                embedding BLOB,        -- little-endian float32 vector
                model_version TEXT,    -- provider tag the embedding came from
                indexed_at TIMESTAMP NOT NULL,
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
                UNIQUE (project_id, path)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS patterns (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                project_id TEXT NOT NULL,
                problem TEXT NOT NULL,
                solution TEXT NOT NULL,
                implementation TEXT,
                metrics TEXT,          -- JSON
                problem_embedding BLOB NOT NULL,
                model_version TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
            )
        ''')

        # Create indexes for performance
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_file_project_path ON file_index(project_id, path)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_file_type ON file_index(file_type)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_patterns_project ON patterns(project_id)')

        conn.commit()


def health_check():
    """Check database health."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            # Check if required tables exist
            table_names = [table[0] for table in tables]
            required_tables = ['projects', 'file_index', 'patterns']

            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False

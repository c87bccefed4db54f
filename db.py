import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime

import psycopg2
from psycopg2.extras import DictCursor
from werkzeug.security import generate_password_hash

from api_errors import Conflict, StoreError

DATABASE_URL = ''
DIALECT = 'sqlite'

DEFAULT_RECORD_TEXT = '{}'


def configure_database(url):
    """Select the backing store from a DATABASE_URL."""
    global DATABASE_URL, DIALECT
    url = (url or '').strip()
    if url.startswith(('postgres://', 'postgresql://')):
        DIALECT = 'postgres'
    elif url.startswith('sqlite:///'):
        DIALECT = 'sqlite'
    else:
        raise RuntimeError("DATABASE_URL must be a postgresql:// or sqlite:/// connection string.")
    DATABASE_URL = url


def _sqlite_path():
    return DATABASE_URL[len('sqlite:///'):] or ':memory:'


def _adapt_query(query):
    if DIALECT == 'postgres':
        return query.replace('?', '%s')
    return query


def db_execute(cursor, query, params=None):
    if params is None:
        return cursor.execute(_adapt_query(query))
    return cursor.execute(_adapt_query(query), params)


def get_db():
    """Open a connection to the configured store."""
    if not DATABASE_URL:
        raise RuntimeError("Database is not configured. Call configure_database() first.")
    if DIALECT == 'postgres':
        return psycopg2.connect(DATABASE_URL, cursor_factory=DictCursor, connect_timeout=10)
    conn = sqlite3.connect(_sqlite_path(), timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute('PRAGMA foreign_keys = ON')
    return conn


@contextmanager
def db_connection(commit=False):
    """Context manager for store connections with optional commit.

    Driver integrity errors surface as Conflict, any other driver error as
    StoreError. The open transaction is rolled back on every failure.
    """
    conn = get_db()
    try:
        yield conn
        if commit:
            conn.commit()
    except (sqlite3.IntegrityError, psycopg2.IntegrityError) as exc:
        conn.rollback()
        logging.warning("Integrity error: %s", exc)
        raise Conflict('Record conflicts with existing data') from exc
    except (sqlite3.Error, psycopg2.Error) as exc:
        conn.rollback()
        logging.exception("SQL ERROR")
        raise StoreError() from exc
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def insert_returning_id(cursor, query, params):
    """Run an INSERT and return the new row id."""
    if DIALECT == 'postgres':
        db_execute(cursor, query + ' RETURNING id', params)
        row = cursor.fetchone()
        return int(row[0])
    db_execute(cursor, query, params)
    return int(cursor.lastrowid)


def lock_for_update(cursor):
    """Start a write-locking transaction; returns the SELECT suffix to use."""
    if DIALECT == 'postgres':
        return ' FOR UPDATE'
    # sqlite3 opens transactions lazily on DML; take the write lock up front.
    if not cursor.connection.in_transaction:
        cursor.execute('BEGIN IMMEDIATE')
    return ''


def row_to_dict(row):
    if row is None:
        return None
    data = {}
    for key in row.keys():
        value = row[key]
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        data[key] = value
    return data


def _pk_column_sql():
    if DIALECT == 'postgres':
        return 'SERIAL PRIMARY KEY'
    return 'INTEGER PRIMARY KEY AUTOINCREMENT'


def init_db():
    """Create all tables and indexes if they don't exist."""
    pk = _pk_column_sql()
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(c, f'''CREATE TABLE IF NOT EXISTS users (
                            id {pk},
                            username TEXT UNIQUE NOT NULL,
                            password_hash TEXT NOT NULL,
                            role TEXT NOT NULL DEFAULT 'admin',
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )''')
        db_execute(c, f'''CREATE TABLE IF NOT EXISTS schools (
                            id {pk},
                            name TEXT NOT NULL,
                            code TEXT UNIQUE NOT NULL,
                            study_type TEXT NOT NULL,
                            level TEXT NOT NULL,
                            gender_type TEXT NOT NULL,
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )''')
        db_execute(c, f'''CREATE TABLE IF NOT EXISTS students (
                            id {pk},
                            school_id INTEGER NOT NULL REFERENCES schools(id) ON DELETE CASCADE,
                            full_name TEXT NOT NULL,
                            student_code TEXT UNIQUE NOT NULL,
                            grade TEXT NOT NULL,
                            branch TEXT,
                            room TEXT NOT NULL,
                            detailed_scores TEXT DEFAULT '{DEFAULT_RECORD_TEXT}',
                            daily_attendance TEXT DEFAULT '{DEFAULT_RECORD_TEXT}',
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )''')
        db_execute(c, f'''CREATE TABLE IF NOT EXISTS subjects (
                            id {pk},
                            school_id INTEGER NOT NULL REFERENCES schools(id) ON DELETE CASCADE,
                            name TEXT NOT NULL,
                            position INTEGER NOT NULL DEFAULT 0,
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                            UNIQUE(school_id, name)
                        )''')
        db_execute(c, 'CREATE INDEX IF NOT EXISTS idx_students_school_id ON students(school_id)')
        db_execute(c, 'CREATE INDEX IF NOT EXISTS idx_subjects_school_id ON subjects(school_id)')
    logging.info("Database initialized (%s).", DIALECT)


def seed_admin(username, password):
    """Ensure the admin account exists; do not reset its password on startup."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT id, role FROM users WHERE username = ?', (username,))
        row = c.fetchone()
        if row:
            if (row['role'] or '') != 'admin':
                logging.warning(
                    "ADMIN_USERNAME '%s' exists with role '%s'; skipping automatic role escalation.",
                    username,
                    row['role'],
                )
            return False
        if not password:
            raise RuntimeError("ADMIN_PASSWORD is required to bootstrap the initial admin account.")
        db_execute(
            c,
            'INSERT INTO users (username, password_hash, role) VALUES (?, ?, ?)',
            (username, generate_password_hash(password), 'admin'),
        )
        logging.info("Admin user created: %s", username)
        return True

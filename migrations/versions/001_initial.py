"""Initial schema for schools, students, subjects and the admin user.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _pk_column_sql():
    if op.get_bind().dialect.name == 'sqlite':
        return 'INTEGER PRIMARY KEY AUTOINCREMENT'
    return 'SERIAL PRIMARY KEY'


def upgrade() -> None:
    """Create all tables and indexes."""
    pk = _pk_column_sql()

    # Users table; only the seeded admin lives here.
    op.execute(f'''CREATE TABLE IF NOT EXISTS users (
                    id {pk},
                    username TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'admin',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )''')

    # Schools, addressed publicly by their generated code
    op.execute(f'''CREATE TABLE IF NOT EXISTS schools (
                    id {pk},
                    name TEXT NOT NULL,
                    code TEXT UNIQUE NOT NULL,
                    study_type TEXT NOT NULL,
                    level TEXT NOT NULL,
                    gender_type TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )''')

    # Students with JSON score and attendance blobs
    op.execute(f'''CREATE TABLE IF NOT EXISTS students (
                    id {pk},
                    school_id INTEGER NOT NULL REFERENCES schools(id) ON DELETE CASCADE,
                    full_name TEXT NOT NULL,
                    student_code TEXT UNIQUE NOT NULL,
                    grade TEXT NOT NULL,
                    branch TEXT,
                    room TEXT NOT NULL,
                    detailed_scores TEXT DEFAULT '{{}}',
                    daily_attendance TEXT DEFAULT '{{}}',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )''')

    # Per-school subject list
    op.execute(f'''CREATE TABLE IF NOT EXISTS subjects (
                    id {pk},
                    school_id INTEGER NOT NULL REFERENCES schools(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(school_id, name)
                )''')

    op.execute('CREATE INDEX IF NOT EXISTS idx_students_school_id ON students(school_id)')
    op.execute('CREATE INDEX IF NOT EXISTS idx_subjects_school_id ON subjects(school_id)')


def downgrade() -> None:
    """Drop all tables (destructive)."""
    op.execute('DROP TABLE IF EXISTS subjects')
    op.execute('DROP TABLE IF EXISTS students')
    op.execute('DROP TABLE IF EXISTS schools')
    op.execute('DROP TABLE IF EXISTS users')

"""
Apply database migrations without starting the web server.

Usage:
  python migrate.py

This script drives Alembic directly against the migrations/ directory.
"""

import os
import sys

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations')


def build_config(database_url=None):
    cfg = Config()
    cfg.set_main_option('script_location', MIGRATIONS_DIR)
    url = (database_url or os.environ.get('DATABASE_URL') or '').strip()
    if url:
        # ConfigParser interpolation treats % specially.
        cfg.set_main_option('sqlalchemy.url', url.replace('%', '%%'))
    return cfg


def main():
    load_dotenv()
    # Schema is owned by the migrations here, not by app startup.
    os.environ['RUN_STARTUP_DDL'] = '0'
    os.environ['RUN_STARTUP_BOOTSTRAP'] = '0'

    if not (os.environ.get('DATABASE_URL') or '').strip():
        print("✗ DATABASE_URL is required.", file=sys.stderr)
        sys.exit(2)

    try:
        print("Applying database migrations...")
        command.upgrade(build_config(), 'head')
        print("✓ Migrations completed successfully.")
    except Exception as e:
        print(f"✗ Migration failed: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()

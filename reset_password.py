import os

from dotenv import load_dotenv
from werkzeug.security import generate_password_hash

import db


def reset_admin_password(username, raw_password):
    """Rotate an admin password. Returns True when a row was updated."""
    password_hash = generate_password_hash(raw_password)
    with db.db_connection(commit=True) as conn:
        c = conn.cursor()
        db.db_execute(
            c,
            "UPDATE users SET password_hash = ? WHERE LOWER(username) = LOWER(?) AND role = 'admin'",
            (password_hash, username),
        )
        return int(c.rowcount or 0) > 0


def main():
    load_dotenv()
    database_url = (os.getenv("DATABASE_URL") or "").strip()
    username = (os.getenv("RESET_USERNAME") or os.getenv("ADMIN_USERNAME") or "").strip()
    raw_password = os.getenv("RESET_PASSWORD") or ""

    if not database_url:
        raise RuntimeError("DATABASE_URL not found. Set it in .env")
    if not username:
        raise RuntimeError("RESET_USERNAME is required.")
    if len(raw_password) < 12:
        raise RuntimeError("RESET_PASSWORD is required and must be at least 12 characters.")

    db.configure_database(database_url)
    if reset_admin_password(username, raw_password):
        print(f"Password reset successfully for {username}.")
    else:
        print(f"No admin user found for {username}.")


if __name__ == "__main__":
    main()

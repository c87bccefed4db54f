"""Short public codes for schools and students, e.g. ``SCH-482913-7QK``."""

import logging
import secrets
import string
import time

from api_errors import CodeGenerationExhausted, Conflict

SCHOOL_PREFIX = 'SCH'
STUDENT_PREFIX = 'STD'
DEFAULT_MAX_ATTEMPTS = 1000

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_code(prefix: str) -> str:
    timestamp = str(int(time.time() * 1000))[-6:].rjust(6, '0')
    suffix = ''.join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(3))
    return f"{prefix.upper()}-{timestamp}-{suffix}"


def ensure_unique(prefix: str, exists_fn, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> str:
    """Generate codes until ``exists_fn(code)`` reports one as free."""
    for attempt in range(1, max_attempts + 1):
        code = generate_code(prefix)
        if not exists_fn(code):
            return code
        logging.info("Code collision on %s (attempt %d).", code, attempt)
    raise CodeGenerationExhausted(f"Failed to generate a unique {prefix} code")


def insert_with_unique_code(prefix, exists_fn, insert_fn, max_attempts=DEFAULT_MAX_ATTEMPTS, retries=1):
    """Insert a row under a fresh unique code.

    The existence check is only a shortcut; the store's unique index decides.
    When ``insert_fn`` raises Conflict and ``code`` has since been taken, the
    insert lost a race: a new code is drawn and the insert retried, up to
    ``retries`` more times. Any other Conflict is raised as is.
    """
    for attempt in range(retries + 1):
        code = ensure_unique(prefix, exists_fn, max_attempts=max_attempts)
        try:
            return insert_fn(code)
        except Conflict as exc:
            if not exists_fn(code):
                logging.warning("Insert with code %s conflicted on another constraint: %s", code, exc)
                raise
            if attempt >= retries:
                raise
            logging.warning("Insert with code %s hit the unique index; regenerating.", code)

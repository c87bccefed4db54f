import re

import pytest

import school_codes
from api_errors import CodeGenerationExhausted, Conflict

CODE_PATTERN = r"{}-\d{{6}}-[A-Z0-9]{{3}}"


def test_generate_code_format():
    code = school_codes.generate_code("sch")
    assert re.fullmatch(CODE_PATTERN.format("SCH"), code)
    assert re.fullmatch(CODE_PATTERN.format("STD"), school_codes.generate_code(school_codes.STUDENT_PREFIX))


def test_generate_code_uses_last_six_digits_of_millisecond_clock(monkeypatch):
    monkeypatch.setattr(school_codes.time, "time", lambda: 1700000123.5)
    code = school_codes.generate_code("SCH")
    assert code.startswith("SCH-123500-")


def test_generate_code_pads_short_timestamps(monkeypatch):
    monkeypatch.setattr(school_codes.time, "time", lambda: 0.5)
    assert school_codes.generate_code("SCH").startswith("SCH-000500-")


def test_ensure_unique_skips_taken_codes():
    seen = []

    def exists(code):
        seen.append(code)
        return len(seen) <= 3

    code = school_codes.ensure_unique("SCH", exists)
    assert len(seen) == 4
    assert code == seen[-1]
    assert re.fullmatch(CODE_PATTERN.format("SCH"), code)


def test_ensure_unique_gives_up_after_max_attempts():
    calls = []

    def exists(code):
        calls.append(code)
        return True

    with pytest.raises(CodeGenerationExhausted):
        school_codes.ensure_unique("STD", exists, max_attempts=5)
    assert len(calls) == 5


class RacingStore:
    """Codes become taken the moment an insert with them is attempted."""

    def __init__(self, fail_times):
        self.fail_times = fail_times
        self.taken = set()
        self.attempts = []

    def exists(self, code):
        return code in self.taken

    def insert(self, code):
        self.attempts.append(code)
        if len(self.attempts) <= self.fail_times:
            self.taken.add(code)
            raise Conflict("duplicate")
        return 42


def test_insert_with_unique_code_retries_once_after_race():
    store = RacingStore(fail_times=1)
    assert school_codes.insert_with_unique_code("SCH", store.exists, store.insert) == 42
    assert len(store.attempts) == 2
    assert store.attempts[0] != store.attempts[1]


def test_insert_with_unique_code_surfaces_conflict_after_retry_budget():
    store = RacingStore(fail_times=5)
    with pytest.raises(Conflict):
        school_codes.insert_with_unique_code("SCH", store.exists, store.insert)
    assert len(store.attempts) == 2


def test_insert_with_unique_code_does_not_retry_other_conflicts():
    attempts = []

    def insert(code):
        attempts.append(code)
        raise Conflict("subject already exists")

    with pytest.raises(Conflict):
        school_codes.insert_with_unique_code("SCH", lambda code: False, insert)
    assert len(attempts) == 1

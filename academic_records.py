"""
Academic records stored on each student row.

``detailed_scores`` maps subject -> {period: score} for the six grading
periods, ``daily_attendance`` maps ISO date -> {subject: status}. Both are
kept as JSON text. Everything derived from them (totals, averages,
pass/fail, attendance counts) is computed here on demand and never stored.
"""

import json
import re
from decimal import Decimal, ROUND_HALF_UP

EMPTY_RECORD_TEXT = '{}'

PERIODS = ('month1', 'month2', 'midterm', 'month3', 'month4', 'final')
LATEST_FIRST = tuple(reversed(PERIODS))
NO_PERIOD = 'none'

PASS_MARK = 50
STATUS_PENDING = 'pending'
STATUS_PASS = 'pass'
STATUS_FAIL = 'fail'

ATTENDANCE_STATUSES = ('present', 'absent', 'leave')
DEFAULT_ATTENDANCE_STATUS = 'present'

GRADE_BANDS = (
    (90, 'excellent'),
    (80, 'very_good'),
    (70, 'good'),
    (60, 'acceptable'),
)
LOWEST_GRADE_BAND = 'weak'

_LEADING_INT = re.compile(r'\s*([+-]?\d+)')


# ==================== CODEC ====================

def decode(text):
    """Parse stored JSON text into a dict; never raises."""
    if text is None:
        return {}
    if isinstance(text, dict):
        return text
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode('utf-8')
        except UnicodeDecodeError:
            return {}
    if not isinstance(text, str) or not text.strip():
        return {}
    try:
        value = json.loads(text)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


def encode(mapping):
    if not mapping:
        return EMPTY_RECORD_TEXT
    return json.dumps(mapping, ensure_ascii=False)


def decode_scores(text):
    """Decode ``detailed_scores`` keeping only well-shaped subject entries."""
    return {subject: dict(periods) for subject, periods in decode(text).items() if isinstance(periods, dict)}


def decode_attendance(text):
    """Decode ``daily_attendance`` keeping only well-shaped date entries."""
    return {day: dict(entries) for day, entries in decode(text).items() if isinstance(entries, dict)}


# ==================== AGGREGATION ====================

def score_value(raw):
    """Integer score from the leading digits of ``raw``, 0 when there are none."""
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        try:
            return int(raw)
        except (ValueError, OverflowError):
            return 0
    match = _LEADING_INT.match(str(raw) if raw is not None else '')
    return int(match.group(1)) if match else 0


def round_one(value):
    return float(Decimal(str(value)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def empty_subject_scores():
    return {period: 0 for period in PERIODS}


def ensure_subject_entries(scores, subjects):
    """Add zeroed records for subjects the student has no scores for yet.

    Subjects missing from ``subjects`` are kept as they are.
    """
    for subject in subjects:
        if not isinstance(scores.get(subject), dict):
            scores[subject] = empty_subject_scores()
    return scores


def latest_nonzero_period(subject_scores):
    """Return ``(value, period)`` for the most recent graded period."""
    subject_scores = subject_scores or {}
    for period in LATEST_FIRST:
        value = score_value(subject_scores.get(period))
        if value > 0:
            return value, period
    return 0, NO_PERIOD


def classify(latest):
    value = latest[0] if isinstance(latest, (tuple, list)) else latest.get('value', 0)
    value = score_value(value)
    if value == 0:
        return STATUS_PENDING
    return STATUS_PASS if value >= PASS_MARK else STATUS_FAIL


def grade_band(score):
    score = score_value(score)
    for minimum, band in GRADE_BANDS:
        if score >= minimum:
            return band
    return LOWEST_GRADE_BAND


def totals_and_averages(scores, subjects):
    """Per-period totals and averages over ``subjects``.

    ``overall_average`` divides by every graded slot (subjects x 6), so
    periods still at zero pull it down.
    """
    subjects = list(subjects)
    totals = {period: 0 for period in PERIODS}
    for subject in subjects:
        subject_scores = scores.get(subject)
        if not isinstance(subject_scores, dict):
            continue
        for period in PERIODS:
            totals[period] += score_value(subject_scores.get(period))

    count = len(subjects)
    if count:
        averages = {period: round_one(totals[period] / count) for period in PERIODS}
        overall = round_one(sum(totals.values()) / (count * len(PERIODS)))
    else:
        averages = {period: 0.0 for period in PERIODS}
        overall = 0.0
    return {
        'totals': totals,
        'averages': averages,
        'overall_average': overall,
        'subject_count': count,
    }


def subject_results(scores, subjects):
    results = []
    for subject in subjects:
        subject_scores = scores.get(subject)
        if not isinstance(subject_scores, dict):
            subject_scores = empty_subject_scores()
        normalized = {period: score_value(subject_scores.get(period)) for period in PERIODS}
        value, period = latest_nonzero_period(normalized)
        results.append({
            'subject': subject,
            'scores': normalized,
            'latest': {'value': value, 'period': period},
            'status': classify((value, period)),
            'grade_band': grade_band(value) if value else None,
        })
    return results


def attendance_summary(attendance, subjects=None):
    """Count attendance statuses overall and per subject, dates newest first."""
    counts = {status: 0 for status in ATTENDANCE_STATUSES}
    counts['other'] = 0
    by_subject = {}
    for subject in subjects or []:
        by_subject[subject] = {status: 0 for status in ATTENDANCE_STATUSES}

    for entries in attendance.values():
        if not isinstance(entries, dict):
            continue
        for subject, status in entries.items():
            key = status if status in ATTENDANCE_STATUSES else 'other'
            counts[key] += 1
            if key == 'other':
                continue
            subject_counts = by_subject.setdefault(subject, {s: 0 for s in ATTENDANCE_STATUSES})
            subject_counts[key] += 1

    return {
        'dates': sorted(attendance.keys(), reverse=True),
        'counts': counts,
        'by_subject': by_subject,
    }


def student_report(student, subjects):
    """Derived view of one student's scores and attendance."""
    scores = ensure_subject_entries(decode_scores(student.get('detailed_scores')), subjects)
    attendance = decode_attendance(student.get('daily_attendance'))
    summary = totals_and_averages(scores, subjects)
    results = subject_results(scores, subjects)
    return {
        'student_id': student.get('id'),
        'full_name': student.get('full_name'),
        'subjects': results,
        'totals': summary['totals'],
        'averages': summary['averages'],
        'overall_average': summary['overall_average'],
        'subject_count': summary['subject_count'],
        'passed': sum(1 for r in results if r['status'] == STATUS_PASS),
        'failed': sum(1 for r in results if r['status'] == STATUS_FAIL),
        'pending': sum(1 for r in results if r['status'] == STATUS_PENDING),
        'attendance': attendance_summary(attendance, subjects),
    }

"""
Sajjaly - School Records API

A Flask JSON API for multi-school administration: an admin manages schools,
each school manages its subjects and students, and schools and students log
in with generated codes to view scores and attendance.

Version: 1.0.0
"""

from flask import Flask, request, jsonify, g
from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, SelectField, validators
from wtforms.fields import DateField
from werkzeug.datastructures import ImmutableMultiDict
from werkzeug.exceptions import HTTPException
from contextlib import contextmanager

import os
import logging
from dotenv import load_dotenv

import db
from db import db_connection, db_execute, insert_returning_id, lock_for_update, row_to_dict
from academic_records import (
    ATTENDANCE_STATUSES, DEFAULT_ATTENDANCE_STATUS, PERIODS,
    decode, decode_attendance, decode_scores, empty_subject_scores, encode,
    score_value, student_report,
)
from access_gate import issue_token, role_required, verify_admin_password
from api_errors import ApiError, Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from school_codes import SCHOOL_PREFIX, STUDENT_PREFIX, insert_with_unique_code

load_dotenv()

app = Flask(__name__)
ALLOW_INSECURE_DEFAULTS = os.environ.get('ALLOW_INSECURE_DEFAULTS', '').strip().lower() in ('1', 'true', 'yes')
secret_key = os.environ.get('SECRET_KEY')
if not secret_key:
    if ALLOW_INSECURE_DEFAULTS:
        # Explicitly opt-in fallback for local/dev only.
        secret_key = 'dev-secret-key-change-me'
    else:
        raise RuntimeError("SECRET_KEY is required in production. Set SECRET_KEY or enable ALLOW_INSECURE_DEFAULTS for local development.")
if not ALLOW_INSECURE_DEFAULTS and len(secret_key) < 32:
    raise RuntimeError("SECRET_KEY is too short. Use at least 32 characters in production.")
app.secret_key = secret_key
app.config['JWT_SECRET'] = os.environ.get('JWT_SECRET', '').strip() or secret_key
app.config['TOKEN_TTL_HOURS'] = float(os.environ.get('TOKEN_TTL_HOURS', '24') or 24)
app.json.ensure_ascii = False

DATABASE_URL = os.environ.get('DATABASE_URL', '').strip()
if not DATABASE_URL:
    if ALLOW_INSECURE_DEFAULTS:
        DATABASE_URL = 'sqlite:///sajjaly.db'
    else:
        raise RuntimeError("DATABASE_URL is required. Set it to a postgresql:// or sqlite:/// connection string.")
db.configure_database(DATABASE_URL)

ADMIN_USERNAME = os.environ.get('ADMIN_USERNAME', 'admin').strip()
ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', '').strip()
if not ADMIN_PASSWORD and ALLOW_INSECURE_DEFAULTS:
    ADMIN_PASSWORD = 'admin123'
CODE_MAX_ATTEMPTS = int(os.environ.get('CODE_MAX_ATTEMPTS', '1000') or 1000)

STUDY_TYPES = ('morning', 'evening')
SCHOOL_LEVELS = ('primary', 'middle', 'secondary', 'preparatory')
GENDER_TYPES = ('boys', 'girls', 'mixed')


def _dedupe_keep_order(items):
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def parse_subjects_text(value):
    return _dedupe_keep_order([s.strip() for s in (value or '').split(',') if s.strip()])


DEFAULT_SUBJECTS = parse_subjects_text(
    os.environ.get('DEFAULT_SUBJECTS', 'اللغة العربية,الرياضيات,العلوم,الانجليزية')
)

# Set up logging
LOG_FILE = os.environ.get('LOG_FILE', 'app.log').strip()
logging.basicConfig(filename=LOG_FILE or None,
                    level=getattr(logging, os.environ.get('LOG_LEVEL', 'INFO').strip().upper(), logging.INFO),
                    format='%(asctime)s - %(levelname)s - %(message)s')
if ALLOW_INSECURE_DEFAULTS:
    logging.warning("ALLOW_INSECURE_DEFAULTS is enabled. Development-only fallbacks may be active.")

# Initialize database (can be disabled when schema is managed by migrations).
RUN_STARTUP_DDL = os.environ.get('RUN_STARTUP_DDL', '1').strip().lower() in ('1', 'true', 'yes')
if RUN_STARTUP_DDL:
    db.init_db()
else:
    logging.warning("RUN_STARTUP_DDL is disabled. Ensure schema is already migrated before startup.")

RUN_STARTUP_BOOTSTRAP = os.environ.get('RUN_STARTUP_BOOTSTRAP', '1').strip().lower() in ('1', 'true', 'yes')
if RUN_STARTUP_BOOTSTRAP:
    if not ADMIN_PASSWORD:
        raise RuntimeError("ADMIN_PASSWORD is required. Set it in environment variables.")
    if not ALLOW_INSECURE_DEFAULTS and len(ADMIN_PASSWORD) < 12:
        raise RuntimeError("ADMIN_PASSWORD is too short. Use at least 12 characters.")
    db.seed_admin(ADMIN_USERNAME, ADMIN_PASSWORD)

# ==================== FORMS ====================

def _clean_text(value):
    if value is None:
        return value
    return str(value).strip()


class ApiForm(FlaskForm):
    """Form fed from a JSON body; bearer tokens replace CSRF tokens here."""

    class Meta:
        csrf = False


class AdminLoginForm(ApiForm):
    username = StringField('username', filters=[_clean_text], validators=[validators.DataRequired()])
    password = PasswordField('password', validators=[validators.DataRequired()])


class CodeLoginForm(ApiForm):
    code = StringField('code', filters=[_clean_text], validators=[validators.DataRequired()])


class SchoolForm(ApiForm):
    name = StringField('name', filters=[_clean_text], validators=[validators.DataRequired(), validators.Length(max=150)])
    study_type = SelectField('study_type', choices=STUDY_TYPES, validators=[validators.DataRequired()])
    level = SelectField('level', choices=SCHOOL_LEVELS, validators=[validators.DataRequired()])
    gender_type = SelectField('gender_type', choices=GENDER_TYPES, validators=[validators.DataRequired()])


class StudentForm(ApiForm):
    full_name = StringField('full_name', filters=[_clean_text], validators=[validators.DataRequired(), validators.Length(max=150)])
    grade = StringField('grade', filters=[_clean_text], validators=[validators.DataRequired(), validators.Length(max=100)])
    branch = StringField('branch', filters=[_clean_text], validators=[validators.Optional(), validators.Length(max=100)])
    room = StringField('room', filters=[_clean_text], validators=[validators.DataRequired(), validators.Length(max=50)])


class SubjectForm(ApiForm):
    name = StringField('name', filters=[_clean_text], validators=[validators.DataRequired(), validators.Length(max=100)])


class ScoreForm(ApiForm):
    subject = StringField('subject', filters=[_clean_text], validators=[validators.DataRequired()])
    period = SelectField('period', choices=PERIODS, validators=[validators.DataRequired()])


class AttendanceDayForm(ApiForm):
    date = DateField('date', format='%Y-%m-%d', validators=[validators.DataRequired()])


class AttendanceStatusForm(AttendanceDayForm):
    subject = StringField('subject', filters=[_clean_text], validators=[validators.DataRequired()])
    status = SelectField('status', choices=ATTENDANCE_STATUSES, validators=[validators.DataRequired()])


def json_body():
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def validated_form(form_class, payload):
    """Bind ``payload`` to ``form_class`` and raise ValidationError if invalid."""
    formdata = ImmutableMultiDict({
        key: str(value) for key, value in payload.items()
        if value is not None and not isinstance(value, (dict, list))
    })
    form = form_class(formdata=formdata)
    if not form.validate():
        field, errors = next(iter(form.errors.items()))
        raise ValidationError(f"{field}: {errors[0]}")
    return form


def record_payload(payload, key):
    """Fetch an optional score/attendance object from the request body."""
    if key not in payload or payload[key] is None:
        return None
    value = payload[key]
    if isinstance(value, str):
        value = decode(value)
    if not isinstance(value, dict):
        raise ValidationError(f"{key} must be an object")
    return value

# ==================== USER FUNCTIONS ====================

def get_admin_user(username):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT id, username, password_hash, role FROM users WHERE username = ? AND role = ?', (username, 'admin'))
        return row_to_dict(c.fetchone())

# ==================== SCHOOL FUNCTIONS ====================

def school_code_exists(code):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT 1 FROM schools WHERE code = ?', (code,))
        return c.fetchone() is not None


def create_school(name, study_type, level, gender_type, subjects=None):
    """Create a school under a generated code and seed its subject list."""
    subjects = DEFAULT_SUBJECTS if subjects is None else subjects

    def insert(code):
        with db_connection(commit=True) as conn:
            c = conn.cursor()
            school_id = insert_returning_id(
                c,
                'INSERT INTO schools (name, code, study_type, level, gender_type) VALUES (?, ?, ?, ?, ?)',
                (name, code, study_type, level, gender_type),
            )
            for position, subject in enumerate(subjects):
                db_execute(c, 'INSERT INTO subjects (school_id, name, position) VALUES (?, ?, ?)',
                           (school_id, subject, position))
            return school_id

    school_id = insert_with_unique_code(SCHOOL_PREFIX, school_code_exists, insert, max_attempts=CODE_MAX_ATTEMPTS)
    school = get_school(school_id)
    logging.info("School created: id=%s code=%s", school_id, school['code'])
    return school


def get_school(school_id):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM schools WHERE id = ?', (school_id,))
        return row_to_dict(c.fetchone())


def get_school_by_code(code):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM schools WHERE code = ?', (code,))
        return row_to_dict(c.fetchone())


def get_all_schools():
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM schools ORDER BY created_at DESC, id DESC')
        return [row_to_dict(row) for row in c.fetchall()]


def update_school(school_id, name, study_type, level, gender_type):
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(
            c,
            '''UPDATE schools
               SET name = ?, study_type = ?, level = ?, gender_type = ?, updated_at = CURRENT_TIMESTAMP
               WHERE id = ?''',
            (name, study_type, level, gender_type, school_id),
        )
        return c.rowcount


def delete_school(school_id):
    """Delete a school together with its students and subjects."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(c, 'DELETE FROM students WHERE school_id = ?', (school_id,))
        students_deleted = c.rowcount
        db_execute(c, 'DELETE FROM subjects WHERE school_id = ?', (school_id,))
        db_execute(c, 'DELETE FROM schools WHERE id = ?', (school_id,))
        deleted = c.rowcount
    if deleted:
        logging.info("School %s deleted with %d student(s).", school_id, students_deleted)
    return deleted

# ==================== SUBJECT FUNCTIONS ====================

def get_subjects(school_id):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM subjects WHERE school_id = ? ORDER BY position, id', (school_id,))
        return [row_to_dict(row) for row in c.fetchall()]


def get_subject_names(school_id):
    return [subject['name'] for subject in get_subjects(school_id)]


def _subject_names_with_cursor(c, school_id):
    db_execute(c, 'SELECT name FROM subjects WHERE school_id = ? ORDER BY position, id', (school_id,))
    return [row[0] for row in c.fetchall()]


def get_subject(subject_id):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM subjects WHERE id = ?', (subject_id,))
        return row_to_dict(c.fetchone())


def create_subject(school_id, name):
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT 1 FROM subjects WHERE school_id = ? AND name = ?', (school_id, name))
        if c.fetchone():
            raise Conflict('Subject already exists')
        db_execute(c, 'SELECT COALESCE(MAX(position), -1) + 1 FROM subjects WHERE school_id = ?', (school_id,))
        position = int(c.fetchone()[0])
        subject_id = insert_returning_id(
            c,
            'INSERT INTO subjects (school_id, name, position) VALUES (?, ?, ?)',
            (school_id, name, position),
        )
    return get_subject(subject_id)


def _rename_key(mapping, old, new):
    if old not in mapping:
        return False
    mapping[new] = mapping.pop(old)
    return True


def rename_subject(subject_id, new_name):
    """Rename a subject and carry its scores and attendance to the new name."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        suffix = lock_for_update(c)
        db_execute(c, 'SELECT id, school_id, name FROM subjects WHERE id = ?' + suffix, (subject_id,))
        subject = c.fetchone()
        if not subject:
            raise NotFound('Subject not found')
        old_name = subject['name']
        if old_name == new_name:
            return 1
        db_execute(c, 'SELECT 1 FROM subjects WHERE school_id = ? AND name = ?', (subject['school_id'], new_name))
        if c.fetchone():
            raise Conflict('Subject already exists')
        db_execute(c, 'SELECT id, detailed_scores, daily_attendance FROM students WHERE school_id = ?' + suffix,
                   (subject['school_id'],))
        rows = [(row['id'], decode_scores(row['detailed_scores']), decode_attendance(row['daily_attendance']))
                for row in c.fetchall()]
        # Records kept from a deleted subject must not be merged into a live one.
        for _student_id, scores, attendance in rows:
            if new_name in scores or any(new_name in entries for entries in attendance.values()):
                raise Conflict('Students still hold records under this subject name')

        db_execute(c, 'UPDATE subjects SET name = ? WHERE id = ?', (new_name, subject_id))
        updated = c.rowcount

        migrated = 0
        for student_id, scores, attendance in rows:
            changed = _rename_key(scores, old_name, new_name)
            for entries in attendance.values():
                changed = _rename_key(entries, old_name, new_name) or changed
            if not changed:
                continue
            db_execute(
                c,
                '''UPDATE students SET detailed_scores = ?, daily_attendance = ?, updated_at = CURRENT_TIMESTAMP
                   WHERE id = ?''',
                (encode(scores), encode(attendance), student_id),
            )
            migrated += 1
    logging.info("Subject %s renamed '%s' -> '%s'; %d student record(s) migrated.",
                 subject_id, old_name, new_name, migrated)
    return updated


def delete_subject(subject_id):
    """Remove a subject from the school list; stored scores for it are kept."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(c, 'DELETE FROM subjects WHERE id = ?', (subject_id,))
        return c.rowcount

# ==================== STUDENT FUNCTIONS ====================

def student_to_json(student):
    if student is None:
        return None
    data = dict(student)
    data['detailed_scores'] = decode_scores(data.get('detailed_scores'))
    data['daily_attendance'] = decode_attendance(data.get('daily_attendance'))
    return data


def student_code_exists(code):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT 1 FROM students WHERE student_code = ?', (code,))
        return c.fetchone() is not None


def create_student(school_id, full_name, grade, branch, room):
    def insert(code):
        with db_connection(commit=True) as conn:
            c = conn.cursor()
            return insert_returning_id(
                c,
                '''INSERT INTO students (school_id, full_name, student_code, grade, branch, room)
                   VALUES (?, ?, ?, ?, ?, ?)''',
                (school_id, full_name, code, grade, branch or '', room),
            )

    student_id = insert_with_unique_code(STUDENT_PREFIX, student_code_exists, insert, max_attempts=CODE_MAX_ATTEMPTS)
    student = get_student(student_id)
    logging.info("Student created: id=%s school=%s code=%s", student_id, school_id, student['student_code'])
    return student


def get_student(student_id):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM students WHERE id = ?', (student_id,))
        return row_to_dict(c.fetchone())


def get_student_by_code(code):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(
            c,
            '''SELECT s.*, sch.name AS school_name
               FROM students s JOIN schools sch ON s.school_id = sch.id
               WHERE s.student_code = ?''',
            (code,),
        )
        return row_to_dict(c.fetchone())


def load_students(school_id):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM students WHERE school_id = ? ORDER BY id', (school_id,))
        return [row_to_dict(row) for row in c.fetchall()]


def update_student(student_id, full_name, grade, branch, room, detailed_scores=None, daily_attendance=None):
    """Update profile fields; score/attendance blobs only when given."""
    columns = ['full_name = ?', 'grade = ?', 'branch = ?', 'room = ?']
    params = [full_name, grade, branch or '', room]
    if detailed_scores is not None:
        columns.append('detailed_scores = ?')
        params.append(encode(detailed_scores))
    if daily_attendance is not None:
        columns.append('daily_attendance = ?')
        params.append(encode(daily_attendance))
    params.append(student_id)
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(
            c,
            f"UPDATE students SET {', '.join(columns)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            tuple(params),
        )
        return c.rowcount


def replace_student_records(student_id, detailed_scores=None, daily_attendance=None):
    columns = []
    params = []
    if detailed_scores is not None:
        columns.append('detailed_scores = ?')
        params.append(encode(detailed_scores))
    if daily_attendance is not None:
        columns.append('daily_attendance = ?')
        params.append(encode(daily_attendance))
    if not columns:
        raise ValidationError('detailed_scores or daily_attendance is required')
    params.append(student_id)
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(
            c,
            f"UPDATE students SET {', '.join(columns)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            tuple(params),
        )
        return c.rowcount


@contextmanager
def locked_student_records(student_id):
    """Read-modify-write a student's scores and attendance in one transaction.

    Yields ``(cursor, records)``; ``records`` holds ``school_id``, decoded
    ``scores`` and ``attendance``, written back when the block exits cleanly.
    """
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        suffix = lock_for_update(c)
        db_execute(c, 'SELECT school_id, detailed_scores, daily_attendance FROM students WHERE id = ?' + suffix,
                   (student_id,))
        row = c.fetchone()
        if not row:
            raise NotFound('Student not found')
        records = {
            'school_id': row['school_id'],
            'scores': decode_scores(row['detailed_scores']),
            'attendance': decode_attendance(row['daily_attendance']),
        }
        yield c, records
        db_execute(
            c,
            '''UPDATE students SET detailed_scores = ?, daily_attendance = ?, updated_at = CURRENT_TIMESTAMP
               WHERE id = ?''',
            (encode(records['scores']), encode(records['attendance']), student_id),
        )


def _require_known_subject(c, school_id, subject):
    if subject not in _subject_names_with_cursor(c, school_id):
        raise ValidationError(f"Unknown subject: {subject}")


def update_student_score(student_id, subject, period, value):
    with locked_student_records(student_id) as (c, records):
        _require_known_subject(c, records['school_id'], subject)
        subject_scores = records['scores'].setdefault(subject, empty_subject_scores())
        subject_scores[period] = score_value(value)
    return 1


def add_attendance_day(student_id, day):
    """Add a day covering every current subject, all marked present."""
    with locked_student_records(student_id) as (c, records):
        if day in records['attendance']:
            raise Conflict('Attendance for this day already exists')
        subjects = _subject_names_with_cursor(c, records['school_id'])
        entries = {subject: DEFAULT_ATTENDANCE_STATUS for subject in subjects}
        records['attendance'][day] = entries
    return entries


def set_attendance_status(student_id, day, subject, status):
    with locked_student_records(student_id) as (c, records):
        _require_known_subject(c, records['school_id'], subject)
        if day not in records['attendance']:
            raise NotFound('Attendance day not found')
        records['attendance'][day][subject] = status
    return 1


def remove_attendance_day(student_id, day):
    with locked_student_records(student_id) as (_c, records):
        if day not in records['attendance']:
            raise NotFound('Attendance day not found')
        del records['attendance'][day]
    return 1


def delete_student(student_id):
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(c, 'DELETE FROM students WHERE id = ?', (student_id,))
        return c.rowcount

# ==================== ACCESS CHECKS ====================

def require_school_access(school_id):
    claims = g.claims
    if claims.get('role') == 'admin':
        return
    if claims.get('role') == 'school' and int(claims.get('id')) == int(school_id):
        return
    raise Forbidden('Access to this school is not allowed')


def require_student_access(student, allow_self=False):
    claims = g.claims
    role = claims.get('role')
    if role == 'admin':
        return
    if role == 'school' and int(claims.get('id')) == int(student['school_id']):
        return
    if allow_self and role == 'student' and int(claims.get('id')) == int(student['id']):
        return
    raise Forbidden('Access to this student is not allowed')


def load_school_or_404(school_id):
    school = get_school(school_id)
    if not school:
        raise NotFound('School not found')
    return school


def load_student_or_404(student_id):
    student = get_student(student_id)
    if not student:
        raise NotFound('Student not found')
    return student


def load_subject_or_404(subject_id):
    subject = get_subject(subject_id)
    if not subject:
        raise NotFound('Subject not found')
    return subject

# ==================== ERROR HANDLERS ====================

@app.errorhandler(ApiError)
def api_error(error):
    if error.status_code >= 500:
        logging.error("%s: %s", type(error).__name__, error)
    return jsonify({'error': error.message}), error.status_code


@app.errorhandler(HTTPException)
def http_error(error):
    return jsonify({'error': error.description or error.name}), error.code


@app.errorhandler(Exception)
def unhandled_error(error):
    logging.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({'error': 'Internal server error'}), 500

# ==================== ROUTES ====================

def api_route(rule, **options):
    """Register a view at ``rule`` and at ``/api`` + ``rule``."""
    def decorator(f):
        app.add_url_rule(rule, view_func=f, **options)
        app.add_url_rule('/api' + rule, view_func=f, **options)
        return f
    return decorator


def issue_session_token(claims):
    return issue_token(claims, app.config['JWT_SECRET'], app.config['TOKEN_TTL_HOURS'])


@api_route('/health')
def health():
    return jsonify({'status': 'ok'})


@api_route('/admin/login', methods=['POST'])
def admin_login():
    form = validated_form(AdminLoginForm, json_body())
    user = get_admin_user(form.username.data)
    if not verify_admin_password(user, form.password.data):
        logging.warning("Failed admin login for '%s'.", form.username.data)
        raise Unauthorized('Invalid credentials')
    public_user = {'id': user['id'], 'username': user['username'], 'role': user['role']}
    return jsonify({'token': issue_session_token(public_user), 'user': public_user})


@api_route('/school/login', methods=['POST'])
def school_login():
    form = validated_form(CodeLoginForm, json_body())
    school = get_school_by_code(form.code.data)
    if not school:
        raise NotFound('School not found')
    token = issue_session_token({'id': school['id'], 'code': school['code'], 'name': school['name'], 'role': 'school'})
    return jsonify({'token': token, 'school': school})


@api_route('/student/login', methods=['POST'])
def student_login():
    form = validated_form(CodeLoginForm, json_body())
    student = get_student_by_code(form.code.data)
    if not student:
        raise NotFound('Student not found')
    token = issue_session_token({
        'id': student['id'],
        'code': student['student_code'],
        'name': student['full_name'],
        'role': 'student',
    })
    return jsonify({'token': token, 'student': student_to_json(student)})

# ------ Schools ------

@api_route('/schools', methods=['GET'])
@role_required('admin')
def list_schools():
    return jsonify(get_all_schools())


@api_route('/schools', methods=['POST'])
@role_required('admin')
def add_school():
    form = validated_form(SchoolForm, json_body())
    school = create_school(form.name.data, form.study_type.data, form.level.data, form.gender_type.data)
    return jsonify(school), 201


@api_route('/schools/<int:school_id>', methods=['GET'])
@role_required('admin', 'school')
def show_school(school_id):
    require_school_access(school_id)
    return jsonify(load_school_or_404(school_id))


@api_route('/schools/<int:school_id>', methods=['PUT'])
@role_required('admin')
def edit_school(school_id):
    form = validated_form(SchoolForm, json_body())
    updated = update_school(school_id, form.name.data, form.study_type.data, form.level.data, form.gender_type.data)
    if not updated:
        raise NotFound('School not found')
    return jsonify({'updated': updated})


@api_route('/schools/<int:school_id>', methods=['DELETE'])
@role_required('admin')
def remove_school(school_id):
    deleted = delete_school(school_id)
    if not deleted:
        raise NotFound('School not found')
    return jsonify({'deleted': deleted})

# ------ Subjects ------

@api_route('/schools/<int:school_id>/subjects', methods=['GET'])
@role_required('admin', 'school')
def list_subjects(school_id):
    require_school_access(school_id)
    load_school_or_404(school_id)
    return jsonify(get_subjects(school_id))


@api_route('/schools/<int:school_id>/subjects', methods=['POST'])
@role_required('admin', 'school')
def add_subject(school_id):
    require_school_access(school_id)
    load_school_or_404(school_id)
    form = validated_form(SubjectForm, json_body())
    return jsonify(create_subject(school_id, form.name.data)), 201


@api_route('/subjects/<int:subject_id>', methods=['PUT'])
@role_required('admin', 'school')
def edit_subject(subject_id):
    subject = load_subject_or_404(subject_id)
    require_school_access(subject['school_id'])
    form = validated_form(SubjectForm, json_body())
    return jsonify({'updated': rename_subject(subject_id, form.name.data)})


@api_route('/subjects/<int:subject_id>', methods=['DELETE'])
@role_required('admin', 'school')
def remove_subject(subject_id):
    subject = load_subject_or_404(subject_id)
    require_school_access(subject['school_id'])
    deleted = delete_subject(subject_id)
    if not deleted:
        raise NotFound('Subject not found')
    return jsonify({'deleted': deleted})

# ------ Students ------

@api_route('/schools/<int:school_id>/students', methods=['GET'])
@api_route('/school/<int:school_id>/students', methods=['GET'])
@role_required('admin', 'school')
def list_students(school_id):
    require_school_access(school_id)
    load_school_or_404(school_id)
    return jsonify([student_to_json(s) for s in load_students(school_id)])


@api_route('/schools/<int:school_id>/students', methods=['POST'])
@api_route('/school/<int:school_id>/student', methods=['POST'])
@role_required('admin', 'school')
def add_student(school_id):
    require_school_access(school_id)
    load_school_or_404(school_id)
    form = validated_form(StudentForm, json_body())
    student = create_student(school_id, form.full_name.data, form.grade.data, form.branch.data, form.room.data)
    return jsonify(student_to_json(student)), 201


@api_route('/students/<int:student_id>', methods=['GET'])
@role_required('admin', 'school', 'student')
def show_student(student_id):
    student = load_student_or_404(student_id)
    require_student_access(student, allow_self=True)
    return jsonify(student_to_json(student))


@api_route('/students/<int:student_id>', methods=['PUT'])
@api_route('/student/<int:student_id>', methods=['PUT'])
@role_required('admin', 'school')
def edit_student(student_id):
    require_student_access(load_student_or_404(student_id))
    payload = json_body()
    form = validated_form(StudentForm, payload)
    updated = update_student(
        student_id,
        form.full_name.data,
        form.grade.data,
        form.branch.data,
        form.room.data,
        detailed_scores=record_payload(payload, 'detailed_scores'),
        daily_attendance=record_payload(payload, 'daily_attendance'),
    )
    if not updated:
        raise NotFound('Student not found')
    return jsonify({'updated': updated})


@api_route('/students/<int:student_id>/detailed', methods=['PUT'])
@api_route('/student/<int:student_id>/detailed', methods=['PUT'])
@role_required('admin', 'school')
def edit_student_records(student_id):
    require_student_access(load_student_or_404(student_id))
    payload = json_body()
    updated = replace_student_records(
        student_id,
        detailed_scores=record_payload(payload, 'detailed_scores'),
        daily_attendance=record_payload(payload, 'daily_attendance'),
    )
    if not updated:
        raise NotFound('Student not found')
    return jsonify({'updated': updated})


@api_route('/students/<int:student_id>/scores', methods=['PUT'])
@role_required('admin', 'school')
def edit_student_score(student_id):
    require_student_access(load_student_or_404(student_id))
    payload = json_body()
    form = validated_form(ScoreForm, payload)
    updated = update_student_score(student_id, form.subject.data, form.period.data, payload.get('value'))
    return jsonify({'updated': updated})


@api_route('/students/<int:student_id>/attendance', methods=['POST'])
@role_required('admin', 'school')
def add_student_attendance_day(student_id):
    require_student_access(load_student_or_404(student_id))
    form = validated_form(AttendanceDayForm, json_body())
    day = form.date.data.isoformat()
    entries = add_attendance_day(student_id, day)
    return jsonify({'date': day, 'entries': entries}), 201


@api_route('/students/<int:student_id>/attendance', methods=['PUT'])
@role_required('admin', 'school')
def edit_student_attendance(student_id):
    require_student_access(load_student_or_404(student_id))
    form = validated_form(AttendanceStatusForm, json_body())
    updated = set_attendance_status(student_id, form.date.data.isoformat(), form.subject.data, form.status.data)
    return jsonify({'updated': updated})


@api_route('/students/<int:student_id>/attendance/<day>', methods=['DELETE'])
@role_required('admin', 'school')
def remove_student_attendance_day(student_id, day):
    require_student_access(load_student_or_404(student_id))
    return jsonify({'deleted': remove_attendance_day(student_id, day)})


@api_route('/students/<int:student_id>/report', methods=['GET'])
@role_required('admin', 'school', 'student')
def show_student_report(student_id):
    student = load_student_or_404(student_id)
    require_student_access(student, allow_self=True)
    return jsonify(student_report(student, get_subject_names(student['school_id'])))


@api_route('/students/<int:student_id>', methods=['DELETE'])
@api_route('/student/<int:student_id>', methods=['DELETE'])
@role_required('admin', 'school')
def remove_student(student_id):
    require_student_access(load_student_or_404(student_id))
    deleted = delete_student(student_id)
    if not deleted:
        raise NotFound('Student not found')
    logging.info("Student %s deleted.", student_id)
    return jsonify({'deleted': deleted})

# ==================== MAIN ====================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', '0').strip().lower() in ('1', 'true', 'yes')
    app.run(host='0.0.0.0', port=port, debug=debug, threaded=True)

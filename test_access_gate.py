from datetime import datetime, timedelta, timezone

import jwt
import pytest
from flask import Flask, g, jsonify
from werkzeug.security import generate_password_hash

import access_gate
from api_errors import ApiError, Forbidden

SECRET = "s" * 40


@pytest.fixture
def gated_app():
    app = Flask(__name__)
    app.config["JWT_SECRET"] = SECRET

    @app.errorhandler(ApiError)
    def api_error(error):
        return jsonify({"error": error.message}), error.status_code

    @app.route("/admin-only")
    @access_gate.role_required("admin")
    def admin_only():
        return jsonify(g.claims)

    return app


def test_issue_and_decode_token_round_trip():
    token = access_gate.issue_token({"id": 7, "code": "SCH-123456-ABC", "role": "school"}, SECRET, ttl_hours=1)
    claims = access_gate.decode_token(token, SECRET)
    assert claims["id"] == 7
    assert claims["role"] == "school"
    assert claims["exp"] - claims["iat"] == 3600


def test_expired_token_is_forbidden():
    past = datetime.now(timezone.utc) - timedelta(hours=2)
    token = jwt.encode({"id": 1, "role": "admin", "exp": past}, SECRET, algorithm="HS256")
    with pytest.raises(Forbidden):
        access_gate.decode_token(token, SECRET)


def test_token_signed_with_other_secret_is_forbidden():
    token = access_gate.issue_token({"id": 1, "role": "admin"}, "o" * 40)
    with pytest.raises(Forbidden):
        access_gate.decode_token(token, SECRET)


@pytest.mark.parametrize(
    "header, expected",
    [("Bearer abc", "abc"), ("bearer  abc ", "abc"), ("Token abc", None), ("Bearer", None), ("", None), (None, None)],
)
def test_bearer_token(header, expected):
    assert access_gate.bearer_token(header) == expected


def test_verify_admin_password():
    user = {"password_hash": generate_password_hash("correct horse")}
    assert access_gate.verify_admin_password(user, "correct horse") is True
    assert access_gate.verify_admin_password(user, "wrong") is False
    assert access_gate.verify_admin_password(None, "correct horse") is False
    assert access_gate.verify_admin_password(user, "") is False


def test_role_required_statuses(gated_app):
    client = gated_app.test_client()
    admin = access_gate.issue_token({"id": 1, "username": "admin", "role": "admin"}, SECRET)
    school = access_gate.issue_token({"id": 2, "role": "school"}, SECRET)

    assert client.get("/admin-only").status_code == 401
    assert client.get("/admin-only", headers={"Authorization": "Bearer junk"}).status_code == 403
    assert client.get("/admin-only", headers={"Authorization": f"Bearer {school}"}).status_code == 403

    resp = client.get("/admin-only", headers={"Authorization": f"Bearer {admin}"})
    assert resp.status_code == 200
    assert resp.get_json()["username"] == "admin"

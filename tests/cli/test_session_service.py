from __future__ import annotations

import base64
import json
import time
from pathlib import Path

from backend.src.auth.session import Session
from backend.src.cli.services.session_service import SessionService


def _token(exp: int) -> str:
    payload = base64.urlsafe_b64encode(json.dumps({"exp": exp}).encode("utf-8")).decode("ascii").rstrip("=")
    return f"header.{payload}.signature"


def test_load_session_round_trip(tmp_path: Path) -> None:
    session_path = tmp_path / "session.json"
    session_data = {
        "user_id": "abc123",
        "email": "test@example.com",
        "access_token": "token",
        "refresh_token": "refresh",
        "display_name": "Tess",
    }
    session_path.write_text(json.dumps(session_data), encoding="utf-8")

    service = SessionService()
    loaded = service.load_session(session_path)

    assert loaded is not None
    assert loaded.user_id == "abc123"
    assert loaded.email == "test@example.com"
    assert loaded.refresh_token == "refresh"
    assert loaded.display_name == "Tess"


def test_persist_and_clear_session(tmp_path: Path) -> None:
    session_path = tmp_path / "nested" / "session.json"
    service = SessionService()
    service.persist_session(
        session_path,
        Session(user_id="u", email="e@example.com", access_token="tok", refresh_token="ref"),
    )
    assert json.loads(session_path.read_text(encoding="utf-8"))["refresh_token"] == "ref"

    service.clear_session(session_path)
    assert not session_path.exists()


def test_corrupted_session_is_reported(tmp_path: Path) -> None:
    session_path = tmp_path / "session.json"
    session_path.write_text("{not json", encoding="utf-8")
    reports = []

    service = SessionService(reporter=lambda message, tone: reports.append((message, tone)))

    assert service.load_session(session_path) is None
    assert reports and reports[0][1] == "warning"


def test_missing_session_file_is_silent(tmp_path: Path) -> None:
    reports = []
    service = SessionService(reporter=lambda message, tone: reports.append(message))

    assert service.load_session(tmp_path / "absent.json") is None
    assert reports == []


def test_needs_refresh_reads_token_expiry() -> None:
    service = SessionService()
    now = int(time.time())

    assert service.needs_refresh(Session("u", "e@example.com", _token(now + 3600))) is False
    assert service.needs_refresh(Session("u", "e@example.com", _token(now - 10))) is True
    assert service.needs_refresh(Session("u", "e@example.com", "")) is True
    assert service.needs_refresh(Session("u", "e@example.com", "opaque-token")) is False

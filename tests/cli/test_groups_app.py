from __future__ import annotations

import base64
import json
import time
from pathlib import Path
from unittest.mock import Mock

import pytest

pytest.importorskip("textual")

from backend.src.api.models.group_models import Group, GroupCreate
from backend.src.auth.session import Session
from backend.src.cli.services.groups_service import GroupsServiceError
from backend.src.cli.services.session_service import SessionService
from backend.src.cli.state import GroupsState, SessionState
from backend.src.cli.textual_app import GroupsTextualApp


def _bare_app(tmp_path: Path) -> GroupsTextualApp:
    app = GroupsTextualApp.__new__(GroupsTextualApp)  # bypass Textual App __init__
    app._session_state = SessionState(session_path=tmp_path / "session.json")
    app._session_state.session = Session(user_id="user-1", email="tester@example.com", access_token="token")
    app._groups_state = GroupsState()
    app._session_service = SessionService()
    app._groups_service = Mock()
    app._comments_service = Mock()
    app._subscriber = None
    app._initial_group_id = None
    app.statuses = []
    app.notices = []
    app.opened = []
    app._show_status = lambda message, tone="info": app.statuses.append((message, tone))
    app.notify = lambda message, title="", severity="information": app.notices.append((title, severity))
    app._render_groups = lambda: None
    app._open_group = lambda group: app.opened.append(group.id)
    return app


def _token(exp: int) -> str:
    payload = base64.urlsafe_b64encode(json.dumps({"exp": exp}).encode("utf-8")).decode("ascii").rstrip("=")
    return f"header.{payload}.signature"


@pytest.mark.asyncio
async def test_sign_in_applies_tokens_and_opens_requested_group(tmp_path):
    app = _bare_app(tmp_path)
    app._initial_group_id = "group-2"
    app._groups_service.list_groups.return_value = [
        Group(id="group-1", name="First"),
        Group(id="group-2", name="Second"),
    ]

    await app._after_sign_in()

    app._groups_service.apply_access_token.assert_called_once_with("token")
    app._comments_service.apply_access_token.assert_called_once_with("token")
    assert [group.id for group in app._groups_state.groups] == ["group-1", "group-2"]
    assert app.opened == ["group-2"]
    assert app._initial_group_id is None


@pytest.mark.asyncio
async def test_unknown_requested_group_is_reported(tmp_path):
    app = _bare_app(tmp_path)
    app._initial_group_id = "missing"
    app._groups_service.list_groups.return_value = [Group(id="group-1", name="First")]

    await app._after_sign_in()

    assert app.opened == []
    assert ("Group missing was not found.", "warning") in app.statuses


@pytest.mark.asyncio
async def test_group_load_failure_notifies(tmp_path):
    app = _bare_app(tmp_path)
    app._groups_service.list_groups.side_effect = GroupsServiceError("Failed to load groups: offline")

    await app._load_groups()

    assert app.notices == [("Error loading groups", "error")]
    assert app._groups_state.error == "Failed to load groups: offline"


@pytest.mark.asyncio
async def test_create_group_opens_new_group(tmp_path):
    app = _bare_app(tmp_path)
    created = Group(id="group-9", name="Night Owls", created_by="user-1")
    app._groups_service.create_group.return_value = created
    app._groups_service.list_groups.return_value = [created]
    event = Mock(group=GroupCreate(name="Night Owls"))

    await app._create_group(event)

    app._groups_service.create_group.assert_called_once_with("user-1", event.group)
    assert app.notices == [("Group created successfully", "information")]
    assert app.opened == ["group-9"]


def test_expired_saved_session_is_discarded(tmp_path):
    app = _bare_app(tmp_path)
    expired = Session(user_id="user-1", email="tester@example.com", access_token=_token(int(time.time()) - 60))
    app._session_service.persist_session(app._session_state.session_path, expired)

    app._load_session()

    assert app._session_state.session is None
    assert app._session_state.last_email == "tester@example.com"
    assert not app._session_state.session_path.exists()


def test_valid_saved_session_is_restored(tmp_path):
    app = _bare_app(tmp_path)
    saved = Session(user_id="user-1", email="tester@example.com", access_token=_token(int(time.time()) + 3600))
    app._session_service.persist_session(app._session_state.session_path, saved)
    app._session_state.session = None

    app._load_session()

    assert app._session_state.session.user_id == "user-1"


def test_logout_clears_realtime_session(tmp_path):
    app = _bare_app(tmp_path)
    app._subscriber = Mock()
    app._update_session_status = lambda: None

    app._logout()

    app._subscriber.apply_session.assert_called_once_with(None)
    assert app._session_state.session is None
    assert ("Signed out.", "success") in app.statuses

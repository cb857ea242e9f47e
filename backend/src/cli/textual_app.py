from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from textual.app import App, ComposeResult, Binding
from textual.containers import Vertical
from textual.events import Mount
from textual.widgets import Footer, Header, Label, ListItem, ListView, Static

from ..api.models.group_models import Group
from ..auth.session import AuthError, Session, SupabaseAuth
from .message_utils import track_task
from .screens import (
    GroupCreateScreen,
    GroupCreateSubmitted,
    GroupScreen,
    GroupsChanged,
    LoginCancelled,
    LoginScreen,
    LoginSubmitted,
)
from .services.comments_service import CommentsService, DiscussionError
from .services.groups_service import GroupsService, GroupsServiceError
from .services.realtime_service import ChannelError, RealtimeCommentSubscriber
from .services.session_service import SessionService
from .state import GroupsState, SessionState

logger = logging.getLogger(__name__)


class GroupsTextualApp(App):
    """Terminal client for portfolio groups and their live discussions."""

    CSS_PATH = "textual_app.tcss"
    TITLE = "Portfolio Groups"
    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("ctrl+q", "quit", "", show=False),
        Binding("ctrl+l", "toggle_account", "Sign In/Out"),
        Binding("n", "new_group", "New Group"),
        Binding("r", "refresh_groups", "Refresh"),
    ]

    def __init__(
        self,
        *,
        initial_group_id: Optional[str] = None,
        session_state: Optional[SessionState] = None,
        groups_service: Optional[GroupsService] = None,
        comments_service: Optional[CommentsService] = None,
        subscriber: Optional[RealtimeCommentSubscriber] = None,
        auth: Optional[SupabaseAuth] = None,
    ) -> None:
        super().__init__()
        self._initial_group_id = initial_group_id
        self._session_state = session_state or SessionState()
        self._session_state.auth = auth or self._session_state.auth
        self._groups_state = GroupsState()
        self._session_service = SessionService(reporter=self._show_status)
        self._groups_service = groups_service
        self._comments_service = comments_service
        self._subscriber = subscriber

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="session-status", classes="session-status")
        yield Vertical(
            Static("Groups", classes="section-heading"),
            ListView(id="groups"),
            Static("Select a group and press Enter to open it.", id="detail", classes="detail-block"),
            id="main",
        )
        yield Static("", id="status", classes="status info")
        yield Footer()

    async def on_mount(self, event: Mount) -> None:
        self._load_session()
        self._update_session_status()
        if self._session_state.session is None:
            self._show_login_dialog()
            return
        await self._after_sign_in()

    def exit(self, result: int | None = None) -> None:  # pragma: no cover - Textual shutdown hook
        self._cleanup_async_tasks()
        super().exit(result)

    # ------------------------------------------------------------------ #
    # Session
    # ------------------------------------------------------------------ #

    def _load_session(self) -> None:
        session = self._session_service.load_session(self._session_state.session_path)
        if session and self._session_service.needs_refresh(session):
            self._session_state.last_email = session.email
            self._session_service.clear_session(self._session_state.session_path)
            self._show_status("Your session expired. Sign in again.", "warning")
            session = None
        self._session_state.session = session

    def _get_auth(self) -> SupabaseAuth:
        if self._session_state.auth is None:
            self._session_state.auth = SupabaseAuth()
        return self._session_state.auth

    def _show_login_dialog(self) -> None:
        self.push_screen(LoginScreen(self._session_state.last_email))

    def on_login_submitted(self, event: LoginSubmitted) -> None:
        self._session_state.login_task = track_task(
            self._handle_login(event.email, event.password), "Login", logger
        )

    def on_login_cancelled(self, event: LoginCancelled) -> None:
        self._show_status("Sign in to browse groups and join discussions.", "warning")

    async def _handle_login(self, email: str, password: str) -> None:
        self._show_status("Signing in…", "info")
        try:
            auth = self._get_auth()
            session = await asyncio.to_thread(auth.login, email, password)
        except AuthError as exc:
            self._session_state.auth_error = str(exc)
            self._session_state.last_email = email
            self._show_status(f"Sign in failed: {exc}", "error")
            return
        self._session_state.auth_error = None
        self._session_state.session = session
        self._session_service.persist_session(self._session_state.session_path, session)
        self._update_session_status()
        self._show_status(f"Signed in as {session.email}.", "success")
        await self._after_sign_in()

    def action_toggle_account(self) -> None:
        if self._session_state.session:
            self._logout()
        else:
            self._show_login_dialog()

    def _logout(self) -> None:
        session = self._session_state.session
        if not session:
            return
        self._cleanup_async_tasks()
        self._session_state.last_email = session.email
        self._session_state.session = None
        self._session_service.clear_session(self._session_state.session_path)
        if self._subscriber is not None:
            self._subscriber.apply_session(None)
        self._groups_state.groups = []
        self._render_groups()
        self._update_session_status()
        self._show_status("Signed out.", "success")

    def _update_session_status(self) -> None:
        session = self._session_state.session
        label = f"Signed in as {session.email}" if session else "Not signed in"
        self.query_one("#session-status", Static).update(label)

    # ------------------------------------------------------------------ #
    # Services
    # ------------------------------------------------------------------ #

    def _ensure_services(self, session: Session) -> bool:
        try:
            if self._groups_service is None:
                self._groups_service = GroupsService()
            if self._comments_service is None:
                self._comments_service = CommentsService()
        except (GroupsServiceError, DiscussionError) as exc:
            self._show_status(str(exc), "error")
            return False

        if self._subscriber is None:
            try:
                self._subscriber = RealtimeCommentSubscriber()
            except ChannelError as exc:
                # Discussions still load on open; they just won't update live.
                logger.warning(f"Realtime updates disabled: {exc}")

        self._groups_service.apply_access_token(session.access_token)
        self._comments_service.apply_access_token(session.access_token)
        if self._subscriber is not None:
            self._subscriber.apply_session(session.access_token, session.refresh_token)
        return True

    async def _after_sign_in(self) -> None:
        session = self._session_state.session
        if session is None or not self._ensure_services(session):
            return
        await self._load_groups()
        if self._initial_group_id:
            group_id, self._initial_group_id = self._initial_group_id, None
            group = next((group for group in self._groups_state.groups if group.id == group_id), None)
            if group is None:
                self._show_status(f"Group {group_id} was not found.", "warning")
            else:
                self._open_group(group)

    # ------------------------------------------------------------------ #
    # Groups
    # ------------------------------------------------------------------ #

    async def _load_groups(self) -> None:
        if self._groups_service is None:
            return
        try:
            groups = await asyncio.to_thread(self._groups_service.list_groups)
        except GroupsServiceError as exc:
            self._groups_state.error = str(exc)
            self.notify(str(exc), title="Error loading groups", severity="error")
            return
        self._groups_state.groups = groups
        self._groups_state.error = None
        self._render_groups()
        if not groups:
            self._show_status("No groups yet. Press n to create one.", "info")

    def _render_groups(self) -> None:
        listing = self.query_one("#groups", ListView)
        listing.clear()
        items: List[ListItem] = [ListItem(Label(group.name, classes="menu-item")) for group in self._groups_state.groups]
        if items:
            listing.extend(items)
            listing.index = 0

    def on_list_view_highlighted(self, event: ListView.Highlighted) -> None:
        if event.control.id != "groups":
            return
        group = self._group_at(event.control.index)
        if group is not None:
            description = group.description or "No description."
            self.query_one("#detail", Static).update(f"[b]{group.name}[/b]\n\n{description}")

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if event.control.id != "groups":
            return
        group = self._group_at(event.control.index)
        if group is not None:
            self._open_group(group)

    def _group_at(self, index: Optional[int]) -> Optional[Group]:
        if index is None or not 0 <= index < len(self._groups_state.groups):
            return None
        return self._groups_state.groups[index]

    def _open_group(self, group: Group) -> None:
        session = self._session_state.session
        if session is None or self._groups_service is None or self._comments_service is None:
            self._show_status("Sign in to open a group.", "warning")
            return
        self.push_screen(
            GroupScreen(
                group,
                viewer=session,
                groups_service=self._groups_service,
                comments_service=self._comments_service,
                subscriber=self._subscriber,
            )
        )

    def action_new_group(self) -> None:
        if not self._session_state.session:
            self._show_status("Sign in to create a group.", "warning")
            return
        self.push_screen(GroupCreateScreen())

    async def action_refresh_groups(self) -> None:
        await self._load_groups()

    def on_group_create_submitted(self, event: GroupCreateSubmitted) -> None:
        self._groups_state.task = track_task(self._create_group(event), "Create group", logger)

    async def _create_group(self, event: GroupCreateSubmitted) -> None:
        session = self._session_state.session
        if session is None or self._groups_service is None:
            return
        try:
            created = await asyncio.to_thread(self._groups_service.create_group, session.user_id, event.group)
        except GroupsServiceError as exc:
            self.notify(str(exc), title="Error creating group", severity="error")
            return
        self.notify(f'"{created.name}" has been created.', title="Group created successfully")
        await self._load_groups()
        self._open_group(created)

    async def on_groups_changed(self, event: GroupsChanged) -> None:
        await self._load_groups()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _show_status(self, message: str, tone: str = "info") -> None:
        logger.info(f"[{tone}] {message}")
        status = self.query_one("#status", Static)
        status.update(message)
        status.set_classes(f"status {tone}")

    def _cancel_task(self, task: Optional[asyncio.Task], label: str) -> None:
        """Cancel a pending asyncio task; its done-callback logs any failure."""
        if not task or task.done():
            return
        logger.info(f"Cancelling {label} task")
        task.cancel()

    def _cleanup_async_tasks(self) -> None:
        """Ensure background tasks are cancelled before logout or shutdown."""
        if self._session_state.login_task:
            self._cancel_task(self._session_state.login_task, "Login")
            self._session_state.login_task = None
        if self._groups_state.task:
            self._cancel_task(self._groups_state.task, "Create group")
            self._groups_state.task = None

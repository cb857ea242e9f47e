from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from pydantic import ValidationError
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.events import Key, Mount
from textual.message import Message
from textual.screen import ModalScreen, Screen
from textual.widgets import Button, Footer, Header, Input, Label, ListItem, ListView, Static

from ..api.models.group_models import Group, GroupCreate, Portfolio
from ..auth.session import Session
from .display import render_members, render_shared_portfolios
from .message_utils import dispatch_message, track_task
from .services.comments_service import CommentsService
from .services.groups_service import GroupsService, GroupsServiceError
from .services.realtime_service import RealtimeCommentSubscriber
from .state import GroupDetailState
from .widgets import DiscussionView

logger = logging.getLogger(__name__)


class LoginSubmitted(Message):
    """Raised when the user submits credentials from the login dialog."""

    def __init__(self, email: str, password: str) -> None:
        super().__init__()
        self.email = email
        self.password = password


class LoginCancelled(Message):
    """Raised when the login dialog is dismissed without signing in."""

    pass


class GroupCreateSubmitted(Message):
    def __init__(self, group: GroupCreate) -> None:
        super().__init__()
        self.group = group


class GroupsChanged(Message):
    """Raised by the group screen after a join, leave or delete."""

    pass


class LoginScreen(ModalScreen[None]):
    """Modal dialog for collecting Supabase credentials."""

    def __init__(self, default_email: str = "") -> None:
        super().__init__()
        self._default_email = default_email

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static("Sign in to Supabase", classes="dialog-title"),
            Input(value=self._default_email, placeholder="name@example.com", id="login-email"),
            Input(password=True, placeholder="Password", id="login-password"),
            Static("", id="login-message", classes="dialog-message"),
            Horizontal(
                Button("Cancel", id="login-cancel"),
                Button("Sign In", id="login-submit", variant="primary"),
                classes="dialog-buttons",
            ),
            classes="dialog",
        )

    def on_mount(self, event: Mount) -> None:  # pragma: no cover - focus wiring
        target_id = "login-password" if self._default_email else "login-email"
        self.query_one(f"#{target_id}", Input).focus()

    def _validate(self) -> tuple[str, str] | None:
        email_input = self.query_one("#login-email", Input)
        password_input = self.query_one("#login-password", Input)
        email = email_input.value.strip()
        password = password_input.value
        if not email or not password:
            self.query_one("#login-message", Static).update("Enter an email and password to continue.")
            if not email:
                email_input.focus()
            else:
                password_input.focus()
            return None
        return email, password

    def _submit(self) -> None:
        result = self._validate()
        if not result:
            return
        email, password = result
        dispatch_message(self.app, LoginSubmitted(email, password))
        self.dismiss(None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "login-submit":
            self._submit()
        elif event.button.id == "login-cancel":
            dispatch_message(self.app, LoginCancelled())
            self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id in {"login-email", "login-password"}:
            self._submit()

    def on_key(self, event: Key) -> None:  # pragma: no cover - keyboard shortcut
        if event.key == "escape":
            dispatch_message(self.app, LoginCancelled())
            self.dismiss(None)


class GroupCreateScreen(ModalScreen[None]):
    """Modal dialog for creating a new group."""

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static("Create a Group", classes="dialog-title"),
            Input(placeholder="Group name", id="group-name"),
            Input(placeholder="Description (optional)", id="group-description"),
            Input(placeholder="Cover image URL (optional)", id="group-cover"),
            Static("", id="group-message", classes="dialog-message"),
            Horizontal(
                Button("Cancel", id="group-cancel"),
                Button("Create Group", id="group-submit", variant="primary"),
                classes="dialog-buttons",
            ),
            classes="dialog",
        )

    def on_mount(self, event: Mount) -> None:  # pragma: no cover - focus wiring
        self.query_one("#group-name", Input).focus()

    def _submit(self) -> None:
        try:
            group = GroupCreate(
                name=self.query_one("#group-name", Input).value,
                description=self.query_one("#group-description", Input).value,
                cover_image=self.query_one("#group-cover", Input).value,
            )
        except ValidationError as exc:
            messages = "; ".join(error["msg"] for error in exc.errors())
            self.query_one("#group-message", Static).update(messages)
            return
        dispatch_message(self.app, GroupCreateSubmitted(group))
        self.dismiss(None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "group-submit":
            self._submit()
        elif event.button.id == "group-cancel":
            self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()

    def on_key(self, event: Key) -> None:  # pragma: no cover - keyboard shortcut
        if event.key == "escape":
            self.dismiss(None)


class SharePortfolioScreen(ModalScreen[Optional[str]]):
    """Pick one of the viewer's portfolios that is not shared in the group yet."""

    def __init__(self, portfolios: List[Portfolio]) -> None:
        super().__init__()
        self._portfolios = portfolios

    def compose(self) -> ComposeResult:
        if self._portfolios:
            items = [ListItem(Label(portfolio.title)) for portfolio in self._portfolios]
            body = ListView(*items, id="share-list")
        else:
            body = Static(
                "You don't have any portfolios to share, or all of them are already shared here.",
                classes="dialog-message",
            )
        yield Vertical(
            Static("Share Portfolio", classes="dialog-title"),
            body,
            Horizontal(Button("Cancel", id="share-cancel"), classes="dialog-buttons"),
            classes="dialog",
        )

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        index = event.control.index or 0
        self.dismiss(self._portfolios[index].id)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "share-cancel":
            self.dismiss(None)


class ConfirmScreen(ModalScreen[bool]):
    def __init__(self, prompt: str, confirm_label: str = "Confirm") -> None:
        super().__init__()
        self._prompt = prompt
        self._confirm_label = confirm_label

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static(self._prompt, classes="dialog-subtitle"),
            Horizontal(
                Button("Cancel", id="confirm-cancel"),
                Button(self._confirm_label, id="confirm-ok", variant="error"),
                classes="dialog-buttons",
            ),
            classes="dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm-ok")


class GroupScreen(Screen[None]):
    """Group detail: description, members, shared portfolios and discussion."""

    BINDINGS = [
        Binding("escape", "back", "Back to Groups"),
        Binding("r", "reload", "Refresh"),
    ]

    def __init__(
        self,
        group: Group,
        *,
        viewer: Session,
        groups_service: GroupsService,
        comments_service: CommentsService,
        subscriber: Optional[RealtimeCommentSubscriber] = None,
    ) -> None:
        super().__init__()
        self._state = GroupDetailState(group=group)
        self._viewer = viewer
        self._groups = groups_service
        self._comments = comments_service
        self._subscriber = subscriber

    @property
    def state(self) -> GroupDetailState:
        return self._state

    def compose(self) -> ComposeResult:
        group = self._state.group
        yield Header()
        yield Vertical(
            Static(f"[b]{group.name}[/b]", classes="section-heading"),
            Static(group.description or "", id="group-description"),
            Horizontal(
                Button("Back", id="group-back"),
                Button("Join Group", id="group-join", variant="primary"),
                Button("Share Portfolio", id="group-share"),
                Button("Leave Group", id="group-leave"),
                Button("Delete Group", id="group-delete", variant="error"),
                classes="dialog-buttons",
            ),
            Horizontal(
                VerticalScroll(
                    Static("Members", classes="section-heading"),
                    Static("", id="group-members"),
                    Static("Shared Portfolios", classes="section-heading"),
                    Static("", id="group-portfolios"),
                    id="group-sidebar",
                ),
                Vertical(Static("Loading group details…", id="discussion-slot"), id="group-discussion"),
            ),
            id="group-main",
        )
        yield Footer()

    async def on_mount(self, event: Mount) -> None:
        self._apply_membership()
        await self._load_details()

    def action_back(self) -> None:
        self.app.pop_screen()

    async def action_reload(self) -> None:
        await self._load_details()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "group-back":
            self.action_back()
        elif button_id == "group-join":
            await self._run_membership_change(join=True)
        elif button_id == "group-leave":
            await self._run_membership_change(join=False)
        elif button_id == "group-share":
            await self._open_share_dialog()
        elif button_id == "group-delete":
            self.app.push_screen(
                ConfirmScreen(
                    "Delete this group? Shared portfolios, discussions and memberships are removed too.",
                    "Yes, Delete Group",
                ),
                self._on_delete_confirmed,
            )

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    async def _load_details(self) -> None:
        group_id = self._state.group.id
        try:
            is_member = await asyncio.to_thread(self._groups.is_member, group_id, self._viewer.user_id)
            members = await asyncio.to_thread(self._groups.list_members, group_id)
            shared = []
            if is_member:
                shared = await asyncio.to_thread(self._groups.list_shared_portfolios, group_id)
        except GroupsServiceError as exc:
            self._state.error = str(exc)
            self.notify(str(exc), title="Error fetching group details", severity="error")
            return

        self._state.is_member = is_member
        self._state.members = members
        self._state.shared_portfolios = shared
        self._state.error = None
        self._state.loaded = True
        if self.is_mounted:
            self.query_one("#group-members", Static).update(render_members(members))
            self.query_one("#group-portfolios", Static).update(
                render_shared_portfolios(shared) if is_member else "Join this group to see shared portfolios."
            )
            self._apply_membership()

    def _apply_membership(self) -> None:
        is_member = self._state.is_member
        self.query_one("#group-join", Button).display = not is_member
        self.query_one("#group-leave", Button).display = is_member
        self.query_one("#group-share", Button).display = is_member
        is_owner = self._state.group.created_by == self._viewer.user_id
        self.query_one("#group-delete", Button).display = is_member and is_owner

        slot = self.query_one("#group-discussion", Vertical)
        existing = slot.query(DiscussionView)
        if is_member and not existing:
            slot.query_one("#discussion-slot", Static).display = False
            slot.mount(
                DiscussionView(
                    self._state.group.id,
                    viewer=self._viewer,
                    comments_service=self._comments,
                    subscriber=self._subscriber,
                    id="discussion",
                )
            )
        elif not is_member:
            existing.remove()
            placeholder = slot.query_one("#discussion-slot", Static)
            placeholder.display = True
            if self._state.loaded:
                placeholder.update("Join this group to take part in the discussion.")

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #

    async def _run_membership_change(self, *, join: bool) -> None:
        group = self._state.group
        action = self._groups.join_group if join else self._groups.leave_group
        try:
            await asyncio.to_thread(action, group.id, self._viewer.user_id)
        except GroupsServiceError as exc:
            title = "Error joining group" if join else "Error leaving group"
            self.notify(str(exc), title=title, severity="error")
            return

        if join:
            self.notify(f"You've joined {group.name}", title="Joined group successfully")
        else:
            self.notify(f"You've left {group.name}", title="Left group successfully")
            self._state.shared_portfolios = []
        dispatch_message(self.app, GroupsChanged())
        await self._load_details()

    async def _open_share_dialog(self) -> None:
        try:
            portfolios = await asyncio.to_thread(
                self._groups.list_shareable_portfolios,
                self._viewer.user_id,
                self._state.group.id,
            )
        except GroupsServiceError as exc:
            self.notify(str(exc), title="Error loading portfolios", severity="error")
            return
        self.app.push_screen(SharePortfolioScreen(portfolios), self._on_portfolio_chosen)

    def _on_portfolio_chosen(self, portfolio_id: Optional[str]) -> None:
        if portfolio_id:
            track_task(self._share(portfolio_id), "Share portfolio", logger)

    async def _share(self, portfolio_id: str) -> None:
        try:
            await asyncio.to_thread(
                self._groups.share_portfolio,
                self._state.group.id,
                portfolio_id,
                self._viewer.user_id,
            )
        except GroupsServiceError as exc:
            self.notify(str(exc), title="Error sharing portfolio", severity="error")
            return
        self.notify("Your portfolio has been shared with the group", title="Portfolio shared successfully")
        await self._load_details()

    def _on_delete_confirmed(self, confirmed: Optional[bool]) -> None:
        if confirmed:
            track_task(self._delete(), "Delete group", logger)

    async def _delete(self) -> None:
        try:
            await asyncio.to_thread(self._groups.delete_group, self._state.group.id)
        except GroupsServiceError as exc:
            self.notify(str(exc), title="Error deleting group", severity="error")
            return
        self.notify("The group has been successfully deleted", title="Group deleted")
        dispatch_message(self.app, GroupsChanged())
        self.app.pop_screen()

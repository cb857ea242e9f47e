from __future__ import annotations

import asyncio
import logging
from typing import Optional

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.events import Mount, Unmount
from textual.reactive import reactive
from textual.widgets import Button, Input, Static

from ..auth.session import Session
from .discussion import DiscussionFeed, FeedStatus
from .display import present_comment, render_feed
from .message_utils import track_task
from .services.comments_service import CommentsService
from .services.realtime_service import RealtimeCommentSubscriber

logger = logging.getLogger(__name__)

_SEVERITIES = {"success": "information", "error": "error"}
LOADING_LABEL = "Loading comments…"


class DiscussionView(Vertical):
    """Live discussion for one group: ordered feed plus a comment input.

    The view owns its feed and realtime subscription. Changing ``group_id``
    closes the current subscription before the next one is opened, and
    unmounting closes it synchronously.
    """

    DEFAULT_CSS = """
    DiscussionView {
        height: 1fr;
        border: round #374151;
        padding: 0 1;
    }

    DiscussionView #discussion-scroll {
        height: 1fr;
    }

    DiscussionView #discussion-feed {
        padding: 1 0;
    }

    DiscussionView .discussion-actions {
        height: auto;
        align-horizontal: right;
    }
    """

    group_id: reactive[str] = reactive("", init=False)

    def __init__(
        self,
        group_id: str,
        *,
        viewer: Session,
        comments_service: CommentsService,
        subscriber: Optional[RealtimeCommentSubscriber] = None,
        id: Optional[str] = None,
    ) -> None:
        super().__init__(id=id)
        self.set_reactive(DiscussionView.group_id, group_id)
        self._viewer = viewer
        self._comments = comments_service
        self._subscriber = subscriber
        self._feed: Optional[DiscussionFeed] = None
        self._open_task: Optional[asyncio.Task] = None
        self._submitting = False

    @property
    def feed(self) -> Optional[DiscussionFeed]:
        return self._feed

    @property
    def open_task(self) -> Optional[asyncio.Task]:
        return self._open_task

    def compose(self) -> ComposeResult:
        with VerticalScroll(id="discussion-scroll"):
            yield Static(LOADING_LABEL, id="discussion-feed")
        yield Input(placeholder="Write a comment...", id="discussion-input")
        with Horizontal(classes="discussion-actions"):
            yield Button("Post Comment", id="discussion-submit", variant="primary")

    def on_mount(self, event: Mount) -> None:
        self._bind_group(self.group_id)
        # Keeps the "N minutes ago" labels current.
        self.set_interval(60, self._refresh_feed)

    def on_unmount(self, event: Unmount) -> None:
        self._release_feed()

    def watch_group_id(self, old_group_id: str, new_group_id: str) -> None:
        if self.is_mounted and old_group_id != new_group_id:
            self._bind_group(new_group_id)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "discussion-submit":
            event.stop()
            self._submit_draft()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "discussion-input":
            event.stop()
            self._submit_draft()

    # ------------------------------------------------------------------ #
    # Feed wiring
    # ------------------------------------------------------------------ #

    def _bind_group(self, group_id: str) -> None:
        self._release_feed()
        self._feed = DiscussionFeed(
            group_id,
            self._viewer,
            self._comments,
            self._subscriber,
            notify=self._notify,
            on_change=self._refresh_feed,
        )
        self._refresh_feed()
        self._open_task = track_task(self._feed.open(), f"Discussion load for group {group_id}", logger)

    def _release_feed(self) -> None:
        # The open task is left to finish; a closed feed discards its results
        # and closes any subscription that completes late.
        if self._feed is not None:
            self._feed.close()
            self._feed = None

    def _refresh_feed(self) -> None:
        feed = self._feed
        if feed is None or not self.is_mounted:
            return
        panel = self.query_one("#discussion-feed", Static)
        entries = feed.entries
        if not entries and feed.status in (FeedStatus.IDLE, FeedStatus.LOADING):
            panel.update(LOADING_LABEL)
            return
        presentations = [
            present_comment(comment, self._viewer.user_id, pending=feed.is_pending(comment.id))
            for comment in entries
        ]
        panel.update(render_feed(presentations))
        self.query_one("#discussion-scroll", VerticalScroll).scroll_end(animate=False)

    def _notify(self, kind: str, title: str, message: str) -> None:
        self.notify(message, title=title, severity=_SEVERITIES.get(kind, "information"))

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    def _submit_draft(self) -> None:
        feed = self._feed
        if feed is None or self._submitting:
            return
        draft = self.query_one("#discussion-input", Input)
        body = draft.value
        if not body.strip():
            return
        self._submitting = True
        self._set_busy(True)
        track_task(self._submit(feed, body), "Comment submission", logger)

    async def _submit(self, feed: DiscussionFeed, body: str) -> None:
        try:
            posted = await feed.submit(body)
        finally:
            self._submitting = False
            if self.is_mounted:
                self._set_busy(False)
        # A failed post keeps the draft so it can be sent again.
        if posted and self.is_mounted:
            self.query_one("#discussion-input", Input).value = ""

    def _set_busy(self, busy: bool) -> None:
        self.query_one("#discussion-input", Input).disabled = busy
        button = self.query_one("#discussion-submit", Button)
        button.disabled = busy
        button.label = "Posting..." if busy else "Post Comment"

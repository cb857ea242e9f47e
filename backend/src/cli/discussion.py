"""Reconciling view model behind a group's live discussion feed.

The feed merges three sources into one ordered, duplicate-free sequence:

* optimistic entries for the viewer's own submissions (``local-`` ids),
* the authoritative list loaded from Supabase,
* comments pushed by the realtime channel for other participants.

Entries are keyed by id. Every successful reload replaces the map with the
authoritative rows and drops all optimistic placeholders; rows confirmed by
the viewer's own insert are kept until a reload returns them, so a read that
lags the write cannot make a just-sent comment disappear.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..api.models.group_models import AuthorProfile, GroupComment
from ..auth.session import Session
from .services.comments_service import CommentsService, DiscussionError, ProfileLookupFailure
from .services.realtime_service import ChannelError, CommentSubscription, RealtimeCommentSubscriber

logger = logging.getLogger(__name__)

LOCAL_ID_PREFIX = "local-"

Notifier = Callable[[str, str, str], None]
ChangeListener = Callable[[], None]


def is_local_id(comment_id: str) -> bool:
    return comment_id.startswith(LOCAL_ID_PREFIX)


class FeedStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class Submission:
    local_id: str
    body: str
    status: SubmissionStatus = SubmissionStatus.PENDING
    comment_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class FeedEntry:
    comment: GroupComment
    sequence: int


class DiscussionFeed:
    """Ordered comment feed for one group and one viewer."""

    def __init__(
        self,
        group_id: str,
        viewer: Session,
        comments: CommentsService,
        subscriber: Optional[RealtimeCommentSubscriber] = None,
        *,
        notify: Optional[Notifier] = None,
        on_change: Optional[ChangeListener] = None,
    ) -> None:
        self.group_id = group_id
        self.viewer = viewer
        self._comments = comments
        self._subscriber = subscriber
        self._notify_fn = notify
        self._on_change = on_change

        self.status = FeedStatus.IDLE
        self.error: Optional[str] = None

        self._entries: Dict[str, FeedEntry] = {}
        self._sequence = itertools.count()
        self._submissions: Dict[str, Submission] = {}
        self._confirmed_unseen: Dict[str, GroupComment] = {}
        self._load_generation = 0
        self._subscription: Optional[CommentSubscription] = None
        self._closed = False

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def entries(self) -> List[GroupComment]:
        ordered = sorted(self._entries.values(), key=lambda entry: (entry.comment.created_at, entry.sequence))
        return [entry.comment for entry in ordered]

    @property
    def submissions(self) -> List[Submission]:
        return list(self._submissions.values())

    @property
    def subscription(self) -> Optional[CommentSubscription]:
        return self._subscription

    def is_pending(self, comment_id: str) -> bool:
        return is_local_id(comment_id)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def open(self) -> None:
        """Load the authoritative list while the live channel connects.

        A slow or retrying channel never holds back the first fetch.
        """
        if self._closed:
            return
        if self._subscriber is None:
            await self.load()
            return
        await asyncio.gather(self._subscribe(), self.load())

    async def _subscribe(self) -> None:
        try:
            subscription = await self._subscriber.subscribe(self.group_id, self.handle_remote_insert)
        except ChannelError as exc:
            logger.warning(f"Live updates unavailable for group {self.group_id}: {exc}")
            return
        if self._closed:
            subscription.close()
            return
        self._subscription = subscription

    def close(self) -> None:
        """Detach from the channel; later results from in-flight calls are discarded."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def load(self) -> bool:
        """Replace the feed with the authoritative comment list."""
        if self._closed:
            return False
        self._load_generation += 1
        generation = self._load_generation
        self.status = FeedStatus.LOADING
        self._changed()

        try:
            comments = await asyncio.to_thread(self._comments.list_comments, self.group_id)
        except DiscussionError as exc:
            if self._closed or generation != self._load_generation:
                return False
            self.status = FeedStatus.ERRORED
            self.error = str(exc)
            self._notify("error", "Error loading comments", str(exc))
            self._changed()
            return False

        if self._closed or generation != self._load_generation:
            return False
        self._replace(comments)
        self.status = FeedStatus.READY
        self.error = None
        self._changed()
        return True

    async def handle_remote_insert(self, raw: Dict[str, Any]) -> None:
        """Apply a comment pushed by the realtime channel."""
        if self._closed:
            return
        try:
            comment = GroupComment.model_validate(raw)
        except ValidationError as exc:
            logger.warning(f"Ignoring malformed realtime comment for group {self.group_id}: {exc}")
            return

        # The viewer's own comment is already shown through the optimistic path.
        if comment.user_id == self.viewer.user_id:
            return
        if comment.group_id != self.group_id or comment.id in self._entries:
            return

        profile = comment.profiles
        if profile is None:
            try:
                profile = await asyncio.to_thread(self._comments.fetch_author_profile, comment.user_id)
            except ProfileLookupFailure as exc:
                logger.warning(f"Showing comment {comment.id} without author details: {exc}")
                profile = None

        if self._closed or comment.id in self._entries:
            return
        comment = comment.model_copy(update={"profiles": profile})
        # A load already in flight may have read before this row existed.
        self._confirmed_unseen[comment.id] = comment
        self._entries[comment.id] = FeedEntry(comment, next(self._sequence))
        self._changed()

    async def submit(self, body: str) -> bool:
        """Post a comment; returns True once the store confirmed it.

        The optimistic entry is visible before the round trip starts. A
        reconciling reload always follows, whether the insert succeeded or
        not, and is what removes the placeholder.
        """
        content = (body or "").strip()
        if not content or self._closed:
            return False

        local_id = f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"
        submission = Submission(local_id=local_id, body=content)
        self._submissions[local_id] = submission
        now = datetime.now(timezone.utc)
        self._entries[local_id] = FeedEntry(
            GroupComment(
                id=local_id,
                group_id=self.group_id,
                user_id=self.viewer.user_id,
                content=content,
                created_at=now,
                updated_at=now,
                profiles=self._viewer_profile(),
            ),
            next(self._sequence),
        )
        self._changed()

        try:
            created = await asyncio.to_thread(
                self._comments.create_comment,
                self.group_id,
                self.viewer.user_id,
                content,
            )
        except DiscussionError as exc:
            submission.status = SubmissionStatus.FAILED
            submission.error = str(exc)
            if not self._closed:
                self._notify("error", "Error posting comment", str(exc))
        else:
            submission.status = SubmissionStatus.CONFIRMED
            submission.comment_id = created.id
            if created.profiles is None:
                created = created.model_copy(update={"profiles": self._viewer_profile()})
            self._confirmed_unseen[created.id] = created

        await self.load()
        return submission.status is SubmissionStatus.CONFIRMED

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _replace(self, comments: List[GroupComment]) -> None:
        fresh: Dict[str, FeedEntry] = {}
        for comment in comments:
            if comment.id in fresh:
                continue
            fresh[comment.id] = FeedEntry(comment, self._sequence_for(comment.id))

        for comment_id, comment in list(self._confirmed_unseen.items()):
            if comment_id in fresh:
                del self._confirmed_unseen[comment_id]
            else:
                fresh[comment_id] = FeedEntry(comment, self._sequence_for(comment_id))

        # Optimistic placeholders never survive a successful reload.
        self._entries = fresh
        self._submissions = {
            local_id: submission
            for local_id, submission in self._submissions.items()
            if submission.status is SubmissionStatus.PENDING
        }

    def _sequence_for(self, comment_id: str) -> int:
        previous = self._entries.get(comment_id)
        return previous.sequence if previous else next(self._sequence)

    def _viewer_profile(self) -> AuthorProfile:
        return AuthorProfile(
            id=self.viewer.user_id,
            display_name=self.viewer.display_name,
            email=self.viewer.email or None,
        )

    def _notify(self, kind: str, title: str, message: str) -> None:
        if self._notify_fn is not None:
            self._notify_fn(kind, title, message)

    def _changed(self) -> None:
        if not self._closed and self._on_change is not None:
            self._on_change()

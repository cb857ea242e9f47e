from __future__ import annotations

import asyncio
import random
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from backend.src.api.models.group_models import AuthorProfile, GroupComment
from backend.src.auth.session import Session
from backend.src.cli.discussion import (
    DiscussionFeed,
    FeedStatus,
    SubmissionStatus,
    is_local_id,
)
from backend.src.cli.display import present_comment
from backend.src.cli.services.comments_service import (
    ProfileLookupFailure,
    RemoteQueryError,
    RemoteWriteError,
)
from backend.src.cli.services.realtime_service import ChannelError

GROUP_ID = "group-1"
BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

PROFILES = {
    "viewer": {"id": "viewer", "display_name": "Vic", "email": "vic@example.com"},
    "bea": {"id": "bea", "display_name": "Bea", "email": "bea@example.com"},
    "cal": {"id": "cal", "display_name": None, "email": "cal@example.com"},
}


class FakeCommentStore:
    """In-memory stand-in for CommentsService."""

    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self.created: List[str] = []
        self.list_calls = 0
        self.fail_reads = False
        self.fail_writes = False
        self.fail_profiles = False
        self.hidden_reads = 0
        self.read_gate: Optional[threading.Event] = None
        self.write_gate: Optional[threading.Event] = None
        self._next_id = 0
        self._lock = threading.Lock()

    def add_row(self, user_id: str, content: str, group_id: str = GROUP_ID) -> Dict[str, Any]:
        with self._lock:
            self._next_id += 1
            row = {
                "id": f"c{self._next_id}",
                "group_id": group_id,
                "user_id": user_id,
                "content": content,
                "created_at": (BASE_TIME + timedelta(seconds=self._next_id)).isoformat(),
            }
            self.rows.append(row)
        return row

    def list_comments(self, group_id: str) -> List[GroupComment]:
        self.list_calls += 1
        if self.read_gate is not None:
            self.read_gate.wait(timeout=5)
        if self.fail_reads:
            raise RemoteQueryError("Failed to load comments: network down")
        rows = [row for row in self.rows if row["group_id"] == group_id]
        if self.hidden_reads:
            # Simulates a read replica that has not seen the latest insert yet.
            self.hidden_reads -= 1
            rows = [row for row in rows if row["id"] not in self.created[-1:]]
        return [
            GroupComment.model_validate({**row, "profiles": PROFILES.get(row["user_id"])})
            for row in rows
        ]

    def create_comment(self, group_id: str, author_id: str, body: str) -> GroupComment:
        if self.write_gate is not None:
            self.write_gate.wait(timeout=5)
        if self.fail_writes:
            raise RemoteWriteError("Failed to post comment: permission denied")
        row = self.add_row(author_id, body.strip(), group_id)
        self.created.append(row["id"])
        return GroupComment.model_validate(row)

    def fetch_author_profile(self, author_id: str) -> Optional[AuthorProfile]:
        if self.fail_profiles:
            raise ProfileLookupFailure("profile service unavailable")
        profile = PROFILES.get(author_id)
        return AuthorProfile.model_validate(profile) if profile else None


class FakeSubscription:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeSubscriber:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[str] = []
        self.handler = None
        self.subscriptions: List[FakeSubscription] = []

    async def subscribe(self, group_id, on_insert):
        self.calls.append(group_id)
        if self.fail:
            raise ChannelError("realtime disabled")
        self.handler = on_insert
        subscription = FakeSubscription()
        self.subscriptions.append(subscription)
        return subscription


@pytest.fixture
def viewer() -> Session:
    return Session(user_id="viewer", email="vic@example.com", access_token="token", display_name="Vic")


@pytest.fixture
def store() -> FakeCommentStore:
    return FakeCommentStore()


@pytest.fixture
def notifications() -> List[tuple]:
    return []


@pytest.fixture
def feed(viewer, store, notifications) -> DiscussionFeed:
    return DiscussionFeed(
        GROUP_ID,
        viewer,
        store,
        FakeSubscriber(),
        notify=lambda kind, title, message: notifications.append((kind, title, message)),
    )


async def _wait_for(condition, attempts: int = 200) -> None:
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not reached")


def _ids(feed: DiscussionFeed) -> List[str]:
    return [comment.id for comment in feed.entries]


@pytest.mark.asyncio
async def test_open_on_empty_group_is_ready_and_empty(feed):
    await feed.open()

    assert feed.status is FeedStatus.READY
    assert feed.entries == []
    assert feed.subscription is not None


@pytest.mark.asyncio
async def test_open_loads_comments_in_creation_order(feed, store):
    store.add_row("bea", "first")
    store.add_row("cal", "second")
    store.rows.reverse()

    await feed.open()

    assert [comment.content for comment in feed.entries] == ["first", "second"]


@pytest.mark.asyncio
async def test_open_loads_without_waiting_for_slow_channel(viewer, store):
    store.add_row("bea", "hello")
    gate = asyncio.Event()

    class SlowSubscriber(FakeSubscriber):
        async def subscribe(self, group_id, on_insert):
            await gate.wait()
            return await super().subscribe(group_id, on_insert)

    subscriber = SlowSubscriber()
    feed = DiscussionFeed(GROUP_ID, viewer, store, subscriber)
    task = asyncio.create_task(feed.open())

    await _wait_for(lambda: feed.status is FeedStatus.READY)
    assert store.list_calls == 1
    assert _ids(feed) == ["c1"]
    assert feed.subscription is None

    gate.set()
    await task

    assert feed.subscription is subscriber.subscriptions[0]
    assert feed.status is FeedStatus.READY


@pytest.mark.asyncio
async def test_push_during_initial_load_survives_stale_snapshot(viewer, store):
    store.read_gate = threading.Event()
    subscriber = FakeSubscriber()
    feed = DiscussionFeed(GROUP_ID, viewer, store, subscriber)
    task = asyncio.create_task(feed.open())
    await _wait_for(lambda: store.list_calls == 1 and subscriber.handler is not None)

    # The fetch snapshot predates this row.
    await subscriber.handler(
        {"id": "c-live", "group_id": GROUP_ID, "user_id": "bea", "content": "racing", "created_at": BASE_TIME.isoformat()}
    )
    store.read_gate.set()
    await task

    assert _ids(feed) == ["c-live"]


@pytest.mark.asyncio
async def test_channel_failure_still_loads_comments(viewer, store):
    store.add_row("bea", "hello")
    feed = DiscussionFeed(GROUP_ID, viewer, store, FakeSubscriber(fail=True))

    await feed.open()

    assert feed.subscription is None
    assert feed.status is FeedStatus.READY
    assert _ids(feed) == ["c1"]


@pytest.mark.asyncio
async def test_read_failure_on_mount_reports_error_and_keeps_state(feed, store, notifications):
    store.fail_reads = True

    await feed.open()

    assert feed.status is FeedStatus.ERRORED
    assert feed.entries == []
    assert notifications == [("error", "Error loading comments", "Failed to load comments: network down")]


@pytest.mark.asyncio
async def test_failed_reload_keeps_previous_entries(feed, store):
    store.add_row("bea", "hello")
    await feed.open()
    store.fail_reads = True

    assert await feed.load() is False

    assert _ids(feed) == ["c1"]
    assert feed.status is FeedStatus.ERRORED


@pytest.mark.asyncio
async def test_blank_submission_is_ignored(feed, store):
    await feed.open()
    changes = []
    feed._on_change = lambda: changes.append(True)

    assert await feed.submit("   \n\t") is False
    assert await feed.submit("") is False

    assert store.created == []
    assert feed.entries == []
    assert feed.submissions == []
    assert changes == []


@pytest.mark.asyncio
async def test_optimistic_entry_is_visible_before_confirmation(feed, store):
    await feed.open()
    store.write_gate = threading.Event()

    task = asyncio.create_task(feed.submit("Hello team"))
    await _wait_for(lambda: len(feed.entries) == 1)

    pending = feed.entries[0]
    assert is_local_id(pending.id)
    assert feed.is_pending(pending.id)
    assert pending.profiles.display_name == "Vic"
    assert feed.submissions[0].status is SubmissionStatus.PENDING

    store.write_gate.set()
    assert await task is True

    assert _ids(feed) == ["c1"]
    assert feed.submissions == []


@pytest.mark.asyncio
async def test_successful_submission_leaves_single_authoritative_entry(feed, store):
    await feed.open()

    assert await feed.submit("  Ship it  ") is True

    entries = feed.entries
    assert len(entries) == 1
    assert entries[0].id == "c1"
    assert entries[0].content == "Ship it"
    assert not any(is_local_id(comment.id) for comment in entries)


@pytest.mark.asyncio
async def test_confirmed_comment_survives_lagging_reload(feed, store):
    await feed.open()
    store.hidden_reads = 1

    assert await feed.submit("just sent") is True

    assert _ids(feed) == ["c1"]
    store.hidden_reads = 0
    await feed.load()
    assert _ids(feed) == ["c1"]


@pytest.mark.asyncio
async def test_failed_submission_notifies_and_clears_placeholder(feed, store, notifications):
    store.add_row("bea", "existing")
    await feed.open()
    store.fail_writes = True

    assert await feed.submit("will fail") is False

    assert notifications == [("error", "Error posting comment", "Failed to post comment: permission denied")]
    assert _ids(feed) == ["c1"]
    assert feed.submissions == []


@pytest.mark.asyncio
async def test_failed_submission_placeholder_waits_for_successful_reload(feed, store):
    await feed.open()
    store.fail_writes = True
    store.fail_reads = True

    await feed.submit("offline")

    assert len(feed.entries) == 1
    assert is_local_id(feed.entries[0].id)
    assert feed.submissions[0].status is SubmissionStatus.FAILED

    store.fail_reads = False
    await feed.load()
    assert feed.entries == []


@pytest.mark.asyncio
async def test_remote_insert_from_other_participant_is_appended(feed, store):
    await feed.open()
    row = store.add_row("bea", "Hi from Bea")

    await feed.handle_remote_insert(row)

    assert _ids(feed) == ["c1"]
    assert feed.entries[0].profiles.display_name == "Bea"


@pytest.mark.asyncio
async def test_remote_insert_with_failed_profile_lookup_is_anonymous(feed, store, viewer):
    await feed.open()
    store.fail_profiles = True
    row = store.add_row("bea", "Who am I?")

    await feed.handle_remote_insert(row)

    assert len(feed.entries) == 1
    presentation = present_comment(feed.entries[0], viewer.user_id)
    assert presentation.display_name == "Anonymous User"
    assert presentation.initials == "AN"


@pytest.mark.asyncio
async def test_viewer_push_never_duplicates_optimistic_entry(feed, store):
    await feed.open()
    store.write_gate = threading.Event()

    task = asyncio.create_task(feed.submit("mine"))
    await _wait_for(lambda: len(feed.entries) == 1)
    store.write_gate.set()
    await _wait_for(lambda: bool(store.created))
    await feed.handle_remote_insert(dict(store.rows[-1]))
    await task

    assert _ids(feed) == ["c1"]


@pytest.mark.asyncio
async def test_duplicate_and_foreign_group_pushes_are_ignored(feed, store):
    row = store.add_row("bea", "hello")
    await feed.open()

    await feed.handle_remote_insert(row)
    await feed.handle_remote_insert({**row, "id": "c99", "group_id": "other-group"})
    await feed.handle_remote_insert({"id": "broken"})

    assert _ids(feed) == ["c1"]


@pytest.mark.asyncio
async def test_close_during_fetch_discards_results(feed, store):
    store.add_row("bea", "late arrival")
    store.read_gate = threading.Event()
    changes = []
    feed._on_change = lambda: changes.append(feed.status)

    task = asyncio.create_task(feed.open())
    await _wait_for(lambda: store.list_calls == 1)
    subscription = feed.subscription
    changes.clear()

    feed.close()
    store.read_gate.set()
    await task

    assert feed.closed
    assert subscription.closed
    assert feed.entries == []
    assert changes == []


@pytest.mark.asyncio
async def test_close_during_subscribe_closes_late_subscription(viewer, store):
    gate = asyncio.Event()

    class SlowSubscriber(FakeSubscriber):
        async def subscribe(self, group_id, on_insert):
            await gate.wait()
            return await super().subscribe(group_id, on_insert)

    subscriber = SlowSubscriber()
    feed = DiscussionFeed(GROUP_ID, viewer, store, subscriber)
    task = asyncio.create_task(feed.open())
    await asyncio.sleep(0)

    feed.close()
    gate.set()
    await task

    assert subscriber.subscriptions[0].closed
    assert feed.subscription is None
    assert feed.entries == []


@pytest.mark.asyncio
async def test_stale_reload_is_discarded(feed, store):
    await feed.open()
    store.add_row("bea", "one")
    store.read_gate = threading.Event()

    stale = asyncio.create_task(feed.load())
    await _wait_for(lambda: store.list_calls == 2)
    store.add_row("cal", "two")
    fresh = asyncio.create_task(feed.load())
    await _wait_for(lambda: store.list_calls == 3)
    store.read_gate.set()

    assert await fresh is True
    assert await stale is False
    assert _ids(feed) == ["c1", "c2"]


@pytest.mark.asyncio
async def test_link_submission_renders_the_same_before_and_after_reload(feed, store, viewer):
    await feed.open()
    store.write_gate = threading.Event()

    task = asyncio.create_task(feed.submit("Check https://example.com out"))
    await _wait_for(lambda: len(feed.entries) == 1)
    optimistic = present_comment(feed.entries[0], viewer.user_id, pending=True)
    store.write_gate.set()
    await task
    confirmed = present_comment(feed.entries[0], viewer.user_id)

    expected = [("Check ", False), ("https://example.com", True), (" out", False)]
    assert [(segment.text, segment.is_link) for segment in optimistic.segments] == expected
    assert confirmed.segments == optimistic.segments
    assert confirmed.is_viewer_authored
    assert not is_local_id(confirmed.comment_id)


@pytest.mark.asyncio
async def test_closed_feed_ignores_pushes_and_submissions(feed, store):
    await feed.open()
    feed.close()

    await feed.handle_remote_insert(store.add_row("bea", "too late"))

    assert await feed.submit("after close") is False
    assert feed.entries == []
    assert store.created == []


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [3, 17, 2025])
async def test_random_interleavings_converge_to_store(viewer, seed):
    rng = random.Random(seed)
    store = FakeCommentStore()
    feed = DiscussionFeed(GROUP_ID, viewer, store, FakeSubscriber())
    await feed.open()

    pending = []
    for step in range(30):
        action = rng.choice(["submit", "push", "reload", "fail"])
        if action == "submit":
            pending.append(asyncio.create_task(feed.submit(f"viewer message {step}")))
        elif action == "fail":
            store.fail_writes = True
            await feed.submit(f"lost message {step}")
            store.fail_writes = False
        elif action == "push":
            author = rng.choice(["bea", "cal"])
            await feed.handle_remote_insert(store.add_row(author, f"{author} says {step}"))
        else:
            await feed.load()
        if rng.random() < 0.5:
            await asyncio.sleep(0)

    await asyncio.gather(*pending)
    await feed.load()

    ids = _ids(feed)
    assert len(ids) == len(set(ids))
    assert set(ids) == {row["id"] for row in store.rows}
    assert not any(is_local_id(comment_id) for comment_id in ids)
    timestamps = [comment.created_at for comment in feed.entries]
    assert timestamps == sorted(timestamps)

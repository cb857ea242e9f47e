from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from rich.console import Group as RenderGroup
from rich.console import RenderableType
from rich.style import Style
from rich.text import Text

from ..api.models.group_models import AuthorProfile, GroupComment, GroupMember, SharedPortfolio

ANONYMOUS_LABEL = "Anonymous User"
URL_PATTERN = re.compile(r"(https?://[^\s]+)")

LINK_STYLE = "underline bright_blue"
VIEWER_STYLE = "bold #93c5fd"
OTHER_STYLE = "bold #e5e7eb"
MUTED_STYLE = "#9ca3af"


@dataclass(frozen=True)
class BodySegment:
    text: str
    is_link: bool = False


@dataclass(frozen=True)
class CommentPresentation:
    comment_id: str
    display_name: str
    initials: str
    is_viewer_authored: bool
    relative_timestamp: str
    segments: tuple[BodySegment, ...]
    pending: bool = False


def author_label(profile: Optional[AuthorProfile]) -> str:
    """Display name, else the local part of the email, else a fixed label."""
    if profile is None:
        return ANONYMOUS_LABEL
    if profile.display_name:
        return profile.display_name
    if profile.email:
        local_part = profile.email.split("@")[0]
        if local_part:
            return local_part
    return ANONYMOUS_LABEL


def initials_for(label: str) -> str:
    return label[:2].upper()


def link_segments(body: str) -> List[BodySegment]:
    """Split a body into literal text and http(s) link segments, whitespace intact."""
    parts = URL_PATTERN.split(body)
    # re.split with one capture group alternates text, link, text, ...
    return [BodySegment(part, is_link=index % 2 == 1) for index, part in enumerate(parts) if part]


def format_relative(moment: datetime, now: Optional[datetime] = None) -> str:
    """Describe how long ago ``moment`` was, e.g. ``about 3 hours ago``."""
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    seconds = max((now - moment).total_seconds(), 0.0)
    minutes = round(seconds / 60)

    if minutes < 1:
        distance = "less than a minute"
    elif minutes < 2:
        distance = "1 minute"
    elif minutes < 45:
        distance = f"{minutes} minutes"
    elif minutes < 90:
        distance = "about 1 hour"
    elif minutes < 1440:
        distance = f"about {round(minutes / 60)} hours"
    elif minutes < 2520:
        distance = "1 day"
    elif minutes < 43200:
        distance = f"{round(minutes / 1440)} days"
    elif minutes < 86400:
        months = round(minutes / 43200)
        distance = "about 1 month" if months == 1 else f"about {months} months"
    else:
        months = int(minutes // 43200)
        if months < 12:
            distance = f"{months} months"
        else:
            years, remainder = divmod(months, 12)
            if remainder < 3:
                distance = "about 1 year" if years == 1 else f"about {years} years"
            elif remainder < 9:
                distance = f"over {years} year" + ("s" if years > 1 else "")
            else:
                distance = f"almost {years + 1} years"
    return f"{distance} ago"


def present_comment(
    comment: GroupComment,
    viewer_id: Optional[str],
    *,
    now: Optional[datetime] = None,
    pending: bool = False,
) -> CommentPresentation:
    label = author_label(comment.profiles)
    return CommentPresentation(
        comment_id=comment.id,
        display_name=label,
        initials=initials_for(label),
        is_viewer_authored=bool(viewer_id) and comment.user_id == viewer_id,
        relative_timestamp=format_relative(comment.created_at, now),
        segments=tuple(link_segments(comment.content)),
        pending=pending,
    )


def render_comment(presentation: CommentPresentation) -> Text:
    """Build the rich text block for one comment bubble."""
    name_style = VIEWER_STYLE if presentation.is_viewer_authored else OTHER_STYLE
    text = Text()
    text.append(f"[{presentation.initials}] ", style=MUTED_STYLE)
    text.append(presentation.display_name, style=name_style)
    text.append(f"  {presentation.relative_timestamp}", style=MUTED_STYLE)
    if presentation.pending:
        text.append("  sending…", style=f"italic {MUTED_STYLE}")
    text.append("\n")
    for segment in presentation.segments:
        if segment.is_link:
            text.append(segment.text, style=Style.parse(LINK_STYLE) + Style(link=segment.text))
        else:
            text.append(segment.text)
    if presentation.is_viewer_authored:
        text.justify = "right"
    return text


def render_feed(presentations: Sequence[CommentPresentation]) -> RenderableType:
    if not presentations:
        return Text(
            "No comments yet.\nBe the first to start the discussion!",
            style=MUTED_STYLE,
            justify="center",
        )
    blocks: List[RenderableType] = []
    for index, presentation in enumerate(presentations):
        if index:
            blocks.append(Text(""))
        blocks.append(render_comment(presentation))
    return RenderGroup(*blocks)


def render_members(members: Iterable[GroupMember]) -> str:
    names = [author_label(member.profiles) for member in members]
    if not names:
        return "No members yet."
    return "\n".join(f"• {name}" for name in names)


def render_shared_portfolios(shared: Iterable[SharedPortfolio], now: Optional[datetime] = None) -> str:
    lines = []
    for item in shared:
        title = item.portfolios.title if item.portfolios else item.portfolio_id
        if item.shared_at is not None:
            title = f"{title}  (shared {format_relative(item.shared_at, now)})"
        lines.append(f"• {title}")
    if not lines:
        return "No portfolios shared yet."
    return "\n".join(lines)

"""Read and write group discussion comments stored in Supabase."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from supabase import Client, create_client

from ...api.models.group_models import AuthorProfile, GroupComment
from ...config.settings import ConfigurationError, SupabaseSettings

logger = logging.getLogger(__name__)

COMMENTS_TABLE = "group_comments"
PROFILES_TABLE = "profiles"

# Embeds the author row through the user_id foreign key.
COMMENT_SELECT = "*, profiles:user_id (id, display_name, email)"


class DiscussionError(Exception):
    """Base error for the group discussion component."""


class RemoteQueryError(DiscussionError):
    """Raised when reading comments fails (network, permission, bad filter)."""


class RemoteWriteError(DiscussionError):
    """Raised when a comment cannot be created."""


class ProfileLookupFailure(DiscussionError):
    """Raised when an author profile lookup fails for reasons other than not-found."""


class CommentsService:
    """Typed accessor for the ``group_comments`` table."""

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        *,
        client: Optional[Client] = None,
    ) -> None:
        if client is not None:
            self.client = client
            return

        try:
            settings = SupabaseSettings.from_env(supabase_url, supabase_key, prefer_anon=True)
        except ConfigurationError as exc:
            raise RemoteQueryError(str(exc)) from exc

        try:
            self.client = create_client(settings.url, settings.key)
        except Exception as exc:
            raise RemoteQueryError(f"Failed to initialize Supabase client: {exc}") from exc

    def apply_access_token(self, token: Optional[str]) -> None:
        """Attach the viewer's access token so row level security applies."""
        if token:
            self.client.postgrest.auth(token)

    def list_comments(self, group_id: str) -> List[GroupComment]:
        """Return every comment of a group with its author, oldest first."""
        try:
            response = (
                self.client.table(COMMENTS_TABLE)
                .select(COMMENT_SELECT)
                .eq("group_id", group_id)
                .order("created_at")
                .execute()
            )
        except Exception as exc:
            logger.error(f"Failed to load comments for group {group_id}: {exc}")
            raise RemoteQueryError(f"Failed to load comments: {exc}") from exc

        rows = response.data or []
        try:
            return [GroupComment.model_validate(row) for row in rows]
        except ValidationError as exc:
            raise RemoteQueryError(f"Malformed comment returned by Supabase: {exc}") from exc

    def create_comment(self, group_id: str, author_id: str, body: str) -> GroupComment:
        """Persist a comment and return the stored row."""
        content = (body or "").strip()
        if not content:
            raise RemoteWriteError("Comment cannot be empty.")

        payload: Dict[str, Any] = {
            "group_id": group_id,
            "user_id": author_id,
            "content": content,
        }
        try:
            response = self.client.table(COMMENTS_TABLE).insert(payload).execute()
        except Exception as exc:
            logger.error(f"Failed to create comment in group {group_id}: {exc}")
            raise RemoteWriteError(f"Failed to post comment: {exc}") from exc

        if not response.data:
            raise RemoteWriteError("Supabase did not return the saved comment.")
        try:
            return GroupComment.model_validate(response.data[0])
        except ValidationError as exc:
            raise RemoteWriteError(f"Malformed comment returned by Supabase: {exc}") from exc

    def fetch_author_profile(self, author_id: str) -> Optional[AuthorProfile]:
        """Best-effort profile lookup; a missing profile is ``None``, not an error."""
        try:
            response = (
                self.client.table(PROFILES_TABLE)
                .select("id, display_name, email")
                .eq("id", author_id)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            raise ProfileLookupFailure(f"Failed to load profile {author_id}: {exc}") from exc

        if not response.data:
            return None
        try:
            return AuthorProfile.model_validate(response.data[0])
        except ValidationError as exc:
            raise ProfileLookupFailure(f"Malformed profile {author_id}: {exc}") from exc

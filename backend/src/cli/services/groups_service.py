"""Service for groups, memberships and portfolios shared inside a group."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from supabase import Client, create_client

from ...api.models.group_models import Group, GroupCreate, GroupMember, Portfolio, SharedPortfolio
from ...config.settings import ConfigurationError, SupabaseSettings

logger = logging.getLogger(__name__)

GROUPS_TABLE = "groups"
MEMBERS_TABLE = "group_members"
SHARED_TABLE = "group_portfolios"
PORTFOLIOS_TABLE = "portfolios"

MEMBER_SELECT = "*, profiles:user_id (id, display_name, email)"
SHARED_SELECT = (
    "id, group_id, portfolio_id, shared_by, shared_at, "
    "portfolios (id, title, description, content, user_id, created_at, updated_at)"
)


class GroupsServiceError(Exception):
    """Raised when group operations fail."""


class GroupsService:
    """Manage groups, members and shared portfolios in Supabase."""

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
            raise GroupsServiceError(str(exc)) from exc

        try:
            self.client = create_client(settings.url, settings.key)
        except Exception as exc:
            raise GroupsServiceError(f"Failed to initialize Supabase client: {exc}") from exc

    def apply_access_token(self, token: Optional[str]) -> None:
        if token:
            self.client.postgrest.auth(token)

    # ------------------------------------------------------------------ #
    # Groups
    # ------------------------------------------------------------------ #

    def list_groups(self) -> List[Group]:
        try:
            response = self.client.table(GROUPS_TABLE).select("*").order("created_at", desc=True).execute()
            return [Group.model_validate(row) for row in response.data or []]
        except Exception as exc:
            raise GroupsServiceError(f"Failed to load groups: {exc}") from exc

    def get_group(self, group_id: str) -> Optional[Group]:
        try:
            response = self.client.table(GROUPS_TABLE).select("*").eq("id", group_id).limit(1).execute()
        except Exception as exc:
            raise GroupsServiceError(f"Failed to load group {group_id}: {exc}") from exc
        if not response.data:
            return None
        return self._validate(Group, response.data[0])

    def create_group(self, user_id: str, group: GroupCreate) -> Group:
        """Create a group and join its creator as the first member."""
        payload: Dict[str, Any] = {
            "name": group.name,
            "description": group.description,
            "cover_image": group.cover_image,
            "created_by": user_id,
        }
        try:
            response = self.client.table(GROUPS_TABLE).insert(payload).execute()
        except Exception as exc:
            raise GroupsServiceError(f"Failed to create group: {exc}") from exc
        if not response.data:
            raise GroupsServiceError("Supabase did not return the created group.")

        created = self._validate(Group, response.data[0])
        self.join_group(created.id, user_id)
        logger.info(f"Group {created.id} created by {user_id}")
        return created

    def delete_group(self, group_id: str) -> bool:
        try:
            response = self.client.table(GROUPS_TABLE).delete().eq("id", group_id).execute()
        except Exception as exc:
            raise GroupsServiceError(f"Failed to delete group {group_id}: {exc}") from exc
        return bool(response.data)

    # ------------------------------------------------------------------ #
    # Membership
    # ------------------------------------------------------------------ #

    def is_member(self, group_id: str, user_id: str) -> bool:
        try:
            response = (
                self.client.table(MEMBERS_TABLE)
                .select("id")
                .eq("group_id", group_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as exc:
            raise GroupsServiceError(f"Failed to check membership: {exc}") from exc
        return bool(response.data)

    def join_group(self, group_id: str, user_id: str) -> None:
        try:
            self.client.table(MEMBERS_TABLE).insert({"group_id": group_id, "user_id": user_id}).execute()
        except Exception as exc:
            raise GroupsServiceError(f"Failed to join group: {exc}") from exc

    def leave_group(self, group_id: str, user_id: str) -> None:
        try:
            self.client.table(MEMBERS_TABLE).delete().eq("group_id", group_id).eq("user_id", user_id).execute()
        except Exception as exc:
            raise GroupsServiceError(f"Failed to leave group: {exc}") from exc

    def list_members(self, group_id: str) -> List[GroupMember]:
        try:
            response = self.client.table(MEMBERS_TABLE).select(MEMBER_SELECT).eq("group_id", group_id).execute()
        except Exception as exc:
            raise GroupsServiceError(f"Failed to load members: {exc}") from exc
        return [self._validate(GroupMember, row) for row in response.data or []]

    # ------------------------------------------------------------------ #
    # Shared portfolios
    # ------------------------------------------------------------------ #

    def list_shared_portfolios(self, group_id: str) -> List[SharedPortfolio]:
        try:
            response = self.client.table(SHARED_TABLE).select(SHARED_SELECT).eq("group_id", group_id).execute()
        except Exception as exc:
            raise GroupsServiceError(f"Failed to load shared portfolios: {exc}") from exc
        return [self._validate(SharedPortfolio, row) for row in response.data or []]

    def list_shareable_portfolios(self, user_id: str, group_id: str) -> List[Portfolio]:
        """Return the user's portfolios that are not yet shared in the group."""
        try:
            owned = self.client.table(PORTFOLIOS_TABLE).select("*").eq("user_id", user_id).execute()
            shared = self.client.table(SHARED_TABLE).select("portfolio_id").eq("group_id", group_id).execute()
        except Exception as exc:
            raise GroupsServiceError(f"Failed to load portfolios: {exc}") from exc

        shared_ids = {str(row.get("portfolio_id")) for row in shared.data or []}
        portfolios = [self._validate(Portfolio, row) for row in owned.data or []]
        return [portfolio for portfolio in portfolios if portfolio.id not in shared_ids]

    def share_portfolio(self, group_id: str, portfolio_id: str, user_id: str) -> SharedPortfolio:
        payload = {
            "group_id": group_id,
            "portfolio_id": portfolio_id,
            "shared_by": user_id,
            "shared_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = self.client.table(SHARED_TABLE).insert(payload).execute()
        except Exception as exc:
            raise GroupsServiceError(f"Failed to share portfolio: {exc}") from exc
        if not response.data:
            raise GroupsServiceError("Supabase did not return the shared portfolio.")
        return self._validate(SharedPortfolio, response.data[0])

    @staticmethod
    def _validate(model: Any, row: Dict[str, Any]) -> Any:
        try:
            return model.model_validate(row)
        except ValidationError as exc:
            raise GroupsServiceError(f"Malformed {model.__name__} returned by Supabase: {exc}") from exc

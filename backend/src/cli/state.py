from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from ..api.models.group_models import Group, GroupMember, SharedPortfolio
from ..auth.session import Session, SupabaseAuth
from ..config.settings import DEFAULT_SESSION_PATH


@dataclass
class SessionState:
    session_path: Path = field(default_factory=lambda: DEFAULT_SESSION_PATH)
    session: Optional[Session] = None
    last_email: str = ""
    auth: Optional[SupabaseAuth] = None
    auth_error: Optional[str] = None
    login_task: Optional[asyncio.Task[Any]] = None


@dataclass
class GroupsState:
    """Group list shown on the main screen."""
    groups: List[Group] = field(default_factory=list)
    error: Optional[str] = None
    task: Optional[asyncio.Task[Any]] = None


@dataclass
class GroupDetailState:
    group: Optional[Group] = None
    is_member: bool = False
    members: List[GroupMember] = field(default_factory=list)
    shared_portfolios: List[SharedPortfolio] = field(default_factory=list)
    error: Optional[str] = None
    loaded: bool = False

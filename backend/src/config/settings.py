"""Environment-driven settings for the Supabase-backed services."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SESSION_PATH = Path.home() / ".portfolio_groups_session.json"
DEFAULT_LOG_PATH = Path.home() / ".portfolio_groups.log"


class ConfigurationError(Exception):
    """Raised when required configuration values are missing."""


@dataclass(frozen=True)
class SupabaseSettings:
    url: str
    key: str

    @classmethod
    def from_env(
        cls,
        url: Optional[str] = None,
        key: Optional[str] = None,
        *,
        prefer_anon: bool = False,
    ) -> "SupabaseSettings":
        """Resolve Supabase credentials, explicit arguments first.

        Server-side code prefers the service role key; the terminal client
        passes ``prefer_anon`` so row level security applies to the viewer.
        """
        resolved_url = url or os.getenv("SUPABASE_URL")
        if prefer_anon:
            candidates = ("SUPABASE_ANON_KEY", "SUPABASE_KEY", "SUPABASE_SERVICE_ROLE_KEY")
        else:
            candidates = ("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY", "SUPABASE_ANON_KEY")
        resolved_key = key
        if not resolved_key:
            for name in candidates:
                resolved_key = os.getenv(name)
                if resolved_key:
                    break

        if not resolved_url or not resolved_key:
            raise ConfigurationError("Supabase credentials not configured. Set SUPABASE_URL and SUPABASE_KEY.")
        return cls(url=resolved_url.rstrip("/"), key=resolved_key)

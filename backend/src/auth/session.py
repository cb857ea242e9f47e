from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ..config.settings import ConfigurationError, SupabaseSettings


AUTH_SIGNUP_PATH = "/auth/v1/signup"
AUTH_TOKEN_PATH = "/auth/v1/token?grant_type=password"


class AuthError(Exception):
    """Raised when authentication with Supabase fails."""


@dataclass
class Session:
    """Represents an authenticated Supabase session.

    The session doubles as the viewer identity handed to the discussion
    view model, so it carries the profile fields used for optimistic entries.
    """

    user_id: str
    email: str
    access_token: str
    refresh_token: Optional[str] = None
    display_name: Optional[str] = None


class SupabaseAuth:
    """Thin wrapper around Supabase REST auth endpoints."""

    def __init__(self, *, url: Optional[str] = None, anon_key: Optional[str] = None):
        try:
            settings = SupabaseSettings.from_env(url, anon_key, prefer_anon=True)
        except ConfigurationError as exc:
            raise AuthError("Supabase credentials missing. Set SUPABASE_URL and SUPABASE_ANON_KEY.") from exc
        self.base_url = settings.url
        self.anon_key = settings.key

    def signup(self, email: str, password: str, display_name: Optional[str] = None) -> Session:
        """Create a new user account and return a valid session."""
        payload: Dict[str, Any] = {"email": email, "password": password}
        if display_name:
            payload["data"] = {"display_name": display_name}
        self._post(AUTH_SIGNUP_PATH, payload)
        # Supabase may not auto-return a session after signup, so perform a login.
        return self.login(email, password)

    def login(self, email: str, password: str) -> Session:
        """Authenticate a user and return a session."""
        payload = self._post(AUTH_TOKEN_PATH, {"email": email, "password": password})
        access_token = payload.get("access_token")
        user = payload.get("user") or {}
        user_id = user.get("id")
        if not access_token or not user_id:
            raise AuthError("Incomplete response from Supabase during login.")
        metadata = user.get("user_metadata") or {}
        return Session(
            user_id=user_id,
            email=user.get("email", email),
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            display_name=metadata.get("display_name") or None,
        )

    def _post(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "apikey": self.anon_key,
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(
                f"{self.base_url}{path}",
                headers=headers,
                data=json.dumps(data),
                timeout=20,
            )
        except requests.RequestException as exc:
            raise AuthError(f"Unable to reach Supabase: {exc}") from exc
        if response.status_code >= 400:
            try:
                details = response.json()
            except ValueError:
                details = response.text
            raise AuthError(f"Supabase error {response.status_code}: {details}")
        if not response.text:
            return {}
        return response.json()

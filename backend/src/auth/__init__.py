# Authentication module.
# Wraps the Supabase auth REST endpoints and exposes the signed-in session
# that identifies the current viewer.

from .session import AuthError, Session, SupabaseAuth

__all__ = ["AuthError", "Session", "SupabaseAuth"]

# Sessions Module - Session Authority
#
# Opaque tokens carrying two flags: account authenticated, vault unlocked.

from .session_authority import SessionAuthority, SessionState

__all__ = ["SessionAuthority", "SessionState"]

# API Security - Session token extraction and error translation
#
# Every caller identifies its session with the X-Session-Token header. The
# token is only read here; VaultService validates it, so expiry and locking
# are enforced in one place for HTTP and in-process callers alike.

from typing import Optional

from fastapi import Header, HTTPException

from ..errors import VaultError


async def session_token(x_session_token: Optional[str] = Header(None)) -> Optional[str]:
    """
    FastAPI dependency returning the caller's session token, if any.

    Missing tokens are not rejected here: anonymous routes (session info,
    logout) accept them, and every guarded service call raises
    NotAuthenticated for them.
    """
    return x_session_token


def http_error(error: VaultError) -> HTTPException:
    """
    Translate a vault error into the HTTP response the API answers with.

    Only the class's public message leaves the server, unless the error is
    marked as safe to expose (e.g. the minimum-length hint of WeakSecret).
    """
    detail = str(error) if error.expose_detail else error.public_message
    return HTTPException(status_code=error.status_code, detail=detail)

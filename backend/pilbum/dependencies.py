"""
Pilbum Backend — Request Dependencies
=======================================

What:  FastAPI dependencies that read the session cookie and gate routes.
How:   Routes declare `session: SessionData = Depends(require_login)` (or
       require_admin); failures raise our exceptions, which the global
       handlers turn into 401/403 JSON responses.
"""

from typing import Optional

from fastapi import Depends, Request

from pilbum.config import settings
from pilbum.exceptions import AuthenticationError, PermissionDeniedError
from pilbum.services.auth_service import SessionData, decode_session


async def get_optional_session(request: Request) -> Optional[SessionData]:
    """The caller's session, or None for anonymous visitors."""
    return decode_session(request.cookies.get(settings.session_cookie_name))


async def require_login(
    session: Optional[SessionData] = Depends(get_optional_session),
) -> SessionData:
    if session is None:
        raise AuthenticationError()
    return session


async def require_admin(session: SessionData = Depends(require_login)) -> SessionData:
    if not session.is_admin:
        raise PermissionDeniedError()
    return session

"""
Shared dependencies for API routes.

Provides FastAPI dependency injection for the ImSession the application
shell registers at start-up.
"""

from typing import Optional

from fastapi import HTTPException

from chat_directory.core.session import ImSession


_SESSION: Optional[ImSession] = None


def set_session(session: Optional[ImSession]) -> None:
    """Register the session the routes operate on."""
    global _SESSION
    _SESSION = session


def get_session() -> ImSession:
    """Get the registered ImSession.

    Raises:
        HTTPException: If no session is registered or no user is logged in
    """
    if _SESSION is None:
        raise HTTPException(status_code=503, detail="Session not started.")
    if _SESSION.user is None:
        raise HTTPException(status_code=401, detail="No user is logged in.")
    return _SESSION

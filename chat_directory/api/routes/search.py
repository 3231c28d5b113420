"""
Search routes for the chat directory API.

Provides endpoints for:
- Ranked chat search for the chat list
"""

from fastapi import APIRouter, HTTPException, Depends
from typing import Literal, Optional

from chat_directory.core.session import ImSession
from chat_directory.api.routes.chats import ChatListResponse, chat_list
from chat_directory.api.routes.dependencies import get_session


router = APIRouter()


@router.get("/", response_model=ChatListResponse)
async def search_chats(
    q: str,
    type: Optional[Literal["contact", "group"]] = None,
    session: ImSession = Depends(get_session),
):
    """Search chats; results are ordered from the best match down"""
    if not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    chats = session.chats.search(q, type)
    return chat_list(list(reversed(chats)), session)

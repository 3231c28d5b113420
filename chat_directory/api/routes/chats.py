"""
Chat routes for the chat directory API.

Provides endpoints for:
- List all, recent, group and public chats
- Get a single chat by gid
- Load a chat's stored messages and files
"""

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import List, Optional, Union

from chat_directory.core.session import ImSession
from chat_directory.api.routes.dependencies import get_session
from chat_directory.models.chat import Chat, ChatMessage, FileContent


router = APIRouter()


class ChatResponse(BaseModel):
    """Response model for a chat"""

    gid: str
    type: str
    name: str
    display_name: str
    members: List[Union[int, str]]
    notice_count: int = 0
    star: bool = False
    muted: bool = False
    last_active_time: int = 0
    score: int = 0


class ChatListResponse(BaseModel):
    """Response model for chat list"""

    chats: List[ChatResponse]
    count: int


class MessageResponse(BaseModel):
    """Response model for a chat message"""

    gid: str
    id: Optional[int] = None
    cgid: str
    user: Optional[Union[int, str]] = None
    content: str
    content_type: str
    date: int
    unread: bool
    send: bool


class MessageListResponse(BaseModel):
    """Response model for a page of messages"""

    messages: List[MessageResponse]
    count: int


class FileContentResponse(BaseModel):
    """Response model for a file sent in a chat"""

    id: Optional[Union[int, str]] = None
    name: str
    size: int = 0
    send: bool = False


class FileListResponse(BaseModel):
    files: List[FileContentResponse]
    count: int


def chat_to_dict(chat: Chat, session: ImSession) -> dict:
    return {
        "gid": chat.gid,
        "type": chat.type.value,
        "name": chat.name,
        "display_name": chat.get_display_name(session.members, session.profile.user_id),
        "members": list(chat.members),
        "notice_count": chat.notice_count,
        "star": chat.star,
        "muted": chat.muted,
        "last_active_time": chat.last_active_time or 0,
        "score": chat.score,
    }


def chat_list(chats: List[Chat], session: ImSession) -> dict:
    return {"chats": [chat_to_dict(c, session) for c in chats], "count": len(chats)}


def message_to_dict(m: ChatMessage) -> dict:
    return {
        "gid": m.gid,
        "id": m.id,
        "cgid": m.cgid,
        "user": m.user,
        "content": m.content,
        "content_type": m.content_type,
        "date": m.date,
        "unread": m.unread,
        "send": m.send,
    }


def file_to_dict(f: FileContent) -> dict:
    return {"id": f.id, "name": f.name, "size": f.size, "send": f.send is True}


def _get_chat(gid: str, session: ImSession) -> Chat:
    chat = session.chats.lookup(gid)
    if chat is None:
        raise HTTPException(status_code=404, detail=f"Chat {gid} not found")
    return chat


@router.get("/", response_model=ChatListResponse)
async def list_chats(session: ImSession = Depends(get_session)):
    """List every known chat, starred and most recently active first"""
    chats = session.chats.query(None, ["star", "-last_active_time"])
    return chat_list(chats, session)


@router.get("/recents", response_model=ChatListResponse)
async def list_recent_chats(
    include_star: bool = True, session: ImSession = Depends(get_session)
):
    """List chats with unread messages, starred or recently active"""
    return chat_list(session.chats.get_recents(include_star), session)


@router.get("/groups", response_model=ChatListResponse)
async def list_groups(session: ImSession = Depends(get_session)):
    return chat_list(session.chats.get_groups(), session)


@router.get("/public", response_model=ChatListResponse)
async def list_public_chats(session: ImSession = Depends(get_session)):
    return chat_list(session.chats.get_public_chats(), session)


@router.get("/{gid}", response_model=ChatResponse)
async def get_chat(gid: str, session: ImSession = Depends(get_session)):
    """Get a chat; one2one gids resolve even before the chat is registered"""
    return chat_to_dict(_get_chat(gid, session), session)


@router.get("/{gid}/messages", response_model=MessageListResponse)
async def get_chat_messages(
    gid: str,
    limit: Optional[int] = None,
    session: ImSession = Depends(get_session),
):
    """Load the chat's recent message window from the message store"""
    chat = _get_chat(gid, session)
    messages = await session.chats.load_chat_messages(chat, None, limit)
    return {"messages": [message_to_dict(m) for m in messages], "count": len(messages)}


@router.get("/{gid}/files", response_model=FileListResponse)
async def get_chat_files(
    gid: str,
    include_fail_file: bool = False,
    session: ImSession = Depends(get_session),
):
    """List files sent in the chat"""
    chat = _get_chat(gid, session)
    files = await session.chats.get_chat_files(chat, include_fail_file)
    return {"files": [file_to_dict(f) for f in files], "count": len(files)}

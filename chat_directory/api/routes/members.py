"""
Member routes for the chat directory API.

Provides endpoints for:
- List members of the current session
- Resolve a member by id, account or realname
"""

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import List, Optional, Union

from chat_directory.core.session import ImSession
from chat_directory.api.routes.dependencies import get_session
from chat_directory.models.member import Member


router = APIRouter()


class MemberResponse(BaseModel):
    """Response model for a member"""

    id: Union[int, str]
    account: str
    realname: str
    display_name: str
    email: str = ""
    mobile: str = ""
    avatar: Optional[str] = None
    is_me: bool = False


class MemberListResponse(BaseModel):
    """Response model for member list"""

    members: List[MemberResponse]
    count: int


def member_to_dict(m: Member) -> dict:
    return {
        "id": m.id,
        "account": m.account,
        "realname": m.realname,
        "display_name": m.display_name,
        "email": m.email or "",
        "mobile": m.mobile or "",
        "avatar": m.avatar,
        "is_me": m.is_me,
    }


@router.get("/", response_model=MemberListResponse)
async def list_members(
    sort: Optional[str] = None, session: ImSession = Depends(get_session)
):
    """List members; ``sort`` is a comma separated field list, e.g. "me,realname" """
    sort_list = [s.strip() for s in sort.split(",")] if sort else None
    members = session.members.query(None, sort_list)
    return {"members": [member_to_dict(m) for m in members], "count": len(members)}


@router.get("/{identity}", response_model=MemberResponse)
async def get_member(identity: str, session: ImSession = Depends(get_session)):
    """Find a member by id, account or realname"""
    member = session.members.guess(int(identity) if identity.isdigit() else identity)
    if member is None:
        member = session.members.guess(identity)
    if member is None:
        raise HTTPException(status_code=404, detail=f"Member {identity} not found")
    return member_to_dict(member)

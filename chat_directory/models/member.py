"""
成员数据模型

Defines the member record held by the member directory.
"""

from dataclasses import dataclass, fields
from typing import Any, List, Optional, Union

from chat_directory.models.ordering import SortList, sort_records


MemberId = Union[int, str]


@dataclass
class Member:
    """成员数据模型"""

    id: MemberId  # 用户 id (主键)
    account: str = ""  # 登录账号
    realname: str = ""
    email: str = ""
    mobile: str = ""
    avatar: Optional[str] = None
    status: Optional[str] = None
    is_me: bool = False

    @property
    def display_name(self) -> str:
        return self.realname or self.account or str(self.id)

    @classmethod
    def create(cls, data: Union["Member", dict]) -> "Member":
        """Canonicalize a member payload.

        A Member instance is returned as is; dicts may carry unknown keys
        (they are ignored) and the camelCase ``isMe`` flag.
        """
        if isinstance(data, Member):
            return data
        if not isinstance(data, dict) or data.get("id") is None:
            raise ValueError(f"Invalid member payload: {data!r}")

        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "isMe" in data and "is_me" not in values:
            values["is_me"] = bool(data["isMe"])
        for key in ("account", "realname", "email", "mobile"):
            if values.get(key) is None:
                values.pop(key, None)
        values["id"] = as_member_id(values["id"])
        return cls(**values)

    @classmethod
    def placeholder(cls, id_or_account: Any) -> "Member":
        """Stand-in record for an identity the directory does not know"""
        return cls(
            id=id_or_account,
            account=str(id_or_account),
            realname=f"User-{id_or_account}",
        )

    @staticmethod
    def sort(
        members: List["Member"],
        sort_list: SortList,
        user_id: Optional[MemberId] = None,
    ) -> List["Member"]:
        """Sort members in place.

        The pseudo-field ``me`` in ``sort_list`` moves the current user to
        the front, e.g. ``["me", "realname"]``.
        """
        return sort_records(
            members,
            sort_list,
            first=lambda m: user_id is not None and m.id == user_id,
            pseudo_first="me",
        )


def as_member_id(value: Any) -> MemberId:
    """Member id in canonical form: numeric strings become ints"""
    if isinstance(value, Member):
        return value.id
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return value

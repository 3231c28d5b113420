"""
聊天相关的数据模型

定义了会话、消息和文件的数据结构
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Tuple, Union
import json
import time
import unicodedata
import uuid

from chat_directory.models.member import Member, MemberId, as_member_id
from chat_directory.models.ordering import SortList, sort_records

if TYPE_CHECKING:
    from chat_directory.core.members import MemberDirectory


ONE2ONE_SEPARATOR = "&"

# server payloads use camelCase keys
_CHAT_ALIASES = {
    "createdBy": "created_by",
    "createdDate": "created_date",
    "noticeCount": "notice_count",
    "lastActiveTime": "last_active_time",
    "hasSetMessages": "has_set_messages",
    "mute": "muted",
}

_MESSAGE_ALIASES = {
    "contentType": "content_type",
}


def now_ms() -> int:
    return int(time.time() * 1000)


def _numeric_key(value: Any) -> Tuple[int, Any]:
    if isinstance(value, int):
        return (0, value)
    return (1, str(value))


def sorted_member_ids(ids: List[Any]) -> List[MemberId]:
    """Member ids in ascending numeric order"""
    return sorted((as_member_id(x) for x in ids), key=_numeric_key)


def one2one_gid(a: Any, b: Any) -> str:
    """Chat gid of the one2one chat between two members.

    Ids are sorted numerically ascending, so argument order never matters.
    """
    return ONE2ONE_SEPARATOR.join(str(x) for x in sorted_member_ids([a, b]))


def parse_one2one_gid(gid: str) -> Optional[Tuple[int, int]]:
    """Return the two member ids encoded in a one2one gid, or None"""
    if not gid or ONE2ONE_SEPARATOR not in gid:
        return None
    parts = gid.split(ONE2ONE_SEPARATOR)
    if len(parts) != 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


def name_key(text: str) -> str:
    """Transliterated search key: accent-folded, lowercase, no whitespace"""
    if not text:
        return ""
    folded = unicodedata.normalize("NFKD", text)
    folded = "".join(c for c in folded if not unicodedata.combining(c))
    return "".join(folded.lower().split())


class ChatType(str, Enum):
    ONE2ONE = "one2one"
    GROUP = "group"
    SYSTEM = "system"
    PUBLIC = "public"


@dataclass
class FileContent:
    """文件消息的内容"""

    id: Optional[Union[int, str]] = None  # 服务器文件 id
    name: str = ""
    size: int = 0
    type: str = ""
    send: Any = False  # True 表示上传成功

    @classmethod
    def from_dict(cls, data: dict) -> "FileContent":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class ChatMessage:
    """消息数据模型"""

    cgid: str = ""  # 所属会话 gid
    gid: str = field(default_factory=lambda: uuid.uuid4().hex)  # 本地唯一标识
    id: Optional[int] = None  # 服务器 id，本地消息为空
    user: Optional[MemberId] = None  # 发送者
    content: str = ""
    content_type: str = "text"
    type: str = "normal"
    date: int = field(default_factory=now_ms)
    unread: bool = True
    send: bool = False

    @property
    def is_local(self) -> bool:
        return not self.id

    @property
    def file_content(self) -> Optional[FileContent]:
        if self.content_type != "file" or not self.content:
            return None
        try:
            data = json.loads(self.content)
        except ValueError:
            return None
        return FileContent.from_dict(data) if isinstance(data, dict) else None

    @classmethod
    def create(cls, data: Union["ChatMessage", dict]) -> "ChatMessage":
        if isinstance(data, ChatMessage):
            return data
        if not isinstance(data, dict):
            raise ValueError(f"Invalid chat message payload: {data!r}")
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            key = _MESSAGE_ALIASES.get(key, key)
            if key in known and value is not None:
                values[key] = value
        if isinstance(values.get("content"), (dict, list)):
            values["content"] = json.dumps(values["content"], ensure_ascii=False)
        values["user"] = as_member_id(values.get("user"))
        return cls(**values)

    def plain(self) -> Dict[str, Any]:
        return {
            "gid": self.gid,
            "id": self.id,
            "cgid": self.cgid,
            "user": self.user,
            "content": self.content,
            "content_type": self.content_type,
            "type": self.type,
            "date": self.date,
            "unread": self.unread,
            "send": self.send,
        }


@dataclass
class Chat:
    """会话数据模型"""

    gid: str
    type: ChatType = ChatType.GROUP
    name: str = ""
    members: List[MemberId] = field(default_factory=list)
    created_by: str = ""  # 创建者账号
    created_date: int = 0
    notice_count: int = 0
    star: bool = False
    last_active_time: int = 0
    muted: bool = False
    public: bool = False
    hide: bool = False
    has_set_messages: bool = False
    score: int = field(default=0, compare=False)
    messages: List[ChatMessage] = field(default_factory=list, compare=False, repr=False)
    members_set: FrozenSet[MemberId] = field(
        default_factory=frozenset, compare=False, repr=False
    )

    def __post_init__(self):
        if not isinstance(self.type, ChatType):
            self.type = ChatType(self.type)
        self.members = [as_member_id(m) for m in self.members]
        self.update_members_set(self.members)

    @classmethod
    def create(cls, data: Union["Chat", dict]) -> "Chat":
        """Canonicalize a chat payload (Chat instance or server dict)"""
        if isinstance(data, Chat):
            return data
        if not isinstance(data, dict):
            raise ValueError(f"Invalid chat payload: {data!r}")

        known = {f.name for f in fields(cls)} - {"messages", "members_set", "score"}
        values = {}
        for key, value in data.items():
            key = _CHAT_ALIASES.get(key, key)
            if key in known and value is not None:
                values[key] = value

        chat_type = ChatType(values.get("type", ChatType.GROUP))
        members = [as_member_id(m) for m in values.get("members", [])]
        values["members"] = members
        if not values.get("gid"):
            if chat_type == ChatType.ONE2ONE and len(members) == 2:
                values["gid"] = one2one_gid(*members)
            else:
                values["gid"] = uuid.uuid4().hex
        return cls(**values)

    @property
    def is_one2one(self) -> bool:
        return self.type == ChatType.ONE2ONE

    @property
    def is_group(self) -> bool:
        return self.type in (ChatType.GROUP, ChatType.PUBLIC)

    @property
    def is_system(self) -> bool:
        return self.type == ChatType.SYSTEM

    @property
    def is_group_or_system(self) -> bool:
        return self.is_group or self.is_system

    def update_members_set(self, members: List[MemberId]) -> None:
        self.members_set = frozenset(members)

    def get_the_other_one(
        self, members: "MemberDirectory", user_id: Optional[MemberId]
    ) -> Optional[Member]:
        if not self.is_one2one:
            return None
        other_id = self._other_member_id(user_id)
        if other_id is None:
            return None
        return members.lookup(other_id)

    def _other_member_id(self, user_id: Optional[MemberId]) -> Optional[MemberId]:
        for member_id in self.members:
            if member_id != user_id:
                return member_id
        return None

    def get_display_name(
        self, members: "MemberDirectory", user_id: Optional[MemberId]
    ) -> str:
        if self.name:
            return self.name
        if self.is_one2one:
            other_id = self._other_member_id(user_id)
            if other_id is None:
                return ""
            return members.resolve_or_placeholder(other_id).display_name
        if self.is_system:
            return "System"
        names = [members.resolve_or_placeholder(m).display_name for m in self.members[:3]]
        return ", ".join(names)

    def get_name_key(
        self, members: "MemberDirectory", user_id: Optional[MemberId]
    ) -> str:
        return name_key(self.get_display_name(members, user_id))

    def add_messages(
        self,
        messages: List[ChatMessage],
        is_initial: bool = False,
        user_id: Optional[MemberId] = None,
    ) -> None:
        """Merge messages into the window, ordered by date.

        An initial add replaces the window. Otherwise each new unread
        message from another member raises ``notice_count``.
        """
        window: Dict[str, ChatMessage] = {} if is_initial else {
            m.gid: m for m in self.messages
        }
        for message in messages:
            is_new = message.gid not in window
            window[message.gid] = message
            if (
                not is_initial
                and is_new
                and message.unread
                and message.user != user_id
                and not self.muted
            ):
                self.notice_count += 1
            if message.date and message.date > (self.last_active_time or 0):
                self.last_active_time = message.date

        self.messages = sorted(window.values(), key=lambda m: m.date or 0)
        if is_initial:
            self.has_set_messages = True

    def remove_message(self, gid: str) -> bool:
        before = len(self.messages)
        self.messages = [m for m in self.messages if m.gid != gid]
        return len(self.messages) != before

    def mark_muted(self) -> None:
        self.muted = True
        self.notice_count = 0

    def clear_notice(self) -> None:
        self.notice_count = 0
        for message in self.messages:
            message.unread = False

    @staticmethod
    def sort(chats: List["Chat"], sort_list: SortList) -> List["Chat"]:
        """Sort chats in place; the pseudo-field ``star`` puts starred first"""
        return sort_records(
            chats, sort_list, first=lambda c: bool(c.star), pseudo_first="star"
        )

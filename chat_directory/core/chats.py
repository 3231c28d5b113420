"""
Chat directory

Holds the client-side mapping of chat gid -> Chat, keeps message windows in
sync with ingested and stored messages, aggregates unread counts and serves
the chat list queries (recents, contacts, groups, search).

One2one chat identity is derived from the member pair: the gid is the two
member ids sorted ascending and joined by "&", so both members always
resolve the same chat.

In-memory mutations are synchronous. Message persistence and loading are
coroutines on the running event loop; ingestion schedules the write and
returns the task without awaiting it.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Dict, Iterator, List, Optional, Set, Union

from chat_directory.core.conditions import select
from chat_directory.core.config import AppConfig
from chat_directory.core.delay_action import DelayAction
from chat_directory.core.events import DATA_CHANGED, NOTICE_CHANGED, USER_SWAPPED, EventBus
from chat_directory.core.members import MemberDirectory
from chat_directory.core.profile import Profile
from chat_directory.core.search import ChatSearch, SimilarMatcher
from chat_directory.core.storage import MessageStore
from chat_directory.models.chat import (
    Chat,
    ChatMessage,
    ChatType,
    FileContent,
    one2one_gid,
    parse_one2one_gid,
    sorted_member_ids,
)
from chat_directory.models.member import Member, MemberId, as_member_id
from chat_directory.models.ordering import SortList

logger = logging.getLogger(__name__)


class ChatDirectoryError(Exception):
    """Base error of the chat directory"""

    pass


class InvalidOperationError(ChatDirectoryError):
    """Raised when an operation is not allowed for the given record"""

    pass


class ChatDirectory:
    """Authoritative chat mapping for the logged-in session"""

    def __init__(
        self,
        bus: EventBus,
        profile: Profile,
        members: MemberDirectory,
        store: Optional[MessageStore] = None,
        config: Optional[AppConfig] = None,
        similar: Optional[SimilarMatcher] = None,
    ):
        self.bus = bus
        self.profile = profile
        self.members = members
        self.store = store
        self.config = config or AppConfig()
        self._chats: Optional[Dict[str, Chat]] = None
        self._public_chats: Optional[List[Chat]] = None
        self._tasks: Set[asyncio.Task] = set()
        self.update_chat_notice = DelayAction(
            self._emit_chat_notice, delay=self.config.notice_delay
        )
        self.searcher = ChatSearch(
            self, members, profile, similar=similar, debug=self.config.debug
        )
        self._unsubscribe = [
            bus.on(USER_SWAPPED, self._on_user_swapped),
            bus.on(DATA_CHANGED, self._on_data_changed),
        ]

    @property
    def is_initialized(self) -> bool:
        return self._chats is not None

    @property
    def map(self) -> Dict[str, Chat]:
        return dict(self._chats or {})

    def __iter__(self) -> Iterator[Chat]:
        return iter(list((self._chats or {}).values()))

    def __len__(self) -> int:
        return len(self._chats or {})

    def _store_required(self) -> MessageStore:
        if self.store is None:
            raise ChatDirectoryError("No message store is open for the current user")
        return self.store

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Background chat task failed: %r", task.exception())

    def _emit(self, chats: Dict[str, Chat]) -> None:
        self.bus.emit_data_change({"chats": chats}, sender=self)

    # Identity

    def lookup(self, gid: str) -> Optional[Chat]:
        """Find a chat by gid.

        An unknown one2one gid yields a new one2one chat that is NOT
        registered; route it through ``update`` to keep it. Any other
        unknown gid yields None.
        """
        if not gid:
            return None
        chat = (self._chats or {}).get(gid)
        if chat is not None:
            return chat
        pair = parse_one2one_gid(gid)
        if pair is None:
            return None
        members = list(pair)
        chat = Chat(
            gid=gid,
            type=ChatType.ONE2ONE,
            members=members,
            created_by=self.profile.account,
        )
        chat.update_members_set(members)
        return chat

    # Mutation

    def init(self, chats: Optional[List[Any]] = None) -> List[asyncio.Task]:
        """Reset the directory, optionally seeding it.

        Every seeded chat without a loaded message window gets its default
        message load started.

        Returns:
            The started load tasks
        """
        self._chats = {}
        self.update_chat_notice.cancel()
        tasks: List[asyncio.Task] = []
        if chats:
            self.update(chats)
            if self.store is not None:
                for chat in self:
                    if not chat.has_set_messages:
                        tasks.append(self._spawn(self.load_chat_messages(chat)))
        return tasks

    def update(self, chats: Union[Any, List[Any], None]) -> Dict[str, Chat]:
        """Insert or replace chats by gid; later entries in the batch win.

        Returns:
            The merged batch keyed by gid (empty when nothing was given)
        """
        if not chats:
            return {}
        batch = self._merge(chats)
        self._emit(batch)
        return batch

    def _merge(self, chats: Union[Any, List[Any]]) -> Dict[str, Chat]:
        if not isinstance(chats, (list, tuple)):
            chats = [chats]
        if self._chats is None:
            self._chats = {}

        batch: Dict[str, Chat] = {}
        for data in chats:
            chat = Chat.create(data)
            batch[chat.gid] = chat
        self._chats.update(batch)
        return batch

    def remove(self, gid: str) -> bool:
        if self._chats and gid in self._chats:
            del self._chats[gid]
            return True
        return False

    # Messages

    def _emit_chat_notice(self) -> None:
        total = sum(chat.notice_count for chat in self if chat.notice_count)
        self.bus.emit(NOTICE_CHANGED, {"chats": total}, self)

    def update_chat_messages(
        self, messages: Union[Any, List[Any]], muted: bool = False
    ) -> "asyncio.Future[int]":
        """Ingest messages.

        The chat windows are updated before this returns; the bulk write to
        the message store is scheduled and its task returned. Messages whose
        chat cannot be resolved are still stored.

        Must be called from a running event loop.
        """
        if not isinstance(messages, (list, tuple)):
            messages = [messages]

        batches: Dict[str, List[ChatMessage]] = {}
        normalized: List[ChatMessage] = []
        for data in messages:
            message = ChatMessage.create(data)
            normalized.append(message)
            batches.setdefault(message.cgid, []).append(message)

        if self._chats is None:
            self._chats = {}
        user_id = self.profile.user_id
        touched: Dict[str, Chat] = {}
        materialized: List[Chat] = []
        for cgid, batch in batches.items():
            chat = self.lookup(cgid)
            if chat is None:
                logger.debug("No chat for %d message(s) of %s", len(batch), cgid)
                continue
            chat.add_messages(batch, user_id=user_id)
            if muted:
                chat.mark_muted()
            if chat.gid not in self._chats:
                materialized.append(chat)
            touched[chat.gid] = chat

        # one2one chats materialized by lookup are registered with the batch
        if materialized:
            self._merge(materialized)
        if touched:
            self._emit(touched)
        self.update_chat_notice.do()

        if normalized:
            return self._spawn(self._store_required().bulk_put(normalized))
        done = asyncio.get_running_loop().create_future()
        done.set_result(0)
        return done

    async def delete_local_message(self, message: ChatMessage) -> int:
        """Delete a message that never reached the server.

        Raises:
            InvalidOperationError: the message has a server id
        """
        if message.id:
            raise InvalidOperationError("Cannot delete a remote chat message.")
        chat = self.lookup(message.cgid)
        if chat is not None:
            chat.remove_message(message.gid)
            self._emit({chat.gid: chat})
        return await self._store_required().delete(message.gid)

    async def load_chat_messages(
        self,
        chat: Chat,
        query: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[ChatMessage]:
        """Load a page of the chat's stored messages.

        Args:
            chat: owning chat
            query: extra equality filters; None loads the recent window
            limit: page size, 0 for no limit, None for the configured default

        Returns:
            The most recent messages, ordered by date. Only the unfiltered
            load replaces the chat's live message window.
        """
        if limit is None:
            limit = self.config.messages_limit
        filters = {"cgid": chat.gid}
        if query:
            filters.update(query)
        result = await self._store_required().query(filters, limit or None, newest=True)
        if not query:
            chat.add_messages(result, is_initial=True, user_id=self.profile.user_id)
            self._emit({chat.gid: chat})
        return result

    async def get_chat_files(
        self, chat: Chat, include_fail_file: bool = False
    ) -> List[FileContent]:
        file_messages = await self.load_chat_messages(chat, {"content_type": "file"}, 0)
        files = [m.file_content for m in file_messages if m.file_content is not None]
        if include_fail_file:
            return files
        return [f for f in files if f.send is True and f.id]

    # Views

    def get_all(self) -> List[Chat]:
        return list((self._chats or {}).values())

    def query(self, condition: Any = None, sort_list: Optional[SortList] = None) -> List[Chat]:
        if self._chats is None:
            return []
        result = select(condition, self.get_all(), self.lookup)
        if sort_list and result:
            Chat.sort(result, sort_list)
        return result

    def get_recents(self, include_star: bool = True) -> List[Chat]:
        """Chats worth listing: unread, starred or active in the recent window"""
        chats = self.get_all()
        if len(chats) < 2:
            return chats
        now = int(time.time() * 1000)
        window = self.config.recent_window_ms
        return [
            chat
            for chat in chats
            if chat.notice_count
            or (include_star and chat.star)
            or (chat.last_active_time and now - chat.last_active_time <= window)
        ]

    def _contact_chat(self, member: Union[Member, MemberId]) -> Chat:
        member_id = as_member_id(member)
        user_id = self.profile.user_id
        gid = one2one_gid(member_id, user_id)
        chat = (self._chats or {}).get(gid)
        if chat is not None:
            return chat
        members = sorted_member_ids([member_id, user_id])
        return Chat(
            gid=gid,
            type=ChatType.ONE2ONE,
            members=members,
            created_by=self.profile.account,
        )

    def get_contact_chat(self, member: Union[Member, MemberId]) -> Chat:
        """The one2one chat with ``member``, registered if it was new"""
        chat = self._contact_chat(member)
        if self._chats is None or chat.gid not in self._chats:
            self.update(chat)
        return chat

    def get_contacts_chats(self) -> List[Chat]:
        """Materialize a one2one chat for every member but the current user"""
        user_id = self.profile.user_id
        contacts_chats = [
            self._contact_chat(member) for member in self.members if member.id != user_id
        ]
        self.update(contacts_chats)
        return contacts_chats

    def get_groups(self) -> List[Chat]:
        return self.query(lambda chat: chat.is_group_or_system)

    def create_with_members(
        self,
        chat_members: Union[Any, List[Any]],
        chat_setting: Optional[Dict[str, Any]] = None,
    ) -> Chat:
        """Build a chat for the given members plus the current user.

        Two members resolve to the canonical one2one chat; any other count
        always builds a new chat. The result is not registered.
        """
        if not isinstance(chat_members, (list, tuple)):
            chat_members = [chat_members]
        user_id = self.profile.user_id

        member_ids: List[MemberId] = []
        for member in chat_members:
            member_id = as_member_id(member)
            if member_id not in member_ids:
                member_ids.append(member_id)
        if user_id not in member_ids:
            member_ids.append(user_id)

        values: Dict[str, Any] = {
            "members": member_ids,
            "created_by": self.profile.account,
        }
        if chat_setting:
            values.update(chat_setting)

        if len(member_ids) == 2:
            gid = one2one_gid(*member_ids)
            existing = (self._chats or {}).get(gid)
            if existing is not None:
                return existing
            values.update(gid=gid, type=ChatType.ONE2ONE)
            values["members"] = sorted_member_ids(member_ids)
            return Chat.create(values)

        values.setdefault("type", ChatType.GROUP)
        return Chat.create(values)

    def search(self, query: Optional[str], chat_type: Optional[str] = None) -> List[Chat]:
        return self.searcher.search(query, chat_type)

    # Public chats

    def get_public_chats(self) -> List[Chat]:
        return list(self._public_chats or [])

    def update_public_chats(self, server_public_chats: Union[Any, List[Any], None]) -> List[Chat]:
        """Replace the public chat list wholesale"""
        if server_public_chats and not isinstance(server_public_chats, (list, tuple)):
            server_public_chats = [server_public_chats]
        self._public_chats = [Chat.create(c) for c in (server_public_chats or [])]
        self.bus.emit_data_change({"public_chats": list(self._public_chats)}, sender=self)
        return list(self._public_chats)

    # Events

    def close(self) -> None:
        self.update_chat_notice.cancel()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def _on_user_swapped(self, user, _sender) -> None:
        logger.info("current user swapped, resetting chat directory")
        self.init()
        self._public_chats = None

    def _on_data_changed(self, change, sender) -> None:
        if sender is self or not change:
            return
        chats = change.get("chats")
        if not chats:
            return
        if isinstance(chats, dict):
            chats = list(chats.values())
        self.update(chats)

"""
Member directory

Holds the client-side mapping of member id -> Member for the logged-in
session and answers identity lookups for chat rendering and search.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional, Union

from chat_directory.core.conditions import select
from chat_directory.core.events import DATA_CHANGED, USER_SWAPPED, EventBus
from chat_directory.core.profile import Profile
from chat_directory.models.member import Member, MemberId, as_member_id
from chat_directory.models.ordering import SortList

logger = logging.getLogger(__name__)


class MemberDirectory:
    """Authoritative member mapping

    The mapping is None until ``init`` is called. Mutations publish a
    DATA_CHANGED event scoped to the members that changed.
    """

    def __init__(self, bus: EventBus, profile: Profile):
        self.bus = bus
        self.profile = profile
        self._members: Optional[Dict[MemberId, Member]] = None
        self._unsubscribe = [
            bus.on(USER_SWAPPED, self._on_user_swapped),
            bus.on(DATA_CHANGED, self._on_data_changed),
        ]

    @property
    def is_initialized(self) -> bool:
        return self._members is not None

    @property
    def map(self) -> Dict[MemberId, Member]:
        return dict(self._members or {})

    def __iter__(self) -> Iterator[Member]:
        return iter(list((self._members or {}).values()))

    def __len__(self) -> int:
        return len(self._members or {})

    def init(self, members: Optional[List[Any]] = None) -> None:
        self._members = {}
        if members:
            self.update(members)

    def update(self, members: Union[Any, List[Any]]) -> Dict[MemberId, Member]:
        """Upsert one member or a list of members.

        Returns:
            The batch that was merged, keyed by id (later entries win)
        """
        if not isinstance(members, (list, tuple)):
            members = [members]
        if self._members is None:
            self._members = {}

        user_id = self.profile.user_id
        batch: Dict[MemberId, Member] = {}
        for data in members:
            member = Member.create(data)
            member.is_me = user_id is not None and member.id == user_id
            batch[member.id] = member

        self._members.update(batch)
        if batch:
            self.bus.emit_data_change({"members": batch}, sender=self)
        return batch

    def get_all(self) -> List[Member]:
        return list((self._members or {}).values())

    def lookup(self, member_id: Any) -> Optional[Member]:
        """Strict lookup by id"""
        if not self._members or member_id is None:
            return None
        return self._members.get(as_member_id(member_id))

    def _find(self, match) -> Optional[Member]:
        for member in (self._members or {}).values():
            if match(member):
                return member
        return None

    def resolve_or_placeholder(self, id_or_account: Any) -> Member:
        """Resolve by id, then by account; never fails.

        Unknown identities get a placeholder member named "User-<identity>"
        so chat rendering degrades instead of erroring.
        """
        member = self.lookup(id_or_account)
        if member is None:
            member = self._find(lambda m: m.account == id_or_account)
        if member is None:
            member = Member.placeholder(id_or_account)
        return member

    def guess(self, search: Any) -> Optional[Member]:
        """Like ``resolve_or_placeholder`` but also matches realname and
        returns None instead of a placeholder"""
        member = self.lookup(search)
        if member is None:
            member = self._find(
                lambda m: m.account == search or m.realname == search
            )
        return member

    def query(self, condition: Any = None, sort_list: Optional[SortList] = None) -> List[Member]:
        result = select(condition, self.get_all(), self.resolve_or_placeholder)
        if sort_list and result:
            Member.sort(result, sort_list, self.profile.user_id)
        return result

    def remove(self, member: Union[Member, MemberId]) -> bool:
        member_id = as_member_id(member)
        if self._members and member_id in self._members:
            del self._members[member_id]
            return True
        return False

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def _on_user_swapped(self, user, _sender) -> None:
        logger.info("current user swapped, resetting member directory")
        self.init()

    def _on_data_changed(self, change, sender) -> None:
        if sender is self or not change:
            return
        members = change.get("members")
        if not members:
            return
        if isinstance(members, dict):
            members = list(members.values())
        self.update(members)

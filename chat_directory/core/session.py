"""
Session context owning both directories.

An ImSession is built once by the application shell and passed explicitly
to whoever needs the directories. Swapping the user opens that user's
message store and publishes USER_SWAPPED, which resets both directories.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from chat_directory.core.chats import ChatDirectory
from chat_directory.core.config import AppConfig, load_config
from chat_directory.core.events import DATA_CHANGED, EventBus
from chat_directory.core.keys import StoreKeyManager
from chat_directory.core.members import MemberDirectory
from chat_directory.core.profile import CurrentUser, Profile
from chat_directory.core.search import SimilarMatcher
from chat_directory.core.storage import MessageStore

logger = logging.getLogger(__name__)

StoreFactory = Callable[[CurrentUser], MessageStore]


class ImSession:
    """Explicit context: bus, current user, member and chat directories"""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        bus: Optional[EventBus] = None,
        key_manager: Optional[StoreKeyManager] = None,
        store_factory: Optional[StoreFactory] = None,
        similar: Optional[SimilarMatcher] = None,
    ):
        self.config = config or load_config()
        self.bus = bus or EventBus()
        self.key_manager = key_manager or StoreKeyManager()
        self._store_factory = store_factory or self._open_store
        self.profile = Profile(self.bus)
        self.members = MemberDirectory(self.bus, self.profile)
        self.chats = ChatDirectory(
            self.bus, self.profile, self.members, config=self.config, similar=similar
        )
        self.members.init()
        self.chats.init()

    @property
    def user(self) -> Optional[CurrentUser]:
        return self.profile.user

    def _open_store(self, user: CurrentUser) -> MessageStore:
        storage_path = Path(self.config.storage_path) / f"user_{user.id}"
        secret = self.key_manager.get_or_create_secret(user.id)
        return MessageStore(str(storage_path), secret)

    def swap_user(self, user: Optional[CurrentUser]) -> None:
        """Switch the logged-in user; both directories start over empty"""
        self.chats.store = self._store_factory(user) if user else None
        logger.info("swapping session user to %s", user.account if user else None)
        self.profile.swap_user(user)

    def handle_remote_change(self, change: Dict[str, Any]) -> int:
        """Publish a data change received from the transport"""
        return self.bus.emit(DATA_CHANGED, change, None)

    def close(self) -> None:
        self.chats.close()
        self.members.close()

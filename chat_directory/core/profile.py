"""
Current-user context.

The directories only read ``profile.user``; swapping the user publishes
USER_SWAPPED so session-scoped state can be rebuilt.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from chat_directory.core.events import USER_SWAPPED, EventBus
from chat_directory.models.member import MemberId


@dataclass(frozen=True)
class CurrentUser:
    """The logged-in user"""

    id: MemberId
    account: str


class Profile:
    def __init__(self, bus: EventBus, user: Optional[CurrentUser] = None):
        self.bus = bus
        self.user = user

    @property
    def user_id(self) -> Optional[MemberId]:
        return self.user.id if self.user else None

    @property
    def account(self) -> str:
        return self.user.account if self.user else ""

    def swap_user(self, user: Optional[CurrentUser]) -> None:
        self.user = user
        self.bus.emit(USER_SWAPPED, user, self)

    def on_swap_user(self, listener: Callable[[Optional[CurrentUser]], None]):
        return self.bus.on(USER_SWAPPED, lambda user, _sender: listener(user))

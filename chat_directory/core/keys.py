"""
Per-user message store secrets.
Secrets are random and kept in the OS keyring, never on disk.
"""

import os
import keyring
from typing import Optional

from chat_directory.models.member import MemberId

SERVICE_NAME = "chat_directory"
SECRET_KEY_PREFIX = "message_store_secret"


class StoreKeyManager:
    """Manages the secret each user's message store is keyed with"""

    def __init__(self, service_name: str = SERVICE_NAME):
        self.service_name = service_name

    def _entry(self, user_id: MemberId) -> str:
        return f"{SECRET_KEY_PREFIX}:{user_id}"

    def has_secret(self, user_id: MemberId) -> bool:
        return keyring.get_password(self.service_name, self._entry(user_id)) is not None

    def get_secret(self, user_id: MemberId) -> Optional[str]:
        return keyring.get_password(self.service_name, self._entry(user_id))

    def get_or_create_secret(self, user_id: MemberId) -> str:
        """
        Return the user's store secret, generating one on first use

        Args:
            user_id: Id of the logged-in user

        Returns:
            Hex-encoded secret
        """
        secret = self.get_secret(user_id)
        if secret:
            return secret
        secret = os.urandom(32).hex()
        keyring.set_password(self.service_name, self._entry(user_id), secret)
        return secret

    def clear_secret(self, user_id: MemberId) -> bool:
        """Forget the user's secret; their stored content becomes unreadable"""
        try:
            keyring.delete_password(self.service_name, self._entry(user_id))
            return True
        except keyring.errors.PasswordDeleteError:
            return False

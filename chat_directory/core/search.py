"""
Weighted multi-field chat search used by the chat list.

Each query term is scored against several fields of every candidate chat
and the scores are summed into ``chat.score``. Terms starting with ``#``
search ids, terms starting with ``@`` search accounts; both count double.
"""

import logging
from typing import TYPE_CHECKING, Callable, List, Optional

from chat_directory.core.members import MemberDirectory
from chat_directory.core.profile import Profile
from chat_directory.models.chat import Chat

if TYPE_CHECKING:
    from chat_directory.core.chats import ChatDirectory

logger = logging.getLogger(__name__)

SEARCH_SCORE_MAP = {
    "match_all": 100,
    "match_prefix": 75,
    "include": 50,
    "similar": 10,
}

ID_SIGIL = "#"
ACCOUNT_SIGIL = "@"
SIGIL_WEIGHT = 2

CHAT_TYPE_CONTACT = "contact"
CHAT_TYPE_GROUP = "group"

SimilarMatcher = Callable[[str, str], bool]


def tokenize(query: Optional[str]) -> List[str]:
    if not query or not query.strip():
        return []
    return query.strip().lower().split()


class ChatSearch:
    """Ranks chats against a free-text query

    ``similar`` is an optional fuzzy matcher (phonetic or romanized name
    comparison). When it reports a match for a term the substring rules
    missed, the term earns the "similar" score.
    """

    def __init__(
        self,
        chats: "ChatDirectory",
        members: MemberDirectory,
        profile: Profile,
        similar: Optional[SimilarMatcher] = None,
        debug: bool = False,
    ):
        self.chats = chats
        self.members = members
        self.profile = profile
        self.similar = similar
        self.debug = debug

    def score_of(self, term: str, field: str) -> int:
        if not term or not field:
            return 0
        if term == field:
            return SEARCH_SCORE_MAP["match_all"]
        idx = field.find(term)
        if idx == 0:
            return SEARCH_SCORE_MAP["match_prefix"]
        if idx > 0:
            return SEARCH_SCORE_MAP["include"]
        if self.similar is not None and self.similar(term, field):
            return SEARCH_SCORE_MAP["similar"]
        return 0

    def search(self, query: Optional[str], chat_type: Optional[str] = None) -> List[Chat]:
        """Search chats.

        Args:
            query: free text; terms are separated by whitespace
            chat_type: None for all chats, "contact" for one2one chats only,
                "group" for group and system chats only

        Returns:
            Chats with a positive score, sorted by ascending score
        """
        terms = tokenize(query)
        if not terms:
            return []

        if not chat_type or chat_type == CHAT_TYPE_CONTACT:
            self.chats.get_contacts_chats()

        def matches(chat: Chat) -> bool:
            if chat_type == CHAT_TYPE_CONTACT and not chat.is_one2one:
                return False
            if chat_type == CHAT_TYPE_GROUP and not chat.is_group_or_system:
                return False
            chat.score = self.score_chat(chat, terms)
            return chat.score > 0

        return self.chats.query(matches, lambda chat: chat.score)

    def score_chat(self, chat: Chat, terms: List[str]) -> int:
        user_id = self.profile.user_id
        chat_gid = chat.gid.lower()
        chat_name = chat.get_display_name(self.members, user_id).lower()
        chat_name_key = chat.get_name_key(self.members, user_id)

        other_account = ""
        other_contact_info = ""
        if chat.is_one2one:
            other = chat.get_the_other_one(self.members, user_id)
            if other is not None:
                other_account = (other.account or "").lower()
                other_contact_info = ((other.email or "") + (other.mobile or "")).lower()
            elif self.debug:
                logger.warning("Cannot get the other one of chat %s", chat.gid)
            else:
                logger.debug("Cannot get the other one of chat %s", chat.gid)

        score = 0
        for term in terms:
            if len(term) > 1:
                if term[0] == ID_SIGIL:
                    term = term[1:]
                    score += SIGIL_WEIGHT * self.score_of(term, chat_gid)
                    if chat.is_group_or_system:
                        score += SIGIL_WEIGHT * self.score_of(term, chat_name)
                        if chat.is_system:
                            score += SIGIL_WEIGHT * self.score_of(term, "system")
                elif term[0] == ACCOUNT_SIGIL:
                    term = term[1:]
                    if chat.is_one2one:
                        score += SIGIL_WEIGHT * self.score_of(term, other_account)
            score += self.score_of(term, chat_name)
            score += self.score_of(term, chat_name_key)
            if other_contact_info:
                score += self.score_of(term, other_contact_info)
        return score

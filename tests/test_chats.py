"""
Tests for chat_directory.core.chats - ChatDirectory state and sync
"""

import asyncio
import time
from unittest.mock import patch

import pytest

from chat_directory.core.chats import ChatDirectory, ChatDirectoryError, InvalidOperationError
from chat_directory.core.events import DATA_CHANGED, NOTICE_CHANGED
from chat_directory.core.profile import CurrentUser
from chat_directory.models.chat import ChatMessage, ChatType

DAY_MS = 24 * 60 * 60 * 1000


def _now_ms():
    return int(time.time() * 1000)


class TestLookup:
    def test_registered_chat(self, chats):
        chats.update({"gid": "g1", "type": "group", "name": "Team"})
        assert chats.lookup("g1").name == "Team"

    def test_unknown_one2one_gid_is_materialized_but_not_registered(self, chats):
        chat = chats.lookup("12&34")
        assert chat.is_one2one
        assert chat.members == [12, 34]
        assert chat.members_set == frozenset({12, 34})
        assert chat.created_by == "me"
        assert "12&34" not in chats.map

    def test_unknown_plain_gid_is_none(self, chats):
        assert chats.lookup("no-such-group") is None

    def test_contact_chat_matches_lookup_in_either_order(self, chats, members):
        chat = chats.get_contact_chat(members.lookup(12))
        assert chat.gid == "1&12"
        assert chats.lookup("1&12") is chat
        assert chats.get_contact_chat(12) is chat


class TestInitAndUpdate:
    @pytest.mark.parametrize("seed", [None, []])
    def test_init_empty(self, chats, seed):
        chats.update({"gid": "g1"})
        assert chats.init(seed) == []
        assert chats.get_all() == []

    def test_same_gid_twice_in_one_update_later_wins(self, chats):
        chats.update(
            [
                {"gid": "g1", "type": "group", "name": "First", "star": False},
                {"gid": "g1", "type": "group", "name": "Second", "star": True},
            ]
        )
        assert len(chats.get_all()) == 1
        assert chats.lookup("g1").name == "Second"
        assert chats.lookup("g1").star is True

    def test_update_empty_is_noop(self, chats, record):
        recorder = record(DATA_CHANGED)
        assert chats.update([]) == {}
        assert chats.update(None) == {}
        assert recorder.calls == []

    def test_update_publishes_scoped_change(self, chats, record):
        chats.update({"gid": "g1"})
        recorder = record(DATA_CHANGED)
        chats.update({"gid": "g2"})
        (change,) = recorder.payloads(DATA_CHANGED)
        assert list(change["chats"]) == ["g2"]

    def test_init_loads_messages_for_every_chat(self, chats, store):
        asyncio.run(
            store.bulk_put(
                [
                    ChatMessage(gid="m1", cgid="g1", user=12, content="a", date=100),
                    ChatMessage(gid="m2", cgid="g1", user=12, content="b", date=200),
                ]
            )
        )

        async def scenario():
            tasks = chats.init([{"gid": "g1", "type": "group"}, {"gid": "g2", "type": "group"}])
            await asyncio.gather(*tasks)
            return tasks

        tasks = asyncio.run(scenario())
        assert len(tasks) == 2
        assert [m.gid for m in chats.lookup("g1").messages] == ["m1", "m2"]
        assert all(chat.has_set_messages for chat in chats.get_all())

    def test_remove(self, chats):
        chats.update({"gid": "g1"})
        assert chats.remove("g1") is True
        assert chats.remove("g1") is False


class TestRecents:
    def test_single_chat_is_always_recent(self, chats):
        chats.update({"gid": "g1", "last_active_time": _now_ms() - 30 * DAY_MS})
        assert len(chats.get_recents()) == 1

    def test_recent_window(self, chats):
        now = _now_ms()
        chats.update(
            [
                {"gid": "stale", "last_active_time": now - 8 * DAY_MS},
                {"gid": "fresh", "last_active_time": now - 1 * DAY_MS},
                {"gid": "unread", "notice_count": 2},
                {"gid": "starred", "star": True},
            ]
        )
        gids = {c.gid for c in chats.get_recents()}
        assert gids == {"fresh", "unread", "starred"}

        gids = {c.gid for c in chats.get_recents(include_star=False)}
        assert gids == {"fresh", "unread"}


class TestContactsAndGroups:
    def test_contacts_chats_cover_every_other_member(self, chats, record):
        recorder = record(DATA_CHANGED)
        result = chats.get_contacts_chats()

        assert sorted(c.gid for c in result) == ["1&12", "1&34", "1&56"]
        assert all(c.is_one2one for c in result)
        assert {"1&12", "1&34", "1&56"} <= set(chats.map)
        assert len(recorder.payloads(DATA_CHANGED)) == 1

    def test_contacts_chats_reuse_existing(self, chats):
        existing = chats.get_contact_chat(12)
        existing.star = True
        result = chats.get_contacts_chats()
        assert existing in result
        assert chats.lookup("1&12").star is True

    def test_get_groups(self, chats):
        chats.update(
            [
                {"gid": "g1", "type": "group"},
                {"gid": "s1", "type": "system"},
                {"gid": "1&12", "type": "one2one", "members": [1, 12]},
            ]
        )
        assert sorted(c.gid for c in chats.get_groups()) == ["g1", "s1"]

    def test_query_by_ids_skips_unresolved(self, chats):
        chats.update({"gid": "g1"})
        result = chats.query(["g1", "missing", "1&12"])
        assert [c.gid for c in result] == ["g1", "1&12"]

    def test_query_before_init_is_empty(self, bus, profile, members):
        directory = ChatDirectory(bus, profile, members)
        assert directory.query() == []


class TestCreateWithMembers:
    def test_two_members_resolve_to_one2one(self, chats):
        chat = chats.create_with_members([34])
        assert chat.gid == "1&34"
        assert chat.type == ChatType.ONE2ONE
        assert chat.members == [1, 34]
        assert "1&34" not in chats.map

    def test_two_members_reuse_registered_chat(self, chats, members):
        registered = chats.get_contact_chat(34)
        assert chats.create_with_members([members.lookup(34), 1]) is registered

    def test_group_is_always_new(self, chats):
        a = chats.create_with_members([12, 34], {"name": "Team"})
        b = chats.create_with_members([12, 34], {"name": "Team"})
        assert a.gid != b.gid
        assert a.type == ChatType.GROUP
        assert a.members == [12, 34, 1]
        assert a.name == "Team"
        assert chats.get_all() == []

    def test_numeric_string_ids_are_the_same_member(self, chats):
        chat = chats.create_with_members(["34", 34])
        assert chat.gid == "1&34"
        assert chat.type == ChatType.ONE2ONE
        assert chat.members == [1, 34]

    def test_group_keeps_given_gid(self, chats):
        chat = chats.create_with_members([12, 34], {"gid": "srv-7", "name": "Team"})
        assert chat.gid == "srv-7"
        assert chat.type == ChatType.GROUP


class TestUpdateChatMessages:
    def test_messages_across_resolved_and_unresolved_chats(self, chats, store, record):
        chats.update({"gid": "g1", "type": "group", "members": [1, 12, 34]})
        recorder = record(NOTICE_CHANGED)

        async def scenario():
            with patch.object(store, "bulk_put", wraps=store.bulk_put) as bulk_put:
                result = chats.update_chat_messages(
                    [
                        {"gid": "a", "cgid": "g1", "user": 12, "content": "hi", "date": 100},
                        {"gid": "b", "cgid": "unknown", "user": 12, "content": "lost", "date": 110},
                        {"gid": "c", "cgid": "1&12", "user": 12, "content": "dm", "date": 120},
                    ]
                )
                assert [m.gid for m in chats.lookup("g1").messages] == ["a"]
                written = await result
                await asyncio.sleep(0.05)
            return written, bulk_put.call_args.args[0]

        written, persisted = asyncio.run(scenario())

        assert written == 3
        assert [m.gid for m in persisted] == ["a", "b", "c"]
        assert chats.lookup("1&12").notice_count == 1
        assert "1&12" in chats.map
        assert "unknown" not in chats.map
        assert recorder.payloads(NOTICE_CHANGED) == [{"chats": 2}]
        stored = asyncio.run(store.query({"cgid": "unknown"}))
        assert [m.gid for m in stored] == ["b"]

    def test_muted_ingestion(self, chats):
        chats.update({"gid": "g1", "type": "group"})

        async def scenario():
            await chats.update_chat_messages({"cgid": "g1", "user": 12, "content": "x"}, muted=True)

        asyncio.run(scenario())
        chat = chats.lookup("g1")
        assert chat.muted is True
        assert chat.notice_count == 0

    def test_rapid_ingestion_emits_one_total(self, chats, record):
        chats.update({"gid": "g1", "type": "group"})
        recorder = record(NOTICE_CHANGED)

        async def scenario():
            for i in range(5):
                chats.update_chat_messages({"cgid": "g1", "user": 12, "content": str(i), "date": i + 1})
            await asyncio.sleep(0.1)

        asyncio.run(scenario())
        assert recorder.payloads(NOTICE_CHANGED) == [{"chats": 5}]

    def test_no_messages_resolves_to_zero(self, chats):
        async def scenario():
            return await chats.update_chat_messages([])

        assert asyncio.run(scenario()) == 0

    def test_storage_failure_surfaces_to_awaiter(self, chats, store):
        chats.update({"gid": "g1", "type": "group"})

        async def scenario():
            with patch.object(store, "bulk_put", side_effect=OSError("disk full")):
                task = chats.update_chat_messages({"cgid": "g1", "user": 12, "content": "x"})
                with pytest.raises(OSError):
                    await task

        asyncio.run(scenario())
        assert len(chats.lookup("g1").messages) == 1

    def test_requires_store(self, bus, profile, members):
        directory = ChatDirectory(bus, profile, members)
        directory.init()

        async def scenario():
            directory.update_chat_messages({"cgid": "g1"})

        with pytest.raises(ChatDirectoryError):
            asyncio.run(scenario())


class TestDeleteLocalMessage:
    def _seed(self, chats):
        chats.update({"gid": "g1", "type": "group"})

        async def scenario():
            await chats.update_chat_messages(
                [
                    {"gid": "local", "cgid": "g1", "user": 1, "content": "draft", "date": 100},
                    {"gid": "remote", "id": 501, "cgid": "g1", "user": 12, "content": "sent", "date": 200},
                ]
            )

        asyncio.run(scenario())
        return chats.lookup("g1")

    def test_remote_message_is_rejected(self, chats, store):
        chat = self._seed(chats)
        remote = chat.messages[1]

        with pytest.raises(InvalidOperationError):
            asyncio.run(chats.delete_local_message(remote))
        assert [m.gid for m in chat.messages] == ["local", "remote"]
        assert len(asyncio.run(store.query({"cgid": "g1"}))) == 2

    def test_local_message_is_deleted(self, chats, store, record):
        chat = self._seed(chats)
        recorder = record(DATA_CHANGED)

        deleted = asyncio.run(chats.delete_local_message(chat.messages[0]))

        assert deleted == 1
        assert [m.gid for m in chat.messages] == ["remote"]
        assert [m.gid for m in asyncio.run(store.query({"cgid": "g1"}))] == ["remote"]
        (change,) = recorder.payloads(DATA_CHANGED)
        assert list(change["chats"]) == ["g1"]


class TestLoadChatMessages:
    @pytest.fixture
    def seeded(self, chats, store):
        chats.update({"gid": "g1", "type": "group"})
        asyncio.run(
            store.bulk_put(
                [
                    ChatMessage(gid=f"m{i}", cgid="g1", user=12, content=str(i), date=i * 10)
                    for i in range(1, 6)
                ]
                + [
                    ChatMessage(
                        gid="f1",
                        id=9,
                        cgid="g1",
                        user=12,
                        content_type="file",
                        content='{"id": 3, "name": "ok.png", "send": true}',
                        date=60,
                    ),
                    ChatMessage(
                        gid="f2",
                        cgid="g1",
                        user=1,
                        content_type="file",
                        content='{"name": "failed.png", "send": false}',
                        date=70,
                    ),
                ]
            )
        )
        return chats.lookup("g1")

    def test_default_load_seeds_window(self, chats, seeded, record):
        recorder = record(DATA_CHANGED)
        result = asyncio.run(chats.load_chat_messages(seeded))

        assert len(result) == 7
        assert seeded.messages == result
        assert seeded.has_set_messages is True
        assert len(recorder.payloads(DATA_CHANGED)) == 1

    def test_limit_keeps_the_most_recent_page(self, chats, seeded):
        result = asyncio.run(chats.load_chat_messages(seeded, limit=3))
        assert [m.gid for m in result] == ["m5", "f1", "f2"]
        assert seeded.messages == result

    def test_default_limit_comes_from_config(self, chats, seeded):
        chats.config.messages_limit = 3
        asyncio.run(chats.load_chat_messages(seeded))
        assert [m.gid for m in seeded.messages] == ["m5", "f1", "f2"]

    def test_filtered_load_leaves_window_alone(self, chats, seeded, record):
        recorder = record(DATA_CHANGED)
        result = asyncio.run(chats.load_chat_messages(seeded, {"user": 1}, 0))

        assert [m.gid for m in result] == ["f2"]
        assert seeded.messages == []
        assert seeded.has_set_messages is False
        assert recorder.calls == []

    def test_chat_files(self, chats, seeded):
        files = asyncio.run(chats.get_chat_files(seeded))
        assert [f.name for f in files] == ["ok.png"]

        files = asyncio.run(chats.get_chat_files(seeded, include_fail_file=True))
        assert [f.name for f in files] == ["ok.png", "failed.png"]
        assert seeded.messages == []


class TestPublicChats:
    def test_public_chats_replace_wholesale(self, chats, record):
        recorder = record(DATA_CHANGED)
        assert chats.get_public_chats() == []

        chats.update_public_chats([{"gid": "p1", "type": "public"}, {"gid": "p2", "type": "public"}])
        chats.update_public_chats({"gid": "p3", "type": "public"})

        assert [c.gid for c in chats.get_public_chats()] == ["p3"]
        assert "p3" not in chats.map
        assert len(recorder.payloads(DATA_CHANGED)) == 2


class TestEvents:
    def test_user_swap_resets(self, chats, profile):
        chats.update({"gid": "g1"})
        chats.update_public_chats([{"gid": "p1"}])
        profile.swap_user(CurrentUser(id=2, account="two"))
        assert chats.get_all() == []
        assert chats.get_public_chats() == []

    def test_remote_chats_change_is_applied(self, chats, bus):
        bus.emit_data_change({"chats": [{"gid": "g9", "type": "group", "name": "Remote"}]})
        assert chats.lookup("g9").name == "Remote"

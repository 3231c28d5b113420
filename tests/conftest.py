"""
共享的 pytest fixtures 和配置
"""

import os
import sys
import tempfile
import shutil
from pathlib import Path
from unittest.mock import patch

import keyring
import pytest


@pytest.fixture(scope="session", autouse=True)
def _isolate_app_config():
    """Isolate on-disk config from developer machine.

    Tests should not read/write user home config.json.
    """

    tmp_cfg_dir = Path(tempfile.mkdtemp())
    os.environ["CHAT_DIRECTORY_CONFIG_DIR"] = str(tmp_cfg_dir)
    try:
        yield
    finally:
        try:
            shutil.rmtree(tmp_cfg_dir, ignore_errors=True)
        finally:
            os.environ.pop("CHAT_DIRECTORY_CONFIG_DIR", None)


# 添加项目根目录到 Python 路径
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from chat_directory.core.chats import ChatDirectory  # noqa: E402
from chat_directory.core.config import AppConfig  # noqa: E402
from chat_directory.core.events import EventBus  # noqa: E402
from chat_directory.core.members import MemberDirectory  # noqa: E402
from chat_directory.core.profile import CurrentUser, Profile  # noqa: E402
from chat_directory.core.storage import MessageStore  # noqa: E402

# 测试用的存储密钥，不是真实用户的密钥
TEST_SECRET = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"

ME = CurrentUser(id=1, account="me")

MEMBERS = [
    {"id": 1, "account": "me", "realname": "Myself", "email": "me@example.com"},
    {"id": 12, "account": "alice", "realname": "Alice", "email": "alice@example.com", "mobile": "13800001111"},
    {"id": 34, "account": "bob", "realname": "Bob Stone", "email": "bob@example.com"},
    {"id": 56, "account": "carol", "realname": "Carol", "email": "carol@corp.io", "mobile": "13900002222"},
]


class Recorder:
    """Collects (event, payload, sender) tuples published on a bus"""

    def __init__(self, bus: EventBus, *events: str):
        self.calls = []
        for event in events:
            bus.on(event, lambda payload, sender, event=event: self.calls.append((event, payload, sender)))

    def payloads(self, event: str):
        return [p for e, p, _ in self.calls if e == event]


@pytest.fixture
def temp_dir():
    """创建临时目录，测试后自动清理"""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def test_secret() -> str:
    return TEST_SECRET


@pytest.fixture
def storage_dir(temp_dir: Path) -> Path:
    """Create a temporary storage directory for message store tests"""
    storage = temp_dir / "data"
    storage.mkdir(parents=True, exist_ok=True)
    return storage


@pytest.fixture
def store(storage_dir: Path, test_secret: str) -> MessageStore:
    return MessageStore(str(storage_dir), test_secret)


@pytest.fixture
def app_config(temp_dir: Path) -> AppConfig:
    return AppConfig(storage_dir=str(temp_dir / "storage"), notice_delay=0.01)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def profile(bus: EventBus) -> Profile:
    return Profile(bus, ME)


@pytest.fixture
def members(bus: EventBus, profile: Profile) -> MemberDirectory:
    directory = MemberDirectory(bus, profile)
    directory.init(MEMBERS)
    return directory


@pytest.fixture
def chats(bus, profile, members, store, app_config) -> ChatDirectory:
    directory = ChatDirectory(bus, profile, members, store=store, config=app_config)
    directory.init()
    return directory


@pytest.fixture
def mock_keyring():
    """Mock keyring for testing without accessing system keyring"""
    storage = {}

    def mock_get(service, key):
        return storage.get(f"{service}:{key}")

    def mock_set(service, key, value):
        storage[f"{service}:{key}"] = value

    def mock_delete(service, key):
        k = f"{service}:{key}"
        if k in storage:
            del storage[k]
        else:
            raise keyring.errors.PasswordDeleteError()

    with (
        patch("keyring.get_password", side_effect=mock_get),
        patch("keyring.set_password", side_effect=mock_set),
        patch("keyring.delete_password", side_effect=mock_delete),
    ):
        yield storage


@pytest.fixture
def record(bus: EventBus):
    """Factory: record(*events) -> Recorder on the shared bus"""
    return lambda *events: Recorder(bus, *events)

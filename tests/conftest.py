"""
Pytest configuration and fixtures for KKN bot tests.
"""

import itertools
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Sequence

# Keep session logs out of the repository and never read the real config
os.environ.setdefault("KKNBOT_LOGS_DIR", tempfile.mkdtemp(prefix="kknbot-logs-"))
os.environ.setdefault("KKNBOT_CONFIG", str(Path(tempfile.mkdtemp(prefix="kknbot-config-")) / "app_config.yml"))

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import pytest
import pytest_asyncio
import yaml

from kknbot.command.context import BotServices
from kknbot.configuration.app_configuration import AppConfig
from kknbot.database.database import Database
from kknbot.moderation.moderation_engine import ModerationEngine
from kknbot.registry.group_registry import GroupRegistry
from kknbot.scheduler.schedule_scheduler import ScheduleScheduler
from kknbot.transport.base import GroupMetadata, InboundMessage, Participant

GROUP = "120363000000000001@g.us"
OWNER = "628000000000"
GLOBAL_ADMIN = "628000000001"
GROUP_ADMIN = "628111111111"
MEMBER = "628222222222"
OTHER_MEMBER = "628333333333"

# 2023-11-14 22:13:20 UTC
START_TIME = 1_700_000_000.0

_MESSAGE_KEYS = itertools.count(1)


class FakeClock:
    """Manually advanced wall clock, callable like ``time.time``."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Records every outbound call instead of talking to WhatsApp."""

    def __init__(self) -> None:
        self.sent: List[tuple] = []
        self.deleted: List[tuple] = []
        self.removed: List[tuple] = []
        self.metadata: Dict[str, GroupMetadata] = {}
        self.fail_sends = False

    async def send_message(self, chat_id: str, text: str, mentions: Sequence[str] = ()) -> None:
        if self.fail_sends:
            raise ConnectionError("socket closed")
        self.sent.append((chat_id, text, list(mentions)))

    async def delete_message(self, chat_id: str, message_key: str) -> None:
        self.deleted.append((chat_id, message_key))

    async def remove_participant(self, group_id: str, user_ids: Sequence[str]) -> None:
        self.removed.append((group_id, list(user_ids)))

    async def get_group_metadata(self, group_id: str) -> GroupMetadata:
        if group_id not in self.metadata:
            raise LookupError(f"unknown group {group_id}")
        return self.metadata[group_id]

    def texts(self, chat_id: str | None = None) -> List[str]:
        return [text for chat, text, _ in self.sent if chat_id is None or chat == chat_id]


def write_config(directory: Path, data: Dict[str, Any]) -> AppConfig:
    path = directory / "app_config.yml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return AppConfig(path)


def make_message(
    text: str, sender: str = MEMBER, chat_id: str = GROUP, *, mentions=(), key: str = "", message_type: str = "text"
) -> InboundMessage:
    return InboundMessage(
        chat_id=chat_id,
        sender=f"{sender}@s.whatsapp.net",
        text=text,
        message_key=key or f"key-{next(_MESSAGE_KEYS)}",
        mentions=list(mentions),
        message_type=message_type,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    fake = FakeTransport()
    fake.metadata[GROUP] = GroupMetadata(
        subject="KKN Desa Sukamaju",
        participants=[
            Participant(id=f"{GROUP_ADMIN}@s.whatsapp.net", is_admin=True),
            Participant(id=f"{MEMBER}@s.whatsapp.net"),
            Participant(id=f"{OTHER_MEMBER}@s.whatsapp.net"),
        ],
    )
    return fake


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return write_config(
        tmp_path,
        {
            "bot": {"prefix": ".", "timezone": "Asia/Jakarta", "country_code": "62"},
            "admins": {"owner": OWNER, "global_admins": [GLOBAL_ADMIN], "lid_to_phone_mapping": {"99887766": MEMBER}},
            "moderation": {
                "warning_threshold": 3,
                "warning_ban_minutes": 60,
                "spam_mute_minutes": 10,
                "filter_mute_minutes": 5,
                "spam_kick_ban_minutes": 30,
            },
            "database": {"path": str(tmp_path / "data" / "app.db"), "backups_to_keep": 5},
            "transport": {"send_timeout_seconds": 2},
        },
    )


@pytest_asyncio.fixture
async def database(tmp_path, clock):
    db = Database(tmp_path / "data" / "app.db", backups_to_keep=5, clock=clock)
    await db.initialize()
    yield db
    await db.shutdown()


@pytest_asyncio.fixture
async def registry(database, app_config, clock):
    reg = GroupRegistry(database, app_config, clock=clock)
    yield reg
    await reg.shutdown()


@pytest_asyncio.fixture
async def group(registry):
    """An initialized group whose only admin is GROUP_ADMIN."""
    await registry.initialize_group(GROUP, "KKN Desa Sukamaju", GROUP_ADMIN)
    return registry.get_group(GROUP)


@pytest_asyncio.fixture
async def engine(registry, transport, app_config):
    eng = ModerationEngine(registry, transport, app_config)
    yield eng
    await eng.shutdown()


@pytest_asyncio.fixture
async def scheduler(database, registry, transport, app_config, clock):
    sched = ScheduleScheduler(database, registry, transport, app_config, clock=clock)
    yield sched
    await sched.shutdown()


@pytest.fixture
def services(app_config, database, registry, engine, scheduler, transport) -> BotServices:
    return BotServices(
        config=app_config,
        database=database,
        registry=registry,
        engine=engine,
        scheduler=scheduler,
        transport=transport,
    )

"""
Pytest configuration and fixtures for FairGuard tests.
"""

import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Keep test runs from writing session logs into the project tree
os.environ.setdefault("FAIRGUARD_LOG_DIR", tempfile.mkdtemp(prefix="fairguard-test-logs-"))
os.environ.setdefault("FAIRGUARD_LOG_LEVEL", "WARNING")

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import pytest
import pytest_asyncio

from fairguard.ai.classifier_gateway import ClassifierGateway
from fairguard.ai.providers import ClassifierBackend
from fairguard.configuration.app_configuration import AppConfig
from fairguard.database.db_connection import ConnectionManager
from fairguard.database.db_schema import SchemaManager
from fairguard.errors import MessageAlreadyDeleted, PlatformError
from fairguard.main import build_engine
from fairguard.platform.chat_platform import ChatMessage
from fairguard.util.time_utils import MS_PER_DAY, MS_PER_HOUR, MS_PER_SECOND

# Platform snowflakes are 17-19 digits
USER_ID = "100000000000000001"
OTHER_USER_ID = "100000000000000002"
MODERATOR_ID = "200000000000000001"
OTHER_MODERATOR_ID = "200000000000000002"
ADMIN_ID = "900000000000000001"
CHANNEL_ID = "300000000000000001"

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, *, ms: int = 0, seconds: float = 0, hours: float = 0, days: float = 0) -> int:
        self.now += ms + int(seconds * MS_PER_SECOND) + int(hours * MS_PER_HOUR) + int(days * MS_PER_DAY)
        return self.now


class ScriptedBackend(ClassifierBackend):
    """Classifier backend answering from a queue of canned responses.

    Queue items are response strings or exceptions to raise. Once the queue is
    empty ``default`` is returned (or raised).
    """

    name = "scripted"

    def __init__(self, *responses: Any, default: Any = '{"verdict": "SAFE", "reason": "default"}') -> None:
        self.responses: List[Any] = list(responses)
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def submit(self, system_instruction: str, user_prompt: str, temperature: float) -> str:
        self.calls.append({"system": system_instruction, "prompt": user_prompt, "temperature": temperature})
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        return item


class FakePlatform:
    """In-memory ``ChatPlatform`` recording deletions and timeouts."""

    def __init__(self) -> None:
        self.messages: Dict[str, ChatMessage] = {}
        self.deleted: List[str] = []
        self.admins: set[str] = set()
        self.delete_error: Optional[PlatformError] = None
        self.admin_error: Optional[PlatformError] = None
        self.timeouts: List[Tuple[str, int, str]] = []
        self.timeout_error: Optional[PlatformError] = None

    def add(self, message: ChatMessage) -> ChatMessage:
        self.messages[message.id] = message
        return message

    def _channel_history(self, channel_id: str) -> List[ChatMessage]:
        return sorted(
            (m for m in self.messages.values() if m.channel_id == channel_id),
            key=lambda m: (m.created_at, m.id),
        )

    async def fetch_message(self, channel_id: str, message_id: str) -> ChatMessage:
        message = self.messages.get(message_id)
        if message is None or message_id in self.deleted:
            raise MessageAlreadyDeleted(f"message {message_id} not found")
        return message

    async def fetch_messages_before(self, channel_id: str, message_id: str, limit: int) -> List[ChatMessage]:
        history = self._channel_history(channel_id)
        ids = [m.id for m in history]
        if message_id not in ids:
            return []
        index = ids.index(message_id)
        return history[max(0, index - limit):index]

    async def fetch_messages_after(self, channel_id: str, message_id: str, limit: int) -> List[ChatMessage]:
        history = self._channel_history(channel_id)
        ids = [m.id for m in history]
        if message_id not in ids:
            return []
        index = ids.index(message_id)
        return history[index + 1:index + 1 + limit]

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        if message_id in self.deleted:
            raise MessageAlreadyDeleted(f"message {message_id} not found")
        self.deleted.append(message_id)

    async def is_admin(self, user_id: str) -> bool:
        if self.admin_error is not None:
            raise self.admin_error
        return user_id in self.admins

    async def timeout_member(self, user_id: str, duration_seconds: int, reason: str) -> None:
        if self.timeout_error is not None:
            raise self.timeout_error
        self.timeouts.append((user_id, duration_seconds, reason))


class StaticContext:
    """``ContextFetcher`` returning a fixed snapshot and counting calls."""

    def __init__(self, text: str = "[alice]: hello\n[TARGET] [bob]: message under review") -> None:
        self.text = text
        self.calls = 0

    async def fetch_context(self, message: ChatMessage, before: int, after: int) -> str:
        self.calls += 1
        return self.text


def make_message(
    message_id: str,
    content: str,
    *,
    author_id: str = USER_ID,
    channel_id: str = CHANNEL_ID,
    created_at: int = START_MS,
    author_name: str = "bob",
    author_is_bot: bool = False,
) -> ChatMessage:
    return ChatMessage(
        id=message_id,
        channel_id=channel_id,
        author_id=author_id,
        author_name=author_name,
        content=content,
        created_at=created_at,
        author_is_bot=author_is_bot,
    )


def make_config(**sections: Dict[str, Any]) -> AppConfig:
    """Test configuration; keyword arguments override whole-section keys."""
    data: Dict[str, Any] = {
        "warnings": {"expiry_days": 30, "threshold": 3},
        "spam": {"message_count": 5, "time_window_seconds": 10, "max_message_length": 2000},
        "context": {"before": 2, "after": 2},
        "appeals": {"deadline_days": 3},
        "abuse_check": {"lookback_hours": 1, "repeat_threshold": 2, "min_context_length": 10},
        "pending": {"warn_ttl_seconds": 300, "confirmation_ttl_seconds": 86400},
        "rate_limit": {"max_commands": 5, "window_seconds": 60},
        "admin": {"user_ids": [ADMIN_ID], "role_ids": []},
        "ai_settings": {"provider": "gemini", "confirmation_required": False},
    }
    for section, values in sections.items():
        data.setdefault(section, {}).update(values)
    return AppConfig.from_mapping(data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def sleeps() -> List[float]:
    """Backoff delays requested by the gateway (nothing actually sleeps)."""
    return []


@pytest.fixture
def gateway(backend: ScriptedBackend, sleeps: List[float]) -> ClassifierGateway:
    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    return ClassifierGateway(backend, timeout_seconds=1, max_retries=3, backoff_base_seconds=1, sleep=record_sleep)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def config() -> AppConfig:
    return make_config()


@pytest.fixture
def context() -> StaticContext:
    return StaticContext()


@pytest_asyncio.fixture
async def db():
    """In-memory store with the full schema."""
    manager = ConnectionManager()
    await manager.open(":memory:")
    await SchemaManager.initialize_schema(manager.connection)
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def engine(config, platform, clock, gateway):
    """Fully wired engine over an in-memory store, without the periodic scheduler."""
    built = build_engine(config, platform, clock=clock, gateway=gateway)
    await built.start(":memory:", run_scheduler=False)
    yield built
    await built.shutdown()

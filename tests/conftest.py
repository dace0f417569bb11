"""
Shared pytest fixtures and configuration
"""

import os
import sys
import tempfile
import shutil
from pathlib import Path

import pytest


@pytest.fixture(scope="session", autouse=True)
def _isolate_app_config():
    """Isolate on-disk config from developer machine.

    Tests should not read/write user home config.json.
    """

    tmp_cfg_dir = Path(tempfile.mkdtemp())
    os.environ["CONNECTU_CONFIG_DIR"] = str(tmp_cfg_dir)
    try:
        yield
    finally:
        try:
            shutil.rmtree(tmp_cfg_dir, ignore_errors=True)
        finally:
            os.environ.pop("CONNECTU_CONFIG_DIR", None)


# Make the project root importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from connectu.core.ledger import ChatLedger  # noqa: E402
from connectu.core.messages import MessageStore  # noqa: E402
from connectu.core.realtime import RealtimeHub  # noqa: E402
from connectu.core.storage import Database  # noqa: E402
from connectu.core.visibility import VisibilityResolver  # noqa: E402

ALICE_PHONE = "1000000001"
BOB_PHONE = "1000000002"
CAROL_PHONE = "1000000003"
TEST_JWT_SECRET = "test-jwt-secret"
CLOCK_START = 1_700_000_000.0


class FakeClock:
    """Deterministic clock: every reading is ``step`` seconds after the last"""

    def __init__(self, start: float = CLOCK_START, step: float = 1.0):
        self.t = start
        self.step = step

    def __call__(self) -> float:
        self.t += self.step
        return self.t


class FakeWebSocket:
    """Collects frames sent by the realtime hub"""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def events(self):
        return [frame["event"] for frame in self.sent]

    def frames(self, event):
        return [frame["data"] for frame in self.sent if frame["event"] == event]


@pytest.fixture
def temp_dir():
    """Create a temporary directory, removed after the test"""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db(temp_dir: Path, clock: FakeClock) -> Database:
    return Database(str(temp_dir / "connectu.db"), clock=clock)


@pytest.fixture
def messages(db: Database) -> MessageStore:
    return MessageStore(db)


@pytest.fixture
def ledger(db: Database) -> ChatLedger:
    return ChatLedger(db)


@pytest.fixture
def resolver(db: Database, messages: MessageStore, ledger: ChatLedger) -> VisibilityResolver:
    return VisibilityResolver(db, messages, ledger, page_size=20)


@pytest.fixture
def hub(db: Database, ledger: ChatLedger) -> RealtimeHub:
    return RealtimeHub(db, ledger)


@pytest.fixture
def alice(db: Database):
    return db.create_user(ALICE_PHONE, "Alice")


@pytest.fixture
def bob(db: Database):
    return db.create_user(BOB_PHONE, "Bob")


@pytest.fixture
def carol(db: Database):
    return db.create_user(CAROL_PHONE, "Carol")

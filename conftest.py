import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner

from nool.config import Config
from nool.memory import MemoryStorageProvider
from nool.notify import Notification, NotificationKind

logger = logging.getLogger(__name__)


class RecordingNotifier:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, message: str, kind: NotificationKind, duration_ms: int) -> None:
        self.notifications.append(Notification(message, kind, duration_ms))

    def messages(self, kind: NotificationKind | None = None) -> list[str]:
        return [n.message for n in self.notifications if kind is None or n.kind == kind]


@pytest.fixture(autouse=True)
def debug_logging() -> None:
    logging.getLogger().setLevel(logging.DEBUG)


@pytest.fixture()
def isolated_dir() -> Iterator[Path]:
    with CliRunner().isolated_filesystem():
        yield Path.cwd()


@pytest.fixture()
def config(isolated_dir: Path) -> Config:
    state_dir = isolated_dir / "state"
    state_dir.mkdir()
    return Config(state_dir=state_dir)


@pytest.fixture()
def memory_store() -> MemoryStorageProvider:
    return MemoryStorageProvider(root_name="root")


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def local_root(isolated_dir: Path) -> Path:
    root = isolated_dir / "root"
    root.mkdir()
    return root

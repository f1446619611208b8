"""
The memory module implements the storage contract on top of plain Python objects. It is the store
the test suite runs the engine against, and it is handy for embedding the engine where no real
storage exists yet.

It mimics the behaviors of a real capability-based store that the engine has to cope with:

- Write capability can be revoked (`writable = False`); mutations then fail with
  WritePermissionError and permission requests answer DENIED.
- The consent flow can be declined (`cancel_connect = True`).
- Writes to chosen file names (`failing_writes`) and removals of chosen names (`failing_removes`) can
  be made to fail, to exercise multi-step operations that break halfway.
- Handles to removed entries go stale, and using one raises EntryNotFoundError.

Every primitive call is recorded in `calls`, so tests can assert which operations reached storage.
Every primitive also yields to the event loop once (or sleeps for `latency` seconds), like real I/O
would, so that concurrent engine calls genuinely interleave at I/O boundaries.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from nool.common import (
    SEPARATOR,
    EntryExistsError,
    EntryKind,
    EntryNotFoundError,
)
from nool.storage import (
    Entry,
    FileHandle,
    FolderHandle,
    Handle,
    Permission,
    StorageError,
    UserCancelledError,
    WritePermissionError,
)

logger = logging.getLogger(__name__)

MUTATING_CALLS = frozenset({"get_or_create_child", "write_all", "remove"})


@dataclass(eq=False)
class MemoryFile:
    data: bytes = b""
    alive: bool = True


@dataclass(eq=False)
class MemoryFolder:
    entries: dict[str, MemoryFile | MemoryFolder] = field(default_factory=dict)
    alive: bool = True


class MemoryStorageProvider:
    def __init__(self, root_name: str = "root") -> None:
        self.root_name = root_name
        self.root = MemoryFolder()
        self.writable = True
        self.cancel_connect = False
        self.failing_writes: set[str] = set()
        self.failing_removes: set[str] = set()
        self.latency = 0.0
        self.calls: list[tuple[str, str]] = []

    # Storage contract.

    async def connect(self) -> FolderHandle:
        self.calls.append(("connect", self.root_name))
        await asyncio.sleep(self.latency)
        if self.cancel_connect:
            raise UserCancelledError("Connection was cancelled")
        return FolderHandle(self.root_name, self.root)

    async def request_write_permission(self, handle: Handle) -> Permission:
        self.calls.append(("request_write_permission", handle.name))
        await asyncio.sleep(self.latency)
        self._check_alive(handle)
        return Permission.GRANTED if self.writable else Permission.DENIED

    async def list_entries(self, folder: FolderHandle) -> list[Entry]:
        self.calls.append(("list_entries", folder.name))
        await asyncio.sleep(self.latency)
        ref = self._folder(folder)
        return [self._entry(name, obj) for name, obj in ref.entries.items()]

    async def get_child(self, parent: FolderHandle, name: str) -> Handle:
        self.calls.append(("get_child", name))
        await asyncio.sleep(self.latency)
        try:
            obj = self._folder(parent).entries[name]
        except KeyError as e:
            raise EntryNotFoundError(f"{name} does not exist in {parent.name}") from e
        return self._entry(name, obj).handle

    async def get_or_create_child(self, parent: FolderHandle, name: str, kind: EntryKind) -> Handle:
        self.calls.append(("get_or_create_child", name))
        await asyncio.sleep(self.latency)
        ref = self._folder(parent)
        self._check_writable()
        existing = ref.entries.get(name)
        if existing is not None:
            entry = self._entry(name, existing)
            if entry.kind != kind:
                raise EntryExistsError(f"{name} already exists as a {entry.kind.value}")
            return entry.handle
        obj: MemoryFile | MemoryFolder = MemoryFolder() if kind == EntryKind.FOLDER else MemoryFile()
        ref.entries[name] = obj
        return self._entry(name, obj).handle

    async def read_all(self, file: FileHandle) -> bytes:
        self.calls.append(("read_all", file.name))
        await asyncio.sleep(self.latency)
        self._check_alive(file)
        return file.ref.data

    async def write_all(self, file: FileHandle, data: bytes) -> None:
        self.calls.append(("write_all", file.name))
        await asyncio.sleep(self.latency)
        self._check_alive(file)
        self._check_writable()
        if file.name in self.failing_writes:
            raise StorageError(f"Simulated write failure for {file.name}")
        file.ref.data = bytes(data)

    async def remove(self, parent: FolderHandle, name: str, recursive: bool = False) -> None:
        self.calls.append(("remove", name))
        await asyncio.sleep(self.latency)
        ref = self._folder(parent)
        self._check_writable()
        try:
            obj = ref.entries[name]
        except KeyError as e:
            raise EntryNotFoundError(f"{name} does not exist in {parent.name}") from e
        if isinstance(obj, MemoryFolder) and obj.entries and not recursive:
            raise StorageError(f"{name} is not empty")
        if name in self.failing_removes:
            raise StorageError(f"Simulated remove failure for {name}")
        del ref.entries[name]
        _detach(obj)
        logger.debug(f"Removed {name} from in-memory folder {parent.name}")

    # Helpers for seeding and inspecting the store by path, relative to the root.

    def seed(self, path: str, data: bytes | None = None) -> None:
        """Create a file (when `data` is given) or a folder at `path`, creating parents as needed."""
        *parents, leaf = path.split(SEPARATOR)
        folder = self.root
        for part in parents:
            nxt = folder.entries.setdefault(part, MemoryFolder())
            assert isinstance(nxt, MemoryFolder)
            folder = nxt
        folder.entries[leaf] = MemoryFolder() if data is None else MemoryFile(data)

    def lookup(self, path: str) -> MemoryFile | MemoryFolder | None:
        obj: MemoryFile | MemoryFolder = self.root
        for part in path.split(SEPARATOR):
            if not isinstance(obj, MemoryFolder) or part not in obj.entries:
                return None
            obj = obj.entries[part]
        return obj

    def exists(self, path: str) -> bool:
        return self.lookup(path) is not None

    def read(self, path: str) -> bytes:
        obj = self.lookup(path)
        assert isinstance(obj, MemoryFile), f"{path} is not a file"
        return obj.data

    def mutating_calls(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] in MUTATING_CALLS]

    # Internals.

    @staticmethod
    def _entry(name: str, obj: MemoryFile | MemoryFolder) -> Entry:
        if isinstance(obj, MemoryFolder):
            return Entry(name, EntryKind.FOLDER, FolderHandle(name, obj))
        return Entry(name, EntryKind.FILE, FileHandle(name, obj))

    def _folder(self, handle: FolderHandle) -> MemoryFolder:
        self._check_alive(handle)
        return handle.ref  # type: ignore

    def _check_writable(self) -> None:
        if not self.writable:
            raise WritePermissionError("Write permission denied")

    @staticmethod
    def _check_alive(handle: Handle) -> None:
        if not handle.ref.alive:
            raise EntryNotFoundError(f"{handle.name} no longer exists")


def _detach(obj: MemoryFile | MemoryFolder) -> None:
    obj.alive = False
    if isinstance(obj, MemoryFolder):
        for child in obj.entries.values():
            _detach(child)

"""
The storage module defines the contract between the engine and an external, capability-based
hierarchical store, plus the implementation that backs a tree onto a directory of the host
filesystem.

A store only offers a handful of primitives: list a folder, create-or-open a child, read a file in
full, write a file in full, and remove a child (optionally recursively). There is no rename and no
move. The engine synthesizes those from the primitives.

Handles are a tagged variant: a FileHandle or a FolderHandle. The kind of an entry is resolved once,
when the store hands out the handle, and never by probing a handle and catching the failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import os
import shutil
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Protocol

import aiofiles
from send2trash import send2trash

from nool.common import (
    EntryExistsError,
    EntryKind,
    EntryNotFoundError,
    NoolExpectedError,
)

logger = logging.getLogger(__name__)


class StorageError(NoolExpectedError):
    pass


class WritePermissionError(NoolExpectedError, PermissionError):
    pass


class UserCancelledError(NoolExpectedError):
    """The interactive consent flow was aborted. This is not a failure."""

    pass


class Permission(enum.Enum):
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"


@dataclass(frozen=True, eq=False)
class FileHandle:
    kind: ClassVar[EntryKind] = EntryKind.FILE
    name: str
    # Provider-specific reference. Opaque to everything outside the provider.
    ref: Any = field(repr=False)


@dataclass(frozen=True, eq=False)
class FolderHandle:
    kind: ClassVar[EntryKind] = EntryKind.FOLDER
    name: str
    ref: Any = field(repr=False)


Handle = FileHandle | FolderHandle


@dataclass(frozen=True)
class Entry:
    name: str
    kind: EntryKind
    handle: Handle


class StorageProvider(Protocol):
    async def connect(self) -> FolderHandle:
        """Obtain the root handle. Raises UserCancelledError if the user backs out."""
        ...

    async def request_write_permission(self, handle: Handle) -> Permission: ...

    async def list_entries(self, folder: FolderHandle) -> list[Entry]: ...

    async def get_child(self, parent: FolderHandle, name: str) -> Handle:
        """Look up an existing child and return a handle of the right kind."""
        ...

    async def get_or_create_child(self, parent: FolderHandle, name: str, kind: EntryKind) -> Handle: ...

    async def read_all(self, file: FileHandle) -> bytes: ...

    async def write_all(self, file: FileHandle, data: bytes) -> None: ...

    async def remove(self, parent: FolderHandle, name: str, recursive: bool = False) -> None: ...


@contextlib.contextmanager
def translate_os_errors(what: str | Path) -> Iterator[None]:
    """Re-raise OSErrors from the host filesystem as errors of our own taxonomy."""
    try:
        yield
    except FileNotFoundError as e:
        raise EntryNotFoundError(f"{what} does not exist") from e
    except FileExistsError as e:
        raise EntryExistsError(f"{what} already exists") from e
    except PermissionError as e:
        raise WritePermissionError(f"Permission denied: {what}") from e
    except OSError as e:
        raise StorageError(f"Storage operation on {what} failed: {e}") from e


class LocalStorageProvider:
    """
    Backs the tree onto a directory of the host filesystem. Blocking calls are pushed onto a worker
    thread and file contents are streamed with aiofiles, so the event loop is only ever suspended at
    I/O boundaries.

    `consent` stands in for the interactive picker: it is asked before the root is handed out and
    may decline, which surfaces as UserCancelledError. With `trash=True`, removals go to the OS trash
    instead of being unlinked.

    Symlinks are listed as file entries whatever they point at, and removing one removes the link
    only.
    """

    def __init__(
        self,
        root: Path,
        consent: Callable[[Path], bool] | None = None,
        trash: bool = False,
    ) -> None:
        self.root = root
        self.consent = consent
        self.trash = trash

    async def connect(self) -> FolderHandle:
        if self.consent is not None and not self.consent(self.root):
            raise UserCancelledError(f"Connection to {self.root} was cancelled")
        root = await asyncio.to_thread(self.root.expanduser().resolve)
        if not await asyncio.to_thread(root.is_dir):
            raise StorageError(f"{root} is not a directory")
        logger.debug(f"Connected local storage at {root}")
        return FolderHandle(name=root.name, ref=root)

    async def request_write_permission(self, handle: Handle) -> Permission:
        path: Path = handle.ref
        if not await asyncio.to_thread(path.exists):
            raise EntryNotFoundError(f"{path} does not exist")
        ok = await asyncio.to_thread(os.access, path, os.W_OK)
        return Permission.GRANTED if ok else Permission.DENIED

    async def list_entries(self, folder: FolderHandle) -> list[Entry]:
        path: Path = folder.ref
        with translate_os_errors(path):
            return await asyncio.to_thread(self._scan, path)

    @staticmethod
    def _scan(path: Path) -> list[Entry]:
        entries: list[Entry] = []
        with os.scandir(path) as it:
            for de in it:
                child = path / de.name
                # Symlinks are leaves. The walk never follows them.
                if de.is_dir(follow_symlinks=False):
                    entries.append(Entry(de.name, EntryKind.FOLDER, FolderHandle(de.name, child)))
                else:
                    entries.append(Entry(de.name, EntryKind.FILE, FileHandle(de.name, child)))
        return entries

    async def get_child(self, parent: FolderHandle, name: str) -> Handle:
        path: Path = parent.ref / name
        if await asyncio.to_thread(_is_real_dir, path):
            return FolderHandle(name, path)
        if await asyncio.to_thread(os.path.lexists, path):
            return FileHandle(name, path)
        raise EntryNotFoundError(f"{path} does not exist")

    async def get_or_create_child(self, parent: FolderHandle, name: str, kind: EntryKind) -> Handle:
        path: Path = parent.ref / name
        with translate_os_errors(path):
            if kind == EntryKind.FOLDER:
                if await asyncio.to_thread(os.path.lexists, path) and not await asyncio.to_thread(
                    _is_real_dir, path
                ):
                    raise EntryExistsError(f"{path} already exists as a file")
                await asyncio.to_thread(path.mkdir, exist_ok=True)
                logger.debug(f"Ensured folder {path}")
                return FolderHandle(name, path)
            if await asyncio.to_thread(_is_real_dir, path):
                raise EntryExistsError(f"{path} already exists as a folder")
            await asyncio.to_thread(path.touch, exist_ok=True)
            logger.debug(f"Ensured file {path}")
            return FileHandle(name, path)

    async def read_all(self, file: FileHandle) -> bytes:
        with translate_os_errors(file.ref):
            async with aiofiles.open(file.ref, "rb") as fp:
                return await fp.read()

    async def write_all(self, file: FileHandle, data: bytes) -> None:
        with translate_os_errors(file.ref):
            async with aiofiles.open(file.ref, "wb") as fp:
                await fp.write(data)
        logger.debug(f"Wrote {len(data)} bytes to {file.ref}")

    async def remove(self, parent: FolderHandle, name: str, recursive: bool = False) -> None:
        path: Path = parent.ref / name
        with translate_os_errors(path):
            if not await asyncio.to_thread(os.path.lexists, path):
                raise EntryNotFoundError(f"{path} does not exist")
            if self.trash:
                await asyncio.to_thread(send2trash, path)
                logger.debug(f"Sent {path} to the trash")
                return
            if await asyncio.to_thread(_is_real_dir, path):
                if recursive:
                    await asyncio.to_thread(shutil.rmtree, path)
                else:
                    await asyncio.to_thread(path.rmdir)
            else:
                await asyncio.to_thread(path.unlink)
        logger.debug(f"Removed {path}")


def _is_real_dir(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()

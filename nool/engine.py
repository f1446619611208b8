"""
The engine module holds the TreeService: the single owner of the tree model, the handle cache, and
the single-flight lock, and the only place where create, delete, and rename requests are carried
out.

The service runs in one of two modes:

- Real mode, after `connect()`: mutations go to the storage provider through its primitives, and
  every completed structural change is followed by a full rebuild of the tree and the handle cache
  from storage. We never patch the cache surgically, because rename is copy+delete and rewrites the
  ids of the whole renamed subtree.
- Virtual mode, when nothing is connected: the tree model itself is the ground truth and is mutated
  in place (copy-on-write), with no storage calls at all.

Storage has no rename. A file is renamed by reading it, writing a new file, then removing the old
one. A folder is renamed by creating a new folder, copying the whole subtree into it, then removing
the old folder. The old entry stays the source of truth until its removal: if anything fails before
that, the old entry is untouched and the partially written target is cleaned up.

Mutations are serialized. With the `queue` policy, a mutation requested while another is in flight
waits for it; with `reject`, it fails immediately with OperationInFlightError.

Every failure is reported to the notifier and then re-raised, so that the caller can roll back any
in-place UI state. The one exception is the user backing out of the consent flow in `connect()`,
which is not a failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from nool.common import (
    SEPARATOR,
    EntryExistsError,
    EntryKind,
    EntryNotFoundError,
    NoolExpectedError,
    join_id,
    split_id,
)
from nool.config import Config
from nool.handles import HandleCache
from nool.names import InvalidNameError, allocate_name, validate_name
from nool.notify import LoggingNotifier, NotificationKind, Notifier
from nool.storage import (
    FileHandle,
    FolderHandle,
    Handle,
    Permission,
    StorageProvider,
    UserCancelledError,
    WritePermissionError,
)
from nool.sync import rebuild
from nool.tree import Node, NotAFolderError, TreeModel

logger = logging.getLogger(__name__)


class NotConnectedError(NoolExpectedError):
    pass


class OperationInFlightError(NoolExpectedError):
    pass


class NotEditingError(NoolExpectedError):
    pass


class OperationKind(enum.Enum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    REFRESH = "refresh"
    CREATE_FOLDER = "create-folder"
    CREATE_FILE = "create-file"
    DELETE = "delete"
    RENAME = "rename"


@dataclass(frozen=True)
class InFlight:
    kind: OperationKind
    target_id: str


class EditState(enum.Enum):
    IDLE = "idle"
    EDITING = "editing"
    COMMITTING = "committing"


@dataclass
class _Edit:
    node_id: str
    # The last known-good display name. The editor rolls back to it when a commit fails.
    display_name: str
    state: EditState = EditState.EDITING


class TreeService:
    def __init__(
        self,
        c: Config,
        provider: StorageProvider | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.config = c
        self.provider = provider
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.tree = TreeModel(root_id=c.virtual_root_name)
        self.handles: HandleCache[Handle] = HandleCache()
        self.root: FolderHandle | None = None
        self.expanded: set[str] = set()
        # The id that the presentation layer should open an editor on, set after a create.
        self.rename_pending: str | None = None
        self.in_flight: InFlight | None = None
        self._edit: _Edit | None = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self.root is not None

    @property
    def snapshot(self) -> tuple[Node, ...]:
        return self.tree.forest

    # Connection lifecycle.

    async def connect(self) -> bool:
        """
        Connect the storage provider and load the tree from it. Returns False if the user backed out
        of the consent flow, in which case nothing changes and nothing is reported.
        """
        if self.provider is None:
            raise NotConnectedError("No storage provider is configured")
        provider = self.provider
        try:
            async with self._single_flight(OperationKind.CONNECT, ""):
                try:
                    root = await provider.connect()
                except UserCancelledError:
                    logger.info("No-Op: Connection cancelled by user")
                    return False
                permission = await provider.request_write_permission(root)
                if permission != Permission.GRANTED:
                    raise WritePermissionError(
                        "Write permission is required to create/delete files and folders"
                    )
                forest, handles = await rebuild(
                    provider, root, hidden_prefix=self.config.hidden_prefix
                )
                self._reset_ui_state()
                self.root = root
                self.tree.replace_all(forest, root_id=root.name)
                self.handles = handles
        except Exception as e:
            self._notify(f"Failed to load directory: {e}", NotificationKind.ERROR)
            raise
        logger.info(f"Connected to {root.name}")
        self._notify(f"Connected to {root.name}", NotificationKind.INFO)
        return True

    async def disconnect(self) -> None:
        async with self._single_flight(OperationKind.DISCONNECT, ""):
            if self.root is None:
                logger.info("No-Op: Not connected")
                return
            logger.info(f"Disconnected from {self.root.name}")
            self.root = None
            self.handles = HandleCache()
            self.tree.replace_all((), root_id=self.config.virtual_root_name)
            self._reset_ui_state()

    async def refresh(self) -> None:
        """Re-derive the tree and the handle cache from storage."""
        try:
            async with self._single_flight(OperationKind.REFRESH, ""):
                await self._rebuild()
        except Exception as e:
            self._notify(f"Failed to refresh directory structure: {e}", NotificationKind.ERROR)
            raise

    def load_virtual(self, forest: tuple[Node, ...] | list[Node]) -> None:
        """Seed the virtual tree, e.g. from a saved workspace. Only valid while disconnected."""
        if self.connected:
            raise NoolExpectedError("Cannot load a virtual tree while connected to storage")
        root_id = self.config.virtual_root_name
        self.tree.replace_all([n.reparent(root_id) for n in forest], root_id=root_id)
        self._reset_ui_state()

    # Presentation state.

    def toggle_expand(self, node_id: str) -> bool:
        """Flip the expansion state of a folder. Returns whether it is now expanded."""
        if node_id in self.expanded:
            self.expanded.discard(node_id)
            return False
        self.expanded.add(node_id)
        return True

    def is_expanded(self, node_id: str) -> bool:
        return node_id in self.expanded

    def edit_state(self, node_id: str) -> EditState:
        if self._edit is None or self._edit.node_id != node_id:
            return EditState.IDLE
        return self._edit.state

    @property
    def editing(self) -> tuple[str, str] | None:
        """The (node id, display name) pair of the open editor, if any."""
        if self._edit is None:
            return None
        return self._edit.node_id, self._edit.display_name

    def begin_edit(self, node_id: str) -> str:
        """Open the editor on a node. Returns the name the editor should start from."""
        node = self.tree.find(node_id)
        if node is None:
            raise EntryNotFoundError(f"{node_id} does not exist")
        self._edit = _Edit(node_id=node_id, display_name=node.name)
        return node.name

    def cancel_edit(self) -> None:
        if self._edit is not None and self.rename_pending == self._edit.node_id:
            self.rename_pending = None
        self._edit = None

    async def commit_edit(self, proposed_name: str) -> str:
        """
        Commit the open editor. A blank or unchanged name just closes the editor. On failure the
        editor stays open with its last known-good name and the error propagates. Returns the id of
        the edited node after the commit.
        """
        if self._edit is None or self._edit.state != EditState.EDITING:
            raise NotEditingError("No edit is in progress")
        edit = self._edit
        if not proposed_name.strip() or proposed_name.strip() == edit.display_name:
            self.cancel_edit()
            return edit.node_id
        edit.state = EditState.COMMITTING
        try:
            new_id = await self.rename_entry(edit.node_id, proposed_name)
        except Exception:
            edit.state = EditState.EDITING
            raise
        self.cancel_edit()
        return new_id

    # Mutations.

    async def create_folder(self, parent_id: str = "") -> str:
        """Create a uniquely named folder under `parent_id` ("" for the root). Returns its id."""
        return await self._create(parent_id, EntryKind.FOLDER)

    async def create_file(self, parent_id: str = "") -> str:
        """Create a uniquely named file from the template under `parent_id`. Returns its id."""
        return await self._create(parent_id, EntryKind.FILE)

    async def delete_entry(self, node_id: str) -> None:
        """
        Delete a node and its whole subtree. Confirmation is the caller's job: by the time this is
        called, the user has agreed.
        """
        try:
            async with self._single_flight(OperationKind.DELETE, node_id):
                if self.connected:
                    await self._delete_real(node_id)
                else:
                    self.tree.remove_by_id(node_id)
                self._forget_ui_state(node_id)
        except Exception as e:
            self._notify(f"Failed to delete item: {e}", NotificationKind.ERROR)
            raise
        logger.info(f"Deleted {node_id}")
        self._notify("Item deleted successfully", NotificationKind.SUCCESS)

    async def rename_entry(self, node_id: str, new_name: str) -> str:
        """Rename a node. Returns the node's new id, which equals the old one for a no-op."""
        try:
            sanitized = validate_name(new_name)
        except InvalidNameError as e:
            self._notify(f"Invalid name: {e.reason}", NotificationKind.ERROR)
            raise

        parent_id, old_name = split_id(node_id)
        if sanitized == old_name:
            logger.info(f"No-Op: {node_id} is already named {sanitized}")
            return node_id

        try:
            async with self._single_flight(OperationKind.RENAME, node_id):
                if self.connected:
                    new_id = await self._rename_real(node_id, sanitized)
                else:
                    new_id = self.tree.rename_by_id(node_id, sanitized).id
                self._rekey_ui_state(node_id, new_id)
        except Exception as e:
            self._notify(f"Failed to rename item: {e}", NotificationKind.ERROR)
            raise
        logger.info(f"Renamed {node_id} to {sanitized}")
        self._notify("Item renamed successfully", NotificationKind.SUCCESS)
        return new_id

    # Internals.

    async def _create(self, parent_id: str, kind: EntryKind) -> str:
        label = "folder" if kind == EntryKind.FOLDER else "file"
        op = OperationKind.CREATE_FOLDER if kind == EntryKind.FOLDER else OperationKind.CREATE_FILE
        try:
            async with self._single_flight(op, parent_id):
                if self.connected:
                    new_id = await self._create_real(parent_id, kind)
                else:
                    new_id = self._create_virtual(parent_id, kind)
                actual_parent_id, _ = split_id(new_id)
                if not self.tree.is_root(actual_parent_id):
                    self.expanded.add(actual_parent_id)
                self.rename_pending = new_id
                self.begin_edit(new_id)
        except Exception as e:
            self._notify(f"Failed to create {label}: {e}", NotificationKind.ERROR)
            raise
        logger.info(f"Created {label} {new_id}")
        self._notify(f"{label.capitalize()} created successfully", NotificationKind.SUCCESS)
        return new_id

    def _default_name(self, kind: EntryKind, existing: list[str]) -> str:
        if kind == EntryKind.FOLDER:
            return allocate_name(self.config.new_folder_name, existing)
        return allocate_name(self.config.new_file_name, existing, self.config.new_file_extension)

    def _create_virtual(self, parent_id: str, kind: EntryKind) -> str:
        name = self._default_name(kind, self.tree.child_names(parent_id))
        node = Node(id=name, name=name, children=() if kind == EntryKind.FOLDER else None)
        return self.tree.insert_child(parent_id, node).id

    async def _create_real(self, parent_id: str, kind: EntryKind) -> str:
        provider = self._provider()
        parent, actual_parent_id = self._resolve_folder(parent_id)

        permission = await provider.request_write_permission(parent)
        if permission != Permission.GRANTED:
            raise WritePermissionError("Write permission denied")

        existing = [e.name for e in await provider.list_entries(parent)]
        name = self._default_name(kind, existing)
        handle = await provider.get_or_create_child(parent, name, kind)
        if isinstance(handle, FileHandle):
            try:
                await provider.write_all(handle, self.config.render_new_file(name))
            except Exception:
                await self._discard_partial(parent, name)
                raise
        logger.debug(f"Created {kind.value} {name} in {actual_parent_id}")

        await self._rebuild()
        return join_id(actual_parent_id, name)

    async def _delete_real(self, node_id: str) -> None:
        provider = self._provider()
        if self.tree.is_root(node_id):
            raise NoolExpectedError("Cannot delete the connected root")
        if node_id not in self.handles:
            raise EntryNotFoundError(f"{node_id} does not exist")
        parent_id, name = split_id(node_id)
        parent, _ = self._resolve_folder(parent_id)

        try:
            await provider.remove(parent, name, recursive=True)
        finally:
            # A removal that fails partway has still changed storage.
            self.handles.drop_subtree(node_id)
            await self._rebuild()

    async def _rename_real(self, node_id: str, new_name: str) -> str:
        provider = self._provider()
        if self.tree.is_root(node_id) or node_id not in self.handles:
            raise EntryNotFoundError(f"{node_id} does not exist")
        parent_id, old_name = split_id(node_id)
        parent, _ = self._resolve_folder(parent_id)

        # Best-effort: the store may change between this check and the create below.
        existing = {e.name for e in await provider.list_entries(parent)}
        if new_name in existing:
            raise EntryExistsError(f'An item named "{new_name}" already exists')
        # Catches stores that resolve names case-insensitively, where the listing shows no clash.
        try:
            await provider.get_child(parent, new_name)
        except EntryNotFoundError:
            pass
        else:
            raise EntryExistsError(f'An item named "{new_name}" already exists')

        old = await provider.get_child(parent, old_name)
        try:
            if isinstance(old, FolderHandle):
                target = await provider.get_or_create_child(parent, new_name, EntryKind.FOLDER)
                assert isinstance(target, FolderHandle)
                await self._copy_folder(old, target)
            else:
                await self._copy_file(old, parent, new_name)
        except Exception:
            await self._discard_partial(parent, new_name)
            raise

        # Only now does the old entry stop being the source of truth. From here on storage has changed,
        # so the tree is rebuilt whether or not the removal succeeds.
        try:
            await provider.remove(parent, old_name, recursive=True)
        finally:
            self.handles.drop_subtree(node_id)
            await self._rebuild()
        return join_id(parent_id, new_name)

    async def _copy_file(self, source: FileHandle, parent: FolderHandle, name: str) -> None:
        provider = self._provider()
        data = await provider.read_all(source)
        target = await provider.get_or_create_child(parent, name, EntryKind.FILE)
        assert isinstance(target, FileHandle)
        await provider.write_all(target, data)

    async def _copy_folder(self, source: FolderHandle, target: FolderHandle) -> None:
        # Hidden entries are copied too: they are about to be deleted along with the source.
        provider = self._provider()
        for entry in await provider.list_entries(source):
            if isinstance(entry.handle, FolderHandle):
                sub = await provider.get_or_create_child(target, entry.name, EntryKind.FOLDER)
                assert isinstance(sub, FolderHandle)
                await self._copy_folder(entry.handle, sub)
            else:
                await self._copy_file(entry.handle, target, entry.name)

    async def _discard_partial(self, parent: FolderHandle, name: str) -> None:
        """Remove a half-written entry left behind by a failed multi-step operation."""
        try:
            await self._provider().remove(parent, name, recursive=True)
        except Exception as e:
            logger.warning(f"Failed to clean up partially written entry {name}: {e}")
        else:
            logger.debug(f"Cleaned up partially written entry {name}")

    async def _rebuild(self) -> None:
        provider = self._provider()
        assert self.root is not None
        try:
            forest, handles = await rebuild(
                provider, self.root, hidden_prefix=self.config.hidden_prefix
            )
        except Exception:
            # Leave an empty tree rather than a stale one.
            self.tree.replace_all((), root_id=self.root.name)
            self.handles = HandleCache({self.root.name: self.root})
            raise
        self.tree.replace_all(forest, root_id=self.root.name)
        self.handles = handles

    def _resolve_folder(self, folder_id: str) -> tuple[FolderHandle, str]:
        assert self.root is not None
        if self.tree.is_root(folder_id):
            return self.root, self.root.name
        handle = self.handles.get(folder_id, None)
        if handle is None:
            raise EntryNotFoundError(f"Parent directory not found for path: {folder_id}")
        if not isinstance(handle, FolderHandle):
            raise NotAFolderError(f"{folder_id} is a file, not a folder")
        return handle, folder_id

    def _provider(self) -> StorageProvider:
        if self.provider is None or self.root is None:
            raise NotConnectedError("Not connected to storage")
        return self.provider

    @contextlib.asynccontextmanager
    async def _single_flight(self, kind: OperationKind, target_id: str) -> AsyncIterator[None]:
        if self._lock.locked() and self.config.mutation_policy == "reject":
            assert self.in_flight is not None
            raise OperationInFlightError(
                f"Another operation ({self.in_flight.kind.value} {self.in_flight.target_id}) is in progress"
            )
        async with self._lock:
            self.in_flight = InFlight(kind, target_id)
            logger.debug(f"Started {kind.value} on {target_id!r}")
            try:
                yield
            finally:
                self.in_flight = None

    def _notify(self, message: str, kind: NotificationKind) -> None:
        self.notifier.notify(message, kind, self.config.notification_duration_ms)

    def _reset_ui_state(self) -> None:
        self.expanded.clear()
        self.rename_pending = None
        self._edit = None

    def _forget_ui_state(self, node_id: str) -> None:
        prefix = node_id + SEPARATOR
        self.expanded = {i for i in self.expanded if i != node_id and not i.startswith(prefix)}
        if self.rename_pending is not None and (
            self.rename_pending == node_id or self.rename_pending.startswith(prefix)
        ):
            self.rename_pending = None
        if self._edit is not None and (
            self._edit.node_id == node_id or self._edit.node_id.startswith(prefix)
        ):
            self._edit = None

    def _rekey_ui_state(self, old_id: str, new_id: str) -> None:
        prefix = old_id + SEPARATOR

        def _rekey(i: str) -> str:
            if i == old_id:
                return new_id
            if i.startswith(prefix):
                return new_id + i[len(old_id) :]
            return i

        self.expanded = {_rekey(i) for i in self.expanded}
        if self.rename_pending is not None:
            self.rename_pending = _rekey(self.rename_pending)
        if self._edit is not None:
            self._edit.node_id = _rekey(self._edit.node_id)

from nool.common import (
    SEPARATOR,
    VERSION,
    EntryExistsError,
    EntryKind,
    EntryNotFoundError,
    NoolError,
    NoolExpectedError,
    initialize_logging,
    join_id,
    split_id,
)
from nool.config import Config
from nool.engine import (
    EditState,
    InFlight,
    NotConnectedError,
    NotEditingError,
    OperationInFlightError,
    OperationKind,
    TreeService,
)
from nool.handles import HandleCache
from nool.memory import MemoryStorageProvider
from nool.names import InvalidNameError, ValidationError, allocate_name, validate_name
from nool.notify import LoggingNotifier, Notification, NotificationKind, Notifier
from nool.storage import (
    Entry,
    FileHandle,
    FolderHandle,
    Handle,
    LocalStorageProvider,
    Permission,
    StorageError,
    StorageProvider,
    UserCancelledError,
    WritePermissionError,
)
from nool.sync import rebuild
from nool.tree import Node, NotAFolderError, TreeModel
from nool.workspace import load_workspace, reset_workspace, save_workspace

__all__ = [
    # Plumbing
    "initialize_logging",
    "VERSION",
    # Errors
    "NoolError",
    "NoolExpectedError",
    "ValidationError",
    "InvalidNameError",
    "EntryNotFoundError",
    "EntryExistsError",
    "NotAFolderError",
    "StorageError",
    "WritePermissionError",
    "UserCancelledError",
    "NotConnectedError",
    "OperationInFlightError",
    "NotEditingError",
    # Configuration
    "Config",
    # Names
    "validate_name",
    "allocate_name",
    # Tree
    "SEPARATOR",
    "EntryKind",
    "Node",
    "TreeModel",
    "join_id",
    "split_id",
    # Storage
    "StorageProvider",
    "Permission",
    "Entry",
    "Handle",
    "FileHandle",
    "FolderHandle",
    "LocalStorageProvider",
    "MemoryStorageProvider",
    "HandleCache",
    "rebuild",
    # Engine
    "TreeService",
    "OperationKind",
    "InFlight",
    "EditState",
    # Notifications
    "Notifier",
    "Notification",
    "NotificationKind",
    "LoggingNotifier",
    # Virtual workspace
    "load_workspace",
    "save_workspace",
    "reset_workspace",
]

initialize_logging(__name__)

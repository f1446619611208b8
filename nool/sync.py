"""
The sync module derives the in-memory tree from storage. A rebuild walks the store from the root,
acquires a fresh handle for every visible entry, and computes every node id from the path it was
reached by. Nothing from a previous rebuild is reused, which is what keeps ids and handles coherent
after the engine has moved entries around with copy+delete.
"""

from __future__ import annotations

import logging

from nool.common import EntryKind, join_id
from nool.handles import HandleCache
from nool.storage import Entry, FolderHandle, Handle, StorageProvider
from nool.tree import Node

logger = logging.getLogger(__name__)

DEFAULT_HIDDEN_PREFIX = "."


async def rebuild(
    provider: StorageProvider,
    root: FolderHandle,
    root_id: str | None = None,
    hidden_prefix: str = DEFAULT_HIDDEN_PREFIX,
) -> tuple[tuple[Node, ...], HandleCache[Handle]]:
    """
    Walk the store under `root` and return the visible forest (the children of the root) along with
    a handle cache covering the root and every visible entry. Entries whose names begin with
    `hidden_prefix` are skipped, and so is everything beneath them.
    """
    root_id = root.name if root_id is None else root_id
    cache: HandleCache[Handle] = HandleCache()
    cache[root_id] = root
    forest = await _walk(provider, root, root_id, hidden_prefix, cache)
    logger.debug(f"Rebuilt tree at {root_id}: {len(cache) - 1} entries")
    return forest, cache


async def _walk(
    provider: StorageProvider,
    folder: FolderHandle,
    folder_id: str,
    hidden_prefix: str,
    cache: HandleCache[Handle],
) -> tuple[Node, ...]:
    children: list[Node] = []
    for entry in sorted(await provider.list_entries(folder), key=_sort_key):
        if hidden_prefix and entry.name.startswith(hidden_prefix):
            continue
        node_id = join_id(folder_id, entry.name)
        cache[node_id] = entry.handle
        if isinstance(entry.handle, FolderHandle):
            sub = await _walk(provider, entry.handle, node_id, hidden_prefix, cache)
            children.append(Node(id=node_id, name=entry.name, children=sub))
        else:
            children.append(Node(id=node_id, name=entry.name))
    return tuple(children)


def _sort_key(e: Entry) -> tuple[int, str]:
    # Folders first, then by name. Providers enumerate in whatever order they like.
    return (0 if e.kind == EntryKind.FOLDER else 1, e.name)

"""
The handles module holds the HandleCache: a dictionary from node id to the storage handle that was
acquired for that node during the last rebuild.

The cache is only trustworthy until the next structural change against storage. Rename is
synthesized from copy+delete, so every id under a renamed folder changes and every handle under it
points at a deleted entry. Rather than patching the cache, the engine discards it and rebuilds it
from storage after every real mutation. The only surgical operation offered here is
`drop_subtree`, which the engine uses right after a delete so that no stale handle can be observed
even if the following rebuild fails.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Generic, TypeVar

from nool.common import SEPARATOR

logger = logging.getLogger(__name__)

V = TypeVar("V")
T = TypeVar("T")


class HandleCache(Generic[V]):
    def __init__(self, entries: Mapping[str, V] | None = None):
        self.__backing: dict[str, V] = dict(entries or {})

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.__backing

    def __getitem__(self, node_id: str) -> V:
        return self.__backing[node_id]

    def __setitem__(self, node_id: str, handle: V) -> None:
        self.__backing[node_id] = handle

    def __delitem__(self, node_id: str) -> None:
        del self.__backing[node_id]

    def __len__(self) -> int:
        return len(self.__backing)

    def __iter__(self) -> Iterator[str]:
        return iter(self.__backing)

    def get(self, node_id: str, default: T) -> V | T:
        return self.__backing.get(node_id, default)

    def ids(self) -> set[str]:
        return set(self.__backing)

    def drop_subtree(self, node_id: str) -> list[str]:
        """Forget the handle of `node_id` and of every id beneath it. Returns the dropped ids."""
        prefix = node_id + SEPARATOR
        dropped = [k for k in self.__backing if k == node_id or k.startswith(prefix)]
        for k in dropped:
            del self.__backing[k]
        if dropped:
            logger.debug(f"Dropped {len(dropped)} cached handles under {node_id}")
        return dropped

    def clear(self) -> None:
        self.__backing.clear()

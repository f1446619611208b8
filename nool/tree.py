"""
The tree module holds the in-memory model of the hierarchy that the presentation layer renders.

Nodes are immutable. Every mutation on the TreeModel produces a new forest that shares all untouched
subtrees with the previous one, so a reader holding the old `forest` tuple keeps a consistent
snapshot of the previous revision.

A node's id is never assigned on its own: it is always `parent_id + SEPARATOR + name`, rooted at the
name of the root folder. Renaming or re-parenting a node therefore rewrites the ids of its whole
subtree.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, replace
from typing import Any

from nool.common import (
    SEPARATOR,
    EntryExistsError,
    EntryKind,
    EntryNotFoundError,
    NoolExpectedError,
    join_id,
    split_id,
)

logger = logging.getLogger(__name__)


class NotAFolderError(NoolExpectedError):
    pass


@dataclass(frozen=True, slots=True)
class Node:
    id: str
    name: str
    # Folders always carry a (possibly empty) tuple of children. Files carry None.
    children: tuple[Node, ...] | None = None

    @property
    def is_folder(self) -> bool:
        return self.children is not None

    @property
    def kind(self) -> EntryKind:
        return EntryKind.FOLDER if self.children is not None else EntryKind.FILE

    @classmethod
    def folder(cls, name: str, children: tuple[Node, ...] = (), parent_id: str = "") -> Node:
        return cls(id=join_id(parent_id, name), name=name, children=children)

    @classmethod
    def file(cls, name: str, parent_id: str = "") -> Node:
        return cls(id=join_id(parent_id, name), name=name)

    def reparent(self, parent_id: str, name: str | None = None) -> Node:
        """Return a copy placed under `parent_id` (optionally renamed), with all ids recomputed."""
        name = self.name if name is None else name
        new_id = join_id(parent_id, name)
        if self.children is None:
            return Node(id=new_id, name=name)
        return Node(
            id=new_id,
            name=name,
            children=tuple(c.reparent(new_id) for c in self.children),
        )

    def dump(self) -> dict[str, Any]:
        rv: dict[str, Any] = {"id": self.id, "name": self.name, "kind": self.kind.value}
        if self.children is not None:
            rv["children"] = [c.dump() for c in self.children]
        return rv


def _is_within(node_id: str, ancestor_id: str) -> bool:
    return node_id == ancestor_id or node_id.startswith(ancestor_id + SEPARATOR)


class TreeModel:
    def __init__(self, root_id: str = "") -> None:
        self._root_id = root_id
        self._forest: tuple[Node, ...] = ()
        # Bumped on every change so that readers can cheaply detect a new snapshot.
        self.revision = 0

    @property
    def root_id(self) -> str:
        return self._root_id

    @property
    def forest(self) -> tuple[Node, ...]:
        return self._forest

    def replace_all(self, forest: tuple[Node, ...] | list[Node], root_id: str | None = None) -> None:
        if root_id is not None:
            self._root_id = root_id
        self._forest = tuple(forest)
        self.revision += 1
        logger.debug(f"Replaced tree rooted at {self._root_id!r} (revision {self.revision})")

    def clear(self) -> None:
        self.replace_all((), root_id="")

    def iter_nodes(self) -> Iterator[Node]:
        """Depth-first, pre-order walk over every node in the forest."""
        stack = list(reversed(self._forest))
        while stack:
            node = stack.pop()
            yield node
            if node.children:
                stack.extend(reversed(node.children))

    def ids(self) -> set[str]:
        return {n.id for n in self.iter_nodes()}

    def find(self, node_id: str) -> Node | None:
        nodes = self._forest
        while nodes:
            for node in nodes:
                if node.id == node_id:
                    return node
                if node.children and _is_within(node_id, node.id):
                    nodes = node.children
                    break
            else:
                return None
        return None

    def is_root(self, node_id: str) -> bool:
        return node_id == "" or node_id == self._root_id

    def child_names(self, parent_id: str) -> list[str]:
        return [c.name for c in self._children_of(parent_id)]

    def _children_of(self, parent_id: str) -> tuple[Node, ...]:
        if self.is_root(parent_id):
            return self._forest
        parent = self.find(parent_id)
        if parent is None:
            raise EntryNotFoundError(f"Parent folder {parent_id} does not exist")
        if parent.children is None:
            raise NotAFolderError(f"{parent_id} is a file, not a folder")
        return parent.children

    def insert_child(self, parent_id: str, node: Node) -> Node:
        """
        Append `node` to the children of `parent_id`. The node is re-rooted under the parent, so the
        caller does not need to compute ids. Returns the inserted node.
        """
        siblings = self._children_of(parent_id)
        if any(s.name == node.name for s in siblings):
            raise EntryExistsError(f"An item named {node.name!r} already exists")
        placed = node.reparent(self._root_id if self.is_root(parent_id) else parent_id)

        if self.is_root(parent_id):
            self._commit(self._forest + (placed,))
        else:
            self._commit(
                _update(
                    self._forest,
                    parent_id,
                    lambda p: replace(p, children=(p.children or ()) + (placed,)),
                )
            )
        return placed

    def remove_by_id(self, node_id: str) -> Node:
        """Remove the node and, for folders, its entire subtree. Returns the removed node."""
        removed = self.find(node_id)
        if removed is None:
            raise EntryNotFoundError(f"{node_id} does not exist")
        self._commit(_update(self._forest, node_id, lambda _: None))
        return removed

    def rename_by_id(self, node_id: str, new_name: str) -> Node:
        """Rename in place and recompute the ids of the node and its descendants."""
        node = self.find(node_id)
        if node is None:
            raise EntryNotFoundError(f"{node_id} does not exist")
        if node.name == new_name:
            return node
        parent_id, _ = split_id(node_id)
        if any(s.name == new_name for s in self._children_of(parent_id)):
            raise EntryExistsError(f"An item named {new_name!r} already exists")
        renamed = node.reparent(parent_id, new_name)
        self._commit(_update(self._forest, node_id, lambda _: renamed))
        return renamed

    def _commit(self, forest: tuple[Node, ...]) -> None:
        self._forest = forest
        self.revision += 1


def _update(
    nodes: tuple[Node, ...],
    target_id: str,
    fn: Callable[[Node], Node | None],
) -> tuple[Node, ...]:
    """
    Copy-on-write update of the node with `target_id`: `fn` returns its replacement, or None to drop
    it. Only the nodes on the path from the root to the target are copied.
    """
    out: list[Node] = []
    for node in nodes:
        if node.id == target_id:
            new = fn(node)
            if new is not None:
                out.append(new)
        elif node.children and _is_within(target_id, node.id):
            out.append(replace(node, children=_update(node.children, target_id, fn)))
        else:
            out.append(node)
    return tuple(out)

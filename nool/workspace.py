"""
The workspace module persists the virtual tree between CLI invocations. A virtual tree otherwise
only lives as long as its TreeService, which for the CLI is a single command.

The tree is stored as TOML: a `nodes` array of tables, each with a `name`, a `kind`, and for folders
a nested `children` array. Ids are not stored; they are derived from the names on load, the same way
every other tree is built.
"""

import logging
import tomllib
from pathlib import Path
from typing import Any

import tomli_w

from nool.common import EntryKind, NoolExpectedError, join_id
from nool.config import Config
from nool.names import InvalidNameError, validate_name
from nool.tree import Node

logger = logging.getLogger(__name__)


class WorkspaceDecodeError(NoolExpectedError):
    pass


def load_workspace(c: Config) -> tuple[Node, ...]:
    path = c.virtual_workspace_path
    if not path.exists():
        logger.debug(f"No virtual workspace at {path}: starting empty")
        return ()
    try:
        with path.open("rb") as fp:
            data = tomllib.load(fp)
    except tomllib.TOMLDecodeError as e:
        raise WorkspaceDecodeError(f"Failed to decode virtual workspace {path}: invalid TOML: {e}") from e
    try:
        return _decode_nodes(data.get("nodes", []), c.virtual_root_name)
    except (KeyError, TypeError, ValueError) as e:
        raise WorkspaceDecodeError(f"Invalid virtual workspace {path}: {e}") from e


def save_workspace(c: Config, forest: tuple[Node, ...]) -> Path:
    path = c.virtual_workspace_path
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as fp:
        tomli_w.dump({"nodes": [_encode_node(n) for n in forest]}, fp)
    logger.debug(f"Saved virtual workspace to {path}")
    return path


def reset_workspace(c: Config) -> None:
    c.virtual_workspace_path.unlink(missing_ok=True)
    logger.info("Reset virtual workspace")


def _encode_node(node: Node) -> dict[str, Any]:
    rv: dict[str, Any] = {"name": node.name, "kind": node.kind.value}
    if node.children is not None:
        rv["children"] = [_encode_node(c) for c in node.children]
    return rv


def _decode_nodes(raw: list[dict[str, Any]], parent_id: str) -> tuple[Node, ...]:
    if not isinstance(raw, list):
        raise TypeError(f"Expected a list of nodes: got {type(raw)}")
    nodes: list[Node] = []
    seen: set[str] = set()
    for entry in raw:
        try:
            name = validate_name(entry["name"])
        except InvalidNameError as e:
            raise ValueError(f"Invalid node name {entry['name']!r}: {e.reason}") from e
        if name in seen:
            raise ValueError(f"Duplicate name {name!r} under {parent_id}")
        seen.add(name)
        node_id = join_id(parent_id, name)
        kind = EntryKind(entry["kind"])
        if kind == EntryKind.FOLDER:
            children = _decode_nodes(entry.get("children", []), node_id)
            nodes.append(Node(id=node_id, name=name, children=children))
        else:
            nodes.append(Node(id=node_id, name=name))
    return tuple(nodes)

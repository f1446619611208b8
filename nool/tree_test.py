import pytest

from nool.common import EntryExistsError, EntryKind, EntryNotFoundError
from nool.tree import Node, NotAFolderError, TreeModel


def _sample() -> TreeModel:
    t = TreeModel(root_id="root")
    t.replace_all(
        [
            Node.folder(
                "A",
                parent_id="root",
                children=(
                    Node.file("f.txt", parent_id="root/A"),
                    Node.folder(
                        "Sub",
                        parent_id="root/A",
                        children=(Node.file("g.txt", parent_id="root/A/Sub"),),
                    ),
                ),
            ),
            Node.file("top.tex", parent_id="root"),
        ]
    )
    return t


def _assert_ids_derive_from_names(nodes: tuple[Node, ...], parent_id: str) -> None:
    for n in nodes:
        assert n.id == f"{parent_id}/{n.name}"
        if n.children:
            _assert_ids_derive_from_names(n.children, n.id)


def test_node_kind() -> None:
    assert Node.folder("A").kind == EntryKind.FOLDER
    assert Node.folder("A").is_folder
    assert Node.file("a").kind == EntryKind.FILE
    assert not Node.file("a").is_folder
    # An empty folder is still a folder.
    assert Node.folder("A").children == ()


def test_node_reparent_recomputes_subtree_ids() -> None:
    n = Node.folder("A", parent_id="x", children=(Node.file("f", parent_id="x/A"),))
    moved = n.reparent("y", "B")
    assert moved.id == "y/B"
    assert moved.children is not None
    assert moved.children[0].id == "y/B/f"


def test_node_dump() -> None:
    n = Node.folder("A", parent_id="r", children=(Node.file("f", parent_id="r/A"),))
    assert n.dump() == {
        "id": "r/A",
        "name": "A",
        "kind": "folder",
        "children": [{"id": "r/A/f", "name": "f", "kind": "file"}],
    }


def test_find() -> None:
    t = _sample()
    found = t.find("root/A/Sub/g.txt")
    assert found is not None
    assert found.name == "g.txt"
    assert t.find("root/A") is not None
    assert t.find("root/missing") is None
    assert t.find("root/A/f.txt/x") is None
    assert t.find("root") is None


def test_empty_tree_is_not_falsy() -> None:
    assert TreeModel()


def test_iter_nodes_and_ids() -> None:
    t = _sample()
    assert [n.id for n in t.iter_nodes()] == [
        "root/A",
        "root/A/f.txt",
        "root/A/Sub",
        "root/A/Sub/g.txt",
        "root/top.tex",
    ]
    assert t.ids() == {"root/A", "root/A/f.txt", "root/A/Sub", "root/A/Sub/g.txt", "root/top.tex"}


def test_is_root_and_child_names() -> None:
    t = _sample()
    assert t.is_root("")
    assert t.is_root("root")
    assert not t.is_root("root/A")
    assert t.child_names("") == ["A", "top.tex"]
    assert t.child_names("root") == ["A", "top.tex"]
    assert t.child_names("root/A") == ["f.txt", "Sub"]
    with pytest.raises(EntryNotFoundError):
        t.child_names("root/nope")
    with pytest.raises(NotAFolderError):
        t.child_names("root/top.tex")


def test_replace_all_and_clear_bump_revision() -> None:
    t = _sample()
    rev = t.revision
    t.replace_all((), root_id="other")
    assert t.root_id == "other"
    assert t.forest == ()
    assert t.revision == rev + 1
    t.clear()
    assert t.root_id == ""
    assert t.revision == rev + 2


def test_insert_child_at_root() -> None:
    t = _sample()
    placed = t.insert_child("", Node.folder("New"))
    assert placed.id == "root/New"
    assert t.child_names("") == ["A", "top.tex", "New"]


def test_insert_child_nested_reparents_subtree() -> None:
    t = _sample()
    placed = t.insert_child("root/A/Sub", Node.folder("New", children=(Node.file("x"),)))
    assert placed.id == "root/A/Sub/New"
    assert t.find("root/A/Sub/New/x") is not None
    _assert_ids_derive_from_names(t.forest, "root")


def test_insert_child_rejects_sibling_collision() -> None:
    t = _sample()
    with pytest.raises(EntryExistsError):
        t.insert_child("root/A", Node.file("f.txt"))
    with pytest.raises(NotAFolderError):
        t.insert_child("root/top.tex", Node.file("x"))
    with pytest.raises(EntryNotFoundError):
        t.insert_child("root/nope", Node.file("x"))


def test_insert_is_copy_on_write() -> None:
    t = _sample()
    before = t.forest
    t.insert_child("root/A/Sub", Node.file("new.txt"))
    # The old snapshot is unchanged.
    assert [c.name for c in before[0].children or ()] == ["f.txt", "Sub"]
    assert before[0].children[1].children == (Node.file("g.txt", parent_id="root/A/Sub"),)  # type: ignore
    # The untouched sibling subtree is shared, not copied.
    assert t.forest[1] is before[1]
    assert t.forest[0].children[0] is before[0].children[0]  # type: ignore


def test_remove_by_id_removes_subtree() -> None:
    t = _sample()
    removed = t.remove_by_id("root/A")
    assert removed.name == "A"
    assert t.ids() == {"root/top.tex"}
    with pytest.raises(EntryNotFoundError):
        t.remove_by_id("root/A")


def test_rename_by_id_recomputes_descendants() -> None:
    t = _sample()
    renamed = t.rename_by_id("root/A", "B")
    assert renamed.id == "root/B"
    assert t.ids() == {"root/B", "root/B/f.txt", "root/B/Sub", "root/B/Sub/g.txt", "root/top.tex"}
    _assert_ids_derive_from_names(t.forest, "root")
    # Position among siblings is kept.
    assert t.child_names("") == ["B", "top.tex"]


def test_rename_by_id_same_name_is_noop() -> None:
    t = _sample()
    rev = t.revision
    t.rename_by_id("root/A", "A")
    assert t.revision == rev


def test_rename_by_id_rejects_collision() -> None:
    t = _sample()
    with pytest.raises(EntryExistsError):
        t.rename_by_id("root/A", "top.tex")
    with pytest.raises(EntryNotFoundError):
        t.rename_by_id("root/nope", "x")

import asyncio
from pathlib import Path

from nool.memory import MemoryStorageProvider
from nool.storage import FileHandle, FolderHandle, LocalStorageProvider
from nool.sync import rebuild
from nool.tree import Node


def _shape(nodes: tuple[Node, ...]) -> list[tuple[str, str, str, list]]:
    return [(n.id, n.name, n.kind.value, _shape(n.children or ())) for n in nodes]


def _seed(store: MemoryStorageProvider) -> None:
    store.seed("b.tex", b"b")
    store.seed("A/f.txt", b"f")
    store.seed("A/Sub/g.txt", b"g")
    store.seed("a.tex", b"a")
    store.seed("Empty")
    store.seed(".git/config", b"x")
    store.seed("A/.hidden", b"x")


def test_rebuild(memory_store: MemoryStorageProvider) -> None:
    _seed(memory_store)

    async def _run() -> None:
        root = await memory_store.connect()
        forest, handles = await rebuild(memory_store, root)
        assert _shape(forest) == [
            (
                "root/A",
                "A",
                "folder",
                [
                    ("root/A/Sub", "Sub", "folder", [("root/A/Sub/g.txt", "g.txt", "file", [])]),
                    ("root/A/f.txt", "f.txt", "file", []),
                ],
            ),
            ("root/Empty", "Empty", "folder", []),
            ("root/a.tex", "a.tex", "file", []),
            ("root/b.tex", "b.tex", "file", []),
        ]
        assert handles.ids() == {
            "root",
            "root/A",
            "root/A/Sub",
            "root/A/Sub/g.txt",
            "root/A/f.txt",
            "root/Empty",
            "root/a.tex",
            "root/b.tex",
        }
        assert handles["root"] is root
        assert isinstance(handles["root/A"], FolderHandle)
        assert isinstance(handles["root/a.tex"], FileHandle)

    asyncio.run(_run())


def test_rebuild_is_idempotent(memory_store: MemoryStorageProvider) -> None:
    _seed(memory_store)

    async def _run() -> None:
        root = await memory_store.connect()
        first, first_handles = await rebuild(memory_store, root)
        second, second_handles = await rebuild(memory_store, root)
        assert _shape(first) == _shape(second)
        assert first == second
        assert first_handles.ids() == second_handles.ids()

    asyncio.run(_run())


def test_rebuild_root_id_and_hidden_prefix(memory_store: MemoryStorageProvider) -> None:
    _seed(memory_store)

    async def _run() -> None:
        root = await memory_store.connect()
        forest, handles = await rebuild(memory_store, root, root_id="r", hidden_prefix="")
        assert [n.id for n in forest] == ["r/.git", "r/A", "r/Empty", "r/a.tex", "r/b.tex"]
        assert "r/A/.hidden" in handles
        assert "r" in handles

    asyncio.run(_run())


def test_rebuild_empty_store(memory_store: MemoryStorageProvider) -> None:
    async def _run() -> None:
        root = await memory_store.connect()
        forest, handles = await rebuild(memory_store, root)
        assert forest == ()
        assert handles.ids() == {"root"}

    asyncio.run(_run())


def test_rebuild_does_not_follow_symlinks(local_root: Path) -> None:
    (local_root / "A").mkdir()
    (local_root / "A" / "f.txt").write_text("f")
    (local_root / "A" / "back").symlink_to(local_root)
    (local_root / "self").symlink_to(local_root)
    provider = LocalStorageProvider(local_root)

    async def _run() -> None:
        root = await provider.connect()
        forest, handles = await rebuild(provider, root)
        assert _shape(forest) == [
            (
                "root/A",
                "A",
                "folder",
                [
                    ("root/A/back", "back", "file", []),
                    ("root/A/f.txt", "f.txt", "file", []),
                ],
            ),
            ("root/self", "self", "file", []),
        ]
        assert handles.ids() == {"root", "root/A", "root/A/back", "root/A/f.txt", "root/self"}

    asyncio.run(_run())

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeFileSystem
from nodian.workspace import TreeNode, TreeStore, WorkspaceIOError


def _file(path: str) -> TreeNode:
    return TreeNode(name=path.rsplit("/", 1)[-1], path=path, is_dir=False)


def _dir(path: str, *children: TreeNode) -> TreeNode:
    return TreeNode(name=path.rsplit("/", 1)[-1], path=path, is_dir=True, children=children)


class ScriptedTreeFileSystem(FakeFileSystem):
    """Returns queued snapshots, each released by its own event."""

    def __init__(self) -> None:
        super().__init__(directories=["/ws"])
        self.responses: list[tuple[asyncio.Event, TreeNode | OSError]] = []

    async def get_file_tree(self, path: str) -> TreeNode:
        self.calls.append(("get_file_tree", path))
        gate, response = self.responses.pop(0)
        await gate.wait()
        if isinstance(response, OSError):
            raise response
        return response


@pytest.mark.asyncio()
async def test_reload_builds_unique_paths(fs: FakeFileSystem) -> None:
    store = TreeStore(fs)
    root = await store.reload("/ws")

    assert root is not None
    all_paths = [node.path for node in root.walk()]
    assert len(all_paths) == len(set(all_paths))
    assert sorted(store.all_paths()) == sorted(all_paths)
    assert store.find("/ws/docs/c.md") is not None


def test_sorted_children_puts_directories_first() -> None:
    root = _dir(
        "/ws",
        _file("/ws/b.md"),
        _dir("/ws/zeta"),
        _file("/ws/A.md"),
        _dir("/ws/alpha"),
        _file("/ws/a.md"),
    )

    names = [child.name for child in TreeStore.sorted_children(root)]

    assert names == ["alpha", "zeta", "A.md", "a.md", "b.md"]


def test_sorted_children_of_file_or_missing_node_is_empty() -> None:
    assert TreeStore.sorted_children(None) == []
    assert TreeStore.sorted_children(_file("/ws/a.md")) == []


@pytest.mark.asyncio()
async def test_toggle_expand_only_for_directories(fs: FakeFileSystem) -> None:
    store = TreeStore(fs)
    await store.reload("/ws")

    assert store.toggle_expand("/ws/docs")
    assert store.is_expanded("/ws/docs")
    assert store.toggle_expand("/ws/docs")
    assert not store.is_expanded("/ws/docs")

    assert not store.toggle_expand("/ws/a.md")
    assert not store.toggle_expand("/ws/gone")
    assert store.selection.expanded_paths == set()


@pytest.mark.asyncio()
async def test_expand_all_and_collapse_all(fs: FakeFileSystem) -> None:
    store = TreeStore(fs)
    await store.reload("/ws")

    store.expand_all()
    assert store.selection.expanded_paths == {"/ws", "/ws/docs", "/ws/empty"}

    store.collapse_all()
    assert store.selection.expanded_paths == set()


@pytest.mark.asyncio()
async def test_missing_nodes_are_absent_not_errors(fs: FakeFileSystem) -> None:
    store = TreeStore(fs)
    await store.reload("/ws")
    store.select("/ws/removed.md")

    assert store.find("/ws/removed.md") is None
    assert store.selected_node() is None
    assert "/ws/removed.md" not in store


@pytest.mark.asyncio()
async def test_stale_reload_result_is_discarded() -> None:
    fs = ScriptedTreeFileSystem()
    first_gate, second_gate = asyncio.Event(), asyncio.Event()
    fs.responses = [
        (first_gate, _dir("/ws", _file("/ws/old.md"))),
        (second_gate, _dir("/ws", _file("/ws/new.md"))),
    ]
    store = TreeStore(fs)

    first = asyncio.create_task(store.reload("/ws"))
    await asyncio.sleep(0)
    second = asyncio.create_task(store.reload("/ws"))
    await asyncio.sleep(0)

    second_gate.set()
    assert await second is not None
    first_gate.set()
    assert await first is None

    assert store.find("/ws/new.md") is not None
    assert store.find("/ws/old.md") is None


@pytest.mark.asyncio()
async def test_stale_reload_failure_is_not_raised() -> None:
    fs = ScriptedTreeFileSystem()
    first_gate, second_gate = asyncio.Event(), asyncio.Event()
    fs.responses = [
        (first_gate, PermissionError("denied")),
        (second_gate, _dir("/ws", _file("/ws/new.md"))),
    ]
    store = TreeStore(fs)

    first = asyncio.create_task(store.reload("/ws"))
    await asyncio.sleep(0)
    second = asyncio.create_task(store.reload("/ws"))
    await asyncio.sleep(0)

    second_gate.set()
    await second
    first_gate.set()
    assert await first is None
    assert store.find("/ws/new.md") is not None


@pytest.mark.asyncio()
async def test_reset_invalidates_in_flight_reload() -> None:
    fs = ScriptedTreeFileSystem()
    gate = asyncio.Event()
    fs.responses = [(gate, _dir("/ws", _file("/ws/old.md")))]
    store = TreeStore(fs)

    pending = asyncio.create_task(store.reload("/ws"))
    await asyncio.sleep(0)
    store.reset()
    gate.set()

    assert await pending is None
    assert store.root is None


@pytest.mark.asyncio()
async def test_failed_reload_keeps_previous_tree(fs: FakeFileSystem) -> None:
    store = TreeStore(fs)
    await store.reload("/ws")
    fs.failures["get_file_tree"] = PermissionError("denied")

    with pytest.raises(WorkspaceIOError) as excinfo:
        await store.reload("/ws")

    assert excinfo.value.operation == "reload"
    assert excinfo.value.path == "/ws"
    assert store.find("/ws/a.md") is not None


@pytest.mark.asyncio()
async def test_rebase_and_forget_paths(fs: FakeFileSystem) -> None:
    store = TreeStore(fs)
    await store.reload("/ws")
    store.expand("/ws/docs")
    store.select("/ws/docs/c.md")

    store.rebase_paths("/ws/docs", "/ws/notes")
    assert store.selection.selected_path == "/ws/notes/c.md"
    assert store.selection.expanded_paths == {"/ws/notes"}

    store.forget_paths("/ws/notes")
    assert store.selection.selected_path is None
    assert store.selection.expanded_paths == set()

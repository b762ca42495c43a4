from __future__ import annotations

import asyncio
from collections.abc import Iterable

import pytest

from nodian.services.persistence import MemoryStore
from nodian.workspace import WorkspaceController
from nodian.workspace import paths
from nodian.workspace.tree import TreeNode


class FakeFileSystem:
    """In-memory filesystem service with call recording, failure injection and gates."""

    def __init__(
        self,
        files: dict[str, str] | None = None,
        directories: Iterable[str] = (),
        default_root: str = "/ws",
    ) -> None:
        self.default_root = default_root
        self.files: dict[str, str] = dict(files or {})
        self.directories: set[str] = set(directories)
        for path in list(self.files) + list(self.directories):
            parent = paths.parent_of(path)
            while parent and parent != "/":
                self.directories.add(parent)
                parent = paths.parent_of(parent)
        self.calls: list[tuple[str, ...]] = []
        self.failures: dict[str, OSError] = {}
        self._gates: dict[str, asyncio.Event] = {}

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    def hold(self, operation: str) -> None:
        self._gates[operation] = asyncio.Event()

    def release(self, operation: str) -> None:
        gate = self._gates.pop(operation, None)
        if gate is not None:
            gate.set()

    async def _enter(self, operation: str, *args: str) -> None:
        self.calls.append((operation, *args))
        gate = self._gates.get(operation)
        if gate is not None:
            await gate.wait()
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def _exists(self, path: str) -> bool:
        return path in self.files or path in self.directories

    def _children_of(self, path: str) -> list[str]:
        entries = [entry for entry in (*self.directories, *self.files) if paths.parent_of(entry) == path]
        return sorted(entries, reverse=True)

    def _build(self, path: str) -> TreeNode:
        if path in self.directories:
            children = tuple(self._build(child) for child in self._children_of(path))
            return TreeNode(name=paths.basename(path), path=path, is_dir=True, children=children)
        return TreeNode(name=paths.basename(path), path=path, is_dir=False)

    async def get_root_folder(self) -> str:
        await self._enter("get_root_folder")
        self.directories.add(self.default_root)
        return self.default_root

    async def is_directory(self, path: str) -> bool:
        await self._enter("is_directory", path)
        return path in self.directories

    async def get_file_tree(self, path: str) -> TreeNode:
        await self._enter("get_file_tree", path)
        if path not in self.directories:
            raise FileNotFoundError(path)
        return self._build(path)

    async def read_file(self, path: str) -> str:
        await self._enter("read_file", path)
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    async def write_file(self, path: str, content: str) -> None:
        await self._enter("write_file", path, content)
        if paths.parent_of(path) not in self.directories:
            raise FileNotFoundError(path)
        self.files[path] = content

    async def create_file(self, path: str) -> None:
        await self._enter("create_file", path)
        if self._exists(path):
            raise FileExistsError(path)
        if paths.parent_of(path) not in self.directories:
            raise FileNotFoundError(path)
        self.files[path] = ""

    async def create_directory(self, path: str) -> None:
        await self._enter("create_directory", path)
        if self._exists(path):
            raise FileExistsError(path)
        if paths.parent_of(path) not in self.directories:
            raise FileNotFoundError(path)
        self.directories.add(path)

    async def rename_item(self, old_path: str, new_path: str) -> None:
        await self._enter("rename_item", old_path, new_path)
        if not self._exists(old_path):
            raise FileNotFoundError(old_path)
        if self._exists(new_path):
            raise FileExistsError(new_path)
        self.files = {paths.rebase(p, old_path, new_path) or p: c for p, c in self.files.items()}
        self.directories = {paths.rebase(p, old_path, new_path) or p for p in self.directories}

    async def delete_item(self, path: str) -> None:
        await self._enter("delete_item", path)
        if not self._exists(path):
            raise FileNotFoundError(path)
        self.files = {p: c for p, c in self.files.items() if not paths.is_same_or_child(p, path)}
        self.directories = {p for p in self.directories if not paths.is_same_or_child(p, path)}


@pytest.fixture
def fs() -> FakeFileSystem:
    return FakeFileSystem(
        files={
            "/ws/a.md": "hello",
            "/ws/b.md": "bee",
            "/ws/docs/c.md": "sea",
            "/other/x.md": "ex",
        },
        directories=["/ws/empty"],
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def controller(fs: FakeFileSystem, store: MemoryStore) -> WorkspaceController:
    return WorkspaceController(fs, store)

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from nodian.workspace import paths
from nodian.workspace.errors import WorkspaceIOError, guard_io

if TYPE_CHECKING:
    from nodian.services.filesystem import FileSystemService

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class TreeNode:
    """One file or directory of the mirrored workspace.

    Children keep the order the backing store returned them in; use
    ``TreeStore.sorted_children`` for display order.
    """

    name: str
    path: str
    is_dir: bool
    children: tuple["TreeNode", ...] = ()

    def walk(self) -> Iterator["TreeNode"]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class SelectionState:
    selected_path: str | None = None
    expanded_paths: set[str] = field(default_factory=set)


class TreeStore:
    def __init__(self, filesystem: FileSystemService) -> None:
        self._filesystem = filesystem
        self._root: TreeNode | None = None
        self._index: dict[str, TreeNode] = {}
        self._reload_seq = 0
        self.selection = SelectionState()

    @property
    def root(self) -> TreeNode | None:
        return self._root

    async def reload(self, root_path: str) -> TreeNode | None:
        """Fetch the whole tree under ``root_path`` and replace the current one.

        Returns None when a newer reload (or a reset) was issued while this
        one was in flight; its result is dropped.
        """
        self._reload_seq += 1
        seq = self._reload_seq
        try:
            async with guard_io("reload", root_path):
                fetched = await self._filesystem.get_file_tree(root_path)
        except WorkspaceIOError:
            if seq != self._reload_seq:
                logger.debug("[tree] Dropped failed stale reload #%d of %s", seq, root_path)
                return None
            raise

        if seq != self._reload_seq:
            logger.debug("[tree] Dropped stale reload #%d of %s", seq, root_path)
            return None

        self._replace(fetched)
        logger.debug("[tree] Reloaded %s (%d entries)", root_path, len(self._index))
        return fetched

    def reset(self) -> None:
        self._reload_seq += 1
        self._root = None
        self._index = {}
        self.selection = SelectionState()

    def _replace(self, root: TreeNode) -> None:
        index: dict[str, TreeNode] = {}
        for node in root.walk():
            if node.path in index:
                logger.warning("[tree] Duplicate path in snapshot: %s", node.path)
                continue
            index[node.path] = node
        self._root = root
        self._index = index

    def find(self, path: str | None) -> TreeNode | None:
        if path is None:
            return None
        return self._index.get(paths.normalize(path))

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.find(path) is not None

    def all_paths(self) -> list[str]:
        return list(self._index)

    def directory_paths(self) -> set[str]:
        return {path for path, node in self._index.items() if node.is_dir}

    @staticmethod
    def sorted_children(node: TreeNode | None) -> list[TreeNode]:
        if node is None or not node.is_dir:
            return []
        return sorted(node.children, key=lambda child: (not child.is_dir, child.name))

    def is_expanded(self, path: str) -> bool:
        return paths.normalize(path) in self.selection.expanded_paths

    def toggle_expand(self, path: str) -> bool:
        node = self.find(path)
        if node is None or not node.is_dir:
            return False
        expanded = self.selection.expanded_paths
        if node.path in expanded:
            expanded.discard(node.path)
        else:
            expanded.add(node.path)
        return True

    def expand(self, path: str) -> None:
        self.selection.expanded_paths.add(paths.normalize(path))

    def expand_all(self) -> None:
        self.selection.expanded_paths = self.directory_paths()

    def collapse_all(self) -> None:
        self.selection.expanded_paths = set()

    def select(self, path: str | None) -> None:
        self.selection.selected_path = paths.normalize(path) if path is not None else None

    def clear_selection(self) -> None:
        self.selection.selected_path = None

    def selected_node(self) -> TreeNode | None:
        return self.find(self.selection.selected_path)

    def rebase_paths(self, old_path: str, new_path: str) -> None:
        selected = self.selection.selected_path
        if selected is not None:
            moved = paths.rebase(selected, old_path, new_path)
            if moved is not None:
                self.selection.selected_path = moved

        expanded: set[str] = set()
        for path in self.selection.expanded_paths:
            moved = paths.rebase(path, old_path, new_path)
            expanded.add(moved if moved is not None else path)
        self.selection.expanded_paths = expanded

    def forget_paths(self, removed_path: str) -> None:
        selected = self.selection.selected_path
        if selected is not None and paths.is_same_or_child(selected, removed_path):
            self.selection.selected_path = None
        self.selection.expanded_paths = {
            path for path in self.selection.expanded_paths if not paths.is_same_or_child(path, removed_path)
        }

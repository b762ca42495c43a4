from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from nodian.workspace import paths
from nodian.workspace.errors import InvalidNameError, RootMutationError, StaleReferenceError, guard_io
from nodian.workspace.tree import NodeKind

if TYPE_CHECKING:
    from nodian.workspace.controller import WorkspaceController

logger = logging.getLogger(__name__)

_FORBIDDEN_NAME_CHARACTERS = ("/", "\\")


def validate_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned or cleaned in {".", ".."} or any(char in cleaned for char in _FORBIDDEN_NAME_CHARACTERS):
        raise InvalidNameError(name)
    return cleaned


class MutationPipeline:
    """Create, rename and delete entries of the workspace.

    Each operation calls the filesystem first. The document set, the
    selection and the tree are only touched once that call has succeeded.
    """

    def __init__(self, controller: WorkspaceController) -> None:
        self._controller = controller

    @property
    def _root(self) -> str:
        root = self._controller.root_path
        if root is None:
            raise StaleReferenceError("<no workspace>")
        return root

    def _ensure_inside_workspace(self, path: str) -> str:
        normalized = paths.normalize(path)
        if not paths.is_same_or_child(normalized, self._root):
            raise StaleReferenceError(normalized)
        return normalized

    def _ensure_not_root(self, path: str, operation: str) -> None:
        if path == paths.normalize(self._root):
            raise RootMutationError(path, operation)

    def _workspace_replaced(self, generation: int, path: str) -> bool:
        if generation == self._controller.root_generation:
            return False
        logger.info("[file] Workspace changed while updating %s; view left as is", path)
        return True

    async def create(self, parent_path: str, name: str, kind: NodeKind) -> str:
        parent = self._ensure_inside_workspace(parent_path)
        target = paths.join(parent, validate_name(name))
        filesystem = self._controller.filesystem
        generation = self._controller.root_generation

        async with guard_io("create", target):
            if kind is NodeKind.DIRECTORY:
                await filesystem.create_directory(target)
            else:
                await filesystem.create_file(target)
        label = "folder" if kind is NodeKind.DIRECTORY else "file"
        logger.info("[file] Created %s: %s", label, target)
        if self._workspace_replaced(generation, target):
            return target

        self._controller.tree.expand(parent)
        await self._controller.reload()
        return target

    async def rename(self, old_path: str, new_path: str) -> str:
        source = self._ensure_inside_workspace(old_path)
        target = self._ensure_inside_workspace(new_path)
        self._ensure_not_root(source, "rename")
        if source == target:
            return target

        generation = self._controller.root_generation
        async with guard_io("rename", source):
            await self._controller.filesystem.rename_item(source, target)
        logger.info("[file] Renamed: %s -> %s", source, target)
        if self._workspace_replaced(generation, source):
            return target

        self._controller.documents.rename(source, target)
        self._controller.tree.rebase_paths(source, target)
        self._controller.persist_session()
        await self._controller.reload()
        return target

    async def rename_to(self, old_path: str, new_name: str) -> str:
        source = paths.normalize(old_path)
        target = paths.join(paths.parent_of(source), validate_name(new_name))
        return await self.rename(source, target)

    async def delete(self, path: str) -> None:
        target = self._ensure_inside_workspace(path)
        self._ensure_not_root(target, "delete")
        generation = self._controller.root_generation

        async with guard_io("delete", target):
            await self._controller.filesystem.delete_item(target)
        logger.info("[file] Deleted: %s", target)
        if self._workspace_replaced(generation, target):
            return

        self._controller.documents.close_under(target)
        self._controller.tree.forget_paths(target)
        self._controller.persist_session()
        await self._controller.reload()

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from nodian.workspace import paths
from nodian.workspace.documents import DocumentSet, OpenDocument
from nodian.workspace.errors import InvalidRootError, WorkspaceIOError, guard_io
from nodian.workspace.tree import TreeNode, TreeStore

if TYPE_CHECKING:
    from nodian.services.filesystem import FileSystemService
    from nodian.services.persistence import KeyValueStore

logger = logging.getLogger(__name__)

ROOT_KEY = "workspace.root"
OPEN_FILES_KEY = "workspace.open_files"
SELECTED_FILE_KEY = "workspace.selected_file"


class WorkspaceController:
    def __init__(
        self,
        filesystem: FileSystemService,
        store: KeyValueStore,
        restore_session: bool = True,
    ) -> None:
        self.filesystem = filesystem
        self.store = store
        self.restore_session = restore_session
        self.root_path: str | None = None
        self.tree = TreeStore(filesystem)
        self.documents = DocumentSet(filesystem, on_change=self.persist_session)
        self._paused_generation: int | None = None
        # Bumped by every root request; only the latest one may apply.
        self._root_request = 0
        # Bumped whenever a root is applied; work started under an older value is stale.
        self._root_generation = 0

    @property
    def root_generation(self) -> int:
        return self._root_generation

    async def set_root(self, new_path: str) -> TreeNode | None:
        """Switch the workspace to ``new_path``.

        Returns None when a later root request superseded this one while the
        path was being checked.
        """
        normalized = paths.normalize(new_path)
        self._root_request += 1
        request = self._root_request
        if not await self._is_usable_root(normalized):
            raise InvalidRootError(normalized)
        if request != self._root_request:
            logger.debug("[workspace] Dropped superseded open of %s", normalized)
            return None

        self._apply_root(normalized)
        self.persist_session()
        return await self.tree.reload(normalized)

    def _apply_root(self, root: str) -> None:
        self._root_generation += 1
        self._paused_generation = self._root_generation
        try:
            self.documents.clear()
        finally:
            self._paused_generation = None
        self.tree.reset()
        self.root_path = root
        self.store.set(ROOT_KEY, root)
        logger.info("[workspace] Opened folder: %s", root)

    async def _is_usable_root(self, path: str) -> bool:
        try:
            return await self.filesystem.is_directory(path)
        except OSError as exc:
            logger.warning("[workspace] Could not check %s: %s", path, exc)
            return False

    async def load_initial_root(self) -> TreeNode | None:
        """Open the remembered root (or the default folder) and restore the session.

        Returns None, leaving the newer workspace alone, when ``set_root``
        was called before startup finished.
        """
        self._root_request += 1
        request = self._root_request
        stored_root = self.store.get(ROOT_KEY)
        root: str | None = None
        if stored_root and await self._is_usable_root(stored_root):
            root = paths.normalize(stored_root)
        elif stored_root:
            logger.info("[workspace] Stored folder is gone, using default: %s", stored_root)

        if root is None:
            async with guard_io("open", "default workspace folder"):
                root = paths.normalize(await self.filesystem.get_root_folder())
        if request != self._root_request:
            logger.debug("[workspace] Dropped superseded startup open of %s", root)
            return None

        open_files = self._stored_open_files() if self.restore_session else []
        selected = self.store.get(SELECTED_FILE_KEY) if self.restore_session else None

        self._apply_root(root)
        generation = self._root_generation
        tree = await self.tree.reload(root)
        if generation != self._root_generation:
            return None
        await self._restore_documents(root, open_files, selected, generation)
        if generation != self._root_generation:
            return None
        self.persist_session()
        return tree

    def _stored_open_files(self) -> list[str]:
        raw_value = self.store.get(OPEN_FILES_KEY)
        if not raw_value:
            return []
        try:
            payload = json.loads(raw_value)
        except json.JSONDecodeError as exc:
            logger.warning("[session] Invalid open file list: %s", exc)
            return []
        if not isinstance(payload, list):
            return []
        return [value for value in payload if isinstance(value, str) and value]

    async def _restore_documents(
        self,
        root: str,
        open_files: list[str],
        selected: str | None,
        generation: int,
    ) -> None:
        restorable = [
            paths.normalize(path)
            for path in open_files
            if paths.is_same_or_child(path, root) and paths.normalize(path) != root
        ]
        if selected and paths.is_same_or_child(selected, root) and paths.normalize(selected) != root:
            selected = paths.normalize(selected)
        else:
            selected = None

        self._paused_generation = generation
        try:
            results = await asyncio.gather(
                *(self.documents.open(path) for path in dict.fromkeys(restorable)),
                return_exceptions=True,
            )
            if generation != self._root_generation:
                logger.debug("[session] Dropped restore for replaced folder: %s", root)
                return
            for result in results:
                if isinstance(result, WorkspaceIOError):
                    logger.warning("[session] %s", result)
                elif isinstance(result, BaseException):
                    raise result

            if selected is not None:
                self.tree.select(selected)
                if selected in self.documents:
                    self.documents.activate(selected)
        finally:
            if self._paused_generation == generation:
                self._paused_generation = None

        if restorable:
            logger.info("[session] Restored %d open file(s)", len(self.documents))

    async def reload(self) -> TreeNode | None:
        if self.root_path is None:
            return None
        return await self.tree.reload(self.root_path)

    async def select(self, path: str) -> TreeNode | None:
        """Handle a click on a tree entry.

        Directories toggle expansion; files become the selection and are
        opened. A path missing from the current tree is ignored.
        """
        node = self.tree.find(path)
        if node is None:
            logger.debug("[tree] Ignored selection of missing path: %s", path)
            return None
        if node.is_dir:
            self.tree.toggle_expand(node.path)
            return node

        self.tree.select(node.path)
        self.persist_session()
        await self.documents.open(node.path)
        return node

    async def open_document(self, path: str) -> OpenDocument:
        self.tree.select(path)
        return await self.documents.open(path)

    def activate(self, path: str) -> OpenDocument:
        document = self.documents.activate(path)
        self.tree.select(document.path)
        self.persist_session()
        return document

    def edit(self, path: str, content: str) -> None:
        self.documents.edit(path, content)

    async def save(self, path: str) -> bool:
        return await self.documents.save(path)

    async def save_all(self) -> list[WorkspaceIOError]:
        failures: list[WorkspaceIOError] = []
        for path in self.documents.dirty_paths():
            try:
                await self.documents.save(path)
            except WorkspaceIOError as exc:
                logger.warning("[editor] %s", exc)
                failures.append(exc)
        return failures

    def close(self, path: str) -> bool:
        return self.documents.close(path)

    def persist_session(self) -> None:
        if self._paused_generation == self._root_generation:
            return
        self.store.set(OPEN_FILES_KEY, json.dumps(self.documents.open_order))
        selected = self.tree.selection.selected_path
        if selected is None:
            self.store.delete(SELECTED_FILE_KEY)
        else:
            self.store.set(SELECTED_FILE_KEY, selected)

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from nodian.workspace import paths
from nodian.workspace.errors import StaleReferenceError, WorkspaceIOError, guard_io

if TYPE_CHECKING:
    from nodian.services.filesystem import FileSystemService

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class OpenDocument:
    path: str
    content: str = ""
    is_dirty: bool = False
    is_loaded: bool = False
    revision: int = field(default=0, repr=False)

    @property
    def display_name(self) -> str:
        return paths.basename(self.path)


class DocumentSet:
    """The files currently open in the editor, keyed by path.

    ``on_change`` fires whenever ``open_order`` or ``active_path`` changes;
    content edits do not trigger it.
    """

    def __init__(
        self,
        filesystem: FileSystemService,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._filesystem = filesystem
        self._on_change = on_change
        self._documents: dict[str, OpenDocument] = {}
        self._open_order: list[str] = []
        self._active_path: str | None = None
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._generation = 0

    @property
    def open_order(self) -> list[str]:
        return list(self._open_order)

    @property
    def active_path(self) -> str | None:
        return self._active_path

    @property
    def active_document(self) -> OpenDocument | None:
        if self._active_path is None:
            return None
        return self._documents.get(self._active_path)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and paths.normalize(path) in self._documents

    def __len__(self) -> int:
        return len(self._open_order)

    def get(self, path: str) -> OpenDocument | None:
        return self._documents.get(paths.normalize(path))

    def documents(self) -> list[OpenDocument]:
        return [self._documents[path] for path in self._open_order]

    def dirty_paths(self) -> list[str]:
        return [path for path in self._open_order if self._documents[path].is_dirty]

    def is_pending(self, path: str) -> bool:
        return paths.normalize(path) in self._pending

    def _require(self, path: str) -> OpenDocument:
        document = self.get(path)
        if document is None:
            raise StaleReferenceError(path)
        return document

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def activate(self, path: str) -> OpenDocument:
        document = self._require(path)
        if self._active_path != document.path:
            self._active_path = document.path
            self._notify()
        return document

    async def open(self, path: str) -> OpenDocument:
        """Open ``path`` (or focus it if already open) and wait for its content.

        A read failure is raised to every caller waiting on the fetch, but the
        tab stays open with empty, clean content.
        """
        key = paths.normalize(path)
        existing = self._documents.get(key)
        if existing is not None:
            self.activate(key)
            pending = self._pending.get(key)
            if pending is not None:
                await asyncio.shield(pending)
            return existing

        document = OpenDocument(path=key)
        self._documents[key] = document
        self._open_order.append(key)
        self._active_path = key
        self._notify()
        logger.info("[editor] Opened file: %s", key)

        task = asyncio.ensure_future(self._fetch(document, self._generation))
        task.add_done_callback(self._on_fetch_done)
        self._pending[key] = task
        await asyncio.shield(task)
        return document

    async def _fetch(self, document: OpenDocument, generation: int) -> None:
        path = document.path
        try:
            async with guard_io("read", path):
                content = await self._filesystem.read_file(path)
        except WorkspaceIOError:
            logger.warning("[editor] Could not load %s", path)
            raise

        if generation != self._generation or self._documents.get(document.path) is not document:
            logger.debug("[editor] Dropped content for closed document: %s", path)
            return
        if document.is_dirty:
            logger.debug("[editor] Kept local edits over late content for %s", document.path)
        else:
            document.content = content
        document.is_loaded = True

    def _on_fetch_done(self, task: asyncio.Task[None]) -> None:
        for key, pending in list(self._pending.items()):
            if pending is task:
                del self._pending[key]
        if not task.cancelled():
            task.exception()

    def edit(self, path: str, content: str) -> None:
        document = self._require(path)
        document.content = content
        document.is_dirty = True
        document.revision += 1

    async def save(self, path: str) -> bool:
        """Write the document's content; returns False when there was nothing to write."""
        document = self._require(path)
        if not document.is_loaded and not document.is_dirty:
            logger.info("[editor] Skipped save of unloaded file: %s", document.path)
            return False

        target = document.path
        revision = document.revision
        content = document.content
        async with guard_io("write", target):
            await self._filesystem.write_file(target, content)

        if document.path != target:
            logger.warning("[editor] %s moved to %s while saving; still unsaved", target, document.path)
        elif document.revision == revision:
            document.is_dirty = False
        document.is_loaded = True
        logger.info("[editor] Saved file: %s", target)
        return True

    def close(self, path: str) -> bool:
        key = paths.normalize(path)
        if key not in self._documents:
            return False

        index = self._open_order.index(key)
        del self._documents[key]
        del self._open_order[index]
        self._pending.pop(key, None)

        if self._active_path == key:
            if index > 0:
                self._active_path = self._open_order[index - 1]
            elif self._open_order:
                self._active_path = self._open_order[0]
            else:
                self._active_path = None

        self._notify()
        logger.info("[editor] Closed file: %s", key)
        return True

    def close_under(self, path: str) -> list[str]:
        closed = [key for key in self._open_order if paths.is_same_or_child(key, path)]
        for key in closed:
            self.close(key)
        return closed

    def rename(self, old_path: str, new_path: str) -> list[str]:
        """Move every document at or under ``old_path`` to ``new_path``.

        Returns the new paths of the moved documents. A document already open
        at a target path is replaced by the moved one.
        """
        moved: dict[str, str] = {}
        for key in self._open_order:
            target = paths.rebase(key, old_path, new_path)
            if target is not None:
                moved[key] = target
        if not moved:
            return []

        targets = set(moved.values())
        documents: dict[str, OpenDocument] = {}
        order: list[str] = []
        pending: dict[str, asyncio.Task[None]] = {}
        for key in self._open_order:
            document = self._documents[key]
            target = moved.get(key)
            if target is None:
                if key in targets:
                    continue
                target = key
            document.path = target
            documents[target] = document
            order.append(target)
            if key in self._pending:
                pending[target] = self._pending[key]

        if self._active_path is not None:
            self._active_path = moved.get(self._active_path, self._active_path)
        self._documents = documents
        self._open_order = order
        self._pending = pending
        self._notify()
        return [moved[key] for key in moved]

    def clear(self) -> None:
        self._generation += 1
        self._documents.clear()
        self._open_order.clear()
        self._pending.clear()
        self._active_path = None
        self._notify()

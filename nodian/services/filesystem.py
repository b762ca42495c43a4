from __future__ import annotations

import asyncio
import logging
import os
import shutil
from typing import Protocol

from nodian.workspace import paths
from nodian.workspace.tree import TreeNode

logger = logging.getLogger(__name__)

DEFAULT_ROOT_DIR_NAME = "nodian"


class FileSystemService(Protocol):
    """Backing store mirrored by the workspace. Failures raise ``OSError``."""

    async def get_root_folder(self) -> str: ...

    async def is_directory(self, path: str) -> bool: ...

    async def get_file_tree(self, path: str) -> TreeNode: ...

    async def read_file(self, path: str) -> str: ...

    async def write_file(self, path: str, content: str) -> None: ...

    async def create_file(self, path: str) -> None: ...

    async def create_directory(self, path: str) -> None: ...

    async def rename_item(self, old_path: str, new_path: str) -> None: ...

    async def delete_item(self, path: str) -> None: ...


def to_workspace_path(path: str) -> str:
    return paths.normalize(os.path.abspath(path))


class LocalFileSystem:
    def __init__(self, default_root: str | None = None) -> None:
        self._default_root = default_root or os.path.join(os.path.expanduser("~"), DEFAULT_ROOT_DIR_NAME)

    async def get_root_folder(self) -> str:
        return await asyncio.to_thread(self._ensure_default_root)

    def _ensure_default_root(self) -> str:
        root = os.path.abspath(os.path.expanduser(self._default_root))
        if not os.path.isdir(root):
            os.makedirs(root, exist_ok=True)
            logger.info("[workspace] Created default folder: %s", root)
        return to_workspace_path(root)

    async def is_directory(self, path: str) -> bool:
        return await asyncio.to_thread(os.path.isdir, path)

    async def get_file_tree(self, path: str) -> TreeNode:
        return await asyncio.to_thread(self._build_root, path)

    def _build_root(self, path: str) -> TreeNode:
        absolute_path = os.path.abspath(path)
        if not os.path.isdir(absolute_path):
            raise NotADirectoryError(f"Not a directory: {absolute_path}")
        with os.scandir(absolute_path) as entries:
            children = tuple(self._build_entry(entry) for entry in entries)
        normalized = to_workspace_path(absolute_path)
        return TreeNode(
            name=paths.basename(normalized),
            path=normalized,
            is_dir=True,
            children=children,
        )

    def _build_entry(self, entry: os.DirEntry[str]) -> TreeNode:
        entry_path = to_workspace_path(entry.path)
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False
        if not is_dir:
            return TreeNode(name=entry.name, path=entry_path, is_dir=False)

        try:
            with os.scandir(entry.path) as entries:
                children = tuple(self._build_entry(child) for child in entries)
        except OSError as exc:
            logger.info("[tree] Could not read directory %s: %s", entry_path, exc)
            children = ()
        return TreeNode(name=entry.name, path=entry_path, is_dir=True, children=children)

    async def read_file(self, path: str) -> str:
        return await asyncio.to_thread(self._read_text_file, path)

    @staticmethod
    def _read_text_file(file_path: str) -> str:
        with open(file_path, "rb") as handle:
            raw = handle.read()

        for encoding in ("utf-8-sig", "utf-8", "cp1252"):
            try:
                return raw.decode(encoding)
            except UnicodeDecodeError:
                continue
        return raw.decode("utf-8", errors="replace")

    async def write_file(self, path: str, content: str) -> None:
        await asyncio.to_thread(self._write_text_file, path, content)

    @staticmethod
    def _write_text_file(file_path: str, content: str) -> None:
        with open(file_path, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)

    async def create_file(self, path: str) -> None:
        await asyncio.to_thread(self._create_empty_file, path)

    @staticmethod
    def _create_empty_file(file_path: str) -> None:
        with open(file_path, "x", encoding="utf-8"):
            pass

    async def create_directory(self, path: str) -> None:
        await asyncio.to_thread(os.mkdir, path)

    async def rename_item(self, old_path: str, new_path: str) -> None:
        await asyncio.to_thread(self._rename, old_path, new_path)

    @staticmethod
    def _rename(old_path: str, new_path: str) -> None:
        if os.path.exists(new_path):
            raise FileExistsError(f"Target already exists: {new_path}")
        os.rename(old_path, new_path)

    async def delete_item(self, path: str) -> None:
        await asyncio.to_thread(self._delete, path)

    @staticmethod
    def _delete(target_path: str) -> None:
        if os.path.isdir(target_path) and not os.path.islink(target_path):
            shutil.rmtree(target_path)
        else:
            os.remove(target_path)

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class WorkspaceError(Exception):
    pass


class WorkspaceIOError(WorkspaceError):
    """A backing-store call failed.

    ``operation`` names the call ("read", "write", "create", "rename",
    "delete", "reload") and ``path`` its target, so a caller can render
    a message without inspecting the cause.
    """

    def __init__(self, operation: str, path: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.path = path
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation.capitalize()} failed: {path}{detail}")


class InvalidRootError(WorkspaceError):
    def __init__(self, path: str, reason: str = "not a directory") -> None:
        self.path = path
        super().__init__(f"Invalid workspace root: {path} ({reason})")


class StaleReferenceError(WorkspaceError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Path is no longer part of the workspace: {path}")


class InvalidNameError(WorkspaceError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid file or folder name: {name!r}")


class RootMutationError(WorkspaceError):
    def __init__(self, path: str, operation: str) -> None:
        self.path = path
        self.operation = operation
        super().__init__(f"{operation.capitalize()} of the workspace root is not supported: {path}")


@asynccontextmanager
async def guard_io(operation: str, path: str) -> AsyncIterator[None]:
    try:
        yield
    except OSError as exc:
        raise WorkspaceIOError(operation, path, exc) from exc

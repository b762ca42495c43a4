from nodian.workspace.controller import WorkspaceController
from nodian.workspace.documents import DocumentSet, OpenDocument
from nodian.workspace.errors import (
    InvalidNameError,
    InvalidRootError,
    RootMutationError,
    StaleReferenceError,
    WorkspaceError,
    WorkspaceIOError,
)
from nodian.workspace.mutations import MutationPipeline
from nodian.workspace.tree import NodeKind, SelectionState, TreeNode, TreeStore

__all__ = [
    "DocumentSet",
    "InvalidNameError",
    "InvalidRootError",
    "MutationPipeline",
    "NodeKind",
    "OpenDocument",
    "RootMutationError",
    "SelectionState",
    "StaleReferenceError",
    "TreeNode",
    "TreeStore",
    "WorkspaceController",
    "WorkspaceError",
    "WorkspaceIOError",
]

from __future__ import annotations

SEPARATOR = "/"


def normalize(path: str) -> str:
    normalized = path.replace("\\", SEPARATOR)
    if len(normalized) > 1:
        normalized = normalized.rstrip(SEPARATOR) or SEPARATOR
    return normalized


def join(parent: str, name: str) -> str:
    parent = normalize(parent)
    if parent.endswith(SEPARATOR):
        return f"{parent}{name}"
    return f"{parent}{SEPARATOR}{name}"


def basename(path: str) -> str:
    normalized = normalize(path)
    return normalized.rsplit(SEPARATOR, 1)[-1] or normalized


def parent_of(path: str) -> str:
    normalized = normalize(path)
    head, sep, _tail = normalized.rpartition(SEPARATOR)
    if not sep:
        return ""
    return head or SEPARATOR


def is_same_or_child(candidate: str, parent: str) -> bool:
    candidate = normalize(candidate)
    parent = normalize(parent)
    if candidate == parent:
        return True
    prefix = parent if parent.endswith(SEPARATOR) else parent + SEPARATOR
    return candidate.startswith(prefix)


def rebase(path: str, old_prefix: str, new_prefix: str) -> str | None:
    """Move ``path`` from under ``old_prefix`` to ``new_prefix``.

    Returns None when ``path`` is neither ``old_prefix`` nor one of its
    descendants.
    """
    path = normalize(path)
    old_prefix = normalize(old_prefix)
    new_prefix = normalize(new_prefix)
    if path == old_prefix:
        return new_prefix
    if not is_same_or_child(path, old_prefix):
        return None
    return join(new_prefix, path[len(old_prefix) :].lstrip(SEPARATOR))

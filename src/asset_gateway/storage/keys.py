"""Mapping from client asset ids to bucket object names."""

import re

DEFAULT_PREFIX = "uploads"

_DISALLOWED = re.compile(r"[^a-zA-Z0-9_-]+")


def strip_extension(filename: str) -> str:
    """Drop the display extension, if any.

    Only the final ``.``-delimited segment is removed, so ``"a.b.png"``
    becomes ``"a.b"``.

    Args:
        filename: Client supplied asset id

    Returns:
        The id without its last extension
    """
    head, dot, _ = filename.rpartition(".")
    return head if dot else filename


def resolve_object_name(asset_id: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Resolve a client asset id to its storage key.

    Every run of characters outside ``[A-Za-z0-9_-]`` collapses into a
    single underscore, and the result is namespaced under ``prefix``.

    Args:
        asset_id: Client supplied asset id, possibly with an extension
        prefix: Key namespace inside the bucket

    Returns:
        Storage key, e.g. ``"uploads/my_photo_"`` for ``"my photo!!.jpg"``
    """
    name = _DISALLOWED.sub("_", strip_extension(asset_id))
    return f"{prefix}/{name}"

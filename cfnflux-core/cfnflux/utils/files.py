import contextlib
import logging
import os
import shutil
import tempfile
from typing import Iterator

LOG = logging.getLogger(__name__)


class UnsafePathError(ValueError):
    """Raised when a relative path would escape the directory it is joined to."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{message}: {path}")
        self.path = path


def mkdir(folder: str):
    if not os.path.exists(folder):
        os.makedirs(folder, exist_ok=True)


def rm_rf(path: str):
    """
    Recursively removes a file or directory
    """
    if not path or not os.path.lexists(path):
        return
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


@contextlib.contextmanager
def tmp_dir(prefix: str = None) -> Iterator[str]:
    """Creates a new temporary directory which is removed when the context is left, however it is left."""
    folder = tempfile.mkdtemp(prefix=prefix)
    try:
        yield folder
    finally:
        try:
            rm_rf(folder)
        except OSError as e:
            LOG.warning("Unable to remove temporary directory %s: %s", folder, e)


def is_within(root: str, path: str) -> bool:
    """Whether the real location of ``path`` is ``root`` or lies underneath it."""
    root = os.path.realpath(root)
    path = os.path.realpath(path)
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def secure_join(root: str, path: str) -> str:
    """
    Joins the relative ``path`` to ``root`` and makes sure the result does not escape ``root``, neither
    lexically (absolute paths, ``..`` segments) nor through symbolic links inside ``root``.

    :param root: the directory to join to
    :param path: the untrusted relative path
    :return: the resolved absolute path, which may or may not exist
    :raises UnsafePathError: if the path is absolute, contains ``..`` or resolves outside of ``root``
    """
    if not path or not path.strip():
        raise UnsafePathError(path, "path is empty")
    if os.path.isabs(path) or path.startswith(("/", "\\")):
        raise UnsafePathError(path, "absolute paths are not allowed")

    segments = path.replace("\\", "/").split("/")
    if ".." in segments:
        raise UnsafePathError(path, "path traversal is not allowed")

    joined = os.path.join(root, *[s for s in segments if s not in ("", ".")])
    if not is_within(root, joined):
        raise UnsafePathError(path, "path resolves outside of the root directory")
    return os.path.realpath(joined)

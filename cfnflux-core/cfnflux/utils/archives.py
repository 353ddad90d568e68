import io
import logging
import os
import posixpath
import tarfile
from typing import List

from .files import UnsafePathError, mkdir

LOG = logging.getLogger(__name__)


def _is_safe_member_path(name: str) -> bool:
    if not name or name.startswith(("/", "\\")) or os.path.isabs(name):
        return False
    normalized = posixpath.normpath(name.replace("\\", "/"))
    return normalized != ".." and not normalized.startswith("../")


def _safe_members(tar: tarfile.TarFile) -> List[tarfile.TarInfo]:
    members = []
    for member in tar.getmembers():
        if not _is_safe_member_path(member.name):
            raise UnsafePathError(member.name, "archive entry escapes the extraction directory")
        if member.issym() or member.islnk():
            # link targets are resolved relative to the link (symlink) or the archive root (hardlink)
            base = posixpath.dirname(member.name) if member.issym() else ""
            target = posixpath.join(base, member.linkname)
            if member.linkname.startswith("/") or not _is_safe_member_path(target):
                raise UnsafePathError(member.name, "archive link points outside of the extraction directory")
        elif not (member.isfile() or member.isdir()):
            LOG.debug("Skipping special archive entry %s", member.name)
            continue
        members.append(member)
    return members


def untar(data: bytes, target_dir: str) -> None:
    """
    Extracts a (optionally gzip-compressed) tarball held in memory into ``target_dir``. Entries with absolute
    paths, ``..`` segments, or links pointing out of ``target_dir`` abort the extraction.

    :raises tarfile.TarError: if the data is not a valid tarball
    :raises UnsafePathError: if the tarball contains an entry that would escape ``target_dir``
    """
    mkdir(target_dir)
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
        members = _safe_members(tar)
        if hasattr(tarfile, "data_filter"):
            tar.extractall(path=target_dir, members=members, filter="data")
        else:
            tar.extractall(path=target_dir, members=members)

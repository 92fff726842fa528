"""
Package archives (gzip-compressed tar)

pack() builds the archive published to a registry; extract() streams one
back onto disk. Extraction is not transactional: on error, whatever was
written so far stays in place.
"""

import fnmatch
import os
import shutil
import tarfile
from pathlib import Path
from typing import BinaryIO, Iterable, Union

from .config import MODULES_DIR

DEFAULT_EXCLUDES = (".git", MODULES_DIR, "__pycache__", "*.tar.gz")

ARCHIVE_SUFFIXES = (".tar.gz", ".tgz")


class UnsafeArchiveError(tarfile.TarError):
    """Archive member would be written outside the destination"""
    pass


def is_archive(path: Union[str, Path]) -> bool:
    return str(path).endswith(ARCHIVE_SUFFIXES)


def pack(
    source_dir: Union[str, Path],
    dest: Union[str, Path],
    exclude: Iterable[str] = DEFAULT_EXCLUDES
) -> Path:
    """Archive the contents of source_dir (not the directory itself) into dest"""
    source_dir = Path(source_dir)
    dest = Path(dest)
    patterns = tuple(exclude)

    def skip(name: str) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)

    def member_filter(info: tarfile.TarInfo):
        return None if skip(Path(info.name).name) else info

    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, "w:gz") as tar:
        for item in sorted(source_dir.iterdir()):
            if skip(item.name) or item.resolve() == dest.resolve():
                continue
            tar.add(item, arcname=item.name, filter=member_filter)

    return dest


def extract(stream: BinaryIO, dest_dir: Union[str, Path]) -> int:
    """
    Extract a .tar.gz stream into dest_dir

    Directories are created with mode 0755, regular files are written
    (truncating existing ones) with the member's permission bits, and every
    other member type is skipped. Stops at the first error.

    Returns the number of members written.
    """
    dest_root = Path(dest_dir).resolve()
    dest_root.mkdir(parents=True, exist_ok=True)
    written = 0

    with tarfile.open(fileobj=stream, mode="r|gz") as tar:
        for member in tar:
            if not (member.isdir() or member.isreg()):
                continue

            target = _member_path(dest_root, member.name)

            if member.isdir():
                target.mkdir(mode=0o755, parents=True, exist_ok=True)
            else:
                target.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
                source = tar.extractfile(member)
                with open(target, "wb") as out:
                    shutil.copyfileobj(source, out)
                os.chmod(target, member.mode & 0o7777)

            written += 1

    return written


def _member_path(dest_root: Path, name: str) -> Path:
    target = (dest_root / name).resolve()
    if target != dest_root and dest_root not in target.parents:
        raise UnsafeArchiveError(f"archive member escapes destination: {name}")
    return target

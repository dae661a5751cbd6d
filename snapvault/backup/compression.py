"""
Archive builder for snapshots.

Walks the source tree, selects files according to a SnapshotPlan and streams
them into a single ZIP archive named ``{identity}_{YYYY-MM-DD_HH-MM-SS}.zip``.
The archive is written as ``<name>.zip.part`` and renamed once complete, so
an interrupted build never leaves a file that looks like an archive. A failed
build never leaves a file behind in the output directory.
"""

import logging
import os
import re
import stat
import zipfile
from datetime import datetime
from typing import Iterable, Iterator, NamedTuple, Tuple

from snapvault.utils.timeutil import from_timestamp
from .planner import SnapshotPlan


logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = '.zip'
PARTIAL_SUFFIX = '.part'
TIMESTAMP_FORMAT = '%Y-%m-%d_%H-%M-%S'

# {identity}_{YYYY-MM-DD_HH-MM-SS}[_{n}].zip
ARCHIVE_NAME_RE = re.compile(
    r'^(?P<identity>.+)_(?P<timestamp>\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2})(?:_(?P<n>\d+))?\.zip$'
)


class ArchiveError(Exception):
    """Raised when archive creation fails."""
    pass


class ArchiveResult(NamedTuple):
    path: str
    size_bytes: int
    file_count: int


def sanitize_identity(identity: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    return "".join(
        c if c.isalnum() or c in ('-', '_', '.') else '_'
        for c in identity
    ) or 'backup'


def generate_archive_basename(identity: str, moment: datetime) -> str:
    """
    Generate the archive name without extension.

    The timestamp sorts lexicographically in chronological order.

    Args:
        identity: Source tree identity
        moment: Time of the snapshot

    Returns:
        Name such as "world_2024-01-15_12-00-00"
    """
    return f"{sanitize_identity(identity)}_{moment.strftime(TIMESTAMP_FORMAT)}"


def find_available_name(output_dir: str, basename: str, extension: str = ARCHIVE_EXTENSION) -> str:
    """
    Find a file name in output_dir that does not exist yet.

    Appends ``_1``, ``_2``, ... to the basename until the name is free.

    Returns:
        File name (without directory)
    """
    candidate = f"{basename}{extension}"
    counter = 0
    while os.path.lexists(os.path.join(output_dir, candidate)):
        counter += 1
        candidate = f"{basename}_{counter}{extension}"
    return candidate


def is_archive_name(filename: str) -> bool:
    return ARCHIVE_NAME_RE.match(filename) is not None


def _raise_walk_error(error: OSError):
    raise error


def iter_source_files(
    source_root: str,
    plan: SnapshotPlan,
    skip_names: Iterable[str] = ('session.lock',),
    prefix: str = ''
) -> Iterator[Tuple[str, str]]:
    """
    Yield the files of a source tree that belong in a snapshot.

    Only regular files are yielded; directories and symlinks are skipped.
    Any error while walking the tree propagates.

    Args:
        source_root: Root directory of the source tree
        plan: Plan whose selection predicate is applied to each file
        skip_names: File names owned by the source owner (locks, markers)
        prefix: Leading directory for archive entry names

    Yields:
        (absolute file path, archive entry name) tuples; entry names always
        use forward slashes
    """
    skip = set(skip_names)

    for directory, dirnames, filenames in os.walk(source_root, onerror=_raise_walk_error):
        dirnames.sort()
        for name in sorted(filenames):
            if name in skip:
                continue

            file_path = os.path.join(directory, name)
            info = os.lstat(file_path)
            if not stat.S_ISREG(info.st_mode):
                continue

            if not plan.includes(from_timestamp(info.st_mtime)):
                continue

            relative = os.path.relpath(file_path, source_root).replace(os.sep, '/')
            arcname = f"{prefix}/{relative}" if prefix else relative
            yield file_path, arcname


def _compression_args(compression_level: int) -> dict:
    if compression_level == 0:
        return {'compression': zipfile.ZIP_STORED}
    if compression_level < 0:
        return {'compression': zipfile.ZIP_DEFLATED}
    return {'compression': zipfile.ZIP_DEFLATED, 'compresslevel': compression_level}


def _remove_partial(archive_path: str):
    try:
        os.remove(archive_path)
        logger.info(f"Removed partial archive {archive_path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to remove partial archive {archive_path}: {e}")


def build_archive(
    source_root: str,
    output_dir: str,
    plan: SnapshotPlan,
    identity: str,
    moment: datetime,
    compression_level: int = -1,
    skip_names: Iterable[str] = ('session.lock',)
) -> ArchiveResult:
    """
    Create a snapshot archive of a source tree.

    The caller must hold the source owner's quiescence token for the whole
    call.

    Args:
        source_root: Directory to snapshot
        output_dir: Directory receiving the archive (created if missing)
        plan: Snapshot plan (full or incremental with cutoff)
        identity: Source identity, used in the archive name and as the
            top-level directory of every entry
        moment: Snapshot time used in the archive name
        compression_level: 0 stores, 1-9 deflate, -1 library default
        skip_names: Lock/marker file names never archived

    Returns:
        ArchiveResult with the archive path, its on-disk size and the number
        of files written

    Raises:
        ArchiveError: If the output directory cannot be created, the source
            tree cannot be read, or writing fails. No archive is left behind.
    """
    if not -1 <= compression_level <= 9:
        raise ArchiveError(f"Invalid compression level: {compression_level}")

    if not os.path.isdir(source_root):
        raise ArchiveError(f"Source directory does not exist: {source_root}")

    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as e:
        raise ArchiveError(f"Failed to create output directory {output_dir}: {e}")

    prefix = os.path.basename(os.path.normpath(source_root))
    filename = find_available_name(output_dir, generate_archive_basename(identity, moment))
    archive_path = os.path.join(output_dir, filename)
    # Written under a non-archive name so an interrupted build is never
    # counted by retention
    part_path = archive_path + PARTIAL_SUFFIX
    _remove_partial(part_path)

    try:
        # 'x' never overwrites an existing file
        zipf = zipfile.ZipFile(
            part_path, 'x', strict_timestamps=False, **_compression_args(compression_level)
        )
    except OSError as e:
        raise ArchiveError(f"Failed to open archive {part_path}: {e}")

    file_count = 0
    try:
        for file_path, arcname in iter_source_files(source_root, plan, skip_names, prefix):
            if os.path.abspath(file_path) == os.path.abspath(part_path):
                continue
            zipf.write(file_path, arcname)
            file_count += 1
    except Exception as e:
        try:
            zipf.close()
        except Exception as close_error:
            logger.warning(f"Error closing archive after failure: {close_error}")
        _remove_partial(part_path)
        raise ArchiveError(f"Failed to create archive: {e}") from e

    try:
        zipf.close()
    except Exception as e:
        _remove_partial(part_path)
        raise ArchiveError(f"Failed to finalize archive: {e}") from e

    try:
        if os.path.lexists(archive_path):
            raise FileExistsError(17, 'File exists', archive_path)
        os.replace(part_path, archive_path)
    except OSError as e:
        _remove_partial(part_path)
        raise ArchiveError(f"Failed to finalize archive: {e}") from e

    size = get_archive_size(archive_path)
    logger.info(f"Archive {filename} written with {file_count} files ({size} bytes)")
    return ArchiveResult(archive_path, size, file_count)


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        ArchiveError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise ArchiveError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise ArchiveError(f"Failed to get archive size: {e}")

"""
Retention policy enforcement for snapshot archives.

Two independent passes keep the output directory bounded:
- by count, before a new archive is built (leaves room for it)
- by total size, after the new archive is built (never deletes the last one)

Only files whose names follow the archive naming convention are counted or
deleted. Directory contents are re-read on every pass.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from snapvault.utils.timeutil import from_timestamp, utcnow
from snapvault.utils.units import format_size
from .compression import is_archive_name


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveDescriptor:
    path: str
    size_bytes: int
    modified_at: datetime
    mtime_ns: int

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def sort_key(self):
        # Oldest first; equal mtimes fall back to name order
        return (self.mtime_ns, self.name)


@dataclass
class RetentionResult:
    deleted: List[str] = field(default_factory=list)
    freed_bytes: int = 0
    remaining_count: int = 0
    remaining_bytes: int = 0
    cannot_reclaim: bool = False
    errors: List[str] = field(default_factory=list)


def list_archives(output_dir: str) -> List[ArchiveDescriptor]:
    """
    List archive files directly inside output_dir, oldest first.

    Args:
        output_dir: Directory holding the archives

    Returns:
        List of ArchiveDescriptor; empty if the directory does not exist
    """
    archives = []

    try:
        with os.scandir(output_dir) as entries:
            for entry in entries:
                if not is_archive_name(entry.name):
                    continue
                try:
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    info = entry.stat(follow_symlinks=False)
                except FileNotFoundError:
                    # Removed between listing and stat
                    continue
                except OSError as e:
                    logger.error(f"Failed to read archive {entry.path}: {e}")
                    continue
                archives.append(ArchiveDescriptor(
                    path=entry.path,
                    size_bytes=info.st_size,
                    modified_at=from_timestamp(info.st_mtime),
                    mtime_ns=info.st_mtime_ns
                ))
    except (FileNotFoundError, NotADirectoryError):
        return []
    except OSError as e:
        logger.error(f"Failed to list archives in {output_dir}: {e}")
        return []

    archives.sort(key=lambda a: a.sort_key)
    return archives


def total_size(output_dir: str) -> int:
    """Total bytes of all archives in output_dir."""
    return sum(a.size_bytes for a in list_archives(output_dir))


class RetentionManager:
    """
    Enforces archive count and size limits on the output directory.

    Both passes are idempotent and never raise for files that vanish or
    refuse deletion. A vanished file counts as deleted; a file that refuses
    deletion is logged and still counted as present.
    """

    def __init__(self):
        """Initialize retention manager."""
        self.logs = []

    def enforce_count(self, output_dir: str, max_count: int, headroom: int = 1) -> RetentionResult:
        """
        Delete the oldest archives until fewer than max_count remain.

        With the default headroom of 1 this runs before a new archive is
        built: a directory already holding max_count archives is trimmed to
        max_count - 1. With headroom=0 at most max_count archives are kept.

        Args:
            output_dir: Directory holding the archives
            max_count: Maximum number of archives to keep (>= 1)
            headroom: Slots to keep free for archives about to be written

        Returns:
            RetentionResult describing what was deleted
        """
        if max_count < 1:
            raise ValueError("max_count must be at least 1")

        archives = list_archives(output_dir)
        limit = max(max_count - headroom, 0)
        result = RetentionResult()

        excess = max(len(archives) - limit, 0)
        remaining = list(archives)
        for oldest in archives[:excess]:
            if self._delete(oldest, result):
                remaining.remove(oldest)

        result.remaining_count = len(remaining)
        result.remaining_bytes = sum(a.size_bytes for a in remaining)

        if result.deleted:
            self._log(f"Count retention: deleted {len(result.deleted)} archive(s), {len(remaining)} left")
        return result

    def enforce_size(self, output_dir: str, max_bytes: int) -> RetentionResult:
        """
        Delete the oldest archives until the total size fits max_bytes.

        The newest archive is never deleted; if it alone exceeds max_bytes
        the result is flagged with cannot_reclaim. Archives that refuse
        deletion still count towards the total and the pass moves on to the
        next oldest.

        Args:
            output_dir: Directory holding the archives
            max_bytes: Maximum total size in bytes (0 = unlimited)

        Returns:
            RetentionResult describing what was deleted
        """
        if max_bytes < 0:
            raise ValueError("max_bytes cannot be negative")

        archives = list_archives(output_dir)
        total = sum(a.size_bytes for a in archives)
        result = RetentionResult()

        remaining = list(archives)

        if max_bytes > 0:
            for oldest in archives[:-1]:
                if total <= max_bytes:
                    break
                if self._delete(oldest, result):
                    remaining.remove(oldest)
                    total -= oldest.size_bytes

            if total > max_bytes:
                if len(remaining) == 1:
                    result.cannot_reclaim = True
                    self._log(
                        f"Cannot delete old files to save disk space. Only one backup file left! "
                        f"({format_size(total)} > {format_size(max_bytes)})",
                        level=logging.WARNING
                    )
                else:
                    self._log(
                        f"Size limit still exceeded after {len(result.errors)} failed deletion(s) "
                        f"({format_size(total)} > {format_size(max_bytes)})",
                        level=logging.WARNING
                    )

        result.remaining_count = len(remaining)
        result.remaining_bytes = total

        if result.deleted:
            self._log(
                f"Size retention: deleted {len(result.deleted)} archive(s), "
                f"freed {format_size(result.freed_bytes)}, {format_size(total)} left"
            )
        return result

    def _delete(self, archive: ArchiveDescriptor, result: RetentionResult) -> bool:
        """
        Delete one archive.

        Returns:
            True if the archive no longer exists, False if deletion failed
        """
        try:
            os.remove(archive.path)
            self._log(f"Successfully deleted \"{archive.name}\"")
        except FileNotFoundError:
            self._log(f"Archive \"{archive.name}\" already gone")
        except OSError as e:
            error_msg = f"Failed to delete \"{archive.name}\": {e}"
            self._log(error_msg, level=logging.ERROR)
            result.errors.append(error_msg)
            return False

        result.deleted.append(archive.path)
        result.freed_bytes += archive.size_bytes
        return True

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)

"""
Source owners for snapshot operations.

A source owner controls the live directory tree being backed up. Before a
snapshot is taken the orchestrator asks it for a quiescence token, which
guarantees the tree is not structurally mutated (no save in progress) until
the token is released.
"""

import logging
import os
import threading
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional


logger = logging.getLogger(__name__)


class QuiescenceError(Exception):
    """Raised when the source owner cannot freeze the tree."""
    pass


class QuiescenceToken:
    """Capability handed out by a source owner while the tree is frozen."""

    def __init__(self, owner_identity: str):
        self.owner_identity = owner_identity
        self.token_id = uuid.uuid4().hex
        self.released = False

    def __repr__(self):
        return f'<QuiescenceToken {self.owner_identity} {self.token_id[:8]} released={self.released}>'


class DirectorySource:
    """
    Source owner for a directory on the local filesystem.

    The host application wraps every flush of the tree in ``saving()``;
    snapshots and saves then exclude each other through the same lock.
    """

    def __init__(self, root_path: str, identity: Optional[str] = None, timeout: float = 30.0):
        """
        Initialize directory source.

        Args:
            root_path: Directory holding the live data
            identity: Name used for archives and state; defaults to the
                directory name
            timeout: Seconds to wait for a running save before giving up
        """
        self._root_path = os.path.abspath(os.path.expanduser(root_path))
        self._identity = identity or os.path.basename(self._root_path.rstrip(os.sep)) or 'backup'
        self.timeout = timeout
        self._save_lock = threading.Lock()
        self._active_token = None

    @property
    def root_path(self) -> str:
        return self._root_path

    @property
    def identity(self) -> str:
        return self._identity

    def acquire_quiescence(self) -> QuiescenceToken:
        """
        Freeze the tree for a snapshot.

        Returns:
            QuiescenceToken to pass back to release()

        Raises:
            QuiescenceError: If the tree is missing or a save does not
                finish within the timeout
        """
        if not os.path.isdir(self._root_path):
            raise QuiescenceError(f"Source directory does not exist: {self._root_path}")

        if not self._save_lock.acquire(timeout=self.timeout):
            raise QuiescenceError(
                f"Timed out after {self.timeout}s waiting for {self._identity} to finish saving"
            )

        token = QuiescenceToken(self._identity)
        self._active_token = token
        logger.debug(f"Quiescence acquired for {self._identity}")
        return token

    def release(self, token: QuiescenceToken):
        """
        Unfreeze the tree.

        Releasing a token twice, or a token this source did not issue, is
        a no-op.
        """
        if token is None or token.released or token is not self._active_token:
            return

        token.released = True
        self._active_token = None
        self._save_lock.release()
        logger.debug(f"Quiescence released for {self._identity}")

    @contextmanager
    def saving(self) -> Iterator[None]:
        """Context manager the host holds while writing to the tree."""
        with self._save_lock:
            yield

    @property
    def is_quiesced(self) -> bool:
        return self._active_token is not None

"""
Backup module for Snapvault.

This module handles the core snapshot functionality including:
- Snapshot planning (full or incremental)
- Archive creation
- Retention by archive count and total size
- Run orchestration
"""

from .planner import SnapshotPlan, plan_snapshot
from .compression import build_archive, ArchiveError
from .retention import RetentionManager, list_archives
from .sources import DirectorySource, QuiescenceError
from .executor import BackupExecutor
from .orchestrator import BackupOrchestrator

__all__ = [
    'SnapshotPlan',
    'plan_snapshot',
    'build_archive',
    'ArchiveError',
    'RetentionManager',
    'list_archives',
    'DirectorySource',
    'QuiescenceError',
    'BackupExecutor',
    'BackupOrchestrator'
]

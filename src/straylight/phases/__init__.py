"""The four install phases, in the order ``run`` executes them."""
from __future__ import annotations

from .commit import CommitResult, Committer
from .snapshot import SnapshotManager
from .stage import StageResult, Stager, StagingArea, latest_staging_area
from .verify import Finding, FindingLevel, Verifier, VerifyReport

__all__ = [
    "CommitResult",
    "Committer",
    "Finding",
    "FindingLevel",
    "SnapshotManager",
    "StageResult",
    "Stager",
    "StagingArea",
    "Verifier",
    "VerifyReport",
    "latest_staging_area",
]

"""Persistence and job-carrier services.

``pipeline_runner`` depends on the pipeline package and is imported directly.
"""

from .case_store import ArtifactCaseRecordStore, CaseNotFoundError, CaseRecordStore
from .job_queue import JobQueue, WorkerPool
from .repository import ArtifactKind, CaseRepository
from .storage import ArtifactStore, FileArtifactStore, MemoryArtifactStore, generate_id

__all__ = [
    "ArtifactCaseRecordStore",
    "ArtifactKind",
    "ArtifactStore",
    "CaseNotFoundError",
    "CaseRecordStore",
    "CaseRepository",
    "FileArtifactStore",
    "JobQueue",
    "MemoryArtifactStore",
    "WorkerPool",
    "generate_id",
]

"""Document transfer: strategy selection, storage and orchestration."""

from .orchestrator import ProgressTracker, UploadOrchestrator, UploadOutcome
from .storage import LocalResumableStorage, StorageBackend, UploadProgress, build_object_path
from .strategy import (
    FAN_OUT_THRESHOLD,
    UploadDescriptor,
    UploadStrategy,
    describe_uploads,
    select_strategy,
)

__all__ = [
    "FAN_OUT_THRESHOLD",
    "LocalResumableStorage",
    "ProgressTracker",
    "StorageBackend",
    "UploadDescriptor",
    "UploadOrchestrator",
    "UploadOutcome",
    "UploadProgress",
    "UploadStrategy",
    "build_object_path",
    "describe_uploads",
    "select_strategy",
]

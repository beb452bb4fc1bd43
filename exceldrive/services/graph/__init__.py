"""Microsoft Graph (OneDrive) upload integration."""

from .client import GraphDriveClient
from .config import GraphConfig, RetryConfig, resolve_config
from .models import (
    AuthorizationError,
    ChunkUploadError,
    DriveError,
    DriveItemRef,
    NotFoundError,
    SessionExpiredError,
    TransientServiceError,
    UploadSession,
    UploadState,
)
from .uploader import ChunkedUploadDriver, UploadProgress, plan_chunks

__all__ = [
    "AuthorizationError",
    "ChunkUploadError",
    "ChunkedUploadDriver",
    "DriveError",
    "DriveItemRef",
    "GraphConfig",
    "GraphDriveClient",
    "NotFoundError",
    "RetryConfig",
    "SessionExpiredError",
    "TransientServiceError",
    "UploadProgress",
    "UploadSession",
    "UploadState",
    "plan_chunks",
    "resolve_config",
]

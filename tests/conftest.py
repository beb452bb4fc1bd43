from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
for entry in (ROOT, TESTS_DIR):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))

# Keep log files out of the working tree; must happen before package imports.
os.environ.setdefault("EXCELDRIVE_WORK_DIR", tempfile.mkdtemp(prefix="exceldrive-tests-"))

CONFIG_ENV_VARS = (
    "EXCELDRIVE_ENV",
    "EXCELDRIVE_CONFIG_DIR",
    "EXCELDRIVE_CLIENT_ID",
    "EXCELDRIVE_CLIENT_SECRET",
    "EXCELDRIVE_TENANT_ID",
    "EXCELDRIVE_UPN",
    "EXCELDRIVE_UPLOAD_PATH",
    "EXCELDRIVE_SHEET_NAME",
    "EXCELDRIVE_CHUNK_SIZE",
    "EXCELDRIVE_TIMEOUT_SEC",
    "EXCELDRIVE_RETRY_ATTEMPTS",
    "EXCELDRIVE_RETRY_BACKOFF_MS",
    "EXCELDRIVE_RETRY_MAX_BACKOFF_MS",
)


@pytest.fixture(autouse=True)
def _isolate_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent developer environment variables from leaking into tests."""

    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)

"""
Shared pytest fixtures for the safekeep test suite.

Autouse fixtures below isolate tests from the user's real files:
  - Audit logger -> temp directory  (prevents test events in ~/.safekeep/audit)
  - SAFEKEEP_* environment variables cleared
"""

from pathlib import Path
from typing import Iterable, List

import pytest

from safekeep.config import Config, EncryptionConfig, GeneralConfig, StorageConfig


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any code path that calls ``get_audit_logger()`` would
    create ``~/.safekeep/audit`` and append test events to it.
    """
    import safekeep.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch, tmp_path):
    """Drop SAFEKEEP_* variables and point HOME at the temp dir."""
    for var in (
        "SAFEKEEP_CONFIG",
        "SAFEKEEP_STORAGE",
        "SAFEKEEP_SAFE_PATH",
        "SAFEKEEP_S3_BUCKET",
        "SAFEKEEP_S3_KEY",
        "SAFEKEEP_AUDIT_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def safe_path(tmp_path) -> Path:
    return tmp_path / "test.safe"


@pytest.fixture
def config(tmp_path, safe_path) -> Config:
    """File-backed config with a cheap KDF so tests stay fast."""
    return Config(
        storage=StorageConfig(kind="file", path=str(safe_path)),
        encryption=EncryptionConfig(pbkdf2_iterations=1000),
        general=GeneralConfig(audit_dir=str(tmp_path / "audit_logs")),
    )


class ScriptedPrompt:
    """Password prompt that replays canned answers and records each message."""

    def __init__(self, answers: Iterable):
        self.answers: List[bytes] = [
            a.encode("utf-8") if isinstance(a, str) else a for a in answers
        ]
        self.messages: List[str] = []

    def __call__(self, message: str) -> bytes:
        self.messages.append(message)
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {message}")
        return self.answers.pop(0)

    @property
    def calls(self) -> int:
        return len(self.messages)


@pytest.fixture
def scripted_prompt():
    """Factory: ``scripted_prompt(["pw1", "pw2"])``."""
    return ScriptedPrompt

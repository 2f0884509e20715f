import os
import sys
from typing import Callable, Dict

import pytest

# lanshare is a namespace package; make the checkout importable without installing
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from lanshare.auth.credentials import CredentialStore
from lanshare.auth.directory import IdentityDirectory

SECRETS = {
    "faculty1": "pass123",
    "faculty2": "pass456",
}

@pytest.fixture
def credentials() -> CredentialStore:
    return CredentialStore.from_secrets(SECRETS)

@pytest.fixture
def directory() -> IdentityDirectory:
    return IdentityDirectory({"faculty1": "127.0.0.1", "faculty2": "127.0.0.1"})

@pytest.fixture
def make_share(tmp_path) -> Callable[[Dict[str, bytes]], str]:
    def _make_share(files: Dict[str, bytes]) -> str:
        share = tmp_path / "share"
        share.mkdir(exist_ok=True)
        for name, content in files.items():
            (share / name).write_bytes(content)
        return str(share)
    return _make_share

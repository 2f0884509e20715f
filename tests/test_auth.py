import base64
import hashlib
import json

import pytest

from lanshare.auth import credentials as credentials_module
from lanshare.auth.credentials import CredentialStore, hash_secret, load_credentials
from lanshare.auth.directory import IdentityDirectory, load_directory
from lanshare.proto.dat import AuthenticationRejected
from lanshare.server.authenticator import Authenticator
from lanshare.server.serve import resolve_identity

def test_hash_secret_is_base64_sha256():
    expected = base64.b64encode(hashlib.sha256(b"pass123").digest()).decode()
    assert hash_secret("pass123") == expected

def test_verify(credentials):
    assert credentials.verify("faculty1", hash_secret("pass123"))
    assert credentials.verify(" faculty1 ", hash_secret("pass123"))
    assert not credentials.verify("faculty1", hash_secret("pass456"))
    assert not credentials.verify("faculty1", "pass123")
    assert not credentials.verify("nobody", hash_secret("pass123"))

def test_verify_always_compares_in_constant_time(credentials, monkeypatch):
    calls = []
    real = credentials_module.hmac.compare_digest

    def recording(a, b):
        calls.append((a, b))
        return real(a, b)

    monkeypatch.setattr(credentials_module.hmac, "compare_digest", recording)
    credentials.verify("faculty1", hash_secret("wrong"))
    credentials.verify("nobody", hash_secret("wrong"))
    assert len(calls) == 2

def test_exists_and_all_identities(credentials):
    assert credentials.exists("faculty2")
    assert not credentials.exists("faculty9")
    assert credentials.all_identities() == frozenset({"faculty1", "faculty2"})

def test_load_credentials(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text(json.dumps({"faculty3": hash_secret("pass789")}))
    store = load_credentials(str(path))
    assert store.verify("faculty3", hash_secret("pass789"))

def test_load_credentials_rejects_lists(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text("[]")
    with pytest.raises(ValueError):
        load_credentials(str(path))

def test_directory_lookups(tmp_path):
    path = tmp_path / "directory.json"
    path.write_text(json.dumps({"faculty1": "LAPTOP-UHBD48G0", "faculty2": "MrunalHPi5"}))
    directory = load_directory(str(path))
    assert directory.address_for("faculty1") == "LAPTOP-UHBD48G0"
    assert directory.address_for("faculty7") is None
    assert directory.identity_for("laptop-uhbd48g0") == "faculty1"
    assert directory.identity_for("MRUNALHPI5 ") == "faculty2"
    assert directory.identity_for("elsewhere") is None

def test_authenticator_accepts_only_its_identity(credentials):
    authenticator = Authenticator("faculty1", credentials)
    assert authenticator.authenticate_client("faculty1", hash_secret("pass123")) == "faculty1"
    # valid on another server instance, not on this one
    with pytest.raises(AuthenticationRejected):
        authenticator.authenticate_client("faculty2", hash_secret("pass456"))
    with pytest.raises(AuthenticationRejected):
        authenticator.authenticate_client("faculty1", hash_secret("pass456"))
    with pytest.raises(AuthenticationRejected):
        authenticator.authenticate_client("faculty1", None)
    with pytest.raises(AuthenticationRejected):
        authenticator.authenticate_client(None, None)

def test_resolve_identity_prefers_hostname_match():
    directory = IdentityDirectory({"faculty1": "LAB-PC", "faculty2": "OFFICE-PC"})
    assert resolve_identity(directory, "faculty2", "lab-pc") == "faculty1"
    assert resolve_identity(directory, "faculty2", "unknown-host") == "faculty2"
    assert resolve_identity(None, " faculty2 ", "lab-pc") == "faculty2"
    assert resolve_identity(directory, None, "unknown-host") is None

def test_from_secrets_never_stores_plaintext():
    store = CredentialStore.from_secrets({"faculty1": "pass123"})
    assert not store.verify("faculty1", "pass123")

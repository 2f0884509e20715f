# Credential store: identity -> hashed secret.
#
# Secrets never reach the wire or the store in clear form.
# The client sends base64(sha256(secret)) as its proof and
# the store holds the same value, so verification is a plain
# constant-time comparison of the two strings.

import base64
import hashlib
import hmac
import json
from typing import Dict, FrozenSet, Mapping

ENCODING = "utf-8"

def hash_secret(secret: str) -> str:
    digest = hashlib.sha256(secret.encode(ENCODING)).digest()
    return base64.b64encode(digest).decode("ascii")

class CredentialStore:
    def __init__(self, credentials: Mapping[str, str]) -> None:
        self._credentials: Dict[str, str] = {
            identity.strip(): proof for identity, proof in credentials.items()
        }

    @classmethod
    def from_secrets(cls, secrets: Mapping[str, str]) -> 'CredentialStore':
        return cls({identity: hash_secret(secret) for identity, secret in secrets.items()})

    def verify(self, identity: str, proof: str) -> bool:
        stored = self._credentials.get(identity.strip())
        if stored is None:
            # compare anyway so unknown identities cost the same as wrong secrets
            hmac.compare_digest(proof.encode(ENCODING), proof.encode(ENCODING))
            return False
        return hmac.compare_digest(stored.encode(ENCODING), proof.encode(ENCODING))

    def exists(self, identity: str) -> bool:
        return identity.strip() in self._credentials

    def all_identities(self) -> FrozenSet[str]:
        return frozenset(self._credentials)

def load_credentials(path: str) -> CredentialStore:
    # {"identity": "<base64 sha256 of secret>", ...}
    with open(path, encoding=ENCODING) as f:
        data_json = json.load(f)
    if not isinstance(data_json, dict):
        raise ValueError(f"{path}: expected a JSON object of identity -> hash")
    return CredentialStore({str(k): str(v) for k, v in data_json.items()})

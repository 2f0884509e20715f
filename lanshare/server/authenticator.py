import logging
from typing import Optional, Protocol

from lanshare.proto.dat import AuthenticationRejected

LOGGER = logging.getLogger(__name__)

class CredentialVerifier(Protocol):
    def verify(self, identity: str, proof: str) -> bool: ...

class Authenticator:
    def __init__(self, identity: str, credentials: CredentialVerifier) -> None:
        self._identity = identity
        self._credentials = credentials

    def authenticate_client(self, identity: Optional[str], proof: Optional[str]) -> str:
        # Every failure raises the same exception; the reason is only logged
        if identity is None or proof is None:
            raise AuthenticationRejected("credentials not received")
        identity = identity.strip()
        proof = proof.strip()
        if identity != self._identity:
            LOGGER.info("Rejected identity %r, this server represents %r", identity, self._identity)
            raise AuthenticationRejected("identity not served here")
        if not self._credentials.verify(identity, proof):
            raise AuthenticationRejected("bad proof")
        return identity

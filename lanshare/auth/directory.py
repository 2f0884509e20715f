# Identity directory: which machine each identity's server runs on.

import json
from typing import Dict, Mapping, Optional

class IdentityDirectory:
    def __init__(self, addresses: Mapping[str, str]) -> None:
        self._addresses: Dict[str, str] = {
            identity.strip(): address.strip() for identity, address in addresses.items()
        }

    def address_for(self, identity: str) -> Optional[str]:
        return self._addresses.get(identity.strip())

    def identity_for(self, address: str) -> Optional[str]:
        # Reverse lookup; hostnames compare case-insensitively
        wanted = address.strip().lower()
        for identity, known in self._addresses.items():
            if known.lower() == wanted:
                return identity
        return None

def load_directory(path: str) -> IdentityDirectory:
    # {"identity": "hostname-or-address", ...}
    with open(path, encoding="utf-8") as f:
        data_json = json.load(f)
    if not isinstance(data_json, dict):
        raise ValueError(f"{path}: expected a JSON object of identity -> address")
    return IdentityDirectory({str(k): str(v) for k, v in data_json.items()})

"""tyron.domain

Domain-separated message digests.

Every digest a guardian or owner signs is bound to (system name, version,
chain id, verifying account) so a signature produced for one account, network
or protocol version cannot be replayed against another. The construction
mirrors typed structured-data signing:

    domain_hash = SHA-256(JCS({name, version, chainId, verifyingAccount}))
    struct_hash = SHA-256(JCS({"type": <TypeName>, ...payload}))
    digest      = SHA-256(0x19 0x01 || domain_hash || struct_hash)

Operation authorization uses a separate fixed envelope on top of a caller
supplied digest (``authorization_envelope``). Signature authentication via
``SSIAccount.check_signature`` does not; keep the two distinct.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from tyron.core import jcs_canonicalize, sha256
from tyron.hardening import Validators
from tyron.identity import Identity

TYPED_DATA_PREFIX = b"\x19\x01"
AUTHORIZATION_PREFIX = b"\x19Tyron Signed Message:\n32"

NEW_SIGNER_TYPE = "NewSigner"


@dataclass(frozen=True)
class DomainSeparator:
    """The signing domain of one account instance."""
    name: str
    version: str
    chain_id: int
    verifying_account: Identity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingAccount": self.verifying_account.hex,
        }

    @property
    def domain_hash(self) -> bytes:
        return sha256(jcs_canonicalize(self.to_dict()))

    def struct_hash(self, type_name: str, payload: Dict[str, Any]) -> bytes:
        if "type" in payload:
            raise ValueError("payload must not define 'type'")
        body = dict(payload)
        body["type"] = type_name
        return sha256(jcs_canonicalize(body))

    def typed_digest(self, type_name: str, payload: Dict[str, Any]) -> bytes:
        return sha256(TYPED_DATA_PREFIX + self.domain_hash + self.struct_hash(type_name, payload))

    def new_signer_digest(self, new_owner: Identity) -> bytes:
        """Digest guardians sign to vote for ``new_owner``."""
        return self.typed_digest(NEW_SIGNER_TYPE, {"newOwner": new_owner.hex})


def authorization_envelope(digest: bytes) -> bytes:
    """Wrap an operation digest in the fixed authorization envelope."""
    result = Validators.validate_digest(digest)
    result.raise_if_invalid()
    return sha256(AUTHORIZATION_PREFIX + result.sanitized_value)

"""tyron.keys

Ed25519 key material for account owners and guardians.

Keys are exchanged as OKP JWKs (``{"kty": "OKP", "crv": "Ed25519", "x", "d"}``)
with base64url members. The identity of a key principal is its raw public key,
so ``KeyPair.identity`` is exactly what an account stores as owner or hashes
into a guardian id.
"""

from __future__ import annotations

import base64
import json
import pathlib
from dataclasses import dataclass
from typing import Any, Dict, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from tyron.identity import Identity


def b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    pad = "=" * ((4 - len(s) % 4) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("ascii"))


def _public_bytes(priv: Ed25519PrivateKey) -> bytes:
    return priv.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


@dataclass(frozen=True)
class KeyPair:
    """An Ed25519 signing key and the identity it controls."""

    private_key: Ed25519PrivateKey
    kid: str = "key-1"

    @classmethod
    def generate(cls, kid: str = "key-1") -> "KeyPair":
        return cls(Ed25519PrivateKey.generate(), kid)

    @classmethod
    def from_seed(cls, seed: bytes, kid: str = "key-1") -> "KeyPair":
        """Deterministic key from a 32-byte seed (fixtures, reproducible tooling)."""
        return cls(Ed25519PrivateKey.from_private_bytes(seed), kid)

    @property
    def identity(self) -> Identity:
        return Identity(_public_bytes(self.private_key))

    def sign(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest exactly as given (no envelope)."""
        return self.private_key.sign(digest)

    def to_jwk(self) -> Dict[str, Any]:
        priv_bytes = self.private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return {
            "kty": "OKP",
            "crv": "Ed25519",
            "x": b64url_encode(_public_bytes(self.private_key)),
            "d": b64url_encode(priv_bytes),
            "kid": self.kid,
        }

    @classmethod
    def from_jwk(cls, jwk: Dict[str, Any]) -> "KeyPair":
        """Load an Ed25519 private key from an OKP JWK.

        The ``x`` member, when present, must match the public key derived
        from ``d``.
        """
        if jwk.get("kty") != "OKP" or jwk.get("crv") != "Ed25519":
            raise ValueError("Only OKP/Ed25519 JWK is supported")
        d = jwk.get("d")
        if not d:
            raise ValueError("JWK must include 'd' (private)")

        pair = cls(Ed25519PrivateKey.from_private_bytes(b64url_decode(d)), str(jwk.get("kid") or "key-1"))
        x = jwk.get("x")
        if x and b64url_decode(x) != pair.identity.raw:
            raise ValueError("JWK 'x' does not match the private key")
        return pair


def public_jwk(jwk: Dict[str, Any]) -> Dict[str, Any]:
    """Return a public-only JWK (no 'd')."""
    out = dict(jwk)
    out.pop("d", None)
    return out


def load_keypair(path: Union[str, pathlib.Path]) -> KeyPair:
    """Load a key file written by ``save_keypair`` (or a bare private JWK)."""
    obj = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    if not isinstance(obj, dict):
        raise ValueError("key file must be a JSON object")
    jwk = obj.get("private_jwk", obj)
    if not isinstance(jwk, dict):
        raise ValueError("key file wrapper must contain a JWK object under 'private_jwk'")
    return KeyPair.from_jwk(jwk)


def save_keypair(path: Union[str, pathlib.Path], pair: KeyPair) -> Dict[str, Any]:
    doc = {
        "private_jwk": pair.to_jwk(),
        "identity": pair.identity.hex,
        "did": pair.identity.to_did_key(),
    }
    pathlib.Path(path).write_text(json.dumps(doc, indent=2) + "\n", encoding="utf-8")
    return doc
